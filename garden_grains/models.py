from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, Column, DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # SQLite drops the offset on the way back out
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Role(str, Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"


class MenuCategory(str, Enum):
    APPETIZERS = "appetizers"
    MAIN_COURSE = "main-course"
    DESSERTS = "desserts"
    BEVERAGES = "beverages"
    SALADS = "salads"
    SOUPS = "soups"
    SPECIALS = "specials"


class OrderType(str, Enum):
    DINE_IN = "dine-in"
    TAKEAWAY = "takeaway"
    DELIVERY = "delivery"


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    SERVED = "served"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    UPI = "upi"
    ONLINE = "online"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class ReservationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SEATED = "seated"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"


class TablePreference(str, Enum):
    ANY = "any"
    WINDOW = "window"
    CORNER = "corner"
    PRIVATE = "private"
    OUTDOOR = "outdoor"


class Occasion(str, Enum):
    BIRTHDAY = "birthday"
    ANNIVERSARY = "anniversary"
    BUSINESS = "business"
    DATE = "date"
    FAMILY = "family"
    OTHER = "other"


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str = Field(index=True, sa_column_kwargs={"unique": True})
    phone: Optional[str] = None
    role: str = Field(default=Role.CUSTOMER.value, index=True)
    loyalty_points: int = Field(default=0, ge=0)
    is_active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class MenuItem(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    description: str = ""
    price: float = Field(default=0, ge=0)
    category: str = Field(default=MenuCategory.MAIN_COURSE.value, index=True)
    is_available: bool = Field(default=True, index=True)
    # [{"name": "Size", "type": "single", "choices": [{"name": "Large", "price": 40}]}]
    customization_options: list = Field(default_factory=list, sa_column=Column(JSON))
    preparation_time: int = Field(default=15, ge=0)
    rating_average: float = 0
    rating_count: int = 0
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class Discount(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(index=True, sa_column_kwargs={"unique": True})
    description: str
    discount_type: str
    discount_value: float = Field(ge=0)
    min_order_amount: float = 0
    max_discount_amount: Optional[float] = None
    valid_from: datetime = Field(sa_type=DateTime(timezone=True))
    valid_until: datetime = Field(sa_type=DateTime(timezone=True))
    usage_limit: Optional[int] = None
    used_count: int = 0
    is_active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class OrderNumberSequence(SQLModel, table=True):
    """Each row reserves one order number; the autoincrement key is the sequence value."""

    id: Optional[int] = Field(default=None, primary_key=True)
    issued_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class Order(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    order_number: str = Field(index=True, sa_column_kwargs={"unique": True})
    customer_id: int = Field(foreign_key="user.id", index=True)
    # order lines are embedded with the price captured at order time
    items: list = Field(default_factory=list, sa_column=Column(JSON))
    subtotal: float = 0
    tax: float = 0
    delivery_fee: float = 0
    discount: float = 0
    discount_code: Optional[str] = None
    total: float = 0
    status: str = Field(default=OrderStatus.PENDING.value, index=True)
    payment_status: str = Field(default=PaymentStatus.PENDING.value, index=True)
    payment_method: str = PaymentMethod.ONLINE.value
    payment_id: Optional[str] = None
    order_type: str = OrderType.DINE_IN.value
    delivery_address: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    estimated_time: int = 30
    actual_time: Optional[int] = None
    notes: Optional[str] = None
    kitchen_notes: Optional[str] = None
    feedback_rating: Optional[int] = None
    feedback_comment: Optional[str] = None
    feedback_submitted_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True), index=True)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class Reservation(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    customer_id: int = Field(foreign_key="user.id", index=True)
    customer_name: str
    customer_phone: str
    customer_email: str
    reservation_date: date = Field(index=True)
    reservation_time: str
    party_size: int = Field(ge=1, le=20)
    table_preference: str = TablePreference.ANY.value
    status: str = Field(default=ReservationStatus.PENDING.value, index=True)
    special_requests: Optional[str] = None
    occasion: str = Occasion.OTHER.value
    confirmation_code: str = Field(index=True, sa_column_kwargs={"unique": True})
    notes: Optional[str] = None
    confirmed_by: Optional[int] = Field(default=None, foreign_key="user.id")
    confirmed_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True), index=True)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class MenuRating(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("user_id", "menu_item_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    menu_item_id: int = Field(foreign_key="menuitem.id", index=True)
    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


__all__ = [
    "User",
    "MenuItem",
    "Discount",
    "OrderNumberSequence",
    "Order",
    "Reservation",
    "MenuRating",
]
