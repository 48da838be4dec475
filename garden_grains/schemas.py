from __future__ import annotations

import re
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .models import (
    DiscountType,
    MenuCategory,
    Occasion,
    OrderStatus,
    OrderType,
    ReservationStatus,
    TablePreference,
)

TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")
PHONE_PATTERN = re.compile(r"^[\d\s\-()+]{10,}$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class CamelModel(BaseModel):
    """JSON bodies use camelCase; Python code uses snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# -------------------------
# Menu
# -------------------------

class CustomizationChoice(CamelModel):
    name: str
    price: float = Field(default=0, ge=0)


class CustomizationGroup(CamelModel):
    name: str
    type: str = Field(default="single", pattern="^(single|multiple)$")
    choices: List[CustomizationChoice] = Field(default_factory=list)


class MenuItemBase(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    price: float = Field(ge=0)
    category: MenuCategory
    is_available: bool = True
    customization_options: List[CustomizationGroup] = Field(default_factory=list)
    preparation_time: int = Field(default=15, ge=0)


class MenuItemCreate(MenuItemBase):
    pass


class MenuItemUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    price: Optional[float] = Field(default=None, ge=0)
    category: Optional[MenuCategory] = None
    is_available: Optional[bool] = None
    customization_options: Optional[List[CustomizationGroup]] = None
    preparation_time: Optional[int] = Field(default=None, ge=0)


class MenuItemRead(MenuItemBase):
    id: int
    rating_average: float
    rating_count: int
    created_at: datetime
    updated_at: datetime


# -------------------------
# Orders
# -------------------------

class SelectedChoice(CamelModel):
    name: str


class LineCustomization(CamelModel):
    option_name: str
    selected_choices: List[SelectedChoice] = Field(default_factory=list)


class CartLine(CamelModel):
    menu_item: int
    quantity: int = Field(ge=1)
    customization: List[LineCustomization] = Field(default_factory=list)
    special_instructions: Optional[str] = Field(default=None, max_length=300)


class DeliveryAddress(CamelModel):
    street: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: Optional[str] = None
    zip_code: Optional[str] = None
    phone: Optional[str] = None
    instructions: Optional[str] = None


class OrderCreate(CamelModel):
    items: List[CartLine] = Field(min_length=1)
    order_type: OrderType
    delivery_address: Optional[DeliveryAddress] = None
    discount_code: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=500)


class OrderCreated(CamelModel):
    id: int
    order_number: str
    total: float
    status: OrderStatus
    estimated_time: int


class OrderCreatedResponse(CamelModel):
    message: str
    order: OrderCreated


class OrderLineRead(CamelModel):
    menu_item_id: int
    name: str
    quantity: int
    price: float
    customization: List[dict] = Field(default_factory=list)
    special_instructions: Optional[str] = None


class FeedbackRead(CamelModel):
    rating: int
    comment: Optional[str] = None
    submitted_at: datetime


class OrderRead(CamelModel):
    id: int
    order_number: str
    customer_id: int
    items: List[OrderLineRead]
    subtotal: float
    tax: float
    delivery_fee: float
    discount: float
    discount_code: Optional[str] = None
    total: float
    status: OrderStatus
    status_display: str
    payment_status: str
    payment_method: str
    order_type: OrderType
    delivery_address: Optional[DeliveryAddress] = None
    estimated_time: int
    actual_time: Optional[int] = None
    notes: Optional[str] = None
    kitchen_notes: Optional[str] = None
    feedback: Optional[FeedbackRead] = None
    created_at: datetime
    updated_at: datetime


class OrderStatusUpdate(CamelModel):
    status: OrderStatus
    kitchen_notes: Optional[str] = None


class OrderStatusSummary(CamelModel):
    id: int
    order_number: str
    status: OrderStatus
    status_display: str


class OrderStatusResponse(CamelModel):
    message: str
    order: OrderStatusSummary


class FeedbackCreate(CamelModel):
    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = Field(default=None, max_length=500)

    @field_validator("comment")
    @classmethod
    def strip_comment(cls, value: Optional[str]) -> Optional[str]:
        return value.strip() if value is not None else None


class FeedbackResponse(CamelModel):
    message: str
    feedback: FeedbackRead


class Pagination(CamelModel):
    current_page: int
    total_pages: int
    total_items: int


class OrderPage(CamelModel):
    orders: List[OrderRead]
    pagination: Pagination


# -------------------------
# Discounts
# -------------------------

class DiscountValidateRequest(CamelModel):
    code: str = Field(min_length=1)
    order_total: float = Field(ge=0)


class DiscountApplied(CamelModel):
    code: str
    description: str
    discount_amount: float
    type: DiscountType


class DiscountValidateResponse(CamelModel):
    valid: bool
    discount: DiscountApplied


class DiscountCreate(CamelModel):
    code: str = Field(min_length=1)
    description: str = Field(min_length=1)
    discount_type: DiscountType
    discount_value: float = Field(ge=0)
    min_order_amount: float = Field(default=0, ge=0)
    max_discount_amount: Optional[float] = Field(default=None, ge=0)
    valid_from: datetime
    valid_until: datetime
    usage_limit: Optional[int] = Field(default=None, ge=1)
    is_active: bool = True

    @model_validator(mode="after")
    def percentage_within_bounds(self) -> "DiscountCreate":
        if self.discount_type == DiscountType.PERCENTAGE and self.discount_value > 100:
            raise ValueError("percentage discounts cannot exceed 100")
        return self


class DiscountRead(CamelModel):
    id: int
    code: str
    description: str
    discount_type: DiscountType
    discount_value: float
    min_order_amount: float
    max_discount_amount: Optional[float] = None
    valid_from: datetime
    valid_until: datetime
    usage_limit: Optional[int] = None
    used_count: int
    is_active: bool


# -------------------------
# Payments
# -------------------------

class PaymentIntentRequest(CamelModel):
    order_id: int


class PaymentIntentResponse(CamelModel):
    client_secret: Optional[str] = None
    payment_intent_id: str
    amount: float


class PaymentConfirmRequest(CamelModel):
    order_id: int
    payment_intent_id: str = Field(min_length=1)


class PaymentOrderSummary(CamelModel):
    id: int
    order_number: str
    payment_status: str
    total: float


class PaymentConfirmResponse(CamelModel):
    message: str
    order: PaymentOrderSummary


class RefundRequest(CamelModel):
    order_id: int
    amount: Optional[float] = Field(default=None, gt=0)


class RefundSummary(CamelModel):
    id: str
    amount: float
    status: str


class RefundResponse(CamelModel):
    message: str
    refund: RefundSummary


# -------------------------
# Reservations
# -------------------------

class ReservationCreate(CamelModel):
    reservation_date: date = Field(alias="date")
    reservation_time: str = Field(alias="time")
    party_size: int = Field(ge=1, le=20)
    customer_name: str
    customer_phone: str
    customer_email: str
    table_preference: TablePreference = TablePreference.ANY
    special_requests: Optional[str] = Field(default=None, max_length=500)
    occasion: Occasion = Occasion.OTHER

    @field_validator("reservation_time")
    @classmethod
    def check_time(cls, value: str) -> str:
        if not TIME_PATTERN.match(value):
            raise ValueError("Invalid time format, expected HH:MM")
        return value

    @field_validator("customer_name")
    @classmethod
    def check_name(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 2:
            raise ValueError("Name must be at least 2 characters")
        return value

    @field_validator("customer_phone")
    @classmethod
    def check_phone(cls, value: str) -> str:
        if not PHONE_PATTERN.match(value):
            raise ValueError("Please enter a valid phone number (at least 10 digits)")
        return value

    @field_validator("customer_email")
    @classmethod
    def check_email(cls, value: str) -> str:
        value = value.strip().lower()
        if not EMAIL_PATTERN.match(value):
            raise ValueError("Invalid email")
        return value


class ReservationRead(CamelModel):
    id: int
    customer_id: int
    confirmation_code: str
    reservation_date: date = Field(alias="date")
    reservation_time: str = Field(alias="time")
    party_size: int
    table_preference: TablePreference
    status: ReservationStatus
    customer_name: str
    customer_phone: str
    customer_email: str
    special_requests: Optional[str] = None
    occasion: Occasion
    notes: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    created_at: datetime


class ReservationStatusUpdate(CamelModel):
    status: ReservationStatus
    notes: Optional[str] = None


class ReservationPage(CamelModel):
    reservations: List[ReservationRead]
    pagination: Pagination


# -------------------------
# Users, ratings, dashboard
# -------------------------

class UserProfile(CamelModel):
    id: int
    name: str
    email: str
    phone: Optional[str] = None
    role: str
    loyalty_points: int


class MenuRatingCreate(FeedbackCreate):
    pass


class MenuRatingRead(CamelModel):
    user_id: int
    rating: int
    comment: Optional[str] = None
    created_at: datetime


class MenuRatingResponse(CamelModel):
    message: str
    rating: int
    comment: Optional[str] = None
    average_rating: float
    total_ratings: int


class StatusCount(CamelModel):
    status: str
    count: int


class RevenueDay(CamelModel):
    day: str
    revenue: float
    orders: int


class DashboardResponse(CamelModel):
    period: str
    total_orders: int
    total_revenue: float
    pending_orders: int
    completed_orders: int
    total_reservations: int
    active_customers: int
    available_menu_items: int
    orders_by_status: List[StatusCount]
    revenue_by_day: List[RevenueDay]


class MenuCategoriesResponse(BaseModel):
    categories: List[str]


class UserAdminRead(UserProfile):
    is_active: bool
    created_at: datetime


class UserPage(CamelModel):
    users: List[UserAdminRead]
    pagination: Pagination


class UserStatusUpdate(CamelModel):
    is_active: bool


class UserStatusResponse(CamelModel):
    message: str
    user: UserAdminRead


class SalesPeriod(CamelModel):
    period: str
    revenue: float
    orders: int
    average_order_value: float


class TopSellingItem(CamelModel):
    menu_item_id: int
    name: str
    quantity_sold: int
    revenue: float


class SalesAnalyticsResponse(CamelModel):
    sales_data: List[SalesPeriod]
    top_selling_items: List[TopSellingItem]


class CustomerTotals(CamelModel):
    total_customers: int
    active_customers: int
    new_customers: int


class LoyaltyBucket(CamelModel):
    bucket: str
    min_points: int
    count: int


class CustomerAnalyticsResponse(CamelModel):
    customer_analytics: CustomerTotals
    loyalty_distribution: List[LoyaltyBucket]


class ProfileUpdate(CamelModel):
    name: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("name")
    @classmethod
    def check_name(cls, value: Optional[str]) -> str:
        if value is None:
            raise ValueError("Name cannot be empty")
        value = value.strip()
        if len(value) < 2:
            raise ValueError("Name must be at least 2 characters")
        return value

    @field_validator("phone")
    @classmethod
    def check_phone(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not PHONE_PATTERN.match(value):
            raise ValueError("Please enter a valid phone number (at least 10 digits)")
        return value


class ProfileUpdateResponse(CamelModel):
    message: str
    user: UserProfile


class LoyaltyOrder(CamelModel):
    order_number: str
    points_earned: int
    date: datetime


class LoyaltyHistoryResponse(CamelModel):
    current_points: int
    recent_orders: List[LoyaltyOrder]
