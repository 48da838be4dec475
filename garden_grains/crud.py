from __future__ import annotations

import logging
import secrets
import string
from datetime import date, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import case, func, or_
from sqlmodel import Session, select

from . import lifecycle
from .errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from .menu_data import DEFAULT_MENU_ITEMS
from .models import (
    MenuItem,
    MenuRating,
    Order,
    OrderStatus,
    PaymentStatus,
    Reservation,
    ReservationStatus,
    Role,
    User,
    utcnow,
)
from .notifier import ReservationNotice

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
DASHBOARD_PERIODS = {"1d": 1, "7d": 7, "30d": 30}


# -------------------------
# Users
# -------------------------

def get_user(session: Session, user_id: int) -> Optional[User]:
    return session.get(User, user_id)


def list_users(
    session: Session,
    *,
    role: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[User], int]:
    statement = select(User)
    if role:
        statement = statement.where(User.role == role)
    if search:
        pattern = f"%{search.strip().lower()}%"
        statement = statement.where(
            or_(func.lower(User.name).like(pattern), func.lower(User.email).like(pattern))
        )

    total = session.exec(select(func.count()).select_from(statement.subquery())).one()
    statement = statement.order_by(User.created_at.desc(), User.id.desc()).offset((page - 1) * limit).limit(limit)
    return list(session.exec(statement)), total


def set_user_active(session: Session, user_id: int, is_active: bool) -> User:
    user = get_user(session, user_id)
    if user is None:
        raise NotFoundError("User not found")
    user.is_active = is_active
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("User %s is now %s", user.id, "active" if is_active else "inactive")
    return user


def update_profile(session: Session, user: User, data: dict) -> User:
    for key in ("name", "phone"):
        if key in data:
            setattr(user, key, data[key])
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("Updated profile of user %s", user.id)
    return user


# -------------------------
# Menu operations
# -------------------------

def list_menu_items(
    session: Session,
    *,
    available_only: bool = False,
    category: Optional[str] = None,
) -> List[MenuItem]:
    statement = select(MenuItem)
    if available_only:
        statement = statement.where(MenuItem.is_available.is_(True))
    if category:
        statement = statement.where(MenuItem.category == category)
    statement = statement.order_by(MenuItem.category.asc(), MenuItem.name.asc())
    return list(session.exec(statement))


def get_menu_item(session: Session, menu_item_id: int) -> MenuItem:
    menu_item = session.get(MenuItem, menu_item_id)
    if menu_item is None:
        raise NotFoundError("Menu item not found")
    return menu_item


def create_menu_item(session: Session, data: dict) -> MenuItem:
    now = utcnow()
    item = MenuItem(**data, created_at=now, updated_at=now)
    session.add(item)
    session.commit()
    session.refresh(item)
    return item


def update_menu_item(session: Session, menu_item: MenuItem, updates: dict) -> MenuItem:
    for key, value in updates.items():
        if value is None:
            continue
        setattr(menu_item, key, value)
    menu_item.updated_at = utcnow()
    session.add(menu_item)
    session.commit()
    session.refresh(menu_item)
    return menu_item


def delete_menu_item(session: Session, menu_item: MenuItem) -> None:
    ratings = session.exec(select(MenuRating).where(MenuRating.menu_item_id == menu_item.id)).all()
    for rating in ratings:
        session.delete(rating)
    session.flush()
    logger.info("Deleting menu item %s (%s)", menu_item.id, menu_item.name)
    session.delete(menu_item)
    session.commit()


def list_categories(session: Session) -> List[str]:
    statement = select(MenuItem.category).distinct().order_by(MenuItem.category.asc())
    return list(session.exec(statement))


def ensure_default_menu_items(session: Session) -> None:
    existing_count = session.exec(select(func.count(MenuItem.id))).one()
    if existing_count:
        return
    now = utcnow()
    for item in DEFAULT_MENU_ITEMS:
        session.add(MenuItem(**item, created_at=now, updated_at=now))
    session.commit()
    logger.info("Seeded %s default menu items", len(DEFAULT_MENU_ITEMS))


# -------------------------
# Menu ratings
# -------------------------

def rate_menu_item(session: Session, menu_item: MenuItem, user: User, rating: int, comment: Optional[str]) -> MenuItem:
    existing = session.exec(
        select(MenuRating).where(MenuRating.user_id == user.id).where(MenuRating.menu_item_id == menu_item.id)
    ).first()
    if existing:
        raise ConflictError("You have already rated this item", code="ALREADY_RATED")

    session.add(MenuRating(user_id=user.id, menu_item_id=menu_item.id, rating=rating, comment=comment))
    session.flush()
    average, count = session.exec(
        select(func.avg(MenuRating.rating), func.count(MenuRating.id)).where(MenuRating.menu_item_id == menu_item.id)
    ).one()
    menu_item.rating_average = round(float(average or 0), 2)
    menu_item.rating_count = int(count or 0)
    session.add(menu_item)
    session.commit()
    session.refresh(menu_item)
    return menu_item


def list_menu_ratings(session: Session, menu_item_id: int, limit: int = 10) -> List[MenuRating]:
    statement = (
        select(MenuRating)
        .where(MenuRating.menu_item_id == menu_item_id)
        .order_by(MenuRating.created_at.desc(), MenuRating.id.desc())
        .limit(limit)
    )
    return list(session.exec(statement))


# -------------------------
# Reservations
# -------------------------

def _confirmation_code(session: Session) -> str:
    while True:
        candidate = "RES" + "".join(secrets.choice(CODE_ALPHABET) for _ in range(6))
        taken = session.exec(select(Reservation.id).where(Reservation.confirmation_code == candidate)).first()
        if taken is None:
            return candidate


def create_reservation(session: Session, customer: User, data: dict) -> Tuple[Reservation, ReservationNotice]:
    if data["reservation_date"] <= utcnow().date():
        raise ValidationError(
            "Reservation date must be in the future",
            errors=[{"field": "date", "message": "Reservation date must be in the future"}],
        )
    for key in ("table_preference", "occasion"):
        if hasattr(data.get(key), "value"):
            data[key] = data[key].value

    reservation = Reservation(
        customer_id=customer.id,
        confirmation_code=_confirmation_code(session),
        **data,
    )
    session.add(reservation)
    session.commit()
    session.refresh(reservation)
    logger.info("Reservation %s created for user %s", reservation.confirmation_code, customer.id)

    notice = ReservationNotice(
        confirmation_code=reservation.confirmation_code,
        customer_name=reservation.customer_name,
        customer_email=reservation.customer_email,
        date=reservation.reservation_date.isoformat(),
        time=reservation.reservation_time,
        party_size=reservation.party_size,
        table_preference=reservation.table_preference,
        special_requests=reservation.special_requests,
    )
    return reservation, notice


def get_reservation(session: Session, reservation_id: int) -> Reservation:
    reservation = session.get(Reservation, reservation_id)
    if reservation is None:
        raise NotFoundError("Reservation not found")
    return reservation


def list_reservations(
    session: Session,
    *,
    customer_id: Optional[int] = None,
    status: Optional[str] = None,
    on_date: Optional[date] = None,
    page: int = 1,
    limit: int = 10,
) -> Tuple[List[Reservation], int]:
    statement = select(Reservation)
    if customer_id is not None:
        statement = statement.where(Reservation.customer_id == customer_id)
    if status:
        statement = statement.where(Reservation.status == status)
    if on_date:
        statement = statement.where(Reservation.reservation_date == on_date)

    total = session.exec(select(func.count()).select_from(statement.subquery())).one()
    if customer_id is not None:
        statement = statement.order_by(Reservation.reservation_date.desc(), Reservation.id.desc())
    else:
        statement = statement.order_by(Reservation.reservation_date.asc(), Reservation.reservation_time.asc())
    statement = statement.offset((page - 1) * limit).limit(limit)
    return list(session.exec(statement)), total


def update_reservation_status(
    session: Session,
    reservation: Reservation,
    status: str,
    actor: User,
    notes: Optional[str] = None,
) -> Reservation:
    status = status.value if hasattr(status, "value") else status
    if status != reservation.status:
        lifecycle.check_reservation_transition(reservation.status, status)
        reservation.status = status
        if status == ReservationStatus.CONFIRMED.value:
            reservation.confirmed_by = actor.id
            reservation.confirmed_at = utcnow()
    if notes:
        reservation.notes = notes
    reservation.updated_at = utcnow()
    session.add(reservation)
    session.commit()
    session.refresh(reservation)
    return reservation


def cancel_reservation(session: Session, reservation: Reservation, user: User) -> Reservation:
    if reservation.customer_id != user.id:
        raise ForbiddenError("Access denied")
    if not lifecycle.can_transition(
        lifecycle.RESERVATION_TRANSITIONS, reservation.status, ReservationStatus.CANCELLED
    ):
        raise ConflictError("Cannot cancel this reservation", code="RESERVATION_NOT_CANCELLABLE")
    reservation.status = ReservationStatus.CANCELLED.value
    reservation.updated_at = utcnow()
    session.add(reservation)
    session.commit()
    session.refresh(reservation)
    return reservation


# -------------------------
# Dashboard
# -------------------------

def compute_dashboard(session: Session, period: str = "7d") -> dict:
    days = DASHBOARD_PERIODS.get(period, 7)
    start = utcnow() - timedelta(days=days)
    in_period = Order.created_at >= start
    open_statuses = [OrderStatus.PENDING.value, OrderStatus.CONFIRMED.value, OrderStatus.PREPARING.value]

    total_orders, total_revenue, completed_orders = session.exec(
        select(
            func.count(Order.id),
            func.coalesce(func.sum(Order.total), 0),
            func.coalesce(func.sum(case((Order.status == OrderStatus.SERVED.value, 1), else_=0)), 0),
        ).where(in_period)
    ).one()
    pending_orders = session.exec(select(func.count(Order.id)).where(Order.status.in_(open_statuses))).one()
    total_reservations = session.exec(
        select(func.count(Reservation.id)).where(Reservation.created_at >= start)
    ).one()
    active_customers = session.exec(
        select(func.count(User.id)).where(User.is_active.is_(True)).where(User.role == Role.CUSTOMER.value)
    ).one()
    available_menu_items = session.exec(
        select(func.count(MenuItem.id)).where(MenuItem.is_available.is_(True))
    ).one()

    status_stmt = select(Order.status, func.count(Order.id)).where(in_period).group_by(Order.status)
    orders_by_status = [
        {"status": row[0], "count": int(row[1] or 0)}
        for row in session.exec(status_stmt).all()
    ]

    day = func.date(Order.created_at)
    day_stmt = (
        select(day, func.coalesce(func.sum(Order.total), 0), func.count(Order.id))
        .where(in_period)
        .group_by(day)
        .order_by(day)
    )
    revenue_by_day = [
        {"day": str(row[0]), "revenue": round(float(row[1] or 0), 2), "orders": int(row[2] or 0)}
        for row in session.exec(day_stmt).all()
    ]

    return {
        "period": period if period in DASHBOARD_PERIODS else "7d",
        "total_orders": int(total_orders or 0),
        "total_revenue": round(float(total_revenue or 0), 2),
        "pending_orders": int(pending_orders or 0),
        "completed_orders": int(completed_orders or 0),
        "total_reservations": int(total_reservations or 0),
        "active_customers": int(active_customers or 0),
        "available_menu_items": int(available_menu_items or 0),
        "orders_by_status": orders_by_status,
        "revenue_by_day": revenue_by_day,
    }


SALES_GROUPINGS = {"hour": "%Y-%m-%d %H:00:00", "day": "%Y-%m-%d", "month": "%Y-%m"}


def sales_analytics(session: Session, *, start=None, end=None, group_by: str = "day") -> dict:
    """Revenue per period and the ten best-selling items over paid orders."""
    statement = select(Order).where(Order.payment_status == PaymentStatus.PAID.value)
    if start:
        statement = statement.where(Order.created_at >= start)
    if end:
        statement = statement.where(Order.created_at <= end)
    orders = session.exec(statement.order_by(Order.created_at.asc(), Order.id.asc())).all()

    period_format = SALES_GROUPINGS.get(group_by, SALES_GROUPINGS["day"])
    periods: dict[str, dict] = {}
    items: dict[int, dict] = {}
    for order in orders:
        key = order.created_at.strftime(period_format)
        bucket = periods.setdefault(key, {"period": key, "revenue": 0.0, "orders": 0})
        bucket["revenue"] += order.total
        bucket["orders"] += 1
        for line in order.items or []:
            item = items.setdefault(
                line["menu_item_id"],
                {"menu_item_id": line["menu_item_id"], "name": line["name"], "quantity_sold": 0, "revenue": 0.0},
            )
            item["quantity_sold"] += line["quantity"]
            item["revenue"] += line["price"] * line["quantity"]

    sales_data = [
        {
            "period": bucket["period"],
            "revenue": round(bucket["revenue"], 2),
            "orders": bucket["orders"],
            "average_order_value": round(bucket["revenue"] / bucket["orders"], 2),
        }
        for bucket in periods.values()
    ]
    top_selling = sorted(items.values(), key=lambda item: (-item["quantity_sold"], item["name"]))[:10]
    for item in top_selling:
        item["revenue"] = round(item["revenue"], 2)
    return {"sales_data": sales_data, "top_selling_items": top_selling}


LOYALTY_BUCKETS = [(0, "0-99"), (100, "100-499"), (500, "500-999"), (1000, "1000-1999"), (2000, "2000+")]
NEW_CUSTOMER_DAYS = 30


def customer_analytics(session: Session, *, start=None, end=None) -> dict:
    is_customer = User.role == Role.CUSTOMER.value
    since = utcnow() - timedelta(days=NEW_CUSTOMER_DAYS)
    statement = select(
        func.count(User.id),
        func.coalesce(func.sum(case((User.is_active.is_(True), 1), else_=0)), 0),
        func.coalesce(func.sum(case((User.created_at >= since, 1), else_=0)), 0),
    ).where(is_customer)
    if start:
        statement = statement.where(User.created_at >= start)
    if end:
        statement = statement.where(User.created_at <= end)
    total_customers, active_customers, new_customers = session.exec(statement).one()

    counts = {label: 0 for _, label in LOYALTY_BUCKETS}
    for points in session.exec(select(User.loyalty_points).where(is_customer)).all():
        label = LOYALTY_BUCKETS[0][1]
        for floor, bucket in LOYALTY_BUCKETS:
            if (points or 0) >= floor:
                label = bucket
        counts[label] += 1

    return {
        "customer_analytics": {
            "total_customers": int(total_customers or 0),
            "active_customers": int(active_customers or 0),
            "new_customers": int(new_customers or 0),
        },
        "loyalty_distribution": [
            {"bucket": label, "min_points": floor, "count": counts[label]} for floor, label in LOYALTY_BUCKETS
        ],
    }
