from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlmodel import Session, select

from . import discounts, lifecycle, loyalty
from .config import Settings
from .errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from .models import MenuItem, Order, OrderNumberSequence, OrderStatus, OrderType, Role, User, as_utc, utcnow
from .notifier import OrderNotice
from .pricing import price_cart

logger = logging.getLogger(__name__)


def next_order_number(session: Session, prefix: str) -> str:
    reservation = OrderNumberSequence()
    session.add(reservation)
    session.flush()
    return f"{prefix}{reservation.id:06d}"


def build_notice(order: Order, customer: User) -> OrderNotice:
    return OrderNotice(
        order_number=order.order_number,
        order_type=order.order_type,
        status=order.status,
        status_display=lifecycle.status_display(order.status),
        total=order.total,
        estimated_time=order.estimated_time,
        customer_name=customer.name,
        customer_email=customer.email,
        items=[
            {"name": line["name"], "quantity": line["quantity"], "price": line["price"]}
            for line in order.items
        ],
    )


def place_order(session: Session, customer: User, payload: dict, settings: Settings) -> Tuple[Order, OrderNotice]:
    order_type = payload["order_type"]
    if hasattr(order_type, "value"):
        order_type = order_type.value
    delivery_address = payload.get("delivery_address")
    if order_type == OrderType.DELIVERY.value and not delivery_address:
        raise ValidationError(
            "Delivery address is required for delivery orders",
            code="DELIVERY_ADDRESS_REQUIRED",
            errors=[{"field": "deliveryAddress", "message": "Delivery address is required"}],
        )

    def lookup(menu_item_id: int) -> Optional[MenuItem]:
        return session.get(MenuItem, menu_item_id)

    pricing_options = {
        "tax_rate": settings.tax_rate,
        "delivery_fee": settings.delivery_fee,
        "tax_on_discounted_subtotal": settings.tax_on_discounted_subtotal,
    }
    quote = price_cart(payload["items"], order_type, lookup, **pricing_options)

    discount_code = None
    code = payload.get("discount_code")
    if code:
        discount = discounts.get_discount(session, code)
        offer = discounts.evaluate(discount, quote.subtotal, utcnow())
        quote = price_cart(payload["items"], order_type, lookup, discount=offer.discount_amount, **pricing_options)
        discounts.redeem(session, discount)
        discount_code = offer.code

    order = Order(
        order_number=next_order_number(session, settings.order_number_prefix),
        customer_id=customer.id,
        items=[line.to_document() for line in quote.lines],
        subtotal=float(quote.subtotal),
        tax=float(quote.tax),
        delivery_fee=float(quote.delivery_fee),
        discount=float(quote.discount),
        discount_code=discount_code,
        total=float(quote.total),
        order_type=order_type,
        delivery_address=delivery_address if order_type == OrderType.DELIVERY.value else None,
        estimated_time=settings.default_estimated_time,
        notes=payload.get("notes"),
    )
    session.add(order)
    session.flush()

    loyalty.credit(session, customer, quote.total, settings.loyalty_points_divisor)

    session.commit()
    session.refresh(order)
    logger.info("Order %s created for user %s, total %.2f", order.order_number, customer.id, order.total)
    return order, build_notice(order, customer)


def get_order(session: Session, order_id: int) -> Order:
    order = session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    return order


def get_order_for(session: Session, order_id: int, user: User, *, allow_admin: bool = True) -> Order:
    order = get_order(session, order_id)
    is_admin = allow_admin and user.role == Role.ADMIN.value
    if order.customer_id != user.id and not is_admin:
        raise ForbiddenError("Access denied")
    return order


def update_status(
    session: Session,
    order: Order,
    status: str,
    kitchen_notes: Optional[str] = None,
) -> Tuple[Order, Optional[OrderNotice]]:
    """Move ``order`` to ``status``; returns a notice when the customer should hear about it."""
    status = status.value if hasattr(status, "value") else status
    changed = status != order.status
    if changed:
        lifecycle.check_order_transition(order.status, status)
        previous = order.status
        order.status = status
        if status == OrderStatus.SERVED.value:
            elapsed = utcnow() - as_utc(order.created_at)
            order.actual_time = max(int(elapsed.total_seconds() // 60), 0)
    if kitchen_notes:
        order.kitchen_notes = kitchen_notes
    order.updated_at = utcnow()
    session.add(order)
    session.commit()
    session.refresh(order)

    if not changed:
        return order, None
    logger.info("Order %s moved from %s to %s", order.order_number, previous, status)
    customer = session.get(User, order.customer_id)
    return order, build_notice(order, customer)


def add_feedback(session: Session, order: Order, rating: int, comment: Optional[str]) -> Order:
    if order.status != OrderStatus.SERVED.value:
        raise ConflictError("Feedback can only be submitted for served orders", code="FEEDBACK_NOT_ALLOWED")
    if order.feedback_submitted_at is not None:
        logger.info("Replacing feedback on order %s", order.order_number)
    order.feedback_rating = rating
    order.feedback_comment = comment
    order.feedback_submitted_at = utcnow()
    order.updated_at = order.feedback_submitted_at
    session.add(order)
    session.commit()
    session.refresh(order)
    return order


def list_orders(
    session: Session,
    *,
    customer_id: Optional[int] = None,
    status: Optional[str] = None,
    date_from=None,
    date_to=None,
    page: int = 1,
    limit: int = 10,
) -> Tuple[List[Order], int]:
    statement = select(Order)
    if customer_id is not None:
        statement = statement.where(Order.customer_id == customer_id)
    if status:
        statement = statement.where(Order.status == status)
    if date_from:
        statement = statement.where(Order.created_at >= date_from)
    if date_to:
        statement = statement.where(Order.created_at <= date_to)

    total = session.exec(select(func.count()).select_from(statement.subquery())).one()
    statement = statement.order_by(Order.created_at.desc(), Order.id.desc()).offset((page - 1) * limit).limit(limit)
    return list(session.exec(statement)), total


def admin_emails(session: Session) -> List[str]:
    statement = select(User.email).where(User.role == Role.ADMIN.value).where(User.is_active.is_(True))
    return list(session.exec(statement))
