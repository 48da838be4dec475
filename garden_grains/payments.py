from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from sqlmodel import Session

from . import lifecycle
from .errors import ConflictError, NotFoundError, ValidationError
from .gateway import PaymentGateway
from .models import Order, PaymentMethod, PaymentStatus, User, utcnow
from .ordering import get_order, get_order_for
from .pricing import to_money

logger = logging.getLogger(__name__)

SUCCEEDED = "succeeded"


def to_minor_units(amount) -> int:
    return int(to_money(amount) * 100)


def create_payment_intent(session: Session, gateway: PaymentGateway, order_id: int, user: User, currency: str) -> dict:
    order = get_order_for(session, order_id, user, allow_admin=False)
    if order.payment_status != PaymentStatus.PENDING.value:
        raise ConflictError("Order not found or already paid", code="ALREADY_PAID_OR_MISSING")

    intent = gateway.create_intent(
        to_minor_units(order.total),
        currency,
        {"orderId": order.id, "orderNumber": order.order_number, "customerId": user.id},
    )
    logger.info("Created payment intent %s for order %s", intent.get("id"), order.order_number)
    return {
        "client_secret": intent.get("client_secret"),
        "payment_intent_id": intent["id"],
        "amount": order.total,
    }


def mark_paid(session: Session, order: Order, payment_intent_id: str) -> Order:
    lifecycle.check_payment_transition(order.payment_status, PaymentStatus.PAID.value)
    order.payment_status = PaymentStatus.PAID.value
    order.payment_method = PaymentMethod.CARD.value
    order.payment_id = payment_intent_id
    order.updated_at = utcnow()
    session.add(order)
    session.commit()
    session.refresh(order)
    logger.info("Order %s paid with %s", order.order_number, payment_intent_id)
    return order


def mark_failed(session: Session, order: Order, payment_intent_id: str) -> Order:
    lifecycle.check_payment_transition(order.payment_status, PaymentStatus.FAILED.value)
    order.payment_status = PaymentStatus.FAILED.value
    order.payment_id = payment_intent_id
    order.updated_at = utcnow()
    session.add(order)
    session.commit()
    session.refresh(order)
    logger.warning("Payment %s failed for order %s", payment_intent_id, order.order_number)
    return order


def confirm_payment(
    session: Session,
    gateway: PaymentGateway,
    order_id: int,
    payment_intent_id: str,
    user: User,
) -> Order:
    order = get_order_for(session, order_id, user, allow_admin=False)
    if order.payment_status != PaymentStatus.PENDING.value:
        raise ConflictError("Order not found or already paid", code="ALREADY_PAID_OR_MISSING")

    intent = gateway.retrieve_intent(payment_intent_id)
    if intent.get("status") != SUCCEEDED:
        raise ConflictError("Payment not successful", code="PAYMENT_NOT_SUCCESSFUL")
    metadata_order = (intent.get("metadata") or {}).get("orderId")
    if metadata_order is not None and str(metadata_order) != str(order.id):
        raise ValidationError("Payment intent belongs to another order", code="PAYMENT_ORDER_MISMATCH")
    return mark_paid(session, order, payment_intent_id)


def refund_payment(
    session: Session,
    gateway: PaymentGateway,
    order_id: int,
    user: User,
    amount: Optional[float] = None,
) -> dict:
    order = get_order_for(session, order_id, user, allow_admin=False)
    if order.payment_status != PaymentStatus.PAID.value:
        raise ConflictError("Order not found or not paid", code="NOT_PAID")
    if not order.payment_id:
        raise ConflictError("No payment ID found for this order", code="NOT_PAID")
    if amount is not None and Decimal(str(amount)) > Decimal(str(order.total)):
        raise ValidationError("Refund amount exceeds the order total")

    refund = gateway.refund(order.payment_id, to_minor_units(amount) if amount is not None else None)

    lifecycle.check_payment_transition(order.payment_status, PaymentStatus.REFUNDED.value)
    order.payment_status = PaymentStatus.REFUNDED.value
    order.updated_at = utcnow()
    session.add(order)
    session.commit()
    logger.info("Refunded order %s (%s)", order.order_number, refund.get("id"))
    return {
        "id": refund["id"],
        "amount": (refund.get("amount") or 0) / 100,
        "status": refund.get("status", "pending"),
    }


def _object_field(container: dict, key: str) -> dict:
    value = container.get(key) or {}
    if not isinstance(value, dict):
        raise ValidationError(f"Webhook event field '{key}' must be an object", code="INVALID_EVENT")
    return value


def apply_gateway_event(session: Session, event) -> Optional[Order]:
    if not isinstance(event, dict):
        raise ValidationError("Webhook event must be a JSON object", code="INVALID_EVENT")
    event_type = event.get("type")
    intent = _object_field(_object_field(event, "data"), "object")
    order_id = _object_field(intent, "metadata").get("orderId")
    if event_type not in ("payment_intent.succeeded", "payment_intent.payment_failed") or not order_id:
        logger.debug("Ignoring gateway event %s", event_type)
        return None

    try:
        order = get_order(session, int(order_id))
    except (TypeError, ValueError, NotFoundError):
        logger.warning("Gateway event %s names unknown order %r", event.get("id"), order_id)
        return None
    if order.payment_status != PaymentStatus.PENDING.value:
        logger.info("Order %s already %s; ignoring %s", order.order_number, order.payment_status, event_type)
        return order

    if event_type == "payment_intent.succeeded":
        return mark_paid(session, order, intent.get("id"))
    return mark_failed(session, order, intent.get("id"))
