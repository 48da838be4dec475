from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import or_, update
from sqlmodel import Session, select

from .errors import ConflictError, ValidationError
from .models import Discount, DiscountType, as_utc, utcnow
from .pricing import to_money

logger = logging.getLogger(__name__)


@dataclass
class DiscountQuote:
    code: str
    description: str
    discount_type: str
    discount_amount: Decimal


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def evaluate(discount: Optional[Discount], order_total, now: datetime) -> DiscountQuote:
    now = as_utc(now)
    if (
        discount is None
        or not discount.is_active
        or as_utc(discount.valid_from) > now
        or as_utc(discount.valid_until) < now
    ):
        raise ValidationError("Invalid or expired discount code", code="EXPIRED_OR_INVALID")

    if discount.usage_limit is not None and discount.used_count >= discount.usage_limit:
        raise ValidationError("Discount code has reached its usage limit", code="USAGE_LIMIT_REACHED")

    order_total = Decimal(str(order_total))
    minimum = Decimal(str(discount.min_order_amount or 0))
    if order_total < minimum:
        raise ValidationError(
            f"Minimum order amount of {minimum:.2f} required for this discount",
            code="BELOW_MINIMUM",
        )

    value = Decimal(str(discount.discount_value))
    if discount.discount_type == DiscountType.PERCENTAGE.value:
        amount = order_total * value / 100
        if discount.max_discount_amount is not None:
            amount = min(amount, Decimal(str(discount.max_discount_amount)))
    else:
        amount = value

    return DiscountQuote(
        code=discount.code,
        description=discount.description,
        discount_type=discount.discount_type,
        discount_amount=to_money(amount),
    )


def get_discount(session: Session, code: str) -> Optional[Discount]:
    statement = select(Discount).where(Discount.code == normalize_code(code))
    return session.exec(statement).first()


def validate(session: Session, code: str, order_total, now: Optional[datetime] = None) -> DiscountQuote:
    return evaluate(get_discount(session, code), order_total, now or utcnow())


def redeem(session: Session, discount: Discount) -> None:
    """Count one use of ``discount`` inside the caller's transaction."""
    statement = (
        update(Discount)
        .where(Discount.id == discount.id)
        .where(or_(Discount.usage_limit.is_(None), Discount.used_count < Discount.usage_limit))
        .values(used_count=Discount.used_count + 1)
    )
    result = session.connection().execute(statement)
    if result.rowcount != 1:
        raise ValidationError("Discount code has reached its usage limit", code="USAGE_LIMIT_REACHED")
    logger.info("Redeemed discount %s", discount.code)


def list_usable(session: Session, now: Optional[datetime] = None) -> List[Discount]:
    now = as_utc(now or utcnow())
    statement = (
        select(Discount)
        .where(Discount.is_active.is_(True))
        .where(Discount.valid_from <= now)
        .where(Discount.valid_until >= now)
        .where(or_(Discount.usage_limit.is_(None), Discount.used_count < Discount.usage_limit))
        .order_by(Discount.valid_until.asc())
    )
    return list(session.exec(statement))


def create_discount(session: Session, data: dict) -> Discount:
    data["code"] = normalize_code(data["code"])
    if get_discount(session, data["code"]):
        raise ConflictError("Discount code already exists", code="DUPLICATE_CODE")
    data["valid_from"] = as_utc(data["valid_from"])
    data["valid_until"] = as_utc(data["valid_until"])
    if data["valid_until"] < data["valid_from"]:
        raise ValidationError("validUntil must not be before validFrom")
    discount = Discount(**data)
    session.add(discount)
    session.commit()
    session.refresh(discount)
    return discount
