from __future__ import annotations

import logging
from decimal import ROUND_FLOOR, Decimal

from sqlalchemy import update
from sqlmodel import Session, select

from .models import Order, User

logger = logging.getLogger(__name__)


def points_for(amount, divisor: int = 10) -> int:
    """One point per ``divisor`` currency units, rounded down."""
    points = (Decimal(str(amount)) / divisor).to_integral_value(rounding=ROUND_FLOOR)
    return max(int(points), 0)


def credit(session: Session, user: User, amount, divisor: int = 10) -> int:
    """Add the points earned on ``amount`` to ``user`` and return the new balance."""
    points = points_for(amount, divisor)
    if points:
        session.connection().execute(
            update(User).where(User.id == user.id).values(loyalty_points=User.loyalty_points + points)
        )
        session.refresh(user, attribute_names=["loyalty_points"])
        logger.info("Credited %s loyalty points to user %s", points, user.id)
    return user.loyalty_points


def history(session: Session, user: User, divisor: int = 10, limit: int = 10) -> dict:
    statement = (
        select(Order)
        .where(Order.customer_id == user.id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(limit)
    )
    return {
        "current_points": user.loyalty_points,
        "recent_orders": [
            {
                "order_number": order.order_number,
                "points_earned": points_for(order.total, divisor),
                "date": order.created_at,
            }
            for order in session.exec(statement)
        ],
    }
