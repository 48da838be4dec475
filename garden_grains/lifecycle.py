from __future__ import annotations

from typing import Dict, FrozenSet

from .errors import InvalidTransitionError
from .models import OrderStatus, PaymentStatus, ReservationStatus

_KITCHEN_PATH = [
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.SERVED,
]


def _forward_graph() -> Dict[str, FrozenSet[str]]:
    graph = {}
    for index, status in enumerate(_KITCHEN_PATH):
        targets = {later.value for later in _KITCHEN_PATH[index + 1:]}
        if status is not OrderStatus.SERVED:
            targets.add(OrderStatus.CANCELLED.value)
        graph[status.value] = frozenset(targets)
    graph[OrderStatus.CANCELLED.value] = frozenset()
    return graph


# forward skips are allowed, e.g. a walk-in order can go straight to preparing
ORDER_TRANSITIONS = _forward_graph()

PAYMENT_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    PaymentStatus.PENDING.value: frozenset({PaymentStatus.PAID.value, PaymentStatus.FAILED.value}),
    PaymentStatus.PAID.value: frozenset({PaymentStatus.REFUNDED.value}),
    PaymentStatus.FAILED.value: frozenset(),
    PaymentStatus.REFUNDED.value: frozenset(),
}

RESERVATION_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    ReservationStatus.PENDING.value: frozenset({
        ReservationStatus.CONFIRMED.value,
        ReservationStatus.CANCELLED.value,
        ReservationStatus.NO_SHOW.value,
    }),
    ReservationStatus.CONFIRMED.value: frozenset({
        ReservationStatus.SEATED.value,
        ReservationStatus.CANCELLED.value,
        ReservationStatus.NO_SHOW.value,
    }),
    ReservationStatus.SEATED.value: frozenset({ReservationStatus.COMPLETED.value}),
    ReservationStatus.COMPLETED.value: frozenset(),
    ReservationStatus.CANCELLED.value: frozenset(),
    ReservationStatus.NO_SHOW.value: frozenset(),
}

STATUS_DISPLAY = {
    OrderStatus.PENDING.value: "Order Placed",
    OrderStatus.CONFIRMED.value: "Order Confirmed",
    OrderStatus.PREPARING.value: "Being Prepared",
    OrderStatus.READY.value: "Ready for Pickup",
    OrderStatus.SERVED.value: "Order Served",
    OrderStatus.CANCELLED.value: "Order Cancelled",
}


def _value(status) -> str:
    return status.value if hasattr(status, "value") else str(status)


def is_terminal(graph: Dict[str, FrozenSet[str]], status) -> bool:
    return not graph[_value(status)]


def can_transition(graph: Dict[str, FrozenSet[str]], current, target) -> bool:
    return _value(target) in graph.get(_value(current), frozenset())


def ensure_transition(graph: Dict[str, FrozenSet[str]], kind: str, current, target) -> None:
    if not can_transition(graph, current, target):
        raise InvalidTransitionError(kind, _value(current), _value(target))


def check_order_transition(current, target) -> None:
    ensure_transition(ORDER_TRANSITIONS, "order", current, target)


def check_payment_transition(current, target) -> None:
    ensure_transition(PAYMENT_TRANSITIONS, "payment", current, target)


def check_reservation_transition(current, target) -> None:
    ensure_transition(RESERVATION_TRANSITIONS, "reservation", current, target)


def status_display(status) -> str:
    return STATUS_DISPLAY.get(_value(status), _value(status))
