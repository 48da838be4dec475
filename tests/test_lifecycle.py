import pytest

from garden_grains import lifecycle
from garden_grains.errors import InvalidTransitionError
from garden_grains.models import OrderStatus, PaymentStatus, ReservationStatus

FORWARD = [
    ("pending", "confirmed"),
    ("confirmed", "preparing"),
    ("preparing", "ready"),
    ("ready", "served"),
    ("pending", "preparing"),
]


@pytest.mark.parametrize("current,target", FORWARD)
def test_forward_moves_are_allowed(current, target):
    lifecycle.check_order_transition(current, target)


@pytest.mark.parametrize("current", ["pending", "confirmed", "preparing", "ready"])
def test_cancel_from_any_open_state(current):
    lifecycle.check_order_transition(current, OrderStatus.CANCELLED)


@pytest.mark.parametrize(
    "current,target",
    [
        ("served", "pending"),
        ("ready", "preparing"),
        ("served", "cancelled"),
        ("cancelled", "pending"),
        ("cancelled", "confirmed"),
    ],
)
def test_backward_and_terminal_moves_are_rejected(current, target):
    with pytest.raises(InvalidTransitionError) as excinfo:
        lifecycle.check_order_transition(current, target)
    assert excinfo.value.code == "INVALID_TRANSITION"
    assert excinfo.value.status_code == 400


def test_terminal_states():
    assert lifecycle.is_terminal(lifecycle.ORDER_TRANSITIONS, OrderStatus.SERVED)
    assert lifecycle.is_terminal(lifecycle.ORDER_TRANSITIONS, OrderStatus.CANCELLED)
    assert not lifecycle.is_terminal(lifecycle.ORDER_TRANSITIONS, OrderStatus.READY)


def test_payment_graph():
    lifecycle.check_payment_transition(PaymentStatus.PENDING, PaymentStatus.PAID)
    lifecycle.check_payment_transition(PaymentStatus.PENDING, PaymentStatus.FAILED)
    lifecycle.check_payment_transition(PaymentStatus.PAID, PaymentStatus.REFUNDED)
    for current, target in [("pending", "refunded"), ("refunded", "paid"), ("paid", "pending")]:
        with pytest.raises(InvalidTransitionError):
            lifecycle.check_payment_transition(current, target)


def test_reservation_graph():
    lifecycle.check_reservation_transition(ReservationStatus.PENDING, ReservationStatus.CONFIRMED)
    lifecycle.check_reservation_transition(ReservationStatus.CONFIRMED, ReservationStatus.SEATED)
    lifecycle.check_reservation_transition(ReservationStatus.SEATED, ReservationStatus.COMPLETED)
    lifecycle.check_reservation_transition(ReservationStatus.CONFIRMED, ReservationStatus.NO_SHOW)
    with pytest.raises(InvalidTransitionError):
        lifecycle.check_reservation_transition(ReservationStatus.COMPLETED, ReservationStatus.CANCELLED)
    with pytest.raises(InvalidTransitionError):
        lifecycle.check_reservation_transition(ReservationStatus.SEATED, ReservationStatus.CANCELLED)


def test_status_display():
    assert lifecycle.status_display("ready") == "Ready for Pickup"
    assert lifecycle.status_display(OrderStatus.SERVED) == "Order Served"
