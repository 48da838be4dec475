import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SEED_MENU"] = "false"
os.environ["SMTP_HOST"] = ""
os.environ["LINE_CHANNEL_ACCESS_TOKEN"] = ""

from datetime import timedelta  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import Session, SQLModel  # noqa: E402

from garden_grains.database import engine  # noqa: E402
from garden_grains.errors import UpstreamError  # noqa: E402
from garden_grains.main import app, get_notifier, get_payment_gateway  # noqa: E402
from garden_grains.models import Discount, MenuItem, User, utcnow  # noqa: E402


class FakeGateway:
    """In-memory stand-in for the card gateway."""

    def __init__(self):
        self.intents = {}
        self.refunds = []
        self.fail = False

    def create_intent(self, amount, currency, metadata):
        if self.fail:
            raise UpstreamError("Payment gateway unavailable")
        intent_id = f"pi_{len(self.intents) + 1}"
        self.intents[intent_id] = {
            "id": intent_id,
            "client_secret": f"{intent_id}_secret",
            "amount": amount,
            "currency": currency,
            "status": "requires_payment_method",
            "metadata": {key: str(value) for key, value in metadata.items()},
        }
        return self.intents[intent_id]

    def retrieve_intent(self, intent_id):
        if self.fail:
            raise UpstreamError("Payment gateway unavailable")
        return self.intents[intent_id]

    def refund(self, intent_id, amount=None):
        if self.fail:
            raise UpstreamError("Payment gateway unavailable")
        refund = {
            "id": f"re_{len(self.refunds) + 1}",
            "amount": amount if amount is not None else self.intents[intent_id]["amount"],
            "status": "succeeded",
        }
        self.refunds.append(refund)
        return refund

    def succeed(self, intent_id):
        self.intents[intent_id]["status"] = "succeeded"

    def close(self):
        pass


class RecordingNotifier:
    def __init__(self):
        self.calls = []

    def notify_order_placed(self, notice):
        self.calls.append(("order_placed", notice))

    def notify_staff_new_order(self, notice, admin_emails):
        self.calls.append(("staff_new_order", notice, admin_emails))

    def notify_status_changed(self, notice):
        self.calls.append(("status_changed", notice))

    def notify_reservation_created(self, notice):
        self.calls.append(("reservation_created", notice))

    def kinds(self):
        return [call[0] for call in self.calls]


@pytest.fixture(autouse=True)
def reset_database():
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    yield


@pytest.fixture
def session():
    with Session(engine) as session:
        yield session


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(gateway, notifier):
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _add(session, obj):
    session.add(obj)
    session.commit()
    session.refresh(obj)
    return obj


@pytest.fixture
def customer(session):
    return _add(session, User(name="Asha", email="asha@example.com"))


@pytest.fixture
def other_customer(session):
    return _add(session, User(name="Ravi", email="ravi@example.com"))


@pytest.fixture
def admin(session):
    return _add(session, User(name="Admin", email="admin@example.com", role="admin"))


@pytest.fixture
def bowl(session):
    return _add(
        session,
        MenuItem(
            name="Quinoa Bowl",
            price=280,
            category="main-course",
            customization_options=[
                {
                    "name": "Protein",
                    "type": "single",
                    "choices": [{"name": "Tofu", "price": 40}, {"name": "Paneer", "price": 60}],
                },
                {
                    "name": "Extras",
                    "type": "multiple",
                    "choices": [{"name": "Avocado", "price": 50}, {"name": "Seeds", "price": 20}],
                },
            ],
        ),
    )


@pytest.fixture
def sold_out(session):
    return _add(session, MenuItem(name="Ragi Brownie", price=160, category="desserts", is_available=False))


@pytest.fixture
def make_discount(session):
    def factory(**overrides):
        now = utcnow()
        data = {
            "code": "SAVE50",
            "description": "Flat 50 off",
            "discount_type": "fixed",
            "discount_value": 50,
            "min_order_amount": 500,
            "valid_from": now - timedelta(days=1),
            "valid_until": now + timedelta(days=30),
        }
        data.update(overrides)
        return _add(session, Discount(**data))

    return factory


def auth(user):
    return {"X-User-Id": str(user.id)}
