import smtplib

import httpx
import pytest

from garden_grains import notifier as notifier_module
from garden_grains.config import Settings
from garden_grains.notifier import Notifier, OrderNotice

NOTICE = OrderNotice(
    order_number="GG000001",
    order_type="dine-in",
    status="ready",
    status_display="Ready for Pickup",
    total=660.8,
    estimated_time=30,
    customer_name="Asha <b>",
    customer_email="asha@example.com",
    items=[{"name": "Quinoa Bowl", "quantity": 2, "price": 280.0}],
)


class FakeSMTP:
    sent = []

    def __init__(self, host, port, timeout=None):
        self.host = host

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        pass

    def login(self, username, password):
        pass

    def send_message(self, message):
        FakeSMTP.sent.append(message)


@pytest.fixture
def fake_smtp(monkeypatch):
    FakeSMTP.sent = []
    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
    return FakeSMTP


def test_email_skipped_without_smtp(fake_smtp):
    Notifier(Settings(smtp_host=None)).notify_order_placed(NOTICE)
    assert fake_smtp.sent == []


def test_order_confirmation_email(fake_smtp):
    Notifier(Settings(smtp_host="mail.test")).notify_order_placed(NOTICE)

    [message] = fake_smtp.sent
    assert message["To"] == "asha@example.com"
    assert message["Subject"] == "Order Confirmation - GG000001"
    html = message.get_body(preferencelist=("html",)).get_content()
    assert "2x Quinoa Bowl" in html
    assert "Asha &lt;b&gt;" in html


def test_status_email_uses_friendly_message(fake_smtp):
    Notifier(Settings(smtp_host="mail.test")).notify_status_changed(NOTICE)

    html = fake_smtp.sent[0].get_body(preferencelist=("html",)).get_content()
    assert "Ready for Pickup" in html
    assert "ready for pickup!" in html


def test_email_failure_is_swallowed(monkeypatch, caplog):
    def refuse(*args, **kwargs):
        raise smtplib.SMTPConnectError(421, "busy")

    monkeypatch.setattr(smtplib, "SMTP", refuse)

    Notifier(Settings(smtp_host="mail.test")).notify_order_placed(NOTICE)

    assert "Order confirmation email failed" in caplog.text


def test_staff_message_pushes_to_each_line_target(monkeypatch, fake_smtp):
    posts = []

    def fake_post(url, headers, json, timeout):
        posts.append((url, json))
        return httpx.Response(200, request=httpx.Request("POST", url))

    monkeypatch.setattr(notifier_module.httpx, "post", fake_post)
    settings = Settings(smtp_host=None, line_channel_access_token="token", line_target_ids="U1,U2")

    Notifier(settings).notify_staff_new_order(NOTICE, ["admin@example.com"])

    assert [post[0] for post in posts] == [notifier_module.LINE_PUSH_URL] * 2
    assert posts[0][1]["to"] == "U1"
    assert "GG000001" in posts[0][1]["messages"][0]["text"]


def test_staff_message_broadcasts_without_targets(monkeypatch):
    posts = []

    def fake_post(url, headers, json, timeout):
        posts.append(url)
        return httpx.Response(200, request=httpx.Request("POST", url))

    monkeypatch.setattr(notifier_module.httpx, "post", fake_post)

    Notifier(Settings(smtp_host=None, line_channel_access_token="token")).send_staff_message("hi")

    assert posts == [notifier_module.LINE_BROADCAST_URL]


def test_line_failure_is_swallowed(monkeypatch, caplog):
    def fake_post(url, headers, json, timeout):
        return httpx.Response(500, request=httpx.Request("POST", url))

    monkeypatch.setattr(notifier_module.httpx, "post", fake_post)

    Notifier(Settings(smtp_host=None, line_channel_access_token="token")).notify_staff_new_order(NOTICE, [])

    assert "Failed to send LINE message" in caplog.text
