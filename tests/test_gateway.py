import hashlib
import hmac
from urllib.parse import parse_qs

import httpx
import pytest

from garden_grains.errors import UpstreamError, ValidationError
from garden_grains.gateway import PaymentGateway, verify_signature


def make_gateway(handler, secret_key="sk_test"):
    return PaymentGateway("https://gateway.test/v1", secret_key, transport=httpx.MockTransport(handler))


def test_create_intent_posts_form_encoded_metadata():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["auth"] = request.headers["Authorization"]
        seen["form"] = parse_qs(request.content.decode())
        return httpx.Response(200, json={"id": "pi_123", "client_secret": "secret", "status": "requires_payment_method"})

    gateway = make_gateway(handler)
    intent = gateway.create_intent(66080, "inr", {"orderId": 7})

    assert intent["id"] == "pi_123"
    assert seen["path"] == "/v1/payment_intents"
    assert seen["auth"].startswith("Basic ")
    assert seen["form"] == {"amount": ["66080"], "currency": ["inr"], "metadata[orderId]": ["7"]}


def test_refund_sends_optional_amount():
    forms = []

    def handler(request):
        forms.append(parse_qs(request.content.decode()))
        return httpx.Response(200, json={"id": "re_1", "amount": 10000, "status": "succeeded"})

    gateway = make_gateway(handler)
    gateway.refund("pi_123")
    gateway.refund("pi_123", 10000)

    assert "amount" not in forms[0]
    assert forms[1]["amount"] == ["10000"]
    assert forms[1]["payment_intent"] == ["pi_123"]


def test_gateway_error_message_is_surfaced():
    def handler(request):
        return httpx.Response(402, json={"error": {"message": "Your card was declined."}})

    with pytest.raises(UpstreamError) as excinfo:
        make_gateway(handler).retrieve_intent("pi_123")
    assert "card was declined" in excinfo.value.message
    assert excinfo.value.status_code == 502


def test_network_failure_is_upstream_error():
    def handler(request):
        raise httpx.ConnectError("connection refused")

    with pytest.raises(UpstreamError):
        make_gateway(handler).retrieve_intent("pi_123")


def test_unconfigured_gateway_refuses_calls():
    def handler(request):
        raise AssertionError("no request expected")

    with pytest.raises(UpstreamError):
        make_gateway(handler, secret_key=None).create_intent(100, "inr", {})


def signature(payload, secret, timestamp):
    digest = hmac.new(secret.encode(), f"{timestamp}.".encode() + payload, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def test_valid_signature():
    payload = b'{"type": "payment_intent.succeeded"}'
    verify_signature(payload, signature(payload, "whsec", 1_000_000), "whsec", now=1_000_100)


@pytest.mark.parametrize(
    "header",
    [None, "", "v1=abc", "t=abc,v1=abc", "t=1000000"],
)
def test_malformed_signature(header):
    with pytest.raises(ValidationError) as excinfo:
        verify_signature(b"{}", header, "whsec", now=1_000_000)
    assert excinfo.value.code == "INVALID_SIGNATURE"


def test_tampered_payload():
    header = signature(b'{"amount": 1}', "whsec", 1_000_000)
    with pytest.raises(ValidationError):
        verify_signature(b'{"amount": 9}', header, "whsec", now=1_000_000)


def test_stale_signature():
    payload = b"{}"
    with pytest.raises(ValidationError):
        verify_signature(payload, signature(payload, "whsec", 1_000_000), "whsec", now=1_000_301)
