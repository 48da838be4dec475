"""Thin httpx client for the card payment gateway (Stripe REST API)."""
from __future__ import annotations

import hashlib
import hmac
import logging
import time
from typing import Optional

import httpx

from .config import Settings
from .errors import UpstreamError, ValidationError

logger = logging.getLogger(__name__)

SIGNATURE_TOLERANCE = 300


class PaymentGateway:
    def __init__(
        self,
        base_url: str,
        secret_key: Optional[str],
        *,
        timeout: float = 10,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.secret_key = secret_key
        self._client = httpx.Client(
            base_url=base_url,
            auth=(secret_key or "", ""),
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "PaymentGateway":
        return cls(settings.payment_api_base, settings.payment_secret_key, timeout=settings.payment_timeout)

    def create_intent(self, amount: int, currency: str, metadata: dict) -> dict:
        data = {"amount": amount, "currency": currency}
        for key, value in metadata.items():
            data[f"metadata[{key}]"] = str(value)
        return self._request("POST", "/payment_intents", data=data)

    def retrieve_intent(self, intent_id: str) -> dict:
        return self._request("GET", f"/payment_intents/{intent_id}")

    def refund(self, intent_id: str, amount: Optional[int] = None) -> dict:
        data = {"payment_intent": intent_id, "reason": "requested_by_customer"}
        if amount is not None:
            data["amount"] = amount
        return self._request("POST", "/refunds", data=data)

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, data: Optional[dict] = None) -> dict:
        if not self.secret_key:
            raise UpstreamError("Payment gateway is not configured")
        try:
            response = self._client.request(method, path, data=data)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            message = _gateway_message(exc.response)
            logger.warning("Payment gateway rejected %s %s: %s", method, path, message)
            raise UpstreamError(f"Payment gateway error: {message}") from exc
        except httpx.HTTPError as exc:
            logger.warning("Payment gateway unreachable for %s %s: %s", method, path, exc)
            raise UpstreamError("Payment gateway unavailable") from exc
        return response.json()


def _gateway_message(response: httpx.Response) -> str:
    try:
        return response.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return f"HTTP {response.status_code}"


def verify_signature(payload: bytes, header: Optional[str], secret: str, now: Optional[float] = None) -> None:
    """Check a ``Stripe-Signature`` header (``t=<ts>,v1=<hex>``) against ``payload``."""
    if not header:
        raise ValidationError("Missing payment signature", code="INVALID_SIGNATURE")
    parts = {}
    signatures = []
    for item in header.split(","):
        key, _, value = item.strip().partition("=")
        if key == "v1":
            signatures.append(value)
        else:
            parts[key] = value
    timestamp = parts.get("t")
    if not timestamp or not timestamp.isdigit() or not signatures:
        raise ValidationError("Malformed payment signature", code="INVALID_SIGNATURE")

    signed = f"{timestamp}.".encode() + payload
    expected = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    if not any(hmac.compare_digest(expected, candidate) for candidate in signatures):
        raise ValidationError("Payment signature mismatch", code="INVALID_SIGNATURE")
    if abs((now or time.time()) - int(timestamp)) > SIGNATURE_TOLERANCE:
        raise ValidationError("Payment signature expired", code="INVALID_SIGNATURE")
