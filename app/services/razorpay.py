"""
Razorpay integration.

Handles:
- Webhook signature verification (HMAC-SHA256 over the raw request body)
- Extracting the payment reference from webhook events
- Payment link creation through the REST API

API docs: https://razorpay.com/docs/api/payments/payment-links/
"""

import hashlib
import hmac
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import httpx
import structlog

from app.core.config import Settings, get_settings
from app.core.errors import InvalidSignature, PaymentProviderError

logger = structlog.get_logger()

# Webhook events that mean money was captured
HANDLED_EVENTS = frozenset({"payment.captured", "order.paid", "payment_link.paid"})


def compute_signature(raw_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify_webhook_signature(
    raw_body: bytes, signature: Optional[str], secret: Optional[str] = None
) -> None:
    """
    Verify a webhook signature against the exact bytes received.

    Raises:
        InvalidSignature: missing secret, missing header or mismatch
    """
    secret = secret if secret is not None else get_settings().razorpay_webhook_secret
    if not secret:
        logger.error("razorpay.webhook.secret_missing")
        raise InvalidSignature("Webhook secret is not configured")
    if not signature:
        raise InvalidSignature("Missing webhook signature")

    received = signature.strip()
    if received.lower().startswith("sha256="):
        received = received[len("sha256="):]

    expected = compute_signature(raw_body, secret)
    if not hmac.compare_digest(expected.encode("utf-8"), received.lower().encode("utf-8")):
        raise InvalidSignature("Invalid webhook signature")


@dataclass
class PaymentReference:
    event: Optional[str]
    provider_payment_id: Optional[str]
    company_id: Optional[str]


def _entity(payload: dict, name: str) -> dict:
    section = payload.get(name)
    if not isinstance(section, dict):
        return {}
    entity = section.get("entity")
    return entity if isinstance(entity, dict) else {}


def extract_payment_reference(event: dict) -> PaymentReference:
    """Pull the payment id and our company id (from notes) out of a webhook event."""
    payload = event.get("payload")
    if not isinstance(payload, dict):
        payload = {}

    payment = _entity(payload, "payment")
    notes: dict = {}
    # payment_link notes are overridden by payment notes, then order notes
    for name in ("payment_link", "payment", "order"):
        entity_notes = _entity(payload, name).get("notes")
        if isinstance(entity_notes, dict):
            notes.update(entity_notes)

    company_id = notes.get("companyId") or notes.get("company_id")
    return PaymentReference(
        event=_string_or_none(event.get("event")),
        provider_payment_id=_string_or_none(payment.get("id")),
        company_id=_string_or_none(company_id),
    )


def _string_or_none(value) -> Optional[str]:
    return value if isinstance(value, str) and value else None


class RazorpayClient:
    """Minimal async client for the payment links API."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    async def create_payment_link(
        self,
        amount: Decimal,
        currency: str,
        reference_id: str,
        description: str,
        customer: dict,
        notes: dict,
    ) -> dict:
        if not self.settings.is_razorpay_configured:
            raise PaymentProviderError("Razorpay is not configured")

        body = {
            "amount": int((Decimal(amount) * 100).to_integral_value()),  # paise
            "currency": currency,
            "accept_partial": False,
            "reference_id": reference_id,
            "description": description,
            "customer": customer,
            "notify": {"sms": bool(customer.get("contact")), "email": bool(customer.get("email"))},
            "reminder_enable": True,
            "notes": notes,
        }

        async with httpx.AsyncClient(
            base_url=self.settings.razorpay_api_url,
            auth=(self.settings.razorpay_key_id, self.settings.razorpay_key_secret),
            timeout=30.0,
        ) as client:
            try:
                resp = await client.post("/payment_links", json=body)
            except httpx.HTTPError as exc:
                logger.error("razorpay.payment_link.request_failed", error=str(exc))
                raise PaymentProviderError(f"Razorpay request failed: {exc}") from exc

        if resp.status_code >= 400:
            logger.error(
                "razorpay.payment_link.error",
                status=resp.status_code,
                body=resp.text[:500],
            )
            raise PaymentProviderError(f"Razorpay API error: HTTP {resp.status_code}")

        data = resp.json()
        logger.info(
            "razorpay.payment_link.created",
            link_id=data.get("id"),
            reference_id=reference_id,
            mode=self.settings.razorpay_mode,
        )
        return data
