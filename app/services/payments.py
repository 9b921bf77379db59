"""
Payments and the payment webhook pipeline.

Every inbound notification is verified against the exact raw request bytes
before anything is parsed. After that the pipeline never fails the request:
unknown events, malformed payloads and unmatched payments are acknowledged
and logged so the provider stops retrying.

Marking a payment paid is a conditional UPDATE (status = CREATED); of two
concurrent deliveries only one sees a row updated, the other reports
"already processed". A FAILED payment is never marked paid. Stage advance
and invoice generation run after the payment commit and their failures are
logged, not raised; ``generate_invoice_for_payment`` can be replayed by an
admin for a PAID payment that ended up without an invoice.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import orjson
import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.errors import NotFound, PaymentStateError
from app.models import Company, OnboardingStage, Payment, PaymentStatus
from app.models.schema import utcnow
from app.services import notifications, onboarding
from app.services.audit import record_audit
from app.services.invoices import generate_invoice_for_payment
from app.services.razorpay import (
    HANDLED_EVENTS,
    RazorpayClient,
    extract_payment_reference,
    verify_webhook_signature,
)

logger = structlog.get_logger()


@dataclass
class WebhookResult:
    status: str  # processed, already_processed, ignored
    message: str
    payment_id: Optional[UUID] = None
    invoice_id: Optional[UUID] = None


def _ignored(message: str, **log_fields) -> WebhookResult:
    logger.info("webhook.payment.ignored", reason=message, **log_fields)
    return WebhookResult(status="ignored", message=message)


def _as_uuid(value) -> Optional[UUID]:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None


# =============================================================================
# PAYMENT LINKS
# =============================================================================


async def create_payment_for_company(
    session: AsyncSession,
    company_id: UUID,
    amount: Decimal,
    description: Optional[str] = None,
    actor_id: Optional[str] = None,
    client: Optional[RazorpayClient] = None,
    mailer=None,
) -> Payment:
    """Create a Razorpay payment link and move the company to PAYMENT_PENDING."""
    if Decimal(amount) <= 0:
        raise PaymentStateError("Amount must be positive")

    company = await onboarding.assert_not_active(session, company_id)
    await onboarding.assert_stage(
        session,
        company_id,
        {OnboardingStage.ADMIN_CREATED, OnboardingStage.PAYMENT_PENDING},
        "A payment can only be requested before payment is confirmed",
    )
    open_payment = await session.scalar(
        select(Payment).where(
            Payment.company_id == company_id, Payment.status == PaymentStatus.CREATED
        )
    )
    if open_payment is not None:
        raise PaymentStateError("An unpaid payment link already exists; resend it instead")

    settings = get_settings()
    payment = Payment(
        id=uuid4(),
        company_id=company_id,
        amount=Decimal(amount),
        currency="INR",
        status=PaymentStatus.CREATED,
        provider="razorpay",
    )
    link = await (client or RazorpayClient()).create_payment_link(
        amount=payment.amount,
        currency=payment.currency,
        reference_id=str(payment.id),
        description=description or f"Onboarding fee - {company.name}",
        customer={
            "name": company.contact_name or company.name,
            "email": company.contact_email,
            "contact": company.phone,
        },
        notes={
            "companyId": str(company_id),
            "companyName": company.name,
            "mode": settings.razorpay_mode,
        },
    )
    payment.provider_link_id = link.get("id")
    payment.payment_link = link.get("short_url")
    session.add(payment)

    await onboarding.on_payment_requested(session, company_id)
    record_audit(
        session,
        "PAYMENT_CREATED",
        "Payment",
        entity_id=payment.id,
        company_id=company_id,
        actor_id=actor_id,
        changes={"amount": str(payment.amount), "link_id": payment.provider_link_id},
    )
    await session.commit()
    logger.info(
        "payments.created",
        payment_id=str(payment.id),
        company_id=str(company_id),
        amount=str(payment.amount),
    )

    await notifications.send_payment_link(company, payment, mailer)
    return payment


async def resend_payment_link(session: AsyncSession, payment_id: UUID, mailer=None) -> Payment:
    payment = await get_payment(session, payment_id)
    if payment.status != PaymentStatus.CREATED or not payment.payment_link:
        raise PaymentStateError("Only unpaid payments with a link can be resent")
    company = await onboarding.get_company(session, payment.company_id)
    await notifications.send_payment_link(company, payment, mailer)
    return payment


async def get_payment(session: AsyncSession, payment_id: UUID) -> Payment:
    payment = await session.get(Payment, payment_id)
    if payment is None:
        raise NotFound(f"Payment {payment_id} not found")
    return payment


async def list_payments(session: AsyncSession, company_id: Optional[UUID] = None) -> list[Payment]:
    query = select(Payment).order_by(Payment.created_at.desc())
    if company_id:
        query = query.where(Payment.company_id == company_id)
    result = await session.execute(query)
    return list(result.scalars().all())


# =============================================================================
# CONFIRMATION
# =============================================================================


async def _resolve_payment(
    session: AsyncSession,
    provider_payment_id: Optional[str],
    company_id: Optional[UUID],
) -> Optional[Payment]:
    if provider_payment_id:
        payment = await session.scalar(
            select(Payment).where(Payment.provider_payment_id == provider_payment_id)
        )
        if payment is not None:
            return payment
    if company_id:
        # provider id not stored yet: oldest open payment for the company
        return await session.scalar(
            select(Payment)
            .where(Payment.company_id == company_id, Payment.status == PaymentStatus.CREATED)
            .order_by(Payment.created_at.asc())
            .limit(1)
        )
    return None


async def _mark_paid(
    session: AsyncSession,
    payment: Payment,
    provider_payment_id: Optional[str],
    source: str,
    actor_id: Optional[str] = None,
) -> bool:
    """Atomically flip a CREATED payment to PAID. Returns False if it is no longer CREATED."""
    now = utcnow()
    values = {"status": PaymentStatus.PAID, "paid_at": now, "updated_at": now}
    if provider_payment_id:
        values["provider_payment_id"] = provider_payment_id

    result = await session.execute(
        update(Payment)
        .where(Payment.id == payment.id, Payment.status == PaymentStatus.CREATED)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await session.rollback()
        return False

    record_audit(
        session,
        "PAYMENT_MARKED_PAID",
        "Payment",
        entity_id=payment.id,
        company_id=payment.company_id,
        actor_id=actor_id,
        changes={"source": source, "provider_payment_id": provider_payment_id},
    )
    await session.commit()
    await session.refresh(payment)
    return True


async def _after_payment_confirmed(
    session: AsyncSession,
    payment_id: UUID,
    company_id: UUID,
    storage=None,
    mailer=None,
    renderer=None,
) -> Optional[UUID]:
    """Stage advance and invoice. Each step is isolated; failures are logged."""
    try:
        company = await onboarding.on_payment_confirmed(session, company_id)
        await session.commit()
    except Exception as exc:
        await session.rollback()
        logger.error(
            "webhook.payment.stage_advance_failed",
            payment_id=str(payment_id),
            company_id=str(company_id),
            error=str(exc),
        )
    else:
        payment = await get_payment(session, payment_id)
        await notifications.send_payment_confirmed(company, payment, mailer)

    try:
        invoice = await generate_invoice_for_payment(
            session, payment_id, storage=storage, mailer=mailer, renderer=renderer
        )
    except Exception as exc:
        await session.rollback()
        logger.error(
            "webhook.payment.invoice_failed",
            payment_id=str(payment_id),
            error=str(exc),
        )
        return None
    return invoice.id


async def _confirm_payment(
    session: AsyncSession,
    payment: Payment,
    provider_payment_id: Optional[str],
    source: str,
    actor_id: Optional[str] = None,
    storage=None,
    mailer=None,
    renderer=None,
) -> WebhookResult:
    payment_id, company_id = payment.id, payment.company_id
    if payment.status == PaymentStatus.PAID:
        logger.info("webhook.payment.already_processed", payment_id=str(payment_id))
        return WebhookResult("already_processed", "Already processed", payment_id)
    if payment.status != PaymentStatus.CREATED:
        return _ignored(
            f"Payment is {payment.status.value}", payment_id=str(payment_id), source=source
        )

    if not await _mark_paid(session, payment, provider_payment_id, source, actor_id):
        logger.info("webhook.payment.lost_race", payment_id=str(payment_id))
        return WebhookResult("already_processed", "Already processed", payment_id)

    logger.info(
        "webhook.payment.marked_paid",
        payment_id=str(payment_id),
        company_id=str(company_id),
        provider_payment_id=provider_payment_id,
        source=source,
    )
    invoice_id = await _after_payment_confirmed(
        session, payment_id, company_id, storage=storage, mailer=mailer, renderer=renderer
    )
    return WebhookResult("processed", "Payment confirmed", payment_id, invoice_id)


async def process_razorpay_webhook(
    session: AsyncSession,
    raw_body: bytes,
    signature: Optional[str],
    storage=None,
    mailer=None,
    renderer=None,
) -> WebhookResult:
    """Entry point for Razorpay webhooks. Raises only InvalidSignature."""
    verify_webhook_signature(raw_body, signature)

    try:
        event = orjson.loads(raw_body)
    except orjson.JSONDecodeError:
        return _ignored("Malformed payload")
    if not isinstance(event, dict):
        return _ignored("Malformed payload")

    ref = extract_payment_reference(event)
    if ref.event not in HANDLED_EVENTS:
        return _ignored(f"Event {ref.event} not handled", webhook_event=ref.event)
    if not ref.provider_payment_id and not ref.company_id:
        return _ignored("No payment reference", webhook_event=ref.event)

    payment = await _resolve_payment(session, ref.provider_payment_id, _as_uuid(ref.company_id))
    if payment is None:
        return _ignored(
            "Payment not found",
            webhook_event=ref.event,
            provider_payment_id=ref.provider_payment_id,
            company_id=ref.company_id,
        )

    return await _confirm_payment(
        session,
        payment,
        ref.provider_payment_id,
        source=f"razorpay:{ref.event}",
        storage=storage,
        mailer=mailer,
        renderer=renderer,
    )


async def process_payment_notification(
    session: AsyncSession,
    raw_body: bytes,
    signature: Optional[str],
    storage=None,
    mailer=None,
    renderer=None,
) -> WebhookResult:
    """Internal JSON notification: {"companyId", "paymentId"?, "providerPaymentId"?}.

    Same verification over raw bytes and same downstream steps as the
    Razorpay webhook.
    """
    verify_webhook_signature(raw_body, signature)

    try:
        body = orjson.loads(raw_body)
    except orjson.JSONDecodeError:
        return _ignored("Malformed payload")
    if not isinstance(body, dict):
        return _ignored("Malformed payload")

    company_id = _as_uuid(body.get("companyId"))
    if company_id is None:
        return _ignored("companyId is required")
    provider_payment_id = body.get("providerPaymentId")
    if not isinstance(provider_payment_id, str):
        provider_payment_id = None

    payment = None
    payment_id = _as_uuid(body.get("paymentId"))
    if payment_id:
        payment = await session.get(Payment, payment_id)
    if payment is None:
        payment = await _resolve_payment(session, provider_payment_id, company_id)
    if payment is None or payment.company_id != company_id:
        return _ignored("Payment not found", company_id=str(company_id))

    return await _confirm_payment(
        session,
        payment,
        provider_payment_id,
        source="notification",
        storage=storage,
        mailer=mailer,
        renderer=renderer,
    )


async def mark_payment_paid_manually(
    session: AsyncSession,
    payment_id: UUID,
    provider_payment_id: Optional[str] = None,
    actor_id: Optional[str] = None,
    storage=None,
    mailer=None,
    renderer=None,
) -> WebhookResult:
    """Admin fallback for a missed webhook; same steps as a webhook delivery.

    Raises:
        PaymentStateError: the payment is neither CREATED nor already PAID
    """
    payment = await get_payment(session, payment_id)
    if payment.status not in (PaymentStatus.CREATED, PaymentStatus.PAID):
        raise PaymentStateError(
            f"Only unpaid payments can be marked paid (status {payment.status.value})"
        )
    return await _confirm_payment(
        session,
        payment,
        provider_payment_id,
        source="admin",
        actor_id=actor_id,
        storage=storage,
        mailer=mailer,
        renderer=renderer,
    )
