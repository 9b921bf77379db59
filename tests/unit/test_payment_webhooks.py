"""
Unit tests for webhook signature verification and the payment pipeline.

Payloads are signed the way Razorpay does it: HMAC-SHA256 of the exact
request bytes, hex encoded.
"""

import json
import pytest
import sys
import os
from datetime import date

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from sqlalchemy import func, select

from conftest import WEBHOOK_SECRET, FakeStorage
from app.core.errors import (
    InvalidSignature,
    PaymentProviderError,
    PaymentStateError,
    StageMismatch,
)
from app.models import AuditLog, Invoice, OnboardingStage, PaymentStatus
from app.services import invoices, payments
from app.services.invoices import fiscal_year_label
from app.services.razorpay import (
    RazorpayClient,
    compute_signature,
    extract_payment_reference,
    verify_webhook_signature,
)

S = OnboardingStage


def captured_event(company_id, payment_id="pay_LxR9", event="payment.captured"):
    notes = {"companyId": str(company_id)}
    return {
        "entity": "event",
        "event": event,
        "payload": {
            "payment": {
                "entity": {"id": payment_id, "amount": 100000, "currency": "INR", "notes": notes}
            }
        },
    }


def signed(body):
    raw = body if isinstance(body, bytes) else json.dumps(body).encode()
    return raw, compute_signature(raw, WEBHOOK_SECRET)


async def _count(session, model, *where):
    return await session.scalar(select(func.count()).select_from(model).where(*where))


class TestSignatureVerification:
    """Tests for verify_webhook_signature."""

    @pytest.mark.unit
    def test_valid_signature(self):
        raw, sig = signed({"event": "payment.captured"})
        verify_webhook_signature(raw, sig)

    @pytest.mark.unit
    def test_prefixed_and_uppercase_signature(self):
        raw, sig = signed({"event": "payment.captured"})
        verify_webhook_signature(raw, "sha256=" + sig)
        verify_webhook_signature(raw, sig.upper())

    @pytest.mark.unit
    @pytest.mark.parametrize("signature", [None, "", "deadbeef", "0" * 64])
    def test_missing_or_wrong_signature(self, signature):
        raw, _ = signed({"event": "payment.captured"})
        with pytest.raises(InvalidSignature):
            verify_webhook_signature(raw, signature)

    @pytest.mark.unit
    def test_reserialized_body_fails(self):
        """The signature covers the bytes received, not the parsed JSON."""
        raw, sig = signed(b'{"event": "payment.captured", "id": 1}')
        reserialized = json.dumps(json.loads(raw), separators=(",", ":")).encode()
        assert reserialized != raw
        with pytest.raises(InvalidSignature):
            verify_webhook_signature(reserialized, sig)

    @pytest.mark.unit
    def test_missing_secret_rejects_everything(self):
        raw = b"{}"
        with pytest.raises(InvalidSignature):
            verify_webhook_signature(raw, compute_signature(raw, ""), secret="")


class TestPaymentReference:
    """Tests for extract_payment_reference."""

    @pytest.mark.unit
    def test_payment_captured(self):
        ref = extract_payment_reference(captured_event("c-1", "pay_1"))
        assert ref.event == "payment.captured"
        assert ref.provider_payment_id == "pay_1"
        assert ref.company_id == "c-1"

    @pytest.mark.unit
    def test_notes_from_payment_link(self):
        event = {
            "event": "payment_link.paid",
            "payload": {
                "payment_link": {"entity": {"id": "plink_1", "notes": {"company_id": "c-2"}}},
                "payment": {"entity": {"id": "pay_2"}},
            },
        }
        ref = extract_payment_reference(event)
        assert ref.company_id == "c-2"
        assert ref.provider_payment_id == "pay_2"

    @pytest.mark.unit
    def test_missing_payload(self):
        ref = extract_payment_reference({"event": "order.paid"})
        assert ref.provider_payment_id is None
        assert ref.company_id is None

    @pytest.mark.unit
    def test_non_string_fields_dropped(self):
        event = {
            "event": ["payment.captured"],
            "payload": {"payment": {"entity": {"id": 12345, "notes": {"companyId": {"id": 1}}}}},
        }
        ref = extract_payment_reference(event)
        assert ref.event is None
        assert ref.provider_payment_id is None
        assert ref.company_id is None


class TestRazorpayClient:
    """Tests for payment link creation guards."""

    @pytest.mark.unit
    async def test_unconfigured_client_raises(self):
        with pytest.raises(PaymentProviderError):
            await RazorpayClient().create_payment_link(
                amount=1000, currency="INR", reference_id="r", description="d",
                customer={}, notes={},
            )


@pytest.fixture
async def pending_payment(make_company, make_payment):
    company = await make_company(S.PAYMENT_PENDING, gstin="29ABCDE1234F1Z5")
    payment = await make_payment(company, amount="1000.00")
    return company, payment


class TestWebhookPipeline:
    """Tests for process_razorpay_webhook end to end."""

    @pytest.mark.unit
    async def test_captured_payment_is_confirmed_and_invoiced(
        self, session, pending_payment, storage, mailer, renderer
    ):
        company, payment = pending_payment
        raw, sig = signed(captured_event(company.id, "pay_LxR9"))

        result = await payments.process_razorpay_webhook(
            session, raw, sig, storage=storage, mailer=mailer, renderer=renderer
        )

        assert result.status == "processed"
        assert result.payment_id == payment.id
        assert payment.status == PaymentStatus.PAID
        assert payment.provider_payment_id == "pay_LxR9"
        assert payment.paid_at is not None
        assert company.stage == S.KYC_IN_PROGRESS

        invoice = await session.get(Invoice, result.invoice_id)
        fy = fiscal_year_label(date.today())
        assert invoice.invoice_number == f"AC-{fy}-0001"
        assert invoice.pdf_file_key in storage.objects
        assert invoice.emailed_at is not None
        assert "Payment received - next step: KYC" in mailer.subjects
        assert f"Tax invoice AC-{fy}-0001" in mailer.subjects

    @pytest.mark.unit
    async def test_duplicate_delivery_is_processed_once(
        self, session, pending_payment, storage, mailer, renderer
    ):
        company, payment = pending_payment
        raw, sig = signed(captured_event(company.id))

        first = await payments.process_razorpay_webhook(
            session, raw, sig, storage=storage, mailer=mailer, renderer=renderer
        )
        sent_after_first = len(mailer.sent)
        second = await payments.process_razorpay_webhook(
            session, raw, sig, storage=storage, mailer=mailer, renderer=renderer
        )

        assert first.status == "processed"
        assert second.status == "already_processed"
        assert await _count(session, Invoice) == 1
        assert await _count(session, AuditLog, AuditLog.action == "PAYMENT_MARKED_PAID") == 1
        assert len(mailer.sent) == sent_after_first

    @pytest.mark.unit
    async def test_different_event_for_same_payment(self, session, pending_payment, storage, mailer, renderer):
        """payment.captured then order.paid for one payment: still one invoice."""
        company, _ = pending_payment
        for event in ("payment.captured", "order.paid"):
            raw, sig = signed(captured_event(company.id, "pay_same", event=event))
            await payments.process_razorpay_webhook(
                session, raw, sig, storage=storage, mailer=mailer, renderer=renderer
            )
        assert await _count(session, Invoice) == 1

    @pytest.mark.unit
    async def test_bad_signature_changes_nothing(self, session, pending_payment):
        company, payment = pending_payment
        raw, _ = signed(captured_event(company.id))
        with pytest.raises(InvalidSignature):
            await payments.process_razorpay_webhook(session, raw, "0" * 64)
        assert payment.status == PaymentStatus.CREATED
        assert company.stage == S.PAYMENT_PENDING

    @pytest.mark.unit
    async def test_unhandled_event_ignored(self, session, pending_payment):
        company, payment = pending_payment
        raw, sig = signed(captured_event(company.id, event="refund.created"))
        result = await payments.process_razorpay_webhook(session, raw, sig)
        assert result.status == "ignored"
        assert payment.status == PaymentStatus.CREATED

    @pytest.mark.unit
    async def test_malformed_body_ignored(self, session):
        raw, sig = signed(b"not json at all")
        result = await payments.process_razorpay_webhook(session, raw, sig)
        assert result.status == "ignored"

    @pytest.mark.unit
    async def test_non_string_event_ignored(self, session):
        raw, sig = signed({"event": ["payment.captured"], "payload": {}})
        result = await payments.process_razorpay_webhook(session, raw, sig)
        assert result.status == "ignored"

    @pytest.mark.unit
    async def test_non_string_payment_id_ignored(self, session, pending_payment):
        _, payment = pending_payment
        raw, sig = signed({
            "event": "payment.captured",
            "payload": {"payment": {"entity": {"id": ["pay_1"]}}},
        })
        result = await payments.process_razorpay_webhook(session, raw, sig)
        assert result.status == "ignored"
        assert result.message == "No payment reference"
        assert payment.status == PaymentStatus.CREATED

    @pytest.mark.unit
    async def test_unknown_company_ignored(self, session, pending_payment):
        raw, sig = signed(captured_event("00000000-0000-0000-0000-000000000000", "pay_unknown"))
        result = await payments.process_razorpay_webhook(session, raw, sig)
        assert result.status == "ignored"
        assert result.message == "Payment not found"

    @pytest.mark.unit
    async def test_stage_failure_does_not_block_invoice(
        self, session, make_company, make_payment, storage, mailer, renderer
    ):
        """A company in the wrong stage still gets its payment recorded and invoiced."""
        company = await make_company(S.PENDING_DOCUMENTS)
        payment = await make_payment(company)
        raw, sig = signed(captured_event(company.id, "pay_odd"))

        result = await payments.process_razorpay_webhook(
            session, raw, sig, storage=storage, mailer=mailer, renderer=renderer
        )

        assert result.status == "processed"
        assert result.invoice_id is not None
        assert payment.status == PaymentStatus.PAID
        assert company.stage == S.PENDING_DOCUMENTS

    @pytest.mark.unit
    async def test_invoice_delivery_failure_keeps_payment(
        self, session, pending_payment, mailer, renderer
    ):
        company, payment = pending_payment
        raw, sig = signed(captured_event(company.id))

        result = await payments.process_razorpay_webhook(
            session, raw, sig, storage=FakeStorage(fail_puts=True), mailer=mailer, renderer=renderer
        )

        assert result.status == "processed"
        invoice = await session.get(Invoice, result.invoice_id)
        assert invoice.pdf_file_key is None
        # delivery failure rolled the session back
        await session.refresh(payment)
        await session.refresh(company)
        assert payment.status == PaymentStatus.PAID
        assert company.stage == S.KYC_IN_PROGRESS


class TestPaymentNotification:
    """Tests for the internal payment notification entry point."""

    @pytest.mark.unit
    async def test_notification_confirms_payment(self, session, pending_payment, storage, mailer, renderer):
        company, payment = pending_payment
        raw, sig = signed({"companyId": str(company.id), "paymentId": str(payment.id)})

        result = await payments.process_payment_notification(
            session, raw, sig, storage=storage, mailer=mailer, renderer=renderer
        )

        assert result.status == "processed"
        assert payment.status == PaymentStatus.PAID
        assert company.stage == S.KYC_IN_PROGRESS

    @pytest.mark.unit
    async def test_notification_requires_signature(self, session, pending_payment):
        company, payment = pending_payment
        raw, _ = signed({"companyId": str(company.id)})
        with pytest.raises(InvalidSignature):
            await payments.process_payment_notification(session, raw, None)

    @pytest.mark.unit
    async def test_notification_without_company_ignored(self, session):
        raw, sig = signed({"paymentId": "x"})
        result = await payments.process_payment_notification(session, raw, sig)
        assert result.status == "ignored"

    @pytest.mark.unit
    async def test_non_string_provider_id_falls_back_to_company(
        self, session, pending_payment, storage, mailer, renderer
    ):
        company, payment = pending_payment
        raw, sig = signed({"companyId": str(company.id), "providerPaymentId": {"id": "pay_1"}})

        result = await payments.process_payment_notification(
            session, raw, sig, storage=storage, mailer=mailer, renderer=renderer
        )

        assert result.status == "processed"
        assert payment.provider_payment_id is None

    @pytest.mark.unit
    async def test_payment_of_other_company_ignored(self, session, pending_payment, make_company):
        _, payment = pending_payment
        other = await make_company(S.PAYMENT_PENDING, name="Other Co")
        raw, sig = signed({"companyId": str(other.id), "paymentId": str(payment.id)})
        result = await payments.process_payment_notification(session, raw, sig)
        assert result.status == "ignored"
        assert payment.status == PaymentStatus.CREATED


class TestManualMarkPaid:
    """Tests for the admin mark-paid fallback."""

    @pytest.mark.unit
    async def test_mark_paid_twice(self, session, pending_payment, storage, mailer, renderer):
        company, payment = pending_payment
        first = await payments.mark_payment_paid_manually(
            session, payment.id, provider_payment_id="pay_manual", actor_id="admin-1",
            storage=storage, mailer=mailer, renderer=renderer,
        )
        second = await payments.mark_payment_paid_manually(
            session, payment.id, storage=storage, mailer=mailer, renderer=renderer
        )
        assert first.status == "processed"
        assert second.status == "already_processed"
        assert payment.provider_payment_id == "pay_manual"

        entry = await session.scalar(
            select(AuditLog).where(AuditLog.action == "PAYMENT_MARKED_PAID")
        )
        assert entry.actor_id == "admin-1"
        assert entry.changes["source"] == "admin"

    @pytest.mark.unit
    async def test_failed_payment_refused(self, session, make_company, make_payment):
        company = await make_company(S.PAYMENT_PENDING)
        payment = await make_payment(company, status=PaymentStatus.FAILED)
        with pytest.raises(PaymentStateError):
            await payments.mark_payment_paid_manually(session, payment.id)
        assert payment.status == PaymentStatus.FAILED

    @pytest.mark.unit
    async def test_notification_for_failed_payment_ignored(self, session, make_company, make_payment):
        company = await make_company(S.PAYMENT_PENDING)
        payment = await make_payment(company, status=PaymentStatus.FAILED)
        raw, sig = signed({"companyId": str(company.id), "paymentId": str(payment.id)})

        result = await payments.process_payment_notification(session, raw, sig)

        assert result.status == "ignored"
        assert payment.status == PaymentStatus.FAILED
        assert company.stage == S.PAYMENT_PENDING


class TestConcurrentConfirmation:
    """Two writers confirming the same payment."""

    @pytest.mark.unit
    async def test_stale_writer_reports_already_processed(
        self, session, session_maker, pending_payment, storage, mailer, renderer
    ):
        """The writer holding a stale CREATED row updates nothing."""
        _, payment = pending_payment
        assert payment.status == PaymentStatus.CREATED

        async with session_maker() as other:
            winner = await payments.mark_payment_paid_manually(
                other, payment.id, storage=storage, mailer=mailer, renderer=renderer
            )

        # this session still holds the CREATED snapshot
        assert payment.status == PaymentStatus.CREATED
        loser = await payments.mark_payment_paid_manually(
            session, payment.id, storage=storage, mailer=mailer, renderer=renderer
        )

        assert winner.status == "processed"
        assert loser.status == "already_processed"
        assert await _count(session, Invoice) == 1
        assert await _count(session, AuditLog, AuditLog.action == "PAYMENT_MARKED_PAID") == 1
        await session.refresh(payment)
        assert payment.status == PaymentStatus.PAID


class TestInvoiceRecovery:
    """A paid payment whose invoice step failed can still be invoiced."""

    @pytest.mark.unit
    async def test_invoice_generated_after_failed_attempt(
        self, session, pending_payment, storage, mailer, renderer, monkeypatch
    ):
        _, payment = pending_payment

        def numbering_down(*args, **kwargs):
            raise RuntimeError("numbering unavailable")

        monkeypatch.setattr(invoices, "_build_invoice", numbering_down)
        first = await payments.mark_payment_paid_manually(
            session, payment.id, storage=storage, mailer=mailer, renderer=renderer
        )
        monkeypatch.undo()

        assert first.status == "processed"
        assert first.invoice_id is None
        assert await _count(session, Invoice) == 0

        # mark-paid does not replay the invoice step
        again = await payments.mark_payment_paid_manually(
            session, payment.id, storage=storage, mailer=mailer, renderer=renderer
        )
        assert again.status == "already_processed"
        assert await _count(session, Invoice) == 0

        invoice = await invoices.generate_invoice_for_payment(
            session, payment.id, storage=storage, mailer=mailer, renderer=renderer
        )
        assert invoice.payment_id == payment.id
        assert invoice.pdf_file_key in storage.objects
        assert await _count(session, Invoice) == 1


class TestCreatePayment:
    """Tests for create_payment_for_company."""

    class StubClient:
        def __init__(self):
            self.calls = []

        async def create_payment_link(self, **kwargs):
            self.calls.append(kwargs)
            return {"id": "plink_123", "short_url": "https://rzp.io/i/abc"}

    @pytest.mark.unit
    async def test_creates_link_and_moves_stage(self, session, make_company, mailer):
        company = await make_company(S.ADMIN_CREATED)
        client = self.StubClient()

        payment = await payments.create_payment_for_company(
            session, company.id, "25000", client=client, mailer=mailer
        )

        assert payment.status == PaymentStatus.CREATED
        assert payment.payment_link == "https://rzp.io/i/abc"
        assert client.calls[0]["notes"]["companyId"] == str(company.id)
        assert client.calls[0]["reference_id"] == str(payment.id)
        assert company.stage == S.PAYMENT_PENDING
        assert mailer.subjects == ["Complete your onboarding payment"]

    @pytest.mark.unit
    async def test_one_open_payment_at_a_time(self, session, make_company, mailer):
        company = await make_company(S.ADMIN_CREATED)
        client = self.StubClient()
        await payments.create_payment_for_company(session, company.id, 1000, client=client, mailer=mailer)
        with pytest.raises(payments.PaymentStateError):
            await payments.create_payment_for_company(session, company.id, 1000, client=client, mailer=mailer)

    @pytest.mark.unit
    async def test_not_after_payment(self, session, make_company):
        company = await make_company(S.KYC_IN_PROGRESS)
        with pytest.raises(StageMismatch):
            await payments.create_payment_for_company(
                session, company.id, 1000, client=self.StubClient()
            )

    @pytest.mark.unit
    async def test_amount_must_be_positive(self, session, make_company):
        company = await make_company(S.ADMIN_CREATED)
        with pytest.raises(payments.PaymentStateError):
            await payments.create_payment_for_company(
                session, company.id, 0, client=self.StubClient()
            )
