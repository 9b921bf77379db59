"""
Client notification emails.

Templates live in app/templates/email and extend base.html. Every function is
best-effort and returns whether the email went out.
"""

from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional, Sequence

import structlog
from jinja2 import Environment, FileSystemLoader, select_autoescape

from app.core.config import get_settings
from app.core.email import Attachment, EmailSender, get_mailer
from app.models import Company, Document, Invoice, Payment

logger = structlog.get_logger()

TEMPLATE_DIR = Path(__file__).parent.parent / "templates" / "email"

jinja_env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html"]),
)


def render_email_template(template_name: str, context: dict[str, Any]) -> str:
    template = jinja_env.get_template(template_name)
    return template.render(**context)


def _portal_url(path: str = "") -> str:
    return get_settings().frontend_url.rstrip("/") + path


def _format_date(value: Optional[date]) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        value = value.date()
    return value.strftime("%d %b %Y")


def _format_amount(value: Decimal) -> str:
    return f"{Decimal(value):,.2f}"


async def _send(
    company: Company,
    template_name: str,
    subject: str,
    mailer: Optional[EmailSender] = None,
    attachments: Optional[Sequence[Attachment]] = None,
    **context,
) -> bool:
    settings = get_settings()
    context.setdefault("action_url", None)
    context.setdefault("action_label", "Open onboarding portal")
    try:
        html = render_email_template(
            template_name,
            {
                "subject": subject,
                "supplier_name": settings.supplier_name,
                "company_name": company.contact_name or company.name,
                **context,
            },
        )
        mailer = mailer or get_mailer()
        return await mailer.send(company.contact_email, subject, html, attachments=attachments)
    except Exception as exc:
        logger.error(
            "notifications.send_failed",
            template=template_name,
            company_id=str(company.id),
            error=str(exc),
        )
        return False


async def send_payment_link(company: Company, payment: Payment, mailer=None) -> bool:
    return await _send(
        company,
        "payment_link.html",
        "Complete your onboarding payment",
        mailer,
        amount=_format_amount(payment.amount),
        currency=payment.currency,
        action_url=payment.payment_link,
        action_label="Pay now",
    )


async def send_payment_confirmed(company: Company, payment: Payment, mailer=None) -> bool:
    return await _send(
        company,
        "payment_confirmed.html",
        "Payment received - next step: KYC",
        mailer,
        amount=_format_amount(payment.amount),
        currency=payment.currency,
        action_url=_portal_url("/onboarding/documents"),
        action_label="Upload KYC documents",
    )


async def send_kyc_approved(company: Company, document: Document, mailer=None) -> bool:
    return await _send(
        company,
        "kyc_approved.html",
        f"{document.document_type.value} verified",
        mailer,
        document_type=document.document_type.value,
        review_notes=document.review_notes,
    )


async def send_kyc_rejected(company: Company, document: Document, reason: str, mailer=None) -> bool:
    return await _send(
        company,
        "kyc_rejected.html",
        f"Action needed: {document.document_type.value} document",
        mailer,
        document_type=document.document_type.value,
        reason=reason,
        action_url=_portal_url("/onboarding/documents"),
        action_label="Upload again",
    )


async def send_agreement_draft(company: Company, mailer=None) -> bool:
    return await _send(
        company,
        "agreement_draft.html",
        "Your agreement draft is ready",
        mailer,
        action_url=_portal_url("/onboarding/agreement"),
        action_label="Review agreement",
    )


async def send_signed_agreement_received(company: Company, mailer=None) -> bool:
    return await _send(company, "signed_agreement_received.html", "Signed agreement received", mailer)


async def send_agreement_final(company: Company, mailer=None) -> bool:
    return await _send(
        company,
        "agreement_final.html",
        "Your final agreement is available",
        mailer,
        action_url=_portal_url("/onboarding/agreement"),
        action_label="Download agreement",
    )


async def send_activation(company: Company, mailer=None) -> bool:
    return await _send(
        company,
        "activated.html",
        "Your account is now active",
        mailer,
        activation_date=_format_date(company.activation_date),
        renewal_date=_format_date(company.renewal_date),
        action_url=_portal_url("/dashboard"),
        action_label="Go to dashboard",
    )


async def send_invoice(
    company: Company, invoice: Invoice, pdf_bytes: bytes, mailer=None
) -> bool:
    return await _send(
        company,
        "invoice.html",
        f"Tax invoice {invoice.invoice_number}",
        mailer,
        attachments=[Attachment(filename=f"{invoice.invoice_number}.pdf", content=pdf_bytes)],
        invoice_number=invoice.invoice_number,
        total_amount=_format_amount(invoice.total_amount),
        currency="INR",
    )


async def send_renewal_reminder(company: Company, days_before: int, mailer=None) -> bool:
    return await _send(
        company,
        "renewal_reminder.html",
        f"Your subscription renews in {days_before} days",
        mailer,
        days_before=days_before,
        renewal_date=_format_date(company.renewal_date),
    )


async def send_renewal_expired(company: Company, mailer=None) -> bool:
    return await _send(
        company,
        "renewal_expired.html",
        "Your subscription has expired",
        mailer,
        renewal_date=_format_date(company.renewal_date),
    )
