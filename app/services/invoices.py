"""
GST invoices for paid onboarding payments.

- One invoice per payment (unique payment_id; existing invoice is returned)
- Tax split: supplier and customer in the same state -> CGST + SGST (half each),
  otherwise IGST; unknown customer state is treated as inter-state
- Numbering: {prefix}-{fiscal year}-{sequence}, e.g. AC-2026-27-0001, with the
  sequence restarting every April
"""

import asyncio
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Optional
from uuid import UUID, uuid4

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.errors import NotFound, PaymentStateError
from app.core.storage import get_storage, invoice_file_key
from app.models import Company, Invoice, Payment, PaymentStatus
from app.models.schema import utcnow
from app.services import notifications
from app.services.audit import record_audit
from app.services.pdf import amount_in_words, render_invoice_pdf

logger = structlog.get_logger()

CENT = Decimal("0.01")
MAX_NUMBERING_ATTEMPTS = 3

# GSTIN state codes (first two digits of a GSTIN)
GST_STATE_CODES = {
    "01": "Jammu and Kashmir",
    "02": "Himachal Pradesh",
    "03": "Punjab",
    "04": "Chandigarh",
    "05": "Uttarakhand",
    "06": "Haryana",
    "07": "Delhi",
    "08": "Rajasthan",
    "09": "Uttar Pradesh",
    "10": "Bihar",
    "11": "Sikkim",
    "12": "Arunachal Pradesh",
    "13": "Nagaland",
    "14": "Manipur",
    "15": "Mizoram",
    "16": "Tripura",
    "17": "Meghalaya",
    "18": "Assam",
    "19": "West Bengal",
    "20": "Jharkhand",
    "21": "Odisha",
    "22": "Chhattisgarh",
    "23": "Madhya Pradesh",
    "24": "Gujarat",
    "26": "Dadra and Nagar Haveli and Daman and Diu",
    "27": "Maharashtra",
    "29": "Karnataka",
    "30": "Goa",
    "31": "Lakshadweep",
    "32": "Kerala",
    "33": "Tamil Nadu",
    "34": "Puducherry",
    "35": "Andaman and Nicobar Islands",
    "36": "Telangana",
    "37": "Andhra Pradesh",
    "38": "Ladakh",
}


@dataclass
class TaxSplit:
    amount: Decimal
    rate: Decimal
    cgst: Decimal
    sgst: Decimal
    igst: Decimal

    @property
    def gst(self) -> Decimal:
        return self.cgst + self.sgst + self.igst

    @property
    def total(self) -> Decimal:
        return self.amount + self.gst

    @property
    def intra_state(self) -> bool:
        return self.igst == 0 and self.gst > 0


def _normalize_state(state: Optional[str]) -> Optional[str]:
    if not state:
        return None
    return " ".join(state.split()).lower()


def resolve_state(state: Optional[str], gstin: Optional[str]) -> Optional[str]:
    """State name from the address, falling back to the GSTIN state code."""
    if _normalize_state(state):
        return _normalize_state(state)
    if gstin and len(gstin) >= 2:
        return _normalize_state(GST_STATE_CODES.get(gstin[:2]))
    return None


def compute_tax_split(
    amount: Decimal,
    rate_percent: Decimal,
    supplier_state: Optional[str],
    customer_state: Optional[str],
) -> TaxSplit:
    amount = Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)
    rate = Decimal(str(rate_percent))
    gst = (amount * rate / Decimal(100)).quantize(CENT, rounding=ROUND_HALF_UP)

    supplier = _normalize_state(supplier_state)
    customer = _normalize_state(customer_state)
    if supplier and customer and supplier == customer:
        cgst = (gst / 2).quantize(CENT, rounding=ROUND_HALF_UP)
        return TaxSplit(amount=amount, rate=rate, cgst=cgst, sgst=gst - cgst, igst=Decimal("0.00"))
    return TaxSplit(
        amount=amount, rate=rate, cgst=Decimal("0.00"), sgst=Decimal("0.00"), igst=gst
    )


def fiscal_year_label(on: date) -> str:
    """Indian fiscal year (April-March): 2026-10-19 -> '2026-27'."""
    start = on.year if on.month >= 4 else on.year - 1
    return f"{start}-{(start + 1) % 100:02d}"


def format_invoice_number(prefix: str, fiscal_year: str, sequence: int) -> str:
    return f"{prefix}-{fiscal_year}-{sequence:04d}"


async def _next_sequence(session: AsyncSession, fiscal_year: str) -> int:
    current = await session.scalar(
        select(func.max(Invoice.sequence)).where(Invoice.fiscal_year == fiscal_year)
    )
    return (current or 0) + 1


async def get_invoice_for_payment(session: AsyncSession, payment_id: UUID) -> Optional[Invoice]:
    return await session.scalar(select(Invoice).where(Invoice.payment_id == payment_id))


async def get_invoice(session: AsyncSession, invoice_id: UUID) -> Invoice:
    invoice = await session.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFound(f"Invoice {invoice_id} not found")
    return invoice


def _billing_address(company: Company) -> Optional[str]:
    if company.billing_address:
        return company.billing_address
    parts = [company.address, company.city, company.state, company.pincode]
    joined = ", ".join(p for p in parts if p)
    return joined or None


def _build_invoice(
    company: Company, payment: Payment, sequence: int, fiscal_year: str
) -> Invoice:
    settings = get_settings()
    split = compute_tax_split(
        payment.amount,
        Decimal(str(settings.gst_rate)),
        resolve_state(settings.supplier_state, settings.supplier_gstin),
        resolve_state(company.state, company.gstin),
    )
    return Invoice(
        id=uuid4(),
        company_id=company.id,
        payment_id=payment.id,
        invoice_number=format_invoice_number(settings.invoice_prefix, fiscal_year, sequence),
        fiscal_year=fiscal_year,
        sequence=sequence,
        amount=split.amount,
        gst_rate=split.rate,
        cgst_amount=split.cgst,
        sgst_amount=split.sgst,
        igst_amount=split.igst,
        gst_amount=split.gst,
        total_amount=split.total,
        billing_name=company.billing_name or company.name,
        billing_address=_billing_address(company),
        billing_gstin=company.gstin,
        billing_state=company.state or GST_STATE_CODES.get((company.gstin or "")[:2]),
    )


async def generate_invoice_for_payment(
    session: AsyncSession,
    payment_id: UUID,
    today: Optional[date] = None,
    storage=None,
    mailer=None,
    renderer: Optional[Callable[[dict], bytes]] = None,
) -> Invoice:
    """Create the invoice for a paid payment, then deliver it.

    Idempotent: if an invoice already exists for the payment it is returned
    unchanged and nothing is re-sent. Delivery failures are logged; the
    invoice row stays and can be re-delivered with ``deliver_invoice``.
    """
    existing = await get_invoice_for_payment(session, payment_id)
    if existing is not None:
        return existing

    today = today or date.today()
    fiscal_year = fiscal_year_label(today)

    invoice = None
    for attempt in range(1, MAX_NUMBERING_ATTEMPTS + 1):
        payment = await session.get(Payment, payment_id)
        if payment is None:
            raise NotFound(f"Payment {payment_id} not found")
        if payment.status != PaymentStatus.PAID:
            raise PaymentStateError("Invoices can only be generated for paid payments")
        company = await session.get(Company, payment.company_id)

        sequence = await _next_sequence(session, fiscal_year)
        invoice = _build_invoice(company, payment, sequence, fiscal_year)
        session.add(invoice)
        record_audit(
            session,
            "INVOICE_GENERATED",
            "Invoice",
            entity_id=invoice.id,
            company_id=company.id,
            changes={"invoice_number": invoice.invoice_number, "payment_id": str(payment.id)},
        )
        try:
            await session.commit()
            break
        except IntegrityError:
            await session.rollback()
            existing = await get_invoice_for_payment(session, payment_id)
            if existing is not None:
                return existing
            logger.warning(
                "invoices.number_conflict",
                payment_id=str(payment_id),
                fiscal_year=fiscal_year,
                attempt=attempt,
            )
            invoice = None
    if invoice is None:
        raise PaymentStateError("Could not allocate an invoice number")

    logger.info(
        "invoices.created",
        invoice_id=str(invoice.id),
        invoice_number=invoice.invoice_number,
        payment_id=str(payment_id),
        total=str(invoice.total_amount),
    )

    invoice_id, invoice_number = invoice.id, invoice.invoice_number
    try:
        return await deliver_invoice(
            session, invoice_id, storage=storage, mailer=mailer, renderer=renderer
        )
    except Exception as exc:
        await session.rollback()
        logger.error(
            "invoices.delivery_failed",
            invoice_id=str(invoice_id),
            invoice_number=invoice_number,
            error=str(exc),
        )
    return await get_invoice(session, invoice_id)


def build_invoice_context(invoice: Invoice, payment: Optional[Payment] = None) -> dict:
    settings = get_settings()
    rate = Decimal(invoice.gst_rate)
    return {
        "invoice_number": invoice.invoice_number,
        "issued_on": (invoice.issued_at or utcnow()).strftime("%d %b %Y"),
        "place_of_supply": invoice.billing_state,
        "supplier": {
            "name": settings.supplier_name,
            "address": settings.supplier_address,
            "gstin": settings.supplier_gstin,
        },
        "billing": {
            "name": invoice.billing_name,
            "address": invoice.billing_address,
            "gstin": invoice.billing_gstin,
        },
        "sac_code": settings.sac_code,
        "intra_state": Decimal(invoice.igst_amount) == 0 and Decimal(invoice.gst_amount) > 0,
        "gst_rate": f"{rate.normalize():f}",
        "half_rate": f"{(rate / 2).normalize():f}",
        "amount": f"{Decimal(invoice.amount):,.2f}",
        "cgst_amount": f"{Decimal(invoice.cgst_amount):,.2f}",
        "sgst_amount": f"{Decimal(invoice.sgst_amount):,.2f}",
        "igst_amount": f"{Decimal(invoice.igst_amount):,.2f}",
        "total_amount": f"{Decimal(invoice.total_amount):,.2f}",
        "amount_in_words": amount_in_words(invoice.total_amount),
        "bank_details": settings.bank_details,
        "payment_reference": payment.provider_payment_id if payment else None,
    }


async def deliver_invoice(
    session: AsyncSession,
    invoice_id: UUID,
    storage=None,
    mailer=None,
    renderer: Optional[Callable[[dict], bytes]] = None,
) -> Invoice:
    """Render the PDF, store it in R2 and email it to the company.

    Also the manual re-delivery path; errors propagate to the caller.
    """
    invoice = await get_invoice(session, invoice_id)
    company = await session.get(Company, invoice.company_id)
    payment = await session.get(Payment, invoice.payment_id)

    context = build_invoice_context(invoice, payment)
    pdf_bytes = await asyncio.to_thread(renderer or render_invoice_pdf, context)

    key = invoice_file_key(company.id, invoice.invoice_number)
    await (storage or get_storage()).put_object(key, pdf_bytes, "application/pdf")
    invoice.pdf_file_key = key
    await session.commit()

    if await notifications.send_invoice(company, invoice, pdf_bytes, mailer):
        invoice.emailed_at = utcnow()
        await session.commit()

    logger.info(
        "invoices.delivered",
        invoice_number=invoice.invoice_number,
        pdf_file_key=key,
        emailed=invoice.emailed_at is not None,
    )
    return invoice


async def invoice_download_url(session: AsyncSession, invoice_id: UUID, storage=None) -> str:
    invoice = await get_invoice(session, invoice_id)
    if not invoice.pdf_file_key:
        raise NotFound(f"Invoice {invoice.invoice_number} has no PDF yet; re-deliver it first")
    return await (storage or get_storage()).presigned_download_url(
        invoice.pdf_file_key, filename=f"{invoice.invoice_number}.pdf"
    )


async def list_invoices(
    session: AsyncSession, company_id: Optional[UUID] = None
) -> list[Invoice]:
    query = select(Invoice).order_by(Invoice.issued_at.desc())
    if company_id:
        query = query.where(Invoice.company_id == company_id)
    result = await session.execute(query)
    return list(result.scalars().all())
