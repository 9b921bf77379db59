"""
Payment, webhook and invoice endpoints.

- POST /v1/companies/{id}/payments           - Create payment link
- GET  /v1/payments                          - List payments
- POST /v1/payments/{id}/resend-link         - Re-send payment link email
- POST /v1/payments/{id}/mark-paid           - Admin fallback for a missed webhook
- POST /v1/payments/{id}/invoice             - Generate the invoice for a paid payment
- POST /v1/webhooks/razorpay                 - Razorpay webhook
- POST /v1/payments/webhook                  - Internal payment notification
- GET  /v1/invoices                          - List invoices
- POST /v1/invoices/{id}/deliver             - Re-render, store and email an invoice
- GET  /v1/invoices/{id}/download            - Presigned PDF URL
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.helpers import InvoiceResponse, PaymentResponse, UrlResponse, get_actor_id
from app.core.config import get_settings
from app.core.database import get_db
from app.services import invoices, payments

router = APIRouter(tags=["Payments"])

SIGNATURE_HEADER = "x-razorpay-signature"


# =============================================================================
# Request/Response Models
# =============================================================================


class PaymentCreateRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, description="Taxable amount in INR, before GST")
    description: Optional[str] = None


class MarkPaidRequest(BaseModel):
    provider_payment_id: Optional[str] = None


class WebhookResponse(BaseModel):
    status: str
    message: str
    payment_id: Optional[UUID] = None
    invoice_id: Optional[UUID] = None


# =============================================================================
# Payments
# =============================================================================


@router.post(
    "/companies/{company_id}/payments",
    response_model=PaymentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_payment(
    company_id: UUID,
    request: PaymentCreateRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    return await payments.create_payment_for_company(
        db, company_id, request.amount, request.description, actor_id=actor_id
    )


@router.get("/payments", response_model=list[PaymentResponse])
async def list_payments(
    company_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await payments.list_payments(db, company_id)


@router.post("/payments/{payment_id}/resend-link", response_model=PaymentResponse)
async def resend_payment_link(payment_id: UUID, db: AsyncSession = Depends(get_db)):
    return await payments.resend_payment_link(db, payment_id)


@router.post("/payments/{payment_id}/mark-paid", response_model=WebhookResponse)
async def mark_paid(
    payment_id: UUID,
    request: MarkPaidRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    result = await payments.mark_payment_paid_manually(
        db, payment_id, request.provider_payment_id, actor_id=actor_id
    )
    return WebhookResponse(**result.__dict__)


# =============================================================================
# Webhooks
# =============================================================================


@router.post("/webhooks/razorpay", response_model=WebhookResponse)
async def razorpay_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    """
    Handle Razorpay webhook events.

    The signature is checked against the raw body exactly as received.
    """
    payload = await request.body()
    result = await payments.process_razorpay_webhook(
        db, payload, request.headers.get(SIGNATURE_HEADER)
    )
    return WebhookResponse(**result.__dict__)


@router.post("/payments/webhook", response_model=WebhookResponse)
async def payment_notification(request: Request, db: AsyncSession = Depends(get_db)):
    payload = await request.body()
    result = await payments.process_payment_notification(
        db, payload, request.headers.get(SIGNATURE_HEADER)
    )
    return WebhookResponse(**result.__dict__)


# =============================================================================
# Invoices
# =============================================================================


@router.get("/invoices", response_model=list[InvoiceResponse])
async def list_invoices(
    company_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await invoices.list_invoices(db, company_id)


@router.post("/payments/{payment_id}/invoice", response_model=InvoiceResponse)
async def generate_invoice(payment_id: UUID, db: AsyncSession = Depends(get_db)):
    """Create the invoice for a PAID payment, or return the existing one."""
    return await invoices.generate_invoice_for_payment(db, payment_id)


@router.post("/invoices/{invoice_id}/deliver", response_model=InvoiceResponse)
async def deliver_invoice(invoice_id: UUID, db: AsyncSession = Depends(get_db)):
    return await invoices.deliver_invoice(db, invoice_id)


@router.get("/invoices/{invoice_id}/download", response_model=UrlResponse)
async def download_invoice(invoice_id: UUID, db: AsyncSession = Depends(get_db)):
    url = await invoices.invoice_download_url(db, invoice_id)
    return UrlResponse(url=url, expires_in=get_settings().presigned_url_ttl)
