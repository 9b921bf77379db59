"""Shared API dependencies and response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from fastapi import Header
from pydantic import BaseModel, ConfigDict

from app.models import (
    DocumentOwner,
    DocumentStatus,
    DocumentType,
    OnboardingStage,
    PaymentStatus,
    RenewalStatus,
)
from app.services.stage_graph import stage_label


async def get_actor_id(x_actor_id: Optional[str] = Header(None)) -> Optional[str]:
    """Caller identity set by the upstream gateway; recorded in audit rows only."""
    return x_actor_id.strip() if x_actor_id and x_actor_id.strip() else None


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class CompanyResponse(ORMModel):
    id: UUID
    name: str
    contact_email: str
    contact_name: Optional[str] = None
    phone: Optional[str] = None
    gstin: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    billing_name: Optional[str] = None
    billing_address: Optional[str] = None
    stage: OnboardingStage
    stage_label: Optional[str] = None
    activation_date: Optional[datetime] = None
    renewal_date: Optional[date] = None
    renewal_status: Optional[RenewalStatus] = None
    created_at: datetime

    @classmethod
    def build(cls, company) -> "CompanyResponse":
        response = cls.model_validate(company)
        response.stage_label = stage_label(company.stage)
        return response


class DocumentResponse(ORMModel):
    id: UUID
    company_id: UUID
    document_type: DocumentType
    owner: DocumentOwner
    status: DocumentStatus
    file_name: str
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    version: int
    replaces_id: Optional[UUID] = None
    rejection_reason: Optional[str] = None
    review_notes: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime


class PaymentResponse(ORMModel):
    id: UUID
    company_id: UUID
    amount: Decimal
    currency: str
    status: PaymentStatus
    provider: str
    provider_payment_id: Optional[str] = None
    payment_link: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: datetime


class InvoiceResponse(ORMModel):
    id: UUID
    company_id: UUID
    payment_id: UUID
    invoice_number: str
    fiscal_year: str
    amount: Decimal
    gst_rate: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    gst_amount: Decimal
    total_amount: Decimal
    billing_name: str
    billing_address: Optional[str] = None
    billing_gstin: Optional[str] = None
    pdf_file_key: Optional[str] = None
    emailed_at: Optional[datetime] = None
    issued_at: datetime


class UrlResponse(BaseModel):
    url: str
    expires_in: int
