"""
Onboarding API - Database Schema

Companies move through the onboarding lifecycle; documents, payments,
invoices and renewal reminders hang off them.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    BigInteger,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from app.models.enums import (
    DocumentOwner,
    DocumentStatus,
    DocumentType,
    OnboardingStage,
    PaymentStatus,
    RenewalStatus,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum(enum_cls, name: str) -> SAEnum:
    return SAEnum(enum_cls, name=name, native_enum=False, length=40)


class Base(DeclarativeBase):
    pass


# =============================================================================
# COMPANIES
# =============================================================================


class Company(Base):
    """A client company being onboarded."""

    __tablename__ = "companies"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_email: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_name: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(30))

    # Tax / billing identity
    gstin: Mapped[Optional[str]] = mapped_column(String(15))
    address: Mapped[Optional[str]] = mapped_column(Text)
    city: Mapped[Optional[str]] = mapped_column(String(100))
    state: Mapped[Optional[str]] = mapped_column(String(100))
    pincode: Mapped[Optional[str]] = mapped_column(String(10))
    billing_name: Mapped[Optional[str]] = mapped_column(String(255))
    billing_address: Mapped[Optional[str]] = mapped_column(Text)

    # Lifecycle. Written only by app.services.onboarding.
    _stage: Mapped[OnboardingStage] = mapped_column(
        "stage",
        _enum(OnboardingStage, "onboarding_stage"),
        nullable=False,
        default=OnboardingStage.ADMIN_CREATED,
    )
    activation_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Renewals
    renewal_date: Mapped[Optional[date]] = mapped_column(Date)
    renewal_status: Mapped[Optional[RenewalStatus]] = mapped_column(
        _enum(RenewalStatus, "renewal_status")
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index("idx_companies_stage", "stage"),
        Index("idx_companies_renewal_date", "renewal_date"),
    )

    @hybrid_property
    def stage(self) -> OnboardingStage:
        return self._stage


# =============================================================================
# DOCUMENTS
# =============================================================================


class Document(Base):
    """Uploaded file. Re-uploads create a new version instead of overwriting."""

    __tablename__ = "documents"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("companies.id", ondelete="RESTRICT"), nullable=False
    )
    document_type: Mapped[DocumentType] = mapped_column(
        _enum(DocumentType, "document_type"), nullable=False
    )
    owner: Mapped[DocumentOwner] = mapped_column(
        _enum(DocumentOwner, "document_owner"), nullable=False, default=DocumentOwner.CLIENT
    )
    status: Mapped[DocumentStatus] = mapped_column(
        _enum(DocumentStatus, "document_status"), nullable=False, default=DocumentStatus.UPLOADED
    )

    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_key: Mapped[str] = mapped_column(String(500), nullable=False)
    file_size: Mapped[Optional[int]] = mapped_column(BigInteger)
    mime_type: Mapped[Optional[str]] = mapped_column(String(100))

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    replaces_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid, ForeignKey("documents.id", ondelete="SET NULL")
    )

    # Review
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)
    review_notes: Mapped[Optional[str]] = mapped_column(Text)
    reviewed_by: Mapped[Optional[str]] = mapped_column(String(100))
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index("idx_documents_company_type", "company_id", "document_type"),
        Index("idx_documents_status", "status"),
    )


# =============================================================================
# PAYMENTS & INVOICES
# =============================================================================


class Payment(Base):
    """Onboarding fee payment collected through a provider payment link."""

    __tablename__ = "payments"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("companies.id", ondelete="RESTRICT"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    status: Mapped[PaymentStatus] = mapped_column(
        _enum(PaymentStatus, "payment_status"), nullable=False, default=PaymentStatus.CREATED
    )

    provider: Mapped[str] = mapped_column(String(30), nullable=False, default="razorpay")
    provider_payment_id: Mapped[Optional[str]] = mapped_column(String(100))
    provider_link_id: Mapped[Optional[str]] = mapped_column(String(100))
    payment_link: Mapped[Optional[str]] = mapped_column(String(500))
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index("idx_payments_company", "company_id"),
        Index("idx_payments_provider_payment_id", "provider_payment_id"),
    )


class Invoice(Base):
    """Tax invoice, one per paid payment."""

    __tablename__ = "invoices"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("companies.id", ondelete="RESTRICT"), nullable=False
    )
    payment_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("payments.id", ondelete="RESTRICT"), nullable=False
    )
    invoice_number: Mapped[str] = mapped_column(String(40), nullable=False)
    fiscal_year: Mapped[str] = mapped_column(String(9), nullable=False)  # e.g. 2026-27
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    # Amounts (INR)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)  # taxable value
    gst_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    cgst_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    sgst_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    igst_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    gst_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # Snapshot of billing details at issue time
    billing_name: Mapped[str] = mapped_column(String(255), nullable=False)
    billing_address: Mapped[Optional[str]] = mapped_column(Text)
    billing_gstin: Mapped[Optional[str]] = mapped_column(String(15))
    billing_state: Mapped[Optional[str]] = mapped_column(String(100))

    pdf_file_key: Mapped[Optional[str]] = mapped_column(String(500))
    emailed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("payment_id", name="uq_invoices_payment"),
        UniqueConstraint("invoice_number", name="uq_invoices_number"),
        Index("idx_invoices_company", "company_id"),
    )


# =============================================================================
# COMPLIANCE & RENEWALS
# =============================================================================


class ComplianceRequirement(Base):
    """Document type every company must have at least one verified copy of."""

    __tablename__ = "compliance_requirements"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    document_type: Mapped[DocumentType] = mapped_column(
        _enum(DocumentType, "document_type"), nullable=False, unique=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class RenewalReminder(Base):
    """Record that the reminder for (company, days_before) was sent."""

    __tablename__ = "renewal_reminders"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False
    )
    days_before: Mapped[int] = mapped_column(Integer, nullable=False)
    renewal_date: Mapped[Optional[date]] = mapped_column(Date)
    sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("company_id", "days_before", name="uq_renewal_reminders_company_days"),
    )


# =============================================================================
# AUDIT
# =============================================================================


class AuditLog(Base):
    """Append-only record of admin and system actions."""

    __tablename__ = "audit_logs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    actor_id: Mapped[Optional[str]] = mapped_column(String(100))  # None = system
    company_id: Mapped[Optional[UUID]] = mapped_column(Uuid, ForeignKey("companies.id"))
    document_id: Mapped[Optional[UUID]] = mapped_column(Uuid, ForeignKey("documents.id"))
    action: Mapped[str] = mapped_column(String(80), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(40), nullable=False)
    entity_id: Mapped[Optional[str]] = mapped_column(String(100))
    changes: Mapped[Optional[dict]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("idx_audit_logs_company", "company_id"),
        Index("idx_audit_logs_action", "action"),
    )
