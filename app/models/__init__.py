"""Database models for the onboarding API"""

from .enums import (
    ACCEPTED_DOCUMENT_STATUSES,
    CLIENT_UPLOAD_TYPES,
    KYC_DOCUMENT_TYPES,
    DocumentOwner,
    DocumentStatus,
    DocumentType,
    OnboardingStage,
    PaymentStatus,
    RenewalStatus,
)
from .schema import (
    AuditLog,
    Base,
    Company,
    ComplianceRequirement,
    Document,
    Invoice,
    Payment,
    RenewalReminder,
)

__all__ = [
    "ACCEPTED_DOCUMENT_STATUSES",
    "CLIENT_UPLOAD_TYPES",
    "KYC_DOCUMENT_TYPES",
    "AuditLog",
    "Base",
    "Company",
    "ComplianceRequirement",
    "Document",
    "DocumentOwner",
    "DocumentStatus",
    "DocumentType",
    "Invoice",
    "OnboardingStage",
    "Payment",
    "PaymentStatus",
    "RenewalReminder",
    "RenewalStatus",
]
