"""Enumerations shared by the schema and the services."""

from enum import Enum


class OnboardingStage(str, Enum):
    ADMIN_CREATED = "ADMIN_CREATED"
    PAYMENT_PENDING = "PAYMENT_PENDING"
    PENDING_DOCUMENTS = "PENDING_DOCUMENTS"
    DOCUMENTS_SUBMITTED = "DOCUMENTS_SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED"
    KYC_IN_PROGRESS = "KYC_IN_PROGRESS"
    KYC_REVIEW = "KYC_REVIEW"
    AGREEMENT_DRAFT_SHARED = "AGREEMENT_DRAFT_SHARED"
    SIGNED_AGREEMENT_RECEIVED = "SIGNED_AGREEMENT_RECEIVED"
    FINAL_AGREEMENT_SHARED = "FINAL_AGREEMENT_SHARED"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"


class DocumentType(str, Enum):
    AADHAAR = "AADHAAR"
    PAN = "PAN"
    KYC = "KYC"
    CONTRACT = "CONTRACT"
    LICENSE = "LICENSE"
    CERTIFICATE = "CERTIFICATE"
    IDENTIFICATION = "IDENTIFICATION"
    FINANCIAL = "FINANCIAL"
    AGREEMENT_DRAFT = "AGREEMENT_DRAFT"
    AGREEMENT_SIGNED = "AGREEMENT_SIGNED"
    AGREEMENT_FINAL = "AGREEMENT_FINAL"
    OTHER = "OTHER"


# Document types that go through the KYC review sub-machine
KYC_DOCUMENT_TYPES = frozenset({DocumentType.KYC, DocumentType.AADHAAR, DocumentType.PAN})

# Types a client may upload themselves
CLIENT_UPLOAD_TYPES = KYC_DOCUMENT_TYPES | {DocumentType.AGREEMENT_SIGNED}


class DocumentStatus(str, Enum):
    UPLOADED = "UPLOADED"
    REVIEW_PENDING = "REVIEW_PENDING"
    PENDING_WITH_CLIENT = "PENDING_WITH_CLIENT"
    PENDING_WITH_ADMIN = "PENDING_WITH_ADMIN"
    VERIFIED = "VERIFIED"
    APPROVED = "APPROVED"  # system-approved (admin-owned agreement files)
    REJECTED = "REJECTED"


ACCEPTED_DOCUMENT_STATUSES = frozenset({DocumentStatus.VERIFIED, DocumentStatus.APPROVED})


class DocumentOwner(str, Enum):
    CLIENT = "CLIENT"
    ADMIN = "ADMIN"


class PaymentStatus(str, Enum):
    CREATED = "CREATED"
    PAID = "PAID"
    FAILED = "FAILED"


class RenewalStatus(str, Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
