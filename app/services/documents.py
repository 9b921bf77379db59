"""
Document uploads and KYC review.

Uploads are registered here and the file itself goes straight to R2 through
a presigned URL. Re-uploading a type creates a new version that points at the
one it replaces; nothing is overwritten or deleted.

KYC review states:
    UPLOADED -> REVIEW_PENDING / PENDING_WITH_CLIENT / PENDING_WITH_ADMIN
             -> VERIFIED | REJECTED
Rejecting or asking the client for a better copy puts the company back in
KYC_IN_PROGRESS; pending-with-admin keeps it in KYC_REVIEW.
"""

from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.errors import (
    ComplianceIncomplete,
    InvalidReviewTarget,
    InvalidUpload,
    NotFound,
    ReviewReasonRequired,
)
from app.core.storage import file_extension, generate_file_key, get_storage, sanitize_file_name
from app.models import (
    ACCEPTED_DOCUMENT_STATUSES,
    CLIENT_UPLOAD_TYPES,
    KYC_DOCUMENT_TYPES,
    Company,
    Document,
    DocumentOwner,
    DocumentStatus,
    DocumentType,
    OnboardingStage,
)
from app.models.schema import utcnow
from app.services import notifications, onboarding
from app.services.audit import record_audit
from app.services.compliance import get_compliance_status
from app.services.stage_graph import KYC_REVIEW_STAGES, KYC_UPLOAD_STAGES

logger = structlog.get_logger()

S = OnboardingStage

ALLOWED_MIME_TYPES = {
    ".pdf": "application/pdf",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
}

ADMIN_AGREEMENT_STAGES = {
    DocumentType.AGREEMENT_DRAFT: frozenset({S.KYC_REVIEW, S.AGREEMENT_DRAFT_SHARED}),
    DocumentType.AGREEMENT_FINAL: frozenset({S.SIGNED_AGREEMENT_RECEIVED}),
}

FINAL_REVIEW_STATUSES = frozenset({DocumentStatus.VERIFIED, DocumentStatus.REJECTED})


# =============================================================================
# HELPERS
# =============================================================================


async def get_document(session: AsyncSession, document_id: UUID) -> Document:
    document = await session.get(Document, document_id)
    if document is None:
        raise NotFound(f"Document {document_id} not found")
    return document


async def list_company_documents(
    session: AsyncSession, company_id: UUID, document_type: Optional[DocumentType] = None
) -> list[Document]:
    await onboarding.get_company(session, company_id)
    query = (
        select(Document)
        .where(Document.company_id == company_id)
        .order_by(Document.document_type, Document.version.desc())
    )
    if document_type:
        query = query.where(Document.document_type == document_type)
    result = await session.execute(query)
    return list(result.scalars().all())


def _validate_file(file_name: str, file_size: int) -> str:
    """Check extension and size; return the content type to sign the upload with."""
    ext = file_extension(file_name)
    if ext not in ALLOWED_MIME_TYPES:
        raise InvalidUpload(
            f"File type '{ext or file_name}' not allowed. "
            f"Allowed: {', '.join(sorted(ALLOWED_MIME_TYPES))}"
        )
    max_bytes = get_settings().max_upload_bytes
    if file_size <= 0:
        raise InvalidUpload("File is empty")
    if file_size > max_bytes:
        raise InvalidUpload(f"File exceeds the {max_bytes // (1024 * 1024)} MB limit")
    return ALLOWED_MIME_TYPES[ext]


async def _next_version(
    session: AsyncSession, company_id: UUID, document_type: DocumentType
) -> tuple[int, Optional[UUID]]:
    latest = await session.scalar(
        select(Document)
        .where(Document.company_id == company_id, Document.document_type == document_type)
        .order_by(Document.version.desc())
        .limit(1)
    )
    if latest is None:
        return 1, None
    return latest.version + 1, latest.id


async def _create_document(
    session: AsyncSession,
    company: Company,
    document_type: DocumentType,
    file_name: str,
    file_size: int,
    owner: DocumentOwner,
    status: DocumentStatus,
    storage,
) -> tuple[Document, str]:
    content_type = _validate_file(file_name, file_size)
    version, replaces_id = await _next_version(session, company.id, document_type)
    key = generate_file_key(company.id, document_type, file_name)
    upload_url = await (storage or get_storage()).presigned_upload_url(key, content_type)

    document = Document(
        company_id=company.id,
        document_type=document_type,
        owner=owner,
        status=status,
        file_name=sanitize_file_name(file_name),
        file_key=key,
        file_size=file_size,
        mime_type=content_type,
        version=version,
        replaces_id=replaces_id,
    )
    session.add(document)
    await session.flush()
    return document, upload_url


# =============================================================================
# CLIENT UPLOADS
# =============================================================================


async def register_client_upload(
    session: AsyncSession,
    company_id: UUID,
    document_type: DocumentType,
    file_name: str,
    file_size: int,
    actor_id: Optional[str] = None,
    storage=None,
    mailer=None,
) -> tuple[Document, str]:
    """Record a client upload and return it with a presigned PUT URL.

    KYC uploads move the company into KYC review. A signed agreement upload
    is confirmed immediately.
    """
    document_type = DocumentType(document_type)
    if document_type not in CLIENT_UPLOAD_TYPES:
        raise InvalidUpload(f"Clients cannot upload {document_type.value} documents")

    company = await onboarding.assert_not_active(session, company_id)
    if document_type in KYC_DOCUMENT_TYPES:
        await onboarding.assert_stage(
            session,
            company_id,
            KYC_UPLOAD_STAGES,
            "KYC documents can be uploaded only after payment is confirmed",
        )
    else:
        await onboarding.assert_stage(
            session,
            company_id,
            {S.AGREEMENT_DRAFT_SHARED},
            "The signed agreement can be uploaded only after the draft is shared",
        )

    document, upload_url = await _create_document(
        session,
        company,
        document_type,
        file_name,
        file_size,
        DocumentOwner.CLIENT,
        DocumentStatus.UPLOADED,
        storage,
    )
    record_audit(
        session,
        "DOCUMENT_UPLOADED",
        "Document",
        entity_id=document.id,
        company_id=company_id,
        document_id=document.id,
        actor_id=actor_id,
        changes={"document_type": document_type.value, "version": document.version},
    )

    stage_before = company.stage
    if document_type in KYC_DOCUMENT_TYPES:
        await onboarding.on_kyc_uploaded(session, company_id)
        await onboarding.move_to_kyc_review_after_upload(session, company_id)
        document.status = DocumentStatus.REVIEW_PENDING
    else:
        await onboarding.on_signed_agreement_received(session, company_id)

    await session.commit()
    logger.info(
        "documents.client_upload.registered",
        company_id=str(company_id),
        document_id=str(document.id),
        document_type=document_type.value,
        version=document.version,
    )

    if document_type == DocumentType.AGREEMENT_SIGNED and stage_before != company.stage:
        await notifications.send_signed_agreement_received(company, mailer)
    return document, upload_url


async def confirm_signed_agreement(
    session: AsyncSession,
    company_id: UUID,
    actor_id: Optional[str] = None,
    mailer=None,
) -> Company:
    """Mark the signed agreement as received (idempotent)."""
    company = await onboarding.assert_not_active(session, company_id)
    latest = await onboarding.latest_documents_by_type(
        session, company_id, [DocumentType.AGREEMENT_SIGNED]
    )
    if DocumentType.AGREEMENT_SIGNED not in latest:
        raise InvalidUpload("No signed agreement has been uploaded")

    stage_before = company.stage
    company = await onboarding.on_signed_agreement_received(session, company_id)
    if stage_before != company.stage:
        record_audit(
            session,
            "SIGNED_AGREEMENT_CONFIRMED",
            "Company",
            entity_id=company_id,
            company_id=company_id,
            actor_id=actor_id,
        )
    await session.commit()

    if stage_before != company.stage:
        await notifications.send_signed_agreement_received(company, mailer)
    return company


# =============================================================================
# ADMIN AGREEMENTS
# =============================================================================


async def register_admin_agreement(
    session: AsyncSession,
    company_id: UUID,
    document_type: DocumentType,
    file_name: str,
    file_size: int,
    actor_id: Optional[str] = None,
    storage=None,
) -> tuple[Document, str]:
    """Record an admin-uploaded agreement draft or final copy."""
    document_type = DocumentType(document_type)
    if document_type not in ADMIN_AGREEMENT_STAGES:
        raise InvalidUpload(f"Admins upload agreement drafts and finals, not {document_type.value}")

    company = await onboarding.assert_not_active(session, company_id)
    await onboarding.assert_stage(
        session,
        company_id,
        ADMIN_AGREEMENT_STAGES[document_type],
        f"{document_type.value} cannot be uploaded at this stage",
    )

    document, upload_url = await _create_document(
        session,
        company,
        document_type,
        file_name,
        file_size,
        DocumentOwner.ADMIN,
        DocumentStatus.APPROVED,
        storage,
    )
    record_audit(
        session,
        "AGREEMENT_UPLOADED",
        "Document",
        entity_id=document.id,
        company_id=company_id,
        document_id=document.id,
        actor_id=actor_id,
        changes={"document_type": document_type.value, "version": document.version},
    )
    await session.commit()
    return document, upload_url


async def share_agreement(
    session: AsyncSession,
    company_id: UUID,
    document_type: DocumentType,
    actor_id: Optional[str] = None,
    mailer=None,
) -> Company:
    """Share the latest draft or final agreement with the client."""
    document_type = DocumentType(document_type)
    if document_type not in ADMIN_AGREEMENT_STAGES:
        raise InvalidUpload(f"{document_type.value} is not an agreement that can be shared")

    await onboarding.assert_not_active(session, company_id)
    latest = await onboarding.latest_documents_by_type(session, company_id, [document_type])
    if document_type not in latest:
        raise InvalidUpload(f"Upload the {document_type.value} before sharing it")

    if document_type == DocumentType.AGREEMENT_DRAFT:
        company = await onboarding.on_agreement_draft_shared(session, company_id)
    else:
        company = await onboarding.on_final_agreement_shared(session, company_id)

    record_audit(
        session,
        "AGREEMENT_SHARED",
        "Document",
        entity_id=latest[document_type].id,
        company_id=company_id,
        document_id=latest[document_type].id,
        actor_id=actor_id,
        changes={"document_type": document_type.value},
    )
    await session.commit()

    if document_type == DocumentType.AGREEMENT_DRAFT:
        await notifications.send_agreement_draft(company, mailer)
    else:
        await notifications.send_agreement_final(company, mailer)
    return company


# =============================================================================
# KYC REVIEW
# =============================================================================


async def _review_target(
    session: AsyncSession, document_id: UUID, company_id: Optional[UUID]
) -> Document:
    document = await get_document(session, document_id)
    if company_id is not None and document.company_id != company_id:
        raise InvalidReviewTarget("Document does not belong to this company")
    if document.document_type not in KYC_DOCUMENT_TYPES:
        raise InvalidReviewTarget("Only KYC documents can be reviewed with this action")
    if document.owner != DocumentOwner.CLIENT:
        raise InvalidReviewTarget("Only client-uploaded KYC documents can be reviewed")
    if document.status in FINAL_REVIEW_STATUSES:
        raise InvalidReviewTarget(f"Document is already {document.status.value}")

    await onboarding.assert_not_active(session, document.company_id)
    await onboarding.assert_stage(
        session,
        document.company_id,
        KYC_REVIEW_STAGES,
        "KYC review is only allowed while KYC is in progress or under review",
    )
    return document


def _required_reason(reason: Optional[str], message: str) -> str:
    reason = (reason or "").strip()
    if not reason:
        raise ReviewReasonRequired(message)
    return reason


def _apply_review(
    document: Document,
    status: DocumentStatus,
    actor_id: Optional[str],
    notes: Optional[str],
    rejection_reason: Optional[str] = None,
) -> None:
    document.status = status
    document.review_notes = notes
    document.rejection_reason = rejection_reason
    document.reviewed_by = actor_id
    document.reviewed_at = utcnow()


async def all_latest_kyc_accepted(session: AsyncSession, company_id: UUID) -> bool:
    latest = await onboarding.latest_documents_by_type(session, company_id, KYC_DOCUMENT_TYPES)
    return bool(latest) and all(
        doc.status in ACCEPTED_DOCUMENT_STATUSES for doc in latest.values()
    )


async def approve_kyc_document(
    session: AsyncSession,
    document_id: UUID,
    company_id: Optional[UUID] = None,
    review_notes: Optional[str] = None,
    actor_id: Optional[str] = None,
    mailer=None,
) -> Document:
    document = await _review_target(session, document_id, company_id)
    notes = (review_notes or "").strip() or None
    _apply_review(document, DocumentStatus.VERIFIED, actor_id, notes)
    record_audit(
        session,
        "KYC_DOCUMENT_APPROVED",
        "Document",
        entity_id=document.id,
        company_id=document.company_id,
        document_id=document.id,
        actor_id=actor_id,
        changes={"status": DocumentStatus.VERIFIED.value, "review_notes": notes},
    )
    await session.flush()

    company = await onboarding.get_company(session, document.company_id)
    if company.stage == S.KYC_REVIEW and await all_latest_kyc_accepted(session, company.id):
        await onboarding.on_kyc_approved(session, company.id)
        logger.info("documents.kyc.all_approved", company_id=str(company.id))

    await session.commit()
    await notifications.send_kyc_approved(company, document, mailer)
    return document


async def reject_kyc_document(
    session: AsyncSession,
    document_id: UUID,
    reason: Optional[str],
    company_id: Optional[UUID] = None,
    actor_id: Optional[str] = None,
    mailer=None,
) -> Document:
    reason = _required_reason(reason, "A rejection reason is required")
    document = await _review_target(session, document_id, company_id)
    _apply_review(document, DocumentStatus.REJECTED, actor_id, reason, rejection_reason=reason)
    company = await onboarding.force_kyc_stage(session, document.company_id, S.KYC_IN_PROGRESS)
    record_audit(
        session,
        "KYC_DOCUMENT_REJECTED",
        "Document",
        entity_id=document.id,
        company_id=document.company_id,
        document_id=document.id,
        actor_id=actor_id,
        changes={"status": DocumentStatus.REJECTED.value, "reason": reason},
    )
    await session.commit()
    await notifications.send_kyc_rejected(company, document, reason, mailer)
    return document


async def mark_pending_with_client(
    session: AsyncSession,
    document_id: UUID,
    reason: Optional[str],
    company_id: Optional[UUID] = None,
    actor_id: Optional[str] = None,
    mailer=None,
) -> Document:
    reason = _required_reason(reason, "Explain what the client should provide")
    document = await _review_target(session, document_id, company_id)
    _apply_review(document, DocumentStatus.PENDING_WITH_CLIENT, actor_id, reason)
    company = await onboarding.force_kyc_stage(session, document.company_id, S.KYC_IN_PROGRESS)
    record_audit(
        session,
        "KYC_DOCUMENT_PENDING_WITH_CLIENT",
        "Document",
        entity_id=document.id,
        company_id=document.company_id,
        document_id=document.id,
        actor_id=actor_id,
        changes={"status": DocumentStatus.PENDING_WITH_CLIENT.value, "reason": reason},
    )
    await session.commit()
    await notifications.send_kyc_rejected(company, document, reason, mailer)
    return document


async def mark_pending_with_admin(
    session: AsyncSession,
    document_id: UUID,
    review_notes: Optional[str] = None,
    company_id: Optional[UUID] = None,
    actor_id: Optional[str] = None,
) -> Document:
    document = await _review_target(session, document_id, company_id)
    notes = (review_notes or "").strip() or None
    _apply_review(document, DocumentStatus.PENDING_WITH_ADMIN, actor_id, notes)
    await onboarding.force_kyc_stage(session, document.company_id, S.KYC_REVIEW)
    record_audit(
        session,
        "KYC_DOCUMENT_PENDING_WITH_ADMIN",
        "Document",
        entity_id=document.id,
        company_id=document.company_id,
        document_id=document.id,
        actor_id=actor_id,
        changes={"status": DocumentStatus.PENDING_WITH_ADMIN.value, "review_notes": notes},
    )
    await session.commit()
    return document


async def complete_kyc_review(
    session: AsyncSession,
    company_id: UUID,
    actor_id: Optional[str] = None,
) -> Company:
    """Admin sign-off on KYC, allowed only once the company is compliant."""
    await onboarding.assert_not_active(session, company_id)
    await onboarding.assert_stage(
        session, company_id, {S.KYC_REVIEW}, "KYC review can only be completed from KYC review"
    )
    status = await get_compliance_status(session, company_id)
    if not status.is_compliant:
        raise ComplianceIncomplete(
            "Missing verified documents: " + ", ".join(status.missing_document_types)
        )

    company = await onboarding.on_kyc_approved(session, company_id)
    record_audit(
        session,
        "KYC_REVIEW_COMPLETED",
        "Company",
        entity_id=company_id,
        company_id=company_id,
        actor_id=actor_id,
    )
    await session.commit()
    return company


# =============================================================================
# DOWNLOADS
# =============================================================================


async def download_url(
    session: AsyncSession,
    document_id: UUID,
    company_id: Optional[UUID] = None,
    storage=None,
) -> str:
    document = await get_document(session, document_id)
    if company_id is not None and document.company_id != company_id:
        raise NotFound(f"Document {document_id} not found")
    return await (storage or get_storage()).presigned_download_url(
        document.file_key, filename=document.file_name
    )
