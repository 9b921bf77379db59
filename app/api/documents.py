"""
Document and KYC review endpoints.

Client:
- POST /v1/companies/{id}/documents/uploads                   - Register upload, get presigned URL
- POST /v1/companies/{id}/documents/signed-agreement/confirm  - Confirm signed agreement

Admin:
- GET  /v1/companies/{id}/documents                           - List documents
- POST /v1/companies/{id}/documents/agreements                - Register agreement draft/final
- POST /v1/companies/{id}/documents/agreements/{type}/share   - Share agreement with client
- POST /v1/companies/{id}/documents/{doc_id}/approve          - Approve KYC document
- POST /v1/companies/{id}/documents/{doc_id}/reject           - Reject KYC document
- POST /v1/companies/{id}/documents/{doc_id}/pending-client   - Ask client for a better copy
- POST /v1/companies/{id}/documents/{doc_id}/pending-admin    - Internal verification needed
- POST /v1/companies/{id}/documents/kyc/complete              - Complete KYC review
- GET  /v1/companies/{id}/documents/{doc_id}/download         - Presigned download URL
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.helpers import CompanyResponse, DocumentResponse, UrlResponse, get_actor_id
from app.core.config import get_settings
from app.core.database import get_db
from app.models import DocumentType
from app.services import documents

router = APIRouter(prefix="/companies/{company_id}/documents", tags=["Documents"])


# =============================================================================
# Request/Response Models
# =============================================================================


class UploadRequest(BaseModel):
    document_type: DocumentType
    file_name: str = Field(..., min_length=1, max_length=255)
    file_size: int = Field(..., gt=0, description="Size in bytes")


class UploadResponse(BaseModel):
    document: DocumentResponse
    upload_url: str
    expires_in: int


class ReviewNotesRequest(BaseModel):
    review_notes: Optional[str] = None


class ReviewReasonRequest(BaseModel):
    reason: Optional[str] = Field(None, description="Required; shown to the client")


def _upload_response(document, upload_url: str) -> UploadResponse:
    return UploadResponse(
        document=DocumentResponse.model_validate(document),
        upload_url=upload_url,
        expires_in=get_settings().presigned_url_ttl,
    )


# =============================================================================
# Uploads
# =============================================================================


@router.get("", response_model=list[DocumentResponse])
async def list_documents(
    company_id: UUID,
    document_type: Optional[DocumentType] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await documents.list_company_documents(db, company_id, document_type)


@router.post("/uploads", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def register_upload(
    company_id: UUID,
    request: UploadRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    document, upload_url = await documents.register_client_upload(
        db,
        company_id,
        request.document_type,
        request.file_name,
        request.file_size,
        actor_id=actor_id,
    )
    return _upload_response(document, upload_url)


@router.post("/signed-agreement/confirm", response_model=CompanyResponse)
async def confirm_signed_agreement(
    company_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    company = await documents.confirm_signed_agreement(db, company_id, actor_id=actor_id)
    return CompanyResponse.build(company)


@router.post("/agreements", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def register_agreement(
    company_id: UUID,
    request: UploadRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    document, upload_url = await documents.register_admin_agreement(
        db,
        company_id,
        request.document_type,
        request.file_name,
        request.file_size,
        actor_id=actor_id,
    )
    return _upload_response(document, upload_url)


@router.post("/agreements/{document_type}/share", response_model=CompanyResponse)
async def share_agreement(
    company_id: UUID,
    document_type: DocumentType,
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    company = await documents.share_agreement(db, company_id, document_type, actor_id=actor_id)
    return CompanyResponse.build(company)


# =============================================================================
# KYC Review
# =============================================================================


@router.post("/kyc/complete", response_model=CompanyResponse)
async def complete_kyc_review(
    company_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    company = await documents.complete_kyc_review(db, company_id, actor_id=actor_id)
    return CompanyResponse.build(company)


@router.post("/{document_id}/approve", response_model=DocumentResponse)
async def approve_document(
    company_id: UUID,
    document_id: UUID,
    request: ReviewNotesRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    return await documents.approve_kyc_document(
        db, document_id, company_id=company_id, review_notes=request.review_notes, actor_id=actor_id
    )


@router.post("/{document_id}/reject", response_model=DocumentResponse)
async def reject_document(
    company_id: UUID,
    document_id: UUID,
    request: ReviewReasonRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    return await documents.reject_kyc_document(
        db, document_id, request.reason, company_id=company_id, actor_id=actor_id
    )


@router.post("/{document_id}/pending-client", response_model=DocumentResponse)
async def pending_with_client(
    company_id: UUID,
    document_id: UUID,
    request: ReviewReasonRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    return await documents.mark_pending_with_client(
        db, document_id, request.reason, company_id=company_id, actor_id=actor_id
    )


@router.post("/{document_id}/pending-admin", response_model=DocumentResponse)
async def pending_with_admin(
    company_id: UUID,
    document_id: UUID,
    request: ReviewNotesRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    return await documents.mark_pending_with_admin(
        db, document_id, request.review_notes, company_id=company_id, actor_id=actor_id
    )


@router.get("/{document_id}/download", response_model=UrlResponse)
async def download_document(
    company_id: UUID,
    document_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    url = await documents.download_url(db, document_id, company_id=company_id)
    return UrlResponse(url=url, expires_in=get_settings().presigned_url_ttl)
