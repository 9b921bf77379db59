"""
Company lifecycle endpoints (admin).

- POST  /v1/companies                         - Create a company
- GET   /v1/companies                         - List companies
- GET   /v1/companies/{id}                    - Company detail
- PATCH /v1/companies/{id}                    - Update profile
- POST  /v1/companies/{id}/stage              - Manual stage change
- GET   /v1/companies/{id}/activation         - Activation eligibility
- POST  /v1/companies/{id}/activate           - Activate
- PUT   /v1/companies/{id}/renewal            - Set renewal date
- GET   /v1/companies/{id}/audit-logs         - Audit trail
"""

from datetime import date, datetime
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.helpers import CompanyResponse, get_actor_id
from app.core.database import get_db
from app.models import OnboardingStage
from app.services import audit, companies, onboarding, renewals
from app.services.stage_graph import successors

router = APIRouter(prefix="/companies", tags=["Companies"])


# =============================================================================
# Request/Response Models
# =============================================================================


class CompanyCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    contact_email: EmailStr
    contact_name: Optional[str] = None
    phone: Optional[str] = None
    gstin: Optional[str] = Field(None, min_length=15, max_length=15)
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    billing_name: Optional[str] = None
    billing_address: Optional[str] = None
    renewal_date: Optional[date] = None


class CompanyUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    contact_email: Optional[EmailStr] = None
    contact_name: Optional[str] = None
    phone: Optional[str] = None
    gstin: Optional[str] = Field(None, min_length=15, max_length=15)
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    billing_name: Optional[str] = None
    billing_address: Optional[str] = None


class StageUpdateRequest(BaseModel):
    stage: OnboardingStage


class RenewalUpdateRequest(BaseModel):
    renewal_date: date


class ActivationStatusResponse(BaseModel):
    company_id: UUID
    stage: OnboardingStage
    can_activate: bool
    blockers: list[str]
    next_stages: list[OnboardingStage]


class AuditLogResponse(BaseModel):
    id: UUID
    actor_id: Optional[str] = None
    action: str
    entity_type: str
    entity_id: Optional[str] = None
    document_id: Optional[UUID] = None
    changes: Optional[dict[str, Any]] = None
    created_at: datetime

    model_config = {"from_attributes": True}


# =============================================================================
# Endpoints
# =============================================================================


@router.post("", response_model=CompanyResponse, status_code=status.HTTP_201_CREATED)
async def create_company(
    request: CompanyCreateRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    data = request.model_dump()
    company = await companies.create_company(
        db,
        name=data.pop("name"),
        contact_email=data.pop("contact_email"),
        renewal_date=data.pop("renewal_date"),
        actor_id=actor_id,
        **data,
    )
    return CompanyResponse.build(company)


@router.get("", response_model=list[CompanyResponse])
async def list_companies(
    stage: Optional[OnboardingStage] = Query(None, description="Filter by onboarding stage"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    rows = await companies.list_companies(db, stage=stage, limit=limit, offset=offset)
    return [CompanyResponse.build(c) for c in rows]


@router.get("/{company_id}", response_model=CompanyResponse)
async def get_company(company_id: UUID, db: AsyncSession = Depends(get_db)):
    return CompanyResponse.build(await onboarding.get_company(db, company_id))


@router.patch("/{company_id}", response_model=CompanyResponse)
async def update_company(
    company_id: UUID,
    request: CompanyUpdateRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    company = await companies.update_company_profile(
        db, company_id, request.model_dump(exclude_unset=True), actor_id=actor_id
    )
    return CompanyResponse.build(company)


@router.post("/{company_id}/stage", response_model=CompanyResponse)
async def update_stage(
    company_id: UUID,
    request: StageUpdateRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    company = await onboarding.admin_update_stage(db, company_id, request.stage, actor_id=actor_id)
    return CompanyResponse.build(company)


@router.get("/{company_id}/activation", response_model=ActivationStatusResponse)
async def activation_status(company_id: UUID, db: AsyncSession = Depends(get_db)):
    company = await onboarding.get_company(db, company_id)
    blockers = await onboarding.activation_blockers(db, company)
    return ActivationStatusResponse(
        company_id=company.id,
        stage=company.stage,
        can_activate=not blockers,
        blockers=blockers,
        next_stages=sorted(successors(company.stage), key=lambda s: s.value),
    )


@router.post("/{company_id}/activate", response_model=CompanyResponse)
async def activate_company(
    company_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    company = await onboarding.activate_company(db, company_id, actor_id=actor_id)
    return CompanyResponse.build(company)


@router.put("/{company_id}/renewal", response_model=CompanyResponse)
async def update_renewal(
    company_id: UUID,
    request: RenewalUpdateRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    company = await renewals.update_renewal(db, company_id, request.renewal_date, actor_id=actor_id)
    return CompanyResponse.build(company)


@router.get("/{company_id}/audit-logs", response_model=list[AuditLogResponse])
async def company_audit_logs(
    company_id: UUID,
    action: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    await onboarding.get_company(db, company_id)
    return await audit.list_audit_logs(db, company_id=company_id, action=action, limit=limit)
