"""
Compliance endpoints.

- GET  /v1/compliance/requirements        - List requirements
- POST /v1/compliance/requirements        - Add a requirement
- GET  /v1/companies/{id}/compliance      - Compliance status for a company
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.models import DocumentType
from app.services import compliance

router = APIRouter(tags=["Compliance"])


class RequirementRequest(BaseModel):
    document_type: DocumentType
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None


class RequirementResponse(BaseModel):
    id: UUID
    document_type: DocumentType
    name: str
    description: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ComplianceStatusResponse(BaseModel):
    company_id: UUID
    required_document_types: list[str]
    approved_document_types: list[str]
    missing_document_types: list[str]
    is_compliant: bool

    model_config = {"from_attributes": True}


@router.get("/compliance/requirements", response_model=list[RequirementResponse])
async def list_requirements(db: AsyncSession = Depends(get_db)):
    return await compliance.list_requirements(db)


@router.post(
    "/compliance/requirements",
    response_model=RequirementResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_requirement(request: RequirementRequest, db: AsyncSession = Depends(get_db)):
    return await compliance.create_requirement(
        db, request.document_type, request.name, request.description
    )


@router.get("/companies/{company_id}/compliance", response_model=ComplianceStatusResponse)
async def compliance_status(company_id: UUID, db: AsyncSession = Depends(get_db)):
    return await compliance.get_compliance_status(db, company_id)
