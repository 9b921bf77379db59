"""
Compliance Evaluator

A company is compliant when it holds at least one VERIFIED document for every
configured requirement. Status is recomputed on every call.
"""

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import DuplicateRequirement
from app.models import ComplianceRequirement, Document, DocumentStatus, DocumentType
from app.services.onboarding import get_company

logger = structlog.get_logger()


@dataclass
class ComplianceStatus:
    company_id: UUID
    required_document_types: list[str]
    approved_document_types: list[str]
    missing_document_types: list[str]
    is_compliant: bool


async def get_compliance_status(session: AsyncSession, company_id: UUID) -> ComplianceStatus:
    await get_company(session, company_id)

    required_rows = await session.execute(select(ComplianceRequirement.document_type))
    required = sorted({t.value for t in required_rows.scalars()})

    approved_rows = await session.execute(
        select(Document.document_type)
        .where(Document.company_id == company_id, Document.status == DocumentStatus.VERIFIED)
        .distinct()
    )
    approved = sorted({t.value for t in approved_rows.scalars()})

    missing = [t for t in required if t not in approved]
    return ComplianceStatus(
        company_id=company_id,
        required_document_types=required,
        approved_document_types=approved,
        missing_document_types=missing,
        is_compliant=not missing,
    )


async def list_requirements(session: AsyncSession) -> list[ComplianceRequirement]:
    result = await session.execute(
        select(ComplianceRequirement).order_by(ComplianceRequirement.document_type)
    )
    return list(result.scalars().all())


async def create_requirement(
    session: AsyncSession,
    document_type: DocumentType,
    name: str,
    description: Optional[str] = None,
) -> ComplianceRequirement:
    document_type = DocumentType(document_type)
    existing = await session.scalar(
        select(ComplianceRequirement).where(ComplianceRequirement.document_type == document_type)
    )
    if existing is not None:
        raise DuplicateRequirement(
            f"A compliance requirement for {document_type.value} already exists"
        )

    requirement = ComplianceRequirement(
        document_type=document_type, name=name, description=description
    )
    session.add(requirement)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise DuplicateRequirement(
            f"A compliance requirement for {document_type.value} already exists"
        )
    logger.info("compliance.requirement.created", document_type=document_type.value)
    return requirement
