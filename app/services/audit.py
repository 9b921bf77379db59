"""Audit trail for admin and system actions."""

from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import AuditLog


def record_audit(
    session: AsyncSession,
    action: str,
    entity_type: str,
    entity_id: Optional[Any] = None,
    company_id: Optional[UUID] = None,
    document_id: Optional[UUID] = None,
    actor_id: Optional[str] = None,
    changes: Optional[dict] = None,
) -> AuditLog:
    """Add an audit row to the session; it is written with the caller's commit."""
    entry = AuditLog(
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        company_id=company_id,
        document_id=document_id,
        actor_id=actor_id,
        changes=changes,
    )
    session.add(entry)
    return entry


async def list_audit_logs(
    session: AsyncSession,
    company_id: Optional[UUID] = None,
    action: Optional[str] = None,
    limit: int = 100,
) -> list[AuditLog]:
    query = select(AuditLog).order_by(AuditLog.created_at.desc()).limit(limit)
    if company_id:
        query = query.where(AuditLog.company_id == company_id)
    if action:
        query = query.where(AuditLog.action == action)
    result = await session.execute(query)
    return list(result.scalars().all())
