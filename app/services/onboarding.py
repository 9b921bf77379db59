"""
Onboarding Coordinator

The only module that writes ``Company.stage``. Every write is checked against
the stage graph; business events go through the named lifecycle functions
below, never through ``transition`` directly.

Lifecycle events only flush. The caller owns the transaction, except for the
admin actions (``activate_company``, ``admin_update_stage``) which commit.
"""

from typing import Iterable, Optional
from uuid import UUID

import structlog
from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import (
    ActivationNotAllowed,
    InvalidTransition,
    NotFound,
    OnboardingLocked,
    StageMismatch,
)
from app.models import (
    ACCEPTED_DOCUMENT_STATUSES,
    KYC_DOCUMENT_TYPES,
    Company,
    Document,
    DocumentType,
    OnboardingStage,
    Payment,
    PaymentStatus,
)
from app.models.schema import utcnow
from app.services import notifications
from app.services.audit import record_audit
from app.services.stage_graph import can_transition, is_at_or_past, stage_label

logger = structlog.get_logger()

S = OnboardingStage


# =============================================================================
# PRIMITIVES
# =============================================================================


async def get_company(
    session: AsyncSession, company_id: UUID, for_update: bool = False
) -> Company:
    query = select(Company).where(Company.id == company_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await session.execute(query)
    company = result.scalar_one_or_none()
    if company is None:
        raise NotFound(f"Company {company_id} not found")
    return company


def _set_stage(company: Company, target: OnboardingStage) -> None:
    company._stage = target
    if target == S.ACTIVE:
        company.activation_date = utcnow()


async def transition(
    session: AsyncSession, company: Company, target: OnboardingStage
) -> OnboardingStage:
    """Move ``company`` to ``target`` if the stage graph allows it."""
    current = company.stage
    target = OnboardingStage(target)
    if not can_transition(current, target):
        raise InvalidTransition(
            f"Cannot move from '{stage_label(current)}' to '{stage_label(target)}'"
        )

    _set_stage(company, target)
    record_audit(
        session,
        "STAGE_CHANGED",
        "Company",
        entity_id=company.id,
        company_id=company.id,
        changes={"from": current.value, "to": target.value},
    )
    await session.flush()
    logger.info(
        "onboarding.stage.transition",
        company_id=str(company.id),
        from_stage=current.value,
        to_stage=target.value,
    )
    return company.stage


async def assert_stage(
    session: AsyncSession,
    company_id: UUID,
    allowed: Iterable[OnboardingStage],
    message: Optional[str] = None,
) -> Company:
    company = await get_company(session, company_id)
    allowed = frozenset(allowed)
    if company.stage not in allowed:
        raise StageMismatch(
            message
            or f"Action not allowed while onboarding is '{stage_label(company.stage)}'"
        )
    return company


async def assert_not_active(session: AsyncSession, company_id: UUID) -> Company:
    company = await get_company(session, company_id)
    if company.stage == S.ACTIVE:
        raise OnboardingLocked("Onboarding is complete; the company is already active")
    return company


async def _advance(
    session: AsyncSession,
    company_id: UUID,
    allowed: frozenset,
    target: OnboardingStage,
    message: str,
) -> Company:
    """Single-hop event: no-op at or past ``target``, else must start in ``allowed``."""
    company = await get_company(session, company_id, for_update=True)
    if is_at_or_past(company.stage, target):
        return company
    if company.stage not in allowed:
        raise StageMismatch(message)
    await transition(session, company, target)
    return company


# =============================================================================
# LIFECYCLE EVENTS
# =============================================================================


async def on_payment_requested(session: AsyncSession, company_id: UUID) -> Company:
    """A payment link was issued: ADMIN_CREATED -> PAYMENT_PENDING."""
    return await _advance(
        session,
        company_id,
        frozenset({S.ADMIN_CREATED}),
        S.PAYMENT_PENDING,
        "Payment can only be requested for a newly created company",
    )


async def on_payment_confirmed(session: AsyncSession, company_id: UUID) -> Company:
    """PAYMENT_PENDING -> PAYMENT_CONFIRMED -> KYC_IN_PROGRESS.

    A company left at PAYMENT_CONFIRMED by an interrupted earlier call is
    moved on to KYC_IN_PROGRESS.
    """
    company = await get_company(session, company_id, for_update=True)
    if is_at_or_past(company.stage, S.KYC_IN_PROGRESS):
        return company
    if company.stage not in (S.PAYMENT_PENDING, S.PAYMENT_CONFIRMED):
        raise StageMismatch(
            f"Payment confirmation requires '{stage_label(S.PAYMENT_PENDING)}', "
            f"company is '{stage_label(company.stage)}'"
        )
    if company.stage == S.PAYMENT_PENDING:
        await transition(session, company, S.PAYMENT_CONFIRMED)
    await transition(session, company, S.KYC_IN_PROGRESS)
    return company


async def on_kyc_uploaded(session: AsyncSession, company_id: UUID) -> Company:
    return await _advance(
        session,
        company_id,
        frozenset({S.PAYMENT_CONFIRMED, S.KYC_IN_PROGRESS, S.KYC_REVIEW}),
        S.KYC_IN_PROGRESS,
        "KYC documents can only be uploaded after payment is confirmed",
    )


async def move_to_kyc_review_after_upload(session: AsyncSession, company_id: UUID) -> Company:
    return await _advance(
        session,
        company_id,
        frozenset({S.KYC_IN_PROGRESS, S.KYC_REVIEW}),
        S.KYC_REVIEW,
        "KYC review can only start while KYC is in progress",
    )


async def on_kyc_approved(session: AsyncSession, company_id: UUID) -> Company:
    company = await get_company(session, company_id, for_update=True)
    if company.stage != S.KYC_REVIEW:
        raise StageMismatch(
            f"KYC approval requires '{stage_label(S.KYC_REVIEW)}', "
            f"company is '{stage_label(company.stage)}'"
        )
    await transition(session, company, S.AGREEMENT_DRAFT_SHARED)
    return company


async def on_agreement_draft_shared(session: AsyncSession, company_id: UUID) -> Company:
    return await _advance(
        session,
        company_id,
        frozenset({S.KYC_REVIEW, S.AGREEMENT_DRAFT_SHARED}),
        S.AGREEMENT_DRAFT_SHARED,
        "The agreement draft can only be shared after KYC review",
    )


async def on_signed_agreement_received(session: AsyncSession, company_id: UUID) -> Company:
    return await _advance(
        session,
        company_id,
        frozenset({S.AGREEMENT_DRAFT_SHARED, S.SIGNED_AGREEMENT_RECEIVED}),
        S.SIGNED_AGREEMENT_RECEIVED,
        "A signed agreement can only be received after the draft is shared",
    )


async def on_final_agreement_shared(session: AsyncSession, company_id: UUID) -> Company:
    company = await get_company(session, company_id, for_update=True)
    if company.stage != S.SIGNED_AGREEMENT_RECEIVED:
        raise StageMismatch(
            f"The final agreement requires '{stage_label(S.SIGNED_AGREEMENT_RECEIVED)}', "
            f"company is '{stage_label(company.stage)}'"
        )
    await transition(session, company, S.FINAL_AGREEMENT_SHARED)
    return company


async def force_kyc_stage(
    session: AsyncSession, company_id: UUID, target: OnboardingStage
) -> Company:
    """Review side effect: put the company back in KYC_IN_PROGRESS or KYC_REVIEW."""
    if target not in (S.KYC_IN_PROGRESS, S.KYC_REVIEW):
        raise InvalidTransition(f"'{stage_label(target)}' is not a KYC stage")
    company = await get_company(session, company_id, for_update=True)
    if company.stage != target:
        await transition(session, company, target)
    return company


# =============================================================================
# ACTIVATION
# =============================================================================


async def latest_documents_by_type(
    session: AsyncSession, company_id: UUID, types: Iterable[DocumentType]
) -> dict[DocumentType, Document]:
    """Highest-version document per type for a company."""
    result = await session.execute(
        select(Document)
        .where(Document.company_id == company_id, Document.document_type.in_(list(types)))
        .order_by(Document.version.desc(), Document.created_at.desc())
    )
    latest: dict[DocumentType, Document] = {}
    for document in result.scalars():
        latest.setdefault(document.document_type, document)
    return latest


async def activation_blockers(session: AsyncSession, company: Company) -> list[str]:
    """Reasons the company cannot be activated; empty when eligible."""
    blockers = []
    if company.stage != S.FINAL_AGREEMENT_SHARED:
        blockers.append(
            f"stage is '{stage_label(company.stage)}', "
            f"expected '{stage_label(S.FINAL_AGREEMENT_SHARED)}'"
        )

    has_paid = await session.scalar(
        select(
            exists().where(Payment.company_id == company.id, Payment.status == PaymentStatus.PAID)
        )
    )
    if not has_paid:
        blockers.append("no paid payment")

    latest_kyc = await latest_documents_by_type(session, company.id, KYC_DOCUMENT_TYPES)
    unverified = sorted(
        doc.document_type.value
        for doc in latest_kyc.values()
        if doc.status not in ACCEPTED_DOCUMENT_STATUSES
    )
    if unverified:
        blockers.append(f"KYC not verified: {', '.join(unverified)}")

    has_final = await session.scalar(
        select(
            exists().where(
                Document.company_id == company.id,
                Document.document_type == DocumentType.AGREEMENT_FINAL,
            )
        )
    )
    if not has_final:
        blockers.append("final agreement not uploaded")

    return blockers


async def can_activate_company(session: AsyncSession, company_id: UUID) -> bool:
    company = await get_company(session, company_id)
    return not await activation_blockers(session, company)


async def activate_company(
    session: AsyncSession,
    company_id: UUID,
    actor_id: Optional[str] = None,
    mailer=None,
) -> Company:
    company = await get_company(session, company_id, for_update=True)
    if company.stage == S.ACTIVE:
        raise ActivationNotAllowed("Company is already active")
    blockers = await activation_blockers(session, company)
    if blockers:
        raise ActivationNotAllowed("Cannot activate: " + "; ".join(blockers))

    await transition(session, company, S.ACTIVE)
    record_audit(
        session,
        "COMPANY_ACTIVATED",
        "Company",
        entity_id=company.id,
        company_id=company.id,
        actor_id=actor_id,
        changes={"activation_date": company.activation_date.isoformat()},
    )
    await session.commit()
    logger.info("onboarding.company.activated", company_id=str(company.id))

    await notifications.send_activation(company, mailer)
    return company


async def admin_update_stage(
    session: AsyncSession,
    company_id: UUID,
    target: OnboardingStage,
    actor_id: Optional[str] = None,
    mailer=None,
) -> Company:
    """Manual stage change by an admin. ACTIVE goes through activation checks."""
    target = OnboardingStage(target)
    if target == S.ACTIVE:
        return await activate_company(session, company_id, actor_id=actor_id, mailer=mailer)

    await assert_not_active(session, company_id)
    company = await get_company(session, company_id, for_update=True)
    previous = company.stage
    await transition(session, company, target)
    record_audit(
        session,
        "STAGE_UPDATED_BY_ADMIN",
        "Company",
        entity_id=company.id,
        company_id=company.id,
        actor_id=actor_id,
        changes={"from": previous.value, "to": target.value},
    )
    await session.commit()
    return company
