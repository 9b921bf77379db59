"""Company records: creation, profile updates and dashboard counts. Stage is never touched here."""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Company, OnboardingStage, Payment, PaymentStatus, RenewalStatus
from app.models.schema import utcnow
from app.services.audit import record_audit
from app.services.onboarding import assert_not_active

logger = structlog.get_logger()

PROFILE_FIELDS = (
    "name",
    "contact_email",
    "contact_name",
    "phone",
    "gstin",
    "address",
    "city",
    "state",
    "pincode",
    "billing_name",
    "billing_address",
)


async def create_company(
    session: AsyncSession,
    name: str,
    contact_email: str,
    renewal_date: Optional[date] = None,
    actor_id: Optional[str] = None,
    **profile,
) -> Company:
    unknown = set(profile) - set(PROFILE_FIELDS)
    if unknown:
        raise TypeError(f"Unknown company fields: {', '.join(sorted(unknown))}")

    company = Company(
        name=name,
        contact_email=contact_email,
        renewal_date=renewal_date,
        renewal_status=RenewalStatus.ACTIVE if renewal_date else None,
        **profile,
    )
    session.add(company)
    await session.flush()
    record_audit(
        session,
        "COMPANY_CREATED",
        "Company",
        entity_id=company.id,
        company_id=company.id,
        actor_id=actor_id,
        changes={"name": name, "contact_email": contact_email},
    )
    await session.commit()
    logger.info("companies.created", company_id=str(company.id), name=name)
    return company


async def update_company_profile(
    session: AsyncSession,
    company_id: UUID,
    changes: dict,
    actor_id: Optional[str] = None,
) -> Company:
    company = await assert_not_active(session, company_id)
    applied = {}
    for field, value in changes.items():
        if field not in PROFILE_FIELDS:
            continue
        if getattr(company, field) != value:
            setattr(company, field, value)
            applied[field] = value
    if applied:
        record_audit(
            session,
            "COMPANY_UPDATED",
            "Company",
            entity_id=company_id,
            company_id=company_id,
            actor_id=actor_id,
            changes=applied,
        )
        await session.commit()
    return company


async def list_companies(
    session: AsyncSession,
    stage: Optional[OnboardingStage] = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Company]:
    query = select(Company).order_by(Company.created_at.desc()).limit(limit).offset(offset)
    if stage:
        query = query.where(Company.stage == OnboardingStage(stage))
    result = await session.execute(query)
    return list(result.scalars().all())




# =============================================================================
# DASHBOARD
# =============================================================================


KYC_PENDING_STAGES = (OnboardingStage.KYC_IN_PROGRESS, OnboardingStage.KYC_REVIEW)
AGREEMENT_PENDING_STAGES = (
    OnboardingStage.AGREEMENT_DRAFT_SHARED,
    OnboardingStage.SIGNED_AGREEMENT_RECEIVED,
)


@dataclass
class DashboardStats:
    total_companies: int
    active_companies: int
    payment_pending: int
    kyc_pending: int
    agreements_pending: int
    ready_for_activation: int
    total_revenue: Decimal
    revenue_this_month: Decimal
    stage_counts: dict[str, int]


async def _paid_revenue(session: AsyncSession, since: Optional[datetime] = None) -> Decimal:
    query = select(func.sum(Payment.amount)).where(Payment.status == PaymentStatus.PAID)
    if since is not None:
        query = query.where(Payment.paid_at >= since)
    total = await session.scalar(query)
    return Decimal(str(total)) if total is not None else Decimal("0")


async def get_dashboard_stats(
    session: AsyncSession, now: Optional[datetime] = None
) -> DashboardStats:
    """Company counts per stage and revenue from PAID payments.

    Revenue is the taxable payment amount; "this month" starts at midnight
    UTC on the first of the current month.
    """
    now = now or utcnow()
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    result = await session.execute(
        select(Company._stage, func.count()).group_by(Company._stage)
    )
    stage_counts = {stage.value: 0 for stage in OnboardingStage}
    for stage, count in result.all():
        stage_counts[OnboardingStage(stage).value] = count

    def count_in(*stages: OnboardingStage) -> int:
        return sum(stage_counts[stage.value] for stage in stages)

    return DashboardStats(
        total_companies=sum(stage_counts.values()),
        active_companies=count_in(OnboardingStage.ACTIVE),
        payment_pending=count_in(OnboardingStage.PAYMENT_PENDING),
        kyc_pending=count_in(*KYC_PENDING_STAGES),
        agreements_pending=count_in(*AGREEMENT_PENDING_STAGES),
        ready_for_activation=count_in(OnboardingStage.FINAL_AGREEMENT_SHARED),
        total_revenue=await _paid_revenue(session),
        revenue_this_month=await _paid_revenue(session, since=month_start),
        stage_counts=stage_counts,
    )
