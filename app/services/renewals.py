"""
Renewal reminders.

Runs once a day:
  1. Companies whose renewal date has passed are marked EXPIRED and told once.
  2. Companies whose renewal date is exactly N days away (N in the configured
     thresholds, default 30 and 7) get a reminder, unless the
     (company, N) reminder record already exists.

The record is written after the email is sent, so a crash in between can
repeat a reminder on the next run; reminders are at-least-once.
"""

from datetime import date
from typing import Iterable, Optional
from uuid import UUID

import structlog
from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.models import Company, RenewalReminder, RenewalStatus
from app.services import notifications
from app.services.audit import record_audit
from app.services.onboarding import get_company

logger = structlog.get_logger()


def days_until(renewal_date: date, today: date) -> int:
    return (renewal_date - today).days


async def _reminder_exists(session: AsyncSession, company_id: UUID, days_before: int) -> bool:
    found = await session.scalar(
        select(RenewalReminder.id).where(
            RenewalReminder.company_id == company_id,
            RenewalReminder.days_before == days_before,
        )
    )
    return found is not None


async def expire_lapsed_renewals(session: AsyncSession, today: date, mailer=None) -> dict:
    stats = {"expired": 0, "expiry_emails": 0, "failed": 0}
    result = await session.execute(
        select(Company.id).where(
            Company.renewal_date < today,
            or_(Company.renewal_status.is_(None), Company.renewal_status == RenewalStatus.ACTIVE),
        )
    )
    for company_id in list(result.scalars()):
        try:
            company = await session.get(Company, company_id)
            company.renewal_status = RenewalStatus.EXPIRED
            record_audit(
                session,
                "RENEWAL_EXPIRED",
                "Company",
                entity_id=company_id,
                company_id=company_id,
                changes={"renewal_date": company.renewal_date.isoformat()},
            )
            await session.commit()
            stats["expired"] += 1
            if await notifications.send_renewal_expired(company, mailer):
                stats["expiry_emails"] += 1
        except Exception as exc:
            await session.rollback()
            stats["failed"] += 1
            logger.error("renewals.expire.company_error", company_id=str(company_id), error=str(exc))
    return stats


async def send_due_reminders(
    session: AsyncSession,
    today: date,
    thresholds: Iterable[int],
    mailer=None,
) -> dict:
    thresholds = set(thresholds)
    stats = {"companies_checked": 0, "reminders_sent": 0, "reminders_skipped": 0, "failed": 0}

    result = await session.execute(
        select(Company.id).where(Company.renewal_date >= today).order_by(Company.renewal_date)
    )
    for company_id in list(result.scalars()):
        stats["companies_checked"] += 1
        try:
            company = await session.get(Company, company_id)
            days_before = days_until(company.renewal_date, today)
            if days_before not in thresholds:
                continue
            if await _reminder_exists(session, company_id, days_before):
                stats["reminders_skipped"] += 1
                continue

            if not await notifications.send_renewal_reminder(company, days_before, mailer):
                logger.warning(
                    "renewals.reminder.not_sent",
                    company_id=str(company_id),
                    days_before=days_before,
                )
                stats["failed"] += 1
                continue

            session.add(
                RenewalReminder(
                    company_id=company_id,
                    days_before=days_before,
                    renewal_date=company.renewal_date,
                )
            )
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.warning(
                    "renewals.reminder.record_exists",
                    company_id=str(company_id),
                    days_before=days_before,
                )
            stats["reminders_sent"] += 1
            logger.info(
                "renewals.reminder.sent", company_id=str(company_id), days_before=days_before
            )
        except Exception as exc:
            await session.rollback()
            stats["failed"] += 1
            logger.error("renewals.reminder.company_error", company_id=str(company_id), error=str(exc))
    return stats


async def run_daily_renewal_reminders(
    session: AsyncSession,
    today: Optional[date] = None,
    mailer=None,
    thresholds: Optional[Iterable[int]] = None,
) -> dict:
    today = today or date.today()
    thresholds = list(thresholds or get_settings().renewal_reminder_days)
    logger.info("renewals.run.start", today=today.isoformat(), thresholds=thresholds)

    stats = await expire_lapsed_renewals(session, today, mailer)
    reminder_stats = await send_due_reminders(session, today, thresholds, mailer)
    stats["failed"] += reminder_stats.pop("failed")
    stats.update(reminder_stats)

    logger.info("renewals.run.done", **stats)
    return stats


async def update_renewal(
    session: AsyncSession,
    company_id: UUID,
    renewal_date: date,
    actor_id: Optional[str] = None,
) -> Company:
    """Set a new renewal date and start a fresh reminder cycle."""
    company = await get_company(session, company_id)
    previous = company.renewal_date
    company.renewal_date = renewal_date
    company.renewal_status = RenewalStatus.ACTIVE
    await session.execute(delete(RenewalReminder).where(RenewalReminder.company_id == company_id))
    record_audit(
        session,
        "RENEWAL_UPDATED",
        "Company",
        entity_id=company_id,
        company_id=company_id,
        actor_id=actor_id,
        changes={
            "from": previous.isoformat() if previous else None,
            "to": renewal_date.isoformat(),
        },
    )
    await session.commit()
    logger.info("renewals.updated", company_id=str(company_id), renewal_date=renewal_date.isoformat())
    return company
