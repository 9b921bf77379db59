"""
Renewal Scheduler

Runs on APScheduler AsyncIOScheduler (Asia/Kolkata by default):
  - 02:00: expire lapsed renewals, send 30/7-day renewal reminders

Same service function as scripts/run_renewal_reminders.py.
"""

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from app.core.config import get_settings
from app.core.database import async_session_maker
from app.services.renewals import run_daily_renewal_reminders

logger = structlog.get_logger()

settings = get_settings()

scheduler = AsyncIOScheduler(timezone=settings.scheduler_timezone)


async def renewal_reminders_job() -> dict:
    """Daily renewal pass. Errors are logged; the job never raises."""
    logger.info("scheduler.renewal_reminders.start")
    stats: dict = {}
    try:
        async with async_session_maker() as session:
            stats = await run_daily_renewal_reminders(session)
    except Exception as exc:
        logger.error("scheduler.renewal_reminders.error", error=str(exc))
        stats["error"] = str(exc)

    logger.info("scheduler.renewal_reminders.done", **stats)
    return stats


def start_scheduler() -> None:
    """Register jobs and start the scheduler."""
    scheduler.add_job(
        renewal_reminders_job,
        CronTrigger(hour=settings.renewal_cron_hour, minute=0, timezone=settings.scheduler_timezone),
        id="renewal_reminders_daily",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(
        "scheduler.started",
        jobs=[j.id for j in scheduler.get_jobs()],
    )


def stop_scheduler() -> None:
    """Shut down the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("scheduler.stopped")
