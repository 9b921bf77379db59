"""
Unit tests for renewal reminders and expiry.
"""

import pytest
import sys
import os
from datetime import timedelta

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from sqlalchemy import func, select

from conftest import FakeMailer
from app.models import OnboardingStage, RenewalReminder, RenewalStatus
from app.services import renewals


async def _reminder_count(session, company_id=None):
    query = select(func.count()).select_from(RenewalReminder)
    if company_id:
        query = query.where(RenewalReminder.company_id == company_id)
    return await session.scalar(query)


class TestReminders:
    """Tests for the 30/7-day reminders."""

    @pytest.mark.unit
    async def test_seven_day_reminder_sent_once(self, session, make_company, mailer, today):
        company = await make_company(
            OnboardingStage.ACTIVE, renewal_date=today + timedelta(days=7),
            renewal_status=RenewalStatus.ACTIVE,
        )

        first = await renewals.run_daily_renewal_reminders(session, today=today, mailer=mailer)
        second = await renewals.run_daily_renewal_reminders(session, today=today, mailer=mailer)

        assert first["reminders_sent"] == 1
        assert second["reminders_sent"] == 0
        assert second["reminders_skipped"] == 1
        assert mailer.subjects == ["Your subscription renews in 7 days"]
        assert await _reminder_count(session, company.id) == 1

    @pytest.mark.unit
    async def test_thirty_then_seven(self, session, make_company, mailer, today):
        company = await make_company(
            OnboardingStage.ACTIVE, renewal_date=today + timedelta(days=30),
            renewal_status=RenewalStatus.ACTIVE,
        )
        await renewals.run_daily_renewal_reminders(session, today=today, mailer=mailer)
        await renewals.run_daily_renewal_reminders(
            session, today=today + timedelta(days=23), mailer=mailer
        )
        assert mailer.subjects == [
            "Your subscription renews in 30 days",
            "Your subscription renews in 7 days",
        ]
        assert await _reminder_count(session, company.id) == 2

    @pytest.mark.unit
    async def test_other_offsets_get_nothing(self, session, make_company, mailer, today):
        for days in (0, 6, 8, 29, 31):
            await make_company(
                OnboardingStage.ACTIVE, name=f"Co {days}",
                renewal_date=today + timedelta(days=days), renewal_status=RenewalStatus.ACTIVE,
            )
        stats = await renewals.run_daily_renewal_reminders(session, today=today, mailer=mailer)
        assert stats["companies_checked"] == 5
        assert stats["reminders_sent"] == 0
        assert mailer.sent == []

    @pytest.mark.unit
    async def test_failed_send_is_retried_next_run(self, session, make_company, today):
        company = await make_company(
            OnboardingStage.ACTIVE, renewal_date=today + timedelta(days=7),
            renewal_status=RenewalStatus.ACTIVE,
        )
        failing = FakeMailer(result=False)
        stats = await renewals.run_daily_renewal_reminders(session, today=today, mailer=failing)
        assert stats["failed"] == 1
        assert await _reminder_count(session, company.id) == 0

        working = FakeMailer()
        stats = await renewals.run_daily_renewal_reminders(session, today=today, mailer=working)
        assert stats["reminders_sent"] == 1
        assert await _reminder_count(session, company.id) == 1

    @pytest.mark.unit
    async def test_custom_thresholds(self, session, make_company, mailer, today):
        await make_company(
            OnboardingStage.ACTIVE, renewal_date=today + timedelta(days=1),
            renewal_status=RenewalStatus.ACTIVE,
        )
        stats = await renewals.run_daily_renewal_reminders(
            session, today=today, mailer=mailer, thresholds=[1]
        )
        assert stats["reminders_sent"] == 1


class TestExpiry:
    """Tests for lapsed renewals."""

    @pytest.mark.unit
    async def test_lapsed_renewal_expires_once(self, session, make_company, mailer, today):
        company = await make_company(
            OnboardingStage.ACTIVE, renewal_date=today - timedelta(days=1),
            renewal_status=RenewalStatus.ACTIVE,
        )

        first = await renewals.run_daily_renewal_reminders(session, today=today, mailer=mailer)
        second = await renewals.run_daily_renewal_reminders(session, today=today, mailer=mailer)

        assert first["expired"] == 1
        assert first["expiry_emails"] == 1
        assert second["expired"] == 0
        assert company.renewal_status == RenewalStatus.EXPIRED
        assert mailer.subjects == ["Your subscription has expired"]

    @pytest.mark.unit
    async def test_renewal_today_is_not_expired(self, session, make_company, mailer, today):
        company = await make_company(
            OnboardingStage.ACTIVE, renewal_date=today, renewal_status=RenewalStatus.ACTIVE
        )
        stats = await renewals.run_daily_renewal_reminders(session, today=today, mailer=mailer)
        assert stats["expired"] == 0
        assert company.renewal_status == RenewalStatus.ACTIVE

    @pytest.mark.unit
    async def test_companies_without_renewal_date_skipped(self, session, make_company, mailer, today):
        await make_company(OnboardingStage.KYC_REVIEW)
        stats = await renewals.run_daily_renewal_reminders(session, today=today, mailer=mailer)
        assert stats["expired"] == 0
        assert stats["companies_checked"] == 0


class TestUpdateRenewal:
    """Tests for update_renewal."""

    @pytest.mark.unit
    async def test_new_date_restarts_cycle(self, session, make_company, mailer, today):
        company = await make_company(
            OnboardingStage.ACTIVE, renewal_date=today + timedelta(days=7),
            renewal_status=RenewalStatus.ACTIVE,
        )
        await renewals.run_daily_renewal_reminders(session, today=today, mailer=mailer)
        assert await _reminder_count(session, company.id) == 1

        new_date = today + timedelta(days=372)
        await renewals.update_renewal(session, company.id, new_date, actor_id="admin-1")

        assert company.renewal_date == new_date
        assert company.renewal_status == RenewalStatus.ACTIVE
        assert await _reminder_count(session, company.id) == 0

    @pytest.mark.unit
    async def test_expired_company_reactivated(self, session, make_company, mailer, today):
        company = await make_company(
            OnboardingStage.ACTIVE, renewal_date=today - timedelta(days=3),
            renewal_status=RenewalStatus.EXPIRED,
        )
        await renewals.update_renewal(session, company.id, today + timedelta(days=365))
        assert company.renewal_status == RenewalStatus.ACTIVE


class TestDaysUntil:
    """Tests for days_until."""

    @pytest.mark.unit
    def test_days_until(self, today):
        assert renewals.days_until(today + timedelta(days=7), today) == 7
        assert renewals.days_until(today - timedelta(days=2), today) == -2
