"""
Unit tests for the outbound integrations: Resend email, R2 storage and the
renewal scheduler. Nothing here talks to the network.
"""

import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

import resend

from app.core.config import Settings
from app.core.email import Attachment, EmailSender
from app.core.errors import StorageNotConfigured
from app.core.storage import ObjectStorage


class TestEmailSender:
    """Tests for EmailSender."""

    @pytest.mark.unit
    async def test_disabled_without_api_key(self):
        sender = EmailSender(api_key="")
        assert not sender.enabled
        assert await sender.send("a@b.test", "Hi", "<p>Hi</p>") is False

    @pytest.mark.unit
    async def test_sends_through_resend(self, monkeypatch):
        calls = []

        def fake_send(params):
            calls.append(params)
            return {"id": "email_123"}

        monkeypatch.setattr(resend.Emails, "send", fake_send)
        sender = EmailSender(api_key="re_test", from_address="Billing <billing@example.com>")

        sent = await sender.send(
            "client@acme.test", "Invoice", "<p>Attached</p>",
            attachments=[Attachment(filename="AC-2026-27-0001.pdf", content=b"%PDF")],
        )

        assert sent is True
        assert calls[0]["to"] == ["client@acme.test"]
        assert calls[0]["from"] == "Billing <billing@example.com>"
        assert calls[0]["attachments"] == [
            {"filename": "AC-2026-27-0001.pdf", "content": list(b"%PDF")}
        ]

    @pytest.mark.unit
    async def test_provider_failure_returns_false(self, monkeypatch):
        def boom(params):
            raise RuntimeError("rate limited")

        monkeypatch.setattr(resend.Emails, "send", boom)
        sender = EmailSender(api_key="re_test")
        assert await sender.send("client@acme.test", "Hi", "<p>Hi</p>") is False


class TestObjectStorage:
    """Tests for ObjectStorage presigning."""

    @pytest.mark.unit
    async def test_unconfigured_storage_raises(self):
        storage = ObjectStorage(Settings(r2_access_key_id=None, r2_secret_access_key=None))
        with pytest.raises(StorageNotConfigured):
            await storage.presigned_upload_url("company/x/kyc/a.pdf", "application/pdf")

    @pytest.mark.unit
    async def test_presigned_urls_are_local(self):
        """Presigning is a local computation; no request is made."""
        storage = ObjectStorage(Settings(
            r2_account_id="acct123",
            r2_access_key_id="AKIDEXAMPLE",
            r2_secret_access_key="secret",
            r2_bucket_name="docs",
            presigned_url_ttl=300,
        ))
        upload = await storage.presigned_upload_url("company/c1/kyc/abc.pdf", "application/pdf")
        download = await storage.presigned_download_url("company/c1/kyc/abc.pdf", "my scan.pdf")

        assert "acct123.r2.cloudflarestorage.com" in upload
        assert "company/c1/kyc/abc.pdf" in upload
        assert "Expires=300" in upload or "X-Amz-Expires=300" in upload
        assert "my_scan.pdf" in download


class TestScheduler:
    """Tests for scheduler registration."""

    @pytest.mark.unit
    async def test_daily_job_registered(self):
        from app.core.scheduler import scheduler, start_scheduler, stop_scheduler

        start_scheduler()
        try:
            job = scheduler.get_job("renewal_reminders_daily")
            assert job is not None
            assert "hour='2'" in str(job.trigger)
        finally:
            stop_scheduler()
