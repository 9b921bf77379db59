"""
Email sender using Resend.

Sending is best-effort: a missing API key or a provider failure is logged and
reported as ``False``, never raised to the caller.
"""

import asyncio
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Sequence

import resend
import structlog

from app.core.config import get_settings

logger = structlog.get_logger()


@dataclass
class Attachment:
    filename: str
    content: bytes


class EmailSender:
    def __init__(self, api_key: Optional[str] = None, from_address: Optional[str] = None):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.resend_api_key
        self.from_address = from_address or settings.email_from

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def send(
        self,
        to: str,
        subject: str,
        html: str,
        text: Optional[str] = None,
        attachments: Optional[Sequence[Attachment]] = None,
    ) -> bool:
        if not self.enabled:
            logger.info("email.skipped", reason="RESEND_API_KEY not configured", to=to, subject=subject)
            return False

        params = {
            "from": self.from_address,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        if text:
            params["text"] = text
        if attachments:
            params["attachments"] = [
                {"filename": a.filename, "content": list(a.content)} for a in attachments
            ]

        resend.api_key = self.api_key
        try:
            response = await asyncio.to_thread(resend.Emails.send, params)
        except Exception as exc:
            logger.error("email.send_failed", to=to, subject=subject, error=str(exc))
            return False

        logger.info(
            "email.sent",
            to=to,
            subject=subject,
            email_id=response.get("id") if isinstance(response, dict) else None,
            attachments=len(attachments or []),
        )
        return True


@lru_cache
def get_mailer() -> EmailSender:
    return EmailSender()
