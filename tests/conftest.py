"""
Pytest configuration and fixtures for the onboarding API tests.

Fixtures provide:
- An in-memory SQLite database (aiosqlite) with the full schema
- Fake email, storage and PDF renderer that record what they were given
- Factories for companies, documents and payments at any stage
"""

import os
import sys
from datetime import date
from decimal import Decimal

import pytest

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Settings are cached on first use, so these must be set before app imports
WEBHOOK_SECRET = "whsec_test_secret"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = WEBHOOK_SECRET
os.environ["RESEND_API_KEY"] = ""
os.environ["SCHEDULER_ENABLED"] = "false"

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.models import (
    Base,
    Company,
    Document,
    DocumentOwner,
    DocumentStatus,
    DocumentType,
    OnboardingStage,
    Payment,
    PaymentStatus,
)
from app.models.schema import utcnow


# =============================================================================
# Fakes
# =============================================================================

class FakeMailer:
    """Records every email instead of calling Resend."""

    def __init__(self, result: bool = True):
        self.result = result
        self.sent = []

    async def send(self, to, subject, html, text=None, attachments=None):
        self.sent.append({
            "to": to,
            "subject": subject,
            "html": html,
            "attachments": list(attachments or []),
        })
        return self.result

    @property
    def subjects(self):
        return [m["subject"] for m in self.sent]


class FakeStorage:
    """In-memory stand-in for R2."""

    def __init__(self, fail_puts: bool = False):
        self.fail_puts = fail_puts
        self.objects = {}
        self.upload_urls = []

    async def presigned_upload_url(self, key, content_type):
        url = f"https://r2.test/upload/{key}?type={content_type}"
        self.upload_urls.append(url)
        return url

    async def presigned_download_url(self, key, filename=None):
        return f"https://r2.test/download/{key}"

    async def put_object(self, key, body, content_type):
        if self.fail_puts:
            raise RuntimeError("R2 unavailable")
        self.objects[key] = body


def fake_renderer(context):
    return b"%PDF-1.4 " + context["invoice_number"].encode()


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


# =============================================================================
# Fake Integrations
# =============================================================================

@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def renderer():
    return fake_renderer


# =============================================================================
# Factories
# =============================================================================

@pytest.fixture
def make_company(session):
    """Factory for companies seeded directly at a stage."""
    async def _create(stage=OnboardingStage.ADMIN_CREATED, **fields):
        data = {
            "name": "Acme Traders Pvt Ltd",
            "contact_email": "ops@acme.test",
            "contact_name": "Asha Rao",
            "state": "Karnataka",
        }
        data.update(fields)
        company = Company(**data)
        company._stage = stage
        if stage == OnboardingStage.ACTIVE:
            company.activation_date = utcnow()
        session.add(company)
        await session.commit()
        return company
    return _create


@pytest.fixture
def make_document(session):
    """Factory for document rows without going through the upload flow."""
    async def _create(
        company,
        document_type=DocumentType.AADHAAR,
        status=DocumentStatus.REVIEW_PENDING,
        owner=DocumentOwner.CLIENT,
        version=1,
    ):
        document = Document(
            company_id=company.id,
            document_type=document_type,
            owner=owner,
            status=status,
            file_name="scan.pdf",
            file_key=f"company/{company.id}/kyc/{document_type.value.lower()}-{version}.pdf",
            file_size=2048,
            mime_type="application/pdf",
            version=version,
        )
        session.add(document)
        await session.commit()
        return document
    return _create


@pytest.fixture
def make_payment(session):
    """Factory for payments, CREATED by default."""
    async def _create(company, amount="1000.00", status=PaymentStatus.CREATED, provider_payment_id=None):
        payment = Payment(
            company_id=company.id,
            amount=Decimal(amount),
            currency="INR",
            status=status,
            provider="razorpay",
            provider_payment_id=provider_payment_id,
            provider_link_id="plink_test",
            payment_link="https://rzp.io/i/test",
            paid_at=utcnow() if status == PaymentStatus.PAID else None,
        )
        session.add(payment)
        await session.commit()
        return payment
    return _create


@pytest.fixture
def today():
    return date(2026, 10, 19)
