"""
API tests for the onboarding endpoints.

Runs the FastAPI app in-process over httpx's ASGI transport with the
database dependency pointed at the in-memory test engine. Email, R2 and
the PDF renderer are replaced with the fakes from conftest.
"""

import json
import pytest
import sys
import os
from decimal import Decimal

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

import httpx

from conftest import WEBHOOK_SECRET, fake_renderer
from app.core.database import get_db
from app.main import app
from app.models import OnboardingStage
from app.services import invoices
from app.services.razorpay import compute_signature

pytestmark = pytest.mark.api


@pytest.fixture
async def client(session_maker, mailer, storage, monkeypatch):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    monkeypatch.setattr("app.services.notifications.get_mailer", lambda: mailer)
    monkeypatch.setattr("app.services.documents.get_storage", lambda: storage)
    monkeypatch.setattr("app.services.invoices.get_storage", lambda: storage)
    monkeypatch.setattr("app.services.invoices.render_invoice_pdf", fake_renderer)

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


async def _create_company(client, **fields):
    body = {"name": "Acme Traders", "contact_email": "ops@acme.test", "state": "Karnataka"}
    body.update(fields)
    resp = await client.post("/v1/companies", json=body, headers={"X-Actor-Id": "admin-1"})
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestSystemEndpoints:
    """Tests for /v1/ping and /v1/health."""

    async def test_ping(self, client):
        resp = await client.get("/v1/ping")
        assert resp.status_code == 200

    async def test_health(self, client):
        resp = await client.get("/v1/health")
        assert resp.status_code == 200
        assert resp.json()["checks"]["database"] == "healthy"


class TestCompanyEndpoints:
    """Tests for /v1/companies."""

    async def test_create_company_starts_at_admin_created(self, client):
        data = await _create_company(client)
        assert data["stage"] == "ADMIN_CREATED"
        assert data["stage_label"] == "Created by admin"
        assert data["activation_date"] is None

    async def test_invalid_email_rejected(self, client):
        resp = await client.post("/v1/companies", json={"name": "X", "contact_email": "nope"})
        assert resp.status_code == 422

    async def test_unknown_company_404(self, client):
        resp = await client.get("/v1/companies/00000000-0000-0000-0000-000000000000")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "not_found"

    async def test_illegal_stage_change_is_400(self, client):
        company = await _create_company(client)
        resp = await client.post(
            f"/v1/companies/{company['id']}/stage", json={"stage": "KYC_REVIEW"}
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_transition"

    async def test_activation_status_lists_blockers(self, client):
        company = await _create_company(client)
        resp = await client.get(f"/v1/companies/{company['id']}/activation")
        data = resp.json()
        assert data["can_activate"] is False
        assert "no paid payment" in data["blockers"]
        assert set(data["next_stages"]) == {"PAYMENT_PENDING", "PENDING_DOCUMENTS", "REJECTED"}

    async def test_activate_refused(self, client):
        company = await _create_company(client)
        resp = await client.post(f"/v1/companies/{company['id']}/activate")
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "activation_not_allowed"

    async def test_audit_log_records_creation(self, client):
        company = await _create_company(client)
        resp = await client.get(f"/v1/companies/{company['id']}/audit-logs")
        actions = [entry["action"] for entry in resp.json()]
        assert "COMPANY_CREATED" in actions


class TestComplianceEndpoints:
    """Tests for compliance requirements and status."""

    async def test_requirement_and_status(self, client):
        resp = await client.post(
            "/v1/compliance/requirements", json={"document_type": "PAN", "name": "PAN card"}
        )
        assert resp.status_code == 201

        dup = await client.post(
            "/v1/compliance/requirements", json={"document_type": "PAN", "name": "PAN card"}
        )
        assert dup.status_code == 409

        company = await _create_company(client)
        status = (await client.get(f"/v1/companies/{company['id']}/compliance")).json()
        assert status["missing_document_types"] == ["PAN"]
        assert status["is_compliant"] is False


class TestWebhookEndpoint:
    """Tests for POST /v1/webhooks/razorpay."""

    async def test_missing_signature_is_401(self, client):
        resp = await client.post("/v1/webhooks/razorpay", content=b'{"event":"payment.captured"}')
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_signature"

    async def test_signed_webhook_confirms_payment(self, client, make_company, make_payment, mailer, storage):
        company = await make_company(OnboardingStage.PAYMENT_PENDING)
        await make_payment(company)

        body = json.dumps({
            "event": "payment_link.paid",
            "payload": {
                "payment_link": {"entity": {"notes": {"companyId": str(company.id)}}},
                "payment": {"entity": {"id": "pay_api_1"}},
            },
        }).encode()
        headers = {
            "Content-Type": "application/json",
            "X-Razorpay-Signature": compute_signature(body, WEBHOOK_SECRET),
        }

        resp = await client.post("/v1/webhooks/razorpay", content=body, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["status"] == "processed"

        again = await client.post("/v1/webhooks/razorpay", content=body, headers=headers)
        assert again.json()["status"] == "already_processed"

        detail = (await client.get(f"/v1/companies/{company.id}")).json()
        assert detail["stage"] == "KYC_IN_PROGRESS"

        invoices = (await client.get("/v1/invoices", params={"company_id": str(company.id)})).json()
        assert len(invoices) == 1
        assert len(storage.objects) == 1

    async def test_unhandled_event_acknowledged(self, client):
        body = b'{"event":"refund.processed","payload":{}}'
        resp = await client.post(
            "/v1/webhooks/razorpay",
            content=body,
            headers={"X-Razorpay-Signature": compute_signature(body, WEBHOOK_SECRET)},
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "ignored"


class TestDocumentEndpoints:
    """Tests for the upload and review endpoints."""

    async def test_upload_and_reject_requires_reason(self, client, make_company):
        company = await make_company(OnboardingStage.PAYMENT_CONFIRMED)
        resp = await client.post(
            f"/v1/companies/{company.id}/documents/uploads",
            json={"document_type": "AADHAAR", "file_name": "aadhaar.pdf", "file_size": 1024},
        )
        assert resp.status_code == 201, resp.text
        upload = resp.json()
        assert upload["upload_url"].startswith("https://r2.test/upload/")
        document_id = upload["document"]["id"]

        reject = await client.post(
            f"/v1/companies/{company.id}/documents/{document_id}/reject", json={"reason": ""}
        )
        assert reject.status_code == 400
        assert reject.json()["error"]["code"] == "review_reason_required"

        approve = await client.post(
            f"/v1/companies/{company.id}/documents/{document_id}/approve", json={}
        )
        assert approve.status_code == 200
        assert approve.json()["status"] == "VERIFIED"

        detail = (await client.get(f"/v1/companies/{company.id}")).json()
        assert detail["stage"] == "AGREEMENT_DRAFT_SHARED"


class TestInvoiceGenerationEndpoint:
    """Tests for POST /v1/payments/{id}/invoice."""

    async def test_invoice_created_after_failed_attempt(
        self, client, make_company, make_payment, monkeypatch
    ):
        build_invoice = invoices._build_invoice
        attempts = []

        def fails_once(*args, **kwargs):
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError("numbering unavailable")
            return build_invoice(*args, **kwargs)

        monkeypatch.setattr(invoices, "_build_invoice", fails_once)
        company = await make_company(OnboardingStage.PAYMENT_PENDING)
        payment = await make_payment(company)

        paid = await client.post(f"/v1/payments/{payment.id}/mark-paid", json={})
        assert paid.json()["status"] == "processed"
        assert paid.json()["invoice_id"] is None
        listed = await client.get("/v1/invoices", params={"company_id": str(company.id)})
        assert listed.json() == []

        first = await client.post(f"/v1/payments/{payment.id}/invoice")
        assert first.status_code == 200, first.text
        again = await client.post(f"/v1/payments/{payment.id}/invoice")
        assert again.json()["id"] == first.json()["id"]

        listed = await client.get("/v1/invoices", params={"company_id": str(company.id)})
        assert len(listed.json()) == 1

    async def test_unpaid_payment_refused(self, client, make_company, make_payment):
        company = await make_company(OnboardingStage.PAYMENT_PENDING)
        payment = await make_payment(company)
        resp = await client.post(f"/v1/payments/{payment.id}/invoice")
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "payment_state_error"


class TestDashboardEndpoint:
    """Tests for GET /v1/admin/dashboard/stats."""

    async def test_stats(self, client):
        await _create_company(client)
        resp = await client.get("/v1/admin/dashboard/stats")
        assert resp.status_code == 200
        data = resp.json()
        assert data["total_companies"] == 1
        assert data["stage_counts"]["ADMIN_CREATED"] == 1
        assert Decimal(str(data["total_revenue"])) == 0
