import asyncio
import pytest
import os
import sys
import time
import uuid
from datetime import datetime
from unittest.mock import patch
from zoneinfo import ZoneInfo

import httpx
from fastapi.testclient import TestClient

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import app as app_module
from graph.errors import CommunicationError
from tools.idempotency import Idem


class TestOnboardingWebhook:
    """Test the onboarding webhook endpoint."""

    @pytest.fixture(autouse=True)
    def isolate(self, monkeypatch):
        idem = Idem()
        idem.r = None
        monkeypatch.setattr(app_module, "idem", idem)

        self.mocks = {
            "provision": patch("tools.cloneops.provision_agent", return_value={"id": "agent_7"}).start(),
            "update_deal": patch("tools.zoho.update_deal", return_value={"status": "ok"}).start(),
            "render": patch("tools.documents.render_invoice_pdf", return_value="/tmp/documents/inv.pdf").start(),
            "email": patch("tools.zoho.send_invoice_email", return_value={"data": [{"code": "SUCCESS"}]}).start(),
            "slack": patch("tools.slack.send_onboarding_notification", return_value="ok").start(),
        }
        self.client = TestClient(app_module.app)
        yield
        patch.stopall()

    def deal(self, **overrides):
        payload = {
            "id": f"5725767{uuid.uuid4().int % 10**12}",
            "Deal_Name": "Smith & Partners LLP",
            "Agent_Archetype": "Gatekeeper",
            "Email": "office@smithpartners.com",
        }
        payload.update(overrides)
        return payload

    def test_success_returns_result(self):
        response = self.client.post("/api/onboarding/webhook", json=self.deal())

        assert response.status_code == 200
        body = response.json()
        assert body["provisioning_id"] == "agent_7"
        assert body["invoice_id"].startswith("inv_")
        assert body["document_path"] == "/tmp/documents/inv.pdf"
        assert body["email_dispatch_receipt"] == {"data": [{"code": "SUCCESS"}]}

    def test_validation_error_never_touches_collaborators(self):
        response = self.client.post("/api/onboarding/webhook", json={"Deal_Name": "Acme Law"})

        assert response.status_code == 500
        assert response.json() == {"error": "Missing required field: agent_archetype", "kind": "ValidationError"}
        for mock in self.mocks.values():
            mock.assert_not_called()

    def test_malformed_json_is_rejected(self):
        response = self.client.post("/api/onboarding/webhook", content=b"{not json",
                                    headers={"Content-Type": "application/json"})

        assert response.status_code == 500
        assert "error" in response.json()

    def test_email_failure_returns_upstream_error(self):
        self.mocks["email"].side_effect = CommunicationError("Zoho email failed (400): INVALID_DATA")

        response = self.client.post("/api/onboarding/webhook", json=self.deal())

        assert response.status_code == 500
        assert response.json() == {"error": "Zoho email failed (400): INVALID_DATA", "kind": "CommunicationError"}

    def test_duplicate_delivery_is_ignored(self):
        deal = self.deal()

        first = self.client.post("/api/onboarding/webhook", json=deal)
        second = self.client.post("/api/onboarding/webhook", json=deal)

        assert first.status_code == 200
        assert second.json()["status"] == "duplicate_ignored"
        assert self.mocks["email"].call_count == 1

    def test_failed_onboarding_can_be_retriggered(self):
        deal = self.deal()
        self.mocks["email"].side_effect = CommunicationError("Zoho email failed (500): boom")
        assert self.client.post("/api/onboarding/webhook", json=deal).status_code == 500

        self.mocks["email"].side_effect = None
        retry = self.client.post("/api/onboarding/webhook", json=deal)

        assert retry.status_code == 200
        assert "invoice_id" in retry.json()

    def test_value_error_after_claim_releases_deal(self):
        deal = self.deal()

        with patch("app.process_onboarding", side_effect=ValueError("bad amount")):
            response = self.client.post("/api/onboarding/webhook", json=deal)

        assert response.status_code == 500
        assert response.json()["kind"] == "ValidationError"
        assert app_module.idem.claim(deal["id"])

    def test_call_callbacks_answered_while_onboarding_runs(self):
        def slow_render(*args, **kwargs):
            time.sleep(1.5)
            return "/tmp/documents/inv.pdf"

        self.mocks["render"].side_effect = slow_render

        async def scenario():
            transport = httpx.ASGITransport(app=app_module.app)
            async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
                start = time.monotonic()
                onboarding = asyncio.ensure_future(client.post("/api/onboarding/webhook", json=self.deal()))
                await asyncio.sleep(0.2)
                call = await client.post("/calls/incoming", data={"CallSid": "CA9", "CallStatus": "ringing"})
                answered_after = time.monotonic() - start
                return call, answered_after, await onboarding

        call, answered_after, onboarding = asyncio.run(scenario())

        assert call.status_code == 200
        assert "<Dial" in call.text
        assert answered_after < 1.0
        assert onboarding.status_code == 200

    def test_demo_deals_are_not_deduplicated(self):
        deal = self.deal(id="DEMO-1")

        self.client.post("/api/onboarding/webhook", json=deal)
        second = self.client.post("/api/onboarding/webhook", json=deal)

        assert "invoice_id" in second.json()
        self.mocks["update_deal"].assert_not_called()

    def test_health(self):
        response = self.client.get("/health")

        assert response.status_code == 200
        assert response.json()["services"]["workflow"] == "ready"


class TestCallEndpoints:
    """Test the telephony webhooks."""

    def setup_method(self):
        self.client = TestClient(app_module.app)

    def at_hour(self, monkeypatch, hour):
        tz = ZoneInfo(app_module.call_router.config.timezone)
        monkeypatch.setattr(app_module.call_router, "clock", lambda: datetime(2026, 7, 14, hour, 5, tzinfo=tz))

    def test_incoming_call_before_cutoff(self, monkeypatch):
        self.at_hour(monkeypatch, 9)

        response = self.client.post("/calls/incoming", data={"CallSid": "CA123", "CallStatus": "ringing"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/xml")
        assert app_module.call_router.config.primary_number in response.text
        assert "action=" in response.text

    def test_incoming_call_after_cutoff(self, monkeypatch):
        self.at_hour(monkeypatch, 23)

        response = self.client.post("/calls/incoming", data={"CallStatus": "ringing"})

        assert app_module.call_router.config.fallback_number in response.text
        assert "action=" not in response.text

    def test_failover_on_no_answer(self):
        response = self.client.post("/calls/failover", data={"DialCallStatus": "no-answer"})

        assert response.headers["content-type"].startswith("text/xml")
        assert "<Say" in response.text
        assert app_module.call_router.config.fallback_number in response.text

    def test_completed_call_hangs_up(self):
        response = self.client.post("/calls/failover", data={"DialCallStatus": "completed"})

        assert "<Hangup" in response.text
        assert "<Dial" not in response.text

    def test_fallback_leg_callback_is_terminal(self):
        response = self.client.post("/calls/failover?leg=fallback", data={"DialCallStatus": "no-answer"})

        assert "<Hangup" in response.text
        assert "<Dial" not in response.text
