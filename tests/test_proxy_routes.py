"""
Tests for the proxy endpoints
Version: 2.0

The FastAPI app runs under TestClient; every upstream (n8n webhook and the
Apps Scripts) is served by one httpx.MockTransport handler.
"""

import hashlib
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from config import get_settings
from main import app
from security import login_rate_limiter
from services.upstream import UpstreamClient

settings = get_settings()


class FakeUpstream:
    """Records upstream requests and answers with the queued response."""

    def __init__(self):
        self.requests = []
        self.response = httpx.Response(200, json={"ok": True})
        self.error = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.response

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def last_json(self):
        return json.loads(self.last.content)


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def client(upstream):
    login_rate_limiter.reset()
    app.state.upstream = UpstreamClient(transport=httpx.MockTransport(upstream))
    with TestClient(app) as test_client:
        yield test_client


class TestGateway:

    def test_forwards_body_and_headers(self, client, upstream):
        upstream.response = httpx.Response(200, json={"ok": True, "request_id": "rid-1"})

        response = client.post("/api/n8n", json={"action": "booking_submit", "request_id": "rid-1"})

        assert response.status_code == 200
        assert response.json() == {"ok": True, "request_id": "rid-1"}
        assert str(upstream.last.url) == settings.N8N_WEBHOOK_URL
        assert upstream.last.headers["x-request-id"] == "rid-1"
        assert upstream.last.headers["x-app-key"] == "test-app-key"
        assert upstream.last_json()["action"] == "booking_submit"

    def test_upstream_status_is_preserved(self, client, upstream):
        upstream.response = httpx.Response(409, json={"key": "Ongoing Booking"})

        response = client.post("/api/n8n", json={"action": "booking_lock"})

        assert response.status_code == 409
        assert response.json() == {"key": "Ongoing Booking"}

    def test_idempotency_mismatch(self, client, upstream):
        upstream.response = httpx.Response(200, json={"ok": True, "request_id": "other"})

        response = client.post("/api/n8n", json={"action": "booking_submit", "request_id": "rid-1"})

        assert response.status_code == 500
        assert response.json() == {"ok": False, "message": "Idempotency key mismatch", "request_id": "rid-1"}

    def test_non_json_upstream_is_wrapped(self, client, upstream):
        upstream.response = httpx.Response(200, text="Workflow was started")

        response = client.post("/api/n8n", json={"action": "free_booking"})

        assert response.json() == {"message": "Workflow was started"}

    def test_invalid_json_upstream(self, client, upstream):
        upstream.response = httpx.Response(
            502, content=b"<html>", headers={"content-type": "application/json"}
        )

        response = client.post("/api/n8n", json={"action": "booking_lock"})

        assert response.status_code == 502
        assert response.json() == {"message": "Invalid response format from webhook"}

    def test_invalid_request_json(self, client, upstream):
        response = client.post(
            "/api/n8n", content=b"{nope", headers={"content-type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json() == {"ok": False, "message": "Invalid JSON"}
        assert upstream.requests == []

    def test_missing_webhook_url(self, client, upstream, monkeypatch):
        monkeypatch.setattr(settings, "N8N_WEBHOOK_URL", None)

        response = client.post("/api/n8n", json={"action": "booking_lock"})

        assert response.status_code == 500
        assert response.json()["message"] == "Server configuration error: No webhook URL set"
        assert upstream.requests == []

    def test_network_failure(self, client, upstream):
        upstream.error = httpx.ConnectError("refused")

        response = client.post("/api/n8n", json={"action": "booking_lock", "request_id": "rid-9"})

        assert response.status_code == 500
        assert response.json()["ok"] is False
        assert response.json()["request_id"] == "rid-9"


class TestLogin:

    def test_password_is_hashed(self, client, upstream):
        upstream.response = httpx.Response(
            200, json={"ok": True, "user": {"email": "asha@creativefuel.io", "name": "Asha", "role": "Creator"}}
        )

        response = client.post("/api/login", json={"email": " Asha@CreativeFuel.io", "password": "secret"})

        assert response.status_code == 200
        assert response.json()["user"]["name"] == "Asha"
        sent = upstream.last_json()
        assert sent == {
            "email": "asha@creativefuel.io",
            "password_hash": hashlib.sha256(b"secret").hexdigest(),
        }
        assert "secret" not in upstream.last.content.decode()

    def test_missing_fields(self, client, upstream):
        response = client.post("/api/login", json={"email": "a@b.c"})

        assert response.status_code == 400
        assert response.json()["message"] == "Missing email or password"
        assert upstream.requests == []

    def test_upstream_error_status(self, client, upstream):
        upstream.response = httpx.Response(403, json={"message": "Account disabled"})

        response = client.post("/api/login", json={"email": "a@b.c", "password": "x"})

        assert response.status_code == 403
        assert response.json() == {"ok": False, "message": "Account disabled"}

    def test_rejected_credentials_pass_through(self, client, upstream):
        upstream.response = httpx.Response(200, json={"ok": False, "message": "Invalid email or password"})

        response = client.post("/api/login", json={"email": "a@b.c", "password": "x"})

        assert response.status_code == 200
        assert response.json()["ok"] is False

    def test_rate_limited(self, client, upstream, monkeypatch):
        monkeypatch.setattr(login_rate_limiter, "limit", 2)

        for _ in range(2):
            client.post("/api/login", json={"email": "a@b.c", "password": "x"})
        response = client.post("/api/login", json={"email": "a@b.c", "password": "x"})

        assert response.status_code == 429
        assert response.json()["ok"] is False
        assert len(upstream.requests) == 2


class TestAttendance:

    def test_read(self, client, upstream):
        upstream.response = httpx.Response(200, json={"ok": True, "rows": []})

        response = client.get("/api/attendance", params={"employee": "Asha"})

        assert response.json() == {"ok": True, "rows": []}
        assert upstream.last.method == "GET"
        assert dict(upstream.last.url.params) == {"action": "read", "employee": "Asha"}

    def test_read_requires_employee(self, client):
        response = client.get("/api/attendance")
        assert response.status_code == 400
        assert response.json()["message"] == "Missing employee parameter"

    def test_write_defaults_key(self, client, upstream):
        body = {"action": "write", "date": "03 Jan 26", "employee": "Asha", "attendance": "present"}

        response = client.post("/api/attendance", json=body)

        assert response.status_code == 200
        assert upstream.last_json()["key"] == "03 Jan 26Asha"

    def test_write_missing_fields(self, client, upstream):
        response = client.post("/api/attendance", json={"action": "write", "date": "03 Jan 26"})

        assert response.status_code == 400
        assert response.json()["message"] == "Missing required fields: action, date, employee, attendance"
        assert upstream.requests == []

    def test_script_error(self, client, upstream):
        upstream.response = httpx.Response(500, text="Exception: sheet missing")

        response = client.get("/api/attendance", params={"employee": "Asha"})

        assert response.status_code == 500
        assert response.json() == {
            "ok": False,
            "message": "Google Apps Script error: 500",
            "error": "Exception: sheet missing",
        }

    def test_misconfigured(self, client, monkeypatch):
        monkeypatch.setattr(settings, "GOOGLE_ATTENDANCE_SCRIPT_URL", None)

        response = client.get("/api/attendance", params={"employee": "Asha"})

        assert response.status_code == 500
        assert response.json()["message"] == "Server misconfigured: GOOGLE_ATTENDANCE_SCRIPT_URL missing"


class TestMyDayAndConfig:

    def test_google_script_passes_identity(self, client, upstream):
        upstream.response = httpx.Response(200, json={"ok": True, "rows": []})

        response = client.get("/api/google-script", params={"employee": "Asha", "name": "Asha", "role": "creator"})

        assert response.json() == {"ok": True, "rows": []}
        params = dict(upstream.last.url.params)
        assert params["employee"] == "Asha"
        assert params["role"] == "creator"
        assert params["key"] == settings.BOOKING_API_KEY

    def test_google_script_non_json_is_empty_list(self, client, upstream):
        upstream.response = httpx.Response(200, text="<html>login</html>")

        response = client.get("/api/google-script", params={"employee": "Asha"})

        assert response.json() == []

    def test_config(self, client):
        response = client.get("/api/config")

        assert response.status_code == 200
        assert response.json()["google_myday_script_url"] == "https://script.test/myday"

    def test_config_reports_missing(self, client, monkeypatch):
        monkeypatch.setattr(settings, "GOOGLE_BRANDIP_SCRIPT_URL", None)

        response = client.get("/api/config")

        assert response.status_code == 500
        assert response.json()["missing"] == ["google_brandip_script_url"]


class TestHealth:

    def test_liveness_and_no_store(self, client):
        response = client.get("/health/live")

        assert response.json() == {"status": "alive"}
        assert "no-store" in response.headers["cache-control"]
        assert response.headers["x-trace-id"]

    def test_readiness_lists_integrations(self, client):
        body = client.get("/health/ready").json()
        assert body["status"] == "ready"
        assert body["integrations"]["n8n_webhook"] is True

    def test_trace_id_is_echoed(self, client):
        response = client.get("/health/live", headers={"x-request-id": "trace-42"})
        assert response.headers["x-trace-id"] == "trace-42"
