"""
Tests for the public endpoints.

Tests cover:
- Contact form submission and validation
- Resume download logging
- Visit tracking
- Health, metrics, pages and unknown endpoints
"""

import pytest

from fastapi.testclient import TestClient

from app.config import settings
from app.main import app, get_stats_aggregator
from app.stats import StatsAggregator
from app.storage import count_downloads, get_recent_contacts, get_store

from tests.conftest import submit_contact


def current_stats() -> dict:
    return StatsAggregator(get_store()).read()


class TestContact:

    def test_submit_contact(self, client):
        response = client.post(
            "/api/contact",
            json={"name": "Ada", "email": "ada@example.com", "message": "hi"},
            headers={"User-Agent": "pytest-agent", "X-Forwarded-For": "203.0.113.9, 10.0.0.1"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["message"] == "Message sent successfully"
        assert isinstance(data["id"], int)

        [row] = get_recent_contacts(get_store())
        assert row["status"] == "unread"
        assert row["ip_address"] == "203.0.113.9"
        row_full = get_store().query_one(
            "SELECT user_agent FROM contacts WHERE id = :id", {"id": data["id"]}
        )
        assert row_full["user_agent"] == "pytest-agent"

    def test_submit_increments_total_contacts(self, client):
        before = current_stats()["total_contacts"]

        submit_contact(client)

        assert current_stats()["total_contacts"] == before + 1

    @pytest.mark.parametrize("body", [
        {"email": "ada@example.com", "message": "hi"},
        {"name": "Ada", "message": "hi"},
        {"name": "Ada", "email": "ada@example.com"},
        {"name": "   ", "email": "ada@example.com", "message": "hi"},
        {"name": "Ada", "email": "not-an-email", "message": "hi"},
        {"name": "Ada", "email": "ada@example.com", "message": "x" * 5001},
    ])
    def test_invalid_submission(self, client, body):
        response = client.post("/api/contact", json=body)

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert response.json()["message"]
        assert current_stats()["total_contacts"] == 0


class TestDownload:

    def test_download_resume(self, client, tmp_path, monkeypatch):
        resume = tmp_path / "resume.pdf"
        resume.write_bytes(b"%PDF-1.4 test")
        monkeypatch.setattr(settings, "RESUME_PATH", str(resume))

        response = client.get("/api/download/resume")

        assert response.status_code == 200
        assert response.content == b"%PDF-1.4 test"
        assert "resume.pdf" in response.headers["content-disposition"]
        assert count_downloads(get_store()) == 1
        assert current_stats()["total_downloads"] == 1

    def test_missing_resume_is_not_logged(self, client, tmp_path, monkeypatch):
        monkeypatch.setattr(settings, "RESUME_PATH", str(tmp_path / "absent.pdf"))

        response = client.get("/api/download/resume")

        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Resume not available"}
        assert count_downloads(get_store()) == 0


class TestVisitTracking:

    def test_first_visit_counts_unique_visitor(self, client):
        response = client.post("/api/track/visit")

        assert response.status_code == 200
        assert "visitor_id" in response.cookies
        stats = current_stats()
        assert stats["page_views"] == 1
        assert stats["unique_visitors"] == 1

    def test_returning_visitor_counts_page_view_only(self, client):
        client.post("/api/track/visit")
        client.post("/api/track/visit")
        client.post("/api/track/visit")

        stats = current_stats()
        assert stats["page_views"] == 3
        assert stats["unique_visitors"] == 1


class TestHealth:

    def test_live(self, client):
        assert client.get("/health/live").json() == {"status": "ok", "reason": None}

    def test_ready(self, client):
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    def test_database_health(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "connected"
        assert data["table_count"] == 4
        assert "error" not in data

    def test_request_id_header(self, client):
        assert "x-request-id" in client.get("/health/live").headers


class TestMisc:

    def test_metrics_exposed(self, client):
        client.post("/api/admin/login", json={"username": "admin", "password": "nope"})

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "admin_login_attempts_total" in response.text
        assert "http_requests_total" in response.text

    def test_unknown_endpoint(self, client):
        response = client.get("/api/does-not-exist")

        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Endpoint not found"}

    def test_admin_page_redirects_anonymous(self, client):
        response = client.get("/admin", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "/admin-login"

    def test_login_redirect(self, client):
        response = client.get("/login", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "/admin-login"

    def test_unexpected_error_uses_json_envelope(self, client):
        def broken_aggregator():
            raise RuntimeError("boom")

        app.dependency_overrides[get_stats_aggregator] = broken_aggregator
        try:
            response = TestClient(app, raise_server_exceptions=False).post("/api/track/visit")
        finally:
            app.dependency_overrides.pop(get_stats_aggregator, None)

        assert response.status_code == 500
        assert response.json() == {"success": False, "message": "Internal server error"}
