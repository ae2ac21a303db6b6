"""Tests for health check endpoints."""

import pytest


@pytest.mark.unit
class TestHealth:
    """Health endpoint tests."""

    async def test_health_v1(self, client):
        """GET /api/v1/health returns 200 with status info."""
        resp = await client.get("/api/v1/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["app"] == "Flowline Workflow Engine"
        assert "version" in data

    async def test_health_root(self, client):
        """GET /api/health returns 200 (unversioned, for LB health checks)."""
        resp = await client.get("/api/health")
        assert resp.status_code == 200

    async def test_readiness_checks_database(self, client):
        resp = await client.get("/api/health/ready")
        assert resp.status_code == 200
        body = resp.json()
        assert body["checks"]["database"] == "ok"
        assert body["checks"]["broker"] in ("ok", "unavailable")

    async def test_response_has_request_id(self, client):
        """Every response should have X-Request-ID header."""
        resp = await client.get("/api/v1/health")
        assert "x-request-id" in resp.headers

    async def test_custom_request_id_propagated(self, client):
        """If client sends X-Request-ID, it should be echoed back."""
        custom_id = "test-request-12345"
        resp = await client.get(
            "/api/v1/health",
            headers={"X-Request-ID": custom_id},
        )
        assert resp.headers.get("x-request-id") == custom_id

    async def test_security_headers(self, client):
        resp = await client.get("/api/health")
        assert resp.headers["x-content-type-options"] == "nosniff"
        assert resp.headers["x-frame-options"] == "DENY"
