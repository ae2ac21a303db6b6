"""Tests for per-caller rate limiting."""

from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.config import get_settings
from core.rate_limit import Limit, SlidingWindowCounter, classify_request


@pytest.mark.unit
class TestClassifyRequest:
    def test_webhook_receiver(self):
        assert classify_request("POST", "/api/webhooks/workflow/abc") == "webhook"
        assert classify_request("GET", "/api/webhooks/workflow/abc") == "webhook"

    def test_writes_and_reads(self):
        assert classify_request("POST", "/api/v1/workflows") == "write"
        assert classify_request("DELETE", "/api/v1/workflows/1") == "write"
        assert classify_request("GET", "/api/v1/workflows") == "read"


@pytest.mark.unit
class TestSlidingWindowCounter:
    def test_blocks_after_limit(self):
        counter = SlidingWindowCounter()
        limit = Limit(3, 60)
        decisions = [counter.hit("1.2.3.4", "webhook", limit, now=100.0) for _ in range(4)]
        assert [d.allowed for d in decisions] == [True, True, True, False]
        assert decisions[0].remaining == 2
        assert decisions[3].retry_after == 60

    def test_callers_and_groups_are_separate(self):
        counter = SlidingWindowCounter()
        limit = Limit(1, 60)
        assert counter.hit("a", "webhook", limit, now=0.0).allowed
        assert counter.hit("b", "webhook", limit, now=0.0).allowed
        assert counter.hit("a", "read", limit, now=0.0).allowed
        assert not counter.hit("a", "webhook", limit, now=1.0).allowed

    def test_previous_window_decays(self):
        counter = SlidingWindowCounter()
        limit = Limit(3, 60)
        for t in (0.0, 1.0, 2.0):
            counter.hit("a", "webhook", limit, now=t)
        # New window opens at 70 carrying the full previous count
        assert not counter.hit("a", "webhook", limit, now=70.0).allowed
        # 40s into it only a third of the previous window still counts
        assert counter.hit("a", "webhook", limit, now=110.0).allowed

    def test_idle_caller_starts_fresh(self):
        counter = SlidingWindowCounter()
        limit = Limit(1, 60)
        assert counter.hit("a", "webhook", limit, now=0.0).allowed
        assert not counter.hit("a", "webhook", limit, now=30.0).allowed
        assert counter.hit("a", "webhook", limit, now=130.0).allowed

    def test_bounded_memory(self):
        counter = SlidingWindowCounter(max_keys=10)
        for i in range(30):
            counter.hit(f"ip-{i}", "read", Limit(5, 60), now=float(i))
        assert len(counter._windows) <= 10


@pytest_asyncio.fixture
async def limited_client(db_engine, session_factory, resources, monkeypatch):
    """App whose webhook group allows two calls per minute."""
    import db.database as db_mod

    monkeypatch.setattr(db_mod, "engine", db_engine)
    monkeypatch.setattr(db_mod, "AsyncSessionLocal", session_factory)
    monkeypatch.setattr(get_settings(), "RATE_LIMIT_WEBHOOK_PER_MINUTE", 2)

    from app.main import create_app
    limited_app = create_app(resources=resources)
    async with AsyncClient(transport=ASGITransport(app=limited_app), base_url="http://test") as ac:
        yield ac
    await limited_app.state.dispatcher.drain(timeout=5)


@pytest.mark.integration
class TestRateLimitMiddleware:
    async def test_webhook_receiver_returns_429(self, limited_client):
        url = f"/api/webhooks/workflow/{uuid4()}"
        first = await limited_client.post(url, json={})
        second = await limited_client.post(url, json={})
        third = await limited_client.post(url, json={})

        assert (first.status_code, second.status_code) == (404, 404)
        assert first.headers["x-ratelimit-limit"] == "2"
        assert third.status_code == 429
        assert int(third.headers["retry-after"]) >= 1
        body = third.json()
        assert body["detail"] == "Rate limit exceeded"
        assert body["error"] == "rate_limited"
        assert body["request_id"] == third.headers["x-request-id"]

    async def test_health_is_not_limited(self, limited_client):
        for _ in range(4):
            resp = await limited_client.get("/api/health")
            assert resp.status_code == 200
        assert "x-ratelimit-limit" not in resp.headers
