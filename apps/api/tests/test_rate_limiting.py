"""Tests for per-endpoint rate limits."""

import uuid
from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest
from fakes import mock_db

from hockey_sugar.database import get_db
from hockey_sugar.dependencies import get_pipeline
from hockey_sugar.main import app
from hockey_sugar.middleware.rate_limit import _get_real_client_ip, limiter


@pytest.fixture(autouse=True)
def _enable_rate_limiting():
    """Temporarily enable rate limiting for these tests."""
    limiter.enabled = True
    limiter.reset()
    yield
    limiter.enabled = False


class TestRateLimiting:
    async def test_webhook_rate_limit_triggers_429(self, client):
        app.dependency_overrides[get_pipeline] = lambda: MagicMock()
        app.dependency_overrides[get_db] = lambda: mock_db()
        body = {"value": 120, "timestamp": datetime.now(UTC).isoformat()}
        url = f"/api/webhook/glucose/{uuid.uuid4()}"

        statuses = [
            (await client.post(url, json=body)).status_code for _ in range(61)
        ]

        assert statuses[-1] == 429
        assert 429 not in statuses[:60]

    async def test_rate_limit_returns_json_detail(self, client):
        app.dependency_overrides[get_pipeline] = lambda: MagicMock()
        app.dependency_overrides[get_db] = lambda: mock_db()
        body = {"value": 120, "timestamp": datetime.now(UTC).isoformat()}
        url = f"/api/webhook/glucose/{uuid.uuid4()}"

        for _ in range(61):
            response = await client.post(url, json=body)

        assert response.status_code == 429
        assert "Rate limit" in response.json()["detail"]


class TestClientIp:
    def _request(self, headers: dict, host: str = "10.0.0.1") -> MagicMock:
        request = MagicMock()
        request.headers = headers
        request.client.host = host
        return request

    def test_prefers_first_forwarded_address(self):
        request = self._request({"x-forwarded-for": "203.0.113.5, 10.0.0.2"})
        assert _get_real_client_ip(request) == "203.0.113.5"

    def test_uses_real_ip_header(self):
        request = self._request({"x-real-ip": "198.51.100.7"})
        assert _get_real_client_ip(request) == "198.51.100.7"

    def test_falls_back_to_peer_address(self):
        assert _get_real_client_ip(self._request({})) == "10.0.0.1"
