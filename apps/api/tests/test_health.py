"""Tests for health check endpoints."""

from unittest.mock import AsyncMock, MagicMock, patch

from hockey_sugar.main import app


class TestHealthEndpoint:
    async def test_returns_healthy_with_db_connected(self, client):
        with patch(
            "hockey_sugar.routers.health.check_database_connection",
            new_callable=AsyncMock,
            return_value=True,
        ):
            response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "connected"

    async def test_returns_degraded_when_db_disconnected(self, client):
        with patch(
            "hockey_sugar.routers.health.check_database_connection",
            new_callable=AsyncMock,
            return_value=False,
        ):
            response = await client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "degraded"

    async def test_reports_poller_state(self, client):
        poll_scheduler = MagicMock(running=True)
        app.state.poll_scheduler = poll_scheduler
        try:
            with patch(
                "hockey_sugar.routers.health.check_database_connection",
                new_callable=AsyncMock,
                return_value=True,
            ):
                response = await client.get("/health")
        finally:
            app.state.poll_scheduler = None

        assert response.json()["dexcom_poller"] == "running"

    async def test_poller_disabled_without_scheduler(self, client):
        app.state.poll_scheduler = None
        with patch(
            "hockey_sugar.routers.health.check_database_connection",
            new_callable=AsyncMock,
            return_value=True,
        ):
            response = await client.get("/health")

        assert response.json()["dexcom_poller"] == "disabled"


class TestProbes:
    async def test_liveness_never_checks_database(self, client):
        with patch(
            "hockey_sugar.routers.health.check_database_connection",
            new_callable=AsyncMock,
        ) as mock_check:
            response = await client.get("/health/live")

        assert response.status_code == 200
        assert response.json() == {"status": "alive"}
        mock_check.assert_not_called()

    async def test_readiness_follows_database(self, client):
        with patch(
            "hockey_sugar.routers.health.check_database_connection",
            new_callable=AsyncMock,
            return_value=False,
        ):
            response = await client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["status"] == "not_ready"


class TestRoot:
    async def test_root(self, client):
        response = await client.get("/")

        assert response.status_code == 200
        assert response.json()["name"] == "Hockey Sugar API"
