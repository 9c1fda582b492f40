"""Integration tests for health check endpoints."""

from unittest.mock import AsyncMock

from fastapi import FastAPI
from httpx import AsyncClient

from semcluster import __version__
from semcluster.exceptions import PersistenceError


class TestHealthEndpoint:
    """Tests for /health endpoint."""

    async def test_health_returns_200(self, client: AsyncClient) -> None:
        """Health endpoint returns 200 OK."""
        response = await client.get("/health")
        assert response.status_code == 200

    async def test_health_returns_status_and_version(self, client: AsyncClient) -> None:
        """Health endpoint returns healthy status and version."""
        data = (await client.get("/health")).json()
        assert data["status"] == "healthy"
        assert data["version"] == __version__

    async def test_health_returns_timestamp(self, client: AsyncClient) -> None:
        """Health endpoint returns ISO timestamp."""
        data = (await client.get("/health")).json()
        assert "T" in data["timestamp"]


class TestReadinessEndpoint:
    """Tests for /health/ready endpoint."""

    async def test_readiness_returns_ready(self, client: AsyncClient) -> None:
        """Readiness endpoint reports ready with component checks."""
        response = await client.get("/health/ready")
        data = response.json()

        assert response.status_code == 200
        assert data["status"] == "ready"
        assert data["checks"] == {"config": "ok", "storage": "ok"}

    async def test_readiness_reports_storage_failure(
        self,
        app: FastAPI,
        client: AsyncClient,
    ) -> None:
        """A failing store makes the service not ready."""
        service = app.state.workspace_service
        service.list_workspaces = AsyncMock(side_effect=PersistenceError("disk gone"))

        data = (await client.get("/health/ready")).json()

        assert data["status"] == "not_ready"
        assert data["checks"]["storage"] == "error"


class TestLivenessEndpoint:
    """Tests for /health/live endpoint."""

    async def test_liveness_returns_alive(self, client: AsyncClient) -> None:
        """Liveness endpoint returns alive status."""
        response = await client.get("/health/live")
        assert response.status_code == 200
        assert response.json()["status"] == "alive"
