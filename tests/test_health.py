"""Tests for health endpoints."""

from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient) -> None:
    """Test health check endpoint."""
    response = await client.get("/api/v1/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "version" in data


@pytest.mark.asyncio
async def test_ping(client: AsyncClient) -> None:
    response = await client.get("/api/v1/ping")
    assert response.json() == {"message": "pong"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("store", "bus", "expected"),
    [
        (True, True, "healthy"),
        (True, False, "degraded"),
        (False, True, "unhealthy"),
    ],
)
async def test_detailed_health(client: AsyncClient, store, bus, expected) -> None:
    module = "clinicflow.api.v1.endpoints.health"
    with (
        patch(f"{module}.check_database_connection", AsyncMock(return_value=store)),
        patch(f"{module}.check_redis_connection", AsyncMock(return_value=bus)),
    ):
        response = await client.get("/api/v1/health/detailed")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == expected
    assert data["components"]["store"] == ("healthy" if store else "unhealthy")
    assert data["components"]["event_bus"] == ("healthy" if bus else "unhealthy")
