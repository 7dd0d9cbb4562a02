"""Health check endpoints."""

from fastapi import APIRouter, status
from pydantic import BaseModel

from clinicflow.config import settings
from clinicflow.core.redis_client import check_redis_connection
from clinicflow.database import check_database_connection

router = APIRouter()


class HealthResponse(BaseModel):
    """Liveness response."""

    status: str
    version: str
    environment: str


class ComponentHealth(BaseModel):
    """Status of the engine's backing services."""

    store: str
    event_bus: str
    events_enabled: bool


class DetailedHealthResponse(HealthResponse):
    """Readiness response with per-component status."""

    components: ComponentHealth


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Basic health check",
)
async def health_check() -> HealthResponse:
    """Report that the process is up."""
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment,
    )


@router.get(
    "/health/detailed",
    response_model=DetailedHealthResponse,
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Detailed health check",
)
async def detailed_health_check() -> DetailedHealthResponse:
    """
    Check the appointment store and the event bus.

    The store is required for every operation; the event bus is best-effort, so an
    unreachable bus only degrades the service.
    """
    store_healthy = await check_database_connection()
    bus_healthy = await check_redis_connection()

    if not store_healthy:
        overall = "unhealthy"
    elif not bus_healthy:
        overall = "degraded"
    else:
        overall = "healthy"

    return DetailedHealthResponse(
        status=overall,
        version=settings.app_version,
        environment=settings.environment,
        components=ComponentHealth(
            store="healthy" if store_healthy else "unhealthy",
            event_bus="healthy" if bus_healthy else "unhealthy",
            events_enabled=settings.events_enabled,
        ),
    )


@router.get(
    "/ping",
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Simple ping",
)
async def ping() -> dict[str, str]:
    """Simple ping endpoint."""
    return {"message": "pong"}
