"""Health check endpoints."""

from fastapi import APIRouter, Request

from lms.config import get_settings
from lms.core.database import AsyncCassandraConnection


router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness probe - checks if the application is running."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request) -> dict[str, str | bool]:
    """Readiness probe - services wired and storage reachable."""
    settings = get_settings()
    services_ready = getattr(request.app.state, "services_ready", False)
    return {
        "status": "ready" if services_ready else "starting",
        "services": services_ready,
        "database": AsyncCassandraConnection.is_connected(),
        "environment": settings.environment,
    }


@router.get("")
async def health() -> dict[str, str]:
    """General health check endpoint."""
    settings = get_settings()
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }
