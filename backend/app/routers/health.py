"""
SiteWalk - Health Check Router
"""
import logging
from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import text

from app.config import get_settings, get_floorplan_storage_path
from app.database import async_session_maker

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])
settings = get_settings()


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str
    app_name: str


class DetailedHealthResponse(BaseModel):
    """Detailed health check response."""
    status: str
    services: dict


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Liveness check."""
    return HealthResponse(status="healthy", app_name=settings.app_name)


@router.get("/health/detailed", response_model=DetailedHealthResponse)
async def detailed_health_check():
    """
    Detailed health check with all service statuses.
    Verifies the database connection and the floorplan storage directory.
    """
    services = {
        "api": "healthy",
        "database": "unknown",
        "storage": "unknown"
    }

    # Check database
    try:
        async with async_session_maker() as session:
            await session.execute(text("SELECT 1"))
        services["database"] = "healthy"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        services["database"] = f"error: {str(e)}"

    # Check storage
    try:
        path = get_floorplan_storage_path()
        probe = path / ".health"
        probe.write_bytes(b"ok")
        probe.unlink()
        services["storage"] = "healthy"
    except OSError as e:
        logger.error(f"Storage health check failed: {e}")
        services["storage"] = f"error: {str(e)}"

    overall_status = "healthy" if all(
        v == "healthy" for v in services.values()
    ) else "degraded"

    return DetailedHealthResponse(
        status=overall_status,
        services=services
    )
