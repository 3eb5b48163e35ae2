"""
SiteWalk - Main Application Entry Point
Floorplan annotation service for security site walks
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.annotation.errors import ValidationError
from app.config import get_settings, get_floorplan_storage_path
from app.database import init_db
from app.routers import (
    health_router,
    projects_router,
    floorplans_router,
    layers_router,
    calibrations_router,
    markers_router,
    comments_router,
    audit_router,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info(f"🚀 Starting {settings.app_name}...")

    await init_db()
    logger.info("✅ Database initialized")

    storage = get_floorplan_storage_path()
    logger.info(f"📁 Floorplan storage: {storage}")

    yield

    # Shutdown
    logger.info(f"👋 Shutting down {settings.app_name}...")


app = FastAPI(
    title=settings.app_name,
    description="Floorplan annotation, calibration and equipment placement for security site walks",
    version="0.1.0",
    lifespan=lifespan
)

# CORS middleware for frontend communication
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure properly in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ValidationError)
async def annotation_validation_handler(request: Request, exc: ValidationError):
    """Reject invalid markers/calibrations with the error class name."""
    logger.warning(f"Rejected {request.method} {request.url.path}: {type(exc).__name__}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": str(exc), "error": type(exc).__name__}
    )


# Include routers
app.include_router(health_router, prefix="/api")
app.include_router(projects_router, prefix="/api")
app.include_router(floorplans_router, prefix="/api")
app.include_router(layers_router, prefix="/api")
app.include_router(calibrations_router, prefix="/api")
app.include_router(markers_router, prefix="/api")
app.include_router(comments_router, prefix="/api")
app.include_router(audit_router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": settings.app_name,
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/api/health"
    }
