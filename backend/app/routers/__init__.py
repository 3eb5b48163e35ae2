"""
SiteWalk - API Routers
"""
from app.routers.health import router as health_router
from app.routers.projects import router as projects_router
from app.routers.floorplans import router as floorplans_router
from app.routers.layers import router as layers_router
from app.routers.calibrations import router as calibrations_router
from app.routers.markers import router as markers_router
from app.routers.comments import router as comments_router
from app.routers.audit import router as audit_router

__all__ = [
    "health_router",
    "projects_router",
    "floorplans_router",
    "layers_router",
    "calibrations_router",
    "markers_router",
    "comments_router",
    "audit_router",
]
