"""
SiteWalk - Pydantic Schemas
"""
from app.schemas.project import ProjectCreate, ProjectResponse
from app.schemas.floorplan import FloorplanResponse, FloorplanDetail, LayerResponse, CalibrationResponse
from app.schemas.marker import MarkerCreate, MarkerUpdate, MarkerResponse, CommentResponse

__all__ = [
    "ProjectCreate",
    "ProjectResponse",
    "FloorplanResponse",
    "FloorplanDetail",
    "LayerResponse",
    "CalibrationResponse",
    "MarkerCreate",
    "MarkerUpdate",
    "MarkerResponse",
    "CommentResponse",
]
