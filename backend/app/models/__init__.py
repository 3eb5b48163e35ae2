"""
SiteWalk - Database Models
"""
from app.models.project import Project
from app.models.floorplan import Floorplan, FloorplanLayer, FloorplanCalibration
from app.models.marker import FloorplanMarker, MarkerComment
from app.models.audit import AuditLog, AuditAction

__all__ = [
    "Project",
    "Floorplan",
    "FloorplanLayer",
    "FloorplanCalibration",
    "FloorplanMarker",
    "MarkerComment",
    "AuditLog",
    "AuditAction"
]
