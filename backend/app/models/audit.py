"""
SiteWalk - Audit Log Model
Activity trail for floorplan editing
"""
from datetime import datetime
from typing import Optional
from sqlalchemy import String, Integer, DateTime, Text, Index
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.database import Base


class AuditAction:
    """Standard audit action types for consistency."""
    # Projects
    PROJECT_CREATE = "PROJECT_CREATE"
    PROJECT_DELETE = "PROJECT_DELETE"

    # Floorplans
    FLOORPLAN_UPLOAD = "FLOORPLAN_UPLOAD"
    FLOORPLAN_UPDATE = "FLOORPLAN_UPDATE"
    FLOORPLAN_DELETE = "FLOORPLAN_DELETE"

    # Layers
    LAYER_CREATE = "LAYER_CREATE"
    LAYER_UPDATE = "LAYER_UPDATE"
    LAYER_DELETE = "LAYER_DELETE"

    # Calibration
    CALIBRATION_SET = "CALIBRATION_SET"

    # Markers
    MARKER_CREATE = "MARKER_CREATE"
    MARKER_UPDATE = "MARKER_UPDATE"
    MARKER_DELETE = "MARKER_DELETE"
    MARKER_DUPLICATE = "MARKER_DUPLICATE"

    # Comments
    COMMENT_ADD = "COMMENT_ADD"
    COMMENT_DELETE = "COMMENT_DELETE"


class AuditLog(Base):
    """
    One editing action on a project or floorplan.

    Attributes:
        id: Auto-increment primary key
        author_id: Id from the X-User-Id header (null for system actions)
        author_name: Name at time of action, kept even if the user is renamed upstream
        action: Action type (from AuditAction constants)
        details: Text description of what was done
        floorplan_id: Floorplan the action touched, if any. Not a foreign key,
            so the trail outlives deleted floorplans.
        resource_type: project, floorplan, layer, calibration, marker or comment
        resource_id: Id of the affected resource (marker unique_id for markers)
        ip_address: Client IP address
        timestamp: When the action occurred
    """
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    author_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    author_name: Mapped[str] = mapped_column(String(100), nullable=False)

    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    floorplan_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    resource_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    resource_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        index=True
    )

    __table_args__ = (
        Index('ix_audit_floorplan_timestamp', 'floorplan_id', 'timestamp'),
        Index('ix_audit_resource', 'resource_type', 'resource_id'),
    )

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, floorplan={self.floorplan_id}, action={self.action})>"
