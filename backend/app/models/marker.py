"""
SiteWalk - Marker Models
Versioned floorplan annotations and their comments
"""
from sqlalchemy import String, Boolean, DateTime, Integer, Float, Enum, Text, ForeignKey, Index, func
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON  # Compatible with PostgreSQL and SQLite
from datetime import datetime
from typing import Optional

from app.annotation.markers import MarkerType
from app.database import Base


class FloorplanMarker(Base):
    """
    One version of an annotation on a floorplan page.

    Rows are never edited in place: an edit inserts a new row with the same
    unique_id, version + 1 and parent_id pointing at the previous row, and
    clears is_latest on the previous row.

    Attributes:
        unique_id: Stable id threading the version chain
        layer_id: Optional layer (SET NULL when the layer is deleted)
        equipment_id: Informational link to an equipment record
        points: [{"x": float, "y": float}, ...] for multi-vertex markers
        is_latest: True only on the newest version of a chain
    """
    __tablename__ = "floorplan_markers"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    unique_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    floorplan_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("floorplans.id", ondelete="CASCADE"),
        nullable=False
    )
    page: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    marker_type: Mapped[MarkerType] = mapped_column(
        Enum(MarkerType, native_enum=False, length=32, values_callable=lambda e: [t.value for t in e]),
        nullable=False
    )
    layer_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("floorplan_layers.id", ondelete="SET NULL"),
        nullable=True
    )
    equipment_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Geometry (PDF points)
    position_x: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    position_y: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    end_x: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    end_y: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    width: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    height: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    rotation: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    points: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)

    # Style
    color: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    fill_color: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    opacity: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    line_width: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    label: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    text_content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    font_size: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    font_family: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Lineage
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    parent_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_latest: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    author_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    author_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )

    __table_args__ = (
        Index('ix_marker_floorplan_page', 'floorplan_id', 'page', 'is_latest'),
    )

    def __repr__(self) -> str:
        return f"<FloorplanMarker(id={self.id}, type={self.marker_type}, v{self.version})>"


class MarkerComment(Base):
    """Append-only comment thread entry on a marker."""
    __tablename__ = "marker_comments"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    marker_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("floorplan_markers.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    author_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    author_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    comment: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<MarkerComment(id={self.id}, marker_id={self.marker_id})>"
