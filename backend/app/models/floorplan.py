"""
SiteWalk - Floorplan Models
Uploaded floorplan documents with their layers and per-page calibrations
"""
from sqlalchemy import String, Boolean, DateTime, Integer, Float, Enum, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from typing import Optional

from app.annotation.calibration import LengthUnit
from app.database import Base


class Floorplan(Base):
    """
    Floorplan document (PDF or raster image) belonging to a project.

    The file itself lives under storage/floorplans/; only `name` can change
    after upload.

    Attributes:
        file_path: Path of the stored file, relative to the storage root
        content_type: application/pdf or image/*
        page_count: Number of pages (1 for images)
        page_width/page_height: Native size of page 1 in PDF points
    """
    __tablename__ = "floorplans"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Stored content
    file_path: Mapped[str] = mapped_column(String(500), nullable=False)
    content_type: Mapped[str] = mapped_column(String(100), nullable=False, default="application/pdf")
    file_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    page_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    page_width: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    page_height: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<Floorplan(id={self.id}, name='{self.name}', pages={self.page_count})>"


class FloorplanLayer(Base):
    """
    Named, colored grouping of markers.

    order_index is the z-order and is unique within a floorplan.
    Deleting a layer leaves its markers in place with layer_id = NULL.
    """
    __tablename__ = "floorplan_layers"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    floorplan_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("floorplans.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[str] = mapped_column(String(7), nullable=False, default="#3B82F6")
    visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

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
        UniqueConstraint("floorplan_id", "order_index", name="uq_layer_floorplan_order"),
    )

    def __repr__(self) -> str:
        return f"<FloorplanLayer(id={self.id}, name='{self.name}', order={self.order_index})>"


class FloorplanCalibration(Base):
    """
    Reference segment for one page, mapped to a real-world distance.

    One row per (floorplan, page); saving again replaces it.
    """
    __tablename__ = "floorplan_calibrations"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    floorplan_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("floorplans.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    page: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Reference segment in PDF points
    start_x: Mapped[float] = mapped_column(Float, nullable=False)
    start_y: Mapped[float] = mapped_column(Float, nullable=False)
    end_x: Mapped[float] = mapped_column(Float, nullable=False)
    end_y: Mapped[float] = mapped_column(Float, nullable=False)

    real_world_distance: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[LengthUnit] = mapped_column(
        Enum(LengthUnit, native_enum=False, values_callable=lambda e: [u.value for u in e]),
        default=LengthUnit.FEET,
        nullable=False
    )

    # Derived on save
    pdf_distance: Mapped[float] = mapped_column(Float, nullable=False)
    scale_factor: Mapped[float] = mapped_column(Float, nullable=False)

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
        UniqueConstraint("floorplan_id", "page", name="uq_calibration_floorplan_page"),
    )

    def __repr__(self) -> str:
        return f"<FloorplanCalibration(floorplan_id={self.floorplan_id}, page={self.page}, scale={self.scale_factor})>"
