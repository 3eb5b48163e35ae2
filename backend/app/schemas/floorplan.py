"""
SiteWalk - Floorplan Pydantic Schemas
Floorplans, layers and calibrations
"""
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional

from app.annotation.calibration import LengthUnit

HEX_COLOR = r"^#[0-9A-Fa-f]{6}$"


# ============================================================
# Floorplans
# ============================================================

class FloorplanUpdate(BaseModel):
    """Only metadata can change after upload."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)


class FloorplanResponse(BaseModel):
    """Floorplan metadata without content."""
    id: int
    project_id: int
    name: str
    content_type: str
    file_size: int
    page_count: int
    page_width: Optional[float] = None
    page_height: Optional[float] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class FloorplanDetail(FloorplanResponse):
    """Floorplan with base64 content, as consumed by the editor."""
    pdf_data: str


# ============================================================
# Layers
# ============================================================

class LayerCreate(BaseModel):
    """order_index defaults to one past the current highest layer."""
    name: str = Field(..., min_length=1, max_length=100)
    color: str = Field(default="#3B82F6", pattern=HEX_COLOR)
    visible: bool = True
    order_index: Optional[int] = Field(default=None, ge=0)


class LayerUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR)
    visible: Optional[bool] = None
    order_index: Optional[int] = Field(default=None, ge=0)


class LayerResponse(BaseModel):
    id: int
    floorplan_id: int
    name: str
    color: str
    visible: bool
    order_index: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ============================================================
# Calibration
# ============================================================

class CalibrationCreate(BaseModel):
    """
    Reference segment for a page.

    Degenerate segments and non-positive distances are rejected by the
    calibration engine (422 InvalidCalibrationError).
    """
    page: int = Field(default=1, ge=1)
    start_x: float
    start_y: float
    end_x: float
    end_y: float
    real_world_distance: float
    unit: LengthUnit = LengthUnit.FEET


class CalibrationResponse(CalibrationCreate):
    id: int
    floorplan_id: int
    pdf_distance: float
    scale_factor: float
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
