"""
SiteWalk - Marker Pydantic Schemas
"""
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional, List

from app.annotation.markers import MarkerPoint, MarkerType
from app.schemas.floorplan import HEX_COLOR


class MarkerBase(BaseModel):
    """
    Geometry and style shared by every marker payload.

    Range checks (opacity, page) are left to the annotation core so the
    error class name reaches the client.
    """
    layer_id: Optional[int] = None
    equipment_id: Optional[int] = None

    position_x: Optional[float] = None
    position_y: Optional[float] = None
    end_x: Optional[float] = None
    end_y: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    rotation: Optional[float] = None
    points: Optional[List[MarkerPoint]] = None

    color: Optional[str] = Field(default=None, pattern=HEX_COLOR)
    fill_color: Optional[str] = Field(default=None, pattern=HEX_COLOR)
    opacity: Optional[float] = None
    line_width: Optional[float] = None
    label: Optional[str] = Field(default=None, max_length=255)
    text_content: Optional[str] = None
    font_size: Optional[float] = None
    font_family: Optional[str] = Field(default=None, max_length=100)


class MarkerCreate(MarkerBase):
    """
    New marker (also used for duplicates).

    unique_id is generated when absent; version and parent are always
    reset to 1 / None by the server.
    """
    marker_type: MarkerType
    page: int = 1
    unique_id: Optional[str] = Field(default=None, max_length=36)


class MarkerUpdate(MarkerBase):
    """
    Full or partial marker for PATCH.

    Lineage fields in the body are ignored; marker_type must match the
    stored marker.
    """
    marker_type: Optional[MarkerType] = None
    page: Optional[int] = None


class MarkerResponse(MarkerBase):
    id: int
    unique_id: str
    floorplan_id: int
    page: int
    marker_type: MarkerType
    version: int
    parent_id: Optional[int] = None
    is_latest: bool
    author_id: Optional[int] = None
    author_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CommentCreate(BaseModel):
    comment: str = Field(..., min_length=1, max_length=5000)


class CommentResponse(BaseModel):
    id: int
    marker_id: int
    author_id: Optional[int] = None
    author_name: Optional[str] = None
    comment: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MarkerWithComments(MarkerResponse):
    comments: List[CommentResponse] = []
