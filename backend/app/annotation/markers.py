"""
SiteWalk - Marker Model & Versioning
Canonical annotation shape anchored in PDF-space, plus the edit-as-new-version rule
"""
import enum
import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field

from app.annotation.errors import (
    InvalidOpacityError,
    MissingGeometryError,
    PageOutOfRangeError,
    TypeMismatchError,
    ValidationError,
)
from app.annotation.transform import Point

DEFAULT_MARKER_COLOR = "#FF0000"
DEFAULT_LINE_WIDTH = 2.0
DUPLICATE_OFFSET = (20.0, 20.0)

# Fields a new version never takes from the caller's changes
LINEAGE_FIELDS = {"id", "unique_id", "version", "parent_id", "created_at", "updated_at", "is_latest"}


class MarkerType(str, enum.Enum):
    """Every kind of annotation that can be placed on a floorplan page."""
    ACCESS_POINT = "access_point"
    CAMERA = "camera"
    ELEVATOR = "elevator"
    INTERCOM = "intercom"
    NOTE = "note"
    MEASUREMENT = "measurement"
    AREA = "area"
    CIRCLE = "circle"
    RECTANGLE = "rectangle"
    ELLIPSE = "ellipse"
    LINE = "line"
    POLYLINE = "polyline"
    TEXT = "text"
    CALLOUT = "callout"
    ARROW = "arrow"
    CLOUD = "cloud"
    POLYGON = "polygon"
    STAMP = "stamp"


class GeometryKind(str, enum.Enum):
    """How a marker type's geometry is interpreted."""
    POINT = "point"   # position only
    SHAPE = "shape"   # position + end point or width/height
    PATH = "path"     # ordered list of >= 2 vertices


GEOMETRY_KINDS: Dict[MarkerType, GeometryKind] = {
    MarkerType.ACCESS_POINT: GeometryKind.POINT,
    MarkerType.CAMERA: GeometryKind.POINT,
    MarkerType.ELEVATOR: GeometryKind.POINT,
    MarkerType.INTERCOM: GeometryKind.POINT,
    MarkerType.NOTE: GeometryKind.POINT,
    MarkerType.TEXT: GeometryKind.POINT,
    MarkerType.STAMP: GeometryKind.POINT,
    MarkerType.RECTANGLE: GeometryKind.SHAPE,
    MarkerType.ELLIPSE: GeometryKind.SHAPE,
    MarkerType.CIRCLE: GeometryKind.SHAPE,
    MarkerType.LINE: GeometryKind.SHAPE,
    MarkerType.ARROW: GeometryKind.SHAPE,
    MarkerType.MEASUREMENT: GeometryKind.SHAPE,
    MarkerType.CLOUD: GeometryKind.SHAPE,
    MarkerType.CALLOUT: GeometryKind.SHAPE,
    MarkerType.POLYLINE: GeometryKind.PATH,
    MarkerType.POLYGON: GeometryKind.PATH,
    MarkerType.AREA: GeometryKind.PATH,
}

# Marker types that represent placed equipment rather than free annotations
EQUIPMENT_TYPES = frozenset({
    MarkerType.ACCESS_POINT,
    MarkerType.CAMERA,
    MarkerType.ELEVATOR,
    MarkerType.INTERCOM,
})


def geometry_kind(marker_type: Union[MarkerType, str]) -> GeometryKind:
    return GEOMETRY_KINDS[MarkerType(marker_type)]


class MarkerPoint(BaseModel):
    """A vertex of a multi-point marker, in PDF points."""
    x: float
    y: float

    def as_point(self) -> Point:
        return Point(self.x, self.y)


class Layer(BaseModel):
    """Named, colored, toggleable grouping of markers."""
    id: int
    floorplan_id: Optional[int] = None
    name: str
    color: str = "#3B82F6"
    visible: bool = True
    order_index: int = 0

    model_config = ConfigDict(from_attributes=True)


class Marker(BaseModel):
    """
    A single annotation or equipment placement on a floorplan page.

    `id` is the storage key of this version; `unique_id` threads the logical
    annotation through its version chain via `parent_id`.
    """
    id: Optional[int] = None
    unique_id: Optional[str] = None
    floorplan_id: Optional[int] = None
    page: int = 1
    marker_type: MarkerType
    layer_id: Optional[int] = None
    equipment_id: Optional[int] = None

    # Geometry (PDF points)
    position_x: Optional[float] = None
    position_y: Optional[float] = None
    end_x: Optional[float] = None
    end_y: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    rotation: Optional[float] = None
    points: Optional[List[MarkerPoint]] = None

    # Style
    color: Optional[str] = None
    fill_color: Optional[str] = None
    opacity: Optional[float] = None
    line_width: Optional[float] = None
    label: Optional[str] = None
    text_content: Optional[str] = None
    font_size: Optional[float] = None
    font_family: Optional[str] = None

    # Lineage
    version: int = 1
    parent_id: Optional[int] = None
    author_id: Optional[int] = None
    author_name: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, use_enum_values=False)

    @property
    def kind(self) -> GeometryKind:
        return geometry_kind(self.marker_type)

    @property
    def position(self) -> Optional[Point]:
        if self.position_x is None or self.position_y is None:
            return None
        return Point(self.position_x, self.position_y)

    @property
    def end(self) -> Optional[Point]:
        if self.end_x is None or self.end_y is None:
            return None
        return Point(self.end_x, self.end_y)

    def vertices(self) -> List[Point]:
        return [p.as_point() for p in (self.points or [])]

    def bounds(self) -> Optional[tuple]:
        """(min_x, min_y, max_x, max_y) in PDF points, or None without geometry."""
        if self.kind == GeometryKind.PATH:
            pts = self.vertices()
            if not pts:
                return None
        else:
            origin = self.position
            if origin is None:
                return None
            pts = [origin]
            if self.end is not None:
                pts.append(self.end)
            elif self.width is not None and self.height is not None:
                pts.append(Point(origin.x + self.width, origin.y + self.height))
        xs = [p.x for p in pts]
        ys = [p.y for p in pts]
        return (min(xs), min(ys), max(xs), max(ys))


def _has_shape_extent(marker: Marker) -> bool:
    has_end = marker.end_x is not None and marker.end_y is not None
    has_size = marker.width is not None and marker.height is not None
    return has_end or has_size


def validate_marker(marker: Marker, page_count: int) -> Marker:
    """
    Check a marker before it is committed or edited.

    Raises:
        MissingGeometryError: geometry not interpretable under the marker type
        PageOutOfRangeError: page not in [1, page_count]
        InvalidOpacityError: opacity outside [0, 1]
    """
    kind = marker.kind

    if kind == GeometryKind.PATH:
        if len(marker.points or []) < 2:
            raise MissingGeometryError(
                f"{marker.marker_type.value} marker needs at least 2 points, got {len(marker.points or [])}"
            )
    else:
        if marker.position is None:
            raise MissingGeometryError(f"{marker.marker_type.value} marker needs a position")
        if kind == GeometryKind.SHAPE and not _has_shape_extent(marker):
            raise MissingGeometryError(
                f"{marker.marker_type.value} marker needs an end position or width/height"
            )

    if not 1 <= marker.page <= page_count:
        raise PageOutOfRangeError(f"Page {marker.page} is outside 1..{page_count}")

    if marker.opacity is not None and not 0.0 <= marker.opacity <= 1.0:
        raise InvalidOpacityError(f"Opacity {marker.opacity} is outside [0, 1]")

    return marker


def anchored(marker: Marker) -> Marker:
    """Return a copy whose position is the first vertex for path markers without one."""
    if marker.kind == GeometryKind.PATH and marker.position is None and marker.points:
        first = marker.points[0]
        return marker.model_copy(update={"position_x": first.x, "position_y": first.y})
    return marker


def new_unique_id() -> str:
    return str(uuid.uuid4())


def new_marker(
    marker_type: Union[MarkerType, str],
    page: int,
    position: Optional[Sequence[float]] = None,
    floorplan_id: Optional[int] = None,
    layer: Optional[Layer] = None,
    points: Optional[Iterable[Sequence[float]]] = None,
    **fields: Any,
) -> Marker:
    """
    Build a freshly committed marker: new unique id, version 1, no parent.

    The marker inherits the active layer's color when it specifies none.
    """
    marker_type = MarkerType(marker_type)
    kind = geometry_kind(marker_type)

    data: Dict[str, Any] = dict(fields)
    data.update(
        marker_type=marker_type,
        page=page,
        floorplan_id=floorplan_id,
        unique_id=new_unique_id(),
        version=1,
        parent_id=None,
    )
    data.pop("id", None)
    if position is not None:
        data["position_x"], data["position_y"] = float(position[0]), float(position[1])
    if points is not None:
        data["points"] = [{"x": float(p[0]), "y": float(p[1])} for p in points]
    if layer is not None:
        data.setdefault("layer_id", layer.id)
    if data.get("color") is None:
        data["color"] = layer.color if layer is not None else DEFAULT_MARKER_COLOR
    if kind != GeometryKind.POINT and data.get("line_width") is None:
        data["line_width"] = DEFAULT_LINE_WIDTH

    return anchored(Marker.model_validate(data))


def create_version(existing: Marker, changes: Union[Mapping[str, Any], Marker]) -> Marker:
    """
    Produce the next version of a marker.

    The new version keeps the unique_id, points parent_id at the existing
    version's id and increments version by one. Everything else comes from
    `changes` overlaid on the existing marker.

    Raises:
        TypeMismatchError: if `changes` alters marker_type
    """
    if isinstance(changes, Marker):
        changes = changes.model_dump(exclude_unset=True)
    changes = dict(changes)

    if "marker_type" in changes and changes["marker_type"] is not None:
        requested = MarkerType(changes["marker_type"])
        if requested != existing.marker_type:
            raise TypeMismatchError(
                f"Cannot change marker type from {existing.marker_type.value} to {requested.value}; "
                f"delete and recreate the marker instead"
            )

    merged = existing.model_dump()
    for key, value in changes.items():
        if key in LINEAGE_FIELDS or key not in merged:
            continue
        merged[key] = value

    merged.update(
        id=None,
        unique_id=existing.unique_id,
        version=existing.version + 1,
        parent_id=existing.id,
        created_at=None,
        updated_at=None,
    )
    return Marker.model_validate(merged)


def duplicate_marker(marker: Marker, offset: Sequence[float] = DUPLICATE_OFFSET) -> Marker:
    """
    Copy a marker as a brand new annotation shifted by `offset` PDF points.

    This is not a new version: the copy gets a fresh unique id and starts
    its own chain at version 1.
    """
    data = marker.model_dump()
    data.update(
        id=None,
        unique_id=new_unique_id(),
        version=1,
        parent_id=None,
        created_at=None,
        updated_at=None,
    )
    data.update(translation_changes(marker, offset[0], offset[1]))
    return Marker.model_validate(data)


def translation_changes(marker: Marker, dx: float, dy: float) -> Dict[str, Any]:
    """Geometry fields of `marker` moved by (dx, dy) PDF points."""
    changes: Dict[str, Any] = {}
    if marker.position_x is not None and marker.position_y is not None:
        changes["position_x"] = marker.position_x + dx
        changes["position_y"] = marker.position_y + dy
    if marker.end_x is not None and marker.end_y is not None:
        changes["end_x"] = marker.end_x + dx
        changes["end_y"] = marker.end_y + dy
    if marker.points:
        changes["points"] = [{"x": p.x + dx, "y": p.y + dy} for p in marker.points]
    return changes


def verify_chain(versions: Iterable[Marker]) -> List[Marker]:
    """
    Check that a set of markers forms one acyclic version chain.

    Returns the chain ordered by version. Raises ValidationError when the
    chain mixes unique ids, skips or repeats a version, or links to a
    parent other than the immediately preceding version.
    """
    chain = sorted(versions, key=lambda m: m.version)
    if not chain:
        return chain

    unique_ids = {m.unique_id for m in chain}
    if len(unique_ids) != 1:
        raise ValidationError(f"Version chain mixes unique ids: {sorted(map(str, unique_ids))}")

    first = chain[0]
    if first.version != 1 or first.parent_id is not None:
        raise ValidationError(f"Version chain must start at version 1 without a parent (got v{first.version})")

    seen_ids = {first.id}
    for previous, current in zip(chain, chain[1:]):
        if current.version != previous.version + 1:
            raise ValidationError(f"Version {current.version} does not follow version {previous.version}")
        if current.parent_id != previous.id:
            raise ValidationError(
                f"Version {current.version} points at parent {current.parent_id}, expected {previous.id}"
            )
        if current.id in seen_ids:
            raise ValidationError(f"Marker id {current.id} appears twice in the chain")
        seen_ids.add(current.id)

    return chain
