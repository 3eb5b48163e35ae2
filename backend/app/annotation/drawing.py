"""
SiteWalk - Drawing/Editing State Machine
Transient state of an annotation being authored with the active tool

Pointer events arrive in screen space and are mapped to PDF-space through
the viewport before anything is recorded.
"""
import enum
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from app.annotation.markers import Layer, Marker, MarkerType, new_marker, translation_changes
from app.annotation.transform import Point, as_point, distance, screen_length_to_pdf
from app.annotation.viewport import ViewportController

logger = logging.getLogger(__name__)

# Shapes smaller than this (screen px) are discarded; path vertices closer are skipped
MIN_SCREEN_DISTANCE = 5.0


class DrawingState(str, enum.Enum):
    IDLE = "idle"
    SIZING = "sizing"     # pointer-down .. pointer-up of a drag-to-size shape
    PATHING = "pathing"   # first click .. finalizing double-click of a path
    PLACED = "placed"     # point marker committed on pointer-down
    MOVING = "moving"     # select tool dragging an existing marker


class ToolKind(str, enum.Enum):
    POINT = "point"
    SIZING = "sizing"
    PATH = "path"
    PAN = "pan"
    SELECT = "select"


TOOL_KINDS: Dict[str, ToolKind] = {
    "pan": ToolKind.PAN,
    "select": ToolKind.SELECT,
    MarkerType.ACCESS_POINT.value: ToolKind.POINT,
    MarkerType.CAMERA.value: ToolKind.POINT,
    MarkerType.ELEVATOR.value: ToolKind.POINT,
    MarkerType.INTERCOM.value: ToolKind.POINT,
    MarkerType.NOTE.value: ToolKind.POINT,
    MarkerType.TEXT.value: ToolKind.POINT,
    MarkerType.STAMP.value: ToolKind.POINT,
    MarkerType.RECTANGLE.value: ToolKind.SIZING,
    MarkerType.ELLIPSE.value: ToolKind.SIZING,
    MarkerType.LINE.value: ToolKind.SIZING,
    MarkerType.CIRCLE.value: ToolKind.SIZING,
    MarkerType.ARROW.value: ToolKind.SIZING,
    MarkerType.MEASUREMENT.value: ToolKind.SIZING,
    MarkerType.CLOUD.value: ToolKind.SIZING,
    MarkerType.CALLOUT.value: ToolKind.SIZING,
    MarkerType.POLYLINE.value: ToolKind.PATH,
    MarkerType.POLYGON.value: ToolKind.PATH,
    MarkerType.AREA.value: ToolKind.PATH,
}


def tool_kind(tool: str) -> ToolKind:
    try:
        return TOOL_KINDS[tool]
    except KeyError:
        raise ValueError(f"Unknown tool: {tool}")


class DrawingMachine:
    """
    Tool-dispatched drawing state machine for one editing session.

    Callbacks:
        on_commit(marker): a finished new marker (fresh unique id, version 1)
        on_select(screen_point) -> Marker | None: hit-test for the select tool
        on_move(marker, changes): a dragged marker's new geometry
        active_layer() -> Layer | None: supplies default color and layer id
    """

    def __init__(
        self,
        viewport: ViewportController,
        floorplan_id: Optional[int] = None,
        on_commit: Optional[Callable[[Marker], Any]] = None,
        on_select: Optional[Callable[[Point], Optional[Marker]]] = None,
        on_move: Optional[Callable[[Marker, Dict[str, Any]], Any]] = None,
        active_layer: Optional[Callable[[], Optional[Layer]]] = None,
    ):
        self.viewport = viewport
        self.floorplan_id = floorplan_id
        self.on_commit = on_commit
        self.on_select = on_select
        self.on_move = on_move
        self.active_layer = active_layer or (lambda: None)

        self.tool = "select"
        self.state = DrawingState.IDLE
        self.temp_marker: Optional[Marker] = None
        self.points: List[Point] = []
        self.preview_point: Optional[Point] = None
        self.defaults: Dict[str, Any] = {}

        self._pan_origin: Optional[Point] = None
        self._move_origin: Optional[Point] = None
        self._moving: Optional[Marker] = None

    # ------------------------------------------------------------
    # Tool selection
    # ------------------------------------------------------------

    def set_tool(self, tool: str, **defaults: Any) -> None:
        """Activate a tool; any drawing in progress is discarded."""
        tool_kind(tool)
        if self.state != DrawingState.IDLE:
            self.cancel()
        self.tool = tool
        self.defaults = defaults

    @property
    def kind(self) -> ToolKind:
        return tool_kind(self.tool)

    def cancel(self) -> None:
        """Drop the temp marker / partial path without side effects."""
        if self.state != DrawingState.IDLE:
            logger.debug(f"Cancelled {self.state.value} with tool {self.tool}")
        self.state = DrawingState.IDLE
        self.temp_marker = None
        self.points = []
        self.preview_point = None
        self._pan_origin = None
        self._move_origin = None
        self._moving = None

    # ------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------

    def _to_pdf(self, screen_point: Sequence[float]) -> Point:
        return self.viewport.state.to_pdf(screen_point)

    def _threshold(self) -> float:
        state = self.viewport.state
        return screen_length_to_pdf(MIN_SCREEN_DISTANCE, state.render_scale, state.scale)

    def _build(self, position: Optional[Point] = None, points: Optional[List[Point]] = None, **extra: Any) -> Marker:
        fields = dict(self.defaults)
        fields.update(extra)
        return new_marker(
            self.tool,
            page=self.viewport.state.current_page,
            position=position,
            floorplan_id=self.floorplan_id,
            layer=self.active_layer(),
            points=points,
            **fields,
        )

    def _commit(self, marker: Marker) -> Marker:
        logger.info(f"Committing {marker.marker_type.value} marker on page {marker.page}")
        if self.on_commit is not None:
            self.on_commit(marker)
        return marker

    # ------------------------------------------------------------
    # Pointer events
    # ------------------------------------------------------------

    def pointer_down(self, screen_point: Sequence[float]) -> Optional[Marker]:
        """Returns the committed marker for point tools, otherwise None."""
        screen_point = as_point(screen_point)
        kind = self.kind

        if kind == ToolKind.PAN:
            self._pan_origin = screen_point
            return None

        if kind == ToolKind.SELECT:
            hit = self.on_select(screen_point) if self.on_select else None
            if hit is not None:
                self._moving = hit
                self._move_origin = self._to_pdf(screen_point)
                self.state = DrawingState.MOVING
            return None

        pdf_point = self._to_pdf(screen_point)

        if kind == ToolKind.POINT:
            self.state = DrawingState.PLACED
            marker = self._build(position=pdf_point)
            self.state = DrawingState.IDLE
            return self._commit(marker)

        if kind == ToolKind.SIZING:
            self.temp_marker = self._build(position=pdf_point, end_x=pdf_point.x, end_y=pdf_point.y, width=0.0, height=0.0)
            self.state = DrawingState.SIZING
            return None

        # PATH
        if self.state == DrawingState.PATHING:
            if distance(self.points[-1], pdf_point) > self._threshold():
                self.points.append(pdf_point)
            self.preview_point = None
        else:
            self.points = [pdf_point]
            self.preview_point = None
            self.state = DrawingState.PATHING
        return None

    def pointer_move(self, screen_point: Sequence[float]) -> None:
        screen_point = as_point(screen_point)

        if self.kind == ToolKind.PAN and self._pan_origin is not None:
            delta = screen_point - self._pan_origin
            self.viewport.pan(delta.x, delta.y)
            self._pan_origin = screen_point
            return

        if self.state == DrawingState.SIZING and self.temp_marker is not None:
            self.temp_marker = self.temp_marker.model_copy(update=self._sizing_geometry(self._to_pdf(screen_point)))
            return

        if self.state == DrawingState.PATHING:
            pdf_point = self._to_pdf(screen_point)
            reference = self.preview_point or self.points[-1]
            if distance(reference, pdf_point) > self._threshold():
                self.preview_point = pdf_point
            return

        if self.state == DrawingState.MOVING and self._moving is not None:
            pdf_point = self._to_pdf(screen_point)
            dx, dy = pdf_point.x - self._move_origin.x, pdf_point.y - self._move_origin.y
            self.temp_marker = self._moving.model_copy(update=translation_changes(self._moving, dx, dy))

    def pointer_up(self, screen_point: Sequence[float]) -> Optional[Marker]:
        """Finishes sizing (commit or discard), panning or moving."""
        screen_point = as_point(screen_point)

        if self.kind == ToolKind.PAN:
            self._pan_origin = None
            return None

        if self.state == DrawingState.SIZING and self.temp_marker is not None:
            geometry = self._sizing_geometry(self._to_pdf(screen_point))
            marker = self.temp_marker.model_copy(update=geometry)
            threshold = self._threshold()
            self.temp_marker = None
            self.state = DrawingState.IDLE
            if geometry["width"] > threshold or geometry["height"] > threshold:
                return self._commit(marker)
            logger.debug(f"Discarded {self.tool}: {geometry['width']:.2f}x{geometry['height']:.2f} below threshold")
            return None

        if self.state == DrawingState.MOVING and self._moving is not None:
            pdf_point = self._to_pdf(screen_point)
            dx, dy = pdf_point.x - self._move_origin.x, pdf_point.y - self._move_origin.y
            moved = self._moving
            self._moving = None
            self._move_origin = None
            self.temp_marker = None
            self.state = DrawingState.IDLE
            if max(abs(dx), abs(dy)) > self._threshold():
                changes = translation_changes(moved, dx, dy)
                if self.on_move is not None:
                    self.on_move(moved, changes)
                return moved.model_copy(update=changes)
            return None

        # Path tools keep collecting until double-click
        return None

    def double_click(self, screen_point: Sequence[float]) -> Optional[Marker]:
        """Finalize a path with >= 2 points, otherwise discard it."""
        if self.state != DrawingState.PATHING:
            return None
        pdf_point = self._to_pdf(screen_point)
        if distance(self.points[-1], pdf_point) > self._threshold():
            self.points.append(pdf_point)

        points = self.points
        self.points = []
        self.preview_point = None
        self.state = DrawingState.IDLE

        if len(points) < 2:
            logger.debug(f"Discarded {self.tool} with {len(points)} point(s)")
            return None
        return self._commit(self._build(points=points))

    # ------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------

    def _sizing_geometry(self, pdf_point: Point) -> Dict[str, float]:
        origin = self.temp_marker.position
        return {
            "end_x": pdf_point.x,
            "end_y": pdf_point.y,
            "width": abs(pdf_point.x - origin.x),
            "height": abs(pdf_point.y - origin.y),
        }

    def preview(self) -> Optional[Marker]:
        """Marker-shaped preview of the in-progress drawing, for rendering."""
        if self.state in (DrawingState.SIZING, DrawingState.MOVING):
            return self.temp_marker
        if self.state == DrawingState.PATHING and self.points:
            points = self.points + ([self.preview_point] if self.preview_point else [])
            if len(points) >= 2:
                return self._build(points=points)
        return None
