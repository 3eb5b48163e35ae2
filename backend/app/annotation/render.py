"""
SiteWalk - Render/Hit-Test Layer
Draws markers as SVG overlays in screen space and resolves clicks to markers

Every MarkerType has exactly one entry in RENDERERS; adding a type means
adding one renderer function to the table.
"""
import base64
import logging
import math
from typing import Callable, Dict, Iterable, List, Optional, Sequence
from xml.sax.saxutils import escape, quoteattr

from pydantic import BaseModel

from app.annotation.calibration import Calibration, measure_marker
from app.annotation.errors import InvalidCalibrationError
from app.annotation.markers import GeometryKind, Layer, Marker, MarkerType
from app.annotation.transform import Point, distance, screen_length_to_pdf
from app.annotation.viewport import RenderedPage, ViewportState

logger = logging.getLogger(__name__)

HIT_TOLERANCE_PX = 10.0
POINT_RADIUS_PX = 10.0
SELECTED_STROKE_BONUS = 2.0
DEFAULT_STROKE = "#FF0000"

EQUIPMENT_GLYPHS = {
    MarkerType.ACCESS_POINT: "AP",
    MarkerType.CAMERA: "C",
    MarkerType.ELEVATOR: "E",
    MarkerType.INTERCOM: "I",
}


class RenderContext(BaseModel):
    """Per-marker rendering inputs that are not part of the data model."""
    state: ViewportState
    selected: bool = False
    show_label: bool = False
    calibration: Optional[Calibration] = None

    def screen(self, point: Sequence[float]) -> Point:
        return self.state.to_screen(point)


# ============================================================
# Visibility & ordering
# ============================================================

def visible_markers(markers: Iterable[Marker], layers: Iterable[Layer], page: int) -> List[Marker]:
    """
    Markers on `page` whose layer is visible (or that have no layer), in draw order.

    Draw order: markers without a layer first, then by layer order_index;
    the input order is kept within a layer.
    """
    layer_map = {layer.id: layer for layer in layers}
    result = []
    for marker in markers:
        if marker.page != page:
            continue
        layer = layer_map.get(marker.layer_id) if marker.layer_id is not None else None
        if layer is not None and not layer.visible:
            continue
        result.append(marker)

    def order(marker: Marker) -> int:
        layer = layer_map.get(marker.layer_id)
        return layer.order_index if layer is not None else -1

    return sorted(result, key=order)


# ============================================================
# SVG helpers
# ============================================================

def _color(value: Optional[str], default: str = DEFAULT_STROKE) -> str:
    """Quoted, escaped SVG paint value."""
    return quoteattr(value or default)


def _stroke(marker: Marker, ctx: RenderContext) -> str:
    width = (marker.line_width or 2.0) * ctx.state.scale
    if ctx.selected:
        width += SELECTED_STROKE_BONUS
    color = _color(marker.color)
    opacity = marker.opacity if marker.opacity is not None else 1.0
    return f'stroke={color} stroke-width="{width:.2f}" opacity="{opacity:.2f}"'


def _fill(marker: Marker) -> str:
    return f'fill={_color(marker.fill_color)}' if marker.fill_color else 'fill="none"'


def _attrs(marker: Marker, ctx: RenderContext) -> str:
    attrs = f'data-marker-id="{marker.id if marker.id is not None else ""}" data-type="{marker.marker_type.value}"'
    if ctx.selected:
        attrs += ' class="selected"'
    return attrs


def _text(x: float, y: float, content: str, ctx: RenderContext, marker: Marker, anchor: str = "start") -> str:
    size = (marker.font_size or 12.0) * ctx.state.scale
    family = quoteattr(marker.font_family or "sans-serif")
    return (
        f'<text x="{x:.2f}" y="{y:.2f}" font-size="{size:.2f}" font-family={family} '
        f'text-anchor="{anchor}" fill={_color(marker.color)}>{escape(content)}</text>'
    )


def _label(marker: Marker, ctx: RenderContext) -> str:
    if not ctx.show_label or not marker.label or marker.position is None:
        return ""
    p = ctx.screen(marker.position)
    return _text(p.x + POINT_RADIUS_PX + 2, p.y - POINT_RADIUS_PX, marker.label, ctx, marker)


def _screen_box(marker: Marker, ctx: RenderContext):
    bounds = marker.bounds()
    top_left = ctx.screen((bounds[0], bounds[1]))
    bottom_right = ctx.screen((bounds[2], bounds[3]))
    return top_left, bottom_right


def _segment(marker: Marker, ctx: RenderContext):
    start = ctx.screen(marker.position)
    if marker.end is not None:
        end = ctx.screen(marker.end)
    else:
        end = ctx.screen((marker.position_x + (marker.width or 0), marker.position_y + (marker.height or 0)))
    return start, end


def _points_attr(points: Iterable[Point]) -> str:
    return " ".join(f"{p.x:.2f},{p.y:.2f}" for p in points)


def _measurement_text(marker: Marker, ctx: RenderContext) -> Optional[str]:
    if ctx.calibration is None:
        return None
    try:
        measurement = measure_marker(marker, ctx.calibration)
    except InvalidCalibrationError as e:
        logger.warning(f"Skipping measurement label for marker {marker.id}: {e}")
        return None
    if measurement is None:
        return None
    return f"{measurement.value:.2f} {measurement.unit}"


# ============================================================
# Renderers (one per marker type)
# ============================================================

def render_equipment(marker: Marker, ctx: RenderContext) -> str:
    p = ctx.screen(marker.position)
    glyph = EQUIPMENT_GLYPHS[marker.marker_type]
    parts = [
        f'<g {_attrs(marker, ctx)}>',
        f'<circle cx="{p.x:.2f}" cy="{p.y:.2f}" r="{POINT_RADIUS_PX:.2f}" fill={_color(marker.color)} {_stroke(marker, ctx)}/>',
        f'<text x="{p.x:.2f}" y="{p.y + 4:.2f}" font-size="9" text-anchor="middle" fill="#FFFFFF">{glyph}</text>',
    ]
    if marker.marker_type == MarkerType.CAMERA and marker.rotation is not None:
        angle = math.radians(marker.rotation)
        tip = Point(p.x + 2 * POINT_RADIUS_PX * math.cos(angle), p.y + 2 * POINT_RADIUS_PX * math.sin(angle))
        parts.append(f'<line x1="{p.x:.2f}" y1="{p.y:.2f}" x2="{tip.x:.2f}" y2="{tip.y:.2f}" {_stroke(marker, ctx)}/>')
    parts.append(_label(marker, ctx))
    parts.append("</g>")
    return "".join(parts)


def render_note(marker: Marker, ctx: RenderContext) -> str:
    p = ctx.screen(marker.position)
    size = POINT_RADIUS_PX * 1.6
    return (
        f'<g {_attrs(marker, ctx)}>'
        f'<rect x="{p.x - size / 2:.2f}" y="{p.y - size / 2:.2f}" width="{size:.2f}" height="{size:.2f}" '
        f'fill={_color(marker.fill_color, "#FDE68A")} {_stroke(marker, ctx)}/>'
        f'{_label(marker, ctx)}</g>'
    )


def render_text(marker: Marker, ctx: RenderContext) -> str:
    p = ctx.screen(marker.position)
    content = marker.text_content or marker.label or ""
    return f'<g {_attrs(marker, ctx)}>{_text(p.x, p.y, content, ctx, marker)}</g>'


def render_stamp(marker: Marker, ctx: RenderContext) -> str:
    p = ctx.screen(marker.position)
    content = marker.text_content or marker.label or "APPROVED"
    width = max(len(content) * 8.0, 40.0)
    return (
        f'<g {_attrs(marker, ctx)}>'
        f'<rect x="{p.x:.2f}" y="{p.y - 14:.2f}" width="{width:.2f}" height="20" rx="3" fill="none" {_stroke(marker, ctx)}/>'
        f'{_text(p.x + width / 2, p.y, content, ctx, marker, anchor="middle")}</g>'
    )


def render_rectangle(marker: Marker, ctx: RenderContext) -> str:
    tl, br = _screen_box(marker, ctx)
    return (
        f'<g {_attrs(marker, ctx)}>'
        f'<rect x="{tl.x:.2f}" y="{tl.y:.2f}" width="{br.x - tl.x:.2f}" height="{br.y - tl.y:.2f}" '
        f'{_fill(marker)} {_stroke(marker, ctx)}/>'
        f'{_label(marker, ctx)}</g>'
    )


def render_ellipse(marker: Marker, ctx: RenderContext) -> str:
    tl, br = _screen_box(marker, ctx)
    cx, cy = (tl.x + br.x) / 2, (tl.y + br.y) / 2
    return (
        f'<g {_attrs(marker, ctx)}>'
        f'<ellipse cx="{cx:.2f}" cy="{cy:.2f}" rx="{(br.x - tl.x) / 2:.2f}" ry="{(br.y - tl.y) / 2:.2f}" '
        f'{_fill(marker)} {_stroke(marker, ctx)}/>'
        f'{_label(marker, ctx)}</g>'
    )


def render_circle(marker: Marker, ctx: RenderContext) -> str:
    tl, br = _screen_box(marker, ctx)
    cx, cy = (tl.x + br.x) / 2, (tl.y + br.y) / 2
    r = max(br.x - tl.x, br.y - tl.y) / 2
    return (
        f'<g {_attrs(marker, ctx)}>'
        f'<circle cx="{cx:.2f}" cy="{cy:.2f}" r="{r:.2f}" {_fill(marker)} {_stroke(marker, ctx)}/>'
        f'{_label(marker, ctx)}</g>'
    )


def render_cloud(marker: Marker, ctx: RenderContext) -> str:
    """Revision cloud: scalloped arcs along the bounding box."""
    tl, br = _screen_box(marker, ctx)
    corners = [tl, Point(br.x, tl.y), br, Point(tl.x, br.y)]
    arc = 12.0
    path = [f"M {tl.x:.2f},{tl.y:.2f}"]
    for start, end in zip(corners, corners[1:] + corners[:1]):
        length = distance(start, end)
        steps = max(1, int(length // arc))
        for i in range(1, steps + 1):
            t = i / steps
            x = start.x + (end.x - start.x) * t
            y = start.y + (end.y - start.y) * t
            r = length / steps / 2
            path.append(f"A {r:.2f},{r:.2f} 0 0,1 {x:.2f},{y:.2f}")
    return (
        f'<g {_attrs(marker, ctx)}>'
        f'<path d="{" ".join(path)} Z" {_fill(marker)} {_stroke(marker, ctx)}/>'
        f'{_label(marker, ctx)}</g>'
    )


def render_line(marker: Marker, ctx: RenderContext) -> str:
    a, b = _segment(marker, ctx)
    return (
        f'<g {_attrs(marker, ctx)}>'
        f'<line x1="{a.x:.2f}" y1="{a.y:.2f}" x2="{b.x:.2f}" y2="{b.y:.2f}" {_stroke(marker, ctx)}/>'
        f'{_label(marker, ctx)}</g>'
    )


def _arrow_head(a: Point, b: Point, size: float = 10.0) -> List[Point]:
    angle = math.atan2(b.y - a.y, b.x - a.x)
    left = Point(b.x - size * math.cos(angle - math.pi / 6), b.y - size * math.sin(angle - math.pi / 6))
    right = Point(b.x - size * math.cos(angle + math.pi / 6), b.y - size * math.sin(angle + math.pi / 6))
    return [b, left, right]


def render_arrow(marker: Marker, ctx: RenderContext) -> str:
    a, b = _segment(marker, ctx)
    color = _color(marker.color)
    return (
        f'<g {_attrs(marker, ctx)}>'
        f'<line x1="{a.x:.2f}" y1="{a.y:.2f}" x2="{b.x:.2f}" y2="{b.y:.2f}" {_stroke(marker, ctx)}/>'
        f'<polygon points="{_points_attr(_arrow_head(a, b))}" fill={color}/>'
        f'{_label(marker, ctx)}</g>'
    )


def render_measurement(marker: Marker, ctx: RenderContext) -> str:
    a, b = _segment(marker, ctx)
    text = _measurement_text(marker, ctx) or marker.label or ""
    mid = Point((a.x + b.x) / 2, (a.y + b.y) / 2)
    return (
        f'<g {_attrs(marker, ctx)}>'
        f'<line x1="{a.x:.2f}" y1="{a.y:.2f}" x2="{b.x:.2f}" y2="{b.y:.2f}" stroke-dasharray="6,3" {_stroke(marker, ctx)}/>'
        f'{_text(mid.x, mid.y - 6, text, ctx, marker, anchor="middle") if text else ""}</g>'
    )


def render_callout(marker: Marker, ctx: RenderContext) -> str:
    """Leader line from the anchor to a text box at the end point."""
    a, b = _segment(marker, ctx)
    content = marker.text_content or marker.label or ""
    width = max(len(content) * 7.0, 30.0)
    return (
        f'<g {_attrs(marker, ctx)}>'
        f'<line x1="{a.x:.2f}" y1="{a.y:.2f}" x2="{b.x:.2f}" y2="{b.y:.2f}" {_stroke(marker, ctx)}/>'
        f'<rect x="{b.x:.2f}" y="{b.y - 16:.2f}" width="{width:.2f}" height="22" '
        f'fill={_color(marker.fill_color, "#FFFFFF")} {_stroke(marker, ctx)}/>'
        f'{_text(b.x + 4, b.y, content, ctx, marker)}</g>'
    )


def render_polyline(marker: Marker, ctx: RenderContext) -> str:
    pts = [ctx.screen(p) for p in marker.vertices()]
    return (
        f'<g {_attrs(marker, ctx)}>'
        f'<polyline points="{_points_attr(pts)}" fill="none" {_stroke(marker, ctx)}/>'
        f'{_label(marker, ctx)}</g>'
    )


def render_polygon(marker: Marker, ctx: RenderContext) -> str:
    pts = [ctx.screen(p) for p in marker.vertices()]
    return (
        f'<g {_attrs(marker, ctx)}>'
        f'<polygon points="{_points_attr(pts)}" {_fill(marker)} {_stroke(marker, ctx)}/>'
        f'{_label(marker, ctx)}</g>'
    )


def render_area(marker: Marker, ctx: RenderContext) -> str:
    pts = [ctx.screen(p) for p in marker.vertices()]
    if not pts:
        return ""
    text = _measurement_text(marker, ctx)
    centroid = Point(sum(p.x for p in pts) / len(pts), sum(p.y for p in pts) / len(pts))
    return (
        f'<g {_attrs(marker, ctx)}>'
        f'<polygon points="{_points_attr(pts)}" fill={_color(marker.fill_color, "none")} {_stroke(marker, ctx)}/>'
        f'{_text(centroid.x, centroid.y, text, ctx, marker, anchor="middle") if text else ""}'
        f'{_label(marker, ctx)}</g>'
    )


Renderer = Callable[[Marker, RenderContext], str]

RENDERERS: Dict[MarkerType, Renderer] = {
    MarkerType.ACCESS_POINT: render_equipment,
    MarkerType.CAMERA: render_equipment,
    MarkerType.ELEVATOR: render_equipment,
    MarkerType.INTERCOM: render_equipment,
    MarkerType.NOTE: render_note,
    MarkerType.TEXT: render_text,
    MarkerType.STAMP: render_stamp,
    MarkerType.RECTANGLE: render_rectangle,
    MarkerType.ELLIPSE: render_ellipse,
    MarkerType.CIRCLE: render_circle,
    MarkerType.CLOUD: render_cloud,
    MarkerType.LINE: render_line,
    MarkerType.ARROW: render_arrow,
    MarkerType.MEASUREMENT: render_measurement,
    MarkerType.CALLOUT: render_callout,
    MarkerType.POLYLINE: render_polyline,
    MarkerType.POLYGON: render_polygon,
    MarkerType.AREA: render_area,
}

_missing = set(MarkerType) - set(RENDERERS)
if _missing:
    raise RuntimeError(f"No renderer for marker types: {sorted(t.value for t in _missing)}")


def render_marker(marker: Marker, ctx: RenderContext) -> str:
    return RENDERERS[marker.marker_type](marker, ctx)


def render_markers(
    markers: Iterable[Marker],
    layers: Iterable[Layer],
    state: ViewportState,
    selected_id: Optional[int] = None,
    show_all_labels: bool = False,
    calibration: Optional[Calibration] = None,
    preview: Optional[Marker] = None,
) -> str:
    """SVG <g> overlay for the current page in screen space."""
    parts = ['<g class="marker-overlay">']
    for marker in visible_markers(markers, layers, state.current_page):
        selected = selected_id is not None and marker.id == selected_id
        ctx = RenderContext(
            state=state,
            selected=selected,
            show_label=selected or show_all_labels,
            calibration=calibration,
        )
        parts.append(render_marker(marker, ctx))
    if preview is not None:
        ctx = RenderContext(state=state, selected=True, show_label=False, calibration=calibration)
        parts.append(f'<g class="preview">{render_marker(preview, ctx)}</g>')
    parts.append("</g>")
    return "".join(parts)


def render_document(
    page_image: Optional[RenderedPage],
    markers: Iterable[Marker],
    layers: Iterable[Layer],
    state: ViewportState,
    show_all_labels: bool = True,
    calibration: Optional[Calibration] = None,
) -> str:
    """
    Standalone SVG combining the page raster and the marker overlay.

    Rendered at zoom 1 without pan so the export matches the page itself.
    """
    export_state = state.model_copy(update={"scale": 1.0, "translate_x": 0.0, "translate_y": 0.0})
    width = page_image.width if page_image else 0
    height = page_image.height if page_image else 0
    parts = [
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{width}" height="{height}" '
        f'viewBox="0 0 {width} {height}">'
    ]
    if page_image is not None and page_image.data:
        encoded = base64.b64encode(page_image.data).decode("ascii")
        parts.append(
            f'<image x="0" y="0" width="{width}" height="{height}" '
            f'href="data:{page_image.mime_type};base64,{encoded}"/>'
        )
    parts.append(render_markers(markers, layers, export_state, show_all_labels=show_all_labels, calibration=calibration))
    parts.append("</svg>")
    return "".join(parts)


# ============================================================
# Hit testing
# ============================================================

def point_segment_distance(p: Point, a: Point, b: Point) -> float:
    dx, dy = b.x - a.x, b.y - a.y
    if dx == 0 and dy == 0:
        return distance(p, a)
    t = ((p.x - a.x) * dx + (p.y - a.y) * dy) / (dx * dx + dy * dy)
    t = max(0.0, min(1.0, t))
    return distance(p, Point(a.x + t * dx, a.y + t * dy))


def point_in_polygon(p: Point, polygon: Sequence[Point]) -> bool:
    """Ray casting; boundary handled by the caller's edge tolerance."""
    inside = False
    n = len(polygon)
    for i in range(n):
        a, b = polygon[i], polygon[(i + 1) % n]
        if (a.y > p.y) != (b.y > p.y) and p.x < (b.x - a.x) * (p.y - a.y) / (b.y - a.y) + a.x:
            inside = not inside
    return inside


def _near_path(p: Point, vertices: Sequence[Point], tolerance: float, closed: bool) -> bool:
    edges = list(zip(vertices, vertices[1:]))
    if closed and len(vertices) > 2:
        edges.append((vertices[-1], vertices[0]))
    return any(point_segment_distance(p, a, b) <= tolerance for a, b in edges)


def marker_contains(marker: Marker, pdf_point: Point, tolerance: float) -> bool:
    """Whether a PDF-space point falls on a marker's geometry (tolerance in PDF points)."""
    kind = marker.kind

    if kind == GeometryKind.POINT:
        return marker.position is not None and distance(marker.position, pdf_point) <= tolerance

    if kind == GeometryKind.PATH:
        vertices = marker.vertices()
        if len(vertices) < 2:
            return False
        closed = marker.marker_type in (MarkerType.POLYGON, MarkerType.AREA)
        if closed and len(vertices) > 2 and point_in_polygon(pdf_point, vertices):
            return True
        return _near_path(pdf_point, vertices, tolerance, closed)

    if marker.marker_type in (MarkerType.LINE, MarkerType.ARROW, MarkerType.MEASUREMENT, MarkerType.CALLOUT):
        start = marker.position
        end = marker.end or Point(start.x + (marker.width or 0), start.y + (marker.height or 0))
        return point_segment_distance(pdf_point, start, end) <= tolerance

    bounds = marker.bounds()
    if bounds is None:
        return False
    min_x, min_y, max_x, max_y = bounds
    cx, cy = (min_x + max_x) / 2, (min_y + max_y) / 2
    if marker.marker_type == MarkerType.CIRCLE:
        # Drawn with the larger half-extent as radius
        radius = max(max_x - min_x, max_y - min_y) / 2 + tolerance
        return distance((cx, cy), pdf_point) <= radius
    if marker.marker_type == MarkerType.ELLIPSE:
        rx = (max_x - min_x) / 2 + tolerance
        ry = (max_y - min_y) / 2 + tolerance
        return ((pdf_point.x - cx) / rx) ** 2 + ((pdf_point.y - cy) / ry) ** 2 <= 1.0
    return (
        min_x - tolerance <= pdf_point.x <= max_x + tolerance
        and min_y - tolerance <= pdf_point.y <= max_y + tolerance
    )


def hit_test(
    screen_point: Sequence[float],
    markers: Iterable[Marker],
    layers: Iterable[Layer],
    state: ViewportState,
    tolerance_px: float = HIT_TOLERANCE_PX,
) -> Optional[Marker]:
    """Topmost visible marker on the current page under a screen point."""
    pdf_point = state.to_pdf(screen_point)
    tolerance = screen_length_to_pdf(tolerance_px, state.render_scale, state.scale)
    for marker in reversed(visible_markers(markers, layers, state.current_page)):
        if marker_contains(marker, pdf_point, tolerance):
            return marker
    return None
