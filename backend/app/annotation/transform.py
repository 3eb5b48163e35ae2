"""
SiteWalk - Coordinate Transform
Stateless conversions between PDF-space, viewport pixels and screen pixels

Coordinate spaces:
- PDF-space: page points (1/72 inch), origin top-left, independent of zoom/pan
- Viewport space: PDF-space multiplied by the renderer's render scale
- Screen space: viewport space multiplied by zoom and shifted by pan translation
"""
import math
from typing import NamedTuple, Sequence, Tuple


class Point(NamedTuple):
    """A 2D point. The space it lives in is given by context."""
    x: float
    y: float

    def __add__(self, other):
        return Point(self.x + other[0], self.y + other[1])

    def __sub__(self, other):
        return Point(self.x - other[0], self.y - other[1])

    def scaled(self, factor: float) -> "Point":
        return Point(self.x * factor, self.y * factor)


def as_point(value) -> Point:
    """Coerce a tuple, Point or {"x", "y"} mapping to a Point."""
    if isinstance(value, Point):
        return value
    if isinstance(value, dict):
        return Point(float(value["x"]), float(value["y"]))
    x, y = value
    return Point(float(x), float(y))


def pdf_to_screen(
    point: Sequence[float],
    render_scale: float,
    zoom: float,
    translation: Sequence[float] = (0.0, 0.0),
) -> Point:
    """screen = point * render_scale * zoom + translation"""
    point = as_point(point)
    factor = render_scale * zoom
    return Point(point.x * factor + translation[0], point.y * factor + translation[1])


def screen_to_pdf(
    point: Sequence[float],
    render_scale: float,
    zoom: float,
    translation: Sequence[float] = (0.0, 0.0),
) -> Point:
    """
    Inverse of pdf_to_screen.

    pdf = (screen - translation) / (render_scale * zoom)

    Raises:
        ValueError: If the combined scale is not positive
    """
    point = as_point(point)
    factor = render_scale * zoom
    if factor <= 0:
        raise ValueError(f"Combined scale must be positive, got {factor}")
    return Point((point.x - translation[0]) / factor, (point.y - translation[1]) / factor)


def compute_render_scale(native_page_width: float, target_viewport_width: float) -> float:
    """
    Factor a renderer applied to go from the page's intrinsic width
    to its rendered pixel width.
    """
    if native_page_width <= 0:
        raise ValueError(f"Native page width must be positive, got {native_page_width}")
    return target_viewport_width / native_page_width


def screen_length_to_pdf(length: float, render_scale: float, zoom: float) -> float:
    """Convert a screen-space length (e.g. a pixel threshold) to PDF points."""
    return length / (render_scale * zoom)


def distance(a: Sequence[float], b: Sequence[float]) -> float:
    """Euclidean distance between two points."""
    return math.hypot(b[0] - a[0], b[1] - a[1])


def drag_offset(cursor: Sequence[float], marker_position: Sequence[float]) -> Tuple[float, float]:
    """Offset between cursor and marker, both in PDF-space (zoom independent)."""
    return (cursor[0] - marker_position[0], cursor[1] - marker_position[1])
