"""
SiteWalk - Floorplan Annotation Core
PDF-space markers, calibration, viewport and drawing tools

The editor session lives in app.annotation.session; it is not imported here
because it pulls in the HTTP client and page renderer.
"""
from app.annotation.errors import (
    AnnotationError,
    ValidationError,
    MissingGeometryError,
    PageOutOfRangeError,
    InvalidOpacityError,
    TypeMismatchError,
    InvalidCalibrationError,
    CalibrationStateError,
    TransportError,
    RenderError,
)
from app.annotation.transform import Point, pdf_to_screen, screen_to_pdf, compute_render_scale
from app.annotation.markers import (
    MarkerType,
    GeometryKind,
    Layer,
    Marker,
    MarkerPoint,
    new_marker,
    create_version,
    duplicate_marker,
    validate_marker,
    verify_chain,
)
from app.annotation.calibration import (
    Calibration,
    CalibrationSession,
    CalibrationState,
    LengthUnit,
    compute_scale_factor,
    measure_marker,
)
from app.annotation.viewport import ViewportController, ViewportState
from app.annotation.drawing import DrawingMachine, DrawingState
from app.annotation.render import hit_test, render_markers, visible_markers

__all__ = [
    "AnnotationError",
    "ValidationError",
    "MissingGeometryError",
    "PageOutOfRangeError",
    "InvalidOpacityError",
    "TypeMismatchError",
    "InvalidCalibrationError",
    "CalibrationStateError",
    "TransportError",
    "RenderError",
    "Point",
    "pdf_to_screen",
    "screen_to_pdf",
    "compute_render_scale",
    "MarkerType",
    "GeometryKind",
    "Layer",
    "Marker",
    "MarkerPoint",
    "new_marker",
    "create_version",
    "duplicate_marker",
    "validate_marker",
    "verify_chain",
    "Calibration",
    "CalibrationSession",
    "CalibrationState",
    "LengthUnit",
    "compute_scale_factor",
    "measure_marker",
    "ViewportController",
    "ViewportState",
    "DrawingMachine",
    "DrawingState",
    "hit_test",
    "render_markers",
    "visible_markers",
]
