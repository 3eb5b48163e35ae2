"""
SiteWalk - Annotation Errors
Error taxonomy for the floorplan annotation core
"""
from typing import Optional


class AnnotationError(Exception):
    """Base class for all annotation core errors."""
    pass


class ValidationError(AnnotationError):
    """
    Input/validation error.

    Raised synchronously before any network call. Nothing is persisted
    when one of these is raised.
    """
    pass


class MissingGeometryError(ValidationError):
    """Marker geometry cannot be interpreted under its marker type."""
    pass


class PageOutOfRangeError(ValidationError):
    """Marker page is outside [1, page_count] of its floorplan."""
    pass


class InvalidOpacityError(ValidationError):
    """Opacity outside [0, 1]."""
    pass


class TypeMismatchError(ValidationError):
    """An edit attempted to change the immutable marker_type."""
    pass


class InvalidCalibrationError(ValidationError):
    """Calibration segment is degenerate or the real-world distance is not positive."""
    pass


class CalibrationStateError(AnnotationError):
    """Calibration session received an event its current state does not accept."""
    pass


class TransportError(AnnotationError):
    """
    Network failure or non-2xx response from the persistence service.

    Attributes:
        status_code: HTTP status code (None when the request never completed)
        detail: Server-provided detail or the underlying error message
    """

    def __init__(self, message: str, status_code: Optional[int] = None, detail: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class RenderError(AnnotationError):
    """Page decode or rasterization failed."""
    pass
