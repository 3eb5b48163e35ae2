"""
SiteWalk - Calibration Engine
Turns a two-click reference segment into a real-world scale for a floorplan page
"""
import enum
import logging
from typing import List, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from app.annotation.errors import CalibrationStateError, InvalidCalibrationError
from app.annotation.markers import Marker, MarkerType
from app.annotation.transform import Point, as_point, distance

logger = logging.getLogger(__name__)


class LengthUnit(str, enum.Enum):
    """Real-world units offered by the calibration dialog."""
    INCHES = "in"
    FEET = "ft"
    CENTIMETERS = "cm"
    METERS = "m"


METERS_PER_UNIT = {
    LengthUnit.INCHES: 0.0254,
    LengthUnit.FEET: 0.3048,
    LengthUnit.CENTIMETERS: 0.01,
    LengthUnit.METERS: 1.0,
}


def convert_length(value: float, from_unit: LengthUnit, to_unit: LengthUnit) -> float:
    from_unit, to_unit = LengthUnit(from_unit), LengthUnit(to_unit)
    if from_unit == to_unit:
        return value
    return value * METERS_PER_UNIT[from_unit] / METERS_PER_UNIT[to_unit]


class Calibration(BaseModel):
    """
    Reference segment in PDF-space mapped to a known real-world distance.

    At most one calibration per (floorplan, page) is authoritative.
    """
    id: Optional[int] = None
    floorplan_id: Optional[int] = None
    page: int = 1
    start_x: float
    start_y: float
    end_x: float
    end_y: float
    real_world_distance: float
    unit: LengthUnit = LengthUnit.FEET
    pdf_distance: Optional[float] = None
    scale_factor: Optional[float] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def start(self) -> Point:
        return Point(self.start_x, self.start_y)

    @property
    def end(self) -> Point:
        return Point(self.end_x, self.end_y)


def compute_scale_factor(calibration: Calibration) -> float:
    """
    Real-world units per PDF point: real_world_distance / |end - start|.

    Raises:
        InvalidCalibrationError: coincident points or non-positive distance
    """
    if calibration.real_world_distance <= 0:
        raise InvalidCalibrationError(
            f"Real-world distance must be positive, got {calibration.real_world_distance}"
        )
    pdf_distance = distance(calibration.start, calibration.end)
    if pdf_distance == 0:
        raise InvalidCalibrationError("Calibration start and end points coincide")
    return calibration.real_world_distance / pdf_distance


def with_derived_fields(calibration: Calibration) -> Calibration:
    """Fill pdf_distance and scale_factor from the reference segment."""
    scale = compute_scale_factor(calibration)
    return calibration.model_copy(update={
        "pdf_distance": distance(calibration.start, calibration.end),
        "scale_factor": scale,
    })


def to_real_world(pdf_length: float, calibration: Calibration, unit: Optional[LengthUnit] = None) -> float:
    """Convert a PDF-space length to real-world units (calibration unit by default)."""
    value = pdf_length * compute_scale_factor(calibration)
    if unit is not None:
        value = convert_length(value, calibration.unit, unit)
    return value


def polyline_length(points: Sequence[Sequence[float]]) -> float:
    return sum(distance(a, b) for a, b in zip(points, points[1:]))


def polygon_area(points: Sequence[Sequence[float]]) -> float:
    """Shoelace area of a closed polygon (absolute value)."""
    area = 0.0
    n = len(points)
    for i in range(n):
        x1, y1 = points[i][0], points[i][1]
        x2, y2 = points[(i + 1) % n][0], points[(i + 1) % n][1]
        area += x1 * y2 - x2 * y1
    return abs(area) / 2.0


class Measurement(BaseModel):
    """A marker's real-world size under a page calibration."""
    kind: str  # "length" | "area"
    value: float
    unit: str


LENGTH_TYPES = {MarkerType.MEASUREMENT, MarkerType.LINE, MarkerType.ARROW, MarkerType.POLYLINE}
AREA_TYPES = {MarkerType.AREA, MarkerType.POLYGON, MarkerType.RECTANGLE}


def measure_marker(
    marker: Marker,
    calibration: Calibration,
    unit: Optional[LengthUnit] = None,
) -> Optional[Measurement]:
    """
    Real-world length or area of a marker, or None for types that are not measured.
    """
    unit = LengthUnit(unit) if unit is not None else calibration.unit
    scale = convert_length(compute_scale_factor(calibration), calibration.unit, unit)

    if marker.marker_type in LENGTH_TYPES:
        if marker.marker_type == MarkerType.POLYLINE:
            pdf_length = polyline_length(marker.vertices())
        elif marker.end is not None:
            pdf_length = distance(marker.position, marker.end)
        elif marker.width is not None and marker.height is not None:
            pdf_length = (marker.width ** 2 + marker.height ** 2) ** 0.5
        else:
            return None
        return Measurement(kind="length", value=pdf_length * scale, unit=unit.value)

    if marker.marker_type in AREA_TYPES:
        if marker.marker_type == MarkerType.RECTANGLE:
            bounds = marker.bounds()
            if bounds is None:
                return None
            pdf_area = (bounds[2] - bounds[0]) * (bounds[3] - bounds[1])
        else:
            pdf_area = polygon_area(marker.vertices())
        return Measurement(kind="area", value=pdf_area * scale * scale, unit=f"sq {unit.value}")

    return None


class CalibrationState(str, enum.Enum):
    IDLE = "idle"
    AWAITING_START = "awaiting_start"
    AWAITING_END = "awaiting_end"
    AWAITING_DISTANCE_INPUT = "awaiting_distance_input"
    COMMITTED = "committed"


class CalibrationSession:
    """
    Per-page calibration workflow.

    idle -> awaiting_start -> awaiting_end -> awaiting_distance_input -> committed

    submit_distance() validates and stages the calibration without leaving
    awaiting_distance_input, so a failed save keeps both points for retry.
    commit() is called once the calibration has been persisted.
    """

    def __init__(self, floorplan_id: Optional[int] = None, page: int = 1):
        self.floorplan_id = floorplan_id
        self.page = page
        self.state = CalibrationState.IDLE
        self.start: Optional[Point] = None
        self.end: Optional[Point] = None
        self.pending: Optional[Calibration] = None
        self.committed: Optional[Calibration] = None

    def _expect(self, *states: CalibrationState) -> None:
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise CalibrationStateError(f"Calibration is {self.state.value}; expected one of: {allowed}")

    def begin(self, page: Optional[int] = None) -> None:
        """Enter calibration mode."""
        self._expect(CalibrationState.IDLE, CalibrationState.COMMITTED)
        if page is not None:
            self.page = page
        self.start = self.end = None
        self.pending = None
        self.state = CalibrationState.AWAITING_START

    def click(self, point: Sequence[float]) -> CalibrationState:
        """Record the start, then the end point of the reference segment (PDF-space)."""
        if self.state == CalibrationState.AWAITING_START:
            self.start = as_point(point)
            self.state = CalibrationState.AWAITING_END
        elif self.state == CalibrationState.AWAITING_END:
            self.end = as_point(point)
            self.state = CalibrationState.AWAITING_DISTANCE_INPUT
        else:
            raise CalibrationStateError(f"Calibration is {self.state.value}; no point expected")
        return self.state

    def submit_distance(self, real_world_distance: float, unit: LengthUnit = LengthUnit.FEET) -> Calibration:
        """
        Stage a calibration for the drawn segment.

        Raises:
            InvalidCalibrationError: degenerate segment or non-positive distance
        """
        self._expect(CalibrationState.AWAITING_DISTANCE_INPUT)
        candidate = Calibration(
            floorplan_id=self.floorplan_id,
            page=self.page,
            start_x=self.start.x,
            start_y=self.start.y,
            end_x=self.end.x,
            end_y=self.end.y,
            real_world_distance=real_world_distance,
            unit=LengthUnit(unit),
        )
        self.pending = with_derived_fields(candidate)
        return self.pending

    def commit(self, saved: Optional[Calibration] = None) -> Calibration:
        """Mark the staged calibration as persisted."""
        self._expect(CalibrationState.AWAITING_DISTANCE_INPUT)
        if self.pending is None:
            raise CalibrationStateError("No distance has been submitted")
        self.committed = saved or self.pending
        self.pending = None
        self.state = CalibrationState.COMMITTED
        logger.info(
            f"Calibration committed for page {self.page}: "
            f"{self.committed.real_world_distance} {self.committed.unit.value}"
        )
        return self.committed

    def cancel(self) -> None:
        """Discard partial points and return to idle."""
        self._expect(
            CalibrationState.AWAITING_START,
            CalibrationState.AWAITING_END,
            CalibrationState.AWAITING_DISTANCE_INPUT,
        )
        self.start = self.end = None
        self.pending = None
        self.state = CalibrationState.IDLE

    @property
    def points(self) -> List[Point]:
        return [p for p in (self.start, self.end) if p is not None]
