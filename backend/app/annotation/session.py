"""
SiteWalk - Editor Session
One open floorplan view: viewport, drawing tools, calibration and the marker cache

The session is the only place that talks to the persistence service. Every
mutation is validated locally first; nothing reaches the network when
validation fails. A mutation that fails in transit stays in `pending` with
its already-built marker so retry_pending() can resend it without redrawing.
"""
import enum
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from pydantic import BaseModel

from app.annotation.calibration import Calibration, CalibrationSession, CalibrationState, LengthUnit
from app.annotation.drawing import DrawingMachine
from app.annotation.errors import TransportError, ValidationError
from app.annotation.markers import (
    Layer,
    Marker,
    create_version,
    duplicate_marker,
    validate_marker,
)
from app.annotation.render import hit_test, render_document, render_markers
from app.annotation.transform import Point
from app.annotation.viewport import PageRenderer, RenderedPage, RenderScheduler, ViewportController
from app.services.floorplan_client import FloorplanClient, FloorplanDocument
from app.services.page_renderer import renderer_for_floorplan

logger = logging.getLogger(__name__)

EXPORT_EVENT = "export-floorplan"

ACTIVE_CALIBRATION_STATES = (
    CalibrationState.AWAITING_START,
    CalibrationState.AWAITING_END,
    CalibrationState.AWAITING_DISTANCE_INPUT,
)


class NotificationVariant(str, enum.Enum):
    DEFAULT = "default"
    DESTRUCTIVE = "destructive"


class Notification(BaseModel):
    """User-facing message. Blocking ones must be acknowledged before continuing."""
    title: str
    description: str = ""
    variant: NotificationVariant = NotificationVariant.DEFAULT
    blocking: bool = False


class PendingAction(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    DUPLICATE = "duplicate"
    CALIBRATION = "calibration"


class PendingOperation:
    """A mutation waiting to be (re)sent to the server."""

    def __init__(
        self,
        action: PendingAction,
        marker: Optional[Marker] = None,
        base: Optional[Marker] = None,
        changes: Optional[Dict[str, Any]] = None,
        calibration: Optional[Calibration] = None,
    ):
        self.action = action
        self.marker = marker
        self.base = base
        self.changes = changes or {}
        self.calibration = calibration
        self.result: Any = None

    def __repr__(self) -> str:
        return f"<PendingOperation {self.action.value}>"


class EditorSession:
    """
    Editing state for one user viewing one floorplan.

    UI seams:
        on_page_change(page): navigate and refetch markers/calibration
        tool_mode: active entry of the drawing tool table
        show_all_labels: label visibility rule for the overlay
        dispatch_event("export-floorplan"): composite page + overlay export
    """

    def __init__(
        self,
        client: FloorplanClient,
        floorplan_id: int,
        renderer_factory: Optional[Callable[[FloorplanDocument], PageRenderer]] = renderer_for_floorplan,
        viewport_width: Optional[float] = None,
        on_export: Optional[Callable[[str], Any]] = None,
    ):
        self.client = client
        self.floorplan_id = floorplan_id
        self.renderer_factory = renderer_factory
        self.viewport_width = viewport_width
        self.on_export = on_export

        self.floorplan: Optional[FloorplanDocument] = None
        self.markers: List[Marker] = []
        self.layers: List[Layer] = []
        self.calibration: Optional[Calibration] = None
        self.page_image: Optional[RenderedPage] = None
        self.selected_id: Optional[int] = None
        self.active_layer_id: Optional[int] = None
        self.notifications: List[Notification] = []
        self.pending: List[PendingOperation] = []
        self._outbox: List[PendingOperation] = []
        self._show_all_labels = False

        self.viewport = ViewportController()
        self.drawing = DrawingMachine(
            self.viewport,
            floorplan_id=floorplan_id,
            on_commit=self._queue_create,
            on_select=self._select_at,
            on_move=self._queue_move,
            active_layer=self.active_layer,
        )
        self.calibration_session = CalibrationSession(floorplan_id)
        self._event_handlers: Dict[str, Callable[..., Any]] = {
            EXPORT_EVENT: self.export_floorplan,
        }

    # ============================================================
    # UI-facing properties
    # ============================================================

    @property
    def tool_mode(self) -> str:
        return self.drawing.tool

    @tool_mode.setter
    def tool_mode(self, tool: str) -> None:
        self.drawing.set_tool(tool)

    @property
    def show_all_labels(self) -> bool:
        return self._show_all_labels

    @show_all_labels.setter
    def show_all_labels(self, value: bool) -> None:
        self._show_all_labels = bool(value)

    @property
    def current_page(self) -> int:
        return self.viewport.state.current_page

    @property
    def page_count(self) -> int:
        return self.viewport.state.page_count

    @property
    def selected_marker(self) -> Optional[Marker]:
        return self._find(self.selected_id)

    def active_layer(self) -> Optional[Layer]:
        for layer in self.layers:
            if layer.id == self.active_layer_id:
                return layer
        return None

    def _find(self, marker_id: Optional[int]) -> Optional[Marker]:
        if marker_id is None:
            return None
        for marker in self.markers:
            if marker.id == marker_id:
                return marker
        return None

    # ============================================================
    # Notifications
    # ============================================================

    def _notify(self, title: str, description: str = "", blocking: bool = False, error: bool = False) -> None:
        variant = NotificationVariant.DESTRUCTIVE if error else NotificationVariant.DEFAULT
        self.notifications.append(
            Notification(title=title, description=description, variant=variant, blocking=blocking)
        )

    def _notify_validation(self, error: ValidationError) -> None:
        logger.info(f"Rejected by validation: {type(error).__name__}: {error}")
        self._notify(type(error).__name__, str(error), blocking=True, error=True)

    def _notify_transport(self, title: str, error: TransportError) -> None:
        logger.warning(f"{title}: {error}")
        self._notify(title, error.detail or str(error), blocking=False, error=True)

    def dismiss_notifications(self) -> List[Notification]:
        dismissed, self.notifications = self.notifications, []
        return dismissed

    # ============================================================
    # Loading & navigation
    # ============================================================

    async def load(self) -> Optional[FloorplanDocument]:
        """Fetch the floorplan and its layers, then show the first page."""
        try:
            floorplan = await self.client.get_floorplan(self.floorplan_id)
            layers = await self.client.list_layers(self.floorplan_id)
        except TransportError as e:
            self._notify_transport("Could not load floorplan", e)
            return None

        self.floorplan = floorplan
        self.layers = layers
        if self.active_layer_id is None and layers:
            self.active_layer_id = layers[0].id

        self.viewport.set_page_count(floorplan.page_count)
        if self.viewport_width and floorplan.page_width:
            self.viewport.fit_width(floorplan.page_width, self.viewport_width)
        if self.renderer_factory is not None:
            self.viewport.scheduler = RenderScheduler(
                self.renderer_factory(floorplan),
                on_rendered=self._on_rendered,
                on_error=self._on_render_error,
            )

        logger.info(f"Loaded floorplan {floorplan.id} '{floorplan.name}' ({floorplan.page_count} pages)")
        await self.on_page_change(self.current_page)
        return floorplan

    async def on_page_change(self, page: int) -> int:
        """
        Navigate to `page` (clamped), discarding any drawing in progress,
        and refetch the page's markers and calibration.
        """
        self.drawing.cancel()
        self.selected_id = None
        self.page_image = None
        self.viewport.change_page(page)
        self.calibration_session = CalibrationSession(self.floorplan_id, self.current_page)
        await self.refresh()
        return self.current_page

    async def wait_for_render(self) -> None:
        if self.viewport.scheduler is not None:
            await self.viewport.scheduler.wait()

    async def refresh(self) -> bool:
        """Refetch the marker cache and calibration for the current page."""
        page = self.current_page
        try:
            markers = await self.client.list_markers(self.floorplan_id, page=page)
            calibration = await self.client.get_calibration(self.floorplan_id, page)
        except TransportError as e:
            self._notify_transport("Could not load markers", e)
            return False
        if page != self.current_page:
            # A newer page change owns the cache now
            return False
        self.markers = markers
        self.calibration = calibration
        if self._find(self.selected_id) is None:
            self.selected_id = None
        return True

    def _on_rendered(self, rendered: RenderedPage) -> None:
        self.page_image = rendered

    def _on_render_error(self, page: int, error: Exception) -> None:
        self.page_image = None
        self._notify("Could not render page", f"Page {page}: {error}", error=True)

    # ============================================================
    # Pointer input
    # ============================================================

    async def pointer_down(self, screen_point: Sequence[float]) -> Optional[Marker]:
        if self.calibration_session.state in (CalibrationState.AWAITING_START, CalibrationState.AWAITING_END):
            self.calibration_session.click(self.viewport.state.to_pdf(screen_point))
            return None
        self.drawing.pointer_down(screen_point)
        return await self._flush()

    def pointer_move(self, screen_point: Sequence[float]) -> None:
        self.drawing.pointer_move(screen_point)

    async def pointer_up(self, screen_point: Sequence[float]) -> Optional[Marker]:
        self.drawing.pointer_up(screen_point)
        return await self._flush()

    async def double_click(self, screen_point: Sequence[float]) -> Optional[Marker]:
        self.drawing.double_click(screen_point)
        return await self._flush()

    def wheel(self, delta_y: float, screen_point: Sequence[float]) -> None:
        if delta_y < 0:
            self.viewport.zoom_in(screen_point)
        elif delta_y > 0:
            self.viewport.zoom_out(screen_point)

    def _select_at(self, screen_point: Point) -> Optional[Marker]:
        hit = hit_test(screen_point, self.markers, self.layers, self.viewport.state)
        self.selected_id = hit.id if hit is not None else None
        return hit

    # ============================================================
    # Keyboard
    # ============================================================

    async def handle_key(self, key: str, ctrl: bool = False, meta: bool = False) -> bool:
        """Apply a keyboard shortcut. Returns True when the key was handled."""
        modifier = ctrl or meta

        if key == "Escape":
            self.drawing.cancel()
            if self.calibration_session.state in ACTIVE_CALIBRATION_STATES:
                self.calibration_session.cancel()
            return True

        if modifier and key == "0":
            self.viewport.reset_view()
            return True

        if self.selected_id is None:
            return False

        if key in ("Delete", "Backspace"):
            await self.delete_selected()
            return True

        if modifier and key.lower() == "d":
            await self.duplicate_selected()
            return True

        return False

    # ============================================================
    # Marker mutations
    # ============================================================

    def _queue_create(self, marker: Marker) -> None:
        self._outbox.append(PendingOperation(PendingAction.CREATE, marker=marker))

    def _queue_move(self, marker: Marker, changes: Dict[str, Any]) -> None:
        self._outbox.append(PendingOperation(PendingAction.UPDATE, base=marker, changes=changes))

    async def _flush(self) -> Optional[Marker]:
        ops, self._outbox = self._outbox, []
        result = None
        for op in ops:
            if await self._execute(op):
                result = op.result
        return result

    async def commit_marker(self, marker: Marker) -> Optional[Marker]:
        """Persist a new marker built outside the drawing tools."""
        self._queue_create(marker)
        return await self._flush()

    async def update_marker(self, marker_id: int, changes: Dict[str, Any]) -> Optional[Marker]:
        """Save `changes` to a cached marker as its next version."""
        existing = self._find(marker_id)
        if existing is None:
            raise KeyError(f"Marker {marker_id} is not on the current page")
        self._outbox.append(PendingOperation(PendingAction.UPDATE, base=existing, changes=changes))
        return await self._flush()

    async def delete_selected(self) -> bool:
        selected = self.selected_marker
        if selected is None:
            return False
        return await self._execute(PendingOperation(PendingAction.DELETE, base=selected))

    async def duplicate_selected(self) -> Optional[Marker]:
        selected = self.selected_marker
        if selected is None:
            return None
        op = PendingOperation(PendingAction.DUPLICATE, base=selected)
        return op.result if await self._execute(op) else None

    async def retry_pending(self) -> int:
        """Resend every operation that failed in transit. Returns how many succeeded."""
        succeeded = 0
        for op in list(self.pending):
            if await self._execute(op):
                succeeded += 1
        return succeeded

    async def _execute(self, op: PendingOperation) -> bool:
        try:
            op.result = await self._perform(op)
        except ValidationError as e:
            self._notify_validation(e)
            self._drop_pending(op)
            return False
        except TransportError as e:
            if not any(p is op for p in self.pending):
                self.pending.append(op)
            self._notify_transport(f"Could not save {op.action.value}", e)
            return False

        self._drop_pending(op)
        await self.refresh()
        return True

    def _drop_pending(self, op: PendingOperation) -> None:
        self.pending = [p for p in self.pending if p is not op]

    async def _perform(self, op: PendingOperation) -> Any:
        """Validate, then send. Built markers are kept on `op` for retries."""
        if op.action == PendingAction.CREATE:
            validate_marker(op.marker, self.page_count)
            saved = await self.client.create_marker(self.floorplan_id, op.marker)
            logger.info(f"Created {saved.marker_type.value} marker {saved.id}")
            return saved

        if op.action == PendingAction.UPDATE:
            if op.marker is None:
                op.marker = validate_marker(create_version(op.base, op.changes), self.page_count)
            saved = await self.client.update_marker(self.floorplan_id, op.base.id, op.marker)
            if self.selected_id == op.base.id:
                self.selected_id = saved.id
            logger.info(f"Marker {op.base.id} superseded by version {saved.version} (id {saved.id})")
            return saved

        if op.action == PendingAction.DELETE:
            await self.client.delete_marker(self.floorplan_id, op.base.id)
            if self.selected_id == op.base.id:
                self.selected_id = None
            logger.info(f"Deleted marker {op.base.id}")
            return True

        if op.action == PendingAction.DUPLICATE:
            if op.marker is None:
                op.marker = validate_marker(duplicate_marker(op.base), self.page_count)
            saved = await self.client.duplicate_marker(self.floorplan_id, op.marker)
            self.selected_id = saved.id
            logger.info(f"Duplicated marker {op.base.id} as {saved.id}")
            return saved

        if op.action == PendingAction.CALIBRATION:
            saved = await self.client.save_calibration(self.floorplan_id, op.calibration)
            session = self.calibration_session
            # A page change or a restarted calibration replaces the staged one
            if (
                session.state == CalibrationState.AWAITING_DISTANCE_INPUT
                and session.pending is op.calibration
            ):
                self.calibration = session.commit(saved)
            elif saved.page == self.current_page:
                self.calibration = saved
            logger.info(f"Saved calibration for page {saved.page}")
            return saved

        raise ValueError(f"Unknown pending action: {op.action}")

    # ============================================================
    # Calibration
    # ============================================================

    def start_calibration(self) -> None:
        self.drawing.cancel()
        if self.calibration_session.state in ACTIVE_CALIBRATION_STATES:
            self.calibration_session.cancel()
        self.calibration_session.begin(self.current_page)

    async def submit_calibration(
        self,
        real_world_distance: float,
        unit: LengthUnit = LengthUnit.FEET,
    ) -> Optional[Calibration]:
        """
        Validate and save the drawn reference segment.

        On a validation or transport failure the session stays in
        awaiting_distance_input with both points kept.
        """
        try:
            staged = self.calibration_session.submit_distance(real_world_distance, unit)
        except ValidationError as e:
            self._notify_validation(e)
            return None
        self.pending = [p for p in self.pending if p.action != PendingAction.CALIBRATION]
        op = PendingOperation(PendingAction.CALIBRATION, calibration=staged)
        return op.result if await self._execute(op) else None

    def cancel_calibration(self) -> None:
        self.calibration_session.cancel()

    # ============================================================
    # Rendering & events
    # ============================================================

    def render_overlay(self) -> str:
        return render_markers(
            self.markers,
            self.layers,
            self.viewport.state,
            selected_id=self.selected_id,
            show_all_labels=self.show_all_labels,
            calibration=self.calibration,
            preview=self.drawing.preview(),
        )

    def export_floorplan(self) -> str:
        """Standalone SVG of the current page raster with every visible marker."""
        document = render_document(
            self.page_image,
            self.markers,
            self.layers,
            self.viewport.state,
            show_all_labels=True,
            calibration=self.calibration,
        )
        if self.on_export is not None:
            self.on_export(document)
        return document

    def dispatch_event(self, name: str, **detail: Any) -> Any:
        handler = self._event_handlers.get(name)
        if handler is None:
            raise ValueError(f"Unknown editor event: {name}")
        return handler(**detail)
