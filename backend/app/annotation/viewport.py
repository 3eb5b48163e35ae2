"""
SiteWalk - Viewport Controller
Owns pan/zoom/page state and turns gestures into state updates and render requests
"""
import asyncio
import logging
from typing import Callable, List, Optional, Protocol, Sequence

from pydantic import BaseModel, ConfigDict

from app.annotation.errors import RenderError
from app.annotation.transform import Point, compute_render_scale, pdf_to_screen, screen_to_pdf

logger = logging.getLogger(__name__)

MIN_SCALE = 0.1
MAX_SCALE = 10.0
ZOOM_STEP = 1.2


class ViewportState(BaseModel):
    """Immutable snapshot of the view transform."""
    scale: float = 1.0
    translate_x: float = 0.0
    translate_y: float = 0.0
    current_page: int = 1
    page_count: int = 1
    render_scale: float = 1.0

    model_config = ConfigDict(frozen=True)

    @property
    def translation(self) -> Point:
        return Point(self.translate_x, self.translate_y)

    def to_pdf(self, screen_point: Sequence[float]) -> Point:
        return screen_to_pdf(screen_point, self.render_scale, self.scale, self.translation)

    def to_screen(self, pdf_point: Sequence[float]) -> Point:
        return pdf_to_screen(pdf_point, self.render_scale, self.scale, self.translation)


class RenderedPage(BaseModel):
    """A rasterized floorplan page."""
    page: int
    width: int
    height: int
    mime_type: str = "image/png"
    data: bytes = b""


class PageRenderer(Protocol):
    """Anything that can rasterize a floorplan page asynchronously."""

    async def render_page(self, page: int, render_scale: float) -> RenderedPage:
        ...


class RenderScheduler:
    """
    Single in-flight render per page request.

    Every request takes a new sequence number. A result (or failure) that
    arrives after a newer request was made is dropped instead of being
    painted over the newer page.
    """

    def __init__(
        self,
        renderer: PageRenderer,
        on_rendered: Callable[[RenderedPage], None],
        on_error: Optional[Callable[[int, Exception], None]] = None,
    ):
        self.renderer = renderer
        self.on_rendered = on_rendered
        self.on_error = on_error
        self.sequence = 0
        self._task: Optional[asyncio.Task] = None

    def request(self, page: int, render_scale: float) -> asyncio.Task:
        self.sequence += 1
        token = self.sequence
        self._task = asyncio.ensure_future(self._run(token, page, render_scale))
        return self._task

    async def _run(self, token: int, page: int, render_scale: float) -> Optional[RenderedPage]:
        try:
            result = await self.renderer.render_page(page, render_scale)
        except (RenderError, OSError, ValueError) as e:
            if token != self.sequence:
                logger.debug(f"Ignoring failure of stale render #{token} (page {page})")
                return None
            logger.error(f"Failed to render page {page}: {e}")
            if self.on_error:
                self.on_error(page, e)
            return None

        if token != self.sequence:
            logger.debug(f"Discarding stale render #{token} for page {page}, latest is #{self.sequence}")
            return None

        self.on_rendered(result)
        return result

    async def wait(self) -> None:
        """Wait for the most recent request to settle."""
        if self._task is not None:
            await self._task


Listener = Callable[[ViewportState], None]


class ViewportController:
    """
    State holder for one editing session's view.

    Subscribers are notified with the new ViewportState after each change;
    they never mutate it.
    """

    def __init__(self, page_count: int = 1, render_scale: float = 1.0, scheduler: Optional[RenderScheduler] = None):
        self._state = ViewportState(page_count=max(1, page_count), render_scale=render_scale)
        self._listeners: List[Listener] = []
        self.scheduler = scheduler

    @property
    def state(self) -> ViewportState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set(self, **changes) -> ViewportState:
        new_state = self._state.model_copy(update=changes)
        if new_state != self._state:
            self._state = new_state
            for listener in list(self._listeners):
                listener(new_state)
        return self._state

    def zoom(self, factor: float, pivot: Sequence[float]) -> ViewportState:
        """
        Anchor-preserving zoom: the PDF point under `pivot` stays under it.

        Scale is clamped to [0.1, 10]; the translation uses the factor
        actually applied after clamping.
        """
        if factor <= 0:
            raise ValueError(f"Zoom factor must be positive, got {factor}")
        state = self._state
        new_scale = min(max(state.scale * factor, MIN_SCALE), MAX_SCALE)
        applied = new_scale / state.scale
        px, py = pivot[0], pivot[1]
        return self._set(
            scale=new_scale,
            translate_x=px - (px - state.translate_x) * applied,
            translate_y=py - (py - state.translate_y) * applied,
        )

    def zoom_in(self, pivot: Sequence[float] = (0.0, 0.0)) -> ViewportState:
        return self.zoom(ZOOM_STEP, pivot)

    def zoom_out(self, pivot: Sequence[float] = (0.0, 0.0)) -> ViewportState:
        return self.zoom(1 / ZOOM_STEP, pivot)

    def pan(self, delta_x: float, delta_y: float) -> ViewportState:
        """Shift the view; the canvas is unbounded."""
        return self._set(
            translate_x=self._state.translate_x + delta_x,
            translate_y=self._state.translate_y + delta_y,
        )

    def reset_view(self) -> ViewportState:
        return self._set(scale=1.0, translate_x=0.0, translate_y=0.0)

    def set_page_count(self, page_count: int) -> ViewportState:
        page_count = max(1, page_count)
        return self._set(page_count=page_count, current_page=min(self._state.current_page, page_count))

    def fit_width(self, native_page_width: float, viewport_width: float) -> ViewportState:
        """Pick the render scale that makes a page fill the viewport width."""
        return self._set(render_scale=compute_render_scale(native_page_width, viewport_width))

    def change_page(self, page: int) -> Optional[asyncio.Task]:
        """
        Move to `page` (clamped to [1, page_count]) and request a render.

        Returns the render task when a scheduler is attached.
        """
        page = min(max(page, 1), self._state.page_count)
        self._set(current_page=page)
        if self.scheduler is None:
            return None
        return self.scheduler.request(page, self._state.render_scale)
