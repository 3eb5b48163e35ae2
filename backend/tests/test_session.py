"""Tests for the editor session: tools, shortcuts, persistence and retry."""
import pytest

from app.annotation.calibration import CalibrationState, LengthUnit
from app.annotation.errors import TransportError
from app.annotation.markers import Layer, Marker, MarkerType
from app.annotation.session import EXPORT_EVENT, EditorSession, NotificationVariant
from app.services.floorplan_client import FloorplanDocument


class FakeFloorplanClient:
    """In-memory stand-in for FloorplanClient."""

    def __init__(self, page_count: int = 3):
        self.floorplan = FloorplanDocument(id=1, project_id=1, name="Level 1", page_count=page_count, page_width=612)
        self.layers = [Layer(id=1, floorplan_id=1, name="Default", color="#3B82F6", order_index=0)]
        self.markers = []
        self.calibrations = {}
        self.calls = []
        self.failures = []
        self._next_id = 1

    def fail_next(self, times: int = 1):
        self.failures.extend([TransportError("connection refused", detail="connection refused")] * times)

    def _maybe_fail(self):
        if self.failures:
            raise self.failures.pop(0)

    def _store(self, marker: Marker) -> Marker:
        saved = marker.model_copy(update={"id": self._next_id, "floorplan_id": 1})
        self._next_id += 1
        self.markers.append(saved)
        return saved

    async def get_floorplan(self, floorplan_id):
        return self.floorplan

    async def list_layers(self, floorplan_id):
        return list(self.layers)

    async def list_markers(self, floorplan_id, page=None, **filters):
        superseded = {m.parent_id for m in self.markers}
        return [m for m in self.markers if m.page == page and m.id not in superseded]

    async def get_calibration(self, floorplan_id, page):
        return self.calibrations.get(page)

    async def create_marker(self, floorplan_id, marker):
        self.calls.append(("create", marker))
        self._maybe_fail()
        return self._store(marker)

    async def update_marker(self, floorplan_id, marker_id, marker):
        self.calls.append(("update", marker_id, marker))
        self._maybe_fail()
        return self._store(marker)

    async def delete_marker(self, floorplan_id, marker_id):
        self.calls.append(("delete", marker_id))
        self._maybe_fail()
        unique_id = next(m.unique_id for m in self.markers if m.id == marker_id)
        self.markers = [m for m in self.markers if m.unique_id != unique_id]

    async def duplicate_marker(self, floorplan_id, marker):
        self.calls.append(("duplicate", marker))
        self._maybe_fail()
        return self._store(marker)

    async def save_calibration(self, floorplan_id, calibration):
        self.calls.append(("calibration", calibration))
        self._maybe_fail()
        saved = calibration.model_copy(update={"id": 1, "floorplan_id": floorplan_id})
        self.calibrations[calibration.page] = saved
        return saved


@pytest.fixture
def client():
    return FakeFloorplanClient()


@pytest.fixture
async def session(client, fake_renderer):
    editor = EditorSession(client, floorplan_id=1, renderer_factory=lambda floorplan: fake_renderer, viewport_width=612)
    await editor.load()
    await editor.wait_for_render()
    return editor


async def place_camera(session, point=(100, 100)) -> Marker:
    session.tool_mode = MarkerType.CAMERA.value
    return await session.pointer_down(point)


class TestLoading:
    async def test_load_sets_up_first_page(self, session, fake_renderer):
        assert session.page_count == 3
        assert session.current_page == 1
        assert session.active_layer().name == "Default"
        assert session.viewport.state.render_scale == pytest.approx(1.0)
        assert fake_renderer.calls == [(1, 1.0)]
        assert session.page_image.page == 1

    async def test_page_change_refetches_and_clears_selection(self, session, client):
        saved = await place_camera(session)
        session.selected_id = saved.id

        await session.on_page_change(2)

        assert session.current_page == 2
        assert session.selected_id is None
        assert session.markers == []

    async def test_load_failure_is_reported(self, fake_renderer):
        class Offline(FakeFloorplanClient):
            async def get_floorplan(self, floorplan_id):
                raise TransportError("offline", detail="offline")

        editor = EditorSession(Offline(), floorplan_id=1, renderer_factory=lambda f: fake_renderer)
        assert await editor.load() is None
        assert editor.notifications[0].title == "Could not load floorplan"


class TestMarkerPersistence:
    async def test_point_tool_persists_marker(self, session, client):
        saved = await place_camera(session, (120, 80))

        assert saved.id == 1
        assert (saved.position_x, saved.position_y) == (120, 80)
        assert saved.layer_id == 1
        assert [m.id for m in session.markers] == [1]

    async def test_validation_failure_never_reaches_network(self, session, client):
        bad = Marker(marker_type=MarkerType.CAMERA, page=9, position_x=1, position_y=1)
        assert await session.commit_marker(bad) is None

        assert client.calls == []
        notification = session.notifications[-1]
        assert notification.title == "PageOutOfRangeError"
        assert notification.blocking
        assert notification.variant == NotificationVariant.DESTRUCTIVE

    async def test_transport_failure_keeps_marker_for_retry(self, session, client):
        client.fail_next()
        assert await place_camera(session) is None

        assert len(session.pending) == 1
        assert session.markers == []
        assert not session.notifications[-1].blocking

        assert await session.retry_pending() == 1
        assert session.pending == []
        assert len(session.markers) == 1
        first, second = client.calls[0][1], client.calls[1][1]
        assert first.unique_id == second.unique_id

    async def test_update_creates_new_version(self, session, client):
        saved = await place_camera(session)
        session.selected_id = saved.id

        updated = await session.update_marker(saved.id, {"label": "Lobby"})

        assert updated.version == 2
        assert updated.parent_id == saved.id
        assert updated.unique_id == saved.unique_id
        assert session.selected_id == updated.id
        assert [m.label for m in session.markers] == ["Lobby"]

    async def test_drag_with_select_tool_saves_moved_version(self, session, client):
        saved = await place_camera(session, (100, 100))
        session.tool_mode = "select"

        await session.pointer_down((100, 100))
        session.pointer_move((130, 100))
        moved = await session.pointer_up((150, 100))

        assert moved.version == 2
        assert moved.position_x == 150
        assert client.calls[-1][0] == "update"
        assert client.calls[-1][1] == saved.id


class TestKeyboard:
    async def test_escape_cancels_path(self, session, client):
        session.tool_mode = MarkerType.POLYLINE.value
        await session.pointer_down((0, 0))
        await session.pointer_down((50, 50))

        assert await session.handle_key("Escape")
        assert await session.double_click((100, 100)) is None
        assert client.calls == []

    async def test_delete_removes_selected_marker(self, session, client):
        saved = await place_camera(session)
        session.selected_id = saved.id

        assert await session.handle_key("Delete")
        assert client.calls[-1] == ("delete", saved.id)
        assert session.markers == []
        assert session.selected_id is None

    async def test_ctrl_d_duplicates_with_offset(self, session, client):
        saved = await place_camera(session, (100, 100))
        session.selected_id = saved.id

        assert await session.handle_key("d", ctrl=True)

        copy = client.markers[-1]
        assert copy.unique_id != saved.unique_id
        assert copy.version == 1
        assert (copy.position_x, copy.position_y) == (120, 120)
        assert session.selected_id == copy.id

    async def test_shortcuts_need_a_selection(self, session, client):
        assert not await session.handle_key("Delete")
        assert client.calls == []

    async def test_ctrl_0_resets_view(self, session):
        session.wheel(-1, (200, 200))
        session.viewport.pan(10, 10)
        assert await session.handle_key("0", meta=True)
        state = session.viewport.state
        assert (state.scale, state.translate_x, state.translate_y) == (1.0, 0.0, 0.0)


class TestCalibration:
    async def test_two_clicks_and_distance(self, session, client):
        session.start_calibration()
        await session.pointer_down((100, 100))
        await session.pointer_down((200, 100))
        assert session.calibration_session.state == CalibrationState.AWAITING_DISTANCE_INPUT

        saved = await session.submit_calibration(50, LengthUnit.FEET)

        assert saved.scale_factor == pytest.approx(0.5)
        assert session.calibration_session.state == CalibrationState.COMMITTED
        assert session.calibration.page == 1
        # Calibration clicks never place markers
        assert [call[0] for call in client.calls] == ["calibration"]

    async def test_degenerate_segment_is_rejected_locally(self, session, client):
        session.start_calibration()
        await session.pointer_down((100, 100))
        await session.pointer_down((100, 100))

        assert await session.submit_calibration(10) is None
        assert client.calls == []
        assert session.notifications[-1].title == "InvalidCalibrationError"
        assert session.calibration_session.state == CalibrationState.AWAITING_DISTANCE_INPUT

    async def test_failed_save_keeps_points(self, session, client):
        session.start_calibration()
        await session.pointer_down((0, 0))
        await session.pointer_down((0, 100))
        client.fail_next()

        assert await session.submit_calibration(10, LengthUnit.METERS) is None
        assert session.calibration_session.state == CalibrationState.AWAITING_DISTANCE_INPUT
        assert len(session.calibration_session.points) == 2

        assert await session.retry_pending() == 1
        assert session.calibration.unit == LengthUnit.METERS

    async def test_retry_after_page_change_saves_without_committing(self, session, client):
        session.start_calibration()
        await session.pointer_down((0, 0))
        await session.pointer_down((0, 100))
        client.fail_next()
        assert await session.submit_calibration(10) is None

        await session.on_page_change(2)
        assert await session.retry_pending() == 1

        assert client.calibrations[1].page == 1
        assert session.pending == []
        assert session.calibration is None
        assert session.calibration_session.state == CalibrationState.IDLE

    async def test_retry_after_restart_keeps_new_calibration_open(self, session, client):
        session.start_calibration()
        await session.pointer_down((0, 0))
        await session.pointer_down((0, 100))
        client.fail_next()
        assert await session.submit_calibration(10) is None

        session.start_calibration()
        assert await session.retry_pending() == 1

        assert session.calibration.page == 1
        assert session.calibration_session.state == CalibrationState.AWAITING_START


class TestRenderingAndEvents:
    async def test_overlay_contains_markers(self, session):
        await place_camera(session)
        assert 'data-type="camera"' in session.render_overlay()

    async def test_export_event(self, session):
        exported = []
        session.on_export = exported.append
        await place_camera(session)

        document = session.dispatch_event(EXPORT_EVENT)

        assert exported == [document]
        assert document.startswith("<svg")

    def test_unknown_event_is_rejected(self, client):
        editor = EditorSession(client, floorplan_id=1, renderer_factory=None)
        with pytest.raises(ValueError):
            editor.dispatch_event("print-floorplan")

    async def test_tool_change_discards_drawing(self, session):
        session.tool_mode = MarkerType.RECTANGLE.value
        await session.pointer_down((10, 10))
        session.pointer_move((40, 40))
        assert session.drawing.preview() is not None
        session.tool_mode = MarkerType.CAMERA.value
        assert session.drawing.preview() is None

    def test_show_all_labels_toggle(self, client):
        editor = EditorSession(client, floorplan_id=1, renderer_factory=None)
        editor.show_all_labels = 1
        assert editor.show_all_labels is True
