"""Tests for the drawing state machine."""
import pytest

from app.annotation.drawing import DrawingMachine, DrawingState
from app.annotation.markers import Marker, MarkerType


@pytest.fixture
def committed():
    return []


@pytest.fixture
def machine(viewport, layers, committed):
    return DrawingMachine(
        viewport,
        floorplan_id=1,
        on_commit=committed.append,
        active_layer=lambda: layers[0],
    )


def test_point_tool_commits_on_pointer_down(machine, committed):
    machine.set_tool(MarkerType.CAMERA.value)
    marker = machine.pointer_down((50, 60))
    assert committed == [marker]
    assert (marker.position_x, marker.position_y) == (50, 60)
    assert marker.layer_id == 1
    assert marker.color == "#3B82F6"
    assert machine.state == DrawingState.IDLE


def test_point_tool_uses_pdf_space(machine, viewport):
    viewport.zoom(2.0, (0, 0))
    viewport.pan(10, 20)
    machine.set_tool(MarkerType.NOTE.value)
    marker = machine.pointer_down((110, 220))
    assert (marker.position_x, marker.position_y) == (50, 100)


class TestRectangle:
    def test_tiny_drag_is_discarded(self, machine, committed):
        machine.set_tool(MarkerType.RECTANGLE.value)
        machine.pointer_down((100, 100))
        machine.pointer_move((102, 103))
        assert machine.pointer_up((102, 103)) is None
        assert committed == []
        assert machine.state == DrawingState.IDLE

    def test_drag_commits_width_and_height(self, machine, committed):
        machine.set_tool(MarkerType.RECTANGLE.value)
        machine.pointer_down((100, 100))
        machine.pointer_move((120, 110))
        assert machine.preview().width == 20
        marker = machine.pointer_up((140, 130))

        assert committed == [marker]
        assert (marker.width, marker.height) == (40, 30)
        assert (marker.end_x, marker.end_y) == (140, 130)

    def test_threshold_scales_with_zoom(self, machine, viewport, committed):
        # 4 screen px at 2x is still under 5 px, even though it is 2 PDF points
        viewport.zoom(2.0, (0, 0))
        machine.set_tool(MarkerType.ELLIPSE.value)
        machine.pointer_down((100, 100))
        machine.pointer_up((104, 104))
        assert committed == []


class TestPolygon:
    def test_four_clicks_and_double_click(self, machine, committed):
        machine.set_tool(MarkerType.POLYGON.value)
        for point in [(0, 0), (100, 0), (100, 100), (0, 100)]:
            machine.pointer_down(point)
            machine.pointer_up(point)
        marker = machine.double_click((0, 100))

        assert committed == [marker]
        assert len(marker.points) == 4
        assert (marker.position_x, marker.position_y) == (0, 0)

    def test_single_point_path_is_discarded(self, machine, committed):
        machine.set_tool(MarkerType.POLYLINE.value)
        machine.pointer_down((10, 10))
        assert machine.double_click((11, 11)) is None
        assert committed == []

    def test_preview_follows_pointer(self, machine):
        machine.set_tool(MarkerType.POLYLINE.value)
        machine.pointer_down((0, 0))
        machine.pointer_move((50, 50))
        preview = machine.preview()
        assert len(preview.points) == 2


def test_switching_tool_cancels_drawing(machine, committed):
    machine.set_tool(MarkerType.POLYLINE.value)
    machine.pointer_down((0, 0))
    machine.pointer_down((50, 0))
    machine.set_tool(MarkerType.CAMERA.value)
    assert machine.state == DrawingState.IDLE
    assert machine.points == []
    assert committed == []


def test_unknown_tool_is_rejected(machine):
    with pytest.raises(ValueError):
        machine.set_tool("laser")


def test_pan_tool_moves_viewport(machine, viewport):
    machine.set_tool("pan")
    machine.pointer_down((100, 100))
    machine.pointer_move((130, 90))
    machine.pointer_up((130, 90))
    assert (viewport.state.translate_x, viewport.state.translate_y) == (30, -10)


def test_select_tool_drags_marker(viewport):
    target = Marker(id=5, unique_id="u", marker_type=MarkerType.CAMERA, position_x=100, position_y=100)
    moves = []
    machine = DrawingMachine(
        viewport,
        on_select=lambda point: target,
        on_move=lambda marker, changes: moves.append((marker, changes)),
    )
    machine.set_tool("select")
    machine.pointer_down((100, 100))
    machine.pointer_move((120, 110))
    assert machine.preview().position_x == 120
    machine.pointer_up((130, 140))

    assert moves == [(target, {"position_x": 130, "position_y": 140})]
