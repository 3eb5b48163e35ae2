"""Tests for overlay rendering, visibility and hit testing."""
import pytest

from app.annotation.calibration import Calibration
from app.annotation.markers import Layer, Marker, MarkerType
from app.annotation.render import (
    RENDERERS,
    hit_test,
    render_document,
    render_markers,
    visible_markers,
)
from app.annotation.viewport import RenderedPage, ViewportState

SAMPLE_GEOMETRY = {
    "point": dict(position_x=50, position_y=50),
    "shape": dict(position_x=10, position_y=10, end_x=60, end_y=40, width=50, height=30),
    "path": dict(position_x=0, position_y=0, points=[{"x": 0, "y": 0}, {"x": 40, "y": 0}, {"x": 40, "y": 40}]),
}


def sample(marker_type: MarkerType, **fields) -> Marker:
    marker = Marker(marker_type=marker_type)
    data = dict(SAMPLE_GEOMETRY[marker.kind.value])
    data.update(fields)
    return Marker(marker_type=marker_type, **data)


def test_every_marker_type_has_a_renderer():
    assert set(RENDERERS) == set(MarkerType)


@pytest.mark.parametrize("marker_type", list(MarkerType))
def test_each_type_renders_svg(marker_type):
    marker = sample(marker_type, id=1, label="Label", text_content="Note text")
    svg = render_markers([marker], [], ViewportState(), show_all_labels=True)
    assert f'data-type="{marker_type.value}"' in svg


def test_hidden_layer_is_not_drawn_but_data_is_kept(layers):
    hidden = layers[1].model_copy(update={"visible": False})
    markers = [
        sample(MarkerType.CAMERA, id=1, layer_id=1),
        sample(MarkerType.CAMERA, id=2, layer_id=2),
    ]
    shown = visible_markers(markers, [layers[0], hidden], page=1)
    assert [m.id for m in shown] == [1]
    assert len(markers) == 2


def test_hidden_layer_stays_hidden_with_all_labels_on(layers):
    hidden = layers[1].model_copy(update={"visible": False})
    markers = [
        sample(MarkerType.CAMERA, id=1, layer_id=1, label="Gate"),
        sample(MarkerType.CAMERA, id=2, layer_id=2, label="Dock", position_x=200),
    ]
    svg = render_markers(markers, [layers[0], hidden], ViewportState(), show_all_labels=True)
    assert 'data-marker-id="1"' in svg and "Gate" in svg
    assert 'data-marker-id="2"' not in svg
    assert "Dock" not in svg


def test_other_pages_are_not_drawn():
    markers = [sample(MarkerType.NOTE, id=1, page=1), sample(MarkerType.NOTE, id=2, page=2)]
    assert [m.id for m in visible_markers(markers, [], page=2)] == [2]


def test_draw_order_follows_layer_order(layers):
    markers = [
        sample(MarkerType.CAMERA, id=1, layer_id=2),
        sample(MarkerType.CAMERA, id=2, layer_id=1),
        sample(MarkerType.CAMERA, id=3),
    ]
    assert [m.id for m in visible_markers(markers, layers, page=1)] == [3, 2, 1]


def test_labels_only_for_selected_unless_show_all():
    markers = [sample(MarkerType.CAMERA, id=1, label="Gate"), sample(MarkerType.CAMERA, id=2, label="Dock", position_x=200)]
    svg = render_markers(markers, [], ViewportState(), selected_id=2)
    assert "Dock" in svg
    assert "Gate" not in svg
    svg = render_markers(markers, [], ViewportState(), show_all_labels=True)
    assert "Gate" in svg and "Dock" in svg


def test_selected_marker_gets_thicker_stroke():
    marker = sample(MarkerType.LINE, id=1, line_width=2)
    plain = render_markers([marker], [], ViewportState())
    selected = render_markers([marker], [], ViewportState(), selected_id=1)
    assert 'stroke-width="2.00"' in plain
    assert 'stroke-width="4.00"' in selected


def test_measurement_shows_calibrated_length():
    calibration = Calibration(start_x=0, start_y=0, end_x=100, end_y=0, real_world_distance=50)
    marker = Marker(marker_type=MarkerType.MEASUREMENT, id=1, position_x=0, position_y=0, end_x=30, end_y=40)
    svg = render_markers([marker], [], ViewportState(), calibration=calibration)
    assert "25.00 ft" in svg


def test_colors_are_escaped():
    marker = sample(MarkerType.RECTANGLE, id=1, color='"><script>1</script>', fill_color="#10B981")
    svg = render_markers([marker], [], ViewportState())
    assert "<script>" not in svg
    assert "&lt;script&gt;" in svg
    assert 'fill="#10B981"' in svg


def test_document_export_embeds_page_image():
    page = RenderedPage(page=1, width=200, height=100, data=b"\x89PNG")
    state = ViewportState(scale=3.0, translate_x=50)
    svg = render_document(page, [sample(MarkerType.CAMERA, id=1)], [], state)
    assert svg.startswith("<svg")
    assert "data:image/png;base64," in svg
    assert 'width="200"' in svg


class TestHitTest:
    def test_topmost_marker_wins(self, layers):
        bottom = sample(MarkerType.RECTANGLE, id=1, layer_id=1)
        top = sample(MarkerType.RECTANGLE, id=2, layer_id=2)
        assert hit_test((30, 25), [top, bottom], layers, ViewportState()).id == 2

    def test_miss_returns_none(self):
        marker = sample(MarkerType.CAMERA, id=1)
        assert hit_test((400, 400), [marker], [], ViewportState()) is None

    def test_hidden_layer_is_not_hit(self, layers):
        hidden = layers[0].model_copy(update={"visible": False})
        marker = sample(MarkerType.CAMERA, id=1, layer_id=1)
        assert hit_test((50, 50), [marker], [hidden], ViewportState()) is None

    def test_hit_uses_viewport_transform(self):
        marker = sample(MarkerType.CAMERA, id=1)
        state = ViewportState(scale=2.0, translate_x=100, translate_y=100)
        # PDF (50, 50) is at screen (200, 200)
        assert hit_test((200, 200), [marker], [], state).id == 1
        assert hit_test((50, 50), [marker], [], state) is None

    def test_inside_polygon(self):
        polygon = sample(MarkerType.POLYGON, id=1)
        assert hit_test((30, 10), [polygon], [], ViewportState()).id == 1

    def test_circle_hit_matches_drawn_radius(self):
        # 50 x 30 box centred on (35, 25) is drawn with radius 25
        circle = sample(MarkerType.CIRCLE, id=1)
        assert 'r="25.00"' in render_markers([circle], [], ViewportState())
        assert hit_test((35, 47), [circle], [], ViewportState(), tolerance_px=0).id == 1
        assert hit_test((35, 52), [circle], [], ViewportState(), tolerance_px=0) is None

    def test_ellipse_hit_uses_both_radii(self):
        ellipse = sample(MarkerType.ELLIPSE, id=1)
        assert hit_test((35, 47), [ellipse], [], ViewportState(), tolerance_px=0) is None
        assert hit_test((58, 25), [ellipse], [], ViewportState(), tolerance_px=0).id == 1
