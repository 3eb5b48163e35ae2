"""Tests for FloorplanClient against the in-process API."""
import httpx
import pytest

from app.annotation.calibration import Calibration, LengthUnit
from app.annotation.errors import TransportError
from app.annotation.markers import MarkerType, create_version, duplicate_marker, new_marker
from app.services.floorplan_client import FloorplanClient


async def test_get_floorplan_decodes_content(floorplan_client, floorplan, sample_pdf):
    document = await floorplan_client.get_floorplan(floorplan["id"])
    assert document.page_count == 3
    assert document.content == sample_pdf


async def test_marker_lifecycle(floorplan_client, floorplan):
    layers = await floorplan_client.list_layers(floorplan["id"])
    marker = new_marker(MarkerType.CAMERA, page=1, position=(40, 50), layer=layers[0])

    saved = await floorplan_client.create_marker(floorplan["id"], marker)
    assert saved.unique_id == marker.unique_id
    assert saved.author_name == "Site Surveyor"

    edited = await floorplan_client.update_marker(
        floorplan["id"], saved.id, create_version(saved, {"label": "Lobby"})
    )
    assert edited.version == 2
    assert edited.parent_id == saved.id

    copy = await floorplan_client.duplicate_marker(floorplan["id"], duplicate_marker(edited))
    assert copy.unique_id != edited.unique_id

    current = await floorplan_client.list_markers(floorplan["id"], page=1)
    assert {m.id for m in current} == {edited.id, copy.id}

    history = await floorplan_client.marker_history(floorplan["id"], edited.id)
    assert [m.version for m in history] == [1, 2]

    await floorplan_client.delete_marker(floorplan["id"], edited.id)
    remaining = await floorplan_client.list_markers(floorplan["id"], page=1)
    assert [m.id for m in remaining] == [copy.id]



async def test_update_can_clear_fields(floorplan_client, floorplan):
    layers = await floorplan_client.list_layers(floorplan["id"])
    marker = new_marker(MarkerType.CAMERA, page=1, position=(40, 50), layer=layers[0], label="Cam A")
    saved = await floorplan_client.create_marker(floorplan["id"], marker)
    assert saved.layer_id == layers[0].id

    edited = await floorplan_client.update_marker(
        floorplan["id"], saved.id, create_version(saved, {"label": None, "layer_id": None})
    )

    assert edited.version == 2
    assert edited.label is None
    assert edited.layer_id is None
    assert edited.color == saved.color

async def test_comments(floorplan_client, floorplan):
    marker = await floorplan_client.create_marker(
        floorplan["id"], new_marker(MarkerType.NOTE, page=2, position=(10, 10))
    )
    await floorplan_client.add_comment(marker.id, "Check ceiling height")
    comments = await floorplan_client.list_comments(marker.id)
    assert [c.comment for c in comments] == ["Check ceiling height"]


async def test_calibration_round_trip(floorplan_client, floorplan):
    assert await floorplan_client.get_calibration(floorplan["id"], 2) is None

    calibration = Calibration(page=2, start_x=0, start_y=0, end_x=0, end_y=200, real_world_distance=5, unit=LengthUnit.METERS)
    saved = await floorplan_client.save_calibration(floorplan["id"], calibration)
    assert saved.scale_factor == pytest.approx(0.025)

    fetched = await floorplan_client.get_calibration(floorplan["id"], 2)
    assert fetched.unit == LengthUnit.METERS


async def test_error_status_becomes_transport_error(floorplan_client, floorplan):
    with pytest.raises(TransportError) as exc_info:
        await floorplan_client.get_floorplan(999999)
    assert exc_info.value.status_code == 404
    assert "not found" in exc_info.value.detail


async def test_network_failure_becomes_transport_error():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = FloorplanClient(base_url="http://test/api", transport=httpx.MockTransport(refuse))
    with pytest.raises(TransportError) as exc_info:
        await client.list_layers(1)
    assert exc_info.value.status_code is None


async def test_raw_api_access(async_client, floorplan):
    response = await async_client.get(f"/floorplans/{floorplan['id']}/markers", params={"page": 1})
    assert response.status_code == 200
    assert response.json() == []
