"""API tests for projects, floorplans, layers, calibration, markers and comments."""
import base64

import pytest

AUTHOR = {"X-User-Id": "7", "X-User-Name": "Site Surveyor"}


def camera_body(**fields) -> dict:
    body = {"marker_type": "camera", "page": 1, "position_x": 100.0, "position_y": 200.0}
    body.update(fields)
    return body


def markers_url(floorplan: dict) -> str:
    return f"/api/floorplans/{floorplan['id']}/markers"


def create_marker(test_client, floorplan, **fields) -> dict:
    response = test_client.post(markers_url(floorplan), json=camera_body(**fields), headers=AUTHOR)
    assert response.status_code == 201, response.text
    return response.json()


class TestHealth:
    def test_health(self, test_client):
        response = test_client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_detailed_health_checks_database_and_storage(self, test_client):
        services = test_client.get("/api/health/detailed").json()["services"]
        assert services["database"] == "healthy"
        assert services["storage"] == "healthy"


class TestProjectsAndFloorplans:
    def test_upload_inspects_pdf_and_creates_default_layer(self, test_client, floorplan):
        assert floorplan["page_count"] == 3
        assert floorplan["content_type"] == "application/pdf"
        assert floorplan["page_width"] == pytest.approx(612)
        assert floorplan["name"] == "Level 1"

        layers = test_client.get(f"/api/floorplans/{floorplan['id']}/layers").json()
        assert [(layer["name"], layer["order_index"]) for layer in layers] == [("Default", 0)]

    def test_detail_carries_base64_content(self, test_client, floorplan, sample_pdf):
        detail = test_client.get(f"/api/floorplans/{floorplan['id']}").json()
        assert base64.b64decode(detail["pdf_data"]) == sample_pdf

        raw = test_client.get(f"/api/floorplans/{floorplan['id']}/content")
        assert raw.status_code == 200
        assert raw.content == sample_pdf

    def test_image_upload_is_single_page(self, test_client, sample_png):
        project = test_client.post("/api/projects", json={"name": "Retail"}).json()
        response = test_client.post(
            f"/api/projects/{project['id']}/floorplans",
            files={"file": ("store.png", sample_png, "image/png")},
        )
        assert response.status_code == 201
        body = response.json()
        assert body["page_count"] == 1
        assert (body["page_width"], body["page_height"]) == (400, 300)
        assert body["name"] == "store.png"

    def test_unreadable_upload_is_rejected(self, test_client):
        project = test_client.post("/api/projects", json={"name": "Broken"}).json()
        response = test_client.post(
            f"/api/projects/{project['id']}/floorplans",
            files={"file": ("notes.txt", b"not a floorplan", "text/plain")},
        )
        assert response.status_code == 400

    def test_project_lists_floorplan_count(self, test_client, floorplan):
        project = test_client.get(f"/api/projects/{floorplan['project_id']}").json()
        assert project["floorplan_count"] == 1

    def test_rename_floorplan(self, test_client, floorplan):
        response = test_client.patch(f"/api/floorplans/{floorplan['id']}", json={"name": "Ground floor"})
        assert response.status_code == 200
        assert response.json()["name"] == "Ground floor"

    def test_delete_project_removes_floorplans(self, test_client, floorplan):
        create_marker(test_client, floorplan)
        response = test_client.delete(f"/api/projects/{floorplan['project_id']}")
        assert response.status_code == 204
        assert test_client.get(f"/api/floorplans/{floorplan['id']}").status_code == 404

    def test_missing_floorplan(self, test_client):
        assert test_client.get("/api/floorplans/999999").status_code == 404


class TestMarkers:
    def test_create_starts_version_chain(self, test_client, floorplan):
        marker = create_marker(test_client, floorplan, unique_id="a2b4c6d8-0000-4000-8000-000000000001")
        assert marker["version"] == 1
        assert marker["parent_id"] is None
        assert marker["is_latest"] is True
        assert marker["unique_id"] == "a2b4c6d8-0000-4000-8000-000000000001"
        assert marker["author_id"] == 7
        assert marker["author_name"] == "Site Surveyor"

    def test_reused_unique_id_conflicts(self, test_client, floorplan):
        marker = create_marker(test_client, floorplan)
        response = test_client.post(markers_url(floorplan), json=camera_body(unique_id=marker["unique_id"]))
        assert response.status_code == 409

    def test_path_marker_is_anchored(self, test_client, floorplan):
        marker = create_marker(
            test_client, floorplan,
            marker_type="polyline", position_x=None, position_y=None,
            points=[{"x": 10, "y": 20}, {"x": 60, "y": 20}],
        )
        assert (marker["position_x"], marker["position_y"]) == (10, 20)

    @pytest.mark.parametrize("fields,error", [
        ({"page": 4}, "PageOutOfRangeError"),
        ({"opacity": 1.5}, "InvalidOpacityError"),
        ({"position_x": None}, "MissingGeometryError"),
        ({"marker_type": "rectangle"}, "MissingGeometryError"),
    ])
    def test_invalid_marker_is_rejected_with_error_name(self, test_client, floorplan, fields, error):
        response = test_client.post(markers_url(floorplan), json=camera_body(**fields))
        assert response.status_code == 422
        assert response.json()["error"] == error
        assert test_client.get(markers_url(floorplan)).json() == []

    @pytest.mark.parametrize("fields", [
        {"color": '"><script>1</script>'},
        {"fill_color": "red"},
    ])
    def test_non_hex_colors_are_rejected(self, test_client, floorplan, fields):
        response = test_client.post(markers_url(floorplan), json=camera_body(**fields))
        assert response.status_code == 422

    def test_patch_with_null_clears_field(self, test_client, floorplan):
        marker = create_marker(test_client, floorplan, label="Cam A")
        response = test_client.patch(f"{markers_url(floorplan)}/{marker['id']}", json={"label": None})
        assert response.status_code == 200
        assert response.json()["label"] is None
        assert response.json()["position_x"] == marker["position_x"]

    def test_layer_from_another_floorplan_is_rejected(self, test_client, floorplan):
        response = test_client.post(markers_url(floorplan), json=camera_body(layer_id=999999))
        assert response.status_code == 400

    def test_patch_inserts_new_version(self, test_client, floorplan):
        original = create_marker(test_client, floorplan)
        url = f"{markers_url(floorplan)}/{original['id']}"

        response = test_client.patch(url, json={"label": "Dock door", "position_x": 150}, headers=AUTHOR)
        assert response.status_code == 200
        edited = response.json()
        assert edited["id"] != original["id"]
        assert edited["unique_id"] == original["unique_id"]
        assert edited["version"] == 2
        assert edited["parent_id"] == original["id"]
        assert edited["position_x"] == 150
        assert edited["position_y"] == 200
        assert edited["label"] == "Dock door"

        latest = test_client.get(markers_url(floorplan)).json()
        assert [m["id"] for m in latest] == [edited["id"]]

        history = test_client.get(markers_url(floorplan), params={"include_history": "true"}).json()
        assert len(history) == 2

    def test_patch_of_superseded_version_conflicts(self, test_client, floorplan):
        original = create_marker(test_client, floorplan)
        url = f"{markers_url(floorplan)}/{original['id']}"
        assert test_client.patch(url, json={"label": "first"}).status_code == 200

        response = test_client.patch(url, json={"label": "stale"})
        assert response.status_code == 409

    def test_patch_cannot_change_type(self, test_client, floorplan):
        original = create_marker(test_client, floorplan)
        response = test_client.patch(f"{markers_url(floorplan)}/{original['id']}", json={"marker_type": "note"})
        assert response.status_code == 422
        assert response.json()["error"] == "TypeMismatchError"

    def test_history_is_ordered_chain(self, test_client, floorplan):
        v1 = create_marker(test_client, floorplan)
        v2 = test_client.patch(f"{markers_url(floorplan)}/{v1['id']}", json={"label": "a"}).json()
        v3 = test_client.patch(f"{markers_url(floorplan)}/{v2['id']}", json={"label": "b"}).json()

        history = test_client.get(f"{markers_url(floorplan)}/{v3['id']}/history").json()
        assert [m["version"] for m in history] == [1, 2, 3]
        assert [m["parent_id"] for m in history] == [None, v1["id"], v2["id"]]

    def test_duplicate_starts_new_chain(self, test_client, floorplan):
        original = create_marker(test_client, floorplan)
        body = camera_body(unique_id=original["unique_id"], position_x=120, position_y=220)
        response = test_client.post(f"{markers_url(floorplan)}/duplicate", json=body)
        assert response.status_code == 201
        copy = response.json()
        assert copy["unique_id"] != original["unique_id"]
        assert copy["version"] == 1

    def test_delete_removes_whole_chain(self, test_client, floorplan):
        v1 = create_marker(test_client, floorplan)
        v2 = test_client.patch(f"{markers_url(floorplan)}/{v1['id']}", json={"label": "a"}).json()

        response = test_client.delete(f"{markers_url(floorplan)}/{v2['id']}")
        assert response.status_code == 204
        remaining = test_client.get(markers_url(floorplan), params={"include_history": "true"}).json()
        assert remaining == []

    def test_filter_by_page_and_type(self, test_client, floorplan):
        create_marker(test_client, floorplan, page=1)
        create_marker(test_client, floorplan, page=2)
        create_marker(test_client, floorplan, page=2, marker_type="note")

        page_two = test_client.get(markers_url(floorplan), params={"page": 2}).json()
        assert len(page_two) == 2
        notes = test_client.get(markers_url(floorplan), params={"page": 2, "marker_type": "note"}).json()
        assert [m["marker_type"] for m in notes] == ["note"]


class TestLayers:
    def test_new_layer_goes_on_top(self, test_client, floorplan):
        response = test_client.post(
            f"/api/floorplans/{floorplan['id']}/layers", json={"name": "Cameras", "color": "#10B981"}
        )
        assert response.status_code == 201
        assert response.json()["order_index"] == 1

    def test_duplicate_order_index_conflicts(self, test_client, floorplan):
        response = test_client.post(
            f"/api/floorplans/{floorplan['id']}/layers", json={"name": "Clash", "order_index": 0}
        )
        assert response.status_code == 409

    def test_hide_layer(self, test_client, floorplan):
        layer = test_client.get(f"/api/floorplans/{floorplan['id']}/layers").json()[0]
        response = test_client.patch(f"/api/floorplan-layers/{layer['id']}", json={"visible": False})
        assert response.status_code == 200
        assert response.json()["visible"] is False

    def test_deleting_layer_keeps_markers(self, test_client, floorplan):
        layer = test_client.post(f"/api/floorplans/{floorplan['id']}/layers", json={"name": "Temp"}).json()
        marker = create_marker(test_client, floorplan, layer_id=layer["id"])

        assert test_client.delete(f"/api/floorplan-layers/{layer['id']}").status_code == 204

        markers = test_client.get(markers_url(floorplan)).json()
        assert [(m["id"], m["layer_id"]) for m in markers] == [(marker["id"], None)]


class TestCalibrationApi:
    def url(self, floorplan):
        return f"/api/floorplans/{floorplan['id']}/calibration"

    def body(self, **fields):
        data = {"page": 1, "start_x": 100, "start_y": 100, "end_x": 200, "end_y": 100,
                "real_world_distance": 50, "unit": "ft"}
        data.update(fields)
        return data

    def test_uncalibrated_page_is_null(self, test_client, floorplan):
        response = test_client.get(self.url(floorplan), params={"page": 1})
        assert response.status_code == 200
        assert response.json() is None

    def test_upsert(self, test_client, floorplan):
        created = test_client.post(self.url(floorplan), json=self.body())
        assert created.status_code == 201
        assert created.json()["scale_factor"] == pytest.approx(0.5)

        replaced = test_client.post(self.url(floorplan), json=self.body(real_world_distance=10, unit="m"))
        assert replaced.status_code == 200
        assert replaced.json()["id"] == created.json()["id"]
        assert replaced.json()["scale_factor"] == pytest.approx(0.1)

        current = test_client.get(self.url(floorplan), params={"page": 1}).json()
        assert current["unit"] == "m"

    def test_degenerate_segment(self, test_client, floorplan):
        response = test_client.post(self.url(floorplan), json=self.body(end_x=100))
        assert response.status_code == 422
        assert response.json()["error"] == "InvalidCalibrationError"

    def test_page_out_of_range(self, test_client, floorplan):
        response = test_client.post(self.url(floorplan), json=self.body(page=9))
        assert response.status_code == 422
        assert response.json()["error"] == "PageOutOfRangeError"


class TestComments:
    def test_comments_follow_the_annotation(self, test_client, floorplan):
        v1 = create_marker(test_client, floorplan)
        response = test_client.post(f"/api/markers/{v1['id']}/comments", json={"comment": "Needs PoE"}, headers=AUTHOR)
        assert response.status_code == 201
        assert response.json()["author_name"] == "Site Surveyor"

        v2 = test_client.patch(f"{markers_url(floorplan)}/{v1['id']}", json={"label": "moved"}).json()
        test_client.post(f"/api/markers/{v2['id']}/comments", json={"comment": "Confirmed on site"})

        thread = test_client.get(f"/api/markers/{v2['id']}/comments").json()
        assert [c["comment"] for c in thread] == ["Needs PoE", "Confirmed on site"]

        detail = test_client.get(f"{markers_url(floorplan)}/{v2['id']}").json()
        assert len(detail["comments"]) == 2

    def test_delete_comment(self, test_client, floorplan):
        marker = create_marker(test_client, floorplan)
        comment = test_client.post(f"/api/markers/{marker['id']}/comments", json={"comment": "typo"}).json()
        assert test_client.delete(f"/api/marker-comments/{comment['id']}").status_code == 204
        assert test_client.get(f"/api/markers/{marker['id']}/comments").json() == []


def test_actions_are_audited(test_client, floorplan):
    marker = create_marker(test_client, floorplan)
    logs = test_client.get(
        "/api/audit", params={"action": "MARKER_CREATE", "resource_id": marker["unique_id"]}
    ).json()
    assert logs["total"] == 1
    assert logs["items"][0]["author_name"] == "Site Surveyor"
    assert logs["items"][0]["floorplan_id"] == floorplan["id"]


def test_audit_stats_for_one_floorplan(test_client, floorplan):
    marker = create_marker(test_client, floorplan)
    test_client.patch(f"{markers_url(floorplan)}/{marker['id']}", json={"label": "Dock"})

    stats = test_client.get("/api/audit/stats", params={"floorplan_id": floorplan["id"]}).json()

    assert stats["floorplan_id"] == floorplan["id"]
    assert stats["by_action"]["MARKER_CREATE"] == 1
    assert stats["by_action"]["MARKER_UPDATE"] == 1
    assert stats["by_resource_type"]["marker"] == 2
    assert stats["by_action"]["FLOORPLAN_UPLOAD"] == 1
