"""Unit tests for the imports router -- upload, layer toggles, selection,
assignment, confirm, payload, save and reset endpoints.

Each test gets a fresh ImportProcessor through a dependency override.
"""
from __future__ import annotations

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.routers.imports import get_assignment_client, get_processor, router
from geoimport.persistence import AssignmentClient
from geoimport.processor import ImportProcessor
from geoimport.store import ImportStore


LINES_KML = b"""<?xml version="1.0" encoding="UTF-8"?>
<kml xmlns="http://www.opengis.net/kml/2.2"><Document>
  <Placemark><name>A</name>
    <LineString><coordinates>10,20,0 11,21,0</coordinates></LineString>
  </Placemark>
  <Placemark><name>B</name>
    <LineString><coordinates>12,22,0 13,23,0</coordinates></LineString>
  </Placemark>
  <Placemark><name>Pole</name>
    <Point><coordinates>10.5,20.5,0</coordinates></Point>
  </Placemark>
</Document></kml>
"""


def _make_client(max_upload_bytes: int = 1024 * 1024, persistence=None) -> TestClient:
    processor = ImportProcessor(ImportStore(), max_upload_bytes=max_upload_bytes)
    app = FastAPI()
    app.include_router(router)
    app.dependency_overrides[get_processor] = lambda: processor
    if persistence is not None:
        transport = httpx.MockTransport(persistence)
        app.dependency_overrides[get_assignment_client] = lambda: AssignmentClient(
            "http://maps.test",
            client=httpx.Client(transport=transport, base_url="http://maps.test"),
        )
    return TestClient(app)


@pytest.fixture
def client() -> TestClient:
    return _make_client()


def _upload(client: TestClient, name: str = "lines.kml", body: bytes = LINES_KML) -> dict:
    resp = client.post("/api/imports/files", params={"filename": name}, content=body)
    assert resp.status_code == 200
    return resp.json()


def _line_layer(client: TestClient) -> tuple[str, str]:
    group = client.get("/api/imports/groups").json()[0]
    layer = next(x for x in group["layers"] if x["name"].startswith("LineString"))
    return group["id"], layer["id"]


@pytest.mark.unit
class TestUpload:

    def test_upload_success(self, client):
        record = _upload(client)
        assert record["status"] == "success"
        assert record["progress"] == 100
        assert record["layer_group_id"]

        groups = client.get("/api/imports/groups").json()
        assert len(groups) == 1
        assert groups[0]["name"] == "lines"
        names = sorted(x["name"] for x in groups[0]["layers"])
        assert names == ["LineString (2)", "Point (1)"]

    def test_upload_wrong_extension(self, client):
        record = _upload(client, "notes.txt", b"hello")
        assert record["status"] == "error"
        assert ".kml" in record["error"]
        assert client.get("/api/imports/groups").json() == []

    def test_upload_too_large(self):
        client = _make_client(max_upload_bytes=10)
        record = _upload(client)
        assert record["status"] == "error"
        assert "too large" in record["error"]

    def test_upload_bad_markup(self, client):
        record = _upload(client, "broken.kml", b"<kml><Document>")
        assert record["status"] == "error"
        assert record["error"].startswith("Invalid KML format")

    def test_upload_requires_filename(self, client):
        resp = client.post("/api/imports/files", content=LINES_KML)
        assert resp.status_code == 422

    def test_list_and_remove_files(self, client):
        record = _upload(client)
        assert [f["id"] for f in client.get("/api/imports/files").json()] == [record["id"]]
        assert client.delete(f"/api/imports/files/{record['id']}").json() == {"ok": True}
        assert client.get("/api/imports/files").json() == []


@pytest.mark.unit
class TestLayers:

    def test_toggle_group_and_layer(self, client):
        _upload(client)
        group_id, layer_id = _line_layer(client)

        assert client.post(f"/api/imports/groups/{group_id}/toggle").status_code == 200
        assert client.post(f"/api/imports/groups/{group_id}/layers/{layer_id}/toggle").status_code == 200

        group = client.get("/api/imports/groups").json()[0]
        assert group["visible"] is False
        layer = next(x for x in group["layers"] if x["id"] == layer_id)
        assert layer["visible"] is False

    def test_remove_layer_then_group(self, client):
        _upload(client)
        group_id, layer_id = _line_layer(client)

        client.delete(f"/api/imports/groups/{group_id}/layers/{layer_id}")
        group = client.get("/api/imports/groups").json()[0]
        assert [x["name"] for x in group["layers"]] == ["Point (1)"]

        client.delete(f"/api/imports/groups/{group_id}")
        assert client.get("/api/imports/groups").json() == []


@pytest.mark.unit
class TestSelectionFlow:

    def test_select_unknown_layer(self, client):
        resp = client.post("/api/imports/selection", json={"group_id": "x", "layer_id": "y", "index": 0})
        assert resp.status_code == 404

    def test_select_index_out_of_range(self, client):
        _upload(client)
        group_id, layer_id = _line_layer(client)
        resp = client.post(
            "/api/imports/selection", json={"group_id": group_id, "layer_id": layer_id, "index": 9}
        )
        assert resp.status_code == 404

    def test_confirm_with_empty_selection(self, client):
        _upload(client)
        client.put("/api/imports/project", json={"project_id": "prj-1"})
        before = client.get("/api/imports/summary").json()

        resp = client.post("/api/imports/confirm")

        assert resp.status_code == 400
        assert resp.json()["detail"] == "Select at least one feature to import"
        assert client.get("/api/imports/summary").json() == before

    def test_confirm_without_project(self, client):
        _upload(client)
        group_id, layer_id = _line_layer(client)
        client.post("/api/imports/selection", json={"group_id": group_id, "layer_id": layer_id, "index": 0})
        resp = client.post("/api/imports/confirm")
        assert resp.status_code == 400

    def test_full_flow(self, client):
        _upload(client)
        group_id, layer_id = _line_layer(client)
        assert client.put("/api/imports/project", json={"project_id": "prj-1", "name": "Line"}).json() == {"ok": True}

        resp = client.post(
            "/api/imports/selection", json={"group_id": group_id, "layer_id": layer_id, "index": 1}
        )
        assert resp.json()["feature_id"] == f"{group_id}:{layer_id}:1"

        for package_id in ("p1", "p2"):
            client.post("/api/imports/assignments", json={
                "group_id": group_id, "layer_id": layer_id, "line_string_id": 1,
                "package_id": package_id, "package_name": f"Package {package_id}",
            })

        summary = client.get("/api/imports/summary").json()
        assert summary["can_proceed"] is True
        assert summary["assignments"] == 1
        assert summary["layers"][0]["assigned"] == 1
        assert summary["layers"][0]["unassigned"] == 1
        assert summary["layers"][0]["selected"] == 1

        confirmed = client.post("/api/imports/confirm").json()
        assert confirmed["ok"] is True
        assert confirmed["assignments"] == 1
        layer = confirmed["layer_groups"][0]["layers"][0]
        assert layer["color"] == "#2196f3"
        assert len(layer["geometry"]) == 1

        payload = client.get("/api/imports/payload").json()
        assert payload["project_id"] == "prj-1"
        assert payload["assignments"][0]["packageId"] == "p2"

    def test_deselect(self, client):
        _upload(client)
        group_id, layer_id = _line_layer(client)
        feature_id = client.post(
            "/api/imports/selection", json={"group_id": group_id, "layer_id": layer_id, "index": 0}
        ).json()["feature_id"]
        client.delete(f"/api/imports/selection/{feature_id}")
        assert client.get("/api/imports/summary").json()["selected_features"] == 0

    def test_payload_without_project(self, client):
        resp = client.get("/api/imports/payload")
        assert resp.status_code == 400


def _prepare_confirmed(client: TestClient) -> None:
    _upload(client)
    group_id, layer_id = _line_layer(client)
    client.put("/api/imports/project", json={"project_id": "prj-1"})
    client.post("/api/imports/selection", json={"group_id": group_id, "layer_id": layer_id, "index": 0})
    client.post("/api/imports/assignments", json={
        "group_id": group_id, "layer_id": layer_id, "line_string_id": 0,
        "package_id": "p1", "package_name": "Package 1",
    })
    assert client.post("/api/imports/confirm").status_code == 200


@pytest.mark.unit
class TestAssignmentEndpoints:

    def test_unassign(self, client):
        _upload(client)
        group_id, layer_id = _line_layer(client)
        client.post("/api/imports/assignments", json={
            "group_id": group_id, "layer_id": layer_id, "line_string_id": 0,
            "package_id": "p1", "package_name": "Package 1",
        })
        resp = client.delete(f"/api/imports/assignments/{group_id}/{layer_id}/0")
        assert resp.json() == {"ok": True}
        assert client.get("/api/imports/summary").json()["assignments"] == 0

    def test_clear_selection(self, client):
        _upload(client)
        group_id, layer_id = _line_layer(client)
        for index in (0, 1):
            client.post(
                "/api/imports/selection", json={"group_id": group_id, "layer_id": layer_id, "index": index}
            )
        assert client.get("/api/imports/summary").json()["selected_features"] == 2
        client.delete("/api/imports/selection")
        assert client.get("/api/imports/summary").json()["selected_features"] == 0


@pytest.mark.unit
class TestSaveAndReset:

    def test_save_sends_payload(self):
        seen = []

        def persistence(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.path)
            return httpx.Response(200, json={
                "IsSuccess": True, "StatusCode": "200", "ErrorMessage": None,
                "Data": {"success": True, "message": "saved", "import_id": "imp-1"},
            })

        client = _make_client(persistence=persistence)
        _prepare_confirmed(client)

        resp = client.post("/api/imports/save")

        assert resp.status_code == 200
        assert resp.json() == {"ok": True, "import_id": "imp-1", "assignments": 1}
        assert seen == ["/api/Maps/assignments"]

    def test_save_rejected_by_service(self):
        def persistence(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={
                "IsSuccess": False, "StatusCode": "500", "ErrorMessage": "Database unavailable", "Data": None,
            })

        client = _make_client(persistence=persistence)
        _prepare_confirmed(client)

        resp = client.post("/api/imports/save")
        assert resp.status_code == 502
        assert resp.json()["detail"] == "Database unavailable"

    def test_save_without_project(self):
        client = _make_client(persistence=lambda request: httpx.Response(500))
        assert client.post("/api/imports/save").status_code == 400

    def test_reset(self, client):
        _prepare_confirmed(client)
        assert client.post("/api/imports/reset").json() == {"ok": True}
        assert client.get("/api/imports/files").json() == []
        assert client.get("/api/imports/groups").json() == []
        assert client.get("/api/imports/summary").json()["can_proceed"] is False
