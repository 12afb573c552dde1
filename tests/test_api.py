import json
import uuid

import pytest
from fastapi.testclient import TestClient

from app.db.core import get_session
from app.main import app


@pytest.fixture
def client(session, storage):
    def override_get_session():
        yield session

    app.dependency_overrides[get_session] = override_get_session
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def headers(entity):
    return {"X-Entity-Id": str(entity.id), "X-User-Id": str(uuid.uuid4())}


def _create_characteristic(client, headers, **body):
    response = client.post("/api/v1/characteristics/", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def test_readiness(client):
    response = client.get("/api/v1/readiness")
    assert response.status_code == 200
    assert response.json()["database"] == "online"
    assert response.json()["storage"] == "online"


def test_missing_tenant_header_is_rejected(client):
    response = client.get("/api/v1/characteristics/")
    assert response.status_code == 422


def test_unknown_tenant_maps_to_404(client):
    response = client.get("/api/v1/characteristics/", headers={"X-Entity-Id": str(uuid.uuid4())})
    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


def test_characteristic_errors_map_to_status_codes(client, headers):
    response = client.post("/api/v1/characteristics/", headers=headers, json={
        "name": "Size", "type": "select", "options": ["M"]})
    assert response.status_code == 422
    assert response.json()["code"] == "VALIDATION_ERROR"

    _create_characteristic(client, headers, name="Weight", type="number", units="kg")
    response = client.post("/api/v1/characteristics/", headers=headers, json={
        "name": "Weight", "type": "number"})
    assert response.status_code == 409
    assert response.json()["code"] == "CONFLICT"


def test_material_lifecycle_with_files(client, headers):
    weight = _create_characteristic(client, headers, name="Weight", type="number", units="kg")
    sheet = _create_characteristic(client, headers, name="Datasheet", type="file")
    tag = client.post("/api/v1/tags/", headers=headers, json={
        "name": "Red", "color": "#ff0000", "font_color": "#ffffff"}).json()

    payload = {
        "name": "Oak plank",
        "tag_ids": [tag["id"]],
        "order": [sheet["id"], weight["id"]],
        "values": [
            {"characteristic_id": weight["id"], "value": 42},
            {"characteristic_id": sheet["id"], "file_to_add": ["sheet.pdf"]},
        ],
    }
    response = client.post(
        "/api/v1/materials/",
        headers=headers,
        data={"payload": json.dumps(payload)},
        files=[("files", ("sheet.pdf", b"%PDF-1.7", "application/pdf"))],
    )
    assert response.status_code == 201, response.text
    material = response.json()
    assert material["characteristic_order"] == [sheet["id"], weight["id"]]
    assert [t["name"] for t in material["tags"]] == ["Red"]

    # values and file download
    values = client.get(f"/api/v1/materials/{material['id']}/values", headers=headers).json()
    file_ref = values[0]["files"][0]
    download = client.get(f"/api/v1/files/{file_ref['id']}")
    assert download.status_code == 200
    assert download.content == b"%PDF-1.7"
    assert download.headers["content-type"] == "application/pdf"

    # history
    latest = client.get(f"/api/v1/materials/{material['id']}/history/latest", headers=headers).json()
    assert latest["tags"] == [{"name": "Red", "color": "#ff0000", "fontColor": "#ffffff"}]
    assert latest["characteristics"][0]["value"]["file"][0]["name"] == "sheet.pdf"
    assert latest["characteristics"][1] == {"name": "Weight", "type": "number", "units": "kg", "value": 42}

    # update drops the file from the live row only
    payload["values"] = [
        {"characteristic_id": weight["id"], "value": 43},
        {"characteristic_id": sheet["id"], "file_to_delete": [file_ref["id"]]},
    ]
    response = client.put(
        f"/api/v1/materials/{material['id']}",
        headers=headers,
        data={"payload": json.dumps(payload)},
    )
    assert response.status_code == 200, response.text

    history = client.get(f"/api/v1/materials/{material['id']}/history", headers=headers).json()
    assert [h["revision"] for h in history] == [2, 1]
    assert history[0]["characteristics"][0]["value"] == {"file": []}
    assert client.get(f"/api/v1/files/{file_ref['id']}").status_code == 404

    # the earlier snapshot still reaches its blob by path
    old_path = history[1]["characteristics"][0]["value"]["file"][0]["path"]
    download = client.get(f"/api/v1/files/path/{old_path}")
    assert download.status_code == 200
    assert download.content == b"%PDF-1.7"
    assert download.headers["content-type"] == "application/pdf"

    # delete blocked while in use
    response = client.delete(f"/api/v1/characteristics/{weight['id']}", headers=headers)
    assert response.status_code == 409
    assert response.json()["code"] == "IN_USE"

    assert client.delete(f"/api/v1/materials/{material['id']}", headers=headers).status_code == 200
    assert client.get("/api/v1/materials/", headers=headers).json() == []
    assert client.delete(f"/api/v1/characteristics/{weight['id']}", headers=headers).status_code == 200


def test_inverted_history_range_is_empty(client, headers):
    response = client.post(
        "/api/v1/materials/", headers=headers, data={"payload": json.dumps({"name": "Oak plank"})})
    material_id = response.json()["id"]

    response = client.get(
        f"/api/v1/materials/{material_id}/history",
        headers=headers,
        params={"from": "2030-01-02T00:00:00", "to": "2030-01-01T00:00:00"},
    )
    assert response.status_code == 200
    assert response.json() == []


def test_payload_must_reference_uploaded_files(client, headers):
    sheet = _create_characteristic(client, headers, name="Datasheet", type="file")
    payload = {
        "name": "Oak plank",
        "values": [{"characteristic_id": sheet["id"], "file_to_add": ["missing.pdf"]}],
    }
    response = client.post("/api/v1/materials/", headers=headers, data={"payload": json.dumps(payload)})
    assert response.status_code == 422

    response = client.post("/api/v1/materials/", headers=headers, data={"payload": "{not json"})
    assert response.status_code == 422


def test_activity_log_lists_actions(client, headers):
    _create_characteristic(client, headers, name="Weight", type="number")
    client.post("/api/v1/tags/", headers=headers, json={
        "name": "Red", "color": "#ff0000", "font_color": "#ffffff"})

    entries = client.get("/api/v1/activity/", headers=headers).json()
    assert {e["record_type"] for e in entries} == {"Characteristic", "Tag"}
    assert all(e["actor_user_id"] == headers["X-User-Id"] for e in entries)

    entries = client.get("/api/v1/activity/", headers=headers, params={"record_type": "Tag"}).json()
    assert len(entries) == 1


def test_path_download_of_missing_blob(client, storage):
    assert client.get("/api/v1/files/path/materials/missing.pdf").status_code == 404


def test_path_download_guesses_type_without_record(client, storage):
    blob = storage / "materials" / "m1" / "note.txt"
    blob.parent.mkdir(parents=True)
    blob.write_bytes(b"hello")

    response = client.get("/api/v1/files/path/materials/m1/note.txt")
    assert response.status_code == 200
    assert response.content == b"hello"
    assert response.headers["content-type"].startswith("text/plain")


def test_duplicate_upload_names_are_rejected(client, headers):
    first = _create_characteristic(client, headers, name="Photo", type="file")
    second = _create_characteristic(client, headers, name="Back photo", type="file")
    payload = {
        "name": "Oak plank",
        "values": [
            {"characteristic_id": first["id"], "file_to_add": ["a.bin"]},
            {"characteristic_id": second["id"], "file_to_add": ["a.bin"]},
        ],
    }
    response = client.post(
        "/api/v1/materials/",
        headers=headers,
        data={"payload": json.dumps(payload)},
        files=[
            ("files", ("a.bin", b"FIRST", "application/octet-stream")),
            ("files", ("a.bin", b"SECOND", "application/octet-stream")),
        ],
    )
    assert response.status_code == 422
    assert response.json()["code"] == "VALIDATION_ERROR"
    assert client.get("/api/v1/materials/", headers=headers).json() == []
