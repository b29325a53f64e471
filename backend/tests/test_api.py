"""
Test the v1 snapshot API end to end.
"""
import base64
import json

import pytest
from fastapi.testclient import TestClient

from main import app
from votecounter.services.sessions import get_registry


@pytest.fixture
def snapshot_id(test_client, ballot_photo):
    response = test_client.post("/v1/snapshots", json={"path": str(ballot_photo), "size_limit": 120})
    assert response.status_code == 200
    return response.json()["id"]


def test_open_snapshot(test_client, ballot_photo):
    response = test_client.post("/v1/snapshots", json={"path": str(ballot_photo), "size_limit": 120})

    assert response.status_code == 200
    data = response.json()
    assert data["id"].startswith("snap-")
    assert (data["width"], data["height"]) == (120, 90)
    assert data["picks"] == 0


def test_open_missing_photo(test_client, tmp_path):
    response = test_client.post("/v1/snapshots", json={"path": str(tmp_path / "missing.png")})

    assert response.status_code == 404


def test_open_rejects_bad_size_limit(test_client, ballot_photo):
    response = test_client.post("/v1/snapshots", json={"path": str(ballot_photo), "size_limit": 5})

    assert response.status_code == 422


def test_unknown_snapshot(test_client):
    assert test_client.get("/v1/snapshots/snap-unknown").status_code == 404
    assert test_client.post("/v1/snapshots/snap-unknown/train").status_code == 404
    assert test_client.delete("/v1/snapshots/snap-unknown").status_code == 404


def test_initial_state(test_client, snapshot_id):
    data = test_client.get(f"/v1/snapshots/{snapshot_id}").json()

    assert data["mode"] == "inert"
    assert data["active_color"] == "green"
    assert data["trained"] is False
    assert data["regions"] == []
    assert data["picks"] == {}


def test_pick_workflow(test_client, snapshot_id):
    response = test_client.put(f"/v1/snapshots/{snapshot_id}/mode", json={"mode": "red"})
    assert response.status_code == 200
    assert response.json()["mode"] == "train"

    response = test_client.post(f"/v1/snapshots/{snapshot_id}/picks", json={"x": 10, "y": 10, "action": "add"})
    assert response.status_code == 200
    data = response.json()
    assert data["changed"] is True
    assert len(data["regions"]) == 1
    assert data["regions"][0]["color"] == "red"
    assert data["regions"][0]["bounds"] == [5, 5, 30, 30]

    state = test_client.get(f"/v1/snapshots/{snapshot_id}").json()
    assert state["picks"] == {"red": [[10, 10]]}

    response = test_client.post(f"/v1/snapshots/{snapshot_id}/picks", json={"x": 10, "y": 10, "action": "remove"})
    assert response.json() == {"changed": True, "regions": []}
    assert test_client.get(f"/v1/snapshots/{snapshot_id}").json()["regions"] == []


def test_mask_mode_blocks_picks(test_client, snapshot_id):
    response = test_client.put(f"/v1/snapshots/{snapshot_id}/mode", json={"mode": "MASK"})
    assert response.json()["mode"] == "mask"

    response = test_client.post(f"/v1/snapshots/{snapshot_id}/picks", json={"x": 10, "y": 10})
    assert response.json()["changed"] is False


def test_invalid_mode(test_client, snapshot_id):
    response = test_client.put(f"/v1/snapshots/{snapshot_id}/mode", json={"mode": "   "})

    assert response.status_code == 400


def test_clear_layer(test_client, snapshot_id):
    test_client.put(f"/v1/snapshots/{snapshot_id}/mode", json={"mode": "red"})
    test_client.post(f"/v1/snapshots/{snapshot_id}/picks", json={"x": 10, "y": 10})

    data = test_client.post(f"/v1/snapshots/{snapshot_id}/clear").json()

    assert data["regions"] == []
    assert data["picks"] == {}


def test_classify_before_training_conflicts(test_client, snapshot_id):
    response = test_client.post(f"/v1/snapshots/{snapshot_id}/classify")

    assert response.status_code == 409


def test_train_and_classify(test_client, snapshot_id):
    for color, x, y in (("red", 10, 10), ("blue", 100, 20)):
        test_client.put(f"/v1/snapshots/{snapshot_id}/mode", json={"mode": color})
        test_client.post(f"/v1/snapshots/{snapshot_id}/picks", json={"x": x, "y": y})

    response = test_client.post(f"/v1/snapshots/{snapshot_id}/train")
    assert response.status_code == 200
    data = response.json()
    assert data["trained"] is True
    assert [e["color"] for e in data["entries"]] == ["red", "blue"]
    assert base64.b64decode(data["palette_png_b64"]).startswith(b"\x89PNG")

    response = test_client.post(f"/v1/snapshots/{snapshot_id}/classify")
    assert response.status_code == 200
    data = response.json()
    assert data["pixel_counts"] == {"red": 900, "blue": 400}
    assert data["blob_counts"] == {"red": 1, "blue": 1}
    assert data["unclassified"] == 120 * 90 - 1300
    assert base64.b64decode(data["classified_png_b64"]).startswith(b"\x89PNG")


def test_train_without_picks(test_client, snapshot_id):
    data = test_client.post(f"/v1/snapshots/{snapshot_id}/train").json()

    assert data["trained"] is False
    assert data["entries"] == []
    assert data["palette_png_b64"] is None


def test_close_persists_and_restores(test_client, snapshot_id, ballot_photo):
    test_client.put(f"/v1/snapshots/{snapshot_id}/mode", json={"mode": "red"})
    test_client.post(f"/v1/snapshots/{snapshot_id}/picks", json={"x": 10, "y": 10})

    response = test_client.delete(f"/v1/snapshots/{snapshot_id}")
    assert response.status_code == 200
    assert test_client.get(f"/v1/snapshots/{snapshot_id}").status_code == 404
    assert (ballot_photo.parent / "ballot.cache" / "data.json").exists()

    response = test_client.post("/v1/snapshots", json={"path": str(ballot_photo), "size_limit": 120})
    reopened = response.json()
    assert reopened["picks"] == 1
    state = test_client.get(f"/v1/snapshots/{reopened['id']}").json()
    assert state["picks"] == {"red": [[10, 10]]}
    assert len(state["regions"]) == 1


def test_metrics_endpoint(test_client, snapshot_id):
    test_client.put(f"/v1/snapshots/{snapshot_id}/mode", json={"mode": "red"})
    test_client.post(f"/v1/snapshots/{snapshot_id}/picks", json={"x": 10, "y": 10})

    data = test_client.get("/v1/metrics").json()

    assert data["counters"]["snapshots_opened_total"] == 1
    assert data["counters"]["picks_total"] == 1
    assert "pick_duration_ms" in data["timing_stats"]


def test_shutdown_saves_open_snapshots(ballot_photo):
    with TestClient(app) as client:
        snapshot_id = client.post("/v1/snapshots", json={"path": str(ballot_photo), "size_limit": 120}).json()["id"]
        client.put(f"/v1/snapshots/{snapshot_id}/mode", json={"mode": "red"})
        client.post(f"/v1/snapshots/{snapshot_id}/picks", json={"x": 10, "y": 10})

    ledger_path = ballot_photo.parent / "ballot.cache" / "data.json"
    assert json.loads(ledger_path.read_text()) == {"picks": {"red": [10, 10]}}
    assert snapshot_id not in get_registry().ids()


@pytest.mark.parametrize("path, method, status", [
    ("/v1/snapshots", "post", "404"),
    ("/v1/snapshots", "post", "400"),
    ("/v1/snapshots/{snapshot_id}/mode", "put", "400"),
    ("/v1/snapshots/{snapshot_id}/picks", "post", "404"),
    ("/v1/snapshots/{snapshot_id}/classify", "post", "404"),
    ("/v1/snapshots/{snapshot_id}/classify", "post", "409"),
])
def test_error_responses_documented(test_client, path, method, status):
    responses = test_client.get("/openapi.json").json()["paths"][path][method]["responses"]

    schema = responses[status]["content"]["application/json"]["schema"]
    assert schema["$ref"] == "#/components/schemas/ErrorResponse"
