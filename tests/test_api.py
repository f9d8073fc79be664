import threading

import pytest
from fastapi.testclient import TestClient

from fakes import FakeOracle, make_jpeg, wait_until
from server.errors import OracleUnavailableError
from shared.schemas import FALLBACK_SUGGESTION


def _upload(client, body: bytes, weight="250", name="apple.jpg", content_type="image/jpeg"):
    return client.post(
        "/api/analyze-food",
        files={"foodImage": (name, body, content_type)},
        data={"weight": weight},
    )


def _latest(client) -> dict:
    response = client.get("/api/latest-analysis", params={"t": "123"})
    assert response.status_code == 200
    return response.json()


def _wait_terminal(client, record_id: int) -> dict:
    def done():
        body = _latest(client)
        return body["success"] and body["data"]["id"] == record_id and body["data"]["status"] != "processing"

    assert wait_until(done), "record never left processing"
    return _latest(client)["data"]


def test_health(client) -> None:
    response = client.get("/api/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "OK"
    assert "T" in body["timestamp"]


def test_latest_analysis_before_any_upload(client) -> None:
    assert _latest(client) == {"success": False, "error": "No analysis data available"}


def test_upload_then_poll_until_complete(client, jpeg_bytes) -> None:
    response = _upload(client, jpeg_bytes, weight="250")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    accepted = body["data"]
    assert accepted["status"] == "processing"
    assert accepted["weight"] == 250
    assert accepted["analysis"]["foodType"] == "Processing"
    assert accepted["image"]["originalName"] == "apple.jpg"
    assert accepted["image"]["sizeBytes"] == len(jpeg_bytes)

    finished = _wait_terminal(client, accepted["id"])

    assert finished["status"] == "complete"
    assert finished["weight"] == 250
    assert finished["image"] == accepted["image"]
    assert finished["timestamp"] != accepted["timestamp"]
    nutrition = finished["analysis"]["nutrition"]
    assert isinstance(nutrition["calories"], int) and nutrition["calories"] >= 0
    assert nutrition["GI"] == 36
    assert finished["analysis"]["healthSuggestions"] == ["Good source of fiber", "Low in fat"]
    assert finished["analysis"]["dishSuggestions"] == ["Apple pie", "Waldorf salad"]


def test_intake_does_not_wait_for_oracle(client, fake_oracle, jpeg_bytes) -> None:
    fake_oracle.gate = threading.Event()
    try:
        response = _upload(client, jpeg_bytes)
        assert response.status_code == 200
        record_id = response.json()["data"]["id"]
        assert wait_until(lambda: fake_oracle.active == 1)
        assert _latest(client)["data"]["status"] == "processing"
    finally:
        fake_oracle.gate.set()
    assert _wait_terminal(client, record_id)["status"] == "complete"


def test_uploads_get_distinct_ids(client, fake_oracle, jpeg_bytes) -> None:
    first = _upload(client, jpeg_bytes, weight="100").json()["data"]
    second = _upload(client, jpeg_bytes, weight="200").json()["data"]

    assert first["id"] != second["id"]
    assert first["image"]["filename"] != second["image"]["filename"]
    assert wait_until(lambda: len(fake_oracle.calls) == 2 and fake_oracle.active == 0)


def test_concurrent_uploads_leave_one_whole_record(client, fake_oracle) -> None:
    fake_oracle.gate = threading.Event()
    weights = {}
    for weight in ("100", "200"):
        data = _upload(client, make_jpeg(), weight=weight).json()["data"]
        weights[data["id"]] = float(weight)
    assert wait_until(lambda: fake_oracle.active == 2)
    fake_oracle.gate.set()
    assert wait_until(lambda: len(fake_oracle.calls) == 2 and fake_oracle.active == 0)

    def settled():
        data = _latest(client)["data"]
        return data["status"] == "complete"

    assert wait_until(settled)
    latest = _latest(client)["data"]
    assert latest["id"] in weights
    assert latest["weight"] == weights[latest["id"]]


@pytest.mark.parametrize(
    "oracle",
    [
        FakeOracle(text="I think this is a sandwich, roughly 400 calories."),
        FakeOracle(text='{"foodType": "Sandwich", "confidence": 0.9}'),
        FakeOracle(error=OracleUnavailableError("connection refused")),
    ],
    ids=["prose", "missing-nutrition", "oracle-down"],
)
def test_bad_oracle_outcomes_surface_as_fallback(monkeypatch, oracle, jpeg_bytes) -> None:
    import server.app as app_module

    monkeypatch.setattr(app_module, "OracleClient", lambda **kwargs: oracle)
    with TestClient(app_module.app) as client:
        response = _upload(client, jpeg_bytes)
        assert response.status_code == 200
        finished = _wait_terminal(client, response.json()["data"]["id"])

    assert finished["status"] == "failed_fallback"
    analysis = finished["analysis"]
    assert analysis["confidence"] == 0.5
    assert set(analysis["nutrition"].values()) == {0}
    assert analysis["healthSuggestions"] == [FALLBACK_SUGGESTION]


def test_missing_file_is_rejected(client) -> None:
    response = client.post("/api/analyze-food", data={"weight": "250"})
    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "No image file uploaded"}


def test_non_image_is_rejected(client) -> None:
    response = _upload(client, b"hello", name="notes.txt", content_type="text/plain")
    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Only image files are allowed."}


@pytest.mark.parametrize("weight", ["", "abc", "0", "-5"])
def test_invalid_weight_is_rejected(client, jpeg_bytes, weight) -> None:
    response = _upload(client, jpeg_bytes, weight=weight)
    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Valid weight is required"}


def test_missing_weight_is_rejected(client, jpeg_bytes) -> None:
    response = client.post(
        "/api/analyze-food",
        files={"foodImage": ("apple.jpg", jpeg_bytes, "image/jpeg")},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Valid weight is required"


def test_oversized_file_is_rejected(monkeypatch, fake_oracle) -> None:
    import config as config_module
    import server.app as app_module

    monkeypatch.setenv("NUTRIVISION_MAX_UPLOAD_BYTES", "100")
    monkeypatch.setattr(config_module, "_config_instance", None)
    monkeypatch.setattr(app_module, "OracleClient", lambda **kwargs: fake_oracle)
    with TestClient(app_module.app) as client:
        response = _upload(client, b"x" * 101)
        assert response.status_code == 400
        assert response.json()["error"].startswith("File too large")
        assert _latest(client)["success"] is False
    assert fake_oracle.calls == []


def test_rejections_create_no_record(client, fake_oracle) -> None:
    _upload(client, b"hello", name="notes.txt", content_type="text/plain")
    client.post("/api/analyze-food", data={"weight": "250"})

    assert _latest(client)["success"] is False
    assert fake_oracle.calls == []


def test_stored_image_is_served(client, fake_oracle, jpeg_bytes) -> None:
    record = _upload(client, jpeg_bytes).json()["data"]

    response = client.get(record["image"]["relativePath"])

    assert response.status_code == 200
    assert response.content == jpeg_bytes
    assert wait_until(lambda: len(fake_oracle.calls) == 1 and fake_oracle.active == 0)


def test_unknown_image_is_404(client) -> None:
    response = client.get("/uploads/nothing.jpg")
    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Image not found"}


def test_unknown_route_is_404(client) -> None:
    response = client.get("/api/nope")
    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Route not found"}


def test_unexpected_error_is_500(monkeypatch, fake_oracle, jpeg_bytes) -> None:
    import server.app as app_module

    monkeypatch.setattr(app_module, "OracleClient", lambda **kwargs: fake_oracle)
    with TestClient(app_module.app, raise_server_exceptions=False) as client:
        def explode(*args, **kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(app_module._intake, "accept", explode)
        response = _upload(client, jpeg_bytes)

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Internal server error"}


def test_upload_during_shutdown_does_not_leave_record_processing(monkeypatch, fake_oracle, jpeg_bytes) -> None:
    import server.app as app_module

    monkeypatch.setattr(app_module, "OracleClient", lambda **kwargs: fake_oracle)
    with TestClient(app_module.app, raise_server_exceptions=False) as client:
        app_module._dispatcher.shutdown(grace_seconds=0)
        response = _upload(client, jpeg_bytes)
        latest = _latest(client)

    assert response.status_code == 500
    assert latest["success"] is True
    assert latest["data"]["status"] == "failed_fallback"
    assert fake_oracle.calls == []
