"""HTTP tests for the digital twin routes."""

import pytest
from fastapi.testclient import TestClient

from conftest import StubWeatherClient

from api.main import create_app
from api.router import digital_twin_service

START_BODY = {
    "design_id": "plant-http",
    "capacity_kwp": 800.0,
    "latitude": 40.0,
    "longitude": -105.0,
    "inverter_count": 1,
    "transformer_count": 1,
    "panel_count": 10,
    "enable_random_faults": False,
}


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(digital_twin_service, "weather_client", StubWeatherClient())
    # Keep the background job from firing mid-test.
    monkeypatch.setattr(digital_twin_service, "update_interval_seconds", 3600.0)

    with TestClient(create_app()) as test_client:
        yield test_client

    digital_twin_service.stop()


@pytest.fixture
def started(client):
    response = client.post("/api/digital-twin/start", json=START_BODY)
    assert response.status_code == 200
    return client


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


def test_status_when_idle(client):
    body = client.get("/api/digital-twin").json()

    assert body["is_active"] is False
    assert body["config"] is None
    assert body["error"] is None


def test_start_returns_config(client):
    body = client.post("/api/digital-twin/start", json=START_BODY).json()

    assert body["is_active"] is True
    assert body["update_interval_seconds"] == 3600.0
    assert body["config"]["design_id"] == "plant-http"
    assert body["config"]["max_concurrent_panel_faults"] == 5


def test_start_validates_body(client):
    response = client.post("/api/digital-twin/start", json={**START_BODY, "capacity_kwp": 0})
    assert response.status_code == 422


def test_stop(started):
    body = started.post("/api/digital-twin/stop").json()
    assert body["is_active"] is False


# ---------------------------------------------------------------------------
# Telemetry
# ---------------------------------------------------------------------------


def test_snapshot_missing_before_start(client):
    assert client.get("/api/digital-twin/snapshot").status_code == 404


def test_snapshot_after_start(started):
    body = started.get("/api/digital-twin/snapshot").json()

    assert body["design_id"] == "plant-http"
    assert len(body["inverters"]) == 1
    assert len(body["panel_frames"]) == 10
    assert body["weather"]["irradiance"] == 1000.0
    assert body["system"]["performance_ratio"] > 0.9


def test_update_requires_active_simulation(client):
    assert client.post("/api/digital-twin/update").status_code == 409


def test_update_appends_history(started):
    assert started.post("/api/digital-twin/update").status_code == 200

    history = started.get("/api/digital-twin/history").json()
    assert len(history) == 2
    assert len(started.get("/api/digital-twin/history", params={"limit": 1}).json()) == 1


def test_update_failure_is_reported(started, monkeypatch):
    monkeypatch.setattr(digital_twin_service.weather_client, "error", RuntimeError("no weather"))

    response = started.post("/api/digital-twin/update")

    assert response.status_code == 502
    assert response.json()["detail"] == "no weather"
    assert started.get("/api/digital-twin").json()["error"] == "no weather"


# ---------------------------------------------------------------------------
# Faults and alerts
# ---------------------------------------------------------------------------


def test_inject_fault(started):
    response = started.post("/api/digital-twin/faults/inverter")
    body = response.json()

    assert response.status_code == 200
    assert body["equipment_id"] == "inv-1"
    assert body["category"] == "inverter"

    alerts = started.get("/api/digital-twin/alerts").json()
    assert [a["id"] for a in alerts] == [body["id"]]


def test_inject_fault_returns_null_when_all_faulted(started):
    started.post("/api/digital-twin/faults/transformer")
    response = started.post("/api/digital-twin/faults/transformer")

    assert response.status_code == 200
    assert response.json() is None


def test_inject_unknown_category(started):
    assert started.post("/api/digital-twin/faults/weather").status_code == 422


def test_inject_requires_active_simulation(client):
    assert client.post("/api/digital-twin/faults/panel").status_code == 409


def test_alert_filters(started):
    started.post("/api/digital-twin/faults/inverter")
    started.post("/api/digital-twin/faults/transformer")

    by_equipment = started.get("/api/digital-twin/alerts", params={"equipment_id": "xfr-1"}).json()
    active = started.get("/api/digital-twin/alerts", params={"active_only": True}).json()

    assert [a["equipment_id"] for a in by_equipment] == ["xfr-1"]
    assert len(active) == 2


def test_acknowledge_alert(started):
    alert = started.post("/api/digital-twin/faults/inverter").json()

    assert started.post(f"/api/digital-twin/alerts/{alert['id']}/acknowledge").status_code == 204
    assert started.get("/api/digital-twin/alerts").json() == []

    snapshot = started.post("/api/digital-twin/update").json()
    assert snapshot["inverters"][0]["status"] == "online"


def test_acknowledge_unknown_alert(started):
    assert started.post("/api/digital-twin/alerts/missing/acknowledge").status_code == 404


def test_delete_alerts(started):
    first = started.post("/api/digital-twin/faults/inverter").json()
    started.post("/api/digital-twin/faults/transformer")

    assert started.delete(f"/api/digital-twin/alerts/{first['id']}").status_code == 204
    assert started.delete(f"/api/digital-twin/alerts/{first['id']}").status_code == 404
    assert started.delete("/api/digital-twin/alerts").status_code == 204
    assert started.get("/api/digital-twin/alerts").json() == []


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def test_config_update_requires_active_simulation(client):
    response = client.patch("/api/digital-twin/config", json={"fault_probability": 0.5})
    assert response.status_code == 409


def test_config_update(started):
    body = started.patch("/api/digital-twin/config", json={"fault_probability": 0.5, "panel_count": 4}).json()

    assert body["fault_probability"] == 0.5
    assert body["panel_count"] == 4
    assert body["design_id"] == "plant-http"


def test_config_update_validates(started):
    response = started.patch("/api/digital-twin/config", json={"soiling_loss": 2})
    assert response.status_code == 422


def test_set_interval(started):
    body = started.put("/api/digital-twin/interval", json={"seconds": 1800}).json()
    assert body["update_interval_seconds"] == 1800.0


def test_set_interval_rejects_zero(started):
    assert started.put("/api/digital-twin/interval", json={"seconds": 0}).status_code == 422
