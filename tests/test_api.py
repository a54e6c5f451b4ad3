"""Tests de la API de lectura con TestClient."""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from telemetry_ingest.api import ReadinessState, create_app
from telemetry_ingest.inventory import ConfigReconciler, SensorDescriptor

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def readiness():
    return ReadinessState()


@pytest.fixture
def client(gateway, readiness):
    return TestClient(create_app(gateway, readiness))


@pytest.fixture
def sensor_id(gateway):
    result = ConfigReconciler(gateway).reconcile(
        [
            SensorDescriptor(name="NTC-1", section="Battery", module="Module-1"),
            SensorDescriptor(name="NTC-2", section="Battery", module="Module-1"),
        ]
    )
    sid = result.sensor_id_for("Battery", "Module-1", "NTC-1")
    for minutes in (0, 10, 20):
        gateway.insert_record(sid, float(minutes), T0 + timedelta(minutes=minutes))
    return sid


# =============================================================================
# HEALTH
# =============================================================================

class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_readyz_until_ready(self, client, readiness):
        assert client.get("/readyz").status_code == 503

        readiness.set_ready()
        response = client.get("/readyz")
        assert response.status_code == 200
        assert response.json() == {"status": "ready"}


# =============================================================================
# JERARQUÍA
# =============================================================================

class TestHierarchy:

    def test_sections(self, client, sensor_id):
        [section] = client.get("/sections").json()
        assert section["name"] == "Battery"
        [module] = section["modules"]
        assert module["name"] == "Module-1"
        assert [s["name"] for s in module["sensors"]] == ["NTC-1", "NTC-2"]

    def test_section_by_id(self, client, sensor_id):
        section_id = client.get("/sections").json()[0]["id"]
        assert client.get(f"/sections/{section_id}").json()["name"] == "Battery"
        assert client.get("/sections/999").status_code == 404

    def test_module_by_id(self, client, gateway, sensor_id):
        module_id = gateway.get_sensor_by_id(sensor_id).module_id
        body = client.get(f"/modules/{module_id}").json()
        assert body["name"] == "Module-1"
        assert len(body["sensors"]) == 2
        assert client.get("/modules/999").status_code == 404

    def test_sensor_with_records(self, client, sensor_id):
        body = client.get(f"/sensors/{sensor_id}").json()
        assert body["topic"] == "Battery/Module-1/NTC-1"
        assert [r["value"] for r in body["records"]] == [0.0, 10.0, 20.0]

    def test_sensor_window(self, client, sensor_id):
        response = client.get(
            f"/sensors/{sensor_id}",
            params={"since": "2024-01-01T00:05:00+00:00", "until": "2024-01-01T00:15:00+00:00"},
        )
        assert response.status_code == 200
        assert [r["value"] for r in response.json()["records"]] == [10.0]

    def test_sensor_window_naive_bound_is_utc(self, client, sensor_id):
        response = client.get(
            f"/sensors/{sensor_id}",
            params={"since": "2024-01-01T00:05:00Z", "until": "2024-01-01T00:15:00"},
        )
        assert response.status_code == 200
        assert [r["value"] for r in response.json()["records"]] == [10.0]

    def test_sensor_invalid_window_mixed_offsets(self, client, sensor_id):
        response = client.get(
            f"/sensors/{sensor_id}",
            params={"since": "2024-01-02T00:00:00Z", "until": "2024-01-01T00:00:00"},
        )
        assert response.status_code == 422

    def test_sensor_invalid_window(self, client, sensor_id):
        response = client.get(
            f"/sensors/{sensor_id}",
            params={"since": "2024-01-01T01:00:00+00:00", "until": "2024-01-01T00:00:00+00:00"},
        )
        assert response.status_code == 422

    def test_sensor_not_found(self, client):
        assert client.get("/sensors/999").status_code == 404

    def test_topics(self, client, sensor_id):
        assert client.get("/topics").json() == {
            "topics": ["Battery/Module-1/NTC-1", "Battery/Module-1/NTC-2"]
        }
