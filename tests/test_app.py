from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from datastore.readings import MemoryReadingStore
from services.errors import StoreUnavailable
from services.telemetry import TelemetryService, build_default_service

from .utils import FakeClock, payload


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def telemetry(clock: FakeClock) -> TelemetryService:
    return TelemetryService(store=MemoryReadingStore(clock=clock), clock=clock)


@pytest.fixture
def api_client(telemetry: TelemetryService, monkeypatch) -> Iterator[TestClient]:
    def build_test_service() -> TelemetryService:
        return telemetry

    build_test_service.cache_clear = telemetry.shutdown  # type: ignore[attr-defined]

    monkeypatch.setattr("app.main.build_default_service", build_test_service)
    monkeypatch.setattr("app.api.build_default_service", build_test_service)

    app = create_app()
    with TestClient(app) as client:
        yield client


def test_lifespan_shuts_down_service_and_clears_cache(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("TELEMETRY_STORE_PATH", "")
    monkeypatch.setenv("RETENTION_SWEEP_SECONDS", "60")
    from settings import get_settings
    from datastore.readings import build_default_store

    get_settings.cache_clear()
    build_default_store.cache_clear()
    build_default_service.cache_clear()
    try:
        app = create_app()
        with TestClient(app):
            service_during = build_default_service()
            assert service_during.sweeper is not None
            assert service_during.sweeper.executor._shutdown is False

        assert service_during.sweeper.executor._shutdown is True
        assert build_default_service() is not service_during
    finally:
        build_default_service().shutdown()
        build_default_service.cache_clear()
        build_default_store.cache_clear()
        get_settings.cache_clear()


def test_ingest_returns_saved_reading_in_camel_case(api_client: TestClient, clock: FakeClock) -> None:
    response = api_client.post(
        "/api/sensors/data",
        json=payload("esp-1", temperature=23.4, humidity=55, location={"name": "Roof"}),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    saved = body["saved"]
    assert saved["deviceId"] == "esp-1"
    assert saved["temperature"] == 23.4
    assert saved["source"] == "ESP32"
    assert saved["location"] == {"name": "Roof", "latitude": 0.0, "longitude": 0.0}
    assert saved["timestamp"].startswith("2024-01-01T12:00:00")
    assert "createdAt" in saved


def test_ingest_validation_error_maps_to_400(api_client: TestClient) -> None:
    response = api_client.post("/api/sensors/data", json=payload("d1", temperature="hot"))

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["fields"] == {"sensorData.temperature": "must be a finite number"}
    assert "sensorData.temperature" in detail["message"]


def test_ingest_store_failure_maps_to_500(api_client: TestClient, telemetry, monkeypatch) -> None:
    def broken_append(reading):
        raise StoreUnavailable("disk full")

    monkeypatch.setattr(telemetry.store, "append", broken_append)

    response = api_client.post("/api/sensors/data", json=payload("d1"))

    assert response.status_code == 500
    assert "disk full" in response.json()["detail"]


def test_latest_endpoint(api_client: TestClient, clock: FakeClock) -> None:
    api_client.post("/api/sensors/data", json=payload("d1", temperature=1))
    clock.advance(seconds=5)
    api_client.post("/api/sensors/data", json=payload("d2", temperature=2))
    clock.advance(seconds=5)
    api_client.post("/api/sensors/data", json=payload("d1", temperature=3))

    everything = api_client.get("/api/sensors/latest").json()
    single = api_client.get("/api/sensors/latest", params={"deviceId": "d2"}).json()

    assert everything["success"] is True
    assert everything["count"] == 2
    assert {item["deviceId"]: item["temperature"] for item in everything["data"]} == {
        "d1": 3.0,
        "d2": 2.0,
    }
    assert [item["temperature"] for item in single["data"]] == [2.0]


def test_readings_endpoint_orders_and_limits(api_client: TestClient, clock: FakeClock) -> None:
    for value in range(5):
        api_client.post("/api/sensors/data", json=payload("d1", temperature=value))
        clock.advance(seconds=1)

    response = api_client.get("/api/sensors/readings", params={"deviceId": "d1", "limit": "3"})

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 3
    assert [item["temperature"] for item in body["data"]] == [4.0, 3.0, 2.0]


def test_readings_endpoint_rejects_bad_dates(api_client: TestClient) -> None:
    response = api_client.get(
        "/api/sensors/readings",
        params={"startDate": "not-a-date", "endDate": "2024-01-02T00:00:00Z"},
    )

    assert response.status_code == 400
    assert "startDate" in response.json()["detail"]


@pytest.mark.parametrize(
    "path, params, detail",
    [
        ("/api/sensors/history", {"hours": "100000000"}, "hours is out of range"),
        (
            "/api/sensors/readings",
            {"startDate": "0001-01-01", "endDate": "9999-12-31T23:59:59-05:00"},
            "endDate is out of range",
        ),
    ],
)
def test_out_of_range_window_maps_to_400(
    api_client: TestClient, path: str, params: dict, detail: str
) -> None:
    response = api_client.get(path, params=params)

    assert response.status_code == 400
    assert response.json()["detail"] == detail


def test_history_endpoint_buckets_readings(api_client: TestClient, clock: FakeClock) -> None:
    for value, step in ((20.0, 30), (22.0, 60), (24.0, 0)):
        api_client.post("/api/sensors/data", json=payload("d1", temperature=value))
        clock.advance(seconds=step)

    response = api_client.get(
        "/api/sensors/history",
        params={"deviceId": "d1", "interval": "minute", "hours": "2"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 2
    assert [bucket["temperature"]["avg"] for bucket in body["data"]] == [21.0, 24.0]
    assert [bucket["count"] for bucket in body["data"]] == [2, 1]
    assert body["query"]["hours"] == 2
    assert body["query"]["interval"] == "minute"
    assert body["meta"]["aggregationInterval"] == "minute"
    assert body["meta"]["totalDataPoints"] == 2
    assert set(body["data"][0]) >= {"firstReading", "lastReading", "bucketStart", "location"}


def test_history_endpoint_rejects_unknown_interval(api_client: TestClient) -> None:
    response = api_client.get("/api/sensors/history", params={"interval": "fortnight"})

    assert response.status_code == 400


def test_cors_preflight_is_answered(api_client: TestClient) -> None:
    response = api_client.options(
        "/api/sensors/latest",
        headers={
            "Origin": "http://dashboard.local",
            "Access-Control-Request-Method": "GET",
        },
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] in {"*", "http://dashboard.local"}


def test_health(api_client: TestClient) -> None:
    assert api_client.get("/health").json() == {"status": "ok"}
