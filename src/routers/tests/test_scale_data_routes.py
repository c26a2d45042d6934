"""Tests for the read/export endpoints."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from src.telemetry.base import Resolution
from src.telemetry.tests.conftest import FakeTelemetryStore

BASE = "/api/v1/scale-data"


@pytest.fixture(autouse=True)
def seed(store: FakeTelemetryStore) -> None:
    store.seed(
        Resolution.hourly,
        "S1",
        {"time": "2025-01-01T00:00:00Z", "weight": 12.345},
        {"time": "2025-01-01T01:00:00Z", "weight": 12.4, "temperature": 33.0},
    )
    store.seed(Resolution.hourly, "S2", {"time": "2025-01-01T00:30:00Z", "humidity": 61.2})
    store.seed(Resolution.daily, "S1", {"time": "2025-01-01T00:00:00Z", "weight": 12.0})


class TestReadScaleData:
    def test_json_range_defaults_to_hourly(self, client: TestClient) -> None:
        response = client.get(BASE)
        assert response.status_code == 200
        assert [(r["entity_id"], r["time"]) for r in response.json()] == [
            ("S1", "2025-01-01T00:00:00Z"),
            ("S2", "2025-01-01T00:30:00Z"),
            ("S1", "2025-01-01T01:00:00Z"),
        ]

    def test_scale_filter_and_window(self, client: TestClient) -> None:
        response = client.get(
            BASE,
            params={"scale": "S1", "start": "2025-01-01T00:30:00Z", "end": "2025-01-02T00:00:00Z"},
        )
        assert response.status_code == 200
        assert response.json() == [
            {"entity_id": "S1", "time": "2025-01-01T01:00:00Z", "weight": 12.4, "temperature": 33.0}
        ]

    def test_latest_snapshot(self, client: TestClient) -> None:
        response = client.get(BASE, params={"latest": "true"})
        assert [(r["entity_id"], r["time"]) for r in response.json()] == [
            ("S1", "2025-01-01T01:00:00Z"),
            ("S2", "2025-01-01T00:30:00Z"),
        ]

    def test_fields_projection(self, client: TestClient) -> None:
        response = client.get(BASE, params={"scale": "S2", "fields": "time,humidity"})
        assert response.json() == [{"time": "2025-01-01T00:30:00Z", "humidity": 61.2}]

    def test_daily_resolution(self, client: TestClient) -> None:
        response = client.get(BASE, params={"resolution": "daily"})
        assert response.json() == [
            {"entity_id": "S1", "time": "2025-01-01T00:00:00Z", "weight": 12.0}
        ]

    def test_csv_export(self, client: TestClient) -> None:
        response = client.get(
            BASE,
            params={"format": "csv", "scale": "S1", "start": "2025-01-01", "end": "2025-01-01T00:59:00Z"},
        )
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.headers["content-disposition"] == (
            'attachment; filename="scale-data_S1_hourly_2025-01-01_2025-01-01.csv"'
        )
        assert response.text == "entity_id,time,weight\nS1,2025-01-01T00:00:00Z,12.35\n"

    def test_csv_latest_filename(self, client: TestClient) -> None:
        response = client.get(BASE, params={"format": "csv", "latest": "true"})
        assert 'filename="scale-data_all_hourly_latest.csv"' in response.headers["content-disposition"]
        assert response.text.splitlines()[0] == "entity_id,time,humidity,temperature,weight"

    def test_invalid_resolution_is_400(self, client: TestClient) -> None:
        response = client.get(BASE, params={"resolution": "weekly"})
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid resolution (hourly|daily)"}

    def test_inverted_window_is_400(
        self, client: TestClient, store: FakeTelemetryStore
    ) -> None:
        response = client.get(BASE, params={"start": "2025-02-01", "end": "2025-01-01"})
        assert response.status_code == 400
        assert "error" in response.json()
        assert store.calls == []

    def test_invalid_date_is_400(self, client: TestClient) -> None:
        response = client.get(BASE, params={"start": "whenever"})
        assert response.status_code == 400

    def test_negative_limit_is_400(self, client: TestClient) -> None:
        response = client.get(BASE, params={"limit": -5})
        assert response.status_code == 400

    def test_non_numeric_limit_has_error_body(self, client: TestClient) -> None:
        response = client.get(BASE, params={"limit": "abc"})
        assert response.status_code == 400
        assert list(response.json()) == ["error"]
        assert "limit" in response.json()["error"]

    def test_invalid_format_is_400(self, client: TestClient) -> None:
        response = client.get(BASE, params={"format": "xml"})
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid format (json|csv)"}


class TestPerScaleRoutes:
    def test_range_for_one_scale(self, client: TestClient) -> None:
        response = client.get(f"{BASE}/S2")
        assert response.status_code == 200
        assert response.json() == [
            {"entity_id": "S2", "time": "2025-01-01T00:30:00Z", "humidity": 61.2}
        ]

    def test_latest_n_oldest_first(self, client: TestClient) -> None:
        response = client.get(f"{BASE}/S1/latest", params={"limit": 2})
        assert [r["time"] for r in response.json()] == [
            "2025-01-01T00:00:00Z",
            "2025-01-01T01:00:00Z",
        ]

    def test_latest_n_limit_bounds(self, client: TestClient) -> None:
        response = client.get(f"{BASE}/S1/latest", params={"limit": 0})
        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid 'limit'")

    def test_security_headers_present(self, client: TestClient) -> None:
        response = client.get(f"{BASE}/S1")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert "X-RateLimit-Limit" in response.headers
