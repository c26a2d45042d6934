"""Tests for the sync trigger endpoints and their cron-secret guard."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.config import Settings, get_settings
from src.telemetry.base import Resolution
from src.telemetry.errors import UpstreamFetchError
from src.telemetry.tests.conftest import FakeTelemetryStore, FakeUpstream

BASE = "/api/v1/sync"


class TestSyncEndpoints:
    @pytest.mark.parametrize("method", ["GET", "POST"])
    def test_hourly_report(
        self, client: TestClient, upstream: FakeUpstream, method: str
    ) -> None:
        upstream.responses[("S1", Resolution.hourly)] = [
            {"time": "2025-06-15T10:00:00Z", "weight": 20.0}
        ]
        response = client.request(method, f"{BASE}/hourly")

        assert response.status_code == 200
        body = response.json()
        assert body["mode"] == "hourly"
        assert body["succeeded"] == 2
        assert body["inserted"] == 1
        s1 = next(r for r in body["results"] if r["entity_id"] == "S1")
        assert s1["resolution"] == "hourly"
        assert s1["window"]["end"].startswith("2025-06-15T12:30:00")

    def test_per_scale_failure_is_still_200(
        self, client: TestClient, upstream: FakeUpstream
    ) -> None:
        upstream.responses[("S2", Resolution.daily)] = UpstreamFetchError("boom", status_code=502)
        response = client.post(f"{BASE}/daily")

        assert response.status_code == 200
        body = response.json()
        assert body["failed"] == 1
        s2 = next(r for r in body["results"] if r["entity_id"] == "S2")
        assert s2["status"] == "error"
        assert s2["error"] == "boom"

    def test_full_resync_single_scale(
        self, client: TestClient, store: FakeTelemetryStore, upstream: FakeUpstream
    ) -> None:
        store.seed(Resolution.hourly, "S9", {"time": "2025-04-01T00:00:00Z", "weight": 1.0})
        upstream.responses[("S9", Resolution.hourly)] = [
            {"time": "2025-06-01T00:00:00Z", "weight": 2.0}
        ]
        response = client.post(f"{BASE}/scales/S9/full")

        assert response.status_code == 200
        body = response.json()
        assert body["mode"] == "full"
        assert [r["resolution"] for r in body["results"]] == ["hourly", "daily"]
        assert body["results"][0]["deleted"] == 1
        assert [r["weight"] for r in store.rows(Resolution.hourly, "S9")] == [2.0]

    def test_full_resync_all(self, client: TestClient) -> None:
        body = client.post(f"{BASE}/full").json()
        assert sorted({r["entity_id"] for r in body["results"]}) == ["S1", "S2"]

    def test_full_resync_rejects_get(self, client: TestClient) -> None:
        response = client.get(f"{BASE}/full")
        assert response.status_code == 405
        assert response.json() == {"error": "Method Not Allowed"}


class TestCronGuard:
    @pytest.fixture
    def guarded_client(self, app: FastAPI, settings: Settings) -> TestClient:
        secured = settings.model_copy(update={"cron_secret": "s3cret"})
        app.dependency_overrides[get_settings] = lambda: secured
        return TestClient(app)

    def test_missing_token_rejected(self, guarded_client: TestClient) -> None:
        response = guarded_client.post(f"{BASE}/hourly")
        assert response.status_code == 401
        assert response.json() == {"error": "Not authenticated"}

    def test_wrong_token_rejected(self, guarded_client: TestClient) -> None:
        response = guarded_client.post(
            f"{BASE}/hourly", headers={"Authorization": "Bearer nope"}
        )
        assert response.status_code == 401

    def test_correct_token_accepted(self, guarded_client: TestClient) -> None:
        response = guarded_client.get(
            f"{BASE}/daily", headers={"Authorization": "Bearer s3cret"}
        )
        assert response.status_code == 200

    def test_read_api_is_not_guarded(self, guarded_client: TestClient) -> None:
        assert guarded_client.get("/api/v1/scale-data").status_code == 200

    def test_open_when_no_secret_configured(self, client: TestClient) -> None:
        assert client.post(f"{BASE}/hourly").status_code == 200
