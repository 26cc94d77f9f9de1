"""Tests for the PulseMap HTTP API."""

from dataclasses import replace
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from starlette.testclient import TestClient

from pulsemap.core.config import PulseMapConfig
from pulsemap.incidents.store import IncidentStore
from pulsemap.politiloggen.client import PolitiloggenClient
from pulsemap.server import create_app


@pytest.fixture
def config():
    return PulseMapConfig(
        app_name="PulseMap",
        default_district="Oslo",
        politiloggen_use_mock=True,
        nominatim_api_url="https://nominatim.test",
        nominatim_user_agent="PulseMapTests/1.0",
        geocoder_min_interval=0,
        sync_interval_seconds=0,
    )


@pytest.fixture
def client(config, nominatim):
    nominatim.get("/search").mock(return_value=httpx.Response(200, json=[]))
    with TestClient(create_app(config)) as test_client:
        yield test_client


class TestSyncRoutes:
    def test_run_sync(self, client):
        response = client.post("/api/sync", json={"district": "Oslo", "daysBack": 7})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["result"]["fetched"] == 12
        assert data["result"]["processed"] == 12
        assert data["result"]["errors"] == []

    def test_defaults_from_config(self, client):
        response = client.post("/api/sync")
        assert response.status_code == 200
        assert response.json()["result"]["fetched"] == 12

    def test_unknown_district_fetches_nothing(self, client):
        response = client.post("/api/sync", json={"district": "Bergen"})
        assert response.json()["result"]["fetched"] == 0

    def test_invalid_json(self, client):
        response = client.post("/api/sync", content=b"{not json")
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_invalid_days_back(self, client):
        response = client.post("/api/sync", json={"daysBack": "week"})
        assert response.status_code == 400

    def test_stats(self, client):
        client.post("/api/sync")
        response = client.get("/api/sync")

        assert response.status_code == 200
        stats = response.json()["stats"]
        assert stats["incidents"]["total"] == 12
        assert stats["syncRunning"] is False
        assert stats["lastResult"]["processed"] == 12


class TestIncidentsRoute:
    def test_lists_newest_first(self, client):
        client.post("/api/sync")
        data = client.get("/api/incidents").json()

        assert data["success"] is True
        assert data["count"] == 12
        assert data["incidents"][0]["id"] == "mock-001"
        assert "threadId" in data["incidents"][0]

    def test_filters(self, client):
        client.post("/api/sync")

        data = client.get("/api/incidents", params={"categories": "Trafikkulykke"}).json()
        assert {i["id"] for i in data["incidents"]} == {"mock-001", "mock-007"}

        data = client.get(
            "/api/incidents", params={"categories": "Trafikkulykke,Ran", "districts": "Oslo"}
        ).json()
        assert data["count"] == 3

    def test_invalid_date(self, client):
        response = client.get("/api/incidents", params={"dateFrom": "last week"})
        assert response.status_code == 400

    def test_empty_store(self, client):
        assert client.get("/api/incidents").json()["count"] == 0


class TestHealth:
    def test_healthy(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["checks"] == {"store": True, "feed": True}
        assert data["errors"] == []

    def test_feed_down_is_degraded(self, client):
        with patch.object(PolitiloggenClient, "health_check", AsyncMock(return_value=False)):
            response = client.get("/api/health")
        assert response.status_code == 207
        assert response.json()["status"] == "degraded"

    def test_store_down(self, client):
        with patch.object(IncidentStore, "ping", AsyncMock(return_value=False)):
            response = client.get("/api/health")
        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "down"
        assert data["stats"] is None


class TestLifespan:
    def test_background_loop_started_when_enabled(self, config, nominatim):
        config = replace(config, sync_interval_seconds=60)
        with patch("pulsemap.server.incident_sync_loop", new_callable=AsyncMock) as mock_loop:
            with TestClient(create_app(config)):
                pass
        mock_loop.assert_called_once()
        assert mock_loop.call_args.args[1:] == ("Oslo", 7, 60)

    def test_background_loop_disabled(self, config, nominatim):
        with patch("pulsemap.server.incident_sync_loop", new_callable=AsyncMock) as mock_loop:
            with TestClient(create_app(config)):
                pass
        mock_loop.assert_not_called()
