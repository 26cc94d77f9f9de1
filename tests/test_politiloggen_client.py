"""Tests for pulsemap.politiloggen.client module."""

from datetime import UTC, datetime
from unittest.mock import patch

import httpx
import pytest
import respx
from tenacity import wait_none

from pulsemap.politiloggen.client import MAX_RETRIES, PolitiloggenClient

BASE_URL = "https://politiloggen.test/v1"
INCIDENTS_URL = f"{BASE_URL}/hendelser"


@pytest.fixture(autouse=True)
def _no_retry_wait():
    """Retry immediately instead of backing off."""
    with patch.object(PolitiloggenClient._request.retry, "wait", wait_none()):
        yield


def _record(incident_id: str, **overrides) -> dict:
    record = {
        "id": incident_id,
        "createdOn": "2026-02-12T09:30:00Z",
        "municipality": "Storgata 15",
        "district": "Oslo",
        "category": "Trafikkulykke",
        "text": "Syklist skadet",
    }
    record.update(overrides)
    return record


class TestInit:
    def test_requires_url_unless_mock(self):
        with pytest.raises(ValueError, match="POLITILOGGEN_API_URL"):
            PolitiloggenClient("")

    def test_mock_mode_needs_no_url(self):
        client = PolitiloggenClient(use_mock=True)
        assert client.use_mock

    def test_strips_trailing_slash(self):
        assert PolitiloggenClient(BASE_URL + "/").base_url == BASE_URL

    async def test_request_outside_context_manager(self):
        client = PolitiloggenClient(BASE_URL)
        with pytest.raises(RuntimeError, match="context manager"):
            await client.fetch_incidents("Oslo")


class TestMockMode:
    async def test_serves_mock_data_without_http(self):
        with respx.mock(assert_all_called=False) as router:
            async with PolitiloggenClient(use_mock=True) as feed:
                incidents = await feed.fetch_incidents("Oslo")
        assert len(incidents) == 12
        assert feed.last_source == "mock"
        assert not router.calls

    async def test_by_id(self):
        async with PolitiloggenClient(use_mock=True) as feed:
            incident = await feed.fetch_incident_by_id("mock-001")
            assert await feed.health_check() is True
        assert incident.location == "Storgata 15"


class TestFetchIncidents:
    @respx.mock
    async def test_sends_window_params(self):
        route = respx.get(INCIDENTS_URL).mock(
            return_value=httpx.Response(200, json=[_record("a")])
        )
        start = datetime(2026, 2, 5, tzinfo=UTC)
        end = datetime(2026, 2, 12, tzinfo=UTC)

        async with PolitiloggenClient(BASE_URL) as feed:
            incidents = await feed.fetch_incidents("Oslo", start, end)

        params = route.calls[0].request.url.params
        assert params["politidistrikt"] == "Oslo"
        assert params["fra"] == start.isoformat()
        assert params["til"] == end.isoformat()
        assert [i.id for i in incidents] == ["a"]
        assert feed.last_source == "live"

    @respx.mock
    async def test_envelope(self):
        respx.get(INCIDENTS_URL).mock(
            return_value=httpx.Response(200, json={"data": [_record("a"), _record("b")]})
        )
        async with PolitiloggenClient(BASE_URL) as feed:
            incidents = await feed.fetch_incidents("Oslo")
        assert [i.id for i in incidents] == ["a", "b"]

    @respx.mock
    async def test_follows_cursor(self):
        route = respx.get(INCIDENTS_URL).mock(
            side_effect=[
                httpx.Response(200, json={"items": [_record("a")], "nextCursor": "c2"}),
                httpx.Response(200, json={"items": [_record("b")]}),
            ]
        )
        async with PolitiloggenClient(BASE_URL) as feed:
            incidents = await feed.fetch_incidents("Oslo")

        assert [i.id for i in incidents] == ["a", "b"]
        assert route.call_count == 2
        assert route.calls[1].request.url.params["cursor"] == "c2"

    @respx.mock
    async def test_retries_server_errors(self):
        route = respx.get(INCIDENTS_URL).mock(
            side_effect=[httpx.Response(503), httpx.Response(200, json=[_record("a")])]
        )
        async with PolitiloggenClient(BASE_URL) as feed:
            incidents = await feed.fetch_incidents("Oslo")
        assert route.call_count == 2
        assert len(incidents) == 1

    @respx.mock
    async def test_gives_up_after_max_retries(self):
        route = respx.get(INCIDENTS_URL).mock(return_value=httpx.Response(429))
        async with PolitiloggenClient(BASE_URL) as feed:
            with pytest.raises(httpx.HTTPStatusError):
                await feed.fetch_incidents("Oslo")
        assert route.call_count == MAX_RETRIES

    @respx.mock
    async def test_client_error_not_retried(self):
        route = respx.get(INCIDENTS_URL).mock(return_value=httpx.Response(400))
        async with PolitiloggenClient(BASE_URL) as feed:
            with pytest.raises(httpx.HTTPStatusError):
                await feed.fetch_incidents("Oslo")
        assert route.call_count == 1

    @respx.mock
    async def test_invalid_json(self):
        respx.get(INCIDENTS_URL).mock(return_value=httpx.Response(200, text="<html>"))
        async with PolitiloggenClient(BASE_URL) as feed:
            with pytest.raises(httpx.DecodingError):
                await feed.fetch_incidents("Oslo")


class TestFallback:
    @respx.mock
    async def test_network_error_falls_back_to_mock(self, caplog):
        respx.get(INCIDENTS_URL).mock(side_effect=httpx.ConnectError("down"))
        async with PolitiloggenClient(BASE_URL, fallback_to_mock=True) as feed:
            incidents = await feed.fetch_incidents("Oslo")

        assert len(incidents) == 12
        assert feed.last_source == "fallback"
        assert "FALLBACK" in caplog.text

    @respx.mock
    async def test_without_fallback_raises(self):
        respx.get(INCIDENTS_URL).mock(side_effect=httpx.ConnectError("down"))
        async with PolitiloggenClient(BASE_URL) as feed:
            with pytest.raises(httpx.ConnectError):
                await feed.fetch_incidents("Oslo")

    @respx.mock
    async def test_fallback_applies_district_filter(self):
        respx.get(INCIDENTS_URL).mock(return_value=httpx.Response(500))
        async with PolitiloggenClient(BASE_URL, fallback_to_mock=True) as feed:
            assert await feed.fetch_incidents("Bergen") == []
        assert feed.last_source == "fallback"

    @respx.mock
    async def test_recovers_to_live(self):
        respx.get(INCIDENTS_URL).mock(
            side_effect=[
                httpx.ConnectError("down"),
                httpx.Response(200, json=[_record("a")]),
            ]
        )
        async with PolitiloggenClient(BASE_URL, fallback_to_mock=True) as feed:
            await feed.fetch_incidents("Oslo")
            assert feed.last_source == "fallback"
            incidents = await feed.fetch_incidents("Oslo")
        assert feed.last_source == "live"
        assert [i.id for i in incidents] == ["a"]


class TestFetchIncidentById:
    @respx.mock
    async def test_single_record(self):
        respx.get(f"{INCIDENTS_URL}/a").mock(return_value=httpx.Response(200, json=_record("a")))
        async with PolitiloggenClient(BASE_URL) as feed:
            incident = await feed.fetch_incident_by_id("a")
        assert incident.id == "a"
        assert incident.location == "Storgata 15"

    @respx.mock
    async def test_enveloped_record(self):
        respx.get(f"{INCIDENTS_URL}/a").mock(
            return_value=httpx.Response(200, json={"results": [_record("a")]})
        )
        async with PolitiloggenClient(BASE_URL) as feed:
            incident = await feed.fetch_incident_by_id("a")
        assert incident.id == "a"

    @respx.mock
    async def test_not_found(self):
        respx.get(f"{INCIDENTS_URL}/missing").mock(return_value=httpx.Response(404))
        async with PolitiloggenClient(BASE_URL, fallback_to_mock=True) as feed:
            assert await feed.fetch_incident_by_id("missing") is None
        assert feed.last_source == "live"

    @respx.mock
    async def test_failure_falls_back(self):
        respx.get(f"{INCIDENTS_URL}/mock-002").mock(side_effect=httpx.ReadTimeout("slow"))
        async with PolitiloggenClient(BASE_URL, fallback_to_mock=True) as feed:
            incident = await feed.fetch_incident_by_id("mock-002")
        assert incident.id == "mock-002"
        assert feed.last_source == "fallback"

    @respx.mock
    async def test_failure_without_fallback_raises(self):
        respx.get(f"{INCIDENTS_URL}/a").mock(return_value=httpx.Response(500))
        async with PolitiloggenClient(BASE_URL) as feed:
            with pytest.raises(httpx.HTTPStatusError):
                await feed.fetch_incident_by_id("a")


class TestHealthCheck:
    @respx.mock
    async def test_healthy(self):
        route = respx.get(INCIDENTS_URL).mock(return_value=httpx.Response(200, json=[]))
        async with PolitiloggenClient(BASE_URL) as feed:
            assert await feed.health_check() is True
        assert route.calls[0].request.url.params["limit"] == "1"

    @respx.mock
    async def test_network_error(self):
        respx.get(INCIDENTS_URL).mock(side_effect=httpx.ConnectError("down"))
        async with PolitiloggenClient(BASE_URL) as feed:
            assert await feed.health_check() is False

    @respx.mock
    async def test_server_error_not_retried(self):
        route = respx.get(INCIDENTS_URL).mock(return_value=httpx.Response(503))
        async with PolitiloggenClient(BASE_URL) as feed:
            assert await feed.health_check() is False
        assert route.call_count == 1
