"""Shared pytest fixtures."""

import os
from datetime import UTC, datetime
from unittest.mock import patch

import pytest
import respx

from pulsemap.geocoding.nominatim import GeocodingService
from pulsemap.geocoding.rate_limit import RateLimiter
from pulsemap.incidents.models import RawIncident
from pulsemap.incidents.store import IncidentStore

NOMINATIM_URL = "https://nominatim.test"


class FakeClock:
    """Monotonic clock that only moves when told to (or when slept on)."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _make_incident(**overrides) -> RawIncident:
    """Build a RawIncident with sensible defaults."""
    defaults = {
        "id": "x1",
        "published": datetime(2026, 2, 12, 9, 30, tzinfo=UTC),
        "location": "Storgata 15",
        "district": "Oslo",
        "category": "Trafikkulykke",
        "title": "Trafikkulykke",
        "description": "Bil og sykkel kolliderte, syklist skadet",
    }
    defaults.update(overrides)
    return RawIncident(**defaults)


@pytest.fixture(autouse=True)
def _no_cosmos(monkeypatch):
    """Ensure the incident store runs in-memory and starts empty."""
    monkeypatch.setattr("pulsemap.incidents.store.load_dotenv", lambda: None)
    IncidentStore._memory.clear()
    IncidentStore._updates_memory.clear()
    with patch.dict(os.environ, {"COSMOS_ENDPOINT": "", "COSMOS_KEY": ""}, clear=False):
        yield
    IncidentStore._memory.clear()
    IncidentStore._updates_memory.clear()


@pytest.fixture
def make_incident():
    """Factory for RawIncident records."""
    return _make_incident


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def nominatim():
    """Mock the Nominatim API. Unmatched requests fail the test."""
    with respx.mock(base_url=NOMINATIM_URL, assert_all_called=False) as router:
        yield router


@pytest.fixture
async def geocoder(fake_clock):
    """Geocoding service against the mocked Nominatim, on a fake clock."""
    limiter = RateLimiter(1.0, clock=fake_clock, sleep=fake_clock.sleep)
    async with GeocodingService(
        NOMINATIM_URL, "PulseMapTests/1.0", rate_limiter=limiter
    ) as service:
        yield service


@pytest.fixture
async def store():
    async with IncidentStore() as incident_store:
        yield incident_store
