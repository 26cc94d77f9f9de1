"""Nominatim (OpenStreetMap) geocoding with caching and rate limiting.

Nominatim's usage policy allows at most one request per second and
requires an identifying User-Agent. Every outbound request goes through
a single ``RateLimiter`` per service instance; ``AppContext`` creates one
instance per process so the limit holds across all callers.
"""

import logging
import re
from collections.abc import Iterable
from typing import Self

import httpx

from pulsemap.geocoding.cache import NOT_FOUND, GeocodeCache, GeocodeResult
from pulsemap.geocoding.rate_limit import RateLimiter
from pulsemap.incidents.models import Coordinates, LocationPrecision

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 5.0

_STREET_WORDS_RE = re.compile(r"(gate|vei|veien|plass|allé|gata|street|road)", re.IGNORECASE)
_NUMBER_RE = re.compile(r"\d+")

BUILDING_TYPES = frozenset({"house", "building", "residential"})
AREA_TYPES = frozenset({"neighbourhood", "suburb", "quarter"})
DISTRICT_TYPES = frozenset({"city_district", "district", "municipality"})


def determine_precision(result: dict, location: str) -> LocationPrecision:
    """Pick a precision tier from the search hit and the original text.

    Rules are applied in order:

    1. Street word and a number: ``exact`` for building-like hits, else ``street``
    2. Street word only: ``street``
    3. Neighbourhood/suburb/quarter hit, or any ``place`` class: ``area``
    4. City district/municipality hit: ``district``
    5. Very short text (< 10 chars or <= 2 words): ``district``
    6. Anything else: ``area``
    """
    text = location.lower()
    has_number = bool(_NUMBER_RE.search(text))
    has_street_word = bool(_STREET_WORDS_RE.search(text))
    place_type = result.get("type", "")
    place_class = result.get("class", "")

    if has_number and has_street_word:
        return "exact" if place_type in BUILDING_TYPES else "street"

    if has_street_word:
        return "street"

    if place_type in AREA_TYPES or place_class == "place":
        return "area"

    if place_type in DISTRICT_TYPES:
        return "district"

    if len(text) < 10 or len(text.split(" ")) <= 2:
        return "district"

    return "area"


class GeocodingService:
    """Resolve free-text locations to coordinates via Nominatim.

    Usage::

        async with GeocodingService(base_url, user_agent) as geocoder:
            result = await geocoder.resolve("Storgata 15", "Oslo")
    """

    def __init__(
        self,
        base_url: str,
        user_agent: str,
        *,
        country: str = "Norway",
        min_interval: float = 1.0,
        cache: GeocodeCache | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        """Validate configuration. Call ``__aenter__`` to open the HTTP client.

        Raises:
            ValueError: If the base URL or User-Agent is missing
        """
        if not base_url:
            raise ValueError("Nominatim base URL not set. Required: NOMINATIM_API_URL")
        if not user_agent:
            raise ValueError("Nominatim User-Agent not set. Required: NOMINATIM_USER_AGENT")

        self.base_url = base_url.rstrip("/")
        self.user_agent = user_agent
        self.country = country
        self.cache = cache if cache is not None else GeocodeCache()
        self.rate_limiter = rate_limiter or RateLimiter(min_interval)
        self.client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> Self:
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=REQUEST_TIMEOUT,
            headers={"User-Agent": self.user_agent, "Accept": "application/json"},
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.client:
            await self.client.aclose()
            self.client = None

    async def _get_json(self, path: str, params: dict) -> object:
        """Rate-limited GET returning the decoded JSON payload."""
        if not self.client:
            raise RuntimeError("Client must be used as context manager")

        async with self.rate_limiter:
            response = await self.client.get(path, params=params)
        response.raise_for_status()
        return response.json()

    async def resolve(self, location: str, district: str = "Oslo") -> GeocodeResult:
        """Resolve a location within a district to coordinates and precision.

        Never raises for lookups that fail: not-found, network errors,
        timeouts and bad responses all return ``NOT_FOUND`` and are cached.
        Cache hits skip the rate limiter entirely.
        """
        cached = self.cache.get(location, district)
        if cached is not None:
            return cached

        query = f"{location}, {district}, {self.country}"
        try:
            data = await self._get_json(
                "/search",
                {"q": query, "format": "json", "addressdetails": 1, "limit": 1},
            )
            result = self._parse_search(data, location)
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as exc:
            logger.warning("Geocoding failed for %r: %s", query, exc)
            result = NOT_FOUND

        if not result.found:
            logger.info("No geocoding match for %r", query)
        self.cache.set(location, district, result)
        return result

    @staticmethod
    def _parse_search(data: object, location: str) -> GeocodeResult:
        if not isinstance(data, list) or not data:
            return NOT_FOUND

        hit = data[0]
        coordinates = Coordinates(lat=float(hit["lat"]), lng=float(hit["lon"]))
        return GeocodeResult(coordinates=coordinates, precision=determine_precision(hit, location))

    async def resolve_many(self, pairs: Iterable[tuple[str, str]]) -> list[GeocodeResult]:
        """Resolve several ``(location, district)`` pairs one at a time."""
        return [await self.resolve(location, district) for location, district in pairs]

    async def reverse(self, lat: float, lng: float) -> str | None:
        """Reverse geocode coordinates to a display address, or None."""
        try:
            data = await self._get_json(
                "/reverse",
                {"lat": lat, "lon": lng, "format": "json", "addressdetails": 1},
            )
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Reverse geocoding failed for (%.6f, %.6f): %s", lat, lng, exc)
            return None

        if isinstance(data, dict):
            return data.get("display_name") or None
        return None

    def clear_cache(self) -> None:
        self.cache.clear()

    def cache_stats(self) -> dict:
        return self.cache.stats()
