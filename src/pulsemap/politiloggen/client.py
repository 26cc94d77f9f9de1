"""Politiloggen (Norwegian police log) API client."""

import logging
from datetime import datetime
from typing import Literal, Self

import httpx
from tenacity import (
    RetryError,
    retry,
    retry_if_result,
    stop_after_attempt,
    wait_exponential_jitter,
)

from pulsemap.incidents.models import RawIncident
from pulsemap.politiloggen.mock_data import get_mock_incident_by_id, get_mock_incidents
from pulsemap.politiloggen.normalize import (
    ENVELOPE_KEYS,
    next_cursor,
    normalize_incident,
    normalize_records,
)

logger = logging.getLogger(__name__)

FeedSource = Literal["live", "mock", "fallback"]

# Retry configuration
MAX_RETRIES = 3
MIN_WAIT_SECONDS = 1
MAX_WAIT_SECONDS = 15
REQUEST_TIMEOUT = 10.0
MAX_PAGES = 50

INCIDENTS_PATH = "/hendelser"


def _is_retryable(response: httpx.Response) -> bool:
    """Check if response indicates throttling or a server-side failure."""
    return response.status_code == 429 or response.status_code >= 500


def _log_retry(retry_state) -> None:
    """Log retry attempts."""
    logger.warning("Politiloggen request failed, retry attempt %d", retry_state.attempt_number)


class PolitiloggenClient:
    """Client for the Politiloggen incident feed.

    With ``use_mock=True`` every call is served from the bundled mock
    data. With ``fallback_to_mock=True`` a failed live call is served
    from mock data for that call only; ``last_source`` records which
    source answered the most recent fetch.

    Usage::

        async with PolitiloggenClient(base_url) as feed:
            incidents = await feed.fetch_incidents("Oslo", start, end)
    """

    def __init__(
        self,
        base_url: str = "",
        *,
        use_mock: bool = False,
        fallback_to_mock: bool = False,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        """Validate configuration. Call ``__aenter__`` to open the HTTP client.

        Raises:
            ValueError: If no base URL is given and mock mode is off
        """
        if not base_url and not use_mock:
            raise ValueError("Politiloggen API URL not set. Required: POLITILOGGEN_API_URL")

        self.base_url = base_url.rstrip("/")
        self.use_mock = use_mock
        self.fallback_to_mock = fallback_to_mock
        self.timeout = timeout
        self.client: httpx.AsyncClient | None = None
        self.last_source: FeedSource | None = None

    async def __aenter__(self) -> Self:
        if not self.use_mock:
            self.client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={"Accept": "application/json", "User-Agent": "PulseMap/1.0"},
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.client:
            await self.client.aclose()
            self.client = None

    @retry(
        retry=retry_if_result(_is_retryable),
        stop=stop_after_attempt(MAX_RETRIES),
        wait=wait_exponential_jitter(initial=MIN_WAIT_SECONDS, max=MAX_WAIT_SECONDS),
        before_sleep=_log_retry,
    )
    async def _request(self, path: str, params: dict | None = None) -> httpx.Response:
        """GET with exponential backoff on 429 and 5xx responses."""
        if not self.client:
            raise RuntimeError("Client must be used as context manager")
        return await self.client.get(path, params=params)

    async def _get_json(self, path: str, params: dict | None = None) -> object:
        """GET a path and decode JSON, raising ``httpx.HTTPError`` on failure."""
        try:
            response = await self._request(path, params)
        except RetryError as exc:
            logger.error("Politiloggen request to %s failed after %d attempts", path, MAX_RETRIES)
            response = exc.last_attempt.result()

        response.raise_for_status()
        try:
            return response.json()
        except ValueError as exc:
            raise httpx.DecodingError(f"Invalid JSON from {path}", request=response.request) from exc

    async def _fetch_live(
        self, district: str | None, from_: datetime | None, to: datetime | None
    ) -> list[RawIncident]:
        params: dict[str, str] = {}
        if district:
            params["politidistrikt"] = district
        if from_:
            params["fra"] = from_.isoformat()
        if to:
            params["til"] = to.isoformat()

        incidents: list[RawIncident] = []
        cursor: str | None = None
        for _ in range(MAX_PAGES):
            page_params = {**params, "cursor": cursor} if cursor else params
            payload = await self._get_json(INCIDENTS_PATH, page_params)
            page = normalize_records(payload)
            incidents.extend(page)
            cursor = next_cursor(payload)
            if not cursor or not page:
                break
        else:
            logger.warning("Stopped paging Politiloggen after %d pages", MAX_PAGES)

        return incidents

    async def fetch_incidents(
        self,
        district: str | None = None,
        from_: datetime | None = None,
        to: datetime | None = None,
    ) -> list[RawIncident]:
        """Fetch incidents for a district within ``[from_, to]``.

        Raises:
            httpx.HTTPError: If the live feed fails and fallback is disabled
        """
        if self.use_mock:
            self.last_source = "mock"
            incidents = get_mock_incidents(district, from_, to)
            logger.info("Serving %d mock incidents (mock mode)", len(incidents))
            return incidents

        try:
            incidents = await self._fetch_live(district, from_, to)
        except httpx.HTTPError as exc:
            if not self.fallback_to_mock:
                raise
            self.last_source = "fallback"
            incidents = get_mock_incidents(district, from_, to)
            logger.warning(
                "Politiloggen fetch failed (%s); serving %d mock incidents as FALLBACK",
                exc,
                len(incidents),
            )
            return incidents

        self.last_source = "live"
        logger.info("Fetched %d incidents from Politiloggen", len(incidents))
        return incidents

    async def fetch_incident_by_id(self, incident_id: str) -> RawIncident | None:
        """Fetch a single incident, or None if the feed has no such id.

        Raises:
            httpx.HTTPError: If the live feed fails and fallback is disabled
        """
        if self.use_mock:
            self.last_source = "mock"
            return get_mock_incident_by_id(incident_id)

        try:
            payload = await self._get_json(f"{INCIDENTS_PATH}/{incident_id}")
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 404:
                self.last_source = "live"
                return None
            return self._fallback_by_id(incident_id, exc)
        except httpx.HTTPError as exc:
            return self._fallback_by_id(incident_id, exc)

        self.last_source = "live"
        if isinstance(payload, dict) and not any(
            isinstance(payload.get(key), list) for key in ENVELOPE_KEYS
        ):
            return normalize_incident(payload)
        records = normalize_records(payload)
        return records[0] if records else None

    def _fallback_by_id(self, incident_id: str, exc: httpx.HTTPError) -> RawIncident | None:
        if not self.fallback_to_mock:
            raise exc
        self.last_source = "fallback"
        logger.warning("Politiloggen fetch of %s failed (%s); using mock FALLBACK", incident_id, exc)
        return get_mock_incident_by_id(incident_id)

    async def health_check(self) -> bool:
        """Probe the feed with one unretried request. Never raises once the client is open."""
        if self.use_mock:
            return True
        if not self.client:
            raise RuntimeError("Client must be used as context manager")

        try:
            response = await self.client.get(INCIDENTS_PATH, params={"limit": 1})
        except Exception as exc:
            logger.warning("Politiloggen health check failed: %s", exc)
            return False
        return response.status_code == 200
