"""Incident sync: fetch, thread, classify, geocode, and persist.

One ``IncidentSyncService`` exists per process (see ``AppContext``). It
refuses to start a cycle while another is running, isolates failures to
the incident that caused them, and finishes each cycle with a sweep that
retries geocoding for stored incidents still missing coordinates.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime, timedelta

import httpx

from pulsemap.geocoding.cache import NOT_FOUND
from pulsemap.geocoding.nominatim import GeocodingService
from pulsemap.incidents.classifier import classify_severity, classify_status
from pulsemap.incidents.models import IncidentDocument, IncidentUpdate, RawIncident
from pulsemap.incidents.store import IncidentStore
from pulsemap.incidents.threads import extract_thread_id
from pulsemap.politiloggen.client import PolitiloggenClient

logger = logging.getLogger(__name__)

DEFAULT_DISTRICT = "Oslo"
DEFAULT_DAYS_BACK = 7
BACKLOG_BATCH_SIZE = 50


@dataclass
class SyncResult:
    """Outcome of one sync cycle."""

    fetched: int = 0
    processed: int = 0
    errors: list[str] = field(default_factory=list)
    skipped: bool = False
    message: str = ""
    geocoded: int = 0  # Incidents newly geocoded by the backlog sweep

    @property
    def success(self) -> bool:
        return not self.skipped and not self.errors

    def to_dict(self) -> dict:
        return asdict(self)


class IncidentSyncService:
    """Run the ingestion pipeline against one feed, geocoder and store.

    The store must already be entered (``async with IncidentStore()``);
    the service never opens or closes its collaborators.
    """

    def __init__(
        self,
        feed: PolitiloggenClient,
        geocoder: GeocodingService,
        store: IncidentStore,
        *,
        district: str = DEFAULT_DISTRICT,
    ) -> None:
        self.feed = feed
        self.geocoder = geocoder
        self.store = store
        self.district = district  # Used when a record carries no district
        self._running = False
        self.last_sync: datetime | None = None
        self.last_result: SyncResult | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def sync_incidents(
        self, district: str = DEFAULT_DISTRICT, days_back: int = DEFAULT_DAYS_BACK
    ) -> SyncResult:
        """Sync the last ``days_back`` days of incidents for a district.

        Returns a skipped result immediately if a cycle is already running.
        Feed failures are reported in ``errors`` rather than raised.

        Raises:
            ValueError: On configuration errors
        """
        if self._running:
            logger.info("Sync already running, skipping")
            return SyncResult(skipped=True, message="Sync already running")
        self._running = True

        result = SyncResult()
        try:
            to = datetime.now(UTC)
            from_ = to - timedelta(days=days_back)

            try:
                incidents = await self.feed.fetch_incidents(district, from_, to)
            except httpx.HTTPError as exc:
                logger.error("Feed fetch failed for %s: %s", district, exc)
                result.errors.append(f"Sync error: {exc}")
                result.message = "Feed unavailable"
                return result

            result.fetched = len(incidents)
            logger.info(
                "Fetched %d incidents for %s (%s)", len(incidents), district, self.feed.last_source
            )

            for incident in incidents:
                try:
                    await self._process_incident(incident)
                    result.processed += 1
                except Exception as exc:
                    logger.exception("Failed to process incident %s", incident.id)
                    result.errors.append(f"Incident {incident.id}: {exc}")

            try:
                result.geocoded = await self.geocode_backlog()
            except Exception as exc:
                logger.exception("Backlog geocoding sweep failed")
                result.errors.append(f"Backlog error: {exc}")

            result.message = (
                f"Processed {result.processed}/{result.fetched} incidents"
                f" ({len(result.errors)} errors)"
            )
            logger.info("Sync complete: %s", result.message)
            return result
        finally:
            self._running = False
            self.last_sync = datetime.now(UTC)
            self.last_result = result

    async def _process_incident(self, incident: RawIncident) -> IncidentDocument:
        """Enrich and persist one incident, recording a thread update if needed."""
        thread_id = extract_thread_id(incident)
        existing_thread = await self.store.get_by_thread(thread_id)

        first_seen = await self.store.get(incident.id) is None

        severity = classify_severity(incident)
        status = classify_status(incident)
        geocode = await self.geocoder.resolve(
            incident.location, incident.district or self.district
        )

        doc = await self.store.upsert(
            incident,
            thread_id,
            geocode.coordinates,
            geocode.precision,
            severity,
            status,
        )
        if first_seen:
            # Later attempts are counted by the backlog sweep only
            doc = await self.store.update_geocode(doc.id, doc.coordinates, doc.precision) or doc

        if existing_thread:
            update = IncidentUpdate(
                id=incident.id,
                timestamp=incident.last_modified or incident.published,
                description=incident.description,
                status=incident.status,
            )
            if await self.store.append_update(incident.id, thread_id, update):
                logger.debug("Recorded update for thread %s from %s", thread_id, incident.id)

        return doc

    async def sync_incident_by_id(self, incident_id: str) -> IncidentDocument | None:
        """Fetch and process a single incident.

        Returns:
            The stored document with its thread updates, or None if the
            feed has no such incident
        """
        incident = await self.feed.fetch_incident_by_id(incident_id)
        if incident is None:
            logger.info("Incident %s not found in feed", incident_id)
            return None

        doc = await self._process_incident(incident)
        doc.updates = await self.store.get_thread_updates(doc.thread_id)
        return doc

    async def geocode_backlog(self, batch_size: int = BACKLOG_BATCH_SIZE) -> int:
        """Retry geocoding for stored incidents without coordinates.

        Every selected incident gets an attempt recorded, found or not.

        Returns:
            Number of incidents that gained coordinates
        """
        pending = await self.store.get_needing_geocode(batch_size)
        if not pending:
            return 0

        geocoded = 0
        for doc in pending:
            try:
                result = await self.geocoder.resolve(doc.location, doc.district or self.district)
            except Exception:
                logger.exception("Geocoding failed for incident %s", doc.id)
                result = NOT_FOUND

            await self.store.update_geocode(doc.id, result.coordinates, result.precision)
            if result.found:
                geocoded += 1

        logger.info("Backlog sweep: geocoded %d/%d incidents", geocoded, len(pending))
        return geocoded

    async def get_sync_stats(self) -> dict:
        """Summarize store counts, geocoder cache state and the last cycle."""
        stats = await self.store.get_stats()
        return {
            "incidents": stats.to_dict(),
            "geocodeCache": self.geocoder.cache_stats(),
            "syncRunning": self._running,
            "lastSync": self.last_sync.isoformat() if self.last_sync else None,
            "lastResult": self.last_result.to_dict() if self.last_result else None,
        }
