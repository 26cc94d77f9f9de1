"""Async Cosmos DB operations for enriched incident documents.

Incidents are keyed by their Politiloggen id, so syncing the same report
again updates the stored document instead of duplicating it. Thread
updates live in a second container keyed by ``(incident id, timestamp)``
so replays never record the same update twice.

When ``COSMOS_ENDPOINT`` is not set, falls back to an in-memory store
for local development and testing.
"""

import logging
import os
from datetime import UTC, datetime, timedelta
from typing import ClassVar, Self

from dotenv import load_dotenv

from pulsemap.core.config import get_cosmos_database
from pulsemap.incidents.models import (
    Coordinates,
    IncidentDocument,
    IncidentFilters,
    IncidentStats,
    IncidentStatus,
    IncidentUpdate,
    LocationPrecision,
    RawIncident,
    Severity,
)

logger = logging.getLogger(__name__)

CONTAINER_NAME = "incidents"
UPDATES_CONTAINER_NAME = "incident-updates"

# Backlog sweep selection
MAX_GEOCODE_ATTEMPTS = 3
GEOCODE_RETRY_COOLDOWN = timedelta(days=1)

LIST_LIMIT = 1000


def _cosmos_time(dt: datetime) -> str:
    """Format a datetime the way pydantic serializes it into documents."""
    return dt.astimezone(UTC).isoformat().replace("+00:00", "Z")


def _update_doc_id(incident_id: str, timestamp: datetime) -> str:
    return f"{incident_id}|{_cosmos_time(timestamp)}"


def _needs_geocode(doc: IncidentDocument, cutoff: datetime) -> bool:
    return (
        doc.coordinates is None
        and doc.geocoding_attempts < MAX_GEOCODE_ATTEMPTS
        and (doc.last_geocoded is None or doc.last_geocoded < cutoff)
    )


class IncidentStore:
    """Async CRUD for incident documents in Cosmos DB.

    Falls back to in-memory storage when Cosmos DB is not configured.

    Usage::

        async with IncidentStore() as store:
            doc = await store.get("incident-id")
            stats = await store.get_stats()
    """

    # Shared in-memory store across instances (persists for process lifetime)
    _memory: ClassVar[dict[str, dict]] = {}
    _updates_memory: ClassVar[dict[str, dict]] = {}

    def __init__(self) -> None:
        """Initialize store. Call ``__aenter__`` to connect."""
        self._client = None
        self._container = None
        self._updates_container = None
        self._credential = None
        self._in_memory = False

    async def __aenter__(self) -> Self:
        """Connect to Cosmos DB, or fall back to in-memory mode."""
        load_dotenv()

        endpoint = os.getenv("COSMOS_ENDPOINT")
        key = os.getenv("COSMOS_KEY")

        if endpoint and key:
            from azure.cosmos.aio import CosmosClient

            self._client = CosmosClient(endpoint, credential=key)
        elif endpoint:
            from azure.cosmos.aio import CosmosClient
            from azure.identity.aio import DefaultAzureCredential

            self._credential = DefaultAzureCredential()
            self._client = CosmosClient(endpoint, credential=self._credential)
        else:
            logger.warning("No COSMOS_ENDPOINT set, using in-memory incident store (dev only)")
            self._in_memory = True
            return self

        database = self._client.get_database_client(get_cosmos_database())
        self._container = database.get_container_client(CONTAINER_NAME)
        self._updates_container = database.get_container_client(UPDATES_CONTAINER_NAME)
        logger.info("Connected to Cosmos DB: %s/%s", get_cosmos_database(), CONTAINER_NAME)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Close connections."""
        if self._client:
            await self._client.close()
            self._client = None
        if self._credential:
            await self._credential.close()
            self._credential = None
        self._container = None
        self._updates_container = None

    @property
    def in_memory(self) -> bool:
        return self._in_memory

    # ------------------------------------------------------------------
    # Core CRUD
    # ------------------------------------------------------------------

    async def get(self, incident_id: str) -> IncidentDocument | None:
        """Point-read an incident by its feed id."""
        if self._in_memory:
            data = self._memory.get(incident_id)
            return IncidentDocument.from_cosmos(data) if data else None

        from azure.cosmos.exceptions import CosmosResourceNotFoundError

        try:
            result = await self._container.read_item(item=incident_id, partition_key=incident_id)
        except CosmosResourceNotFoundError:
            return None
        return IncidentDocument.from_cosmos(result)

    async def _write(self, doc: IncidentDocument) -> IncidentDocument:
        if self._in_memory:
            self._memory[doc.id] = doc.to_cosmos()
            return doc

        result = await self._container.upsert_item(body=doc.to_cosmos())
        return IncidentDocument.from_cosmos(result)

    async def upsert(
        self,
        incident: RawIncident,
        thread_id: str,
        coordinates: Coordinates | None,
        precision: LocationPrecision,
        severity: Severity,
        incident_status: IncidentStatus,
    ) -> IncidentDocument:
        """Insert a new incident or update the stored one with the same id.

        On update, the mutable report fields and the enrichment are
        replaced; ``thread_id``, ``created_at``, ``geocoding_attempts`` and
        ``last_geocoded`` are kept. Previously resolved coordinates are
        kept when this resolution found none.

        Returns:
            The stored document
        """
        existing = await self.get(incident.id)

        if existing is None:
            doc = IncidentDocument.from_raw(
                incident,
                thread_id=thread_id,
                coordinates=coordinates,
                precision=precision,
                severity=severity,
                incident_status=incident_status,
            )
        else:
            doc = existing.model_copy(
                update={
                    "last_modified": incident.last_modified,
                    "description": incident.description,
                    "status": incident.status,
                    "severity": severity,
                    "incident_status": incident_status,
                    "updated_at": datetime.now(UTC),
                }
            )
            if coordinates is not None or existing.coordinates is None:
                doc.coordinates = coordinates
                doc.precision = precision

        stored = await self._write(doc)
        logger.debug("Upserted incident %s (thread %s)", doc.id, thread_id)
        return stored

    # ------------------------------------------------------------------
    # Threads
    # ------------------------------------------------------------------

    async def get_by_thread(self, thread_id: str) -> list[IncidentDocument]:
        """List the incidents in a thread, oldest publication first."""
        if self._in_memory:
            docs = [
                IncidentDocument.from_cosmos(data)
                for data in self._memory.values()
                if data.get("thread_id") == thread_id
            ]
            docs.sort(key=lambda d: d.published)
            return docs

        query = "SELECT * FROM c WHERE c.thread_id = @thread_id ORDER BY c.published ASC"
        parameters = [{"name": "@thread_id", "value": thread_id}]
        return [
            IncidentDocument.from_cosmos(item)
            async for item in self._container.query_items(query=query, parameters=parameters)
        ]

    async def append_update(
        self, incident_id: str, thread_id: str, update: IncidentUpdate
    ) -> bool:
        """Record a thread update, ignoring replays of the same one.

        Returns:
            True if the update was new, False if it was already recorded
        """
        doc_id = _update_doc_id(incident_id, update.timestamp)
        body = {
            **update.model_dump(mode="json"),
            "id": doc_id,
            "incident_id": incident_id,
            "thread_id": thread_id,
        }

        if self._in_memory:
            if doc_id in self._updates_memory:
                return False
            self._updates_memory[doc_id] = body
            return True

        from azure.cosmos.exceptions import CosmosResourceExistsError

        try:
            await self._updates_container.create_item(body=body)
        except CosmosResourceExistsError:
            logger.debug("Update %s already recorded", doc_id)
            return False
        return True

    async def get_thread_updates(self, thread_id: str) -> list[IncidentUpdate]:
        """List recorded updates for a thread, oldest first."""
        if self._in_memory:
            rows = [r for r in self._updates_memory.values() if r["thread_id"] == thread_id]
        else:
            query = "SELECT * FROM c WHERE c.thread_id = @thread_id"
            parameters = [{"name": "@thread_id", "value": thread_id}]
            rows = [
                item
                async for item in self._updates_container.query_items(
                    query=query, parameters=parameters, partition_key=thread_id
                )
            ]

        updates = [
            IncidentUpdate(
                id=r["incident_id"],
                timestamp=r["timestamp"],
                description=r.get("description", ""),
                status=r.get("status"),
            )
            for r in rows
        ]
        updates.sort(key=lambda u: u.timestamp)
        return updates

    # ------------------------------------------------------------------
    # Geocoding backlog
    # ------------------------------------------------------------------

    async def get_needing_geocode(
        self, limit: int = 100, *, now: datetime | None = None
    ) -> list[IncidentDocument]:
        """List incidents the backlog sweep should retry, newest first.

        Selects incidents without coordinates that have fewer than
        ``MAX_GEOCODE_ATTEMPTS`` attempts and were never geocoded or
        last tried more than ``GEOCODE_RETRY_COOLDOWN`` ago.
        """
        cutoff = (now or datetime.now(UTC)) - GEOCODE_RETRY_COOLDOWN

        if self._in_memory:
            docs = [IncidentDocument.from_cosmos(data) for data in self._memory.values()]
            docs = [d for d in docs if _needs_geocode(d, cutoff)]
            docs.sort(key=lambda d: d.published, reverse=True)
            return docs[:limit]

        query = (
            "SELECT * FROM c "
            "WHERE IS_NULL(c.coordinates) AND c.geocoding_attempts < @max_attempts "
            "AND (IS_NULL(c.last_geocoded) OR c.last_geocoded < @cutoff) "
            "ORDER BY c.published DESC OFFSET 0 LIMIT @limit"
        )
        parameters = [
            {"name": "@max_attempts", "value": MAX_GEOCODE_ATTEMPTS},
            {"name": "@cutoff", "value": _cosmos_time(cutoff)},
            {"name": "@limit", "value": limit},
        ]
        return [
            IncidentDocument.from_cosmos(item)
            async for item in self._container.query_items(query=query, parameters=parameters)
        ]

    async def update_geocode(
        self,
        incident_id: str,
        coordinates: Coordinates | None,
        precision: LocationPrecision,
    ) -> IncidentDocument | None:
        """Record a geocoding attempt for an incident.

        Always increments ``geocoding_attempts`` and stamps
        ``last_geocoded``. Coordinates are only written when found, so a
        failed attempt never erases an earlier success.

        Returns:
            The updated document, or None if the incident does not exist
        """
        now = datetime.now(UTC)

        if self._in_memory:
            data = self._memory.get(incident_id)
            if data is None:
                return None
            doc = IncidentDocument.from_cosmos(data)
            doc.geocoding_attempts += 1
            doc.last_geocoded = now
            if coordinates is not None:
                doc.coordinates = coordinates
                doc.precision = precision
            elif doc.coordinates is None:
                doc.precision = precision
            self._memory[incident_id] = doc.to_cosmos()
            return doc

        from azure.cosmos.exceptions import CosmosResourceNotFoundError

        operations: list[dict] = [
            {"op": "incr", "path": "/geocoding_attempts", "value": 1},
            {"op": "set", "path": "/last_geocoded", "value": _cosmos_time(now)},
        ]
        if coordinates is not None:
            operations.append(
                {"op": "set", "path": "/coordinates", "value": coordinates.model_dump()}
            )
            operations.append({"op": "set", "path": "/precision", "value": precision})
        else:
            current = await self.get(incident_id)
            if current is None:
                return None
            if current.coordinates is None:
                operations.append({"op": "set", "path": "/precision", "value": precision})

        try:
            result = await self._container.patch_item(
                item=incident_id,
                partition_key=incident_id,
                patch_operations=operations,
            )
        except CosmosResourceNotFoundError:
            return None
        return IncidentDocument.from_cosmos(result)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_stats(self) -> IncidentStats:
        """Count total, active, geocoded and still-geocodable incidents."""
        if self._in_memory:
            docs = [IncidentDocument.from_cosmos(data) for data in self._memory.values()]
            return IncidentStats(
                total=len(docs),
                active=sum(1 for d in docs if d.incident_status == "active"),
                geocoded=sum(1 for d in docs if d.coordinates is not None),
                needs_geocode=sum(
                    1
                    for d in docs
                    if d.coordinates is None and d.geocoding_attempts < MAX_GEOCODE_ATTEMPTS
                ),
            )

        async def _count(where: str, parameters: list[dict] | None = None) -> int:
            query = f"SELECT VALUE COUNT(1) FROM c WHERE {where}"
            async for value in self._container.query_items(
                query=query, parameters=parameters or []
            ):
                return int(value)
            return 0

        return IncidentStats(
            total=await _count("true"),
            active=await _count("c.incident_status = 'active'"),
            geocoded=await _count("NOT IS_NULL(c.coordinates)"),
            needs_geocode=await _count(
                "IS_NULL(c.coordinates) AND c.geocoding_attempts < @max_attempts",
                [{"name": "@max_attempts", "value": MAX_GEOCODE_ATTEMPTS}],
            ),
        )

    async def list_incidents(
        self, filters: IncidentFilters | None = None, *, limit: int = LIST_LIMIT
    ) -> list[IncidentDocument]:
        """List incidents matching the filters, newest first."""
        filters = filters or IncidentFilters()

        if self._in_memory:
            docs = [IncidentDocument.from_cosmos(data) for data in self._memory.values()]
            docs = [d for d in docs if filters.matches(d)]
            docs.sort(key=lambda d: d.published, reverse=True)
            return docs[:limit]

        clauses = ["true"]
        parameters: list[dict] = []
        for name, field, values in (
            ("@categories", "category", filters.categories),
            ("@statuses", "incident_status", filters.statuses),
            ("@severities", "severity", filters.severities),
            ("@precisions", "precision", filters.precisions),
            ("@districts", "district", filters.districts),
        ):
            if values:
                clauses.append(f"ARRAY_CONTAINS({name}, c.{field})")
                parameters.append({"name": name, "value": list(values)})
        if filters.date_from:
            clauses.append("c.published >= @date_from")
            parameters.append({"name": "@date_from", "value": _cosmos_time(filters.date_from)})
        if filters.date_to:
            clauses.append("c.published <= @date_to")
            parameters.append({"name": "@date_to", "value": _cosmos_time(filters.date_to)})

        query = (
            f"SELECT * FROM c WHERE {' AND '.join(clauses)} "
            "ORDER BY c.published DESC OFFSET 0 LIMIT @limit"
        )
        parameters.append({"name": "@limit", "value": limit})
        return [
            IncidentDocument.from_cosmos(item)
            async for item in self._container.query_items(query=query, parameters=parameters)
        ]

    async def ping(self) -> bool:
        """Check that the backing store answers a trivial query."""
        if self._in_memory:
            return True

        try:
            async for _ in self._container.query_items(
                query="SELECT VALUE 1 FROM c OFFSET 0 LIMIT 1"
            ):
                break
        except Exception as exc:
            logger.warning("Incident store ping failed: %s", exc)
            return False
        return True
