"""Data models for Politiloggen incidents and their enriched documents."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field

Severity = Literal["critical", "high", "medium", "low", "info"]
IncidentStatus = Literal["active", "updated", "closed"]
LocationPrecision = Literal["exact", "street", "area", "district", "unknown"]


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse a feed timestamp to an aware UTC datetime, or None if empty.

    Naive timestamps are assumed to be UTC. Unparseable strings return None
    rather than raising so one malformed field never drops a record.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).strip())
        except ValueError:
            return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    try:
        return dt.astimezone(UTC)
    except OverflowError:
        return None


class Coordinates(BaseModel):
    """A WGS84 point in degrees."""

    lat: float
    lng: float


@dataclass(frozen=True)
class RawIncident:
    """One incident report as received from the Politiloggen feed.

    Built by ``pulsemap.politiloggen.normalize`` from whatever field names
    the feed used for this record.
    """

    id: str
    published: datetime
    location: str = ""
    district: str = ""
    category: str = "Ukjent"
    title: str = ""
    description: str = ""
    last_modified: datetime | None = None
    subcategory: str | None = None
    status: str | None = None
    group_id: str | None = None  # Explicit thread/group id, when the feed supplies one


class IncidentUpdate(BaseModel):
    """A recorded change to an already-known thread."""

    id: str
    """Incident id the update was recorded from."""

    timestamp: datetime
    """``last_modified`` of the report, or ``published`` when absent."""

    description: str = ""

    status: str | None = None


class IncidentDocument(BaseModel):
    """Enriched incident stored in Cosmos DB (or the in-memory store).

    The feed id is the document id, so re-syncing the same report
    updates this document instead of creating a new one.
    """

    id: str
    thread_id: str
    published: datetime
    last_modified: datetime | None = None
    location: str = ""
    district: str = ""
    category: str = "Ukjent"
    subcategory: str | None = None
    title: str = ""
    description: str = ""
    status: str | None = None

    coordinates: Coordinates | None = None
    precision: LocationPrecision = "unknown"
    severity: Severity = "info"
    incident_status: IncidentStatus = "active"
    geocoding_attempts: int = 0
    last_geocoded: datetime | None = None
    updates: list[IncidentUpdate] = []

    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_raw(
        cls,
        incident: RawIncident,
        *,
        thread_id: str,
        coordinates: Coordinates | None,
        precision: LocationPrecision,
        severity: Severity,
        incident_status: IncidentStatus,
    ) -> IncidentDocument:
        """Build a fresh document from a raw feed record and its enrichment."""
        return cls(
            id=incident.id,
            thread_id=thread_id,
            published=incident.published,
            last_modified=incident.last_modified,
            location=incident.location,
            district=incident.district,
            category=incident.category,
            subcategory=incident.subcategory,
            title=incident.title,
            description=incident.description,
            status=incident.status,
            coordinates=coordinates,
            precision=precision,
            severity=severity,
            incident_status=incident_status,
        )

    def to_cosmos(self) -> dict:
        """Serialize for Cosmos DB storage.

        ``updates`` live in their own container and are not embedded.
        """
        return self.model_dump(mode="json", exclude={"updates"})

    @classmethod
    def from_cosmos(cls, data: dict) -> IncidentDocument:
        """Deserialize from Cosmos DB document."""
        return cls.model_validate({k: v for k, v in data.items() if not k.startswith("_")})

    def to_dict(self) -> dict:
        """Convert to API output dict with camelCase keys for the map UI."""
        d = self.model_dump(mode="json")
        return {
            "id": d["id"],
            "threadId": d["thread_id"],
            "published": d["published"],
            "lastModified": d["last_modified"],
            "location": d["location"],
            "district": d["district"],
            "category": d["category"],
            "subcategory": d["subcategory"],
            "title": d["title"],
            "description": d["description"],
            "status": d["status"],
            "coordinates": d["coordinates"],
            "precision": d["precision"],
            "severity": d["severity"],
            "incidentStatus": d["incident_status"],
            "geocodingAttempts": d["geocoding_attempts"],
            "lastGeocoded": d["last_geocoded"],
            "updates": d["updates"],
        }


@dataclass
class IncidentStats:
    """Aggregate counts over stored incidents."""

    total: int = 0
    active: int = 0
    geocoded: int = 0
    needs_geocode: int = 0

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "active": self.active,
            "geocoded": self.geocoded,
            "needsGeocode": self.needs_geocode,
        }


@dataclass
class IncidentFilters:
    """Filters for listing stored incidents. Empty lists mean no filter."""

    categories: list[str] = field(default_factory=list)
    statuses: list[str] = field(default_factory=list)
    severities: list[str] = field(default_factory=list)
    precisions: list[str] = field(default_factory=list)
    districts: list[str] = field(default_factory=list)
    date_from: datetime | None = None
    date_to: datetime | None = None

    def matches(self, doc: IncidentDocument) -> bool:
        """Check whether a document passes every active filter."""
        if self.categories and doc.category not in self.categories:
            return False
        if self.statuses and doc.incident_status not in self.statuses:
            return False
        if self.severities and doc.severity not in self.severities:
            return False
        if self.precisions and doc.precision not in self.precisions:
            return False
        if self.districts and doc.district not in self.districts:
            return False
        if self.date_from and doc.published < self.date_from:
            return False
        return not (self.date_to and doc.published > self.date_to)
