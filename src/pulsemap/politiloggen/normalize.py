"""Normalize Politiloggen records across the feed's schema revisions.

The feed has renamed fields more than once. ``FIELD_ALIASES`` lists, for
each ``RawIncident`` field, every key it has been seen under, newest
first. The first key present with a non-empty value wins.
"""

import logging

from pulsemap.incidents.models import RawIncident, parse_timestamp

logger = logging.getLogger(__name__)

FIELD_ALIASES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("id", ("id", "hendelseid", "incident_id")),
    ("published", ("published", "publisert", "createdOn", "timestamp")),
    ("last_modified", ("lastModified", "sistEndret", "updatedOn", "last_modified")),
    ("location", ("location", "lokasjon", "municipality", "sted")),
    ("district", ("district", "politidistrikt", "distrikt")),
    ("category", ("category", "kategori", "type")),
    ("subcategory", ("subcategory", "underkategori")),
    ("title", ("title", "tittel", "overskrift")),
    ("description", ("description", "beskrivelse", "text", "tekst")),
    ("status", ("status", "statusText")),
    ("group_id", ("threadId", "thread_id", "gruppeId")),
)

# Keys under which a response envelope may wrap the list of records
ENVELOPE_KEYS = ("results", "hendelser", "messages", "data", "items")

DEFAULT_CATEGORY = "Ukjent"


def _first_value(raw: dict, keys: tuple[str, ...]) -> object | None:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return value
    return None


def _as_text(value: object | None) -> str | None:
    if value is None:
        return None
    return str(value).strip()


def normalize_incident(raw: dict) -> RawIncident | None:
    """Map one feed record onto ``RawIncident``.

    Returns:
        The normalized incident, or None if the record has no id or no
        parseable publication time
    """
    fields = {name: _first_value(raw, keys) for name, keys in FIELD_ALIASES}

    incident_id = _as_text(fields["id"])
    if not incident_id:
        logger.warning("Skipping feed record without an id: keys=%s", sorted(raw))
        return None

    published = parse_timestamp(_as_text(fields["published"]))
    if published is None:
        logger.warning("Skipping feed record %s without a valid publication time", incident_id)
        return None

    return RawIncident(
        id=incident_id,
        published=published,
        last_modified=parse_timestamp(_as_text(fields["last_modified"])),
        location=_as_text(fields["location"]) or "",
        district=_as_text(fields["district"]) or "",
        category=_as_text(fields["category"]) or DEFAULT_CATEGORY,
        subcategory=_as_text(fields["subcategory"]),
        title=_as_text(fields["title"]) or "",
        description=_as_text(fields["description"]) or "",
        status=_as_text(fields["status"]),
        group_id=_as_text(fields["group_id"]),
    )


def unwrap_records(payload: object) -> list[dict]:
    """Extract the list of raw records from a response payload.

    Accepts a bare list or a dict wrapping the list under one of
    ``ENVELOPE_KEYS``. Anything else is logged and treated as empty.
    """
    if isinstance(payload, list):
        return [r for r in payload if isinstance(r, dict)]

    if isinstance(payload, dict):
        for key in ENVELOPE_KEYS:
            records = payload.get(key)
            if isinstance(records, list):
                return [r for r in records if isinstance(r, dict)]

    logger.warning("Unexpected feed response structure: %s", type(payload).__name__)
    return []


def next_cursor(payload: object) -> str | None:
    """Return the pagination cursor from an envelope, if any."""
    if not isinstance(payload, dict):
        return None
    cursor = payload.get("nextCursor") or payload.get("next_cursor")
    return str(cursor) if cursor else None


def normalize_records(payload: object) -> list[RawIncident]:
    """Unwrap and normalize every usable record in a response payload."""
    return [inc for raw in unwrap_records(payload) if (inc := normalize_incident(raw))]
