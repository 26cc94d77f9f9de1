"""Incident models, classification, threading and storage."""

from pulsemap.incidents.models import (
    Coordinates,
    IncidentDocument,
    IncidentFilters,
    IncidentStats,
    IncidentUpdate,
    RawIncident,
)
from pulsemap.incidents.store import IncidentStore

__all__ = [
    "Coordinates",
    "IncidentDocument",
    "IncidentFilters",
    "IncidentStats",
    "IncidentStore",
    "IncidentUpdate",
    "RawIncident",
]
