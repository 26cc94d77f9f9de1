"""In-process cache of geocoding outcomes."""

import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass

from pulsemap.incidents.models import Coordinates, LocationPrecision


@dataclass(frozen=True)
class GeocodeResult:
    """Resolved coordinates (or None) with a precision tier."""

    coordinates: Coordinates | None
    precision: LocationPrecision

    @property
    def found(self) -> bool:
        return self.coordinates is not None


NOT_FOUND = GeocodeResult(coordinates=None, precision="unknown")


class GeocodeCache:
    """LRU mapping of ``(location, district)`` to a ``GeocodeResult``.

    Positive results live until evicted. Negative results (no
    coordinates) expire after ``negative_ttl`` seconds so a geocoder
    outage does not pin failures for the whole process lifetime; pass
    ``None`` to keep them forever.
    """

    def __init__(
        self,
        max_entries: int = 10_000,
        negative_ttl: float | None = 3600.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        self.max_entries = max_entries
        self.negative_ttl = negative_ttl
        self._clock = clock
        self._entries: OrderedDict[tuple[str, str], tuple[GeocodeResult, float]] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get(self, location: str, district: str) -> GeocodeResult | None:
        key = (location, district)
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None

        result, stored_at = entry
        if (
            not result.found
            and self.negative_ttl is not None
            and self._clock() - stored_at >= self.negative_ttl
        ):
            del self._entries[key]
            self.misses += 1
            return None

        self._entries.move_to_end(key)
        self.hits += 1
        return result

    def set(self, location: str, district: str, result: GeocodeResult) -> None:
        key = (location, district)
        self._entries[key] = (result, self._clock())
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> dict:
        negative = sum(1 for result, _ in self._entries.values() if not result.found)
        return {
            "size": len(self._entries),
            "entries": len(self._entries),
            "negative": negative,
            "hits": self.hits,
            "misses": self.misses,
        }
