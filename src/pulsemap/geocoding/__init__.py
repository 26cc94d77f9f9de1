"""Nominatim geocoding module."""

from pulsemap.geocoding.cache import NOT_FOUND, GeocodeCache, GeocodeResult
from pulsemap.geocoding.nominatim import GeocodingService, determine_precision
from pulsemap.geocoding.rate_limit import RateLimiter

__all__ = [
    "NOT_FOUND",
    "GeocodeCache",
    "GeocodeResult",
    "GeocodingService",
    "RateLimiter",
    "determine_precision",
]
