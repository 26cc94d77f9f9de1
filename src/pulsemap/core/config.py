"""Configuration loading utilities."""

import json
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class PulseMapConfig:
    """Application configuration loaded from config/pulsemap.json.

    Environment variables override the JSON values so deployments can
    change endpoints without editing the file.
    """

    app_name: str
    default_district: str
    country: str = "Norway"
    days_back: int = 7
    cosmos_database: str = ""
    politiloggen_api_url: str = ""
    politiloggen_use_mock: bool = False
    politiloggen_fallback_to_mock: bool = True
    nominatim_api_url: str = ""
    nominatim_user_agent: str = ""
    geocoder_min_interval: float = 1.0
    geocode_cache_size: int = 10_000
    geocode_negative_ttl: float | None = 3600.0
    sync_interval_seconds: int = 0


def get_project_root() -> Path:
    """Get the project root directory."""
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / "pyproject.toml").exists():
            return parent
    raise RuntimeError("Could not find project root (no pyproject.toml found)")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_float(name: str, default: float | None) -> float | None:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {value!r}") from exc


def load_config(config_path: Path | None = None) -> PulseMapConfig:
    """Load configuration from the JSON file and environment.

    Args:
        config_path: Override the default ``config/pulsemap.json`` location

    Returns:
        PulseMapConfig with environment overrides applied

    Raises:
        FileNotFoundError: If the config file does not exist
        ValueError: If a numeric environment override is malformed
    """
    load_dotenv()

    if config_path is None:
        config_path = get_project_root() / "config" / "pulsemap.json"

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with config_path.open() as f:
        data = json.load(f)

    negative_ttl = data.get("geocode_negative_ttl", 3600.0)
    negative_ttl = _env_float("GEOCODE_NEGATIVE_TTL", negative_ttl)
    if negative_ttl is not None and negative_ttl <= 0:
        negative_ttl = None

    return PulseMapConfig(
        app_name=data.get("app_name", "PulseMap"),
        default_district=os.getenv("DEFAULT_DISTRICT") or data.get("default_district", "Oslo"),
        country=data.get("country", "Norway"),
        days_back=int(data.get("days_back", 7)),
        cosmos_database=os.getenv("COSMOS_DATABASE") or data.get("cosmos_database", ""),
        politiloggen_api_url=(
            os.getenv("POLITILOGGEN_API_URL") or data.get("politiloggen_api_url", "")
        ),
        politiloggen_use_mock=_env_bool(
            "POLITILOGGEN_USE_MOCK", data.get("politiloggen_use_mock", False)
        ),
        politiloggen_fallback_to_mock=_env_bool(
            "POLITILOGGEN_FALLBACK_TO_MOCK", data.get("politiloggen_fallback_to_mock", True)
        ),
        nominatim_api_url=os.getenv("NOMINATIM_API_URL") or data.get("nominatim_api_url", ""),
        nominatim_user_agent=(
            os.getenv("NOMINATIM_USER_AGENT") or data.get("nominatim_user_agent", "")
        ),
        geocoder_min_interval=_env_float(
            "GEOCODER_MIN_INTERVAL", float(data.get("geocoder_min_interval", 1.0))
        ),
        geocode_cache_size=int(data.get("geocode_cache_size", 10_000)),
        geocode_negative_ttl=negative_ttl,
        sync_interval_seconds=int(
            _env_float("SYNC_INTERVAL_SECONDS", float(data.get("sync_interval_seconds", 0)))
        ),
    )


# Cached config instance
_config: PulseMapConfig | None = None


def get_config() -> PulseMapConfig:
    """Get cached application config.

    Loads config once and caches it for subsequent calls.
    """
    global _config
    if _config is None:
        _config = load_config()
    return _config


def get_cosmos_database() -> str:
    """Get Cosmos DB database name.

    Reads from ``COSMOS_DATABASE`` env var first (for Container Apps),
    falls back to ``pulsemap.json``.
    """
    return os.getenv("COSMOS_DATABASE") or get_config().cosmos_database
