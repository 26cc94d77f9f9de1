"""Core utilities for PulseMap."""

from pulsemap.core.config import PulseMapConfig, get_config, load_config

__all__ = [
    "PulseMapConfig",
    "get_config",
    "load_config",
]
