"""Politiloggen integration module."""

from pulsemap.politiloggen.client import PolitiloggenClient

__all__ = ["PolitiloggenClient"]
