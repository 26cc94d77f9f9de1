"""Incident sync orchestration."""
