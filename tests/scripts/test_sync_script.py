"""Tests for the pulsemap-sync CLI."""

import json
from unittest.mock import patch

import httpx
import pytest

from pulsemap.core import config as config_module
from pulsemap.core.config import PulseMapConfig
from pulsemap.scripts.sync import main


@pytest.fixture(autouse=True)
def _mock_config(monkeypatch, nominatim):
    """Mock feed, mocked Nominatim, no rate-limit delay."""
    nominatim.get("/search").mock(return_value=httpx.Response(200, json=[]))
    monkeypatch.setattr(
        config_module,
        "_config",
        PulseMapConfig(
            app_name="PulseMap",
            default_district="Oslo",
            politiloggen_use_mock=True,
            nominatim_api_url="https://nominatim.test",
            nominatim_user_agent="PulseMapTests/1.0",
            geocoder_min_interval=0,
        ),
    )


def _run(*argv: str) -> int:
    with patch("sys.argv", ["pulsemap-sync", *argv]):
        return main()


class TestRun:
    def test_json_output(self, capsys):
        assert _run("--json", "run") == 0
        result = json.loads(capsys.readouterr().out)
        assert result["fetched"] == 12
        assert result["processed"] == 12
        assert result["errors"] == []

    def test_text_output(self, capsys):
        assert _run("run", "--district", "Oslo", "--days", "1") == 0
        output = capsys.readouterr().out
        assert "Sync of Oslo (last 1 days)" in output
        assert "Processed: 12" in output

    def test_unknown_district(self, capsys):
        assert _run("--json", "run", "--district", "Bergen") == 0
        assert json.loads(capsys.readouterr().out)["fetched"] == 0


class TestIncident:
    def test_found(self, capsys):
        assert _run("incident", "mock-001") == 0
        output = capsys.readouterr().out
        assert "mock-001" in output
        assert "Storgata 15" in output

    def test_json(self, capsys):
        assert _run("--json", "incident", "mock-002") == 0
        doc = json.loads(capsys.readouterr().out)
        assert doc["id"] == "mock-002"
        assert doc["geocodingAttempts"] == 1

    def test_not_found(self, capsys):
        assert _run("incident", "missing") == 1
        assert "not found" in capsys.readouterr().out


class TestGeocodeAndStats:
    def test_geocode_empty_backlog(self, capsys):
        assert _run("--json", "geocode") == 0
        assert json.loads(capsys.readouterr().out) == {"geocoded": 0}

    def test_stats_after_run(self, capsys):
        _run("run")
        capsys.readouterr()

        assert _run("--json", "stats") == 0
        stats = json.loads(capsys.readouterr().out)
        assert stats["incidents"]["total"] == 12
        assert stats["incidents"]["needsGeocode"] == 12


def test_no_command_prints_help(capsys):
    assert _run() == 1
    assert "usage" in capsys.readouterr().out
