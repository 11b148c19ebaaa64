"""Tests for CLI commands — registry traffic served by httpx.MockTransport."""

from __future__ import annotations

import json
import logging
from unittest.mock import patch

import httpx
import pytest
import structlog
from click.testing import CliRunner

from depfresh.cli import _parse_pins, main
from depfresh.engine import FreshnessEngine


@pytest.fixture(autouse=True)
def _reset_logging():
    """``main`` reconfigures logging onto CliRunner's captured stderr."""
    yield
    logging.getLogger().handlers.clear()
    structlog.reset_defaults()


@pytest.fixture
def cli(registry):
    """Invoke the CLI with every engine wired to the stub registry."""

    def _engine(*args, **kwargs):
        kwargs["http_client"] = httpx.AsyncClient(transport=httpx.MockTransport(registry))
        return FreshnessEngine(*args, **kwargs)

    def _invoke(*argv: str):
        with patch("depfresh.cli.FreshnessEngine", side_effect=_engine):
            return CliRunner().invoke(main, list(argv), env={"DEPFRESH_LOG_LEVEL": "ERROR"})

    return _invoke


@pytest.fixture
def npm(registry):
    registry.json("/react", {"dist-tags": {"latest": "18.3.1"}, "versions": {"17.0.2": {}, "18.3.1": {}, "18.0.0": {}}})
    registry.json("/vue", {"dist-tags": {"latest": "3.4.0"}})
    return registry


# ── _parse_pins ──


class TestParsePins:
    def test_pairs(self):
        assert _parse_pins(("react=17.0.2", "vue=^3.4.0")) == {"react": "17.0.2", "vue": "^3.4.0"}

    def test_missing_version_means_not_installed(self):
        assert _parse_pins(("left-pad", "qux=")) == {"left-pad": None, "qux": None}


# ── latest ──


class TestLatest:
    def test_prints_versions(self, cli, npm):
        result = cli("latest", "package", "react", "vue")
        assert result.exit_code == 0, result.output
        assert "react 18.3.1" in result.output
        assert "vue 3.4.0" in result.output

    def test_json(self, cli, npm):
        result = cli("latest", "package.json", "react", "--json")
        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == {"react": {"latest": "18.3.1", "error": None}}

    def test_unresolved_exits_nonzero(self, cli, npm):
        result = cli("latest", "package", "react", "does-not-exist")
        assert result.exit_code == 1
        assert "does-not-exist ? (HTTP 404)" in result.output

    def test_unknown_ecosystem(self, cli):
        result = cli("latest", "maven", "junit")
        assert result.exit_code == 2
        assert "unknown manifest or ecosystem" in result.output


# ── versions ──


class TestVersions:
    def test_newest_first(self, cli, npm):
        result = cli("versions", "package", "react")
        assert result.exit_code == 0, result.output
        assert result.output.split() == ["18.3.1", "18.0.0", "17.0.2"]

    def test_limit(self, cli, npm):
        result = cli("versions", "package", "react", "--limit", "1")
        assert result.output.split() == ["18.3.1"]

    def test_not_found(self, cli):
        result = cli("versions", "crates", "nothing-here")
        assert result.exit_code == 1
        assert "No versions found for nothing-here." in result.output


# ── check ──


class TestCheck:
    def test_table(self, cli, npm):
        result = cli("check", "package", "react=17.0.2", "vue=3.4.0", "qux=")
        assert result.exit_code == 0, result.output
        assert "17.0.2 -> 18.3.1  (outdated)" in result.output
        assert "3.4.0 -> 3.4.0  (up to date)" in result.output
        assert "(not installed)" in result.output
        assert "1 outdated of 2 resolved" in result.output

    def test_json(self, cli, npm):
        result = cli("check", "package", "react=17.0.2", "vue=3.4.0", "--json")
        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == {
            "react": {"current": "17.0.2", "latest": "18.3.1"},
            "vue": {"current": "3.4.0", "latest": "3.4.0", "up_to_date": True},
        }

    def test_nothing_to_check(self, cli):
        result = cli("check", "crates", "serde=")
        assert result.exit_code == 0, result.output
        assert "No freshness data available." in result.output

    def test_bad_config(self):
        result = CliRunner().invoke(
            main, ["check", "package", "react=1.0.0"], env={"DEPFRESH_MAX_RETRIES": "-1"}
        )
        assert result.exit_code == 1
        assert "max_retries must be >= 0" in result.output


# ── logging ──


class TestLogging:
    def test_unknown_log_level(self):
        result = CliRunner().invoke(main, ["--log-level", "chatty", "latest", "package", "react"])
        assert result.exit_code == 1
        assert "unknown log level: CHATTY" in result.output
