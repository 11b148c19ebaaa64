"""Tests for structured logging setup."""

from __future__ import annotations

import json
import logging

import pytest
import structlog

from depfresh.core.logging import setup_logging
from depfresh.errors import ConfigError


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    logging.getLogger().handlers.clear()
    structlog.reset_defaults()


def test_json_events_go_to_stderr(capsys):
    setup_logging(level="info", fmt="json")
    structlog.get_logger("depfresh.engine").info("batch.drained", scope="cli")

    captured = capsys.readouterr()
    assert captured.out == ""
    event = json.loads(captured.err.strip().splitlines()[-1])
    assert event["event"] == "batch.drained"
    assert event["scope"] == "cli"
    assert event["level"] == "info"
    assert event["logger"] == "depfresh.engine"


def test_level_filters(capsys):
    setup_logging(level="warning", fmt="json")
    log = structlog.get_logger("depfresh.engine")
    log.info("fetch.retry")
    log.warning("host.suspended", host="crates.io")

    lines = capsys.readouterr().err.strip().splitlines()
    assert [json.loads(line)["event"] for line in lines] == ["host.suspended"]


def test_env_defaults(monkeypatch):
    monkeypatch.setenv("DEPFRESH_LOG_LEVEL", "debug")
    setup_logging()
    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.WARNING
    assert len(logging.getLogger().handlers) == 1


def test_unknown_level():
    with pytest.raises(ConfigError, match="unknown log level"):
        setup_logging(level="chatty")
