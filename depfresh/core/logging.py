"""Structured logging for the CLI: structlog rendered through stdlib logging."""

from __future__ import annotations

import logging
import os
import sys

import structlog

from depfresh.errors import ConfigError

_QUIET_LOGGERS = ("httpx", "httpcore")


def setup_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Route ``depfresh.*`` structlog events to stderr.

    Arguments win over ``DEPFRESH_LOG_LEVEL`` (default WARNING) and
    ``DEPFRESH_LOG_FORMAT`` (``console`` or ``json``).
    """
    log_level = (level or os.environ.get("DEPFRESH_LOG_LEVEL") or "WARNING").upper()
    log_format = (fmt or os.environ.get("DEPFRESH_LOG_FORMAT") or "console").lower()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ConfigError(f"unknown log level: {log_level}")

    pre_chain: list[structlog.types.Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer()
        if log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=pre_chain
        + [
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # stdout carries command output
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(log_level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
