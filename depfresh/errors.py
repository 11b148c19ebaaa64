"""Exceptions and failure tags for depfresh."""

from __future__ import annotations

from enum import Enum


class FreshnessError(Exception):
    """Base exception for all depfresh errors."""


class ConfigError(FreshnessError):
    """Raised when settings are out of range."""


class UnknownManifestError(FreshnessError):
    """Raised when an ecosystem key or manifest file name is not recognised."""

    def __init__(self, value: str) -> None:
        self.value = value
        super().__init__(f"unknown manifest or ecosystem: {value!r}")


class MissingCollaboratorError(FreshnessError):
    """Raised at construction time when a required collaborator is absent."""


class FailureKind(str, Enum):
    """Why a single package lookup failed.

    Lookup failures are never raised; they travel as a reason string
    tagged with one of these kinds.
    """

    TRANSPORT = "transport"
    PROTOCOL = "protocol"
    PARSE = "parse"
    HOST_SUSPENDED = "host_suspended"
    NEGATIVE_CACHED = "negative_cached"
