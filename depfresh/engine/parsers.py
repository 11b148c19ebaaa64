"""Registry response parsers.

Each parser turns a raw response body into a :class:`Parsed` value. Parsers
never raise: decode errors, HTML error pages and unexpected JSON shapes are
reported through ``Parsed.error``. A recognised document that simply has no
resolvable version yields ``Parsed(value=None)``, which is not a failure.
"""

from __future__ import annotations

import functools
import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from depfresh.versions import clean_version, sort_versions_desc

T = TypeVar("T")

HTML_BODY_REASON = "registry returned HTML (blocked/rate-limited?)"


@dataclass(frozen=True)
class Parsed(Generic[T]):
    value: T | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class _ParseFailure(Exception):
    pass


Parser = Callable[[str], "Parsed[Any]"]


def _never_raises(fn: Callable[[str], T | None]) -> Callable[[str], Parsed[T]]:
    """Wrap a parser body so any failure becomes ``Parsed(error=...)``."""

    @functools.wraps(fn)
    def wrapper(body: str) -> Parsed[T]:
        try:
            return Parsed(value=fn(body))
        except _ParseFailure as exc:
            return Parsed(error=str(exc))
        except Exception as exc:
            return Parsed(error=f"parser error: {exc!r}")

    return wrapper


def _decode(body: str) -> dict[str, Any]:
    stripped = body.lstrip()
    if stripped.startswith("<"):
        raise _ParseFailure(HTML_BODY_REASON)
    try:
        data = json.loads(stripped)
    except ValueError as exc:
        raise _ParseFailure(f"invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise _ParseFailure(f"unexpected JSON shape: {type(data).__name__}")
    return data


def _unexpected(*keys: str) -> _ParseFailure:
    return _ParseFailure("unexpected JSON shape: missing " + " / ".join(keys))


# ── latest-version parsers ──────────────────────────────────────────────


@_never_raises
def parse_crates_latest(body: str) -> str | None:
    data = _decode(body)
    crate = data.get("crate")
    if isinstance(crate, dict):
        for key in ("max_stable_version", "max_version"):
            if crate.get(key):
                return clean_version(str(crate[key]))
    versions = data.get("versions")
    if isinstance(versions, list):
        if versions and isinstance(versions[0], dict) and versions[0].get("num"):
            return clean_version(str(versions[0]["num"]))
        return None
    if isinstance(crate, dict):
        return None
    raise _unexpected("crate", "versions")


@_never_raises
def parse_npm_latest(body: str) -> str | None:
    data = _decode(body)
    tags = data.get("dist-tags")
    if not isinstance(tags, dict):
        raise _unexpected("dist-tags")
    latest = tags.get("latest")
    return clean_version(str(latest)) if latest else None


@_never_raises
def parse_pub_latest(body: str) -> str | None:
    data = _decode(body)
    latest = data.get("latest")
    if isinstance(latest, dict) and latest.get("version"):
        return clean_version(str(latest["version"]))
    versions = data.get("versions")
    if isinstance(versions, list):
        if versions and isinstance(versions[0], dict) and versions[0].get("version"):
            return clean_version(str(versions[0]["version"]))
        return None
    if isinstance(latest, dict):
        return None
    raise _unexpected("latest", "versions")


@_never_raises
def parse_packagist_latest(body: str) -> str | None:
    data = _decode(body)
    packages = data.get("packages")
    if not isinstance(packages, dict):
        raise _unexpected("packages")
    for entries in packages.values():
        if isinstance(entries, list) and entries and isinstance(entries[0], dict):
            entry = entries[0]
            version = entry.get("version") or entry.get("version_normalized")
            if version:
                return clean_version(str(version))
    return None


@_never_raises
def parse_go_latest(body: str) -> str | None:
    data = _decode(body)
    if "Version" not in data:
        raise _unexpected("Version")
    version = data["Version"]
    return str(version) if version else None


# ── version-list parsers ────────────────────────────────────────────────


@_never_raises
def parse_crates_versions(body: str) -> list[str] | None:
    data = _decode(body)
    versions = data.get("versions")
    if not isinstance(versions, list):
        raise _unexpected("versions")
    found = [
        str(entry["num"])
        for entry in versions
        if isinstance(entry, dict) and entry.get("num") and not entry.get("yanked", False)
    ]
    return sort_versions_desc(found) or None


@_never_raises
def parse_npm_versions(body: str) -> list[str] | None:
    data = _decode(body)
    versions = data.get("versions")
    if not isinstance(versions, dict):
        raise _unexpected("versions")
    return sort_versions_desc(v for v in versions if isinstance(v, str)) or None


@_never_raises
def parse_pub_versions(body: str) -> list[str] | None:
    data = _decode(body)
    versions = data.get("versions")
    if not isinstance(versions, list):
        raise _unexpected("versions")
    found = [
        str(entry["version"])
        for entry in versions
        if isinstance(entry, dict) and entry.get("version")
    ]
    return sort_versions_desc(found) or None


@_never_raises
def parse_packagist_versions(body: str) -> list[str] | None:
    data = _decode(body)
    packages = data.get("packages")
    if not isinstance(packages, dict):
        raise _unexpected("packages")
    found = [
        str(entry["version"])
        for entries in packages.values()
        if isinstance(entries, list)
        for entry in entries
        if isinstance(entry, dict) and entry.get("version")
    ]
    return sort_versions_desc(found) or None


@_never_raises
def parse_go_version_list(body: str) -> list[str] | None:
    """``@v/list`` is plain text, one version per line."""
    if body.lstrip().startswith("<"):
        raise _ParseFailure(HTML_BODY_REASON)
    found = [line.strip() for line in body.splitlines() if line.strip()]
    return sort_versions_desc(found) or None
