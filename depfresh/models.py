"""Data models for the freshness engine.

These are pure data structures — no network or timer dependencies.
"""

from __future__ import annotations

from collections.abc import Hashable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from depfresh.errors import FailureKind
from depfresh.manifests import ManifestKey

ScopeId = Hashable


@dataclass(frozen=True)
class InstalledDependency:
    """One declared package as seen by the caller's dependency table."""

    name: str
    current_version: str | None = None
    in_lock: bool = False


@dataclass(frozen=True)
class FetchResult:
    """Outcome of one lookup.

    ``latest_version is None`` means "could not resolve", not "no updates".
    """

    name: str
    latest_version: str | None = None
    error: str | None = None
    kind: FailureKind | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class Freshness:
    """Classification of one installed package against its latest release."""

    current: str
    latest: str
    up_to_date: bool = False
    constraint_newer: bool = False

    @property
    def outdated(self) -> bool:
        return not (self.up_to_date or self.constraint_newer)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"current": self.current, "latest": self.latest}
        if self.up_to_date:
            out["up_to_date"] = True
        if self.constraint_newer:
            out["constraint_newer"] = True
        return out


Classification = dict[str, Freshness]


@dataclass(frozen=True)
class PublishEvent:
    """What the engine hands to the UI layer after each publish."""

    scope_id: ScopeId
    manifest_key: ManifestKey
    classification: Classification
    loading: bool

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {name: info.to_dict() for name, info in sorted(self.classification.items())}


@dataclass
class VersionList:
    """All published versions of a package, newest first."""

    name: str
    versions: list[str]
    current: str | None = None


@runtime_checkable
class DependencySource(Protocol):
    """Read-only view of the caller's installed-dependency table."""

    def installed(self, manifest_key: ManifestKey) -> Mapping[str, InstalledDependency]: ...


@dataclass
class DependencyTable:
    """In-memory :class:`DependencySource` owned by the caller."""

    _tables: dict[ManifestKey, dict[str, InstalledDependency]] = field(default_factory=dict)

    def installed(self, manifest_key: ManifestKey) -> Mapping[str, InstalledDependency]:
        return self._tables.get(ManifestKey.parse(manifest_key), {})

    def set_installed(
        self,
        manifest_key: ManifestKey | str,
        deps: Mapping[str, str | None | InstalledDependency],
    ) -> None:
        """Replace the table for one ecosystem.

        Values may be bare version strings (or None) for convenience.
        """
        table: dict[str, InstalledDependency] = {}
        for name, value in deps.items():
            if isinstance(value, InstalledDependency):
                table[name] = value
            else:
                table[name] = InstalledDependency(name=name, current_version=value)
        self._tables[ManifestKey.parse(manifest_key)] = table

    def add(
        self,
        manifest_key: ManifestKey | str,
        name: str,
        current_version: str | None = None,
        *,
        in_lock: bool = False,
    ) -> None:
        key = ManifestKey.parse(manifest_key)
        self._tables.setdefault(key, {})[name] = InstalledDependency(
            name=name, current_version=current_version, in_lock=in_lock
        )

    def remove(self, manifest_key: ManifestKey | str, name: str) -> None:
        self._tables.get(ManifestKey.parse(manifest_key), {}).pop(name, None)

    def current_version(self, manifest_key: ManifestKey | str, name: str) -> str | None:
        dep = self.installed(ManifestKey.parse(manifest_key)).get(name)
        return dep.current_version if dep else None
