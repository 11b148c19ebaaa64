"""Single-package registry lookups built on the retrying fetcher."""

from __future__ import annotations

import structlog

from depfresh.config import FreshnessSettings
from depfresh.engine.fetcher import RetryingFetcher
from depfresh.engine.registries import Registry
from depfresh.manifests import ManifestKey
from depfresh.models import FetchResult, VersionList
from depfresh.versions import (
    go_module_path,
    is_gopkg_path,
    parse_version,
    sort_versions_desc,
    strip_go_major_suffix,
)

log = structlog.get_logger("depfresh.engine")


class RegistryLookup:
    """Resolves latest versions and version lists for one package at a time."""

    def __init__(
        self,
        settings: FreshnessSettings,
        fetcher: RetryingFetcher,
        registries: dict[ManifestKey, Registry],
    ) -> None:
        self._settings = settings
        self._fetcher = fetcher
        self.registries = registries

    def has_registry(self, manifest_key: ManifestKey) -> bool:
        return manifest_key in self.registries

    def fetch_name(self, manifest_key: ManifestKey, name: str, current: str | None) -> str:
        """Name used in the registry URL (Go paths carry the major version)."""
        if manifest_key is ManifestKey.GO:
            return go_module_path(name, current)
        return name

    async def latest(
        self, manifest_key: ManifestKey, name: str, current: str | None = None
    ) -> FetchResult:
        registry = self.registries.get(manifest_key)
        if registry is None:
            return FetchResult(name=name, error=f"no registry for {manifest_key.value}")
        url = registry.latest_url(self._settings, self.fetch_name(manifest_key, name, current))
        outcome = await self._fetcher.fetch(url, name, manifest_key, registry.latest_parser)
        if not outcome.ok:
            return FetchResult(name=name, error=outcome.error, kind=outcome.kind)
        return FetchResult(name=name, latest_version=outcome.value)

    async def versions(
        self, manifest_key: ManifestKey, name: str, current: str | None = None
    ) -> VersionList | None:
        """All published versions of *name*, newest first, or None."""
        registry = self.registries.get(manifest_key)
        if registry is None or not name:
            return None

        if manifest_key is ManifestKey.GO:
            found = await self._go_versions(registry, name, current)
        else:
            found = await self._versions_at(registry, manifest_key, name)

        if not found:
            return None
        return VersionList(name=name, versions=sort_versions_desc(found), current=current)

    async def _versions_at(
        self, registry: Registry, manifest_key: ManifestKey, name: str
    ) -> list[str]:
        url = registry.versions_url(self._settings, name)
        outcome = await self._fetcher.fetch(url, name, manifest_key, registry.versions_parser)
        if not outcome.ok:
            log.info("versions.unresolved", package=name, reason=outcome.error)
            return []
        return list(outcome.value or [])

    async def _go_versions(self, registry: Registry, name: str, current: str | None) -> list[str]:
        # Best effort: probe the bare path, the path implied by the current
        # version and the highest major suffix the bare path advertises.
        is_gopkg = is_gopkg_path(name)
        targets: list[str] = [name]
        stripped = strip_go_major_suffix(name)
        if stripped != name:
            targets.append(stripped)

        found: list[str] = []
        base = await self._versions_at(registry, ManifestKey.GO, name)
        found.extend(base)
        if not is_gopkg:
            majors = [p.major for p in map(parse_version, base) if p is not None]
            if majors and max(majors) >= 2:
                targets.append(f"{stripped}/v{max(majors)}")
            if current:
                targets.append(go_module_path(name, current))

        for target in dict.fromkeys(targets):
            if target == name:
                continue
            found.extend(await self._versions_at(registry, ManifestKey.GO, target))
        return found
