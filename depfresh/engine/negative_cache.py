"""Short-lived memo of lookups that recently failed."""

from __future__ import annotations

from dataclasses import dataclass

from depfresh.clock import Clock, LoopClock
from depfresh.manifests import ManifestKey


@dataclass(frozen=True)
class NegativeCacheEntry:
    key: tuple[ManifestKey, str]
    timestamp: float
    reason: str


class NegativeCache:
    """Per (ecosystem, package) failure memo, expired by comparison against *ttl*."""

    def __init__(self, *, ttl: float, clock: Clock | None = None) -> None:
        self.ttl = ttl
        self._clock = clock or LoopClock()
        self._entries: dict[tuple[ManifestKey, str], NegativeCacheEntry] = {}

    def is_cached(self, manifest_key: ManifestKey, name: str) -> bool:
        return self.get(manifest_key, name) is not None

    def get(self, manifest_key: ManifestKey, name: str) -> NegativeCacheEntry | None:
        """Return the live entry, or None if absent or expired."""
        entry = self._entries.get((manifest_key, name))
        if entry is None or self._clock.now() - entry.timestamp >= self.ttl:
            return None
        return entry

    def set(self, manifest_key: ManifestKey, name: str, reason: str) -> None:
        key = (manifest_key, name)
        self._entries[key] = NegativeCacheEntry(key=key, timestamp=self._clock.now(), reason=reason)

    def clear(self, manifest_key: ManifestKey, name: str) -> None:
        self._entries.pop((manifest_key, name), None)

    def clear_all(self, manifest_key: ManifestKey | None = None) -> None:
        if manifest_key is None:
            self._entries.clear()
            return
        for key in [k for k in self._entries if k[0] == manifest_key]:
            del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)
