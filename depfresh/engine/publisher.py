"""Per-scope result cache and debounced publisher.

Fetch completions land in ``ScopeCache.pending`` (last result per name
wins). A single debounce timer per scope merges ``pending`` into ``data``,
classifies every package against its installed version and emits one
:class:`~depfresh.models.PublishEvent`.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum

import structlog

from depfresh.clock import Clock, TimerHandle
from depfresh.engine.watchdog import BatchWatchdog
from depfresh.manifests import ManifestKey
from depfresh.models import (
    Classification,
    DependencySource,
    Freshness,
    InstalledDependency,
    PublishEvent,
    ScopeId,
)
from depfresh.versions import clean_version, compare_versions

log = structlog.get_logger("depfresh.engine")

PublishCallback = Callable[[PublishEvent], None]


class ScopeState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    PUBLISHING = "publishing"


@dataclass
class ScopeCache:
    """Cache and timers for one (ecosystem, scope) pair."""

    scope_id: ScopeId
    manifest_key: ManifestKey
    state: ScopeState = ScopeState.IDLE
    data: dict[str, str] = field(default_factory=dict)
    pending: dict[str, str | None] = field(default_factory=dict)
    classification: Classification = field(default_factory=dict)
    publish_timer: TimerHandle | None = None
    watchdog: BatchWatchdog | None = None
    last_changed: float | None = None
    last_fetched_at: float | None = None
    batch_id: int = 0
    idle: asyncio.Event = field(default_factory=asyncio.Event)

    def __post_init__(self) -> None:
        self.idle.set()

    @property
    def loading(self) -> bool:
        return self.state is ScopeState.LOADING

    def set_state(self, state: ScopeState) -> None:
        self.state = state
        if state is ScopeState.IDLE:
            self.idle.set()
        else:
            self.idle.clear()

    def dispose_timers(self) -> None:
        if self.watchdog is not None:
            self.watchdog.stop()
        if self.publish_timer is not None:
            self.publish_timer.cancel()
            self.publish_timer = None


def classify(
    manifest_key: ManifestKey,
    data: Mapping[str, str],
    installed: Mapping[str, InstalledDependency],
) -> Classification:
    """Compare each resolved latest version with the installed one.

    Packages without a known installed version are left out.
    """
    final: Classification = {}
    for name, latest in data.items():
        dep = installed.get(name)
        current = dep.current_version if dep else None
        if not latest or not current:
            continue
        if manifest_key is ManifestKey.COMPOSER:
            current = clean_version(current) or current
            latest = clean_version(latest) or latest
        cmp = compare_versions(current, latest)
        if cmp > 0:
            final[name] = Freshness(current=current, latest=latest, constraint_newer=True)
        elif cmp == 0:
            final[name] = Freshness(current=current, latest=latest, up_to_date=True)
        else:
            final[name] = Freshness(current=current, latest=latest)
    return final


class ResultCache:
    """Owns every :class:`ScopeCache` and the debounce timers that publish them."""

    def __init__(
        self,
        *,
        clock: Clock,
        dependencies: DependencySource,
        on_publish: PublishCallback,
        debounce: float,
    ) -> None:
        self._clock = clock
        self._dependencies = dependencies
        self._on_publish = on_publish
        self.debounce = debounce
        self._scopes: dict[tuple[ManifestKey, ScopeId], ScopeCache] = {}

    # ── scope bookkeeping ──────────────────────────────────────────────────

    def get(self, scope_id: ScopeId, manifest_key: ManifestKey) -> ScopeCache | None:
        return self._scopes.get((manifest_key, scope_id))

    def scope(self, scope_id: ScopeId, manifest_key: ManifestKey) -> ScopeCache:
        key = (manifest_key, scope_id)
        cache = self._scopes.get(key)
        if cache is None:
            cache = self._scopes[key] = ScopeCache(scope_id=scope_id, manifest_key=manifest_key)
        return cache

    def select(
        self, scope_id: ScopeId | None = None, manifest_key: ManifestKey | None = None
    ) -> list[ScopeCache]:
        return [
            cache
            for (mk, sid), cache in self._scopes.items()
            if (manifest_key is None or mk == manifest_key)
            and (scope_id is None or sid == scope_id)
        ]

    def discard(self, cache: ScopeCache) -> None:
        self._scopes.pop((cache.manifest_key, cache.scope_id), None)

    def __len__(self) -> int:
        return len(self._scopes)

    # ── pending results and publishing ─────────────────────────────────────

    def add_pending_result(self, cache: ScopeCache, name: str, latest: str | None) -> None:
        cache.pending[name] = latest
        self.schedule_publish(cache)

    def schedule_publish(self, cache: ScopeCache) -> None:
        """Arm the debounce timer unless one is already pending."""
        if cache.publish_timer is not None:
            return
        cache.publish_timer = self._clock.call_later(self.debounce, lambda: self._flush(cache))

    def emit(self, cache: ScopeCache, classification: Classification | None = None) -> None:
        event = PublishEvent(
            scope_id=cache.scope_id,
            manifest_key=cache.manifest_key,
            classification=dict(cache.classification if classification is None else classification),
            loading=cache.loading,
        )
        log.debug(
            "publish.emitted",
            scope=str(cache.scope_id),
            ecosystem=cache.manifest_key.value,
            packages=len(event.classification),
            loading=event.loading,
        )
        try:
            self._on_publish(event)
        except Exception:
            log.exception("publish.callback_error", scope=str(cache.scope_id))

    def merge_pending(self, cache: ScopeCache) -> None:
        for name, latest in cache.pending.items():
            if latest:
                cache.data[name] = latest
            else:
                cache.data.pop(name, None)
        cache.pending = {}

    def _flush(self, cache: ScopeCache) -> None:
        cache.publish_timer = None
        if self.get(cache.scope_id, cache.manifest_key) is not cache:
            # scope was cleared while the timer was pending
            return
        self.merge_pending(cache)
        cache.classification = classify(
            cache.manifest_key,
            cache.data,
            self._dependencies.installed(cache.manifest_key),
        )
        if cache.state is ScopeState.PUBLISHING:
            cache.last_fetched_at = self._clock.now()
            cache.set_state(ScopeState.IDLE)
        self.emit(cache)
