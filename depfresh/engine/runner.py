"""FreshnessEngine — fans out latest-version lookups for one manifest scope."""

from __future__ import annotations

import asyncio
import random
import shutil
from collections.abc import Callable, Iterable
from pathlib import Path

import httpx
import structlog

from depfresh.clock import Clock, LoopClock
from depfresh.config import FreshnessSettings
from depfresh.engine.circuit_breaker import HostCircuitBreaker
from depfresh.engine.cli_fallback import CliFallbackRunner, ToolProbe, candidate_commands
from depfresh.engine.fetcher import RetryingFetcher
from depfresh.engine.lookup import RegistryLookup
from depfresh.engine.negative_cache import NegativeCache
from depfresh.engine.publisher import PublishCallback, ResultCache, ScopeCache, ScopeState
from depfresh.engine.registries import Registry, http_registries
from depfresh.engine.scheduler import BatchScheduler, compute_concurrency
from depfresh.engine.watchdog import BatchWatchdog
from depfresh.errors import MissingCollaboratorError
from depfresh.manifests import ManifestKey
from depfresh.models import DependencySource, FetchResult, ScopeId, VersionList

log = structlog.get_logger("depfresh.engine")

CwdResolver = Callable[[ScopeId], "Path | None"]


def _tool_on_path(tool: str) -> bool:
    return shutil.which(tool) is not None


class FreshnessEngine:
    """Resolves latest versions for installed packages and publishes a classification.

    Collaborators are injected and validated here, once:

    *dependencies* is the caller's installed-dependency table, *on_publish*
    receives every :class:`~depfresh.models.PublishEvent`, *tool_probe*
    reports whether a local tool is on PATH and *cwd_resolver* maps a scope
    to the directory the CLI fallback runs in.

    The host breaker and negative cache are shared by every scope; the
    per-scope caches are not.
    """

    def __init__(
        self,
        settings: FreshnessSettings | None = None,
        dependencies: DependencySource | None = None,
        *,
        on_publish: PublishCallback | None = None,
        http_client: httpx.AsyncClient | None = None,
        clock: Clock | None = None,
        tool_probe: ToolProbe | None = None,
        cwd_resolver: CwdResolver | None = None,
        registries: dict[ManifestKey, Registry] | None = None,
        cli_runner: CliFallbackRunner | None = None,
        rng: random.Random | None = None,
    ) -> None:
        if dependencies is None or not isinstance(dependencies, DependencySource):
            raise MissingCollaboratorError(
                "dependencies must provide installed(manifest_key) -> mapping"
            )
        if on_publish is None or not callable(on_publish):
            raise MissingCollaboratorError("on_publish callback is required")
        if tool_probe is not None and not callable(tool_probe):
            raise MissingCollaboratorError("tool_probe must be callable")
        if cwd_resolver is not None and not callable(cwd_resolver):
            raise MissingCollaboratorError("cwd_resolver must be callable")

        self.settings = settings or FreshnessSettings()
        self._clock = clock or LoopClock()
        self._dependencies = dependencies
        self._tool_probe = tool_probe or _tool_on_path
        self._cwd_resolver = cwd_resolver
        self.breaker = HostCircuitBreaker(
            failure_threshold=self.settings.failure_threshold,
            blackout_duration=self.settings.host_blackout,
            clock=self._clock,
        )
        self.negative_cache = NegativeCache(ttl=self.settings.negative_cache_ttl, clock=self._clock)
        self.fetcher = RetryingFetcher(
            self.settings,
            breaker=self.breaker,
            negative_cache=self.negative_cache,
            client=http_client,
            rng=rng,
        )
        self.lookup = RegistryLookup(
            self.settings,
            self.fetcher,
            http_registries(self.settings) if registries is None else registries,
        )
        self.cache = ResultCache(
            clock=self._clock,
            dependencies=dependencies,
            on_publish=on_publish,
            debounce=self.settings.publish_debounce,
        )
        self._cli_runner = cli_runner or CliFallbackRunner(timeout=self.settings.overall_watchdog)
        self._batches: dict[tuple[ManifestKey, ScopeId], BatchScheduler] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    # ── lifecycle ──────────────────────────────────────────────────────────

    async def aclose(self) -> None:
        pending = [task for batch in self._batches.values() for task in batch.cancel()]
        self.clear_cache()
        for task in list(self._tasks):
            task.cancel()
            pending.append(task)
        await asyncio.gather(*pending, return_exceptions=True)
        await self.fetcher.close()

    async def __aenter__(self) -> FreshnessEngine:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    # ── public ─────────────────────────────────────────────────────────────

    def check_outdated(self, scope_id: ScopeId, manifest_key: ManifestKey | str) -> None:
        """Start (or refresh) a freshness batch for every installed package.

        A no-op while a batch for the same scope is still loading. Within
        ``cache_ttl`` of the last completed batch the previous classification
        is re-published without network access. Must be called from a
        running event loop.
        """
        key = ManifestKey.parse(manifest_key)
        installed = self._dependencies.installed(key)
        registry = self.lookup.registries.get(key)

        wanted: dict[str, str] = {}
        for name, dep in installed.items():
            if not dep.current_version:
                continue
            if registry is not None and not registry.accepts(name):
                continue
            wanted[name] = dep.current_version

        cache = self.cache.scope(scope_id, key)
        if cache.loading:
            log.debug("batch.already_loading", scope=str(scope_id), ecosystem=key.value)
            return

        if not wanted:
            self.cache.emit(cache, {})
            return

        now = self._clock.now()
        ttl = self.settings.cache_ttl
        if cache.last_fetched_at is not None and ttl > 0 and now - cache.last_fetched_at < ttl:
            log.debug("batch.cache_hit", scope=str(scope_id), ecosystem=key.value)
            self.cache.emit(cache)
            return

        commands: list[list[str]] = []
        if registry is None:
            commands = candidate_commands(key, self._tool_probe)
            if not commands:
                log.info("batch.no_source", scope=str(scope_id), ecosystem=key.value)
                self.cache.emit(cache, {})
                return

        cache.batch_id += 1
        cache.set_state(ScopeState.LOADING)
        self.cache.emit(cache)
        self._start_watchdog(cache)

        if registry is None:
            self._spawn(self._run_cli_fallback(cache, cache.batch_id, commands, list(wanted)))
        else:
            self._run_http_batch(cache, wanted)

    def invalidate_package(
        self, scope_id: ScopeId, manifest_key: ManifestKey | str, name: str
    ) -> None:
        """Forget everything known about *name* so the next check refetches it."""
        key = ManifestKey.parse(manifest_key)
        self.negative_cache.clear(key, name)
        cache = self.cache.get(scope_id, key)
        if cache is None:
            return
        cache.data.pop(name, None)
        cache.pending.pop(name, None)
        cache.last_fetched_at = None

    def invalidate_packages(
        self, scope_id: ScopeId, manifest_key: ManifestKey | str, names: Iterable[str]
    ) -> None:
        for name in names:
            self.invalidate_package(scope_id, manifest_key, name)

    def clear_cache(
        self, scope_id: ScopeId | None = None, manifest_key: ManifestKey | str | None = None
    ) -> None:
        """Drop scope caches and dispose of their timers.

        With no arguments everything goes, including the shared negative cache.
        Results still in flight for a dropped scope are discarded on arrival.
        """
        key = ManifestKey.parse(manifest_key) if manifest_key is not None else None
        for cache in self.cache.select(scope_id, key):
            cache.dispose_timers()
            cache.batch_id += 1
            cache.set_state(ScopeState.IDLE)
            self._batches.pop((cache.manifest_key, cache.scope_id), None)
            self.cache.discard(cache)
        if scope_id is None:
            self.negative_cache.clear_all(key)

    async def wait_until_idle(self, scope_id: ScopeId, manifest_key: ManifestKey | str) -> None:
        cache = self.cache.get(scope_id, ManifestKey.parse(manifest_key))
        if cache is not None:
            await cache.idle.wait()

    def current_batch(
        self, scope_id: ScopeId, manifest_key: ManifestKey | str
    ) -> BatchScheduler | None:
        """The most recent HTTP batch for a scope, drained or not."""
        return self._batches.get((ManifestKey.parse(manifest_key), scope_id))

    def is_loading(self, scope_id: ScopeId, manifest_key: ManifestKey | str) -> bool:
        cache = self.cache.get(scope_id, ManifestKey.parse(manifest_key))
        return bool(cache and cache.loading)

    async def latest_version(
        self, manifest_key: ManifestKey | str, name: str, current: str | None = None
    ) -> FetchResult:
        return await self.lookup.latest(ManifestKey.parse(manifest_key), name, current)

    async def list_versions(
        self, manifest_key: ManifestKey | str, name: str, current: str | None = None
    ) -> VersionList | None:
        key = ManifestKey.parse(manifest_key)
        if current is None:
            dep = self._dependencies.installed(key).get(name)
            current = dep.current_version if dep else None
        return await self.lookup.versions(key, name, current)

    # ── batch internals ────────────────────────────────────────────────────

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _start_watchdog(self, cache: ScopeCache) -> None:
        if cache.watchdog is None:
            cache.watchdog = BatchWatchdog(
                self._clock,
                self.settings.overall_watchdog,
                lambda: self._on_watchdog(cache),
            )
        cache.watchdog.start()

    def _on_watchdog(self, cache: ScopeCache) -> None:
        if not cache.loading:
            return
        log.warning(
            "watchdog.fired",
            scope=str(cache.scope_id),
            ecosystem=cache.manifest_key.value,
            timeout=self.settings.overall_watchdog,
        )
        cache.batch_id += 1
        if cache.publish_timer is not None:
            cache.publish_timer.cancel()
            cache.publish_timer = None
        self.cache.merge_pending(cache)
        cache.classification = {}
        cache.set_state(ScopeState.IDLE)
        self.cache.emit(cache)

    def _finish_batch(self, cache: ScopeCache, batch_id: int) -> None:
        if cache.batch_id != batch_id or not cache.loading:
            return
        if cache.watchdog is not None:
            cache.watchdog.stop()
        cache.last_changed = self._clock.now()
        cache.set_state(ScopeState.PUBLISHING)
        self.cache.schedule_publish(cache)

    def _run_http_batch(self, cache: ScopeCache, wanted: dict[str, str]) -> None:
        key = cache.manifest_key
        batch_id = cache.batch_id

        async def lookup(name: str) -> FetchResult:
            return await self.lookup.latest(key, name, wanted[name])

        def on_result(result: FetchResult) -> None:
            if cache.batch_id != batch_id:
                return
            if not result.ok:
                log.info("package.unresolved", package=result.name, reason=result.error)
            self.cache.add_pending_result(cache, result.name, result.latest_version)

        names = list(wanted)
        concurrency = compute_concurrency(len(names), self.settings)
        log.info(
            "batch.started",
            scope=str(cache.scope_id),
            ecosystem=key.value,
            packages=len(names),
            concurrency=concurrency,
        )
        batch = BatchScheduler(
            names,
            lookup,
            concurrency=concurrency,
            on_result=on_result,
            on_drained=lambda: self._finish_batch(cache, batch_id),
        )
        self._batches[(key, cache.scope_id)] = batch
        batch.start()

    async def _run_cli_fallback(
        self,
        cache: ScopeCache,
        batch_id: int,
        commands: list[list[str]],
        wanted: list[str],
    ) -> None:
        cwd = self._cwd_resolver(cache.scope_id) if self._cwd_resolver else None
        found = await self._cli_runner.try_commands(commands, cwd, wanted)
        if cache.batch_id != batch_id or not cache.loading:
            return
        if not found:
            if cache.watchdog is not None:
                cache.watchdog.stop()
            cache.set_state(ScopeState.IDLE)
            self.cache.emit(cache, {})
            return
        for name, latest in found.items():
            self.cache.add_pending_result(cache, name, latest)
        self._finish_batch(cache, batch_id)
