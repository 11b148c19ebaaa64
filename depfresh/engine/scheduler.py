"""Concurrency-bounded batch scheduler."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence

import structlog

from depfresh.config import FreshnessSettings
from depfresh.errors import FailureKind
from depfresh.models import FetchResult

log = structlog.get_logger("depfresh.engine")

Lookup = Callable[[str], Awaitable[FetchResult]]


def compute_concurrency(n: int, settings: FreshnessSettings) -> int:
    """Parallelism for a batch of *n* names.

    Grows sub-linearly with *n* up to ``max_concurrency`` and backs off for
    very large batches to stay clear of registry rate limits.
    """
    concurrency = min(
        settings.max_concurrency,
        max(1, n // settings.concurrency_step + 1, settings.base_concurrency),
    )
    if n > settings.large_batch:
        return 1
    if n > settings.medium_batch:
        return min(concurrency, settings.medium_batch_cap)
    return concurrency


class BatchScheduler:
    """Runs *lookup* for every name, at most *concurrency* at a time.

    Each completion frees a slot that is refilled immediately. When the
    cursor is exhausted and nothing is in flight the batch is drained and
    *on_drained* fires exactly once. A lookup that raises is recorded as a
    failed result; it never stops its siblings.
    """

    def __init__(
        self,
        names: Sequence[str],
        lookup: Lookup,
        *,
        concurrency: int,
        on_result: Callable[[FetchResult], None],
        on_drained: Callable[[], None],
    ) -> None:
        self._names = list(names)
        self._lookup = lookup
        self.concurrency = max(1, concurrency)
        self._on_result = on_result
        self._on_drained = on_drained
        self.in_flight = 0
        self.cursor = 0
        self.completed = 0
        self._tasks: set[asyncio.Task[None]] = set()
        self._drained = asyncio.Event()

    @property
    def total(self) -> int:
        return len(self._names)

    @property
    def drained(self) -> bool:
        return self._drained.is_set()

    def start(self) -> None:
        self._fill()
        self._finish_if_done()

    async def wait(self) -> None:
        await self._drained.wait()

    def cancel(self) -> list[asyncio.Task[None]]:
        """Cancel outstanding lookups and return their tasks for awaiting."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        return tasks

    def _fill(self) -> None:
        while self.in_flight < self.concurrency and self.cursor < len(self._names):
            name = self._names[self.cursor]
            self.cursor += 1
            self.in_flight += 1
            task = asyncio.create_task(self._run_one(name), name=f"depfresh-lookup-{name}")
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _run_one(self, name: str) -> None:
        try:
            result = await self._lookup(name)
        except Exception as exc:
            log.exception("scheduler.lookup_error", package=name)
            result = FetchResult(name=name, error=f"lookup error: {exc!r}", kind=FailureKind.PARSE)
        self.in_flight -= 1
        self.completed += 1
        self._on_result(result)
        self._fill()
        self._finish_if_done()

    def _finish_if_done(self) -> None:
        if self.drained or self.cursor < len(self._names) or self.in_flight:
            return
        self._drained.set()
        log.debug("batch.drained", total=len(self._names))
        self._on_drained()
