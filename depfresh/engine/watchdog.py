"""Batch watchdog — force-finalizes a batch that runs past its deadline."""

from __future__ import annotations

from collections.abc import Callable

from depfresh.clock import Clock, TimerHandle


class BatchWatchdog:
    """One-shot timer with idempotent start and stop.

    ``start`` is a no-op while armed; ``stop`` is a no-op when idle. Firing
    disarms the watchdog before invoking *on_fire*, so a drain racing with
    the timer sees it already stopped.
    """

    def __init__(self, clock: Clock, timeout: float, on_fire: Callable[[], None]) -> None:
        self._clock = clock
        self.timeout = timeout
        self._on_fire = on_fire
        self._handle: TimerHandle | None = None

    @property
    def active(self) -> bool:
        return self._handle is not None

    def start(self) -> bool:
        if self._handle is not None:
            return False
        self._handle = self._clock.call_later(self.timeout, self._fire)
        return True

    def stop(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.cancel()

    def _fire(self) -> None:
        if self._handle is None:
            return
        self._handle = None
        self._on_fire()
