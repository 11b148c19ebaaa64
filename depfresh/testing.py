"""Test doubles for depfresh — deterministic time and publish capture.

Usage::

    from depfresh.testing import ManualClock, PublishRecorder

    clock = ManualClock()
    recorder = PublishRecorder()
    engine = FreshnessEngine(settings, table, on_publish=recorder, clock=clock)
    ...
    clock.advance(settings.publish_debounce)
    assert recorder.final().classification == {...}
"""

from __future__ import annotations

import heapq
import itertools
from collections.abc import Callable
from dataclasses import dataclass, field

from depfresh.models import PublishEvent


@dataclass(order=True)
class _Timer:
    when: float
    seq: int
    callback: Callable[[], None] = field(compare=False)
    cancelled: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        self.cancelled = True


class ManualClock:
    """A :class:`~depfresh.clock.Clock` whose time only moves on :meth:`advance`."""

    def __init__(self, start: float = 1000.0) -> None:
        self._now = start
        self._timers: list[_Timer] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> _Timer:
        timer = _Timer(self._now + max(delay, 0.0), next(self._seq), callback)
        heapq.heappush(self._timers, timer)
        return timer

    @property
    def pending(self) -> int:
        """Number of armed, uncancelled timers."""
        return sum(1 for t in self._timers if not t.cancelled)

    def advance(self, seconds: float) -> None:
        """Move time forward, firing due timers in order (including new ones)."""
        target = self._now + seconds
        while self._timers and self._timers[0].when <= target:
            timer = heapq.heappop(self._timers)
            if timer.cancelled:
                continue
            self._now = max(self._now, timer.when)
            timer.callback()
        self._now = target


class PublishRecorder:
    """Callable publish sink that keeps every event."""

    def __init__(self) -> None:
        self.events: list[PublishEvent] = []

    def __call__(self, event: PublishEvent) -> None:
        self.events.append(event)

    def settled(self) -> list[PublishEvent]:
        """Events emitted with ``loading=False``."""
        return [e for e in self.events if not e.loading]

    def final(self) -> PublishEvent | None:
        settled = self.settled()
        return settled[-1] if settled else None
