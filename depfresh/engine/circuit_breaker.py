"""Per-host circuit breaker.

A host is *closed* by default. After ``failure_threshold`` consecutive
failures it opens (is blacked out) until ``blackout_until``; once that time
passes it is closed again. Any success clears the record.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlsplit

import structlog

from depfresh.clock import Clock, LoopClock

log = structlog.get_logger("depfresh.engine")


@dataclass
class HostFailureRecord:
    host: str
    consecutive_failures: int = 0
    blackout_until: float | None = None
    last_failed: float | None = None


def host_from_url(url: str) -> str:
    return urlsplit(url).netloc


class HostCircuitBreaker:
    """Process-wide breaker shared by every scope and ecosystem."""

    def __init__(
        self,
        *,
        failure_threshold: int,
        blackout_duration: float,
        clock: Clock | None = None,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.blackout_duration = blackout_duration
        self._clock = clock or LoopClock()
        self._records: dict[str, HostFailureRecord] = {}

    def record_failure(self, host: str) -> None:
        now = self._clock.now()
        rec = self._records.setdefault(host, HostFailureRecord(host=host))
        rec.consecutive_failures += 1
        rec.last_failed = now
        if rec.consecutive_failures >= self.failure_threshold:
            rec.blackout_until = now + self.blackout_duration
            log.warning(
                "host.suspended",
                host=host,
                failures=rec.consecutive_failures,
                blackout_seconds=self.blackout_duration,
            )

    def record_success(self, host: str) -> None:
        self._records.pop(host, None)

    def is_blacked_out(self, host: str) -> bool:
        rec = self._records.get(host)
        return bool(rec and rec.blackout_until is not None and rec.blackout_until > self._clock.now())

    def failures(self, host: str) -> int:
        rec = self._records.get(host)
        return rec.consecutive_failures if rec else 0

    def record(self, host: str) -> HostFailureRecord | None:
        return self._records.get(host)

    def reset(self) -> None:
        self._records.clear()
