"""Tests for the host circuit breaker."""

from __future__ import annotations

from depfresh.engine.circuit_breaker import HostCircuitBreaker, host_from_url
from depfresh.testing import ManualClock

HOST = "registry.npmjs.org"


# ── HostCircuitBreaker ────────────────────────────────────────────────────


class TestHostCircuitBreaker:
    def _breaker(self, clock: ManualClock) -> HostCircuitBreaker:
        return HostCircuitBreaker(failure_threshold=3, blackout_duration=30.0, clock=clock)

    def test_opens_after_threshold(self):
        clock = ManualClock()
        breaker = self._breaker(clock)
        breaker.record_failure(HOST)
        breaker.record_failure(HOST)
        assert not breaker.is_blacked_out(HOST)
        breaker.record_failure(HOST)
        assert breaker.is_blacked_out(HOST)
        assert breaker.record(HOST).blackout_until == clock.now() + 30.0

    def test_closes_once_blackout_passes(self):
        clock = ManualClock()
        breaker = self._breaker(clock)
        for _ in range(3):
            breaker.record_failure(HOST)
        clock.advance(29.9)
        assert breaker.is_blacked_out(HOST)
        clock.advance(0.2)
        assert not breaker.is_blacked_out(HOST)

    def test_success_resets_count(self):
        clock = ManualClock()
        breaker = self._breaker(clock)
        breaker.record_failure(HOST)
        breaker.record_failure(HOST)
        breaker.record_success(HOST)
        assert breaker.failures(HOST) == 0
        breaker.record_failure(HOST)
        assert not breaker.is_blacked_out(HOST)

    def test_success_clears_open_breaker(self):
        breaker = self._breaker(ManualClock())
        for _ in range(3):
            breaker.record_failure(HOST)
        breaker.record_success(HOST)
        assert not breaker.is_blacked_out(HOST)
        assert breaker.record(HOST) is None

    def test_hosts_are_independent(self):
        breaker = self._breaker(ManualClock())
        for _ in range(3):
            breaker.record_failure(HOST)
        assert not breaker.is_blacked_out("crates.io")

    def test_reset(self):
        breaker = self._breaker(ManualClock())
        for _ in range(3):
            breaker.record_failure(HOST)
        breaker.reset()
        assert not breaker.is_blacked_out(HOST)


def test_host_from_url():
    assert host_from_url("https://crates.io/api/v1/crates/serde") == "crates.io"
    assert host_from_url("http://localhost:8080/x") == "localhost:8080"
