"""Retrying registry fetcher guarded by the host breaker and negative cache."""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import httpx
import structlog

from depfresh.config import FreshnessSettings
from depfresh.engine.circuit_breaker import HostCircuitBreaker, host_from_url
from depfresh.engine.negative_cache import NegativeCache
from depfresh.engine.parsers import Parsed, Parser
from depfresh.errors import FailureKind
from depfresh.manifests import ManifestKey

log = structlog.get_logger("depfresh.engine")

T = TypeVar("T")


@dataclass(frozen=True)
class LookupOutcome(Generic[T]):
    """Result of one logical lookup (possibly several HTTP attempts)."""

    value: T | None = None
    error: str | None = None
    kind: FailureKind | None = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


class _Retry(Exception):
    def __init__(self, kind: FailureKind, reason: str) -> None:
        self.kind = kind
        self.reason = reason
        super().__init__(reason)


class RetryingFetcher:
    """Performs lookups with bounded retries and exponential backoff.

    Transport failures, empty bodies and 5xx responses are retried up to
    ``max_retries`` times; everything else is terminal. Terminal failures
    count against the host breaker and are negative-cached; a successful
    parse clears both.
    """

    def __init__(
        self,
        settings: FreshnessSettings,
        *,
        breaker: HostCircuitBreaker,
        negative_cache: NegativeCache,
        client: httpx.AsyncClient | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._settings = settings
        self.breaker = breaker
        self.negative_cache = negative_cache
        self._rng = rng or random.Random()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            headers={"User-Agent": settings.user_agent, "Accept": "application/json"},
            timeout=settings.per_request_timeout,
            follow_redirects=True,
        )

    # ── lifecycle ──────────────────────────────────────────────────────────

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> RetryingFetcher:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ── public ─────────────────────────────────────────────────────────────

    def backoff(self, attempt: int) -> float:
        """``base * 2^(attempt-1) + uniform(0, jitter)`` seconds."""
        s = self._settings
        return s.retry_base_delay * (2 ** (attempt - 1)) + self._rng.uniform(0, s.retry_jitter)

    async def fetch(
        self,
        url: str,
        name: str,
        manifest_key: ManifestKey,
        parser: Parser,
    ) -> LookupOutcome[Any]:
        """Look up *url* and run *parser* on the body. Never raises."""
        host = host_from_url(url)

        if self.breaker.is_blacked_out(host):
            return LookupOutcome(
                error=f"host temporarily suspended: {host}",
                kind=FailureKind.HOST_SUSPENDED,
            )

        cached = self.negative_cache.get(manifest_key, name)
        if cached is not None:
            return LookupOutcome(
                error=f"negative cache for {manifest_key.value}/{name}: {cached.reason}",
                kind=FailureKind.NEGATIVE_CACHED,
            )

        max_retries = self._settings.max_retries
        attempt = 0
        while True:
            attempt += 1
            try:
                return self._handle(await self._get(url), url, name, manifest_key, parser, attempt)
            except _Retry as retry:
                if attempt <= max_retries:
                    delay = self.backoff(attempt)
                    log.info(
                        "fetch.retry",
                        url=url,
                        package=name,
                        reason=retry.reason,
                        attempt=attempt,
                        max_retries=max_retries,
                        delay=round(delay, 3),
                    )
                    await asyncio.sleep(delay)
                    continue
                return self._fail(host, manifest_key, name, retry.kind, retry.reason, attempt)

    # ── internal ───────────────────────────────────────────────────────────

    async def _get(self, url: str) -> httpx.Response:
        try:
            return await self._client.get(url, timeout=self._settings.per_request_timeout)
        except httpx.HTTPError as exc:
            raise _Retry(FailureKind.TRANSPORT, f"no response from {url}: {exc!r}") from exc

    def _handle(
        self,
        response: httpx.Response,
        url: str,
        name: str,
        manifest_key: ManifestKey,
        parser: Parser,
        attempt: int,
    ) -> LookupOutcome[Any]:
        host = host_from_url(url)
        status = response.status_code
        body = response.text

        if not body:
            raise _Retry(FailureKind.TRANSPORT, f"empty body (status={status})")

        if not 200 <= status < 300:
            reason = f"HTTP {status}"
            if status >= 500:
                raise _Retry(FailureKind.PROTOCOL, reason)
            return self._fail(host, manifest_key, name, FailureKind.PROTOCOL, reason, attempt)

        try:
            parsed: Parsed[Any] = parser(body)
        except Exception as exc:
            parsed = Parsed(error=f"parser error: {exc!r}")
        if not parsed.ok:
            return self._fail(
                host, manifest_key, name, FailureKind.PARSE, str(parsed.error), attempt
            )

        self.breaker.record_success(host)
        self.negative_cache.clear(manifest_key, name)
        return LookupOutcome(value=parsed.value, attempts=attempt)

    def _fail(
        self,
        host: str,
        manifest_key: ManifestKey,
        name: str,
        kind: FailureKind,
        reason: str,
        attempt: int,
    ) -> LookupOutcome[Any]:
        self.breaker.record_failure(host)
        self.negative_cache.set(manifest_key, name, reason)
        log.warning(
            "fetch.failed",
            host=host,
            package=name,
            ecosystem=manifest_key.value,
            kind=kind.value,
            reason=reason,
            attempts=attempt,
        )
        return LookupOutcome(error=reason, kind=kind, attempts=attempt)
