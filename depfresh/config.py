"""Settings for the freshness engine.

Every tunable lives on :class:`FreshnessSettings`. Defaults can be overridden
per instance or from ``DEPFRESH_*`` environment variables via
:meth:`FreshnessSettings.from_env`. All durations are in seconds.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields

from depfresh.errors import ConfigError
from depfresh.manifests import ManifestKey

_ENV_PREFIX = "DEPFRESH_"


@dataclass(frozen=True)
class FreshnessSettings:
    # registry endpoints
    crates_uri: str = "https://crates.io/api/v1/crates"
    package_uri: str = "https://registry.npmjs.org"
    pubspec_uri: str = "https://pub.dev/api"
    composer_uri: str = "https://repo.packagist.org/p2"
    go_uri: str = "https://proxy.golang.org"
    user_agent: str = "depfresh/0.1 (+https://pypi.org/project/depfresh/)"

    # network
    per_request_timeout: float = 10.0
    overall_watchdog: float = 60.0
    publish_debounce: float = 0.12
    max_retries: int = 2
    retry_base_delay: float = 0.2
    retry_jitter: float = 0.1
    negative_cache_ttl: float = 300.0
    host_blackout: float = 30.0
    failure_threshold: int = 5

    # scheduling / caching
    cache_ttl: float = 600.0
    base_concurrency: int = 6
    max_concurrency: int = 12
    concurrency_step: int = 6
    medium_batch: int = 30
    medium_batch_cap: int = 2
    large_batch: int = 80

    # ecosystems whose HTTP lookup is switched off (CLI fallback applies)
    http_disabled: frozenset[ManifestKey] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        for name in (
            "per_request_timeout",
            "overall_watchdog",
            "publish_debounce",
            "retry_base_delay",
            "retry_jitter",
            "negative_cache_ttl",
            "host_blackout",
            "cache_ttl",
        ):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must be >= 0, got {getattr(self, name)!r}")
        if self.max_retries < 0:
            raise ConfigError(f"max_retries must be >= 0, got {self.max_retries!r}")
        if self.failure_threshold < 1:
            raise ConfigError(f"failure_threshold must be >= 1, got {self.failure_threshold!r}")
        if self.max_concurrency < 1 or self.base_concurrency < 1:
            raise ConfigError("base_concurrency and max_concurrency must be >= 1")
        if self.concurrency_step < 1:
            raise ConfigError(f"concurrency_step must be >= 1, got {self.concurrency_step!r}")
        object.__setattr__(
            self, "http_disabled", frozenset(ManifestKey.parse(k) for k in self.http_disabled)
        )

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None, **overrides) -> FreshnessSettings:
        """Build settings from ``DEPFRESH_<FIELD>`` variables, then *overrides*.

        ``DEPFRESH_HTTP_DISABLED`` is a comma-separated list of ecosystem keys.
        """
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}
        for f in fields(cls):
            raw = env.get(_ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            default = f.default
            try:
                if f.name == "http_disabled":
                    values[f.name] = frozenset(
                        part.strip() for part in raw.split(",") if part.strip()
                    )
                elif isinstance(default, bool):
                    values[f.name] = raw.lower() in ("1", "true", "yes", "on")
                elif isinstance(default, int):
                    values[f.name] = int(raw)
                elif isinstance(default, float):
                    values[f.name] = float(raw)
                else:
                    values[f.name] = raw
            except ValueError as exc:
                raise ConfigError(f"invalid value for {_ENV_PREFIX}{f.name.upper()}: {raw!r}") from exc
        values.update(overrides)
        return cls(**values)  # type: ignore[arg-type]

    def registry_uri(self, manifest_key: ManifestKey) -> str:
        return str(getattr(self, f"{manifest_key.value}_uri")).rstrip("/")
