"""Freshness engine — scheduler, fetcher, caches and publisher."""

from depfresh.engine.runner import FreshnessEngine
from depfresh.engine.publisher import ScopeState, classify
from depfresh.engine.scheduler import BatchScheduler, compute_concurrency

__all__ = ["BatchScheduler", "FreshnessEngine", "ScopeState", "classify", "compute_concurrency"]
