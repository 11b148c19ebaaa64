"""depfresh — latest-version resolution for declared dependencies."""

from depfresh.config import FreshnessSettings
from depfresh.engine import FreshnessEngine
from depfresh.manifests import ManifestKey, manifest_key_for
from depfresh.models import (
    DependencyTable,
    FetchResult,
    Freshness,
    InstalledDependency,
    PublishEvent,
    VersionList,
)
from depfresh.versions import clean_version, compare_versions

__all__ = [
    "DependencyTable",
    "FetchResult",
    "Freshness",
    "FreshnessEngine",
    "FreshnessSettings",
    "InstalledDependency",
    "ManifestKey",
    "PublishEvent",
    "VersionList",
    "clean_version",
    "compare_versions",
    "manifest_key_for",
]

__version__ = "0.1.0"
