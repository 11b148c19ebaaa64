"""Registry catalogue — URL templates and parsers per ecosystem."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from urllib.parse import quote

from depfresh.config import FreshnessSettings
from depfresh.engine import parsers
from depfresh.engine.parsers import Parser
from depfresh.manifests import ManifestKey
from depfresh.versions import go_escape_path


def _accept_any(name: str) -> bool:
    return bool(name)


def is_packagist_candidate(name: str) -> bool:
    """Only ``vendor/package`` names live on Packagist (not ``php`` or ``ext-*``)."""
    return "/" in name and not name.startswith("ext-")


@dataclass(frozen=True)
class Registry:
    manifest_key: ManifestKey
    latest_path: Callable[[str], str]
    latest_parser: Parser
    versions_path: Callable[[str], str]
    versions_parser: Parser
    accepts: Callable[[str], bool] = _accept_any

    def latest_url(self, settings: FreshnessSettings, name: str) -> str:
        return settings.registry_uri(self.manifest_key) + self.latest_path(name)

    def versions_url(self, settings: FreshnessSettings, name: str) -> str:
        return settings.registry_uri(self.manifest_key) + self.versions_path(name)


def _npm_escape(name: str) -> str:
    # @scope/pkg -> @scope%2Fpkg
    return quote(name, safe="@")


REGISTRIES: dict[ManifestKey, Registry] = {
    ManifestKey.CRATES: Registry(
        manifest_key=ManifestKey.CRATES,
        latest_path=lambda name: f"/{quote(name, safe='')}",
        latest_parser=parsers.parse_crates_latest,
        versions_path=lambda name: f"/{quote(name, safe='')}",
        versions_parser=parsers.parse_crates_versions,
    ),
    ManifestKey.PACKAGE: Registry(
        manifest_key=ManifestKey.PACKAGE,
        latest_path=lambda name: f"/{_npm_escape(name)}",
        latest_parser=parsers.parse_npm_latest,
        versions_path=lambda name: f"/{_npm_escape(name)}",
        versions_parser=parsers.parse_npm_versions,
    ),
    ManifestKey.PUBSPEC: Registry(
        manifest_key=ManifestKey.PUBSPEC,
        latest_path=lambda name: f"/packages/{quote(name, safe='')}",
        latest_parser=parsers.parse_pub_latest,
        versions_path=lambda name: f"/packages/{quote(name, safe='')}",
        versions_parser=parsers.parse_pub_versions,
    ),
    ManifestKey.COMPOSER: Registry(
        manifest_key=ManifestKey.COMPOSER,
        latest_path=lambda name: f"/{quote(name.lower(), safe='/')}.json",
        latest_parser=parsers.parse_packagist_latest,
        versions_path=lambda name: f"/{quote(name.lower(), safe='/')}.json",
        versions_parser=parsers.parse_packagist_versions,
        accepts=is_packagist_candidate,
    ),
    ManifestKey.GO: Registry(
        manifest_key=ManifestKey.GO,
        latest_path=lambda name: f"/{go_escape_path(name)}/@latest",
        latest_parser=parsers.parse_go_latest,
        versions_path=lambda name: f"/{go_escape_path(name)}/@v/list",
        versions_parser=parsers.parse_go_version_list,
    ),
}


def http_registries(settings: FreshnessSettings) -> dict[ManifestKey, Registry]:
    """Registries with HTTP lookup enabled under *settings*."""
    return {k: r for k, r in REGISTRIES.items() if k not in settings.http_disabled}
