"""Tests for registry URL templates."""

from __future__ import annotations

import pytest

from depfresh.config import FreshnessSettings
from depfresh.engine.registries import REGISTRIES, http_registries, is_packagist_candidate
from depfresh.manifests import ManifestKey

SETTINGS = FreshnessSettings()


# ── URL templates ─────────────────────────────────────────────────────────


class TestRegistryUrls:
    @pytest.mark.parametrize(
        "key,name,url",
        [
            (ManifestKey.CRATES, "serde", "https://crates.io/api/v1/crates/serde"),
            (ManifestKey.PACKAGE, "react", "https://registry.npmjs.org/react"),
            (ManifestKey.PACKAGE, "@types/node", "https://registry.npmjs.org/@types%2Fnode"),
            (ManifestKey.PUBSPEC, "http", "https://pub.dev/api/packages/http"),
            (
                ManifestKey.COMPOSER,
                "Monolog/Monolog",
                "https://repo.packagist.org/p2/monolog/monolog.json",
            ),
            (
                ManifestKey.GO,
                "github.com/BurntSushi/toml",
                "https://proxy.golang.org/github.com/!burnt!sushi/toml/@latest",
            ),
        ],
    )
    def test_latest_url(self, key, name, url):
        assert REGISTRIES[key].latest_url(SETTINGS, name) == url

    def test_go_version_list_url(self):
        url = REGISTRIES[ManifestKey.GO].versions_url(SETTINGS, "golang.org/x/net")
        assert url == "https://proxy.golang.org/golang.org/x/net/@v/list"

    def test_custom_base_uri(self):
        s = FreshnessSettings(crates_uri="http://mirror.local/crates/")
        assert REGISTRIES[ManifestKey.CRATES].latest_url(s, "rand") == "http://mirror.local/crates/rand"

    def test_http_disabled(self):
        s = FreshnessSettings(http_disabled=frozenset({"pubspec"}))
        assert ManifestKey.PUBSPEC not in http_registries(s)
        assert len(http_registries(s)) == len(ManifestKey) - 1

    @pytest.mark.parametrize(
        "name,ok",
        [("monolog/monolog", True), ("php", False), ("ext-json", False), ("ext-foo/bar", False)],
    )
    def test_packagist_candidate(self, name, ok):
        assert is_packagist_candidate(name) is ok
