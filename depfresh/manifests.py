"""Manifest keys — which ecosystem a manifest file belongs to."""

from __future__ import annotations

from enum import Enum
from pathlib import PurePath

from depfresh.errors import UnknownManifestError


class ManifestKey(str, Enum):
    """Ecosystem identifier; selects the registry, parser and URL template."""

    CRATES = "crates"
    PACKAGE = "package"
    PUBSPEC = "pubspec"
    COMPOSER = "composer"
    GO = "go"

    @classmethod
    def parse(cls, value: str | ManifestKey) -> ManifestKey:
        """Accept either a key (``"crates"``) or a manifest file name."""
        if isinstance(value, ManifestKey):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError:
            key = manifest_key_for(value)
            if key is None:
                raise UnknownManifestError(value) from None
            return key


MANIFEST_FILES: dict[ManifestKey, tuple[str, ...]] = {
    ManifestKey.PACKAGE: ("package.json",),
    ManifestKey.CRATES: ("Cargo.toml",),
    ManifestKey.PUBSPEC: ("pubspec.yaml", "pubspec.yml"),
    ManifestKey.COMPOSER: ("composer.json",),
    ManifestKey.GO: ("go.mod",),
}

LOCK_CANDIDATES: dict[ManifestKey, tuple[str, ...]] = {
    ManifestKey.COMPOSER: ("composer.lock",),
    ManifestKey.PUBSPEC: ("pubspec.lock",),
    ManifestKey.PACKAGE: (
        "package-lock.json",
        "npm-shrinkwrap.json",
        "yarn.lock",
        "pnpm-lock.yaml",
    ),
    ManifestKey.CRATES: ("Cargo.lock",),
    ManifestKey.GO: ("go.sum",),
}

_BY_FILENAME: dict[str, ManifestKey] = {
    filename: key for key, filenames in MANIFEST_FILES.items() for filename in filenames
}


def manifest_key_for(filename: str) -> ManifestKey | None:
    """Map a manifest path or basename to its ecosystem, or None."""
    return _BY_FILENAME.get(PurePath(filename).name)
