"""Version string normalisation and ordering.

Only total ordering is needed here, not constraint solving: a version is
reduced to ``(major, minor, patch, prerelease)`` and compared as a tuple.
"""

from __future__ import annotations

import re
from functools import cmp_to_key
from typing import Iterable, NamedTuple

_REFERENCE_RE = re.compile(r"^(git\+|https?://|file:)", re.IGNORECASE)
_PATHLIKE_RE = re.compile(r".+/.+")
_LEADING_V_RE = re.compile(r"^[vV]")
_OPERATORS_RE = re.compile(r"^[\^~=<>]+\s*")
_SEMVER3_RE = re.compile(r"([0-9]+\.[0-9]+\.[0-9]+[-0-9A-Za-z.+]*)")
_SEMVER2_RE = re.compile(r"([0-9]+\.[0-9]+[-0-9A-Za-z.+]*)")
_PARSE_RE = re.compile(
    r"^(?P<major>\d+)(?:\.(?P<minor>\d+))?(?:\.(?P<patch>\d+))?(?:-(?P<pre>[0-9A-Za-z.-]+))?"
)
_GO_MAJOR_SUFFIX_RE = re.compile(r"/v\d+$")
_GOPKG_SUFFIX_RE = re.compile(r"\.v\d+$")


class ParsedVersion(NamedTuple):
    major: int
    minor: int
    patch: int
    prerelease: tuple[str, ...] = ()


def clean_version(value: str | None) -> str | None:
    """Strip operators and noise from a version string.

    Examples::

        "^1.2.3"      -> "1.2.3"
        ">=1.2.0 <2"  -> "1.2.0"
        "v2.0.1"      -> "2.0.1"
        "git+ssh://…" -> None
        "file:../pkg" -> None
    """
    if not isinstance(value, str):
        return None
    s = value.strip()
    if _REFERENCE_RE.match(s) or (_PATHLIKE_RE.match(s) and not s[:1].isdigit()):
        return None
    s = _LEADING_V_RE.sub("", s)
    s = _OPERATORS_RE.sub("", s)
    s = _LEADING_V_RE.sub("", s)
    match = _SEMVER3_RE.search(s) or _SEMVER2_RE.search(s)
    return match.group(1) if match else None


def parse_version(value: str | None) -> ParsedVersion | None:
    """Reduce *value* to a comparable tuple, or None if it has no numeric core."""
    if value is None:
        return None
    s = str(value).strip()
    s = _OPERATORS_RE.sub("", s)
    s = _LEADING_V_RE.sub("", s)
    s = s.split("+", 1)[0]
    match = _PARSE_RE.match(s)
    if match is None:
        return None
    pre = match.group("pre")
    return ParsedVersion(
        int(match.group("major")),
        int(match.group("minor") or 0),
        int(match.group("patch") or 0),
        tuple(pre.split(".")) if pre else (),
    )


def _compare_identifier(a: str, b: str) -> int:
    a_num, b_num = a.isdigit(), b.isdigit()
    if a_num and b_num:
        return (int(a) > int(b)) - (int(a) < int(b))
    if a_num != b_num:
        # numeric identifiers have lower precedence than alphanumeric ones
        return -1 if a_num else 1
    return (a > b) - (a < b)


def _compare_prerelease(a: tuple[str, ...], b: tuple[str, ...]) -> int:
    if a == b:
        return 0
    # a release outranks any prerelease of the same core
    if not a:
        return 1
    if not b:
        return -1
    for left, right in zip(a, b):
        cmp = _compare_identifier(left, right)
        if cmp:
            return cmp
    return (len(a) > len(b)) - (len(a) < len(b))


def compare_versions(a: str | None, b: str | None) -> int:
    """Return -1, 0 or 1. Unparsable versions sort below parsable ones."""
    pa, pb = parse_version(a), parse_version(b)
    if pa is None and pb is None:
        return 0
    if pa is None:
        return -1
    if pb is None:
        return 1
    core_a, core_b = pa[:3], pb[:3]
    if core_a != core_b:
        return 1 if core_a > core_b else -1
    return _compare_prerelease(pa.prerelease, pb.prerelease)


def sort_versions_desc(versions: Iterable[str]) -> list[str]:
    """De-duplicate and order newest first; ties fall back to string order."""

    def _cmp(a: str, b: str) -> int:
        cmp = compare_versions(b, a)
        if cmp == 0:
            return (a < b) - (a > b)
        return cmp

    return sorted(dict.fromkeys(versions), key=cmp_to_key(_cmp))


def go_module_path(name: str, version: str | None) -> str:
    """Module path for *name* at *version*, honouring major-version suffixes."""
    if not name or _GO_MAJOR_SUFFIX_RE.search(name) or _GOPKG_SUFFIX_RE.search(name):
        return name
    if version and "+incompatible" in version:
        return name
    parsed = parse_version(version)
    if parsed is not None and parsed.major >= 2:
        return f"{name}/v{parsed.major}"
    return name


def strip_go_major_suffix(name: str) -> str:
    return _GO_MAJOR_SUFFIX_RE.sub("", name)


def go_escape_path(module: str) -> str:
    """Case-encode a module path for the module proxy protocol (``A`` -> ``!a``)."""
    return "".join(f"!{ch.lower()}" if ch.isupper() else ch for ch in module)


def is_gopkg_path(name: str) -> bool:
    """gopkg.in style paths carry the major version as a ``.vN`` suffix."""
    return bool(_GOPKG_SUFFIX_RE.search(name))
