"""Local-tool fallback for ecosystems without an HTTP lookup.

Unlike the per-package fetcher this is one batch call: the first candidate
command whose JSON output mentions any of the wanted packages wins.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import Any

import structlog

from depfresh.manifests import ManifestKey

log = structlog.get_logger("depfresh.engine")

ToolProbe = Callable[[str], bool]

# tool -> argv variants, tried in order
CLI_FALLBACKS: dict[ManifestKey, list[tuple[str, list[list[str]]]]] = {
    ManifestKey.PUBSPEC: [
        (
            "flutter",
            [
                ["flutter", "pub", "outdated", "--format=json"],
                ["flutter", "pub", "outdated", "--json"],
                ["flutter", "pub", "outdated"],
            ],
        ),
        (
            "dart",
            [
                ["dart", "pub", "outdated", "--format=json"],
                ["dart", "pub", "outdated", "--json"],
                ["dart", "pub", "outdated"],
            ],
        ),
    ],
}


def candidate_commands(manifest_key: ManifestKey, tool_probe: ToolProbe) -> list[list[str]]:
    """Argv candidates for *manifest_key* whose tool is available."""
    commands: list[list[str]] = []
    for tool, variants in CLI_FALLBACKS.get(manifest_key, []):
        if tool_probe(tool):
            commands.extend(list(v) for v in variants)
    return commands


def _latest_of(info: Any) -> str | None:
    if isinstance(info, str):
        return info or None
    if isinstance(info, Mapping):
        latest = info.get("latest")
        if isinstance(latest, Mapping):
            latest = latest.get("version")
        if latest:
            return str(latest)
    return None


def extract_latest(raw: str, wanted: Iterable[str]) -> dict[str, str]:
    """Parse tool output into ``{name: latest}`` restricted to *wanted*.

    Understands the ``pub outdated --json`` document (a ``packages`` list)
    as well as a plain ``{name: {"latest": ...}}`` mapping. Anything that is
    not JSON yields an empty mapping.
    """
    try:
        parsed = json.loads(raw)
    except ValueError:
        return {}
    if not isinstance(parsed, dict) or not parsed:
        return {}

    entries: dict[str, Any]
    if isinstance(parsed.get("packages"), list):
        entries = {
            str(item["package"]): item
            for item in parsed["packages"]
            if isinstance(item, dict) and item.get("package")
        }
    else:
        entries = parsed

    wanted_set = set(wanted)
    out: dict[str, str] = {}
    for name, info in entries.items():
        if name not in wanted_set:
            continue
        latest = _latest_of(info)
        if latest:
            out[name] = latest
    return out


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
    await proc.wait()


class CliFallbackRunner:
    def __init__(self, *, timeout: float = 60.0) -> None:
        self._timeout = timeout

    async def try_commands(
        self,
        commands: list[list[str]],
        cwd: Path | None,
        wanted: Iterable[str],
    ) -> dict[str, str] | None:
        """Run *commands* in order; return the first non-empty filtered result.

        Returns None once every candidate is exhausted.
        """
        wanted = list(wanted)
        for cmd in commands:
            streams = await self._run(cmd, cwd)
            if streams is None:
                continue
            for raw in streams:
                found = extract_latest(raw, wanted) if raw.strip() else {}
                if found:
                    log.info("cli_fallback.resolved", command=" ".join(cmd), packages=len(found))
                    return found
            log.debug("cli_fallback.no_result", command=" ".join(cmd))
        log.warning("cli_fallback.exhausted", candidates=len(commands))
        return None

    async def _run(self, cmd: list[str], cwd: Path | None) -> tuple[str, str] | None:
        """Run *cmd*, returning (stdout, stderr) or None if it could not run."""
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(cwd) if cwd else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            log.debug("cli_fallback.spawn_failed", command=" ".join(cmd), error=str(exc))
            return None
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._timeout)
        except asyncio.TimeoutError:
            await _kill(proc)
            log.warning("cli_fallback.timeout", command=" ".join(cmd), timeout=self._timeout)
            return None
        except BaseException:
            # cancelled: reap the child before propagating
            await _kill(proc)
            raise
        return (
            stdout.decode(errors="replace"),
            stderr.decode(errors="replace"),
        )
