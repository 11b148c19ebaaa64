"""Tests for the local-tool fallback runner."""

from __future__ import annotations

import asyncio
import json
import os
import sys
from unittest.mock import AsyncMock, patch

import pytest

from depfresh.engine.cli_fallback import CliFallbackRunner, candidate_commands, extract_latest
from depfresh.manifests import ManifestKey

PUB_OUTDATED = json.dumps(
    {
        "packages": [
            {"package": "http", "current": {"version": "1.1.0"}, "latest": {"version": "1.2.0"}},
            {"package": "path", "current": {"version": "1.9.0"}, "latest": {"version": "1.9.0"}},
            {"package": "meta", "latest": None},
        ]
    }
)


# ── candidate_commands ────────────────────────────────────────────────────


class TestCandidateCommands:
    def test_only_available_tools(self):
        cmds = candidate_commands(ManifestKey.PUBSPEC, lambda tool: tool == "flutter")
        assert cmds[0] == ["flutter", "pub", "outdated", "--format=json"]
        assert {c[0] for c in cmds} == {"flutter"}

    def test_flutter_before_dart(self):
        cmds = candidate_commands(ManifestKey.PUBSPEC, lambda tool: True)
        assert [c[0] for c in cmds] == ["flutter"] * 3 + ["dart"] * 3

    def test_no_fallback_for_other_ecosystems(self):
        assert candidate_commands(ManifestKey.CRATES, lambda tool: True) == []


# ── extract_latest ────────────────────────────────────────────────────────


class TestExtractLatest:
    def test_pub_outdated_document(self):
        assert extract_latest(PUB_OUTDATED, ["http", "path", "meta"]) == {
            "http": "1.2.0",
            "path": "1.9.0",
        }

    def test_filters_to_wanted(self):
        assert extract_latest(PUB_OUTDATED, ["http"]) == {"http": "1.2.0"}

    def test_plain_mapping(self):
        raw = json.dumps({"a": {"latest": "2.0.0"}, "b": "3.0.0", "c": {"latest": {"version": "4.0.0"}}})
        assert extract_latest(raw, ["a", "b", "c"]) == {"a": "2.0.0", "b": "3.0.0", "c": "4.0.0"}

    @pytest.mark.parametrize("raw", ["", "Showing outdated packages.", "[]", "{}"])
    def test_unusable_output(self, raw):
        assert extract_latest(raw, ["http"]) == {}


# ── CliFallbackRunner ─────────────────────────────────────────────────────


class TestTryCommands:
    @pytest.mark.asyncio
    async def test_first_usable_command_wins(self):
        runner = CliFallbackRunner(timeout=5)
        outputs = [None, ("not json", ""), (PUB_OUTDATED, ""), ("{}", "")]
        with patch.object(runner, "_run", new=AsyncMock(side_effect=outputs)) as run:
            found = await runner.try_commands([["a"], ["b"], ["c"], ["d"]], None, ["http"])
        assert found == {"http": "1.2.0"}
        assert run.await_count == 3

    @pytest.mark.asyncio
    async def test_stderr_is_fallback_source(self):
        runner = CliFallbackRunner(timeout=5)
        with patch.object(runner, "_run", new=AsyncMock(return_value=("", PUB_OUTDATED))):
            found = await runner.try_commands([["flutter"]], None, ["path"])
        assert found == {"path": "1.9.0"}

    @pytest.mark.asyncio
    async def test_unwanted_only_tries_next(self):
        runner = CliFallbackRunner(timeout=5)
        outputs = [(PUB_OUTDATED, ""), (json.dumps({"other": "1.0.0"}), "")]
        with patch.object(runner, "_run", new=AsyncMock(side_effect=outputs)):
            found = await runner.try_commands([["a"], ["b"]], None, ["other"])
        assert found == {"other": "1.0.0"}

    @pytest.mark.asyncio
    async def test_exhausted_returns_none(self):
        runner = CliFallbackRunner(timeout=5)
        with patch.object(runner, "_run", new=AsyncMock(return_value=("", ""))):
            assert await runner.try_commands([["a"], ["b"]], None, ["http"]) is None

    @pytest.mark.asyncio
    async def test_missing_executable_is_skipped(self, tmp_path):
        runner = CliFallbackRunner(timeout=5)
        assert await runner._run(["depfresh-no-such-tool-xyz"], tmp_path) is None

    @pytest.mark.asyncio
    async def test_real_subprocess_output(self, tmp_path):
        runner = CliFallbackRunner(timeout=10)
        script = "import sys; sys.stdout.write(sys.argv[1])"
        payload = json.dumps({"http": {"latest": "1.2.0"}})
        found = await runner.try_commands([[sys.executable, "-c", script, payload]], tmp_path, ["http"])
        assert found == {"http": "1.2.0"}

    @pytest.mark.asyncio
    async def test_timeout_kills_command(self, tmp_path):
        runner = CliFallbackRunner(timeout=0.2)
        cmd = [sys.executable, "-c", "import time; time.sleep(5)"]
        assert await runner._run(cmd, tmp_path) is None

    @pytest.mark.asyncio
    async def test_cancel_kills_command(self, tmp_path):
        runner = CliFallbackRunner(timeout=60)
        spawned: list[asyncio.subprocess.Process] = []
        real_exec = asyncio.create_subprocess_exec

        async def _exec(*args, **kwargs):
            proc = await real_exec(*args, **kwargs)
            spawned.append(proc)
            return proc

        cmd = [sys.executable, "-c", "import time; time.sleep(30)"]
        with patch("depfresh.engine.cli_fallback.asyncio.create_subprocess_exec", side_effect=_exec):
            task = asyncio.create_task(runner.try_commands([cmd], tmp_path, ["http"]))
            while not spawned:
                await asyncio.sleep(0.01)
            await asyncio.sleep(0.1)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        proc = spawned[0]
        assert proc.returncode is not None
        with pytest.raises(ProcessLookupError):
            os.kill(proc.pid, 0)
