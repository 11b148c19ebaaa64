"""Shared pytest fixtures for depfresh tests."""

from __future__ import annotations

import asyncio
import json
from collections import deque
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from depfresh.config import FreshnessSettings
from depfresh.engine import FreshnessEngine
from depfresh.models import DependencyTable
from depfresh.testing import ManualClock, PublishRecorder


class StubRegistry:
    """``httpx.MockTransport`` handler serving canned responses by URL path.

    Each path holds a queue of actions; the last action repeats once the
    queue is down to one. An action is an ``httpx.Response``, an exception
    instance to raise, or an ``asyncio.Event`` to wait on before answering
    with the next action.
    """

    def __init__(self) -> None:
        self.routes: dict[str, deque[Any]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, path: str, *actions: Any) -> None:
        self.routes.setdefault(path, deque()).extend(actions)

    def json(self, path: str, payload: Any, status: int = 200) -> None:
        self.add(path, httpx.Response(status, text=json.dumps(payload)))

    def text(self, path: str, body: str, status: int = 200) -> None:
        self.add(path, httpx.Response(status, text=body))

    def hold(self, path: str) -> asyncio.Event:
        gate = asyncio.Event()
        self.routes.setdefault(path, deque()).appendleft(gate)
        return gate

    def count(self, path: str) -> int:
        return sum(1 for r in self.requests if r.url.path == path)

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get(request.url.path)
        if not queue:
            return httpx.Response(404, text='{"error": "not found"}')
        action = queue.popleft() if len(queue) > 1 else queue[0]
        if isinstance(action, asyncio.Event):
            await action.wait()
            action = queue.popleft() if len(queue) > 1 else queue[0]
        if isinstance(action, Exception):
            raise action
        return action


async def _wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout=timeout)


@pytest.fixture
def wait_until():
    return _wait_until


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def recorder() -> PublishRecorder:
    return PublishRecorder()


@pytest.fixture
def settings() -> FreshnessSettings:
    """Zero backoff so retries never actually sleep."""
    return FreshnessSettings(retry_base_delay=0.0, retry_jitter=0.0)


@pytest.fixture
def registry() -> StubRegistry:
    return StubRegistry()


@pytest.fixture
def table() -> DependencyTable:
    return DependencyTable()


@pytest.fixture
def make_engine(settings, table, registry, clock, recorder):
    """Build a FreshnessEngine wired to the stub registry and manual clock."""

    def _make(**kwargs: Any) -> FreshnessEngine:
        client = httpx.AsyncClient(transport=httpx.MockTransport(registry))
        kwargs.setdefault("tool_probe", lambda _tool: False)
        return FreshnessEngine(
            kwargs.pop("settings", settings),
            kwargs.pop("dependencies", table),
            on_publish=kwargs.pop("on_publish", recorder),
            http_client=client,
            clock=clock,
            **kwargs,
        )

    return _make
