"""Batch executor tests (synchronous wrappers).

The async flavour is driven through ``asyncio.run`` so no pytest-asyncio
plugin is needed.
"""

from __future__ import annotations

import asyncio
import threading
import time
from typing import Any

import pytest

from rtsuite.concurrency import BatchExecutor, ConcurrencyConfig, create_batch_executor
from rtsuite.errors import RTAPIError
from rtsuite.rt_rest import RemoteRequest


class _SlowGateway:
    """Answers ``echo/<value>`` after a per-path delay; ``fail/...`` raises."""

    def __init__(self, delays: dict[str, float] | None = None):
        self.delays = delays or {}
        self.seen: list[str] = []
        self._lock = threading.Lock()

    def execute(self, request: RemoteRequest) -> Any:
        time.sleep(self.delays.get(request.path, 0.0))
        with self._lock:
            self.seen.append(request.path)
        if request.path.startswith("fail/"):
            raise RTAPIError(f"{request.path} failed", status=500)
        return request.path.split("/", 1)[1]


def test_concurrency_config_defaults() -> None:
    assert ConcurrencyConfig().max_workers == 4
    assert ConcurrencyConfig(max_workers=2).max_workers == 2


def test_gather_returns_every_key() -> None:
    with create_batch_executor(_SlowGateway()) as executor:
        results = executor.gather(
            [("a", RemoteRequest("echo/1")), ("b", RemoteRequest("echo/2"))]
        )
    assert dict(results) == {"a": "1", "b": "2"}


def test_gather_yields_completion_order() -> None:
    gateway = _SlowGateway({"echo/slow": 0.3, "echo/fast": 0.0})
    with BatchExecutor(gateway, ConcurrencyConfig(max_workers=2)) as executor:
        results = executor.gather(
            [("slow", RemoteRequest("echo/slow")), ("fast", RemoteRequest("echo/fast"))]
        )
    assert [key for key, _ in results] == ["fast", "slow"]


def test_gather_empty_batch() -> None:
    with BatchExecutor(_SlowGateway()) as executor:
        assert executor.gather([]) == []


def test_gather_joins_before_raising() -> None:
    gateway = _SlowGateway({"echo/late": 0.2})
    with BatchExecutor(gateway, ConcurrencyConfig(max_workers=2)) as executor:
        with pytest.raises(RTAPIError):
            executor.gather(
                [("bad", RemoteRequest("fail/x")), ("late", RemoteRequest("echo/late"))]
            )
    assert sorted(gateway.seen) == ["echo/late", "fail/x"]


def test_submit_returns_future() -> None:
    with BatchExecutor(_SlowGateway()) as executor:
        future = executor.submit(RemoteRequest("echo/9"))
        assert future.result(timeout=5) == "9"
        assert future.done()


def test_call_is_synchronous() -> None:
    gateway = _SlowGateway()
    executor = BatchExecutor(gateway)
    assert executor.call(RemoteRequest("echo/3")) == "3"
    assert gateway.seen == ["echo/3"]
    executor.close()


def test_gather_async() -> None:
    async def _run() -> list[tuple[str, Any]]:
        with BatchExecutor(_SlowGateway({"echo/slow": 0.2})) as executor:
            return await executor.gather_async(
                [("slow", RemoteRequest("echo/slow")), ("fast", RemoteRequest("echo/fast"))]
            )

    results = asyncio.run(_run())
    assert results == [("fast", "fast"), ("slow", "slow")]


def test_gather_async_raises_after_join() -> None:
    async def _run() -> None:
        with BatchExecutor(_SlowGateway()) as executor:
            await executor.gather_async([("x", RemoteRequest("fail/x"))])

    with pytest.raises(RTAPIError):
        asyncio.run(_run())
