"""Fan-out/fan-in request batches.

A batch submits every request to a thread pool and joins on all of them
before returning. Results come back paired with the caller's key, in
completion order rather than submission order. There is no cancellation
and no timeout beyond the HTTP client's own; a request that never
completes holds the whole batch.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Hashable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from types import TracebackType
from typing import Any, TypeVar

from .logging import get_logger
from .rt_rest import Gateway, RemoteRequest

K = TypeVar('K', bound=Hashable)


class ConcurrencyConfig:
    """Configuration for concurrency settings."""

    def __init__(self, max_workers: int = 4):
        self.max_workers = max_workers


class BatchExecutor:
    """Runs gateway requests concurrently on a shared thread pool."""

    def __init__(self, gateway: Gateway, concurrency_config: ConcurrencyConfig | None = None):
        self.gateway = gateway
        self.config = concurrency_config or ConcurrencyConfig()
        self.logger = get_logger()
        self._executor: ThreadPoolExecutor | None = None

    def _pool(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=max(1, self.config.max_workers), thread_name_prefix="rtsuite"
            )
        return self._executor

    def close(self) -> None:
        if self._executor:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> BatchExecutor:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def submit(self, request: RemoteRequest) -> Future[Any]:
        """Issue one request; the future supports ``result()``, ``done()`` and joins."""
        return self._pool().submit(self.gateway.execute, request)

    def call(self, request: RemoteRequest) -> Any:
        """Synchronous single request (strict ordering for the caller)."""
        return self.gateway.execute(request)

    def gather(self, requests: Iterable[tuple[K, RemoteRequest]]) -> list[tuple[K, Any]]:
        futures: dict[Future[Any], K] = {
            self.submit(request): key for key, request in requests
        }
        if not futures:
            return []
        start = time.perf_counter()
        results: list[tuple[K, Any]] = []
        failures: list[tuple[K, BaseException]] = []
        for future in as_completed(futures):
            key = futures[future]
            exc = future.exception()
            if exc is not None:
                self.logger.log_error(f"batch request {key!r} failed", error=str(exc))
                failures.append((key, exc))
            else:
                results.append((key, future.result()))
        self.logger.log_performance(
            "batch_gather",
            (time.perf_counter() - start) * 1000,
            request_count=len(futures),
            failure_count=len(failures),
        )
        if failures:
            raise failures[0][1]
        return results

    async def gather_async(
        self, requests: Iterable[tuple[K, RemoteRequest]]
    ) -> list[tuple[K, Any]]:
        """Coroutine flavour of :meth:`gather` with the same join semantics."""
        loop = asyncio.get_running_loop()
        pool = self._pool()

        async def _run(key: K, request: RemoteRequest) -> tuple[K, Any]:
            result = await loop.run_in_executor(pool, self.gateway.execute, request)
            return key, result

        tasks = [asyncio.ensure_future(_run(key, request)) for key, request in requests]
        results: list[tuple[K, Any]] = []
        first_error: BaseException | None = None
        for next_done in asyncio.as_completed(tasks):
            try:
                results.append(await next_done)
            except Exception as exc:
                self.logger.log_error("batch request failed", error=str(exc))
                if first_error is None:
                    first_error = exc
        if first_error is not None:
            raise first_error
        return results


def create_batch_executor(
    gateway: Gateway, config: ConcurrencyConfig | None = None
) -> BatchExecutor:
    """Factory function to create a batch executor."""
    return BatchExecutor(gateway, config)


__all__ = ["BatchExecutor", "ConcurrencyConfig", "create_batch_executor"]
