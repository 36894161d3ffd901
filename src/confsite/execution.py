"""Thread pool for blocking calls such as SMTP delivery."""

from __future__ import annotations

import asyncio
import functools
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, TypeVar

import msgspec

T = TypeVar("T")


class ExecutionConfig(msgspec.Struct, frozen=True):
    max_workers: int = 4
    thread_name_prefix: str = "confsite-io"
    # Seconds a blocking call may take before the awaiting request gives up on it.
    task_timeout: float | None = 30.0


class TaskExecutor:
    """Run blocking callables off the event loop.

    The pool is created on first use and discarded by :meth:`shutdown`, so an
    executor that never sends mail never starts a thread.
    """

    def __init__(self, config: ExecutionConfig | None = None) -> None:
        self.config = config or ExecutionConfig()
        self._pool: ThreadPoolExecutor | None = None

    async def __aenter__(self) -> "TaskExecutor":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.shutdown()

    @property
    def started(self) -> bool:
        return self._pool is not None

    async def run(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run ``func`` on the pool; raises :class:`TimeoutError` past ``task_timeout``.

        A timed out call keeps running on its thread, only the caller stops waiting.
        """

        if self._pool is None:
            self._pool = ThreadPoolExecutor(
                max_workers=self.config.max_workers,
                thread_name_prefix=self.config.thread_name_prefix,
            )
        future = asyncio.get_running_loop().run_in_executor(self._pool, functools.partial(func, *args, **kwargs))
        return await asyncio.wait_for(future, timeout=self.config.task_timeout)

    async def shutdown(self) -> None:
        if self._pool is not None:
            self._pool.shutdown(wait=False, cancel_futures=True)
            self._pool = None


__all__ = ["ExecutionConfig", "TaskExecutor"]
