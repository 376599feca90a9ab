"""Bounded asyncio job queue feeding the terms tracking pipeline."""
from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

ErrorHandler = Callable[[Exception, Any], "Awaitable[None] | None"]


class TrackingQueue(Generic[T]):
    """Runs ``worker(item)`` for every pushed item, ``concurrency`` at a time.

    Failures are passed to ``on_error`` instead of escaping the worker tasks.
    """

    def __init__(
        self,
        worker: Callable[[T], Awaitable[Any]],
        *,
        concurrency: int = 1,
        maxsize: int = 0,
        on_error: ErrorHandler | None = None,
    ) -> None:
        self._worker = worker
        self._on_error = on_error
        self._queue: asyncio.Queue[T] = asyncio.Queue(maxsize=maxsize)
        self._tasks: set[asyncio.Task[None]] = set()
        self._killed = False
        self.concurrency = concurrency

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @concurrency.setter
    def concurrency(self, value: int) -> None:
        if value < 1:
            raise ValueError(f"Concurrency must be at least 1, got {value}")
        self._concurrency = value

    @property
    def running(self) -> int:
        return len(self._tasks)

    def __len__(self) -> int:
        return self._queue.qsize()

    def push(self, item: T) -> None:
        if self._killed:
            logger.warning("Queue has been killed, dropping %r", item)
            return
        self._queue.put_nowait(item)
        self._spawn_workers()

    async def drain(self) -> None:
        """Wait until every pushed item has been processed."""
        await self._queue.join()
        await self._stop_workers()

    def kill(self) -> None:
        """Drop pending items and stop the workers; further pushes are ignored."""
        self._killed = True
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()
        current = asyncio.current_task()
        for task in self._tasks:
            if task is not current:
                task.cancel()

    def _spawn_workers(self) -> None:
        for _ in range(self._concurrency - self.running):
            task = asyncio.create_task(self._work())
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _work(self) -> None:
        while not self._killed:
            item = await self._queue.get()
            try:
                await self._worker(item)
            except Exception as error:
                await self._handle_error(error, item)
            finally:
                self._queue.task_done()

    async def _handle_error(self, error: Exception, item: T) -> None:
        if self._on_error is None:
            logger.error("Job %r failed: %s", item, error, exc_info=error)
            return
        try:
            result = self._on_error(error, item)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Error handler failed for job %r", item)

    async def _stop_workers(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
