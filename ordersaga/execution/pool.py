"""
Saga Worker Pool - bounded asyncio executor for saga runs.

Each submitted unit of work (one create, pay or cancel saga) runs on one of
``max_workers`` worker tasks. The caller gets an ``asyncio.Future`` back
immediately and awaits it for the outcome.

Once a unit of work has started it always runs to completion: cancelling
the returned future only stops the caller from waiting, the worker keeps
going.

Usage:
    >>> pool = SagaWorkerPool(max_workers=10, name="orders")
    >>> await pool.start()
    >>> future = pool.submit(orchestrator.create_order, "cust-1", items)
    >>> order = await future
    >>> await pool.shutdown(drain=True)

    >>> # or
    >>> async with SagaWorkerPool(max_workers=4) as pool:
    ...     order = await pool.submit(orchestrator.get_order, 1)
"""

import asyncio
import inspect
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from ordersaga.core.exceptions import WorkerPoolClosedError
from ordersaga.core.logger import get_logger

logger = get_logger(__name__)


@dataclass
class _WorkItem:
    fn: Callable[..., Any]
    args: tuple[Any, ...]
    kwargs: dict[str, Any]
    future: asyncio.Future = field(repr=False)


class SagaWorkerPool:
    """
    Fixed-size pool of asyncio worker tasks.

    Lifecycle:
        1. ``start()`` spawns the workers
        2. ``submit()`` queues work and returns a Future
        3. ``shutdown(drain=True)`` stops intake, waits for queued work,
           then stops the workers. With ``drain=False`` queued work that has
           not started yet is cancelled; work already running still finishes.
    """

    def __init__(self, max_workers: int = 10, name: str = "saga-pool"):
        if max_workers < 1:
            msg = f"max_workers must be >= 1, got {max_workers}"
            raise ValueError(msg)

        self.max_workers = max_workers
        self.name = name

        self._queue: asyncio.Queue[_WorkItem | None] = asyncio.Queue()
        self._workers: list[asyncio.Task] = []
        self._running = False
        self._active = 0

        # Metrics
        self._submitted = 0
        self._completed = 0
        self._failed = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Spawn the worker tasks. Starting a running pool is a no-op."""
        if self._running:
            return
        self._running = True
        self._workers = [
            asyncio.create_task(self._worker_loop(i), name=f"{self.name}-worker-{i}")
            for i in range(self.max_workers)
        ]
        logger.info(f"Worker pool {self.name} started with {self.max_workers} workers")

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> asyncio.Future:
        """
        Queue ``fn(*args, **kwargs)`` and return a Future for its result.

        ``fn`` may be a coroutine function or a plain callable.

        Raises:
            WorkerPoolClosedError: The pool is not running
        """
        if not self._running:
            msg = f"Worker pool {self.name} is not running"
            raise WorkerPoolClosedError(msg)

        future = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(_WorkItem(fn, args, kwargs, future))
        self._submitted += 1
        return future

    async def _worker_loop(self, index: int) -> None:
        while True:
            item = await self._queue.get()
            try:
                if item is None:
                    return
                await self._run(item)
            finally:
                self._queue.task_done()

    async def _run(self, item: _WorkItem) -> None:
        if item.future.cancelled():
            logger.debug(f"Skipping cancelled work item {item.fn!r} in pool {self.name}")
            return

        self._active += 1
        try:
            result = item.fn(*item.args, **item.kwargs)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            self._failed += 1
            if not item.future.done():
                item.future.set_exception(e)
        else:
            self._completed += 1
            if not item.future.done():
                item.future.set_result(result)
        finally:
            self._active -= 1

    async def shutdown(self, drain: bool = True) -> None:
        """
        Stop the pool.

        Args:
            drain: Wait for queued work (True) or cancel work that has not
                started yet (False)
        """
        if not self._running:
            return
        self._running = False
        logger.info(f"Shutting down worker pool {self.name} (drain={drain})")

        if not drain:
            cancelled = 0
            while not self._queue.empty():
                item = self._queue.get_nowait()
                self._queue.task_done()
                if item is not None and not item.future.done():
                    item.future.cancel()
                    cancelled += 1
            if cancelled:
                logger.warning(f"Cancelled {cancelled} queued work items in pool {self.name}")

        for _ in self._workers:
            self._queue.put_nowait(None)
        await asyncio.gather(*self._workers)
        self._workers = []
        logger.info(f"Worker pool {self.name} stopped")

    def stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "max_workers": self.max_workers,
            "running": self._running,
            "active": self._active,
            "queued": self._queue.qsize(),
            "submitted": self._submitted,
            "completed": self._completed,
            "failed": self._failed,
        }

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown(drain=True)
