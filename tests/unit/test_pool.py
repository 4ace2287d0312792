"""
Tests for the saga worker pool.
"""

import asyncio

import pytest

from ordersaga.core.exceptions import WorkerPoolClosedError
from ordersaga.execution.pool import SagaWorkerPool


class TestPoolConstruction:
    def test_rejects_zero_workers(self):
        with pytest.raises(ValueError, match="max_workers"):
            SagaWorkerPool(max_workers=0)

    def test_submit_before_start(self):
        pool = SagaWorkerPool(max_workers=1, name="idle")
        with pytest.raises(WorkerPoolClosedError, match="idle"):
            pool.submit(lambda: None)


@pytest.mark.asyncio
class TestPoolExecution:
    """Running work on the pool."""

    async def test_coroutine_and_plain_callables(self):
        async def double(x):
            await asyncio.sleep(0)
            return x * 2

        async with SagaWorkerPool(max_workers=2) as pool:
            assert await pool.submit(double, 21) == 42
            assert await pool.submit(lambda a, b=0: a + b, 1, b=2) == 3

    async def test_exceptions_reach_the_caller(self):
        async def boom():
            msg = "boom"
            raise RuntimeError(msg)

        async with SagaWorkerPool(max_workers=1) as pool:
            with pytest.raises(RuntimeError, match="boom"):
                await pool.submit(boom)
            assert pool.stats()["failed"] == 1

    async def test_concurrency_is_bounded(self):
        """Never more than max_workers units run at once."""
        running = 0
        peak = 0

        async def work():
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1

        async with SagaWorkerPool(max_workers=3) as pool:
            await asyncio.gather(*(pool.submit(work) for _ in range(12)))

        assert peak == 3

    async def test_cancelled_caller_does_not_abort_work(self):
        """Cancelling the waiting caller leaves the unit of work running."""
        finished = asyncio.Event()

        async def slow():
            await asyncio.sleep(0.02)
            finished.set()
            return "done"

        async with SagaWorkerPool(max_workers=1) as pool:
            future = pool.submit(slow)
            waiter = asyncio.ensure_future(asyncio.shield(future))
            await asyncio.sleep(0)
            waiter.cancel()
            with pytest.raises(asyncio.CancelledError):
                await waiter

            assert await future == "done"
        assert finished.is_set()

    async def test_cancelled_future_is_skipped(self):
        """Work whose future was cancelled before it started never runs."""
        ran = []
        gate = asyncio.Event()

        async def blocker():
            await gate.wait()

        async with SagaWorkerPool(max_workers=1) as pool:
            first = pool.submit(blocker)
            second = pool.submit(ran.append, "second")
            second.cancel()
            gate.set()
            await first

        assert ran == []

    async def test_stats(self):
        async with SagaWorkerPool(max_workers=2, name="stats") as pool:
            await pool.submit(lambda: 1)
            stats = pool.stats()

        assert stats["name"] == "stats"
        assert stats["max_workers"] == 2
        assert stats["running"] is True
        assert stats["submitted"] == 1
        assert stats["completed"] == 1
        assert stats["active"] == 0


@pytest.mark.asyncio
class TestPoolShutdown:
    """Draining and cancelling on shutdown."""

    async def test_drain_finishes_queued_work(self):
        pool = SagaWorkerPool(max_workers=1)
        await pool.start()

        async def work(i):
            await asyncio.sleep(0.001)
            return i

        futures = [pool.submit(work, i) for i in range(5)]
        await pool.shutdown(drain=True)

        assert [f.result() for f in futures] == [0, 1, 2, 3, 4]
        assert not pool.running

    async def test_no_drain_cancels_queued_work(self):
        pool = SagaWorkerPool(max_workers=1)
        await pool.start()
        gate = asyncio.Event()

        async def blocker():
            await gate.wait()
            return "ran"

        running = pool.submit(blocker)
        await asyncio.sleep(0)
        queued = [pool.submit(blocker) for _ in range(3)]

        shutdown = asyncio.ensure_future(pool.shutdown(drain=False))
        await asyncio.sleep(0)
        gate.set()
        await shutdown

        assert await running == "ran"
        assert all(f.cancelled() for f in queued)

    async def test_submit_after_shutdown(self):
        pool = SagaWorkerPool(max_workers=1)
        await pool.start()
        await pool.shutdown()
        with pytest.raises(WorkerPoolClosedError):
            pool.submit(lambda: None)

    async def test_start_and_shutdown_are_idempotent(self):
        pool = SagaWorkerPool(max_workers=2)
        await pool.start()
        await pool.start()
        assert pool.stats()["running"]
        await pool.shutdown()
        await pool.shutdown()
        assert not pool.running
