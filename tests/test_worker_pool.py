import asyncio

import pytest

from dimflow.executor.worker_pool import WorkerPool


def test_concurrency_is_bounded():
    async def scenario():
        pool = WorkerPool(2)
        peak = 0

        async def job():
            nonlocal peak
            peak = max(peak, pool.in_flight)
            await asyncio.sleep(0.01)
            return pool.in_flight

        results = await pool.run_all([job for _ in range(6)])
        return pool, peak, results

    pool, peak, results = asyncio.run(scenario())
    assert peak == 2
    assert len(results) == 6
    assert pool.in_flight == 0
    assert pool.pending == 0


def test_results_keep_job_order():
    async def scenario():
        pool = WorkerPool(3)

        def make(i):
            async def job():
                await asyncio.sleep(0.01 * (5 - i))
                return i
            return job

        return await pool.run_all([make(i) for i in range(5)])

    assert asyncio.run(scenario()) == [0, 1, 2, 3, 4]


def test_stop_on_error_cancels_the_rest():
    started = []

    async def scenario():
        pool = WorkerPool(1)

        def make(i):
            async def job():
                started.append(i)
                await asyncio.sleep(0)
                if i == 1:
                    raise ValueError("boom")
                return i
            return job

        await pool.run_all([make(i) for i in range(5)], stop_on_error=True)

    with pytest.raises(ValueError, match="boom"):
        asyncio.run(scenario())
    assert started[:2] == [0, 1]
    assert len(started) < 5


def test_invalid_concurrency():
    with pytest.raises(ValueError):
        WorkerPool(0)
