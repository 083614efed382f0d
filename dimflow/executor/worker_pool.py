"""Bounded async worker pool shared by all item-scope dimensions of a run."""

import asyncio
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


class WorkerPool:
    """At most ``concurrency`` jobs in flight; the rest wait in FIFO order."""

    def __init__(self, concurrency: int):
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        self.concurrency = concurrency
        self._semaphore = asyncio.Semaphore(concurrency)
        self.pending = 0
        self.in_flight = 0

    async def run(self, job: Callable[[], Awaitable[Any]]) -> Any:
        self.pending += 1
        try:
            await self._semaphore.acquire()
        finally:
            self.pending -= 1
        self.in_flight += 1
        try:
            return await job()
        finally:
            self.in_flight -= 1
            self._semaphore.release()

    async def run_all(
        self,
        jobs: list[Callable[[], Awaitable[Any]]],
        stop_on_error: bool = False,
    ) -> list[Any]:
        """Run jobs through the pool and return their results in job order.

        With stop_on_error, the first failure cancels every job still queued
        or running and is re-raised.
        """
        if not jobs:
            return []
        if not stop_on_error:
            return await asyncio.gather(*(self.run(job) for job in jobs))

        tasks = [asyncio.ensure_future(self.run(job)) for job in jobs]
        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
            failed = [t for t in tasks if t in done and not t.cancelled() and t.exception()]
            if failed:
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
                logger.info(f"Cancelled {len(pending)} pending job(s) after failure")
                raise failed[0].exception()
            return [t.result() for t in tasks]
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise
