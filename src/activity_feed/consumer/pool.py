"""WorkerPool: fixed asyncio worker tasks over a bounded queue.

When the queue is full, ``submit()`` runs the job inline in the
submitting task (caller-runs). The producer is slowed down instead of
work being dropped or queued without bound.

Shutdown is two-phase: ``shutdown()`` stops accepting work,
``await_termination()`` waits for queued and in-flight jobs, and
``shutdown_now()`` cancels whatever is still running.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from ..exceptions import PoolShutdownError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    Job = Callable[[], Awaitable[Any]]

logger = logging.getLogger(__name__)


class WorkerPool:
    """*workers* tasks draining a queue of at most *capacity* pending jobs."""

    def __init__(self, workers: int, capacity: int, *, name: str = "worker") -> None:
        if workers < 1:
            raise ValueError("workers must be >= 1")
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._size = workers
        self._capacity = capacity
        self._name = name
        self._queue: asyncio.Queue[Job] | None = None
        self._workers: list[asyncio.Task[None]] = []
        self._shutdown = False
        self.inline_runs = 0

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    def start(self) -> None:
        """Spawn the worker tasks; must be called from a running event loop."""
        if self._queue is not None:
            return
        self._queue = asyncio.Queue(maxsize=self._capacity)
        self._workers = [
            asyncio.create_task(self._worker(), name=f"{self._name}-{i}")
            for i in range(self._size)
        ]

    async def submit(self, job: Job) -> None:
        """Queue *job*, or run it inline when the queue is full."""
        if self._shutdown or self._queue is None:
            raise PoolShutdownError("worker pool is not accepting jobs")
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            self.inline_runs += 1
            logger.debug("Worker queue full, running job in the submitting task")
            await self._run(job)

    def shutdown(self) -> None:
        """Stop accepting new jobs; queued and running jobs continue."""
        self._shutdown = True

    async def await_termination(self, timeout: float) -> bool:
        """Wait up to *timeout* seconds for all jobs; True if the pool drained."""
        if self._queue is None:
            return True
        try:
            await asyncio.wait_for(self._queue.join(), timeout)
        except asyncio.TimeoutError:
            return False
        await self._stop_workers()
        return True

    async def shutdown_now(self) -> int:
        """Cancel running jobs and discard queued ones; returns the discard count."""
        self._shutdown = True
        discarded = 0
        if self._queue is not None:
            while True:
                try:
                    self._queue.get_nowait()
                except asyncio.QueueEmpty:
                    break
                self._queue.task_done()
                discarded += 1
        await self._stop_workers()
        return discarded

    async def _stop_workers(self) -> None:
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()

    async def _worker(self) -> None:
        assert self._queue is not None
        while True:
            job = await self._queue.get()
            try:
                await self._run(job)
            finally:
                self._queue.task_done()

    @staticmethod
    async def _run(job: Job) -> None:
        try:
            await job()
        except Exception:  # noqa: BLE001
            logger.error("Unhandled error in pooled job", exc_info=True)
