"""Bounded worker pool for try-on generation.

Submissions reserve a slot, insert their job, then enqueue its id. A fixed
number of worker tasks pull ids from the queue and run the orchestrator. The
pool never holds more than ``max_pending`` jobs (queued plus in flight); once
full, ``reserve()`` raises CapacityError so the submission endpoint can reject
the request before creating a job.

Stopping the pool cancels the workers. Jobs that were queued or in flight at
that moment stay ``processing`` and are failed later by the stale job
reconciler.
"""

import asyncio
from typing import Any, Awaitable, Callable
from uuid import UUID

import structlog

from shootx.services.exceptions import CapacityError

logger = structlog.get_logger(__name__)


class GenerationDispatcher:
    """Queue plus fixed worker pool feeding the orchestrator."""

    def __init__(
        self,
        handler: Callable[[UUID], Awaitable[Any]],
        workers: int = 4,
        max_pending: int = 100,
    ):
        """Initialize dispatcher.

        Args:
            handler: Coroutine function processing one job id (TryOnOrchestrator.run)
            workers: Number of concurrent generations
            max_pending: Maximum jobs queued or in flight before rejecting submissions
        """
        if workers < 1:
            raise ValueError("workers must be at least 1")
        if max_pending < 1:
            raise ValueError("max_pending must be at least 1")

        self.handler = handler
        self.workers = workers
        self.max_pending = max_pending
        self._queue: asyncio.Queue[UUID] = asyncio.Queue()
        self._pending = 0
        self._tasks: list[asyncio.Task] = []

    @property
    def pending(self) -> int:
        """Jobs reserved, queued or in flight."""
        return self._pending

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def reserve(self) -> None:
        """Claim a slot for a job about to be created.

        Raises:
            CapacityError: If max_pending jobs are already reserved
        """
        if self._pending >= self.max_pending:
            logger.warning(
                "dispatcher.capacity_exceeded",
                pending=self._pending,
                max_pending=self.max_pending,
            )
            raise CapacityError()
        self._pending += 1

    def release(self) -> None:
        """Give back a slot (unused reservation or finished job)."""
        if self._pending > 0:
            self._pending -= 1

    def enqueue(self, job_id: UUID) -> None:
        """Queue a job whose slot was reserved."""
        self._queue.put_nowait(job_id)
        logger.debug("dispatcher.enqueued", job_id=str(job_id), queued=self._queue.qsize())

    def start(self) -> None:
        """Start worker tasks (no-op if already running)."""
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(self._worker(n), name=f"tryon-generation-{n}")
            for n in range(self.workers)
        ]
        logger.info("dispatcher.started", workers=self.workers, max_pending=self.max_pending)

    async def stop(self) -> None:
        """Cancel worker tasks and wait for them to exit."""
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("dispatcher.stopped", abandoned=self._queue.qsize())

    async def join(self) -> None:
        """Wait until every queued job has been processed."""
        await self._queue.join()

    async def _worker(self, worker_id: int) -> None:
        while True:
            job_id = await self._queue.get()
            try:
                await self.handler(job_id)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Handler failures must not take the worker down
                logger.error(
                    "dispatcher.handler_failed",
                    worker=worker_id,
                    job_id=str(job_id),
                    error_type=type(e).__name__,
                    error_message=str(e),
                    exc_info=True,
                )
            finally:
                self._queue.task_done()
                self.release()
