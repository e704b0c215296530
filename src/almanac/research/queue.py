"""
Job Queue - Single-flight FIFO of research config ids.

At most one job runs at a time. A config id is never queued twice and is
never both queued and running; repeated requests report their position
instead of adding a duplicate.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

import structlog

from almanac.research.models import EnqueueResult, EnqueueSummary, QueueEntry, QueueStatus

logger = structlog.get_logger()

JobRunner = Callable[[str], Awaitable[Any]]


class JobQueue:
    """
    In-memory queue drained by a single worker task.

    The worker is spawned on the first enqueue after the queue goes idle and
    exits once the queue is empty. All state lives on one event loop, so no
    locks are needed.
    """

    def __init__(self, runner: JobRunner) -> None:
        self._runner = runner
        self._queue: deque[QueueEntry] = deque()
        self._current: str | None = None
        self._processing = False
        self._worker: asyncio.Task[None] | None = None

    @property
    def processing(self) -> bool:
        return self._processing

    @property
    def current_config_id(self) -> str | None:
        return self._current

    def __len__(self) -> int:
        return len(self._queue)

    def enqueue(self, config_id: str) -> EnqueueResult:
        """
        Add a config to the tail of the queue.

        Returns position 0 when the config is already running, its 1-based
        position when already queued, and the new tail position otherwise.
        """
        if self._current == config_id:
            logger.info("Config already running", config_id=config_id)
            return EnqueueResult(position=0, already_queued=True)

        for index, entry in enumerate(self._queue):
            if entry.config_id == config_id:
                logger.info("Config already queued", config_id=config_id, position=index + 1)
                return EnqueueResult(position=index + 1, already_queued=True)

        self._queue.append(QueueEntry(config_id=config_id))
        position = len(self._queue)
        logger.info("Config added to queue", config_id=config_id, position=position)

        if not self._processing:
            self._start_worker()

        return EnqueueResult(position=position, already_queued=False)

    def enqueue_all(self, config_ids: Iterable[str]) -> EnqueueSummary:
        """Enqueue several configs, counting how many were new."""
        summary = EnqueueSummary()
        for config_id in config_ids:
            if self.enqueue(config_id).already_queued:
                summary.skipped += 1
            else:
                summary.queued += 1
        return summary

    def status(self) -> QueueStatus:
        """Snapshot of the queue."""
        return QueueStatus(
            processing=self._processing,
            current_config_id=self._current,
            queue_length=len(self._queue),
            queue=list(self._queue),
        )

    async def wait_idle(self) -> None:
        """Wait until the worker has drained the queue."""
        while self._worker is not None and not self._worker.done():
            await asyncio.shield(self._worker)

    async def stop(self) -> None:
        """Drop queued entries and cancel the in-flight job."""
        dropped = len(self._queue)
        self._queue.clear()
        worker = self._worker
        if worker is not None and not worker.done():
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass
        self._worker = None
        self._current = None
        self._processing = False
        if dropped:
            logger.info("Dropped queued configs on shutdown", count=dropped)

    def _start_worker(self) -> None:
        # Set before the task is scheduled so a second enqueue in the same
        # tick does not spawn another worker.
        self._processing = True
        self._worker = asyncio.get_running_loop().create_task(
            self._process(), name="almanac-queue-worker"
        )

    async def _process(self) -> None:
        logger.info("Queue worker started")
        try:
            while self._queue:
                entry = self._queue.popleft()
                self._current = entry.config_id
                logger.info(
                    "Processing config",
                    config_id=entry.config_id,
                    remaining=len(self._queue),
                )
                try:
                    await self._runner(entry.config_id)
                    logger.info("Completed config", config_id=entry.config_id)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error(
                        "Research job failed", config_id=entry.config_id, error=str(e)
                    )
                finally:
                    self._current = None
        finally:
            self._processing = False
            self._current = None
            logger.info("Queue worker finished")
