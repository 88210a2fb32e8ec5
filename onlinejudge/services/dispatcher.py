"""Intake and dispatch of submission events to the judging pipeline."""

import asyncio
import logging
from typing import Optional

from onlinejudge.core.verdict import Verdict
from onlinejudge.schemas.submission import SubmissionEvent
from onlinejudge.services.judge_service import JudgingPipeline

logger = logging.getLogger(__name__)


class SubmissionQueue:
    """
    In-memory queue of submission events.

    A submission id is accepted at most once while it is queued or being
    judged, so a redelivered event never runs concurrently with the first.
    """

    def __init__(self):
        self._queue: asyncio.Queue[SubmissionEvent] = asyncio.Queue()
        self._queued: set[int] = set()
        self._processing: set[int] = set()

    async def enqueue(self, event: SubmissionEvent) -> bool:
        """Add an event to the queue. Returns False for an in-flight id."""
        if event.id in self._queued or event.id in self._processing:
            return False
        self._queued.add(event.id)
        await self._queue.put(event)
        return True

    async def dequeue(self) -> SubmissionEvent:
        """Get next event from queue."""
        event = await self._queue.get()
        self._queued.discard(event.id)
        self._processing.add(event.id)
        return event

    def complete(self, submission_id: int) -> None:
        """Mark submission as done processing."""
        self._processing.discard(submission_id)
        self._queue.task_done()

    async def join(self) -> None:
        """Wait until every queued event has been completed."""
        await self._queue.join()

    def is_in_flight(self, submission_id: int) -> bool:
        return submission_id in self._queued or submission_id in self._processing

    @property
    def pending_count(self) -> int:
        """Number of pending submissions."""
        return self._queue.qsize()

    @property
    def processing_count(self) -> int:
        """Number of submissions being processed."""
        return len(self._processing)


class SubmissionDispatcher:
    """Feeds queued events to the pipeline from a fixed set of workers."""

    def __init__(
        self,
        pipeline: JudgingPipeline,
        queue: Optional[SubmissionQueue] = None,
        concurrency: int = 1,
    ):
        self.pipeline = pipeline
        self.queue = queue or SubmissionQueue()
        self.concurrency = concurrency
        self._workers: list[asyncio.Task] = []

    async def submit(self, event: SubmissionEvent) -> bool:
        """Queue an event for judging. Duplicates of an in-flight id are dropped."""
        accepted = await self.queue.enqueue(event)
        if not accepted:
            logger.info("Submission %d is already queued or being judged, dropping", event.id)
        return accepted

    async def dispatch(self, event: SubmissionEvent) -> Optional[Verdict]:
        """Run the pipeline once for ``event``; faults are logged, not raised."""
        try:
            return await self.pipeline.evaluate(event)
        except Exception:
            logger.exception("Error judging submission %d", event.id)
            return None

    async def _worker(self) -> None:
        while True:
            event = await self.queue.dequeue()
            try:
                await self.dispatch(event)
            finally:
                self.queue.complete(event.id)

    def start(self) -> None:
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(), name=f"judge-worker-{i}")
            for i in range(self.concurrency)
        ]
        logger.info("Started %d judge worker(s)", self.concurrency)

    async def stop(self) -> None:
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("Judge workers stopped")

    @property
    def running(self) -> bool:
        return bool(self._workers)
