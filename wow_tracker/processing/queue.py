"""
Single-concurrency worker for one stage queue.

The worker claims the oldest waiting job, hands it to the stage handler and
records the terminal job status. A handler failure marks the job ``failed``;
nothing is retried. Each claim and each finish publishes on the ``queued``
channel for the job's requester.

Pausing is by reason: ``pause("warcraftlogs")`` and ``pause("blizzard")``
both hold the worker, and it only runs again once every reason is resumed.
A paused worker finishes the job it is on and then waits.

Usage::

    worker = StageWorker(Stage.LIGHTWEIGHT, queue_repo, pipeline.run, broadcaster)
    await worker.run_until_idle()     # drain and return (CLI, tests)
    await worker.run_forever()        # poll until stop()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Optional

from wow_tracker.broadcaster import Channel, UpdateBroadcaster
from wow_tracker.db.repositories.queue_repo import QueueRepository
from wow_tracker.models.character import QueueJob
from wow_tracker.taxonomy.processing_taxonomy import JobStatus, Stage

logger = logging.getLogger(__name__)

JobHandler = Callable[[QueueJob], Awaitable[Any]]


class StageWorker:
    """Consumes one stage queue, one job at a time, in FIFO order."""

    def __init__(
        self,
        stage: Stage,
        queue: QueueRepository,
        handler: JobHandler,
        broadcaster: UpdateBroadcaster,
        poll_interval_seconds: float = 5.0,
    ) -> None:
        self.stage = stage
        self.queue = queue
        self.handler = handler
        self.broadcaster = broadcaster
        self.poll_interval_seconds = poll_interval_seconds
        self._pause_reasons: set[str] = set()
        self._wake = asyncio.Event()
        self._running = False

    # ── Pause control ─────────────────────────────────────────────────────────

    @property
    def paused(self) -> bool:
        return bool(self._pause_reasons)

    def pause(self, reason: str) -> None:
        if reason not in self._pause_reasons:
            self._pause_reasons.add(reason)
            logger.warning("Worker [%s] paused (%s).", self.stage, reason)

    def resume(self, reason: str) -> None:
        if reason not in self._pause_reasons:
            return
        self._pause_reasons.discard(reason)
        if self._pause_reasons:
            logger.info(
                "Worker [%s]: %s cleared, still paused by %s.",
                self.stage, reason, sorted(self._pause_reasons),
            )
            return
        logger.info("Worker [%s] resumed.", self.stage)
        self.notify()

    def notify(self) -> None:
        """Wake a polling worker early (new job enqueued, pause cleared)."""
        self._wake.set()

    # ── Processing ────────────────────────────────────────────────────────────

    async def process_next(self) -> Optional[QueueJob]:
        """Claim and run one job. Returns the finished job, or ``None`` if idle."""
        job = self.queue.claim_next(self.stage)
        if job is None:
            return None
        assert job.job_id is not None
        self.broadcaster.publish(Channel.QUEUED, job.requested_by)
        logger.info(
            "Worker [%s] claimed job %d (%s-%s)",
            self.stage, job.job_id, job.name, job.realm_slug,
        )

        try:
            await self.handler(job)
        except Exception as exc:
            logger.error("Worker [%s] job %d failed: %s", self.stage, job.job_id, exc)
            self.queue.finish(
                self.stage, job.job_id, JobStatus.FAILED, str(exc) or exc.__class__.__name__
            )
        else:
            self.queue.finish(self.stage, job.job_id, JobStatus.COMPLETED)
        self.broadcaster.publish(Channel.QUEUED, job.requested_by)
        return self.queue.get(self.stage, job.job_id)

    async def run_until_idle(self) -> int:
        """Process jobs until the queue is empty or the worker is paused."""
        processed = 0
        while not self.paused:
            if await self.process_next() is None:
                break
            processed += 1
        logger.info("Worker [%s] idle after %d job(s).", self.stage, processed)
        return processed

    async def run_forever(self) -> None:
        """Poll the queue until ``stop()``; ``notify()`` cuts the wait short."""
        self._running = True
        logger.info(
            "Worker [%s] started (poll every %.1fs).", self.stage, self.poll_interval_seconds
        )
        while self._running:
            job = None if self.paused else await self.process_next()
            if job is not None:
                continue
            self._wake.clear()
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.poll_interval_seconds)
            except asyncio.TimeoutError:
                pass
        logger.info("Worker [%s] stopped.", self.stage)

    def stop(self) -> None:
        self._running = False
        self.notify()
