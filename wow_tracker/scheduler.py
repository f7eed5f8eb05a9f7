"""Background sync scheduling: supervised one-shot tasks and the daily catalog sync.

No external scheduler library is required; everything runs on the asyncio
loop that hosts the queue workers.

  - **Boot**:  ``SupervisedTask`` wraps the first catalog sync so it runs in
                the background and any failure lands in an error sink instead
                of vanishing with the task.
  - **Daily**: ``SyncScheduler`` sleeps until ``daily_sync_hour`` (UTC) and
                runs the sync once per day.

A failed run is logged and reported to the sink but does not stop the loop.

Usage::

    boot = SupervisedTask("boot-sync", engine.run, on_error=sink)
    boot.start()
    scheduler = SyncScheduler(engine.run, daily_hour=4, on_error=sink)
    scheduler.start()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Any, Optional

from wow_tracker.utils.time_utils import seconds_until, utcnow

log = logging.getLogger(__name__)

ErrorSink = Callable[[str, BaseException], None]


# ── Helpers ───────────────────────────────────────────────────────────────────


def _next_daily_run(hour: int, now: Optional[datetime] = None) -> datetime:
    """Return the next UTC datetime at *hour*:00, strictly after *now*."""
    now = now or utcnow()
    candidate = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def log_error_sink(name: str, exc: BaseException) -> None:
    """Default sink: record the failure with its traceback."""
    log.error("[%s] Background task failed: %s", name, exc, exc_info=exc)


# ── Supervised task ───────────────────────────────────────────────────────────


class SupervisedTask:
    """Runs one coroutine in the background and reports its failure.

    Parameters
    ----------
    name:
        Label used in logs and passed to the sink.
    factory:
        Zero-argument callable returning the coroutine to run.
    on_error:
        Called with ``(name, exception)`` if the coroutine raises.
    """

    def __init__(
        self,
        name: str,
        factory: Callable[[], Awaitable[Any]],
        on_error: ErrorSink = log_error_sink,
    ) -> None:
        self.name = name
        self.factory = factory
        self.on_error = on_error
        self.result: Any = None
        self.error: Optional[BaseException] = None
        self._task: Optional[asyncio.Task] = None

    def start(self) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.create_task(self._supervise(), name=self.name)
        return self._task

    async def _supervise(self) -> None:
        log.info("[%s] Started.", self.name)
        try:
            self.result = await self.factory()
        except asyncio.CancelledError:
            log.info("[%s] Cancelled.", self.name)
            raise
        except Exception as exc:
            self.error = exc
            self.on_error(self.name, exc)
        else:
            log.info("[%s] Completed.", self.name)

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    async def wait(self) -> None:
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()


# ── Daily scheduler ───────────────────────────────────────────────────────────


class SyncScheduler:
    """Runs *job* once a day at *daily_hour* UTC until stopped."""

    def __init__(
        self,
        job: Callable[[], Awaitable[Any]],
        daily_hour: int,
        on_error: ErrorSink = log_error_sink,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.job = job
        self.daily_hour = daily_hour
        self.on_error = on_error
        self._sleep = sleep
        self._clock = clock
        self._running = False
        self._task: Optional[asyncio.Task] = None

    async def run_once(self) -> None:
        log.info(
            "=== Daily catalog sync starting at %s ===",
            self._clock().isoformat(timespec="seconds"),
        )
        try:
            await self.job()
        except Exception as exc:
            self.on_error("daily-sync", exc)

    async def loop(self) -> None:
        self._running = True
        while self._running:
            next_run = _next_daily_run(self.daily_hour, self._clock())
            log.info("Next daily sync scheduled: %s", next_run.isoformat(timespec="seconds"))
            await self._sleep(seconds_until(next_run, self._clock()))
            if not self._running:
                break
            await self.run_once()
        log.info("Scheduler stopped.")

    def start(self) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.create_task(self.loop(), name="daily-sync")
        return self._task

    def stop(self) -> None:
        self._running = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
