"""Tests for the single-concurrency stage worker."""

from __future__ import annotations

import asyncio

import pytest

from wow_tracker.broadcaster import Channel, UpdateBroadcaster
from wow_tracker.db.repositories.queue_repo import QueueRepository
from wow_tracker.processing.admin import enqueue_character
from wow_tracker.processing.queue import StageWorker
from wow_tracker.taxonomy.processing_taxonomy import JobStatus, Stage


class RecordingHandler:
    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.fail_for = fail_for or set()
        self.seen: list[str] = []

    async def __call__(self, job) -> None:
        self.seen.append(job.name)
        if job.name in self.fail_for:
            raise RuntimeError(f"{job.name} exploded")


@pytest.fixture
def broadcaster() -> UpdateBroadcaster:
    return UpdateBroadcaster()


@pytest.fixture
def queue(in_memory_db) -> QueueRepository:
    return QueueRepository(in_memory_db)


def _worker(queue, handler, broadcaster) -> StageWorker:
    return StageWorker(Stage.LIGHTWEIGHT, queue, handler, broadcaster, poll_interval_seconds=0.01)


class TestProcessNext:
    def test_idle_queue_returns_none(self, queue, broadcaster):
        assert asyncio.run(_worker(queue, RecordingHandler(), broadcaster).process_next()) is None

    def test_success_marks_job_completed(self, queue, broadcaster, tracked_job):
        finished = asyncio.run(_worker(queue, RecordingHandler(), broadcaster).process_next())
        assert finished.job_id == tracked_job.job_id
        assert finished.status == JobStatus.COMPLETED
        assert finished.started_at is not None
        assert finished.finished_at is not None

    def test_failure_marks_job_failed_without_retry(self, in_memory_db, queue, broadcaster):
        enqueue_character(in_memory_db, "Jaina", "Proudmoore", "us")
        handler = RecordingHandler(fail_for={"Jaina"})
        worker = _worker(queue, handler, broadcaster)

        finished = asyncio.run(worker.process_next())
        assert finished.status == JobStatus.FAILED
        assert finished.error_message == "Jaina exploded"
        assert asyncio.run(worker.process_next()) is None
        assert handler.seen == ["Jaina"]

    def test_publishes_to_requester_on_claim_and_finish(self, queue, broadcaster, tracked_job):
        mine: list[int] = []
        theirs: list[int] = []
        broadcaster.subscribe(Channel.QUEUED, lambda: mine.append(1), key="user-1")
        broadcaster.subscribe(Channel.QUEUED, lambda: theirs.append(1), key="user-2")
        asyncio.run(_worker(queue, RecordingHandler(), broadcaster).process_next())
        assert len(mine) == 2
        assert theirs == []


class TestRunUntilIdle:
    def test_fifo_order(self, in_memory_db, queue, broadcaster):
        for name in ("Thrall", "Jaina", "Anduin"):
            enqueue_character(in_memory_db, name, "Area 52", "us")
        handler = RecordingHandler()
        assert asyncio.run(_worker(queue, handler, broadcaster).run_until_idle()) == 3
        assert handler.seen == ["Thrall", "Jaina", "Anduin"]

    def test_one_failure_does_not_stop_the_queue(self, in_memory_db, queue, broadcaster):
        for name in ("Thrall", "Jaina", "Anduin"):
            enqueue_character(in_memory_db, name, "Area 52", "us")
        handler = RecordingHandler(fail_for={"Jaina"})
        asyncio.run(_worker(queue, handler, broadcaster).run_until_idle())
        assert queue.count_by_status(Stage.LIGHTWEIGHT) == {"completed": 2, "failed": 1}

    def test_paused_worker_claims_nothing(self, queue, broadcaster, tracked_job):
        handler = RecordingHandler()
        worker = _worker(queue, handler, broadcaster)
        worker.pause("warcraftlogs")
        assert asyncio.run(worker.run_until_idle()) == 0
        assert handler.seen == []
        assert queue.count_by_status(Stage.LIGHTWEIGHT) == {"waiting": 1}


class TestPauseResume:
    def test_resume_requires_every_reason_cleared(self, queue, broadcaster):
        worker = _worker(queue, RecordingHandler(), broadcaster)
        worker.pause("warcraftlogs")
        worker.pause("blizzard")
        worker.resume("warcraftlogs")
        assert worker.paused
        worker.resume("blizzard")
        assert not worker.paused

    def test_resume_unknown_reason_is_noop(self, queue, broadcaster):
        worker = _worker(queue, RecordingHandler(), broadcaster)
        worker.resume("raiderio")
        assert not worker.paused


class TestRunForever:
    def test_processes_then_stops(self, queue, broadcaster, tracked_job):
        handler = RecordingHandler()
        worker = _worker(queue, handler, broadcaster)

        async def scenario():
            task = asyncio.create_task(worker.run_forever())
            for _ in range(100):
                if handler.seen:
                    break
                await asyncio.sleep(0.01)
            worker.stop()
            await asyncio.wait_for(task, timeout=1)

        asyncio.run(scenario())
        assert handler.seen == ["Thrall"]
        assert queue.get(Stage.LIGHTWEIGHT, tracked_job.job_id).status == JobStatus.COMPLETED
