"""Tests for the repositories not covered through the cache, sync and pipeline tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from wow_tracker.db.repositories.catalog_repo import CatalogRepository
from wow_tracker.db.repositories.character_repo import CharacterRepository
from wow_tracker.db.repositories.processing_repo import ProcessingRepository
from wow_tracker.db.repositories.queue_repo import QueueRepository
from wow_tracker.db.repositories.raw_data_repo import AchievementRow, RawDataRepository, ScoreRow
from wow_tracker.models.catalog import Boss, Expansion, Raid, Season
from wow_tracker.taxonomy.processing_taxonomy import JobStatus, Stage, StageStatus


# ── Catalog ───────────────────────────────────────────────────────────────────

@pytest.fixture
def season_id(in_memory_db) -> int:
    catalog = CatalogRepository(in_memory_db)
    expansion_id = catalog.upsert_expansion(
        Expansion(slug="the-war-within", name="The War Within", source_expansion_id=6, static_meta_expansion_id=10)
    )
    return catalog.upsert_season(
        Season(slug="tww-s1", name="The War Within Season 1", number=1, expansion_id=expansion_id)
    )


class TestCatalogRepository:
    def test_upsert_returns_same_id(self, in_memory_db, season_id):
        catalog = CatalogRepository(in_memory_db)
        raid = Raid(source_zone_id=38, season_id=season_id, name="Nerub-ar Palace", slug="nerub-ar-palace")
        first = catalog.upsert_raid(raid)
        second = catalog.upsert_raid(raid.model_copy(update={"slug": "nerubar-palace"}))
        assert first == second
        assert catalog.get_raid_by_zone(38).slug == "nerubar-palace"

    def test_region_dates_roundtrip(self, in_memory_db, season_id):
        catalog = CatalogRepository(in_memory_db)
        catalog.upsert_raid(
            Raid(
                source_zone_id=38, season_id=season_id, name="Nerub-ar Palace", slug="nerubar-palace",
                region_start_dates={"us": "2024-09-10T15:00:00Z"}, is_current=True,
            )
        )
        raid = catalog.get_raid_by_zone(38)
        assert raid.region_start_dates == {"us": "2024-09-10T15:00:00Z"}
        assert raid.region_end_dates == {}
        assert raid.is_current and not raid.is_frozen

    def test_static_meta_id_kept_when_not_supplied(self, in_memory_db, season_id):
        catalog = CatalogRepository(in_memory_db)
        catalog.upsert_expansion(Expansion(slug="the-war-within", name="The War Within", source_expansion_id=6))
        assert catalog.get_expansion_by_static_meta_id(10).slug == "the-war-within"

    def test_raids_listed_current_first(self, in_memory_db, season_id):
        catalog = CatalogRepository(in_memory_db)
        catalog.upsert_raid(Raid(source_zone_id=42, season_id=season_id, name="Later", slug="later"))
        catalog.upsert_raid(Raid(source_zone_id=38, season_id=season_id, name="Now", slug="now", is_current=True))
        assert [r.source_zone_id for r in catalog.list_raids()] == [38, 42]

    def test_boss_names_by_encounter(self, in_memory_db, season_id):
        catalog = CatalogRepository(in_memory_db)
        raid_id = catalog.upsert_raid(Raid(source_zone_id=38, season_id=season_id, name="NP", slug="np"))
        catalog.upsert_boss(Boss(raid_id=raid_id, source_encounter_id=2922, name="Queen Ansurek", slug="queen-ansurek"))
        assert catalog.boss_names_by_encounter() == {2922: "Queen Ansurek"}

    def test_boss_requires_positive_encounter_id(self):
        with pytest.raises(ValueError):
            Boss(raid_id=1, source_encounter_id=0, name="x", slug="x")


# ── Characters and processing state ───────────────────────────────────────────

class TestCharacterRepository:
    def test_get_or_create_is_idempotent(self, in_memory_db):
        repo = CharacterRepository(in_memory_db)
        first = repo.get_or_create("Thrall", "Area 52", "area-52", "US")
        second = repo.get_or_create("thrall", "Area 52", "area-52", "us")
        assert first.character_id == second.character_id
        assert first.region == "us"

    def test_unknown_region_inserts_nothing(self, in_memory_db):
        repo = CharacterRepository(in_memory_db)
        with pytest.raises(ValueError):
            repo.get_or_create("Thrall", "Area 52", "area-52", "xx")
        assert repo.list_all() == []

    def test_display_name(self, in_memory_db):
        character = CharacterRepository(in_memory_db).get_or_create("Thrall", "Area 52", "area-52", "us")
        assert character.display_name == "Thrall-area-52 (us)"


class TestProcessingRepository:
    def test_ensure_creates_pending_row_once(self, in_memory_db, tracked_job):
        repo = ProcessingRepository(in_memory_db)
        state = repo.ensure(tracked_job.character_id)
        state.current_step = "Achievements"
        repo.save(state)
        assert repo.ensure(tracked_job.character_id).current_step == "Achievements"

    def test_save_roundtrip(self, in_memory_db, tracked_job):
        repo = ProcessingRepository(in_memory_db)
        state = repo.ensure(tracked_job.character_id)
        state.set_status(Stage.LIGHTWEIGHT, StageStatus.COMPLETED)
        state.mark_step_completed("Blizzard profile")
        state.mark_step_completed("Blizzard profile")
        state.lightweight_completed_at = datetime(2024, 9, 15, 12, 30, tzinfo=timezone.utc)
        repo.save(state)

        loaded = repo.get(tracked_job.character_id)
        assert loaded.lightweight_status == StageStatus.COMPLETED
        assert loaded.steps_completed == ["Blizzard profile"]
        assert loaded.lightweight_completed_at == state.lightweight_completed_at

    def test_list_in_progress(self, in_memory_db, tracked_job):
        repo = ProcessingRepository(in_memory_db)
        state = repo.ensure(tracked_job.character_id)
        assert repo.list_in_progress() == []
        state.set_status(Stage.DEEP, StageStatus.IN_PROGRESS)
        repo.save(state)
        assert [s.character_id for s in repo.list_in_progress()] == [tracked_job.character_id]


# ── Queues ────────────────────────────────────────────────────────────────────

class TestQueueRepository:
    def test_claim_is_fifo_by_enqueue_time(self, in_memory_db, tracked_job):
        queue = QueueRepository(in_memory_db)
        earlier = tracked_job.model_copy(update={"job_id": None, "name": "Early"})
        queue.enqueue(earlier, enqueued_at=tracked_job.enqueued_at - timedelta(minutes=5))

        assert queue.claim_next(Stage.LIGHTWEIGHT).name == "Early"
        assert queue.claim_next(Stage.LIGHTWEIGHT).job_id == tracked_job.job_id
        assert queue.claim_next(Stage.LIGHTWEIGHT) is None

    def test_stage_queues_are_separate(self, in_memory_db, tracked_job):
        queue = QueueRepository(in_memory_db)
        assert queue.claim_next(Stage.DEEP) is None
        assert queue.count_by_status(Stage.LIGHTWEIGHT) == {"waiting": 1}

    def test_finish_records_status(self, in_memory_db, tracked_job):
        queue = QueueRepository(in_memory_db)
        job = queue.claim_next(Stage.LIGHTWEIGHT)
        assert job.status == JobStatus.ACTIVE
        queue.finish(Stage.LIGHTWEIGHT, job.job_id, JobStatus.FAILED, "boom")
        finished = queue.get(Stage.LIGHTWEIGHT, job.job_id)
        assert finished.status == JobStatus.FAILED
        assert finished.error_message == "boom"

    def test_list_waiting_by_requester(self, in_memory_db, tracked_job):
        queue = QueueRepository(in_memory_db)
        queue.enqueue(tracked_job.model_copy(update={"job_id": None, "requested_by": "user-2"}))
        assert [j.requested_by for j in queue.list_waiting(Stage.LIGHTWEIGHT, "user-2")] == ["user-2"]
        assert len(queue.list_waiting(Stage.LIGHTWEIGHT)) == 2

    def test_requeue_active(self, in_memory_db, tracked_job):
        queue = QueueRepository(in_memory_db)
        queue.claim_next(Stage.LIGHTWEIGHT)
        assert queue.requeue_active() == 1
        job = queue.get(Stage.LIGHTWEIGHT, tracked_job.job_id)
        assert job.status == JobStatus.WAITING
        assert job.started_at is None


# ── Raw data ──────────────────────────────────────────────────────────────────

class TestRawDataRepository:
    def test_achievement_upsert_on_natural_key(self, in_memory_db, tracked_job):
        raw = RawDataRepository(in_memory_db)
        row = AchievementRow(
            character_id=tracked_job.character_id,
            achievement_id=40253,
            achievement_name="Cutting Edge: Queen Ansurek",
            achievement_type="cutting_edge",
            completed_at=None,
        )
        raw.upsert_achievements([row])
        raw.upsert_achievements([row])
        assert len(raw.list_achievements(tracked_job.character_id)) == 1

    def test_score_upsert_overwrites(self, in_memory_db, tracked_job):
        raw = RawDataRepository(in_memory_db)
        cid = tracked_job.character_id
        raw.upsert_scores([ScoreRow(character_id=cid, season_slug="season-tww-1", overall_score=2000.0)])
        raw.upsert_scores([ScoreRow(character_id=cid, season_slug="season-tww-1", overall_score=2500.0)])
        (score,) = raw.list_scores(cid)
        assert score.overall_score == 2500.0

    def test_empty_inserts_are_noops(self, in_memory_db):
        raw = RawDataRepository(in_memory_db)
        assert raw.insert_rankings([]) == 0
        assert raw.insert_runs([]) == 0
        assert raw.upsert_scores([]) == 0
