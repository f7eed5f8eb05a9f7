"""
Per-character stage pipelines.

Every stage follows the same contract:
  1. ``run(job)`` is the sole public API.
  2. A stage already ``completed`` for the character returns at once and
     touches nothing.
  3. Otherwise the stage goes ``in_progress``, runs its named steps in order
     and ends ``completed`` (with a timestamp) or ``failed`` (with the error
     text). The exception is re-raised so the worker can fail the job row.
  4. Every step boundary writes ``current_step``, appends to
     ``steps_completed``, commits and publishes on the processing channel.
  5. A step fetches from its providers before it writes anything, then
     writes inside one ``transaction()`` block with no ``await`` in it.
     The connection is shared with other stage workers, so a failing stage
     must never roll back writes that are not its own.

Stages:
  LightweightPipeline  profile, achievements, rankings, runs, statistics;
                       enqueues the deep job on success.
  DeepScanPipeline     fight events (placeholder), statistics, summary.

Usage::

    deps = PipelineDeps(config=cfg, conn=conn, broadcaster=b, ...)
    await LightweightPipeline(deps).run(job)
"""

from __future__ import annotations

import logging
import sqlite3
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Optional

from wow_tracker.broadcaster import Channel, UpdateBroadcaster
from wow_tracker.cache import ApiCache
from wow_tracker.config import AppConfig
from wow_tracker.db.repositories.catalog_repo import CatalogRepository
from wow_tracker.db.repositories.character_repo import CharacterRepository
from wow_tracker.db.repositories.processing_repo import ProcessingRepository
from wow_tracker.db.repositories.queue_repo import QueueRepository
from wow_tracker.db.repositories.raw_data_repo import (
    AchievementRow,
    RankingRow,
    RawDataRepository,
    RunRow,
    ScoreRow,
)
from wow_tracker.db.repositories.stats_repo import StatsRepository
from wow_tracker.models.character import ProcessingState, QueueJob
from wow_tracker.processing.profile import refresh_statistics
from wow_tracker.processing.summary import DisabledSummaryGenerator, SummaryGenerator
from wow_tracker.providers.blizzard import BlizzardClient
from wow_tracker.providers.errors import ProviderAuthError, ProviderError
from wow_tracker.providers.raiderio import RaiderIOClient
from wow_tracker.providers.records import MythicPlusRun, MythicPlusSeasonMeta
from wow_tracker.providers.warcraftlogs import WarcraftLogsClient
from wow_tracker.taxonomy.processing_taxonomy import (
    DEEP_STEPS,
    LIGHTWEIGHT_STEPS,
    ProcessingStep,
    Stage,
    StageStatus,
    classify_achievement,
)
from wow_tracker.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

CURRENT_SEASON_FALLBACK = "current"


@dataclass
class PipelineDeps:
    """Collaborators shared by both stage pipelines."""

    config: AppConfig
    conn: sqlite3.Connection
    broadcaster: UpdateBroadcaster
    cache: ApiCache
    warcraftlogs: WarcraftLogsClient
    raiderio: RaiderIOClient
    blizzard: BlizzardClient
    summary: SummaryGenerator = field(default_factory=DisabledSummaryGenerator)
    on_deep_enqueued: Optional[Callable[[], None]] = None


class StagePipeline(ABC):
    """Abstract base for the two stage pipelines.

    Subclasses set ``stage`` and ``steps`` and implement ``_run_step``.
    """

    stage: Stage
    steps: tuple[ProcessingStep, ...]

    def __init__(self, deps: PipelineDeps) -> None:
        self.deps = deps
        self.characters = CharacterRepository(deps.conn)
        self.processing = ProcessingRepository(deps.conn)
        self.queue = QueueRepository(deps.conn)
        self.raw = RawDataRepository(deps.conn)
        self.stats = StatsRepository(deps.conn)
        self.catalog = CatalogRepository(deps.conn)

    async def run(self, job: QueueJob) -> bool:
        """Run every step for the job's character.

        Returns:
            ``False`` when the stage was already completed and nothing ran,
            ``True`` after a successful run.

        Raises:
            Exception: Re-raises any step failure after recording ``failed``.
        """
        state = self.processing.ensure(job.character_id)
        if state.status_for(self.stage) == StageStatus.COMPLETED:
            logger.info(
                "Stage [%s] already completed for character %d; skipping.",
                self.stage, job.character_id,
            )
            return False

        state.set_status(self.stage, StageStatus.IN_PROGRESS)
        state.error_message = None
        self._checkpoint(state)
        logger.info(
            "Stage [%s] starting | character=%d (%s-%s)",
            self.stage, job.character_id, job.name, job.realm_slug,
        )

        try:
            for step in self.steps:
                state.current_step = str(step)
                self._checkpoint(state)
                await self._run_step(step, job)
                state.mark_step_completed(str(step))
                self._checkpoint(state)
        except Exception as exc:
            state.set_status(self.stage, StageStatus.FAILED)
            state.error_message = str(exc) or exc.__class__.__name__
            self._checkpoint(state)
            logger.error(
                "Stage [%s] failed at '%s' | character=%d | %s",
                self.stage, state.current_step, job.character_id, exc,
            )
            raise

        state.set_status(self.stage, StageStatus.COMPLETED)
        if self.stage == Stage.LIGHTWEIGHT:
            state.lightweight_completed_at = utcnow()
        else:
            state.deep_scan_completed_at = utcnow()
        self._checkpoint(state)
        logger.info("Stage [%s] completed | character=%d", self.stage, job.character_id)
        await self._after_success(job)
        return True

    def _checkpoint(self, state: ProcessingState) -> None:
        self.processing.save(state)
        self.deps.broadcaster.publish(Channel.PROCESSING)

    async def _after_success(self, job: QueueJob) -> None:
        return None

    @abstractmethod
    async def _run_step(self, step: ProcessingStep, job: QueueJob) -> None:
        ...


# ── Lightweight stage ─────────────────────────────────────────────────────────


class LightweightPipeline(StagePipeline):
    stage = Stage.LIGHTWEIGHT
    steps = LIGHTWEIGHT_STEPS

    async def _run_step(self, step: ProcessingStep, job: QueueJob) -> None:
        handlers: dict[ProcessingStep, Callable[[QueueJob], Awaitable[None]]] = {
            ProcessingStep.PROFILE: self._fetch_profile,
            ProcessingStep.ACHIEVEMENTS: self._fetch_achievements,
            ProcessingStep.RANKINGS: self._fetch_rankings,
            ProcessingStep.DUNGEON_RUNS: self._fetch_runs,
            ProcessingStep.STATISTICS: self._compute_statistics,
        }
        await handlers[step](job)

    async def _after_success(self, job: QueueJob) -> None:
        self.queue.enqueue(
            job.model_copy(
                update={
                    "job_id": None,
                    "stage": Stage.DEEP,
                    "enqueued_at": None,
                    "started_at": None,
                    "finished_at": None,
                }
            )
        )
        if self.deps.on_deep_enqueued is not None:
            self.deps.on_deep_enqueued()

    # ── Step 1 ────────────────────────────────────────────────────────────────

    async def _fetch_profile(self, job: QueueJob) -> None:
        client = self.deps.blizzard
        profile = await client.fetch_character_profile(job.name, job.realm_slug, job.region)
        if profile is None:
            logger.warning("No profile for %s-%s; identity left unchanged.", job.name, job.realm_slug)
            return
        media = await client.fetch_character_media(job.name, job.realm_slug, job.region)
        with self.characters.transaction():
            self.characters.update_identity(
                job.character_id,
                class_name=profile.class_name,
                spec_name=profile.spec_name,
                race=profile.race,
                faction=profile.faction,
                guild=profile.guild,
                profile_pic_url=media.avatar_url if media else None,
                blizzard_id=profile.id,
            )

    # ── Step 2 ────────────────────────────────────────────────────────────────

    async def _fetch_achievements(self, job: QueueJob) -> None:
        achievements = await self.deps.blizzard.fetch_character_achievements(
            job.name, job.realm_slug, job.region
        )
        rows = []
        for a in achievements:
            kind = classify_achievement(a.name)
            if kind is None:
                continue
            rows.append(
                AchievementRow(
                    character_id=job.character_id,
                    achievement_id=a.achievement_id,
                    achievement_name=a.name,
                    achievement_type=str(kind),
                    completed_at=a.completed_at,
                )
            )
        with self.raw.transaction():
            stored = self.raw.upsert_achievements(rows)
        logger.info("Stored %d raid achievements for character %d", stored, job.character_id)

    # ── Step 3 ────────────────────────────────────────────────────────────────

    async def _fetch_rankings(self, job: QueueJob) -> None:
        difficulty = self.deps.config.raids.ranking_difficulty
        rows: list[RankingRow] = []
        for raid in self.catalog.list_raids():
            bosses = {b.source_encounter_id: b.name for b in self.catalog.list_bosses(raid.raid_id)}
            if not bosses:
                continue
            try:
                rankings = await self.deps.warcraftlogs.fetch_encounter_rankings(
                    job.name, job.realm_slug, job.region, list(bosses), difficulty
                )
            except ProviderAuthError:
                raise
            except ProviderError as exc:
                logger.warning("Rankings for zone %d skipped: %s", raid.source_zone_id, exc)
                continue

            rows.extend(
                RankingRow(
                    character_id=job.character_id,
                    source_zone_id=raid.source_zone_id,
                    source_encounter_id=encounter_id,
                    encounter_name=ranking.encounter_name or bosses.get(encounter_id),
                    difficulty=difficulty,
                    rank_percent=rank.rank_percent,
                    amount=rank.amount,
                    spec=rank.spec,
                    report_code=rank.report_code,
                    fight_id=rank.fight_id,
                    item_level=rank.item_level,
                    duration_ms=rank.duration_ms,
                    started_at=rank.started_at,
                )
                for encounter_id, ranking in rankings.items()
                for rank in ranking.ranks
            )

        with self.raw.transaction():
            self.raw.delete_rankings(job.character_id)
            total = self.raw.insert_rankings(rows)
        logger.info("Stored %d ranked kills for character %d", total, job.character_id)

    # ── Step 4 ────────────────────────────────────────────────────────────────

    async def _fetch_runs(self, job: QueueJob) -> None:
        rio = self.deps.raiderio
        character = await rio.fetch_character(job.name, job.realm_slug, job.region)
        if character is None:
            logger.warning("No dungeon profile for %s-%s.", job.name, job.realm_slug)
            with self.raw.transaction():
                self.raw.delete_runs(job.character_id)
            return

        current_slug = character.scores[0].season if character.scores else CURRENT_SEASON_FALLBACK
        scores = {s.season: s for s in character.scores}
        runs: dict[str, list[MythicPlusRun]] = {current_slug: list(character.all_runs)}

        for slug in await self.historical_season_slugs():
            if slug == current_slug:
                continue
            try:
                season = await rio.fetch_season_runs(job.name, job.realm_slug, job.region, slug)
            except ProviderAuthError:
                raise
            except ProviderError as exc:
                logger.warning("Runs for season %s skipped: %s", slug, exc)
                continue
            runs[slug] = list(season.all_runs)

        historical = [slug for slug in runs if slug != current_slug]
        try:
            for score in await rio.fetch_historical_scores(
                job.name, job.realm_slug, job.region, historical
            ):
                scores.setdefault(score.season, score)
        except ProviderAuthError:
            raise
        except ProviderError as exc:
            logger.warning("Historical scores skipped: %s", exc)

        score_rows = [
            ScoreRow(
                character_id=job.character_id,
                season_slug=s.season,
                overall_score=s.all,
                tank_score=s.tank,
                healer_score=s.healer,
                dps_score=s.dps,
            )
            for s in scores.values()
        ]
        run_rows = [
            _run_row(job.character_id, slug, run)
            for slug, season_runs in runs.items()
            for run in _dedupe_runs(season_runs)
        ]
        with self.raw.transaction():
            self.raw.delete_runs(job.character_id)
            self.raw.upsert_scores(score_rows)
            stored = self.raw.insert_runs(run_rows)
        logger.info(
            "Stored %d runs across %d seasons for character %d",
            stored, len(runs), job.character_id,
        )

    async def historical_season_slugs(self) -> list[str]:
        """Configured external season slugs, then any main seasons discovered
        in the cached Mythic+ static data, without duplicates."""
        config = self.deps.config
        slugs = [s.external_season_slug for s in config.raids.seasons if s.external_season_slug]
        for expansion_id in config.raids.tracked_expansion_ids:
            try:
                seasons = await self._mythic_plus_seasons(expansion_id)
            except ProviderAuthError:
                raise
            except ProviderError as exc:
                logger.warning("Season discovery for expansion %d skipped: %s", expansion_id, exc)
                continue
            slugs.extend(s.slug for s in seasons if s.is_main_season)
        return list(dict.fromkeys(slugs))

    async def _mythic_plus_seasons(self, expansion_id: int) -> list[MythicPlusSeasonMeta]:
        async def fetch() -> list[dict]:
            records = await self.deps.raiderio.fetch_mythic_plus_static_data(expansion_id)
            return [r.to_payload() for r in records]

        payload = await self.deps.cache.get_or_fetch(
            f"rio:mplus:{expansion_id}", fetch, self.deps.config.cache.volatile_ttl_seconds
        )
        return [MythicPlusSeasonMeta.from_api(s) for s in payload or []]

    # ── Step 5 ────────────────────────────────────────────────────────────────

    async def _compute_statistics(self, job: QueueJob) -> None:
        with self.stats.transaction():
            refresh_statistics(job.character_id, self.raw, self.stats, self.catalog, str(self.stage))


# ── Deep stage ────────────────────────────────────────────────────────────────


class DeepScanPipeline(StagePipeline):
    stage = Stage.DEEP
    steps = DEEP_STEPS

    async def run(self, job: QueueJob) -> bool:
        """Run the deep stage, or skip it while the lightweight stage is incomplete."""
        state = self.processing.get(job.character_id)
        if state is None or state.lightweight_status != StageStatus.COMPLETED:
            logger.warning(
                "Deep stage for character %d skipped: lightweight stage is %s.",
                job.character_id, state.lightweight_status if state else "untracked",
            )
            return False
        return await super().run(job)

    async def _run_step(self, step: ProcessingStep, job: QueueJob) -> None:
        if step == ProcessingStep.FIGHT_EVENTS:
            # TODO: pull per-fight event streams once fight-level metrics are stored.
            logger.debug("Fight events not collected yet for character %d.", job.character_id)
        elif step == ProcessingStep.STATISTICS:
            with self.stats.transaction():
                refresh_statistics(
                    job.character_id, self.raw, self.stats, self.catalog, str(self.stage)
                )
        elif step == ProcessingStep.SUMMARY:
            generator = self.deps.summary
            text = await generator.generate(job.character_id)
            if text:
                with self.stats.transaction():
                    self.stats.save_summary(job.character_id, text, generator.name)


# ── Helpers ───────────────────────────────────────────────────────────────────


def _dedupe_runs(runs: list[MythicPlusRun]) -> list[MythicPlusRun]:
    seen: set[tuple] = set()
    unique = []
    for run in runs:
        key = (run.dungeon, run.mythic_level, run.completed_at)
        if key in seen:
            continue
        seen.add(key)
        unique.append(run)
    return unique


def _run_row(character_id: int, season_slug: str, run: MythicPlusRun) -> RunRow:
    return RunRow(
        character_id=character_id,
        season_slug=season_slug,
        dungeon_name=run.dungeon,
        dungeon_short_name=run.short_name,
        mythic_level=run.mythic_level,
        score=run.score,
        timed=run.timed,
        num_keystone_upgrades=run.num_keystone_upgrades,
        clear_time_ms=run.clear_time_ms,
        completed_at=run.completed_at,
    )
