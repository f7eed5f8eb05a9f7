"""
Aggregate statistics computed from a character's raw tables.

Raid stats come from ``wcl_rankings`` (every stored rank entry is a kill);
Mythic+ stats come from ``mplus_scores`` / ``mplus_runs``.

  median       ``sorted(parses)[len // 2]`` (upper median on even counts)
  parse tier   tier of the median parse
  mplus score  highest overall score across stored seasons
  timed rate   timed runs / all runs × 100

Every value is ``None`` when its input set is empty.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Optional

from wow_tracker.db.repositories.catalog_repo import CatalogRepository
from wow_tracker.db.repositories.raw_data_repo import (
    RankingRow,
    RawDataRepository,
    RunRow,
    ScoreRow,
)
from wow_tracker.db.repositories.stats_repo import StatsRepository
from wow_tracker.models.stats import BossStats, CharacterProfileStats
from wow_tracker.taxonomy.parse_tiers import get_parse_tier

logger = logging.getLogger(__name__)


def _median(values: list[float]) -> Optional[float]:
    if not values:
        return None
    return sorted(values)[len(values) // 2]


def _mean(values: list[float]) -> Optional[float]:
    return sum(values) / len(values) if values else None


def compute_profile(
    character_id: int,
    rankings: list[RankingRow],
    scores: list[ScoreRow],
    runs: list[RunRow],
    processing_tier: str = "lightweight",
) -> CharacterProfileStats:
    parses = [r.rank_percent for r in rankings if r.rank_percent is not None]
    median = _median(parses)
    timed = sum(1 for r in runs if r.timed)
    return CharacterProfileStats(
        character_id=character_id,
        total_kills=len(rankings),
        avg_parse=_mean(parses),
        median_parse=median,
        best_parse=max(parses) if parses else None,
        current_mplus_score=max((s.overall_score for s in scores), default=None),
        total_runs=len(runs),
        timed_rate=(timed / len(runs) * 100) if runs else None,
        parse_tier=get_parse_tier(median),
        processing_tier=processing_tier,
    )


def compute_boss_stats(
    character_id: int,
    rankings: list[RankingRow],
    boss_names: Optional[dict[int, str]] = None,
) -> list[BossStats]:
    """One ``BossStats`` per encounter that has stored rankings, by encounter id."""
    names = boss_names or {}
    grouped: dict[int, list[RankingRow]] = defaultdict(list)
    for row in rankings:
        grouped[row.source_encounter_id].append(row)

    stats = []
    for encounter_id in sorted(grouped):
        rows = grouped[encounter_id]
        parses = [r.rank_percent for r in rows if r.rank_percent is not None]
        median = _median(parses)
        name = (
            names.get(encounter_id)
            or next((r.encounter_name for r in rows if r.encounter_name), None)
            or f"Encounter {encounter_id}"
        )
        stats.append(
            BossStats(
                character_id=character_id,
                source_encounter_id=encounter_id,
                boss_name=name,
                kills=len(rows),
                best_parse=max(parses) if parses else None,
                median_parse=median,
                worst_parse=min(parses) if parses else None,
                avg_parse=_mean(parses),
                parse_tier=get_parse_tier(median),
            )
        )
    return stats


def refresh_statistics(
    character_id: int,
    raw: RawDataRepository,
    stats: StatsRepository,
    catalog: CatalogRepository,
    processing_tier: str,
) -> CharacterProfileStats:
    """Recompute and store the profile and per-boss stats for one character."""
    rankings = raw.list_rankings(character_id)
    profile = compute_profile(
        character_id,
        rankings,
        raw.list_scores(character_id),
        raw.list_runs(character_id),
        processing_tier,
    )
    stats.upsert_profile(profile)
    bosses = stats.replace_boss_stats(
        character_id, compute_boss_stats(character_id, rankings, catalog.boss_names_by_encounter())
    )
    logger.info(
        "Profile computed for character %d: %d kills, avg parse %s, %d bosses",
        character_id,
        profile.total_kills,
        f"{profile.avg_parse:.1f}" if profile.avg_parse is not None else "n/a",
        bosses,
    )
    return profile
