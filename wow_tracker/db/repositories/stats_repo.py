"""
Repository for computed aggregates: profiles, per-boss stats, summaries.

Everything here is rebuildable from the raw tables. ``discard()`` wipes a
character's aggregates ahead of an administrative re-enqueue.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from wow_tracker.db.repositories.base import BaseRepository
from wow_tracker.models.stats import BossStats, CharacterProfileStats
from wow_tracker.taxonomy.parse_tiers import ParseTier

logger = logging.getLogger(__name__)


class StatsRepository(BaseRepository):
    """Read/write access to the aggregate tables."""

    def upsert_profile(self, profile: CharacterProfileStats) -> None:
        self.execute(
            """
            INSERT INTO character_profiles
                (character_id, total_kills, avg_parse, median_parse, best_parse,
                 current_mplus_score, total_runs, timed_rate, parse_tier, processing_tier)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(character_id) DO UPDATE SET
                total_kills         = excluded.total_kills,
                avg_parse           = excluded.avg_parse,
                median_parse        = excluded.median_parse,
                best_parse          = excluded.best_parse,
                current_mplus_score = excluded.current_mplus_score,
                total_runs          = excluded.total_runs,
                timed_rate          = excluded.timed_rate,
                parse_tier          = excluded.parse_tier,
                processing_tier     = excluded.processing_tier,
                updated_at          = strftime('%Y-%m-%dT%H:%M:%SZ', 'now');
            """,
            (
                profile.character_id,
                profile.total_kills,
                profile.avg_parse,
                profile.median_parse,
                profile.best_parse,
                profile.current_mplus_score,
                profile.total_runs,
                profile.timed_rate,
                str(profile.parse_tier),
                profile.processing_tier,
            ),
        )

    def get_profile(self, character_id: int) -> Optional[CharacterProfileStats]:
        row = self.fetchone(
            "SELECT * FROM character_profiles WHERE character_id = ?;", (character_id,)
        )
        return _row_to_profile(row) if row else None

    def replace_boss_stats(self, character_id: int, stats: list[BossStats]) -> int:
        """Replace every per-boss row for the character with ``stats``."""
        self.execute("DELETE FROM character_boss_stats WHERE character_id = ?;", (character_id,))
        if not stats:
            return 0
        self.executemany(
            """
            INSERT INTO character_boss_stats
                (character_id, source_encounter_id, boss_name, kills, best_parse,
                 median_parse, worst_parse, avg_parse, parse_tier)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            [
                (
                    s.character_id,
                    s.source_encounter_id,
                    s.boss_name,
                    s.kills,
                    s.best_parse,
                    s.median_parse,
                    s.worst_parse,
                    s.avg_parse,
                    str(s.parse_tier),
                )
                for s in stats
            ],
        )
        return len(stats)

    def list_boss_stats(self, character_id: int) -> list[BossStats]:
        rows = self.fetchall(
            """
            SELECT * FROM character_boss_stats
            WHERE character_id = ?
            ORDER BY source_encounter_id;
            """,
            (character_id,),
        )
        return [_row_to_boss_stats(r) for r in rows]

    def save_summary(self, character_id: int, summary: str, generated_by: str) -> None:
        self.execute(
            """
            INSERT INTO character_summaries (character_id, summary, generated_by)
            VALUES (?, ?, ?)
            ON CONFLICT(character_id) DO UPDATE SET
                summary      = excluded.summary,
                generated_by = excluded.generated_by,
                generated_at = strftime('%Y-%m-%dT%H:%M:%SZ', 'now');
            """,
            (character_id, summary, generated_by),
        )

    def get_summary(self, character_id: int) -> Optional[str]:
        row = self.fetchone(
            "SELECT summary FROM character_summaries WHERE character_id = ?;", (character_id,)
        )
        return row["summary"] if row else None

    def discard(self, character_id: int) -> None:
        """Delete the character's profile, boss stats and summary."""
        for table in ("character_profiles", "character_boss_stats", "character_summaries"):
            self.execute(f"DELETE FROM {table} WHERE character_id = ?;", (character_id,))
        logger.debug("Discarded aggregates for character %d", character_id)


def _row_to_profile(row: sqlite3.Row) -> CharacterProfileStats:
    return CharacterProfileStats(
        character_id=row["character_id"],
        total_kills=row["total_kills"],
        avg_parse=row["avg_parse"],
        median_parse=row["median_parse"],
        best_parse=row["best_parse"],
        current_mplus_score=row["current_mplus_score"],
        total_runs=row["total_runs"],
        timed_rate=row["timed_rate"],
        parse_tier=ParseTier(row["parse_tier"]),
        processing_tier=row["processing_tier"],
    )


def _row_to_boss_stats(row: sqlite3.Row) -> BossStats:
    return BossStats(
        character_id=row["character_id"],
        source_encounter_id=row["source_encounter_id"],
        boss_name=row["boss_name"],
        kills=row["kills"],
        best_parse=row["best_parse"],
        median_parse=row["median_parse"],
        worst_parse=row["worst_parse"],
        avg_parse=row["avg_parse"],
        parse_tier=ParseTier(row["parse_tier"]),
    )
