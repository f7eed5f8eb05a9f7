"""
Repository for raw per-character provider data.

Tables: ``wcl_rankings``, ``blizzard_achievements``, ``mplus_scores``,
``mplus_runs``. Rankings and runs are replaced wholesale on every lightweight
run (``delete_*`` then ``insert_*``) so a retried job never appends
duplicates; achievements and scores upsert on their natural keys.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from wow_tracker.db.repositories.base import BaseRepository
from wow_tracker.utils.time_utils import parse_iso, to_iso

logger = logging.getLogger(__name__)


@dataclass
class RankingRow:
    """One ranked kill of one encounter."""

    character_id: int
    source_zone_id: int
    source_encounter_id: int
    encounter_name: Optional[str]
    difficulty: int
    rank_percent: Optional[float]
    amount: Optional[float]
    spec: Optional[str]
    report_code: Optional[str]
    fight_id: Optional[int]
    item_level: Optional[float]
    duration_ms: Optional[int]
    started_at: Optional[datetime]


@dataclass
class AchievementRow:
    character_id: int
    achievement_id: int
    achievement_name: str
    achievement_type: str
    completed_at: Optional[datetime]


@dataclass
class ScoreRow:
    character_id: int
    season_slug: str
    overall_score: float
    tank_score: float = 0.0
    healer_score: float = 0.0
    dps_score: float = 0.0


@dataclass
class RunRow:
    """One completed keystone run.

    ``timed`` is true when the key was upgraded at least once.
    """

    character_id: int
    season_slug: str
    dungeon_name: str
    dungeon_short_name: Optional[str]
    mythic_level: int
    score: Optional[float]
    timed: bool
    num_keystone_upgrades: int
    clear_time_ms: Optional[int]
    completed_at: Optional[datetime]


class RawDataRepository(BaseRepository):
    """Read/write access to the raw provider tables."""

    # ── Rankings ──────────────────────────────────────────────────────────────

    def delete_rankings(self, character_id: int) -> int:
        cur = self.execute("DELETE FROM wcl_rankings WHERE character_id = ?;", (character_id,))
        return cur.rowcount

    def insert_rankings(self, rows: list[RankingRow]) -> int:
        if not rows:
            return 0
        self.executemany(
            """
            INSERT INTO wcl_rankings
                (character_id, source_zone_id, source_encounter_id, encounter_name,
                 difficulty, rank_percent, amount, spec, report_code, fight_id,
                 item_level, duration_ms, started_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            [
                (
                    r.character_id,
                    r.source_zone_id,
                    r.source_encounter_id,
                    r.encounter_name,
                    r.difficulty,
                    r.rank_percent,
                    r.amount,
                    r.spec,
                    r.report_code,
                    r.fight_id,
                    r.item_level,
                    r.duration_ms,
                    to_iso(r.started_at) if r.started_at else None,
                )
                for r in rows
            ],
        )
        return len(rows)

    def list_rankings(self, character_id: int) -> list[RankingRow]:
        rows = self.fetchall(
            "SELECT * FROM wcl_rankings WHERE character_id = ? ORDER BY ranking_id;",
            (character_id,),
        )
        return [
            RankingRow(
                character_id=r["character_id"],
                source_zone_id=r["source_zone_id"],
                source_encounter_id=r["source_encounter_id"],
                encounter_name=r["encounter_name"],
                difficulty=r["difficulty"],
                rank_percent=r["rank_percent"],
                amount=r["amount"],
                spec=r["spec"],
                report_code=r["report_code"],
                fight_id=r["fight_id"],
                item_level=r["item_level"],
                duration_ms=r["duration_ms"],
                started_at=parse_iso(r["started_at"]),
            )
            for r in rows
        ]

    # ── Achievements ──────────────────────────────────────────────────────────

    def upsert_achievements(self, rows: list[AchievementRow]) -> int:
        if not rows:
            return 0
        self.executemany(
            """
            INSERT INTO blizzard_achievements
                (character_id, achievement_id, achievement_name, achievement_type, completed_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(character_id, achievement_id) DO UPDATE SET
                achievement_name = excluded.achievement_name,
                achievement_type = excluded.achievement_type,
                completed_at     = excluded.completed_at;
            """,
            [
                (
                    r.character_id,
                    r.achievement_id,
                    r.achievement_name,
                    r.achievement_type,
                    to_iso(r.completed_at) if r.completed_at else None,
                )
                for r in rows
            ],
        )
        return len(rows)

    def list_achievements(self, character_id: int) -> list[AchievementRow]:
        rows = self.fetchall(
            """
            SELECT * FROM blizzard_achievements
            WHERE character_id = ?
            ORDER BY completed_at DESC, achievement_id;
            """,
            (character_id,),
        )
        return [
            AchievementRow(
                character_id=r["character_id"],
                achievement_id=r["achievement_id"],
                achievement_name=r["achievement_name"],
                achievement_type=r["achievement_type"],
                completed_at=parse_iso(r["completed_at"]),
            )
            for r in rows
        ]

    # ── Mythic+ scores ────────────────────────────────────────────────────────

    def upsert_scores(self, rows: list[ScoreRow]) -> int:
        if not rows:
            return 0
        self.executemany(
            """
            INSERT INTO mplus_scores
                (character_id, season_slug, overall_score, tank_score, healer_score, dps_score)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(character_id, season_slug) DO UPDATE SET
                overall_score = excluded.overall_score,
                tank_score    = excluded.tank_score,
                healer_score  = excluded.healer_score,
                dps_score     = excluded.dps_score,
                fetched_at    = strftime('%Y-%m-%dT%H:%M:%SZ', 'now');
            """,
            [
                (r.character_id, r.season_slug, r.overall_score, r.tank_score,
                 r.healer_score, r.dps_score)
                for r in rows
            ],
        )
        return len(rows)

    def list_scores(self, character_id: int) -> list[ScoreRow]:
        rows = self.fetchall(
            "SELECT * FROM mplus_scores WHERE character_id = ? ORDER BY season_slug;",
            (character_id,),
        )
        return [
            ScoreRow(
                character_id=r["character_id"],
                season_slug=r["season_slug"],
                overall_score=r["overall_score"],
                tank_score=r["tank_score"],
                healer_score=r["healer_score"],
                dps_score=r["dps_score"],
            )
            for r in rows
        ]

    # ── Mythic+ runs ──────────────────────────────────────────────────────────

    def delete_runs(self, character_id: int) -> int:
        cur = self.execute("DELETE FROM mplus_runs WHERE character_id = ?;", (character_id,))
        return cur.rowcount

    def insert_runs(self, rows: list[RunRow]) -> int:
        if not rows:
            return 0
        self.executemany(
            """
            INSERT INTO mplus_runs
                (character_id, season_slug, dungeon_name, dungeon_short_name, mythic_level,
                 score, timed, num_keystone_upgrades, clear_time_ms, completed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            [
                (
                    r.character_id,
                    r.season_slug,
                    r.dungeon_name,
                    r.dungeon_short_name,
                    r.mythic_level,
                    r.score,
                    int(r.timed),
                    r.num_keystone_upgrades,
                    r.clear_time_ms,
                    to_iso(r.completed_at) if r.completed_at else None,
                )
                for r in rows
            ],
        )
        return len(rows)

    def list_runs(self, character_id: int) -> list[RunRow]:
        rows = self.fetchall(
            "SELECT * FROM mplus_runs WHERE character_id = ? ORDER BY run_id;",
            (character_id,),
        )
        return [
            RunRow(
                character_id=r["character_id"],
                season_slug=r["season_slug"],
                dungeon_name=r["dungeon_name"],
                dungeon_short_name=r["dungeon_short_name"],
                mythic_level=r["mythic_level"],
                score=r["score"],
                timed=bool(r["timed"]),
                num_keystone_upgrades=r["num_keystone_upgrades"],
                clear_time_ms=r["clear_time_ms"],
                completed_at=parse_iso(r["completed_at"]),
            )
            for r in rows
        ]
