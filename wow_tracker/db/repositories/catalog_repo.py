"""
Repository for the raid catalog: expansions, seasons, raids, bosses.

Every write is an upsert on the level's natural key, so running the raid
sync twice against unchanged upstream data adds no rows:

  expansions  ON CONFLICT(slug)
  seasons     ON CONFLICT(slug)
  raids       ON CONFLICT(source_zone_id)
  bosses      ON CONFLICT(raid_id, source_encounter_id)

Upserts return the row's internal id whether it was inserted or updated.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from wow_tracker.db.repositories.base import BaseRepository, dump_json, load_json
from wow_tracker.models.catalog import Boss, Expansion, Raid, Season

logger = logging.getLogger(__name__)


class CatalogRepository(BaseRepository):
    """Read/write access to the catalog hierarchy."""

    # ── Expansions ────────────────────────────────────────────────────────────

    def upsert_expansion(self, expansion: Expansion) -> int:
        row = self.fetch_returning(
            """
            INSERT INTO expansions
                (slug, name, source_expansion_id, static_meta_expansion_id, sort_order)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(slug) DO UPDATE SET
                name                     = excluded.name,
                source_expansion_id      = excluded.source_expansion_id,
                static_meta_expansion_id = COALESCE(excluded.static_meta_expansion_id,
                                                    expansions.static_meta_expansion_id),
                sort_order               = excluded.sort_order,
                updated_at               = strftime('%Y-%m-%dT%H:%M:%SZ', 'now')
            RETURNING expansion_id;
            """,
            (
                expansion.slug,
                expansion.name,
                expansion.source_expansion_id,
                expansion.static_meta_expansion_id,
                expansion.sort_order,
            ),
        )
        return int(row["expansion_id"])

    def get_expansion_by_source_id(self, source_expansion_id: int) -> Optional[Expansion]:
        row = self.fetchone(
            "SELECT * FROM expansions WHERE source_expansion_id = ? ORDER BY expansion_id LIMIT 1;",
            (source_expansion_id,),
        )
        return _row_to_expansion(row) if row else None

    def get_expansion_by_static_meta_id(self, static_meta_expansion_id: int) -> Optional[Expansion]:
        row = self.fetchone(
            """
            SELECT * FROM expansions
            WHERE static_meta_expansion_id = ?
            ORDER BY expansion_id LIMIT 1;
            """,
            (static_meta_expansion_id,),
        )
        return _row_to_expansion(row) if row else None

    def list_expansions(self) -> list[Expansion]:
        rows = self.fetchall("SELECT * FROM expansions ORDER BY sort_order, expansion_id;")
        return [_row_to_expansion(r) for r in rows]

    # ── Seasons ───────────────────────────────────────────────────────────────

    def upsert_season(self, season: Season) -> int:
        row = self.fetch_returning(
            """
            INSERT INTO seasons (slug, name, number, expansion_id, external_season_slug)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(slug) DO UPDATE SET
                name                 = excluded.name,
                number               = excluded.number,
                expansion_id         = excluded.expansion_id,
                external_season_slug = excluded.external_season_slug,
                updated_at           = strftime('%Y-%m-%dT%H:%M:%SZ', 'now')
            RETURNING season_id;
            """,
            (
                season.slug,
                season.name,
                season.number,
                season.expansion_id,
                season.external_season_slug,
            ),
        )
        return int(row["season_id"])

    def get_season_by_slug(self, slug: str) -> Optional[Season]:
        row = self.fetchone("SELECT * FROM seasons WHERE slug = ?;", (slug,))
        return _row_to_season(row) if row else None

    # ── Raids ─────────────────────────────────────────────────────────────────

    def upsert_raid(self, raid: Raid) -> int:
        row = self.fetch_returning(
            """
            INSERT INTO raids
                (source_zone_id, season_id, name, slug, icon_url,
                 region_start_dates, region_end_dates, is_frozen, is_current)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(source_zone_id) DO UPDATE SET
                season_id          = excluded.season_id,
                name               = excluded.name,
                slug               = excluded.slug,
                icon_url           = excluded.icon_url,
                region_start_dates = excluded.region_start_dates,
                region_end_dates   = excluded.region_end_dates,
                is_frozen          = excluded.is_frozen,
                is_current         = excluded.is_current,
                updated_at         = strftime('%Y-%m-%dT%H:%M:%SZ', 'now')
            RETURNING raid_id;
            """,
            (
                raid.source_zone_id,
                raid.season_id,
                raid.name,
                raid.slug,
                raid.icon_url,
                dump_json(raid.region_start_dates),
                dump_json(raid.region_end_dates),
                int(raid.is_frozen),
                int(raid.is_current),
            ),
        )
        return int(row["raid_id"])

    def get_raid_by_zone(self, source_zone_id: int) -> Optional[Raid]:
        row = self.fetchone("SELECT * FROM raids WHERE source_zone_id = ?;", (source_zone_id,))
        return _row_to_raid(row) if row else None

    def list_raids(self) -> list[Raid]:
        """All raids, current tier first, then newest zone first."""
        rows = self.fetchall(
            "SELECT * FROM raids ORDER BY is_current DESC, source_zone_id DESC;"
        )
        return [_row_to_raid(r) for r in rows]

    # ── Bosses ────────────────────────────────────────────────────────────────

    def upsert_boss(self, boss: Boss) -> int:
        row = self.fetch_returning(
            """
            INSERT INTO bosses
                (raid_id, source_encounter_id, journal_id, name, slug, icon_url, sort_order)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(raid_id, source_encounter_id) DO UPDATE SET
                journal_id = excluded.journal_id,
                name       = excluded.name,
                slug       = excluded.slug,
                icon_url   = excluded.icon_url,
                sort_order = excluded.sort_order,
                updated_at = strftime('%Y-%m-%dT%H:%M:%SZ', 'now')
            RETURNING boss_id;
            """,
            (
                boss.raid_id,
                boss.source_encounter_id,
                boss.journal_id,
                boss.name,
                boss.slug,
                boss.icon_url,
                boss.sort_order,
            ),
        )
        return int(row["boss_id"])

    def get_boss(self, raid_id: int, source_encounter_id: int) -> Optional[Boss]:
        row = self.fetchone(
            "SELECT * FROM bosses WHERE raid_id = ? AND source_encounter_id = ?;",
            (raid_id, source_encounter_id),
        )
        return _row_to_boss(row) if row else None

    def list_bosses(self, raid_id: int) -> list[Boss]:
        rows = self.fetchall(
            "SELECT * FROM bosses WHERE raid_id = ? ORDER BY sort_order, boss_id;",
            (raid_id,),
        )
        return [_row_to_boss(r) for r in rows]

    def boss_names_by_encounter(self) -> dict[int, str]:
        """Map every catalog encounter id to its boss name."""
        rows = self.fetchall("SELECT source_encounter_id, name FROM bosses;")
        return {int(r["source_encounter_id"]): r["name"] for r in rows}

    # ── Summary ───────────────────────────────────────────────────────────────

    def count_rows(self) -> dict[str, int]:
        """Row counts per catalog table, for status output and tests."""
        counts: dict[str, int] = {}
        for table in ("expansions", "seasons", "raids", "bosses"):
            row = self.fetchone(f"SELECT COUNT(*) AS n FROM {table};")
            counts[table] = int(row["n"]) if row else 0
        return counts

    def is_empty(self) -> bool:
        return self.count_rows()["raids"] == 0


# ── Row mappers ───────────────────────────────────────────────────────────────


def _row_to_expansion(row: sqlite3.Row) -> Expansion:
    return Expansion(
        expansion_id=row["expansion_id"],
        slug=row["slug"],
        name=row["name"],
        source_expansion_id=row["source_expansion_id"],
        static_meta_expansion_id=row["static_meta_expansion_id"],
        sort_order=row["sort_order"],
    )


def _row_to_season(row: sqlite3.Row) -> Season:
    return Season(
        season_id=row["season_id"],
        slug=row["slug"],
        name=row["name"],
        number=row["number"],
        expansion_id=row["expansion_id"],
        external_season_slug=row["external_season_slug"],
    )


def _row_to_raid(row: sqlite3.Row) -> Raid:
    return Raid(
        raid_id=row["raid_id"],
        source_zone_id=row["source_zone_id"],
        season_id=row["season_id"],
        name=row["name"],
        slug=row["slug"],
        icon_url=row["icon_url"],
        region_start_dates=load_json(row["region_start_dates"], {}),
        region_end_dates=load_json(row["region_end_dates"], {}),
        is_frozen=bool(row["is_frozen"]),
        is_current=bool(row["is_current"]),
    )


def _row_to_boss(row: sqlite3.Row) -> Boss:
    return Boss(
        boss_id=row["boss_id"],
        raid_id=row["raid_id"],
        source_encounter_id=row["source_encounter_id"],
        journal_id=row["journal_id"],
        name=row["name"],
        slug=row["slug"],
        icon_url=row["icon_url"],
        sort_order=row["sort_order"],
    )
