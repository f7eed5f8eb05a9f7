"""
Repository for tracked characters.

Characters are unique on ``(region, realm_slug, name)`` with a
case-insensitive name, so ``Thrall`` and ``thrall`` on the same realm are one
row.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from wow_tracker.db.repositories.base import BaseRepository
from wow_tracker.models.character import Character
from wow_tracker.utils.time_utils import parse_iso, to_iso, utcnow

logger = logging.getLogger(__name__)


class CharacterRepository(BaseRepository):
    """Read/write access to the ``characters`` table."""

    def get_or_create(self, name: str, realm: str, realm_slug: str, region: str) -> Character:
        """Return the existing character row, inserting it first if absent.

        Raises:
            ValueError: If ``region`` is not a known region code.
        """
        candidate = Character(name=name, realm=realm, realm_slug=realm_slug, region=region)
        existing = self.find(name, realm_slug, candidate.region)
        if existing is not None:
            return existing
        self.execute(
            "INSERT INTO characters (name, realm, realm_slug, region) VALUES (?, ?, ?, ?);",
            (candidate.name, candidate.realm, candidate.realm_slug, candidate.region),
        )
        created = self.find(name, realm_slug, region)
        assert created is not None
        logger.info("Tracking new character %s", created.display_name)
        return created

    def find(self, name: str, realm_slug: str, region: str) -> Optional[Character]:
        row = self.fetchone(
            "SELECT * FROM characters WHERE name = ? AND realm_slug = ? AND region = ?;",
            (name, realm_slug, region.lower()),
        )
        return _row_to_character(row) if row else None

    def get(self, character_id: int) -> Optional[Character]:
        row = self.fetchone("SELECT * FROM characters WHERE character_id = ?;", (character_id,))
        return _row_to_character(row) if row else None

    def list_all(self) -> list[Character]:
        rows = self.fetchall("SELECT * FROM characters ORDER BY character_id;")
        return [_row_to_character(r) for r in rows]

    def update_identity(
        self,
        character_id: int,
        *,
        class_name: Optional[str],
        spec_name: Optional[str],
        race: Optional[str],
        faction: Optional[str],
        guild: Optional[str],
        profile_pic_url: Optional[str],
        blizzard_id: Optional[int],
    ) -> None:
        """Overwrite the profile-derived identity fields and stamp the fetch time."""
        self.execute(
            """
            UPDATE characters SET
                class_name      = ?,
                spec_name       = ?,
                race            = ?,
                faction         = ?,
                guild           = ?,
                profile_pic_url = ?,
                blizzard_id     = ?,
                last_fetched_at = ?,
                updated_at      = strftime('%Y-%m-%dT%H:%M:%SZ', 'now')
            WHERE character_id = ?;
            """,
            (
                class_name,
                spec_name,
                race,
                faction,
                guild,
                profile_pic_url,
                blizzard_id,
                to_iso(utcnow()),
                character_id,
            ),
        )


def _row_to_character(row: sqlite3.Row) -> Character:
    return Character(
        character_id=row["character_id"],
        name=row["name"],
        realm=row["realm"],
        realm_slug=row["realm_slug"],
        region=row["region"],
        class_name=row["class_name"],
        spec_name=row["spec_name"],
        race=row["race"],
        faction=row["faction"],
        guild=row["guild"],
        profile_pic_url=row["profile_pic_url"],
        blizzard_id=row["blizzard_id"],
        last_fetched_at=parse_iso(row["last_fetched_at"]),
    )
