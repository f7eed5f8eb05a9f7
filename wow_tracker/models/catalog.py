"""
Raid catalog models: Expansion → Season → Raid → Boss.

The catalog is owned by the raid sync engine. Each level carries a stable
internal id (``None`` before insertion) and one foreign-source id:

  - ``Expansion.source_expansion_id``  combat-log provider expansion id
  - ``Raid.source_zone_id``            combat-log provider zone id
  - ``Boss.source_encounter_id``       combat-log provider encounter id

Seasons have no provider id; their slug comes from static configuration.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator


class Expansion(BaseModel):
    """One game expansion, derived from zone details.

    Attributes:
        expansion_id: Auto-assigned DB PK; ``None`` before insertion.
        slug: Generated from the name, e.g. ``"the-war-within"``. Upsert key.
        name: Display name as reported by the combat-log provider.
        source_expansion_id: Combat-log provider's expansion id.
        static_meta_expansion_id: Dungeon-ranking provider's expansion id,
            when a configured season links the two.
        sort_order: 1-based position, oldest expansion first.
    """

    model_config = ConfigDict(frozen=True)

    expansion_id: Optional[int] = None
    slug: str
    name: str
    source_expansion_id: int
    static_meta_expansion_id: Optional[int] = None
    sort_order: int = 0


class Season(BaseModel):
    """A configured content season within one expansion."""

    model_config = ConfigDict(frozen=True)

    season_id: Optional[int] = None
    slug: str
    name: str
    number: int
    expansion_id: int
    external_season_slug: Optional[str] = None


class Raid(BaseModel):
    """One raid instance (a combat-log provider zone).

    Attributes:
        raid_id: Auto-assigned DB PK; ``None`` before insertion.
        source_zone_id: Combat-log provider zone id. Upsert key.
        season_id: FK to ``seasons``.
        name: Name from the combat-log provider.
        slug: Dungeon-ranking provider slug when matched, else generated.
        icon_url: Resolved icon, or ``None``.
        region_start_dates: Region code → release date string.
        region_end_dates: Region code → end date string.
        is_frozen: Provider marks the zone's rankings as final.
        is_current: Zone is in the configured current tier.
    """

    model_config = ConfigDict(frozen=True)

    raid_id: Optional[int] = None
    source_zone_id: int
    season_id: int
    name: str
    slug: str
    icon_url: Optional[str] = None
    region_start_dates: dict[str, str] = {}
    region_end_dates: dict[str, str] = {}
    is_frozen: bool = False
    is_current: bool = False


class Boss(BaseModel):
    """One boss encounter within a raid."""

    model_config = ConfigDict(frozen=True)

    boss_id: Optional[int] = None
    raid_id: int
    source_encounter_id: int
    journal_id: Optional[int] = None
    name: str
    slug: str
    icon_url: Optional[str] = None
    sort_order: int = 0

    @field_validator("source_encounter_id")
    @classmethod
    def validate_encounter_id(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"source_encounter_id must be positive, got {v}.")
        return v
