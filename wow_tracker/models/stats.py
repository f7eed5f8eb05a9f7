"""
Computed per-character aggregates.

These rows are rebuildable from the raw ranking and run tables and are
discarded on administrative re-enqueue. They are only trustworthy when the
character's stage status is ``completed``.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict

from wow_tracker.taxonomy.parse_tiers import ParseTier


class CharacterProfileStats(BaseModel):
    """Whole-character raid and dungeon summary statistics."""

    model_config = ConfigDict(frozen=True)

    character_id: int
    total_kills: int = 0
    avg_parse: Optional[float] = None
    median_parse: Optional[float] = None
    best_parse: Optional[float] = None
    current_mplus_score: Optional[float] = None
    total_runs: int = 0
    timed_rate: Optional[float] = None
    parse_tier: ParseTier = ParseTier.UNKNOWN
    processing_tier: str = "lightweight"


class BossStats(BaseModel):
    """Parse statistics for one character on one encounter."""

    model_config = ConfigDict(frozen=True)

    character_id: int
    source_encounter_id: int
    boss_name: str
    kills: int = 0
    best_parse: Optional[float] = None
    median_parse: Optional[float] = None
    worst_parse: Optional[float] = None
    avg_parse: Optional[float] = None
    parse_tier: ParseTier = ParseTier.UNKNOWN
