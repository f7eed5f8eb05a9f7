"""
Name matching between providers that share no key.

Both matchers are tiered: the tiers are tried in a fixed order and the first
tier with any hit decides, even if a later tier would also match. Within a
tier the first candidate in input order wins.

Raid matching (zone name → ``RaidStaticMeta``):
  1. exact slug        ``to_slug(zone_name) == raid.slug``
  2. exact name        case-insensitive equality with ``raid.name``
  3. substring         either string contains the other (slug or name)

Icon matching (raid or boss name → achievement index entry):
  1. exact             ``"mythic: <name>"``
  2. contains          achievement name contains ``<name>``
  3. before comma      contains the text before the first comma
  4. first word        contains the first word, if longer than 3 characters
                       and not the whole name
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from enum import StrEnum
from typing import Optional

from wow_tracker.providers.records import AchievementIndexEntry, RaidStaticMeta

_APOSTROPHES = re.compile(r"['’]")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def to_slug(name: str) -> str:
    """``"Liberation of Undermine"`` → ``"liberation-of-undermine"``.

    Apostrophes are dropped rather than turned into separators:
    ``"Nerub-ar Palace"`` → ``"nerub-ar-palace"``, ``"Ky'veza"`` → ``"kyveza"``.
    """
    lowered = _APOSTROPHES.sub("", name.lower())
    return _NON_ALNUM.sub("-", lowered).strip("-")


class MatchTier(StrEnum):
    SLUG = "slug"
    NAME = "name"
    SUBSTRING = "substring"


def find_raid_match(
    candidates: Sequence[RaidStaticMeta], zone_name: str
) -> Optional[tuple[RaidStaticMeta, MatchTier]]:
    """Match a zone to static raid metadata; ``None`` when no tier hits."""
    slug = to_slug(zone_name)
    lowered = zone_name.lower()

    for raid in candidates:
        if raid.slug.lower() == slug:
            return raid, MatchTier.SLUG
    for raid in candidates:
        if raid.name.lower() == lowered:
            return raid, MatchTier.NAME
    for raid in candidates:
        for key in (raid.slug.lower(), raid.name.lower()):
            if key and (key in lowered or lowered in key):
                return raid, MatchTier.SUBSTRING
    return None


def _first_containing(
    index: Iterable[AchievementIndexEntry], needle: str
) -> Optional[AchievementIndexEntry]:
    for entry in index:
        if needle in entry.name.lower():
            return entry
    return None


def find_icon_achievement(
    name: str, index: Sequence[AchievementIndexEntry]
) -> Optional[AchievementIndexEntry]:
    """Pick the achievement whose icon represents ``name``, if any."""
    lowered = name.strip().lower()
    if not lowered:
        return None

    exact = f"mythic: {lowered}"
    for entry in index:
        if entry.name.lower() == exact:
            return entry

    hit = _first_containing(index, lowered)
    if hit:
        return hit

    if "," in lowered:
        before_comma = lowered.split(",", 1)[0].strip()
        if before_comma:
            hit = _first_containing(index, before_comma)
            if hit:
                return hit

    words = lowered.split()
    first_word = words[0] if words else ""
    if len(first_word) > 3 and first_word != lowered:
        return _first_containing(index, first_word)
    return None
