"""
Parse tier scale for combat-log percentiles.

A percentile (0–100, where 100 means the top parse for that spec/boss) maps
to one ``ParseTier``. ``None`` maps to ``ParseTier.UNKNOWN``.

  100        legendary
  >= 99      exceptional
  >= 95      mythic-tier
  >= 90      excellent
  >= 75      great
  >= 50      average
  >= 25      below-average
  >= 1       poor
  below 1    dead-weight

This module has NO imports from any other ``wow_tracker`` package.
"""

from enum import StrEnum
from typing import Optional


class ParseTier(StrEnum):
    """Qualitative band for a percentile."""

    LEGENDARY = "legendary"
    EXCEPTIONAL = "exceptional"
    MYTHIC_TIER = "mythic-tier"
    EXCELLENT = "excellent"
    GREAT = "great"
    AVERAGE = "average"
    BELOW_AVERAGE = "below-average"
    POOR = "poor"
    DEAD_WEIGHT = "dead-weight"
    UNKNOWN = "unknown"


# Checked top-down; first threshold met wins. 100 is handled separately.
_THRESHOLDS: tuple[tuple[float, ParseTier], ...] = (
    (99.0, ParseTier.EXCEPTIONAL),
    (95.0, ParseTier.MYTHIC_TIER),
    (90.0, ParseTier.EXCELLENT),
    (75.0, ParseTier.GREAT),
    (50.0, ParseTier.AVERAGE),
    (25.0, ParseTier.BELOW_AVERAGE),
    (1.0, ParseTier.POOR),
)


def get_parse_tier(percentile: Optional[float]) -> ParseTier:
    """Map a percentile to its ``ParseTier``.

    Args:
        percentile: Parse percentile, or ``None`` when there is no data.

    Returns:
        The matching tier; ``UNKNOWN`` for ``None``.
    """
    if percentile is None:
        return ParseTier.UNKNOWN
    if percentile >= 100:
        return ParseTier.LEGENDARY
    for threshold, tier in _THRESHOLDS:
        if percentile >= threshold:
            return tier
    return ParseTier.DEAD_WEIGHT
