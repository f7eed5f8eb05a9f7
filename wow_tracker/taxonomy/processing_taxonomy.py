"""
Processing taxonomy: stages, statuses and the named pipeline steps.

Two orthogonal status dimensions exist:
  - ``StageStatus``: per-character, per-stage lifecycle in ``processing_state``.
  - ``JobStatus``  : per queue row lifecycle in ``lightweight_jobs`` /
    ``deep_scan_jobs``.

``ProcessingStep`` values are the exact strings written to
``processing_state.current_step`` and ``steps_completed``.

This module has NO imports from any other ``wow_tracker`` package.
"""

from enum import StrEnum


class Stage(StrEnum):
    """The two sequential processing stages per tracked character."""

    LIGHTWEIGHT = "lightweight"
    """Core fetch-and-aggregate pipeline."""

    DEEP = "deep"
    """Reserved for fine-grained fight event analysis; recomputes aggregates."""


class StageStatus(StrEnum):
    """Lifecycle of one stage for one character."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class JobStatus(StrEnum):
    """Lifecycle of one queue row."""

    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class ProcessingStep(StrEnum):
    """Named pipeline steps, in the order the lightweight stage runs them."""

    PROFILE = "Blizzard profile"
    ACHIEVEMENTS = "Achievements"
    RANKINGS = "WCL rankings"
    DUNGEON_RUNS = "Raider.IO runs"
    STATISTICS = "Profile computation"
    SUMMARY = "Narrative summary"
    FIGHT_EVENTS = "Fight events"


LIGHTWEIGHT_STEPS: tuple[ProcessingStep, ...] = (
    ProcessingStep.PROFILE,
    ProcessingStep.ACHIEVEMENTS,
    ProcessingStep.RANKINGS,
    ProcessingStep.DUNGEON_RUNS,
    ProcessingStep.STATISTICS,
)

DEEP_STEPS: tuple[ProcessingStep, ...] = (
    ProcessingStep.FIGHT_EVENTS,
    ProcessingStep.STATISTICS,
    ProcessingStep.SUMMARY,
)

TOTAL_STEPS = len(set(LIGHTWEIGHT_STEPS) | set(DEEP_STEPS))


class AchievementType(StrEnum):
    """Raid-completion achievements the tracker keeps; all others are ignored."""

    CUTTING_EDGE = "cutting_edge"
    AHEAD_OF_THE_CURVE = "ahead_of_the_curve"


_ACHIEVEMENT_PHRASES: tuple[tuple[str, AchievementType], ...] = (
    ("cutting edge", AchievementType.CUTTING_EDGE),
    ("ahead of the curve", AchievementType.AHEAD_OF_THE_CURVE),
)


def classify_achievement(name: str | None) -> AchievementType | None:
    """Return the achievement type for a tracked achievement name, else ``None``.

    Example::

        classify_achievement("Cutting Edge: Queen Ansurek")  # CUTTING_EDGE
        classify_achievement("Loremaster")                   # None
    """
    if not name:
        return None
    lowered = name.lower()
    for phrase, kind in _ACHIEVEMENT_PHRASES:
        if phrase in lowered:
            return kind
    return None
