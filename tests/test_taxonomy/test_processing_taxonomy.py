"""Tests for stage, step and achievement taxonomies."""

from __future__ import annotations

import pytest

from wow_tracker.models.character import ProcessingState
from wow_tracker.taxonomy.processing_taxonomy import (
    DEEP_STEPS,
    LIGHTWEIGHT_STEPS,
    TOTAL_STEPS,
    AchievementType,
    ProcessingStep,
    Stage,
    StageStatus,
    classify_achievement,
)


class TestSteps:
    def test_lightweight_order(self):
        assert [str(s) for s in LIGHTWEIGHT_STEPS] == [
            "Blizzard profile",
            "Achievements",
            "WCL rankings",
            "Raider.IO runs",
            "Profile computation",
        ]

    def test_deep_order(self):
        assert DEEP_STEPS == (
            ProcessingStep.FIGHT_EVENTS,
            ProcessingStep.STATISTICS,
            ProcessingStep.SUMMARY,
        )

    def test_total_counts_shared_step_once(self):
        assert TOTAL_STEPS == 7


class TestProcessingState:
    def test_defaults(self):
        state = ProcessingState(character_id=1)
        assert state.status_for(Stage.LIGHTWEIGHT) == StageStatus.PENDING
        assert state.status_for(Stage.DEEP) == StageStatus.PENDING
        assert state.total_steps == TOTAL_STEPS

    def test_set_status_targets_one_stage(self):
        state = ProcessingState(character_id=1)
        state.set_status(Stage.DEEP, StageStatus.FAILED)
        assert state.deep_scan_status == StageStatus.FAILED
        assert state.lightweight_status == StageStatus.PENDING

    def test_mark_step_completed_is_duplicate_free(self):
        state = ProcessingState(character_id=1)
        for step in ("Blizzard profile", "Profile computation", "Profile computation"):
            state.mark_step_completed(step)
        assert state.steps_completed == ["Blizzard profile", "Profile computation"]
        assert state.current_step == "Profile computation"


class TestClassifyAchievement:
    @pytest.mark.parametrize(
        "name, expected",
        [
            ("Cutting Edge: Queen Ansurek", AchievementType.CUTTING_EDGE),
            ("Ahead of the Curve: Queen Ansurek", AchievementType.AHEAD_OF_THE_CURVE),
            ("AHEAD OF THE CURVE: FYRAKK", AchievementType.AHEAD_OF_THE_CURVE),
            ("Glory of the Nerub-ar Raider", None),
            ("", None),
            (None, None),
        ],
    )
    def test_classification(self, name, expected):
        assert classify_achievement(name) == expected
