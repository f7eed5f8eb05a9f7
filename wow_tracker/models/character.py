"""
Tracked character, processing state and queue job models.

``ProcessingState`` is the only non-frozen model: the stage worker that owns
a character mutates ``current_step``, ``steps_completed`` and the statuses as
it runs, then hands the model back to ``ProcessingRepository.save()``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from wow_tracker.taxonomy.processing_taxonomy import (
    TOTAL_STEPS,
    JobStatus,
    Stage,
    StageStatus,
)

VALID_REGIONS = frozenset({"us", "eu", "kr", "tw", "cn"})


class Character(BaseModel):
    """A tracked character and the identity fields the profile step fills in."""

    model_config = ConfigDict(frozen=True)

    character_id: Optional[int] = None
    name: str
    realm: str
    realm_slug: str
    region: str
    class_name: Optional[str] = None
    spec_name: Optional[str] = None
    race: Optional[str] = None
    faction: Optional[str] = None
    guild: Optional[str] = None
    profile_pic_url: Optional[str] = None
    blizzard_id: Optional[int] = None
    last_fetched_at: Optional[datetime] = None

    @field_validator("region")
    @classmethod
    def validate_region(cls, v: str) -> str:
        v = v.lower()
        if v not in VALID_REGIONS:
            raise ValueError(f"Unknown region '{v}'. Must be one of {sorted(VALID_REGIONS)}.")
        return v

    @property
    def display_name(self) -> str:
        return f"{self.name}-{self.realm_slug} ({self.region})"


class ProcessingState(BaseModel):
    """Per-character progress through both stages.

    Attributes:
        character_id: FK to ``characters``; one state row per character.
        lightweight_status: Lifecycle of the lightweight stage.
        deep_scan_status: Lifecycle of the deep stage.
        current_step: Label of the step most recently started or finished.
        steps_completed: Ordered, duplicate-free list of finished step labels.
        total_steps: Number of distinct named steps across both stages.
        error_message: Text of the last failure; cleared on re-enqueue.
        lightweight_completed_at: UTC completion time of the lightweight stage.
        deep_scan_completed_at: UTC completion time of the deep stage.
    """

    character_id: int
    lightweight_status: StageStatus = StageStatus.PENDING
    deep_scan_status: StageStatus = StageStatus.PENDING
    current_step: Optional[str] = None
    steps_completed: list[str] = []
    total_steps: int = TOTAL_STEPS
    error_message: Optional[str] = None
    lightweight_completed_at: Optional[datetime] = None
    deep_scan_completed_at: Optional[datetime] = None

    def status_for(self, stage: Stage) -> StageStatus:
        if stage == Stage.LIGHTWEIGHT:
            return self.lightweight_status
        return self.deep_scan_status

    def set_status(self, stage: Stage, status: StageStatus) -> None:
        if stage == Stage.LIGHTWEIGHT:
            self.lightweight_status = status
        else:
            self.deep_scan_status = status

    def mark_step_completed(self, step: str) -> None:
        self.current_step = step
        if step not in self.steps_completed:
            self.steps_completed = [*self.steps_completed, step]


class QueueJob(BaseModel):
    """One unit of work on a stage queue."""

    model_config = ConfigDict(frozen=True)

    job_id: Optional[int] = None
    character_id: int
    name: str
    realm_slug: str
    region: str
    stage: Stage
    priority: int = 0
    requested_by: Optional[str] = None
    status: JobStatus = JobStatus.WAITING
    error_message: Optional[str] = None
    enqueued_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
