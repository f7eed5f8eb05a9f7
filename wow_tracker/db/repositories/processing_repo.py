"""
Repository for ``processing_state`` rows.

One row per tracked character, created on first enqueue and never deleted.
``save()`` commits immediately: every step boundary must be visible to other
readers (CLI ``status``, broadcaster listeners pulling a fresh snapshot)
before the broadcast goes out.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from wow_tracker.db.repositories.base import BaseRepository, dump_json, load_json
from wow_tracker.models.character import ProcessingState
from wow_tracker.taxonomy.processing_taxonomy import TOTAL_STEPS, StageStatus
from wow_tracker.utils.time_utils import parse_iso, to_iso

logger = logging.getLogger(__name__)


class ProcessingRepository(BaseRepository):
    """Read/write access to the ``processing_state`` table."""

    def get(self, character_id: int) -> Optional[ProcessingState]:
        row = self.fetchone(
            "SELECT * FROM processing_state WHERE character_id = ?;", (character_id,)
        )
        return _row_to_state(row) if row else None

    def ensure(self, character_id: int) -> ProcessingState:
        """Return the character's state, creating a pending row if none exists."""
        self.execute(
            """
            INSERT INTO processing_state (character_id, total_steps)
            VALUES (?, ?)
            ON CONFLICT(character_id) DO NOTHING;
            """,
            (character_id, TOTAL_STEPS),
        )
        self.commit()
        state = self.get(character_id)
        assert state is not None
        return state

    def save(self, state: ProcessingState) -> None:
        """Persist every field of ``state`` and commit."""
        self.execute(
            """
            UPDATE processing_state SET
                lightweight_status       = ?,
                deep_scan_status         = ?,
                current_step             = ?,
                steps_completed          = ?,
                total_steps              = ?,
                error_message            = ?,
                lightweight_completed_at = ?,
                deep_scan_completed_at   = ?,
                updated_at               = strftime('%Y-%m-%dT%H:%M:%SZ', 'now')
            WHERE character_id = ?;
            """,
            (
                str(state.lightweight_status),
                str(state.deep_scan_status),
                state.current_step,
                dump_json(state.steps_completed),
                state.total_steps,
                state.error_message,
                to_iso(state.lightweight_completed_at) if state.lightweight_completed_at else None,
                to_iso(state.deep_scan_completed_at) if state.deep_scan_completed_at else None,
                state.character_id,
            ),
        )
        self.commit()

    def reset(self, character_id: int, current_step: str) -> ProcessingState:
        """Return both stages to pending and clear progress; row created if absent."""
        state = self.ensure(character_id)
        state.lightweight_status = StageStatus.PENDING
        state.deep_scan_status = StageStatus.PENDING
        state.current_step = current_step
        state.steps_completed = []
        state.error_message = None
        state.lightweight_completed_at = None
        state.deep_scan_completed_at = None
        self.save(state)
        return state

    def list_in_progress(self) -> list[ProcessingState]:
        rows = self.fetchall(
            """
            SELECT * FROM processing_state
            WHERE lightweight_status = 'in_progress' OR deep_scan_status = 'in_progress'
            ORDER BY character_id;
            """
        )
        return [_row_to_state(r) for r in rows]


def _row_to_state(row: sqlite3.Row) -> ProcessingState:
    return ProcessingState(
        character_id=row["character_id"],
        lightweight_status=StageStatus(row["lightweight_status"]),
        deep_scan_status=StageStatus(row["deep_scan_status"]),
        current_step=row["current_step"],
        steps_completed=load_json(row["steps_completed"], []),
        total_steps=row["total_steps"],
        error_message=row["error_message"],
        lightweight_completed_at=parse_iso(row["lightweight_completed_at"]),
        deep_scan_completed_at=parse_iso(row["deep_scan_completed_at"]),
    )
