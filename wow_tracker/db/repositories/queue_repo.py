"""
Repository for the two durable stage queues.

``lightweight_jobs`` and ``deep_scan_jobs`` share one shape; every method
takes the ``Stage`` and resolves the table from it. Jobs move
``waiting → active → completed | failed`` and are claimed FIFO by
``(enqueued_at, job_id)``. ``priority`` is stored but not used for ordering.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Optional

from wow_tracker.db.repositories.base import BaseRepository
from wow_tracker.models.character import QueueJob
from wow_tracker.taxonomy.processing_taxonomy import JobStatus, Stage
from wow_tracker.utils.time_utils import parse_iso, utcnow

logger = logging.getLogger(__name__)

_TABLES: dict[Stage, str] = {
    Stage.LIGHTWEIGHT: "lightweight_jobs",
    Stage.DEEP: "deep_scan_jobs",
}


class QueueRepository(BaseRepository):
    """Read/write access to the per-stage job tables."""

    def enqueue(self, job: QueueJob, enqueued_at: Optional[datetime] = None) -> int:
        """Append ``job`` to its stage queue, commit, and return its id."""
        table = _TABLES[job.stage]
        when = enqueued_at or utcnow()
        row = self.fetch_returning(
            f"""
            INSERT INTO {table}
                (character_id, name, realm_slug, region, priority, requested_by,
                 status, enqueued_at)
            VALUES (?, ?, ?, ?, ?, ?, 'waiting', ?)
            RETURNING job_id;
            """,
            (
                job.character_id,
                job.name,
                job.realm_slug,
                job.region,
                job.priority,
                job.requested_by,
                when.isoformat(),
            ),
        )
        self.commit()
        job_id = int(row["job_id"])
        logger.info("Queued %s job %d for %s-%s", job.stage, job_id, job.name, job.realm_slug)
        return job_id

    def claim_next(self, stage: Stage) -> Optional[QueueJob]:
        """Mark the oldest waiting job active and return it, or ``None``."""
        table = _TABLES[stage]
        row = self.fetchone(
            f"""
            SELECT * FROM {table}
            WHERE status = 'waiting'
            ORDER BY enqueued_at, job_id
            LIMIT 1;
            """
        )
        if row is None:
            return None
        self.execute(
            f"UPDATE {table} SET status = 'active', started_at = ? WHERE job_id = ?;",
            (utcnow().isoformat(), row["job_id"]),
        )
        self.commit()
        return self.get(stage, int(row["job_id"]))

    def get(self, stage: Stage, job_id: int) -> Optional[QueueJob]:
        row = self.fetchone(f"SELECT * FROM {_TABLES[stage]} WHERE job_id = ?;", (job_id,))
        return _row_to_job(row, stage) if row else None

    def finish(
        self,
        stage: Stage,
        job_id: int,
        status: JobStatus,
        error_message: Optional[str] = None,
    ) -> None:
        """Record a terminal status for a claimed job and commit."""
        self.execute(
            f"""
            UPDATE {_TABLES[stage]}
            SET status = ?, error_message = ?, finished_at = ?
            WHERE job_id = ?;
            """,
            (str(status), error_message, utcnow().isoformat(), job_id),
        )
        self.commit()

    def list_waiting(self, stage: Stage, requested_by: Optional[str] = None) -> list[QueueJob]:
        """Waiting jobs in claim order, optionally only one requester's."""
        sql = f"SELECT * FROM {_TABLES[stage]} WHERE status = 'waiting'"
        params: tuple = ()
        if requested_by is not None:
            sql += " AND requested_by = ?"
            params = (requested_by,)
        rows = self.fetchall(sql + " ORDER BY enqueued_at, job_id;", params)
        return [_row_to_job(r, stage) for r in rows]

    def count_by_status(self, stage: Stage) -> dict[str, int]:
        rows = self.fetchall(
            f"SELECT status, COUNT(*) AS n FROM {_TABLES[stage]} GROUP BY status;"
        )
        return {r["status"]: int(r["n"]) for r in rows}

    def cancel_waiting(self, character_id: int, reason: str) -> int:
        """Fail every waiting job of one character in both stages and commit."""
        total = 0
        now = utcnow().isoformat()
        for table in _TABLES.values():
            cur = self.execute(
                f"""
                UPDATE {table}
                SET status = 'failed', error_message = ?, finished_at = ?
                WHERE character_id = ? AND status = 'waiting';
                """,
                (reason, now, character_id),
            )
            total += cur.rowcount
        self.commit()
        return total

    def requeue_active(self) -> int:
        """Return jobs stranded ``active`` by a previous process to ``waiting``."""
        total = 0
        for table in _TABLES.values():
            cur = self.execute(
                f"UPDATE {table} SET status = 'waiting', started_at = NULL WHERE status = 'active';"
            )
            total += cur.rowcount
        self.commit()
        if total:
            logger.warning("Requeued %d job(s) left active by a previous run.", total)
        return total


def _row_to_job(row: sqlite3.Row, stage: Stage) -> QueueJob:
    return QueueJob(
        job_id=row["job_id"],
        character_id=row["character_id"],
        name=row["name"],
        realm_slug=row["realm_slug"],
        region=row["region"],
        stage=stage,
        priority=row["priority"],
        requested_by=row["requested_by"],
        status=JobStatus(row["status"]),
        error_message=row["error_message"],
        enqueued_at=parse_iso(row["enqueued_at"]),
        started_at=parse_iso(row["started_at"]),
        finished_at=parse_iso(row["finished_at"]),
    )
