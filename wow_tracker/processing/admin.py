"""
Administrative queue entry points: track a character and re-enqueue.

Re-enqueue discards the character's computed aggregates (profile, per-boss
stats, summary), resets both stage statuses to ``pending`` with no steps
completed, fails any job still waiting for the character, and puts a fresh
lightweight job on the queue. Raw rankings and runs are left in place; the
lightweight stage replaces them anyway.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from wow_tracker.broadcaster import Channel, UpdateBroadcaster
from wow_tracker.db.repositories.character_repo import CharacterRepository
from wow_tracker.db.repositories.processing_repo import ProcessingRepository
from wow_tracker.db.repositories.queue_repo import QueueRepository
from wow_tracker.db.repositories.stats_repo import StatsRepository
from wow_tracker.models.character import Character, QueueJob
from wow_tracker.sync.matching import to_slug
from wow_tracker.taxonomy.processing_taxonomy import Stage

logger = logging.getLogger(__name__)

QUEUED_STEP = "Queued"
SUPERSEDED_MESSAGE = "Superseded by reprocess"


def _lightweight_job(character: Character, requested_by: Optional[str]) -> QueueJob:
    assert character.character_id is not None
    return QueueJob(
        character_id=character.character_id,
        name=character.name,
        realm_slug=character.realm_slug,
        region=character.region,
        stage=Stage.LIGHTWEIGHT,
        requested_by=requested_by,
    )


def enqueue_character(
    conn: sqlite3.Connection,
    name: str,
    realm: str,
    region: str,
    requested_by: Optional[str] = None,
    realm_slug: Optional[str] = None,
    broadcaster: Optional[UpdateBroadcaster] = None,
) -> QueueJob:
    """Start tracking a character (if new) and queue its lightweight stage."""
    character = CharacterRepository(conn).get_or_create(
        name, realm, realm_slug or to_slug(realm), region
    )
    assert character.character_id is not None
    ProcessingRepository(conn).ensure(character.character_id)
    queue = QueueRepository(conn)
    job_id = queue.enqueue(_lightweight_job(character, requested_by))
    if broadcaster is not None:
        broadcaster.publish(Channel.QUEUED, requested_by)
    job = queue.get(Stage.LIGHTWEIGHT, job_id)
    assert job is not None
    return job


def reprocess_character(
    conn: sqlite3.Connection,
    character_id: int,
    requested_by: Optional[str] = None,
    broadcaster: Optional[UpdateBroadcaster] = None,
) -> QueueJob:
    """Discard aggregates, reset processing state and queue a lightweight job.

    Waiting jobs of either stage for the character are failed first, so a
    deep job queued before the reset cannot run against the old data.

    Raises:
        LookupError: If no character has ``character_id``.
    """
    character = CharacterRepository(conn).get(character_id)
    if character is None:
        raise LookupError(f"No tracked character with id {character_id}.")

    queue = QueueRepository(conn)
    cancelled = queue.cancel_waiting(character_id, SUPERSEDED_MESSAGE)
    StatsRepository(conn).discard(character_id)
    ProcessingRepository(conn).reset(character_id, QUEUED_STEP)
    job_id = queue.enqueue(_lightweight_job(character, requested_by))
    logger.info(
        "Re-enqueued %s (job %d, %d waiting job(s) superseded)",
        character.display_name, job_id, cancelled,
    )

    if broadcaster is not None:
        broadcaster.publish(Channel.PROCESSING)
        broadcaster.publish(Channel.QUEUED, requested_by)
    job = queue.get(Stage.LIGHTWEIGHT, job_id)
    assert job is not None
    return job


def reprocess_all(
    conn: sqlite3.Connection,
    requested_by: Optional[str] = None,
    broadcaster: Optional[UpdateBroadcaster] = None,
) -> list[QueueJob]:
    """Re-enqueue every tracked character."""
    jobs = []
    for character in CharacterRepository(conn).list_all():
        assert character.character_id is not None
        jobs.append(reprocess_character(conn, character.character_id, requested_by, broadcaster))
    logger.info("Re-enqueued %d character(s).", len(jobs))
    return jobs
