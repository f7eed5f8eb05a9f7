"""
Shared pytest fixtures for the WoW character tracker test suite.

Provides:
  - ``in_memory_db``: A fresh in-memory SQLite connection with the full
    schema applied. Created anew for each test that requests it.
  - ``clock``: A settable UTC clock for TTL and quota-window tests.
  - ``app_config``: An ``AppConfig`` with a single season tracking
    Nerub-ar Palace (zone 38) as the current tier.
  - ``tracked_job``: A tracked character with a lightweight job on the queue.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Generator

import pytest

from wow_tracker.config import AppConfig, RaidsConfig, SeasonDefinition
from wow_tracker.db.schema import apply_schema
from wow_tracker.models.character import QueueJob
from wow_tracker.processing.admin import enqueue_character


# ── Database fixture ──────────────────────────────────────────────────────────

@pytest.fixture
def in_memory_db() -> Generator[sqlite3.Connection, None, None]:
    """Yield a fresh in-memory SQLite connection with the full schema applied.

    Foreign key enforcement is ON. Schema is applied idempotently.
    Connection is closed after the test.
    """
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    apply_schema(conn)
    yield conn
    conn.close()


# ── Clock ─────────────────────────────────────────────────────────────────────

class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 9, 15, 12, 0, 0, tzinfo=timezone.utc))


# ── Config ────────────────────────────────────────────────────────────────────

@pytest.fixture
def app_config() -> AppConfig:
    """Config tracking one season: The War Within season 1, Nerub-ar Palace."""
    return AppConfig(
        raids=RaidsConfig(
            tracked_expansion_ids=[10],
            current_zone_ids=[38],
            seasons=[
                SeasonDefinition(
                    slug="tww-s1",
                    number=1,
                    static_meta_expansion_id=10,
                    zone_ids=[38],
                    external_season_slug="season-tww-1",
                )
            ],
        )
    )


# ── Queue ─────────────────────────────────────────────────────────────────────

@pytest.fixture
def tracked_job(in_memory_db: sqlite3.Connection) -> QueueJob:
    """Thrall-area-52 (us) tracked with a waiting lightweight job."""
    return enqueue_character(in_memory_db, "Thrall", "Area 52", "us", requested_by="user-1")
