"""
SQLite schema DDL: all CREATE TABLE and CREATE INDEX statements.

All statements use ``IF NOT EXISTS`` so ``apply_schema()`` is **idempotent**:
safe to call on an already-initialized database (e.g. after restart or in tests).

Table creation order respects foreign key dependencies:
  1. api_cache              (no FKs)
  2. expansions             (no FKs)
  3. seasons                (→ expansions)
  4. raids                  (→ seasons)
  5. bosses                 (→ raids)
  6. characters             (no FKs)
  7. processing_state       (→ characters)
  8. lightweight_jobs       (→ characters)
  9. deep_scan_jobs         (→ characters)
  10. wcl_rankings          (→ characters)
  11. blizzard_achievements (→ characters)
  12. mplus_scores          (→ characters)
  13. mplus_runs            (→ characters)
  14. character_profiles    (→ characters)
  15. character_boss_stats  (→ characters)
  16. character_summaries   (→ characters)

Catalog tables carry exactly one external-id column per level
(``source_expansion_id``, ``source_zone_id``, ``source_encounter_id``); the
UNIQUE constraints on raids and bosses are the upsert keys the sync engine
relies on.
"""

from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)

# ── DDL statements ─────────────────────────────────────────────────────────────

_DDL_API_CACHE = """
CREATE TABLE IF NOT EXISTS api_cache (
    cache_key       TEXT    NOT NULL PRIMARY KEY,
    payload         TEXT    NOT NULL,
    cached_at       TEXT    NOT NULL,
    ttl_seconds     INTEGER NOT NULL
);
"""

_DDL_EXPANSIONS = """
CREATE TABLE IF NOT EXISTS expansions (
    expansion_id             INTEGER PRIMARY KEY AUTOINCREMENT,
    slug                     TEXT    NOT NULL UNIQUE,
    name                     TEXT    NOT NULL,
    source_expansion_id      INTEGER NOT NULL,
    static_meta_expansion_id INTEGER,
    sort_order               INTEGER NOT NULL DEFAULT 0,
    created_at               TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    updated_at               TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
"""

_DDL_SEASONS = """
CREATE TABLE IF NOT EXISTS seasons (
    season_id            INTEGER PRIMARY KEY AUTOINCREMENT,
    slug                 TEXT    NOT NULL UNIQUE,
    name                 TEXT    NOT NULL,
    number               INTEGER NOT NULL,
    expansion_id         INTEGER NOT NULL REFERENCES expansions(expansion_id),
    external_season_slug TEXT,
    created_at           TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    updated_at           TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
"""

_DDL_RAIDS = """
CREATE TABLE IF NOT EXISTS raids (
    raid_id            INTEGER PRIMARY KEY AUTOINCREMENT,
    source_zone_id     INTEGER NOT NULL UNIQUE,
    season_id          INTEGER NOT NULL REFERENCES seasons(season_id),
    name               TEXT    NOT NULL,
    slug               TEXT    NOT NULL,
    icon_url           TEXT,
    region_start_dates TEXT    NOT NULL DEFAULT '{}',
    region_end_dates   TEXT    NOT NULL DEFAULT '{}',
    is_frozen          INTEGER NOT NULL DEFAULT 0,
    is_current         INTEGER NOT NULL DEFAULT 0,
    created_at         TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    updated_at         TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);

CREATE INDEX IF NOT EXISTS idx_raids_season
    ON raids(season_id);
"""

_DDL_BOSSES = """
CREATE TABLE IF NOT EXISTS bosses (
    boss_id             INTEGER PRIMARY KEY AUTOINCREMENT,
    raid_id             INTEGER NOT NULL REFERENCES raids(raid_id),
    source_encounter_id INTEGER NOT NULL,
    journal_id          INTEGER,
    name                TEXT    NOT NULL,
    slug                TEXT    NOT NULL,
    icon_url            TEXT,
    sort_order          INTEGER NOT NULL DEFAULT 0,
    created_at          TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    updated_at          TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    UNIQUE (raid_id, source_encounter_id)
);
"""

_DDL_CHARACTERS = """
CREATE TABLE IF NOT EXISTS characters (
    character_id    INTEGER PRIMARY KEY AUTOINCREMENT,
    name            TEXT    NOT NULL COLLATE NOCASE,
    realm           TEXT    NOT NULL,
    realm_slug      TEXT    NOT NULL,
    region          TEXT    NOT NULL,
    class_name      TEXT,
    spec_name       TEXT,
    race            TEXT,
    faction         TEXT,
    guild           TEXT,
    profile_pic_url TEXT,
    blizzard_id     INTEGER,
    last_fetched_at TEXT,
    created_at      TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    updated_at      TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    UNIQUE (region, realm_slug, name)
);
"""

_DDL_PROCESSING_STATE = """
CREATE TABLE IF NOT EXISTS processing_state (
    character_id             INTEGER PRIMARY KEY REFERENCES characters(character_id),
    lightweight_status       TEXT    NOT NULL DEFAULT 'pending',
    deep_scan_status         TEXT    NOT NULL DEFAULT 'pending',
    current_step             TEXT,
    steps_completed          TEXT    NOT NULL DEFAULT '[]',
    total_steps              INTEGER NOT NULL DEFAULT 7,
    error_message            TEXT,
    lightweight_completed_at TEXT,
    deep_scan_completed_at   TEXT,
    updated_at               TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
"""

# Both stage queues share one shape; the repository picks the table by stage.
_JOB_COLUMNS = """
    job_id          INTEGER PRIMARY KEY AUTOINCREMENT,
    character_id    INTEGER NOT NULL REFERENCES characters(character_id),
    name            TEXT    NOT NULL,
    realm_slug      TEXT    NOT NULL,
    region          TEXT    NOT NULL,
    priority        INTEGER NOT NULL DEFAULT 0,
    requested_by    TEXT,
    status          TEXT    NOT NULL DEFAULT 'waiting',
    error_message   TEXT,
    enqueued_at     TEXT    NOT NULL,
    started_at      TEXT,
    finished_at     TEXT
"""

_DDL_LIGHTWEIGHT_JOBS = f"""
CREATE TABLE IF NOT EXISTS lightweight_jobs ({_JOB_COLUMNS});

CREATE INDEX IF NOT EXISTS idx_lightweight_jobs_status
    ON lightweight_jobs(status, enqueued_at, job_id);
"""

_DDL_DEEP_SCAN_JOBS = f"""
CREATE TABLE IF NOT EXISTS deep_scan_jobs ({_JOB_COLUMNS});

CREATE INDEX IF NOT EXISTS idx_deep_scan_jobs_status
    ON deep_scan_jobs(status, enqueued_at, job_id);
"""

_DDL_WCL_RANKINGS = """
CREATE TABLE IF NOT EXISTS wcl_rankings (
    ranking_id          INTEGER PRIMARY KEY AUTOINCREMENT,
    character_id        INTEGER NOT NULL REFERENCES characters(character_id),
    source_zone_id      INTEGER NOT NULL,
    source_encounter_id INTEGER NOT NULL,
    encounter_name      TEXT,
    difficulty          INTEGER NOT NULL,
    rank_percent        REAL,
    amount              REAL,
    spec                TEXT,
    report_code         TEXT,
    fight_id            INTEGER,
    item_level          REAL,
    duration_ms         INTEGER,
    started_at          TEXT,
    fetched_at          TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);

CREATE INDEX IF NOT EXISTS idx_wcl_rankings_character
    ON wcl_rankings(character_id, source_encounter_id);
"""

_DDL_BLIZZARD_ACHIEVEMENTS = """
CREATE TABLE IF NOT EXISTS blizzard_achievements (
    character_id     INTEGER NOT NULL REFERENCES characters(character_id),
    achievement_id   INTEGER NOT NULL,
    achievement_name TEXT    NOT NULL,
    achievement_type TEXT    NOT NULL,
    completed_at     TEXT,
    PRIMARY KEY (character_id, achievement_id)
);
"""

_DDL_MPLUS_SCORES = """
CREATE TABLE IF NOT EXISTS mplus_scores (
    character_id  INTEGER NOT NULL REFERENCES characters(character_id),
    season_slug   TEXT    NOT NULL,
    overall_score REAL    NOT NULL DEFAULT 0,
    tank_score    REAL    NOT NULL DEFAULT 0,
    healer_score  REAL    NOT NULL DEFAULT 0,
    dps_score     REAL    NOT NULL DEFAULT 0,
    fetched_at    TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    PRIMARY KEY (character_id, season_slug)
);
"""

_DDL_MPLUS_RUNS = """
CREATE TABLE IF NOT EXISTS mplus_runs (
    run_id                INTEGER PRIMARY KEY AUTOINCREMENT,
    character_id          INTEGER NOT NULL REFERENCES characters(character_id),
    season_slug           TEXT    NOT NULL,
    dungeon_name          TEXT    NOT NULL,
    dungeon_short_name    TEXT,
    mythic_level          INTEGER NOT NULL,
    score                 REAL,
    timed                 INTEGER NOT NULL DEFAULT 0,
    num_keystone_upgrades INTEGER NOT NULL DEFAULT 0,
    clear_time_ms         INTEGER,
    completed_at          TEXT
);

CREATE INDEX IF NOT EXISTS idx_mplus_runs_character
    ON mplus_runs(character_id, season_slug);
"""

_DDL_CHARACTER_PROFILES = """
CREATE TABLE IF NOT EXISTS character_profiles (
    character_id       INTEGER PRIMARY KEY REFERENCES characters(character_id),
    total_kills        INTEGER NOT NULL DEFAULT 0,
    avg_parse          REAL,
    median_parse       REAL,
    best_parse         REAL,
    current_mplus_score REAL,
    total_runs         INTEGER NOT NULL DEFAULT 0,
    timed_rate         REAL,
    parse_tier         TEXT    NOT NULL DEFAULT 'unknown',
    processing_tier    TEXT    NOT NULL DEFAULT 'lightweight',
    updated_at         TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
"""

_DDL_CHARACTER_BOSS_STATS = """
CREATE TABLE IF NOT EXISTS character_boss_stats (
    character_id        INTEGER NOT NULL REFERENCES characters(character_id),
    source_encounter_id INTEGER NOT NULL,
    boss_name           TEXT    NOT NULL,
    kills               INTEGER NOT NULL DEFAULT 0,
    best_parse          REAL,
    median_parse        REAL,
    worst_parse         REAL,
    avg_parse           REAL,
    parse_tier          TEXT    NOT NULL DEFAULT 'unknown',
    updated_at          TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    PRIMARY KEY (character_id, source_encounter_id)
);
"""

_DDL_CHARACTER_SUMMARIES = """
CREATE TABLE IF NOT EXISTS character_summaries (
    character_id INTEGER PRIMARY KEY REFERENCES characters(character_id),
    summary      TEXT    NOT NULL,
    generated_by TEXT,
    generated_at TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
"""

_ALL_DDL = [
    _DDL_API_CACHE,
    _DDL_EXPANSIONS,
    _DDL_SEASONS,
    _DDL_RAIDS,
    _DDL_BOSSES,
    _DDL_CHARACTERS,
    _DDL_PROCESSING_STATE,
    _DDL_LIGHTWEIGHT_JOBS,
    _DDL_DEEP_SCAN_JOBS,
    _DDL_WCL_RANKINGS,
    _DDL_BLIZZARD_ACHIEVEMENTS,
    _DDL_MPLUS_SCORES,
    _DDL_MPLUS_RUNS,
    _DDL_CHARACTER_PROFILES,
    _DDL_CHARACTER_BOSS_STATS,
    _DDL_CHARACTER_SUMMARIES,
]

ALL_TABLE_NAMES = [
    "api_cache",
    "expansions",
    "seasons",
    "raids",
    "bosses",
    "characters",
    "processing_state",
    "lightweight_jobs",
    "deep_scan_jobs",
    "wcl_rankings",
    "blizzard_achievements",
    "mplus_scores",
    "mplus_runs",
    "character_profiles",
    "character_boss_stats",
    "character_summaries",
]


def apply_schema(conn: sqlite3.Connection) -> None:
    """Apply all DDL statements to ``conn``.

    Idempotent: safe to call on an already-initialized database.
    Each statement uses ``IF NOT EXISTS`` guards.

    Args:
        conn: An open ``sqlite3.Connection`` (FK enforcement should be ON).
    """
    logger.debug("Applying schema to database...")

    for ddl in _ALL_DDL:
        for statement in _split_ddl(ddl):
            if statement.strip():
                conn.execute(statement)

    conn.commit()
    logger.info("Schema applied: %d tables, indexes created/verified.", len(ALL_TABLE_NAMES))


def _split_ddl(ddl: str) -> list[str]:
    """Split a multi-statement DDL block on semicolons."""
    return [s.strip() for s in ddl.split(";") if s.strip()]


def get_existing_tables(conn: sqlite3.Connection) -> list[str]:
    """Return list of table names present in the database.

    Args:
        conn: An open ``sqlite3.Connection``.

    Returns:
        List of table name strings (sorted alphabetically).
    """
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name;"
    ).fetchall()
    return [row["name"] for row in rows]


def get_existing_indexes(conn: sqlite3.Connection) -> list[str]:
    """Return the names of user-defined indexes, sorted alphabetically."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='index' AND name LIKE 'idx_%' ORDER BY name;"
    ).fetchall()
    return [row["name"] for row in rows]
