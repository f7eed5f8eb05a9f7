"""Tests for the SQLite schema: idempotency, table and index creation, FK enforcement."""

from __future__ import annotations

import sqlite3

import pytest

from wow_tracker.db.schema import (
    ALL_TABLE_NAMES,
    apply_schema,
    get_existing_indexes,
    get_existing_tables,
)


class TestApplySchema:
    def test_all_tables_created(self, in_memory_db):
        tables = get_existing_tables(in_memory_db)
        for expected_table in ALL_TABLE_NAMES:
            assert expected_table in tables, (
                f"Expected table '{expected_table}' not found in database. "
                f"Found: {tables}"
            )

    def test_idempotent_double_apply(self, in_memory_db):
        """apply_schema() called twice must not raise errors."""
        apply_schema(in_memory_db)
        tables = get_existing_tables(in_memory_db)
        assert len(tables) >= len(ALL_TABLE_NAMES)

    def test_key_indexes_created(self, in_memory_db):
        indexes = get_existing_indexes(in_memory_db)
        expected_indexes = [
            "idx_lightweight_jobs_status",
            "idx_deep_scan_jobs_status",
            "idx_wcl_rankings_character",
            "idx_mplus_runs_character",
        ]
        for idx in expected_indexes:
            assert idx in indexes, (
                f"Expected index '{idx}' not found. Found: {indexes}"
            )


class TestForeignKeyEnforcement:
    def test_fk_enforcement_is_on(self, in_memory_db):
        row = in_memory_db.execute("PRAGMA foreign_keys;").fetchone()
        assert row[0] == 1, "PRAGMA foreign_keys should be 1 (enabled)"

    def test_job_requires_character(self, in_memory_db):
        with pytest.raises(sqlite3.IntegrityError):
            in_memory_db.execute(
                """
                INSERT INTO lightweight_jobs (character_id, name, realm_slug, region, enqueued_at)
                VALUES (999, 'Ghost', 'area-52', 'us', '2024-09-15T12:00:00Z');
                """
            )

    def test_boss_requires_raid(self, in_memory_db):
        with pytest.raises(sqlite3.IntegrityError):
            in_memory_db.execute(
                "INSERT INTO bosses (raid_id, source_encounter_id, name, slug) VALUES (1, 2902, 'x', 'x');"
            )


class TestUniqueKeys:
    def test_character_name_is_case_insensitive(self, in_memory_db):
        in_memory_db.execute(
            "INSERT INTO characters (name, realm, realm_slug, region) VALUES ('Thrall', 'Area 52', 'area-52', 'us');"
        )
        with pytest.raises(sqlite3.IntegrityError):
            in_memory_db.execute(
                "INSERT INTO characters (name, realm, realm_slug, region) VALUES ('THRALL', 'Area 52', 'area-52', 'us');"
            )

    def test_same_name_other_realm_allowed(self, in_memory_db):
        for realm_slug in ("area-52", "illidan"):
            in_memory_db.execute(
                "INSERT INTO characters (name, realm, realm_slug, region) VALUES ('Thrall', 'x', ?, 'us');",
                (realm_slug,),
            )
        count = in_memory_db.execute("SELECT COUNT(*) FROM characters;").fetchone()[0]
        assert count == 2
