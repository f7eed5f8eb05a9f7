"""
SQLite connection management.

Two ways in:

  ``get_connection()``  context manager for one-shot CLI commands
                        (``init-db``); commits on clean exit, rolls back on
                        exception, always closes.
  ``open_connection()`` plain connection for the runtime and queue commands;
                        repositories commit their own unit of work and the
                        caller closes it.

Both apply the same pragmas: foreign keys ON, a busy timeout, and WAL mode
for file databases so ``wow-tracker status`` can read while ``run`` writes.
Rows come back as ``sqlite3.Row``.

``connect()`` builds an ``open_connection()`` from the ``[database]`` config
section, with an optional path override from ``--db-path``.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Generator, Optional

if TYPE_CHECKING:
    from wow_tracker.config import DatabaseConfig

logger = logging.getLogger(__name__)

MEMORY = ":memory:"


def _apply_pragmas(conn: sqlite3.Connection, in_memory: bool, wal_mode: bool, busy_timeout_ms: int) -> None:
    pragmas = ["foreign_keys = ON", f"busy_timeout = {busy_timeout_ms}"]
    if wal_mode and not in_memory:
        pragmas.append("journal_mode = WAL")
    for pragma in pragmas:
        conn.execute(f"PRAGMA {pragma};")


def open_connection(
    db_path: str,
    wal_mode: bool = True,
    busy_timeout_ms: int = 5000,
) -> sqlite3.Connection:
    """Open a configured connection; the caller must close it.

    Parent directories of a file database are created on demand.
    """
    in_memory = db_path == MEMORY
    if not in_memory:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, timeout=busy_timeout_ms / 1000)
    conn.row_factory = sqlite3.Row
    _apply_pragmas(conn, in_memory, wal_mode, busy_timeout_ms)
    logger.debug("Opened SQLite connection to %s", db_path)
    return conn


def connect(database: "DatabaseConfig", db_path: Optional[str] = None) -> sqlite3.Connection:
    """``open_connection()`` with settings from the ``[database]`` section."""
    return open_connection(
        db_path or database.db_path,
        wal_mode=database.wal_mode,
        busy_timeout_ms=database.busy_timeout_ms,
    )


@contextmanager
def get_connection(
    db_path: str,
    wal_mode: bool = True,
    busy_timeout_ms: int = 5000,
) -> Generator[sqlite3.Connection, None, None]:
    """Yield a configured connection, committed on success and always closed.

    Raises:
        sqlite3.OperationalError: If the database cannot be opened or stays
            locked past ``busy_timeout_ms``.
    """
    conn = open_connection(db_path, wal_mode=wal_mode, busy_timeout_ms=busy_timeout_ms)
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
