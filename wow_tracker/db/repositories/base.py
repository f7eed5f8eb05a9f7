"""
Base repository providing shared SQLite execution helpers.

All repositories inherit from ``BaseRepository`` and receive a
``sqlite3.Connection`` at construction time. The connection is assumed
to be opened and managed by the caller (``get_connection()`` for one-shot
CLI commands, ``open_connection()`` for the long-running runtime).

Design:
  - No ORM: all SQL is explicit and lives in repository methods.
  - Repositories speak Pydantic models or record dataclasses, not raw dicts.
  - JSON columns (dates by region, step lists, cache payloads) are encoded
    and decoded here, never in callers.
  - Methods that end a unit of work other tasks may read (a cache write, a
    step boundary) call ``commit()`` themselves; everything else leaves the
    transaction to the caller.
  - The runtime shares one connection between concurrent asyncio tasks, so
    a write transaction is never held open across an ``await``: callers
    fetch first, then write inside ``transaction()`` with no ``await`` in
    the block.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from typing import Any, Iterator, Optional

logger = logging.getLogger(__name__)


class BaseRepository:
    """Shared SQL execution helpers for all repository classes.

    Attributes:
        conn: The active ``sqlite3.Connection``.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def execute(
        self,
        sql: str,
        params: tuple[Any, ...] | dict[str, Any] = (),
    ) -> sqlite3.Cursor:
        """Execute a single SQL statement.

        Args:
            sql: SQL string with ``?`` or ``:name`` placeholders.
            params: Positional tuple or named dict of parameters.

        Returns:
            The resulting ``sqlite3.Cursor``.
        """
        logger.debug("SQL: %s | params: %s", sql.strip(), params)
        return self.conn.execute(sql, params)

    def executemany(
        self,
        sql: str,
        params_list: list[tuple[Any, ...] | dict[str, Any]],
    ) -> sqlite3.Cursor:
        """Execute a SQL statement for each element in ``params_list``."""
        logger.debug("SQL (many): %s | count: %d", sql.strip(), len(params_list))
        return self.conn.executemany(sql, params_list)

    def fetchone(
        self,
        sql: str,
        params: tuple[Any, ...] | dict[str, Any] = (),
    ) -> Optional[sqlite3.Row]:
        """Execute a query and return the first row, or ``None``."""
        return self.execute(sql, params).fetchone()

    def fetchall(
        self,
        sql: str,
        params: tuple[Any, ...] | dict[str, Any] = (),
    ) -> list[sqlite3.Row]:
        """Execute a query and return all rows."""
        return self.execute(sql, params).fetchall()

    def fetch_returning(
        self,
        sql: str,
        params: tuple[Any, ...] | dict[str, Any] = (),
    ) -> sqlite3.Row:
        """Execute an ``INSERT ... RETURNING`` upsert and return its single row.

        The cursor is drained so the statement is finished before any commit.
        """
        rows = self.execute(sql, params).fetchall()
        assert len(rows) == 1
        return rows[0]

    def commit(self) -> None:
        """Commit the connection's open transaction."""
        self.conn.commit()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Commit the writes made in the block, or roll them back on error.

        The block must not ``await``: a rollback would otherwise discard
        writes another task made on the same connection.
        """
        try:
            yield
        except Exception:
            self.conn.rollback()
            raise
        self.conn.commit()


def dump_json(value: Any) -> str:
    """Encode a JSON column value with stable key order."""
    return json.dumps(value, sort_keys=True, default=str)


def load_json(raw: Optional[str], default: Any = None) -> Any:
    """Decode a JSON column value; empty columns yield ``default``."""
    if not raw:
        return default
    return json.loads(raw)
