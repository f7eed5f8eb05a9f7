"""
Repository for the ``api_cache`` table.

Stores one opaque JSON payload per key together with its write time and
TTL. Freshness is decided by ``ApiCache`` at read time; this layer only
reads and writes rows.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from wow_tracker.db.repositories.base import BaseRepository, dump_json, load_json
from wow_tracker.utils.time_utils import parse_iso

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """One cached upstream payload.

    Attributes:
        key: Cache key, e.g. ``"wcl:zone:38"``.
        payload: Decoded JSON payload.
        cached_at: UTC time the payload was written.
        ttl_seconds: Lifetime chosen by the writer.
    """

    key: str
    payload: Any
    cached_at: datetime
    ttl_seconds: int


class CacheRepository(BaseRepository):
    """Read/write access to the ``api_cache`` table."""

    def get(self, key: str) -> Optional[CacheEntry]:
        row = self.fetchone(
            "SELECT cache_key, payload, cached_at, ttl_seconds FROM api_cache WHERE cache_key = ?;",
            (key,),
        )
        if row is None:
            return None
        cached_at = parse_iso(row["cached_at"])
        assert cached_at is not None
        return CacheEntry(
            key=row["cache_key"],
            payload=load_json(row["payload"]),
            cached_at=cached_at,
            ttl_seconds=int(row["ttl_seconds"]),
        )

    def upsert(self, key: str, payload: Any, cached_at: datetime, ttl_seconds: int) -> None:
        """Insert or overwrite the entry for ``key`` and commit."""
        self.execute(
            """
            INSERT INTO api_cache (cache_key, payload, cached_at, ttl_seconds)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(cache_key) DO UPDATE SET
                payload     = excluded.payload,
                cached_at   = excluded.cached_at,
                ttl_seconds = excluded.ttl_seconds;
            """,
            (key, dump_json(payload), cached_at.astimezone(timezone.utc).isoformat(), ttl_seconds),
        )
        self.commit()

    def delete(self, key: str) -> bool:
        cur = self.execute("DELETE FROM api_cache WHERE cache_key = ?;", (key,))
        self.commit()
        return cur.rowcount > 0

    def count(self) -> int:
        row = self.fetchone("SELECT COUNT(*) AS n FROM api_cache;")
        return int(row["n"]) if row else 0
