"""
TTL-keyed persistent cache for upstream API payloads.

``ApiCache`` wraps ``CacheRepository`` with the freshness rule:

    fresh  iff  now - cached_at <= ttl_seconds

An expired entry reads as a miss but stays in the table until the next
``put`` for the same key overwrites it; nothing else ever evicts. Payloads
are opaque JSON values; callers decide keys and TTLs.

Key conventions used by the raid sync:

  wcl:zone:<zone_id>              combat-log zone detail
  rio:raids:<expansion_id>        raid static metadata
  rio:mplus:<expansion_id>        Mythic+ season static metadata
  blizzard:achievement-index      full achievement index
  blizzard:achievement-icon:<id>  one achievement's icon URL
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Any, Optional

from wow_tracker.db.repositories.cache_repo import CacheRepository
from wow_tracker.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class ApiCache:
    """Opaque payload cache with TTL-on-read freshness.

    Args:
        repo: Repository bound to the process's SQLite connection.
        clock: Returns the current aware UTC time. Injectable for tests.
    """

    def __init__(self, repo: CacheRepository, clock: Callable[[], datetime] = utcnow) -> None:
        self._repo = repo
        self._clock = clock

    def get(self, key: str) -> Optional[Any]:
        """Return the cached payload, or ``None`` when absent or expired."""
        entry = self._repo.get(key)
        if entry is None:
            return None
        age = self._clock() - entry.cached_at
        if age > timedelta(seconds=entry.ttl_seconds):
            logger.debug("Cache expired: %s (age %s > ttl %ds)", key, age, entry.ttl_seconds)
            return None
        logger.debug("Cache hit: %s", key)
        return entry.payload

    def put(self, key: str, payload: Any, ttl_seconds: int) -> None:
        """Store ``payload`` under ``key``, overwriting any previous entry."""
        if ttl_seconds < 0:
            raise ValueError(f"ttl_seconds must be >= 0, got {ttl_seconds}.")
        self._repo.upsert(key, payload, self._clock(), ttl_seconds)

    def invalidate(self, key: str) -> bool:
        return self._repo.delete(key)

    async def get_or_fetch(
        self,
        key: str,
        fetch: Callable[[], Awaitable[Optional[Any]]],
        ttl_seconds: int,
        force: bool = False,
    ) -> Optional[Any]:
        """Return the fresh cached payload or fetch, store and return a new one.

        ``None`` results from ``fetch`` (upstream "not found") are not cached.
        ``force`` skips the read but still writes the fetched payload.
        """
        if not force:
            cached = self.get(key)
            if cached is not None:
                return cached
        payload = await fetch()
        if payload is not None:
            self.put(key, payload, ttl_seconds)
        return payload
