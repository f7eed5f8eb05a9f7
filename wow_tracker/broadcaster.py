"""
In-process change notifications for processing state.

Two channels:

  ``processing``  global; fires whenever any character's processing state
                  changes (step boundary, completion, failure).
  ``queued``      keyed by requesting user; fires when that user's queued
                  items change. Publishing without a key reaches every user.

Listeners take no arguments: a notification means "pull a fresh snapshot".
Nothing is buffered or replayed, so a listener registered after a publish
misses it. Publishing is synchronous; a listener that raises is logged and
skipped so the remaining listeners still run.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import StrEnum
from typing import Optional

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class Channel(StrEnum):
    PROCESSING = "processing"
    QUEUED = "queued"


class UpdateBroadcaster:
    """Fan-out of change signals to registered listeners."""

    def __init__(self) -> None:
        self._processing: list[Listener] = []
        self._queued: dict[str, list[Listener]] = {}

    def subscribe(
        self,
        channel: Channel,
        listener: Listener,
        key: Optional[str] = None,
    ) -> Callable[[], None]:
        """Register ``listener`` and return a callable that removes it.

        Raises:
            ValueError: If ``channel`` is ``queued`` and no user ``key`` is given.
        """
        if channel == Channel.PROCESSING:
            bucket = self._processing
        else:
            if key is None:
                raise ValueError("The queued channel requires a user key.")
            bucket = self._queued.setdefault(key, [])
        bucket.append(listener)

        def unsubscribe() -> None:
            if listener in bucket:
                bucket.remove(listener)
            # A later subscribe for the same key may have registered a new bucket.
            if channel == Channel.QUEUED and not bucket and self._queued.get(key) is bucket:
                del self._queued[key]

        return unsubscribe

    def publish(self, channel: Channel, key: Optional[str] = None) -> int:
        """Invoke every listener on ``channel`` (and ``key``); return how many ran."""
        if channel == Channel.PROCESSING:
            targets = list(self._processing)
        elif key is None:
            targets = [fn for bucket in self._queued.values() for fn in bucket]
        else:
            targets = list(self._queued.get(key, []))

        delivered = 0
        for listener in targets:
            try:
                listener()
                delivered += 1
            except Exception:
                logger.exception("Broadcast listener failed on channel %s.", channel)
        return delivered

    def listener_count(self, channel: Channel, key: Optional[str] = None) -> int:
        if channel == Channel.PROCESSING:
            return len(self._processing)
        if key is None:
            return sum(len(b) for b in self._queued.values())
        return len(self._queued.get(key, []))
