"""
Per-unit outcome accumulation for the raid sync.

Every item a phase processes (one zone, one expansion, one raid) runs
through ``attempt()`` / ``capture()``, which turn an exception into a tagged
failure instead of letting it cross the loop. A phase collects its outcomes
in a ``PhaseReport``; the engine folds every report's errors into the final
``SyncResult``.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of one unit of work: a value, or an error message."""

    unit: str
    value: Optional[T] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def attempt(unit: str, fn: Callable[[], Awaitable[T]]) -> Outcome[T]:
    try:
        return Outcome(unit, value=await fn())
    except Exception as exc:
        logger.warning("%s failed: %s", unit, exc)
        return Outcome(unit, error=f"{unit}: {exc}")


def capture(unit: str, fn: Callable[[], T]) -> Outcome[T]:
    try:
        return Outcome(unit, value=fn())
    except Exception as exc:
        logger.warning("%s failed: %s", unit, exc)
        return Outcome(unit, error=f"{unit}: {exc}")


@dataclass
class PhaseReport:
    """Outcomes and local-resolution errors gathered by one phase."""

    name: str
    outcomes: list[Outcome[Any]] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)

    def add(self, outcome: Outcome[T]) -> Outcome[T]:
        self.outcomes.append(outcome)
        return outcome

    def fail(self, message: str) -> None:
        """Record an error that did not come from an exception."""
        logger.warning("%s: %s", self.name, message)
        self.notes.append(message)

    @property
    def errors(self) -> list[str]:
        return [o.error for o in self.outcomes if o.error] + self.notes

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)


@dataclass
class SyncResult:
    """Report of one sync run. Errors never mean the run failed as a whole."""

    expansions_upserted: int = 0
    seasons_upserted: int = 0
    raids_upserted: int = 0
    bosses_upserted: int = 0
    icons_fetched: int = 0
    dates_fetched: int = 0
    errors: list[str] = field(default_factory=list)
    duration_ms: int = 0
    aborted: bool = False

    def merge(self, report: PhaseReport) -> None:
        self.errors.extend(report.errors)

    def counts(self) -> dict[str, int]:
        return {
            "expansions": self.expansions_upserted,
            "seasons": self.seasons_upserted,
            "raids": self.raids_upserted,
            "bosses": self.bosses_upserted,
            "icons": self.icons_fetched,
            "dates": self.dates_fetched,
        }
