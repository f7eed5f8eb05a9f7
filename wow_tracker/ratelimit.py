"""
Advisory per-provider rate limit coordinator.

Tracks a ``RateLimitState`` per provider and gates outbound calls:

  - ``record_consumption(provider)``  optimistic decrement before a call
  - ``apply_authoritative(...)``      overwrite from quota response headers
  - ``can_admit(provider)``           ``remaining > 0``
  - ``register_pause_resume(...)``    hooks for stage workers

When ``remaining`` drops to the provider's low-water-mark, every registered
``on_pause`` fires once and a single timer is scheduled for
``reset_at + resume_buffer``; when it fires, the quota window is restored (if
the reset time has passed) and every ``on_resume`` fires once. A provider
stays paused until that timer fires, however many further updates arrive.

The coordinator is advisory: a decrement recorded before a call and a header
overwrite applied after it can interleave across concurrent requests, and no
attempt is made to reconcile them. Providers without an hourly limit are
never refused and never paused.

Usage::

    coordinator = RateLimitCoordinator.from_config(config.providers)
    coordinator.register_pause_resume(Provider.WARCRAFTLOGS, worker.pause, worker.resume)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Optional

from wow_tracker.utils.time_utils import seconds_until, utcnow

if TYPE_CHECKING:
    from wow_tracker.config import ProvidersConfig

logger = logging.getLogger(__name__)

_WINDOW = timedelta(hours=1)

Clock = Callable[[], datetime]
Scheduler = Callable[[float, Callable[[], None]], Any]
Hook = Callable[[], None]


class Provider(StrEnum):
    """Upstream data providers."""

    WARCRAFTLOGS = "warcraftlogs"
    RAIDERIO = "raiderio"
    BLIZZARD = "blizzard"


@dataclass
class RateLimitState:
    """Quota view for one provider.

    Attributes:
        limit: Calls allowed per window; ``None`` means unlimited.
        remaining: Calls left in the current window, never negative.
        reset_at: UTC time the provider's window resets.
        requests_this_hour: Calls recorded locally in the current window.
    """

    limit: Optional[int]
    remaining: int
    reset_at: datetime
    requests_this_hour: int = 0

    @property
    def unlimited(self) -> bool:
        return self.limit is None


@dataclass
class _ProviderSlot:
    state: RateLimitState
    low_water_mark: int
    resume_buffer: timedelta
    paused: bool = False
    pause_hooks: list[Hook] = field(default_factory=list)
    resume_hooks: list[Hook] = field(default_factory=list)


def _loop_call_later(delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
    return asyncio.get_running_loop().call_later(delay, callback)


class RateLimitCoordinator:
    """Shared quota tracker for every provider client.

    Args:
        clock: Returns the current aware UTC time. Injectable for tests.
        scheduler: ``scheduler(delay_seconds, callback)`` arranges a single
            deferred call. Defaults to the running asyncio loop's
            ``call_later``.
    """

    def __init__(
        self,
        clock: Clock = utcnow,
        scheduler: Scheduler = _loop_call_later,
    ) -> None:
        self._clock = clock
        self._scheduler = scheduler
        self._slots: dict[str, _ProviderSlot] = {}

    @classmethod
    def from_config(
        cls,
        providers: "ProvidersConfig",
        clock: Clock = utcnow,
        scheduler: Scheduler = _loop_call_later,
    ) -> "RateLimitCoordinator":
        """Build a coordinator with one slot per configured provider."""
        coordinator = cls(clock=clock, scheduler=scheduler)
        for provider in Provider:
            cfg = getattr(providers, provider.value)
            coordinator.configure(
                provider,
                hourly_limit=cfg.hourly_limit,
                low_water_mark=cfg.low_water_mark,
                resume_buffer_seconds=cfg.resume_buffer_seconds,
            )
        return coordinator

    def configure(
        self,
        provider: str,
        hourly_limit: Optional[int],
        low_water_mark: int = 10,
        resume_buffer_seconds: float = 5.0,
    ) -> None:
        """Register (or reset) a provider with a full quota window."""
        self._slots[provider] = _ProviderSlot(
            state=RateLimitState(
                limit=hourly_limit,
                remaining=hourly_limit or 0,
                reset_at=self._clock() + _WINDOW,
            ),
            low_water_mark=low_water_mark,
            resume_buffer=timedelta(seconds=resume_buffer_seconds),
        )

    # ── Updates ───────────────────────────────────────────────────────────────

    def record_consumption(self, provider: str) -> None:
        """Count one outbound call and decrement ``remaining`` (clamped at 0)."""
        slot = self._slots.get(provider)
        if slot is None:
            return
        state = slot.state
        self._roll_window_if_expired(slot)
        state.requests_this_hour += 1
        if state.unlimited:
            return
        state.remaining = max(state.remaining - 1, 0)
        self._check_low_water(provider, slot)

    def apply_authoritative(
        self,
        provider: str,
        remaining: int,
        limit: Optional[int] = None,
        reset_at: Optional[datetime] = None,
    ) -> None:
        """Overwrite the provider's quota with values it reported itself."""
        slot = self._slots.get(provider)
        if slot is None:
            return
        state = slot.state
        if limit is not None:
            state.limit = limit
        if state.unlimited:
            return
        state.remaining = max(int(remaining), 0)
        if reset_at is not None:
            state.reset_at = reset_at
        logger.debug(
            "Rate limit [%s]: %d/%s remaining, resets %s",
            provider, state.remaining, state.limit, state.reset_at.isoformat(),
        )
        self._check_low_water(provider, slot)

    # ── Queries ───────────────────────────────────────────────────────────────

    def can_admit(self, provider: str) -> bool:
        """``True`` when the provider has quota left; unknown providers admit."""
        slot = self._slots.get(provider)
        if slot is None or slot.state.unlimited:
            return True
        self._roll_window_if_expired(slot)
        return slot.state.remaining > 0

    def is_paused(self, provider: str) -> bool:
        slot = self._slots.get(provider)
        return bool(slot and slot.paused)

    def status(self, provider: str) -> Optional[RateLimitState]:
        """A copy of the provider's current state, or ``None`` if unknown."""
        slot = self._slots.get(provider)
        return replace(slot.state) if slot else None

    def all_status(self) -> dict[str, RateLimitState]:
        return {name: replace(slot.state) for name, slot in self._slots.items()}

    # ── Pause / resume ────────────────────────────────────────────────────────

    def register_pause_resume(self, provider: str, on_pause: Hook, on_resume: Hook) -> None:
        """Attach hooks fired when the provider crosses its low-water-mark."""
        slot = self._slots.get(provider)
        if slot is None:
            raise KeyError(f"Unknown provider '{provider}'.")
        slot.pause_hooks.append(on_pause)
        slot.resume_hooks.append(on_resume)

    def _check_low_water(self, provider: str, slot: _ProviderSlot) -> None:
        state = slot.state
        if slot.paused or state.unlimited or state.remaining > slot.low_water_mark:
            return
        slot.paused = True
        resume_at = state.reset_at + slot.resume_buffer
        delay = seconds_until(resume_at, self._clock())
        logger.warning(
            "Rate limit [%s] at low-water-mark (%d remaining); pausing for %.0fs.",
            provider, state.remaining, delay,
        )
        _fire(provider, "pause", slot.pause_hooks)
        self._scheduler(delay, lambda: self._resume(provider))

    def _resume(self, provider: str) -> None:
        slot = self._slots[provider]
        if not slot.paused:
            return
        slot.paused = False
        state = slot.state
        now = self._clock()
        if now >= state.reset_at:
            state.remaining = state.limit or 0
            state.requests_this_hour = 0
            state.reset_at = now + _WINDOW
        logger.info("Rate limit [%s] window reset; resuming.", provider)
        _fire(provider, "resume", slot.resume_hooks)

    def _roll_window_if_expired(self, slot: _ProviderSlot) -> None:
        # A paused slot waits for its timer so resume still fires exactly once.
        state = slot.state
        now = self._clock()
        if slot.paused or now < state.reset_at:
            return
        state.remaining = state.limit or 0
        state.requests_this_hour = 0
        state.reset_at = now + _WINDOW


def _fire(provider: str, kind: str, hooks: list[Hook]) -> None:
    for hook in list(hooks):
        try:
            hook()
        except Exception:
            logger.exception("Rate limit [%s] %s hook failed.", provider, kind)
