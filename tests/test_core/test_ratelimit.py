"""Tests for the advisory rate limit coordinator."""

from __future__ import annotations

from datetime import timedelta

import pytest

from wow_tracker.config import ProvidersConfig
from wow_tracker.ratelimit import Provider, RateLimitCoordinator


class ManualScheduler:
    """Collects deferred callbacks so tests can fire them explicitly."""

    def __init__(self) -> None:
        self.pending: list[tuple[float, object]] = []

    def __call__(self, delay, callback):
        self.pending.append((delay, callback))

    def fire_all(self) -> None:
        pending, self.pending = self.pending, []
        for _, callback in pending:
            callback()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def coordinator(clock, scheduler) -> RateLimitCoordinator:
    coord = RateLimitCoordinator(clock=clock, scheduler=scheduler)
    coord.configure(Provider.WARCRAFTLOGS, hourly_limit=20, low_water_mark=5)
    coord.configure(Provider.RAIDERIO, hourly_limit=None)
    return coord


class TestConsumption:
    def test_decrements_remaining(self, coordinator):
        coordinator.record_consumption(Provider.WARCRAFTLOGS)
        state = coordinator.status(Provider.WARCRAFTLOGS)
        assert state.remaining == 19
        assert state.requests_this_hour == 1

    def test_remaining_never_negative(self, coordinator):
        for _ in range(50):
            coordinator.record_consumption(Provider.WARCRAFTLOGS)
        assert coordinator.status(Provider.WARCRAFTLOGS).remaining == 0
        assert not coordinator.can_admit(Provider.WARCRAFTLOGS)

    def test_authoritative_overwrites_and_clamps(self, coordinator, clock):
        reset = clock() + timedelta(minutes=30)
        coordinator.apply_authoritative(Provider.WARCRAFTLOGS, remaining=-3, limit=3600, reset_at=reset)
        state = coordinator.status(Provider.WARCRAFTLOGS)
        assert state.remaining == 0
        assert state.limit == 3600
        assert state.reset_at == reset

    def test_unlimited_provider_always_admits(self, coordinator):
        for _ in range(100):
            coordinator.record_consumption(Provider.RAIDERIO)
        assert coordinator.can_admit(Provider.RAIDERIO)
        assert not coordinator.is_paused(Provider.RAIDERIO)
        assert coordinator.status(Provider.RAIDERIO).requests_this_hour == 100

    def test_unknown_provider_admits(self, coordinator):
        assert coordinator.can_admit("nobody")
        assert coordinator.status("nobody") is None

    def test_window_rolls_after_reset(self, coordinator, clock):
        for _ in range(3):
            coordinator.record_consumption(Provider.WARCRAFTLOGS)
        clock.advance(hours=1, seconds=1)
        assert coordinator.can_admit(Provider.WARCRAFTLOGS)
        assert coordinator.status(Provider.WARCRAFTLOGS).remaining == 20


class TestPauseResume:
    def _hooks(self, coordinator, provider=Provider.WARCRAFTLOGS):
        events: list[str] = []
        coordinator.register_pause_resume(
            provider, lambda: events.append("pause"), lambda: events.append("resume")
        )
        return events

    def test_pause_fires_once_per_crossing(self, coordinator, scheduler):
        events = self._hooks(coordinator)
        for _ in range(20):
            coordinator.record_consumption(Provider.WARCRAFTLOGS)
        assert events == ["pause"]
        assert coordinator.is_paused(Provider.WARCRAFTLOGS)
        assert len(scheduler.pending) == 1

    def test_resume_fires_once_after_reset(self, coordinator, scheduler, clock):
        events = self._hooks(coordinator)
        coordinator.apply_authoritative(Provider.WARCRAFTLOGS, remaining=2)
        coordinator.apply_authoritative(Provider.WARCRAFTLOGS, remaining=1)

        clock.advance(hours=1, seconds=10)
        scheduler.fire_all()
        scheduler.fire_all()

        assert events == ["pause", "resume"]
        assert not coordinator.is_paused(Provider.WARCRAFTLOGS)
        assert coordinator.status(Provider.WARCRAFTLOGS).remaining == 20

    def test_resume_delay_includes_buffer(self, clock, scheduler):
        coord = RateLimitCoordinator(clock=clock, scheduler=scheduler)
        coord.configure(Provider.BLIZZARD, hourly_limit=100, low_water_mark=10, resume_buffer_seconds=5)
        coord.apply_authoritative(
            Provider.BLIZZARD, remaining=10, reset_at=clock() + timedelta(seconds=60)
        )
        assert scheduler.pending[0][0] == pytest.approx(65.0)

    def test_above_low_water_does_not_pause(self, coordinator):
        events = self._hooks(coordinator)
        coordinator.apply_authoritative(Provider.WARCRAFTLOGS, remaining=6)
        assert events == []

    def test_failing_hook_does_not_block_others(self, coordinator):
        events: list[str] = []

        def boom():
            raise RuntimeError("hook failed")

        coordinator.register_pause_resume(Provider.WARCRAFTLOGS, boom, lambda: None)
        coordinator.register_pause_resume(
            Provider.WARCRAFTLOGS, lambda: events.append("pause"), lambda: None
        )
        coordinator.apply_authoritative(Provider.WARCRAFTLOGS, remaining=0)
        assert events == ["pause"]

    def test_register_unknown_provider_raises(self, coordinator):
        with pytest.raises(KeyError):
            coordinator.register_pause_resume("nobody", lambda: None, lambda: None)


class TestFromConfig:
    def test_one_slot_per_provider(self, clock, scheduler):
        coord = RateLimitCoordinator.from_config(ProvidersConfig(), clock=clock, scheduler=scheduler)
        statuses = coord.all_status()
        assert set(statuses) == {"warcraftlogs", "raiderio", "blizzard"}
        assert statuses["raiderio"].unlimited
        assert statuses["warcraftlogs"].remaining == 3600
