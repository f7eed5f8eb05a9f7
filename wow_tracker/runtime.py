"""
Process wiring for the tracker.

``TrackerRuntime`` builds every long-lived collaborator exactly once and
passes it to its consumers: the rate limit coordinator, the API cache, the
broadcaster, the three provider clients, the sync engine and the two stage
workers. Nothing is reached through module globals.

Boot order (``serve()``):
  1. Jobs left ``active`` by a previous process go back to ``waiting``, and
     the combat-log point budget is read from the API so the coordinator
     starts from the provider's numbers rather than a full local estimate.
  2. The catalog sync starts as a supervised background task when
     ``sync_on_boot`` is set or the catalog is empty. Its failures go to the
     runtime's error sink; the workers start regardless.
  3. The daily sync scheduler and both workers run until ``stop()``.

The sync engine gets its own connection when one is supplied. Catalog syncs
are serialized: a daily sync that fires while the boot sync is still running
waits for it to finish.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from typing import Optional

import httpx

from wow_tracker.broadcaster import UpdateBroadcaster
from wow_tracker.cache import ApiCache
from wow_tracker.config import AppConfig, Credentials
from wow_tracker.db.repositories.cache_repo import CacheRepository
from wow_tracker.db.repositories.catalog_repo import CatalogRepository
from wow_tracker.db.repositories.queue_repo import QueueRepository
from wow_tracker.processing.pipeline import DeepScanPipeline, LightweightPipeline, PipelineDeps
from wow_tracker.processing.queue import StageWorker
from wow_tracker.processing.summary import DisabledSummaryGenerator, SummaryGenerator
from wow_tracker.providers.blizzard import BlizzardClient
from wow_tracker.providers.errors import ProviderError
from wow_tracker.providers.raiderio import RaiderIOClient
from wow_tracker.providers.warcraftlogs import WarcraftLogsClient
from wow_tracker.ratelimit import Provider, RateLimitCoordinator
from wow_tracker.scheduler import SupervisedTask, SyncScheduler, log_error_sink
from wow_tracker.sync.raid_sync import RaidSyncEngine, SyncOptions
from wow_tracker.sync.results import SyncResult
from wow_tracker.taxonomy.processing_taxonomy import Stage

logger = logging.getLogger(__name__)


class TrackerRuntime:
    """Owns the collaborators of one tracker process."""

    def __init__(
        self,
        config: AppConfig,
        credentials: Credentials,
        conn: sqlite3.Connection,
        sync_conn: Optional[sqlite3.Connection] = None,
        http: Optional[httpx.AsyncClient] = None,
        summary: Optional[SummaryGenerator] = None,
        coordinator: Optional[RateLimitCoordinator] = None,
    ) -> None:
        self.config = config
        self.conn = conn
        self.broadcaster = UpdateBroadcaster()
        self.coordinator = coordinator or RateLimitCoordinator.from_config(config.providers)
        self.cache = ApiCache(CacheRepository(conn))
        self.sync_errors: list[str] = []
        self._sync_lock = asyncio.Lock()

        client_kwargs = {
            "http": http,
            "admission_wait_seconds": config.queue.admission_wait_seconds,
        }
        self.warcraftlogs = WarcraftLogsClient(
            config.providers.warcraftlogs,
            self.coordinator,
            client_id=credentials.wcl_client_id,
            client_secret=credentials.wcl_client_secret,
            **client_kwargs,
        )
        self.raiderio = RaiderIOClient(
            config.providers.raiderio,
            self.coordinator,
            api_key=credentials.raiderio_api_key,
            **client_kwargs,
        )
        self.blizzard = BlizzardClient(
            config.providers.blizzard,
            self.coordinator,
            client_id=credentials.blizzard_client_id,
            client_secret=credentials.blizzard_client_secret,
            **client_kwargs,
        )

        sync_db = sync_conn or conn
        self.sync_engine = RaidSyncEngine(
            config,
            CatalogRepository(sync_db),
            ApiCache(CacheRepository(sync_db)),
            structure=self.warcraftlogs,
            dates=self.raiderio,
            icons=self.blizzard,
        )

        deps = PipelineDeps(
            config=config,
            conn=conn,
            broadcaster=self.broadcaster,
            cache=self.cache,
            warcraftlogs=self.warcraftlogs,
            raiderio=self.raiderio,
            blizzard=self.blizzard,
            summary=summary or DisabledSummaryGenerator(),
            on_deep_enqueued=self._wake_deep_worker,
        )
        poll = config.queue.poll_interval_seconds
        self.lightweight_worker = StageWorker(
            Stage.LIGHTWEIGHT, QueueRepository(conn), LightweightPipeline(deps).run,
            self.broadcaster, poll,
        )
        self.deep_worker = StageWorker(
            Stage.DEEP, QueueRepository(conn), DeepScanPipeline(deps).run,
            self.broadcaster, poll,
        )
        self._register_pause_resume()

        self.boot_sync: Optional[SupervisedTask] = None
        self.scheduler = SyncScheduler(
            lambda: self.sync_catalog(), config.sync.daily_sync_hour, self.record_sync_error
        )

    # ── Wiring ────────────────────────────────────────────────────────────────

    def _register_pause_resume(self) -> None:
        worker = self.lightweight_worker
        for provider in Provider:
            reason = str(provider)
            self.coordinator.register_pause_resume(
                provider,
                on_pause=lambda r=reason: worker.pause(r),
                on_resume=lambda r=reason: worker.resume(r),
            )

    def _wake_deep_worker(self) -> None:
        self.deep_worker.notify()

    def record_sync_error(self, name: str, exc: BaseException) -> None:
        """Error sink for background sync tasks."""
        self.sync_errors.append(f"{name}: {exc}")
        log_error_sink(name, exc)

    # ── Operations ────────────────────────────────────────────────────────────

    async def sync_catalog(self, options: SyncOptions = SyncOptions()) -> SyncResult:
        """Run one catalog sync; a second caller waits for the running one."""
        if self._sync_lock.locked():
            logger.info("Catalog sync already running; waiting for it to finish.")
        async with self._sync_lock:
            result = await self.sync_engine.run(options)
        for error in result.errors:
            logger.warning("Sync error: %s", error)
        return result

    def start_boot_sync(self) -> Optional[SupervisedTask]:
        """Start the background catalog sync if the config or an empty catalog calls for it."""
        if not (self.config.sync.sync_on_boot or self.sync_engine.catalog_is_empty()):
            logger.info("Boot sync skipped (sync_on_boot off, catalog populated).")
            return None
        self.boot_sync = SupervisedTask("boot-sync", self.sync_catalog, self.record_sync_error)
        self.boot_sync.start()
        return self.boot_sync

    def recover(self) -> int:
        return QueueRepository(self.conn).requeue_active()

    async def refresh_quotas(self) -> bool:
        """Apply the combat-log provider's reported point budget to the coordinator.

        Returns ``False`` when the budget could not be read; the coordinator
        then keeps its local estimate.
        """
        try:
            await self.warcraftlogs.refresh_quota()
        except ProviderError as exc:
            logger.warning("Could not read the combat-log point budget: %s", exc)
            return False
        state = self.coordinator.status(Provider.WARCRAFTLOGS)
        if state is not None:
            logger.info("Combat-log budget: %d of %s points left.", state.remaining, state.limit)
        return True

    async def drain(self) -> int:
        """Run both queues until neither has a claimable job."""
        total = 0
        while True:
            processed = await self.lightweight_worker.run_until_idle()
            processed += await self.deep_worker.run_until_idle()
            total += processed
            if processed == 0:
                return total

    async def serve(self) -> None:
        """Boot, then run the workers and the daily sync until ``stop()``."""
        self.recover()
        await self.refresh_quotas()
        self.start_boot_sync()
        self.scheduler.start()
        try:
            await asyncio.gather(
                self.lightweight_worker.run_forever(),
                self.deep_worker.run_forever(),
            )
        finally:
            self.scheduler.stop()
            if self.boot_sync is not None:
                self.boot_sync.cancel()
                await self.boot_sync.wait()

    def stop(self) -> None:
        self.lightweight_worker.stop()
        self.deep_worker.stop()
        self.scheduler.stop()

    async def aclose(self) -> None:
        for client in (self.warcraftlogs, self.raiderio, self.blizzard):
            await client.aclose()
