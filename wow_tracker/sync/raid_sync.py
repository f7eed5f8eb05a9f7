"""
Six-phase raid catalog synchronization.

    1. zone details        structure source, cached (wcl:zone:<id>)
    2. expansions          derived from zone details, oldest first
    3. seasons             from configured season definitions
    4. raid static meta    dates source, cached (rio:raids:<expansion>)
    5. icons (optional)    achievement index + tiered name match
    6. raids and bosses    upserted, keyed by provider ids

Each phase keeps going past per-item failures and reports them; only a
phase 1 that yields no usable zone aborts the run. A ``SyncResult`` with
errors is still a successful, partial sync.

Usage::

    engine = RaidSyncEngine(config, CatalogRepository(conn), cache,
                            structure=wcl, dates=rio, icons=blizzard)
    result = await engine.run(SyncOptions(skip_icons=True))
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional

from wow_tracker.cache import ApiCache
from wow_tracker.config import AppConfig, SeasonDefinition
from wow_tracker.db.repositories.catalog_repo import CatalogRepository
from wow_tracker.models.catalog import Boss, Expansion, Raid, Season
from wow_tracker.providers.base import CatalogSource
from wow_tracker.providers.records import AchievementIndexEntry, RaidStaticMeta, ZoneDetail
from wow_tracker.sync.matching import find_icon_achievement, find_raid_match, to_slug
from wow_tracker.sync.results import PhaseReport, SyncResult, attempt, capture

logger = logging.getLogger(__name__)

ACHIEVEMENT_INDEX_KEY = "blizzard:achievement-index"


@dataclass(frozen=True)
class SyncOptions:
    """``force`` bypasses cache reads; ``skip_icons`` skips phase 5 and leaves icons untouched."""

    force: bool = False
    skip_icons: bool = False


class RaidSyncEngine:
    """Builds and refreshes the catalog from three catalog sources.

    Args:
        config: Application config; uses ``raids`` and ``cache``.
        catalog: Catalog repository on the shared connection.
        cache: Persistent API cache.
        structure: Source of zone details (combat-log provider).
        dates: Source of raid static metadata (dungeon-ranking provider).
        icons: Source of the achievement index and icons (profile provider).
    """

    def __init__(
        self,
        config: AppConfig,
        catalog: CatalogRepository,
        cache: ApiCache,
        structure: CatalogSource,
        dates: CatalogSource,
        icons: CatalogSource,
    ) -> None:
        self.config = config
        self.catalog = catalog
        self.cache = cache
        self.structure = structure
        self.dates = dates
        self.icons = icons
        self._seasons = list(config.raids.seasons)
        self._current = set(config.raids.current_zone_ids)

    def catalog_is_empty(self) -> bool:
        return self.catalog.is_empty()

    def tracked_zone_ids(self) -> list[int]:
        seen: dict[int, None] = {}
        for season in self._seasons:
            for zone_id in season.zone_ids:
                seen.setdefault(zone_id, None)
        return list(seen)

    def season_for_zone(self, zone_id: int) -> Optional[SeasonDefinition]:
        for season in self._seasons:
            if zone_id in season.zone_ids:
                return season
        return None

    def _zone_ttl(self, zone_id: int, frozen: bool) -> int:
        # Current-tier zones stay short-lived even when the provider freezes them.
        if frozen and zone_id not in self._current:
            return self.config.cache.frozen_ttl_seconds
        return self.config.cache.volatile_ttl_seconds

    # ── Entry point ───────────────────────────────────────────────────────────

    async def run(self, options: SyncOptions = SyncOptions()) -> SyncResult:
        started = time.monotonic()
        result = SyncResult()
        logger.info("Starting raid sync (force=%s, skip_icons=%s)", options.force, options.skip_icons)

        logger.info("Phase 1: zone details")
        zones, report = await self._fetch_zones(options.force)
        result.merge(report)
        if not zones:
            result.errors.append("No zone details fetched; aborting sync")
            result.aborted = True
            result.duration_ms = int((time.monotonic() - started) * 1000)
            logger.error("Raid sync aborted: no zone details available.")
            return result
        logger.info("Phase 1 complete: %d zones", len(zones))

        logger.info("Phase 2: expansions")
        expansion_ids, report = self._upsert_expansions(zones)
        result.expansions_upserted = report.succeeded
        result.merge(report)

        logger.info("Phase 3: seasons")
        season_ids, report = self._upsert_seasons(zones, expansion_ids)
        result.seasons_upserted = report.succeeded
        result.merge(report)

        logger.info("Phase 4: raid static metadata")
        static_meta, report = await self._fetch_static_meta(options.force)
        result.dates_fetched = len(static_meta)
        result.merge(report)

        raid_icons: dict[str, Optional[str]] = {}
        boss_icons: dict[str, Optional[str]] = {}
        if options.skip_icons:
            logger.info("Phase 5: skipped")
        else:
            logger.info("Phase 5: icons")
            raid_icons, boss_icons, report = await self._resolve_icons(zones, options.force)
            result.icons_fetched = sum(
                1 for url in [*raid_icons.values(), *boss_icons.values()] if url
            )
            result.merge(report)

        logger.info("Phase 6: raids and bosses")
        report = self._upsert_raids(
            zones, static_meta, raid_icons, boss_icons, season_ids, options.skip_icons, result
        )
        result.merge(report)

        result.duration_ms = int((time.monotonic() - started) * 1000)
        if result.errors:
            logger.warning("Raid sync finished with %d errors: %s", len(result.errors), result.counts())
        else:
            logger.info("Raid sync finished: %s in %dms", result.counts(), result.duration_ms)
        return result

    # ── Phase 1 ───────────────────────────────────────────────────────────────

    async def _fetch_zones(self, force: bool) -> tuple[dict[int, ZoneDetail], PhaseReport]:
        report = PhaseReport("zones")
        zones: dict[int, ZoneDetail] = {}
        for zone_id in self.tracked_zone_ids():
            outcome = report.add(
                await attempt(f"Zone {zone_id}", lambda z=zone_id: self._zone_detail(z, force))
            )
            detail = outcome.value
            if not outcome.ok:
                continue
            if detail is None:
                report.fail(f"Zone {zone_id}: not found")
            elif not detail.encounters:
                logger.debug("Dropping zone %d (%s): no encounters", zone_id, detail.name)
            else:
                zones[zone_id] = detail
        return zones, report

    async def _zone_detail(self, zone_id: int, force: bool) -> Optional[ZoneDetail]:
        key = f"wcl:zone:{zone_id}"
        if not force:
            cached = self.cache.get(key)
            if cached is not None:
                return ZoneDetail.from_api(cached)
        detail = await self.structure.fetch_structure(zone_id)
        if detail is not None:
            self.cache.put(key, detail.to_payload(), self._zone_ttl(zone_id, detail.frozen))
        return detail

    # ── Phase 2 ───────────────────────────────────────────────────────────────

    def _upsert_expansions(
        self, zones: dict[int, ZoneDetail]
    ) -> tuple[dict[int, int], PhaseReport]:
        report = PhaseReport("expansions")
        found: dict[int, Expansion] = {}
        for zone_id, zone in zones.items():
            if zone.expansion is None or zone.expansion.id in found:
                continue
            season = self.season_for_zone(zone_id)
            found[zone.expansion.id] = Expansion(
                slug=to_slug(zone.expansion.name),
                name=zone.expansion.name,
                source_expansion_id=zone.expansion.id,
                static_meta_expansion_id=season.static_meta_expansion_id if season else None,
            )

        ids: dict[int, int] = {}
        ordered = sorted(found.values(), key=lambda e: e.source_expansion_id)
        for position, expansion in enumerate(ordered, start=1):
            outcome = report.add(
                capture(
                    f"Expansion {expansion.name}",
                    lambda e=expansion, p=position: self.catalog.upsert_expansion(
                        e.model_copy(update={"sort_order": p})
                    ),
                )
            )
            if outcome.ok:
                ids[expansion.source_expansion_id] = outcome.value
        self.catalog.commit()
        logger.info("Expansions upserted: %s", [e.name for e in ordered])
        return ids, report

    # ── Phase 3 ───────────────────────────────────────────────────────────────

    def _upsert_seasons(
        self, zones: dict[int, ZoneDetail], expansion_ids: dict[int, int]
    ) -> tuple[dict[str, int], PhaseReport]:
        report = PhaseReport("seasons")
        ids: dict[str, int] = {}
        for definition in self._seasons:
            expansion = self._resolve_season_expansion(definition, zones, expansion_ids)
            if expansion is None:
                report.fail(f"No expansion resolved for season {definition.slug}")
                continue
            season = Season(
                slug=definition.slug,
                name=f"{expansion.name} Season {definition.number}",
                number=definition.number,
                expansion_id=expansion.expansion_id,
                external_season_slug=definition.external_season_slug,
            )
            outcome = report.add(
                capture(f"Season {definition.slug}", lambda s=season: self.catalog.upsert_season(s))
            )
            if outcome.ok:
                ids[definition.slug] = outcome.value
        self.catalog.commit()
        logger.info("Seasons upserted: %d", len(ids))
        return ids, report

    def _resolve_season_expansion(
        self,
        definition: SeasonDefinition,
        zones: dict[int, ZoneDetail],
        expansion_ids: dict[int, int],
    ) -> Optional[Expansion]:
        for zone_id in definition.zone_ids:
            zone = zones.get(zone_id)
            if zone and zone.expansion and zone.expansion.id in expansion_ids:
                return self.catalog.get_expansion_by_source_id(zone.expansion.id)
        return self.catalog.get_expansion_by_static_meta_id(definition.static_meta_expansion_id)

    # ── Phase 4 ───────────────────────────────────────────────────────────────

    async def _fetch_static_meta(self, force: bool) -> tuple[list[RaidStaticMeta], PhaseReport]:
        report = PhaseReport("static meta")
        expansion_ids = list(dict.fromkeys(s.static_meta_expansion_id for s in self._seasons))
        raids: list[RaidStaticMeta] = []
        for expansion_id in expansion_ids:
            outcome = report.add(
                await attempt(
                    f"Raid static data for expansion {expansion_id}",
                    lambda e=expansion_id: self._static_meta(e, force),
                )
            )
            if outcome.ok:
                raids.extend(outcome.value or [])
        return raids, report

    async def _static_meta(self, expansion_id: int, force: bool) -> list[RaidStaticMeta]:
        async def fetch() -> list[dict]:
            records = await self.dates.fetch_static_meta(expansion_id)
            return [r.to_payload() for r in records]

        payload = await self.cache.get_or_fetch(
            f"rio:raids:{expansion_id}", fetch, self.config.cache.volatile_ttl_seconds, force=force
        )
        return [RaidStaticMeta.from_api(r) for r in payload or []]

    # ── Phase 5 ───────────────────────────────────────────────────────────────

    async def _resolve_icons(
        self, zones: dict[int, ZoneDetail], force: bool
    ) -> tuple[dict[str, Optional[str]], dict[str, Optional[str]], PhaseReport]:
        report = PhaseReport("icons")
        raid_icons: dict[str, Optional[str]] = {}
        boss_icons: dict[str, Optional[str]] = {}

        outcome = report.add(await attempt("Achievement index", lambda: self._achievement_index(force)))
        index = outcome.value or []
        if not outcome.ok:
            return raid_icons, boss_icons, report
        if not index:
            report.fail("Achievement index is empty; skipping icon resolution")
            return raid_icons, boss_icons, report

        raid_names = list(dict.fromkeys(z.name for z in zones.values()))
        boss_names = list(dict.fromkeys(e.name for z in zones.values() for e in z.encounters))
        for names, target in ((raid_names, raid_icons), (boss_names, boss_icons)):
            for name in names:
                outcome = report.add(
                    await attempt(f"Icon for {name}", lambda n=name: self._icon_for(n, index, force))
                )
                target[name] = outcome.value
        logger.info(
            "Icons resolved: %d of %d names",
            sum(1 for v in [*raid_icons.values(), *boss_icons.values()] if v),
            len(raid_names) + len(boss_names),
        )
        return raid_icons, boss_icons, report

    async def _achievement_index(self, force: bool) -> list[AchievementIndexEntry]:
        async def fetch() -> list[dict]:
            return [e.to_payload() for e in await self.icons.fetch_static_meta()]

        payload = await self.cache.get_or_fetch(
            ACHIEVEMENT_INDEX_KEY, fetch, self.config.cache.volatile_ttl_seconds, force=force
        )
        return [AchievementIndexEntry.from_api(e) for e in payload or []]

    async def _icon_for(
        self, name: str, index: list[AchievementIndexEntry], force: bool
    ) -> Optional[str]:
        match = find_icon_achievement(name, index)
        if match is None:
            logger.debug("No icon match for %s", name)
            return None
        return await self.cache.get_or_fetch(
            f"blizzard:achievement-icon:{match.id}",
            lambda: self.icons.fetch_icon(match.id),
            self.config.cache.frozen_ttl_seconds,
            force=force,
        )

    # ── Phase 6 ───────────────────────────────────────────────────────────────

    def _upsert_raids(
        self,
        zones: dict[int, ZoneDetail],
        static_meta: list[RaidStaticMeta],
        raid_icons: dict[str, Optional[str]],
        boss_icons: dict[str, Optional[str]],
        season_ids: dict[str, int],
        skip_icons: bool,
        result: SyncResult,
    ) -> PhaseReport:
        report = PhaseReport("raids")
        for zone_id, zone in zones.items():
            definition = self.season_for_zone(zone_id)
            if definition is None:
                report.fail(f"No season mapping for zone {zone_id} ({zone.name})")
                continue
            season_id = season_ids.get(definition.slug)
            if season_id is None:
                report.fail(f"Season {definition.slug} not stored; skipping zone {zone_id}")
                continue

            outcome = report.add(
                capture(
                    f"Raid {zone.name}",
                    lambda z=zone, s=season_id: self._upsert_raid(
                        z, s, static_meta, raid_icons, boss_icons, skip_icons
                    ),
                )
            )
            if outcome.ok:
                result.raids_upserted += 1
                result.bosses_upserted += outcome.value
        return report

    def _upsert_raid(
        self,
        zone: ZoneDetail,
        season_id: int,
        static_meta: list[RaidStaticMeta],
        raid_icons: dict[str, Optional[str]],
        boss_icons: dict[str, Optional[str]],
        skip_icons: bool,
    ) -> int:
        """Store one raid and its bosses as a unit; return the boss count."""
        with self.catalog.transaction():
            return self._write_raid(zone, season_id, static_meta, raid_icons, boss_icons, skip_icons)

    def _write_raid(
        self,
        zone: ZoneDetail,
        season_id: int,
        static_meta: list[RaidStaticMeta],
        raid_icons: dict[str, Optional[str]],
        boss_icons: dict[str, Optional[str]],
        skip_icons: bool,
    ) -> int:
        existing = self.catalog.get_raid_by_zone(zone.id)
        matched = find_raid_match(static_meta, zone.name)
        meta = matched[0] if matched else None
        if matched:
            logger.debug("Zone %d matched %s by %s", zone.id, meta.slug, matched[1])
        else:
            logger.warning("Zone %d (%s) has no static metadata match", zone.id, zone.name)

        prior_icon = existing.icon_url if existing else None
        if skip_icons:
            icon = prior_icon
        else:
            icon = (meta.icon if meta else None) or raid_icons.get(zone.name) or prior_icon

        raid_id = self.catalog.upsert_raid(
            Raid(
                source_zone_id=zone.id,
                season_id=season_id,
                name=zone.name,
                slug=meta.slug if meta else to_slug(zone.name),
                icon_url=icon,
                region_start_dates=(
                    meta.starts if meta and meta.starts
                    else (existing.region_start_dates if existing else {})
                ),
                region_end_dates=(
                    meta.ends if meta and meta.ends
                    else (existing.region_end_dates if existing else {})
                ),
                is_frozen=zone.frozen,
                is_current=zone.id in self._current,
            )
        )

        for position, encounter in enumerate(zone.encounters, start=1):
            prior = self.catalog.get_boss(raid_id, encounter.id)
            self.catalog.upsert_boss(
                Boss(
                    raid_id=raid_id,
                    source_encounter_id=encounter.id,
                    journal_id=encounter.journal_id,
                    name=encounter.name,
                    slug=to_slug(encounter.name),
                    icon_url=boss_icons.get(encounter.name) or (prior.icon_url if prior else None),
                    sort_order=position,
                )
            )
        return len(zone.encounters)
