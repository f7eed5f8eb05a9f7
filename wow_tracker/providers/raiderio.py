"""
Dungeon-ranking provider client (REST, optional API key).

API:  https://raider.io/api/v1

Credential setup (.env, gitignored):
  RAIDERIO_API_KEY=optional_key   # sent as ``access_key``; raises the quota

The provider answers unknown characters and bad season slugs with 400 or
404; both read as "no data" here.
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar, Optional

from wow_tracker.config import ProviderConfig
from wow_tracker.providers.base import CatalogSource, ProviderClient
from wow_tracker.providers.records import (
    MythicPlusScore,
    MythicPlusSeasonMeta,
    RaiderioCharacter,
    RaidStaticMeta,
    SeasonRuns,
    parse_runs,
)
from wow_tracker.ratelimit import Provider, RateLimitCoordinator

logger = logging.getLogger(__name__)

PROFILE_FIELDS = (
    "mythic_plus_scores_by_season:current",
    "mythic_plus_best_runs:all",
    "mythic_plus_recent_runs",
    "mythic_plus_alternate_runs:all",
    "raid_progression",
)


class RaiderIOClient(ProviderClient, CatalogSource):
    """Mythic+ scores and runs, plus raid and season static data."""

    provider: ClassVar[Provider] = Provider.RAIDERIO

    def __init__(
        self,
        config: ProviderConfig,
        coordinator: RateLimitCoordinator,
        api_key: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(config, coordinator, **kwargs)
        self._api_key = api_key

    async def _get(self, path: str, params: dict[str, Any]) -> Optional[dict[str, Any]]:
        if self._api_key:
            params = {**params, "access_key": self._api_key}
        return await self._request("GET", f"{self.config.base_url}{path}", params=params)

    async def _profile(
        self, name: str, realm_slug: str, region: str, fields: list[str] | tuple[str, ...]
    ) -> Optional[dict[str, Any]]:
        return await self._get(
            "/characters/profile",
            {"region": region, "realm": realm_slug, "name": name, "fields": ",".join(fields)},
        )

    # ── Catalog capability ────────────────────────────────────────────────────

    async def fetch_static_meta(self, expansion_id: Optional[int] = None) -> list[RaidStaticMeta]:
        return await self.fetch_raid_static_data(expansion_id)

    # ── Static data ───────────────────────────────────────────────────────────

    async def fetch_raid_static_data(self, expansion_id: Optional[int]) -> list[RaidStaticMeta]:
        """Raid listings with per-region start/end dates for one expansion."""
        data = await self._get("/raiding/static-data", {"expansion_id": expansion_id})
        if not data or not data.get("raids"):
            logger.warning("No raid static data for expansion %s.", expansion_id)
            return []
        return [RaidStaticMeta.from_api(r) for r in data["raids"]]

    async def fetch_mythic_plus_static_data(self, expansion_id: int) -> list[MythicPlusSeasonMeta]:
        """Mythic+ seasons (and their dungeon pools) for one expansion."""
        data = await self._get("/mythic-plus/static-data", {"expansion_id": expansion_id})
        if not data or not data.get("seasons"):
            logger.warning("No Mythic+ season data for expansion %d.", expansion_id)
            return []
        return [MythicPlusSeasonMeta.from_api(s) for s in data["seasons"]]

    # ── Character data ────────────────────────────────────────────────────────

    async def fetch_character(
        self, name: str, realm_slug: str, region: str
    ) -> Optional[RaiderioCharacter]:
        """Current-season scores and runs, or ``None`` if the character is unknown."""
        data = await self._profile(name, realm_slug, region, PROFILE_FIELDS)
        return RaiderioCharacter.from_api(data) if data else None

    async def fetch_season_runs(
        self, name: str, realm_slug: str, region: str, season_slug: str
    ) -> SeasonRuns:
        data = await self._profile(
            name,
            realm_slug,
            region,
            [f"mythic_plus_best_runs:all:{season_slug}", f"mythic_plus_alternate_runs:all:{season_slug}"],
        )
        if not data:
            return SeasonRuns(season_slug=season_slug)
        return SeasonRuns(
            season_slug=season_slug,
            best_runs=parse_runs(data.get("mythic_plus_best_runs")),
            alternate_runs=parse_runs(data.get("mythic_plus_alternate_runs")),
        )

    async def fetch_historical_scores(
        self, name: str, realm_slug: str, region: str, season_slugs: list[str]
    ) -> list[MythicPlusScore]:
        if not season_slugs:
            return []
        data = await self._profile(
            name, realm_slug, region, [f"mythic_plus_scores_by_season:{s}" for s in season_slugs]
        )
        if not data:
            return []
        return [MythicPlusScore.from_api(s) for s in data.get("mythic_plus_scores_by_season") or []]
