"""
Combat-log provider client (GraphQL over HTTPS, client-credentials auth).

API:   https://www.warcraftlogs.com/api/v2/client
Token: https://www.warcraftlogs.com/oauth/token

Credential setup (.env, gitignored):
  WCL_CLIENT_ID=your_client_id
  WCL_CLIENT_SECRET=your_client_secret

Rankings for a whole raid are fetched with one aliased query per batch of up
to ``MAX_ENCOUNTERS_PER_BATCH`` encounters::

    characterData { character(...) {
        e2902: encounterRankings(encounterID: 2902, difficulty: 5)
        e2917: encounterRankings(encounterID: 2917, difficulty: 5)
    } }

The endpoint answers GraphQL failures with HTTP 200 and an ``errors`` list;
those are raised as ``ProviderError``.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, ClassVar, Optional

from wow_tracker.config import ProviderConfig
from wow_tracker.providers.base import CatalogSource, OAuthToken, ProviderClient
from wow_tracker.providers.errors import ProviderError
from wow_tracker.providers.records import EncounterRanking, ZoneDetail
from wow_tracker.ratelimit import Provider, RateLimitCoordinator

logger = logging.getLogger(__name__)

MAX_ENCOUNTERS_PER_BATCH = 12

ZONE_DETAIL_QUERY = """
query ($id: Int!) {
  worldData {
    zone(id: $id) {
      id
      name
      frozen
      expansion { id name }
      encounters { id name journalID }
      partitions { id name default }
    }
  }
}
"""

RATE_LIMIT_QUERY = """
query {
  rateLimitData { limitPerHour pointsSpentThisHour pointsResetIn }
}
"""

_RANKINGS_QUERY_TEMPLATE = """
query ($name: String!, $server: String!, $region: String!) {
  characterData {
    character(name: $name, serverSlug: $server, serverRegion: $region) {
      %s
    }
  }
}
"""


def build_rankings_query(encounter_ids: list[int], difficulty: int) -> str:
    """Aliased rankings query for one batch of encounters."""
    fields = "\n      ".join(
        f"e{eid}: encounterRankings(encounterID: {eid}, difficulty: {difficulty})"
        for eid in encounter_ids
    )
    return _RANKINGS_QUERY_TEMPLATE % fields


class WarcraftLogsClient(ProviderClient, CatalogSource):
    """Zone structure and per-character encounter rankings."""

    provider: ClassVar[Provider] = Provider.WARCRAFTLOGS
    NOT_FOUND_STATUSES: ClassVar[frozenset[int]] = frozenset({404})

    def __init__(
        self,
        config: ProviderConfig,
        coordinator: RateLimitCoordinator,
        client_id: str = "",
        client_secret: str = "",
        **kwargs: Any,
    ) -> None:
        super().__init__(config, coordinator, **kwargs)
        self._token = OAuthToken(config.token_url or "", client_id, client_secret)

    async def query(self, query: str, variables: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """Run one GraphQL query and return its ``data`` object.

        Raises:
            ProviderAuthError: If the token exchange or the call is rejected.
            ProviderError: On transport failure, non-2xx status or GraphQL errors.
        """
        token = await self._token.bearer(self._http, self.provider, self._clock())
        body = await self._request(
            "POST",
            self.config.base_url,
            json={"query": query, "variables": variables or {}},
            headers={"Authorization": f"Bearer {token}"},
        )
        if body is None:
            return {}
        if body.get("errors"):
            raise ProviderError(self.provider, f"GraphQL error: {body['errors']}")
        return body.get("data") or {}

    # ── Catalog capability ────────────────────────────────────────────────────

    async def fetch_structure(self, zone_id: int) -> Optional[ZoneDetail]:
        return await self.fetch_zone_detail(zone_id)

    # ── Zones and rankings ────────────────────────────────────────────────────

    async def fetch_zone_detail(self, zone_id: int) -> Optional[ZoneDetail]:
        data = await self.query(ZONE_DETAIL_QUERY, {"id": zone_id})
        zone = (data.get("worldData") or {}).get("zone")
        if not zone:
            logger.info("Zone %d not found on combat-log provider.", zone_id)
            return None
        return ZoneDetail.from_api(zone)

    async def fetch_encounter_rankings(
        self,
        name: str,
        realm_slug: str,
        region: str,
        encounter_ids: list[int],
        difficulty: int = 5,
    ) -> dict[int, EncounterRanking]:
        """Rankings keyed by encounter id, only for encounters with kills.

        A character unknown to the provider yields an empty result.
        """
        results: dict[int, EncounterRanking] = {}
        for start in range(0, len(encounter_ids), MAX_ENCOUNTERS_PER_BATCH):
            batch = encounter_ids[start:start + MAX_ENCOUNTERS_PER_BATCH]
            data = await self.query(
                build_rankings_query(batch, difficulty),
                {"name": name, "server": realm_slug, "region": region},
            )
            character = (data.get("characterData") or {}).get("character")
            if not character:
                logger.warning(
                    "Character %s-%s (%s) not found on combat-log provider.",
                    name, realm_slug, region,
                )
                return {}
            for eid in batch:
                raw = character.get(f"e{eid}")
                if isinstance(raw, dict) and int(raw.get("totalKills") or 0) > 0:
                    results[eid] = EncounterRanking.from_api(eid, raw)
            logger.debug(
                "Rankings batch %d for %s: %d encounters, %d with kills",
                start // MAX_ENCOUNTERS_PER_BATCH, name, len(batch), len(results),
            )
        return results

    async def refresh_quota(self) -> None:
        """Pull the point budget from the API and apply it to the coordinator."""
        data = await self.query(RATE_LIMIT_QUERY)
        info = data.get("rateLimitData")
        if not info:
            return
        limit = int(info["limitPerHour"])
        spent = float(info.get("pointsSpentThisHour") or 0)
        reset_in = int(info.get("pointsResetIn") or 0)
        self.coordinator.apply_authoritative(
            self.provider,
            remaining=max(int(limit - spent), 0),
            limit=limit,
            reset_at=self._clock() + timedelta(seconds=reset_in),
        )
