"""
Character-profile provider client (Game Data + Profile APIs).

API:   https://{region}.api.blizzard.com
Docs:  https://develop.battle.net/documentation/world-of-warcraft

Credential setup (.env, gitignored):
  BLIZZARD_CLIENT_ID=your_client_id
  BLIZZARD_CLIENT_SECRET=your_client_secret

OAuth2 flow:
  Client credentials grant, no user interaction needed.
  POST https://oauth.battle.net/token
    → Body: grant_type=client_credentials
    → Auth: Basic (client_id:client_secret)
    → Returns: {"access_token": "...", "expires_in": 86399}

Character endpoints (namespace ``profile-{region}``):
  /profile/wow/character/{realm}/{name}
  /profile/wow/character/{realm}/{name}/character-media
  /profile/wow/character/{realm}/{name}/achievements

Static endpoints (always the ``us`` host, namespace ``static-us``):
  /data/wow/achievement/index
  /data/wow/media/achievement/{id}
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar, Optional

from wow_tracker.config import ProviderConfig
from wow_tracker.providers.base import CatalogSource, OAuthToken, ProviderClient
from wow_tracker.providers.records import (
    AchievementIndexEntry,
    BlizzardAchievement,
    BlizzardMedia,
    BlizzardProfile,
)
from wow_tracker.ratelimit import Provider, RateLimitCoordinator
from wow_tracker.taxonomy.processing_taxonomy import classify_achievement

logger = logging.getLogger(__name__)

STATIC_REGION = "us"


class BlizzardClient(ProviderClient, CatalogSource):
    """Character profile, media and achievements; achievement icons for the catalog."""

    provider: ClassVar[Provider] = Provider.BLIZZARD
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

    def _url(self, region: str, path: str) -> str:
        return self.config.base_url.format(region=region) + path

    async def _get(self, region: str, path: str, namespace: str) -> Optional[dict[str, Any]]:
        token = await self._token.bearer(self._http, self.provider, self._clock())
        return await self._request(
            "GET",
            self._url(region, path),
            params={"namespace": namespace, "locale": "en_US"},
            headers={"Authorization": f"Bearer {token}"},
        )

    async def _character(
        self, name: str, realm_slug: str, region: str, suffix: str = ""
    ) -> Optional[dict[str, Any]]:
        realm = (realm_slug or "").strip().lower()
        char = (name or "").strip().lower()
        if not realm or not char:
            logger.warning(
                "Skipping profile request with empty realm or name (%r, %r).", realm_slug, name
            )
            return None
        return await self._get(
            region, f"/profile/wow/character/{realm}/{char}{suffix}", f"profile-{region}"
        )

    # ── Character data ────────────────────────────────────────────────────────

    async def fetch_character_profile(
        self, name: str, realm_slug: str, region: str
    ) -> Optional[BlizzardProfile]:
        data = await self._character(name, realm_slug, region)
        return BlizzardProfile.from_api(data) if data else None

    async def fetch_character_media(
        self, name: str, realm_slug: str, region: str
    ) -> Optional[BlizzardMedia]:
        data = await self._character(name, realm_slug, region, "/character-media")
        return BlizzardMedia.from_api(data) if data else None

    async def fetch_character_achievements(
        self, name: str, realm_slug: str, region: str
    ) -> list[BlizzardAchievement]:
        """Cutting Edge / Ahead of the Curve achievements only; ``[]`` when not found."""
        data = await self._character(name, realm_slug, region, "/achievements")
        if not data:
            return []
        kept = []
        for raw in data.get("achievements") or []:
            achievement = raw.get("achievement") or {}
            if classify_achievement(achievement.get("name")) is None:
                continue
            kept.append(BlizzardAchievement.from_api(raw))
        return kept

    # ── Static data ───────────────────────────────────────────────────────────

    async def fetch_achievement_index(self) -> list[AchievementIndexEntry]:
        data = await self._get(
            STATIC_REGION, "/data/wow/achievement/index", f"static-{STATIC_REGION}"
        )
        if not data or not data.get("achievements"):
            logger.warning("Achievement index came back empty.")
            return []
        entries = [AchievementIndexEntry.from_api(a) for a in data["achievements"]]
        logger.info("Fetched achievement index: %d entries", len(entries))
        return entries

    async def fetch_achievement_media(self, achievement_id: int) -> Optional[str]:
        """Icon URL: the ``icon`` asset, else the first asset, else ``None``."""
        data = await self._get(
            STATIC_REGION,
            f"/data/wow/media/achievement/{achievement_id}",
            f"static-{STATIC_REGION}",
        )
        assets = (data or {}).get("assets") or []
        if not assets:
            return None
        for asset in assets:
            if asset.get("key") == "icon" and asset.get("value"):
                return str(asset["value"])
        return assets[0].get("value") or None

    # ── Catalog capability ────────────────────────────────────────────────────

    async def fetch_static_meta(
        self, expansion_id: Optional[int] = None
    ) -> list[AchievementIndexEntry]:
        """The full achievement index; not expansion-scoped."""
        return await self.fetch_achievement_index()

    async def fetch_icon(self, key: int) -> Optional[str]:
        return await self.fetch_achievement_media(key)
