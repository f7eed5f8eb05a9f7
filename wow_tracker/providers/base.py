"""
Shared HTTP plumbing for the three provider clients, plus the catalog
capability interface the raid sync consumes.

``ProviderClient`` owns one ``httpx.AsyncClient`` and funnels every call
through ``_request()``:

  1. admission check against the ``RateLimitCoordinator`` (one bounded wait,
     then the call proceeds anyway; limits are advisory)
  2. fixed minimum delay since the previous call to the same provider
  3. optimistic ``record_consumption``
  4. the request itself
  5. ``apply_authoritative`` from ``x-ratelimit-*`` headers when present
  6. status mapping: 401/403 → ``ProviderAuthError``; not-found statuses →
     ``None``; any other non-2xx → ``ProviderError``

Calls to one provider are serialized behind an ``asyncio.Lock`` so the
inter-call delay holds even when both stage workers and a sync run share a
client.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Any, ClassVar, Optional

import httpx

from wow_tracker.config import ProviderConfig
from wow_tracker.providers.errors import ProviderAuthError, ProviderError
from wow_tracker.providers.records import ZoneDetail
from wow_tracker.ratelimit import Provider, RateLimitCoordinator
from wow_tracker.utils.time_utils import from_epoch_seconds, utcnow

logger = logging.getLogger(__name__)

# Refresh a bearer token this long before the provider says it expires.
TOKEN_REFRESH_MARGIN = timedelta(seconds=60)

Sleep = Callable[[float], Awaitable[None]]


class OAuthToken:
    """Client-credentials bearer token with expiry-aware reuse."""

    def __init__(self, token_url: str, client_id: str, client_secret: str) -> None:
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self._access_token: Optional[str] = None
        self._expires_at: Optional[datetime] = None

    def is_valid(self, now: datetime) -> bool:
        return (
            self._access_token is not None
            and self._expires_at is not None
            and now < self._expires_at - TOKEN_REFRESH_MARGIN
        )

    async def bearer(self, http: httpx.AsyncClient, provider: str, now: datetime) -> str:
        """Return a usable access token, exchanging credentials if needed.

        Raises:
            ProviderAuthError: If credentials are missing or the exchange fails.
        """
        if self.is_valid(now):
            return self._access_token  # type: ignore[return-value]
        if not self.client_id or not self.client_secret:
            raise ProviderAuthError(provider, "client id and secret must be set in .env.")

        try:
            resp = await http.post(
                self.token_url,
                data={"grant_type": "client_credentials"},
                auth=(self.client_id, self.client_secret),
            )
        except httpx.HTTPError as exc:
            raise ProviderAuthError(provider, f"token request failed: {exc}") from exc
        if resp.status_code != 200:
            raise ProviderAuthError(
                provider, f"token exchange failed: {resp.status_code}", resp.status_code
            )

        body = resp.json()
        self._access_token = str(body["access_token"])
        self._expires_at = now + timedelta(seconds=int(body.get("expires_in", 3600)))
        logger.debug("Obtained %s access token (expires %s).", provider, self._expires_at)
        return self._access_token


class ProviderClient:
    """Base class for rate-limit-aware provider clients.

    Args:
        config: Connection and quota settings for this provider.
        coordinator: Shared quota tracker.
        http: Injected client; one is created from ``config`` when omitted.
        admission_wait_seconds: How long to wait once when quota is exhausted.
        sleep: Awaitable sleep; injectable so tests skip real delays.
        clock: Returns the current aware UTC time.
    """

    provider: ClassVar[Provider]
    NOT_FOUND_STATUSES: ClassVar[frozenset[int]] = frozenset({400, 404})

    def __init__(
        self,
        config: ProviderConfig,
        coordinator: RateLimitCoordinator,
        http: Optional[httpx.AsyncClient] = None,
        admission_wait_seconds: float = 2.0,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config = config
        self.coordinator = coordinator
        self._http = http or httpx.AsyncClient(timeout=config.timeout_seconds)
        self._owns_http = http is None
        self._admission_wait = admission_wait_seconds
        self._sleep = sleep
        self._clock = clock
        self._lock = asyncio.Lock()
        self._last_call: Optional[float] = None

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Optional[Any]:
        """Perform one gated call and return its decoded JSON body.

        Returns:
            The parsed body, or ``None`` for a not-found status.

        Raises:
            ProviderAuthError: On 401/403.
            ProviderError: On any other non-2xx status or transport failure.
        """
        async with self._lock:
            await self._admit()
            await self._pace()
            self.coordinator.record_consumption(self.provider)
            try:
                resp = await self._http.request(
                    method, url, params=params, json=json, headers=headers
                )
            except httpx.HTTPError as exc:
                raise ProviderError(self.provider, f"{method} {url} failed: {exc}") from exc
            finally:
                self._last_call = time.monotonic()

        self._apply_quota_headers(resp.headers)
        status = resp.status_code
        if status in (401, 403):
            raise ProviderAuthError(self.provider, f"{method} {url} → {status}", status)
        if status in self.NOT_FOUND_STATUSES:
            logger.debug("%s %s → %d (no data)", self.provider, url, status)
            return None
        if not 200 <= status < 300:
            raise ProviderError(
                self.provider, f"{method} {url} → {status}: {resp.text[:200]}", status
            )
        return resp.json()

    async def _admit(self) -> None:
        if self.coordinator.can_admit(self.provider):
            return
        logger.warning(
            "Rate limit [%s] exhausted; waiting %.1fs before calling anyway.",
            self.provider, self._admission_wait,
        )
        await self._sleep(self._admission_wait)

    async def _pace(self) -> None:
        if self._last_call is None:
            return
        gap = self.config.min_interval_ms / 1000
        elapsed = time.monotonic() - self._last_call
        if elapsed < gap:
            await self._sleep(gap - elapsed)

    def _apply_quota_headers(self, headers: httpx.Headers) -> None:
        remaining = headers.get("x-ratelimit-remaining")
        if remaining is None:
            return
        try:
            limit = headers.get("x-ratelimit-limit")
            self.coordinator.apply_authoritative(
                self.provider,
                remaining=int(float(remaining)),
                limit=int(float(limit)) if limit else None,
                reset_at=from_epoch_seconds(headers.get("x-ratelimit-reset")),
            )
        except ValueError:
            logger.warning("Unparseable rate limit headers from %s: %r", self.provider, remaining)


class CatalogSource:
    """What the raid sync needs from a provider.

    Each provider implements the capabilities it actually has; the others keep
    these defaults, which report "no data".
    """

    async def fetch_structure(self, zone_id: int) -> Optional[ZoneDetail]:
        """Zone → encounter listing for one raid zone."""
        return None

    async def fetch_static_meta(self, expansion_id: Optional[int] = None) -> list[Any]:
        """Static per-expansion metadata records (dates, icons, seasons)."""
        return []

    async def fetch_icon(self, key: int) -> Optional[str]:
        """Icon URL for the provider-specific ``key``."""
        return None
