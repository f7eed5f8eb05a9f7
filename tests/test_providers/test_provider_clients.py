"""
Tests for the three provider clients against ``httpx.MockTransport``.

Each test wires a client to an in-process handler, so request shape,
status mapping, token reuse and quota header handling are checked without
network access.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable

import httpx
import pytest

from wow_tracker.config import ProvidersConfig
from wow_tracker.providers.blizzard import BlizzardClient
from wow_tracker.providers.errors import ProviderAuthError, ProviderError
from wow_tracker.providers.raiderio import RaiderIOClient
from wow_tracker.providers.warcraftlogs import MAX_ENCOUNTERS_PER_BATCH, WarcraftLogsClient
from wow_tracker.ratelimit import Provider, RateLimitCoordinator

PROVIDERS = ProvidersConfig()

TOKEN_BODY = {"access_token": "tok-123", "expires_in": 86399}


class Recorder:
    """MockTransport handler that logs requests and delegates to ``respond``."""

    def __init__(self, respond: Callable[[httpx.Request], httpx.Response]) -> None:
        self.respond = respond
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.respond(request)

    def api_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if not r.url.path.endswith("/token")]


async def _no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def coordinator(clock) -> RateLimitCoordinator:
    return RateLimitCoordinator.from_config(PROVIDERS, clock=clock, scheduler=lambda delay, cb: None)


def _http(recorder: Recorder) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(recorder))


def _wcl(recorder, coordinator, clock, client_id="id", client_secret="secret") -> WarcraftLogsClient:
    return WarcraftLogsClient(
        PROVIDERS.warcraftlogs, coordinator, client_id=client_id, client_secret=client_secret,
        http=_http(recorder), sleep=_no_sleep, clock=clock,
    )


def _graphql(data: dict, status: int = 200, headers: dict | None = None) -> Callable:
    def respond(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/token"):
            return httpx.Response(200, json=TOKEN_BODY)
        return httpx.Response(status, json=data, headers=headers)

    return respond


# ── Combat-log provider ───────────────────────────────────────────────────────

class TestWarcraftLogsClient:
    ZONE = {
        "id": 38,
        "name": "Nerub-ar Palace",
        "frozen": False,
        "expansion": {"id": 6, "name": "The War Within"},
        "encounters": [{"id": 2902, "name": "Ulgrax the Devourer", "journalID": 2607}],
        "partitions": [],
    }

    def test_zone_detail_parsed(self, coordinator, clock):
        recorder = Recorder(_graphql({"data": {"worldData": {"zone": self.ZONE}}}))
        zone = asyncio.run(_wcl(recorder, coordinator, clock).fetch_zone_detail(38))
        assert zone.name == "Nerub-ar Palace"
        assert zone.expansion.name == "The War Within"
        assert zone.encounters[0].journal_id == 2607

        (api_call,) = recorder.api_requests()
        assert api_call.headers["Authorization"] == "Bearer tok-123"
        assert json.loads(api_call.content)["variables"] == {"id": 38}

    def test_unknown_zone_is_none(self, coordinator, clock):
        recorder = Recorder(_graphql({"data": {"worldData": {"zone": None}}}))
        assert asyncio.run(_wcl(recorder, coordinator, clock).fetch_structure(99)) is None

    def test_token_reused_until_expiry(self, coordinator, clock):
        recorder = Recorder(_graphql({"data": {"worldData": {"zone": self.ZONE}}}))
        client = _wcl(recorder, coordinator, clock)

        async def twice():
            await client.fetch_zone_detail(38)
            await client.fetch_zone_detail(38)

        asyncio.run(twice())
        token_calls = [r for r in recorder.requests if r.url.path.endswith("/token")]
        assert len(token_calls) == 1

    def test_missing_credentials(self, coordinator, clock):
        recorder = Recorder(_graphql({}))
        client = _wcl(recorder, coordinator, clock, client_id="", client_secret="")
        with pytest.raises(ProviderAuthError):
            asyncio.run(client.fetch_zone_detail(38))
        assert recorder.requests == []

    def test_rejected_token_exchange(self, coordinator, clock):
        recorder = Recorder(lambda request: httpx.Response(401, json={"error": "invalid_client"}))
        with pytest.raises(ProviderAuthError) as excinfo:
            asyncio.run(_wcl(recorder, coordinator, clock).fetch_zone_detail(38))
        assert excinfo.value.status_code == 401

    def test_graphql_errors_raise(self, coordinator, clock):
        recorder = Recorder(_graphql({"errors": [{"message": "Unknown zone"}], "data": None}))
        with pytest.raises(ProviderError, match="GraphQL error"):
            asyncio.run(_wcl(recorder, coordinator, clock).fetch_zone_detail(38))

    def test_server_error_raises_with_status(self, coordinator, clock):
        recorder = Recorder(_graphql({"message": "Bad gateway"}, status=502))
        with pytest.raises(ProviderError) as excinfo:
            asyncio.run(_wcl(recorder, coordinator, clock).fetch_zone_detail(38))
        assert excinfo.value.status_code == 502
        assert not isinstance(excinfo.value, ProviderAuthError)

    def test_forbidden_api_call_is_auth_error(self, coordinator, clock):
        recorder = Recorder(_graphql({}, status=403))
        with pytest.raises(ProviderAuthError):
            asyncio.run(_wcl(recorder, coordinator, clock).fetch_zone_detail(38))

    def test_quota_headers_applied(self, coordinator, clock):
        recorder = Recorder(
            _graphql(
                {"data": {"worldData": {"zone": self.ZONE}}},
                headers={"x-ratelimit-remaining": "42", "x-ratelimit-limit": "3600"},
            )
        )
        asyncio.run(_wcl(recorder, coordinator, clock).fetch_zone_detail(38))
        assert coordinator.status(Provider.WARCRAFTLOGS).remaining == 42

    def test_calls_counted_without_headers(self, coordinator, clock):
        recorder = Recorder(_graphql({"data": {"worldData": {"zone": self.ZONE}}}))
        asyncio.run(_wcl(recorder, coordinator, clock).fetch_zone_detail(38))
        state = coordinator.status(Provider.WARCRAFTLOGS)
        assert state.requests_this_hour == 1
        assert state.remaining == 3599

    def test_rankings_batched_and_filtered(self, coordinator, clock):
        encounter_ids = list(range(3000, 3000 + MAX_ENCOUNTERS_PER_BATCH + 2))

        def respond(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/token"):
                return httpx.Response(200, json=TOKEN_BODY)
            query = json.loads(request.content)["query"]
            character = {}
            for eid in encounter_ids:
                if f"e{eid}:" in query:
                    kills = 1 if eid % 2 == 0 else 0
                    character[f"e{eid}"] = {
                        "totalKills": kills,
                        "ranks": [{"rankPercent": 88.8, "startTime": 1726000000000}] if kills else [],
                    }
            return httpx.Response(200, json={"data": {"characterData": {"character": character}}})

        recorder = Recorder(respond)
        rankings = asyncio.run(
            _wcl(recorder, coordinator, clock).fetch_encounter_rankings(
                "Thrall", "area-52", "us", encounter_ids, 5
            )
        )
        assert len(recorder.api_requests()) == 2
        assert sorted(rankings) == [eid for eid in encounter_ids if eid % 2 == 0]
        assert rankings[3000].ranks[0].rank_percent == 88.8
        first = json.loads(recorder.api_requests()[0].content)
        assert first["variables"] == {"name": "Thrall", "server": "area-52", "region": "us"}
        assert "difficulty: 5" in first["query"]

    def test_unknown_character_rankings_empty(self, coordinator, clock):
        recorder = Recorder(_graphql({"data": {"characterData": {"character": None}}}))
        rankings = asyncio.run(
            _wcl(recorder, coordinator, clock).fetch_encounter_rankings("Nobody", "area-52", "us", [2902])
        )
        assert rankings == {}

    def test_refresh_quota(self, coordinator, clock):
        recorder = Recorder(
            _graphql(
                {"data": {"rateLimitData": {
                    "limitPerHour": 3600, "pointsSpentThisHour": 3590.5, "pointsResetIn": 600,
                }}}
            )
        )
        asyncio.run(_wcl(recorder, coordinator, clock).refresh_quota())
        state = coordinator.status(Provider.WARCRAFTLOGS)
        assert state.remaining == 9
        assert (state.reset_at - clock()).total_seconds() == 600


# ── Dungeon-ranking provider ──────────────────────────────────────────────────

class TestRaiderIOClient:
    def _client(self, recorder, coordinator, clock, api_key=None) -> RaiderIOClient:
        return RaiderIOClient(
            PROVIDERS.raiderio, coordinator, api_key=api_key,
            http=_http(recorder), sleep=_no_sleep, clock=clock,
        )

    def test_fetch_character(self, coordinator, clock):
        body = {
            "name": "Thrall",
            "region": "us",
            "mythic_plus_scores_by_season": [{"season": "season-tww-1", "scores": {"all": 2810.4}}],
            "mythic_plus_best_runs": [
                {"dungeon": "The Stonevault", "mythic_level": 10, "num_keystone_upgrades": 2,
                 "completed_at": "2024-09-14T20:11:00.000Z", "score": 250.1},
            ],
            "mythic_plus_recent_runs": [],
        }
        recorder = Recorder(lambda request: httpx.Response(200, json=body))
        character = asyncio.run(
            self._client(recorder, coordinator, clock, api_key="k-1").fetch_character("Thrall", "area-52", "us")
        )
        assert character.scores[0].all == 2810.4
        assert character.best_runs[0].timed
        params = recorder.requests[0].url.params
        assert params["access_key"] == "k-1"
        assert params["realm"] == "area-52"
        assert "mythic_plus_scores_by_season:current" in params["fields"]

    @pytest.mark.parametrize("status", [400, 404])
    def test_unknown_character_is_none(self, coordinator, clock, status):
        recorder = Recorder(lambda request: httpx.Response(status, json={"message": "Could not find"}))
        result = asyncio.run(
            self._client(recorder, coordinator, clock).fetch_character("Nobody", "area-52", "us")
        )
        assert result is None

    def test_no_api_key_param_without_key(self, coordinator, clock):
        recorder = Recorder(lambda request: httpx.Response(200, json={"raids": []}))
        asyncio.run(self._client(recorder, coordinator, clock).fetch_raid_static_data(10))
        assert "access_key" not in recorder.requests[0].url.params

    def test_raid_static_data(self, coordinator, clock):
        body = {"raids": [{
            "id": 14030, "slug": "nerubar-palace", "name": "Nerub-ar Palace",
            "starts": {"us": "2024-09-10T15:00:00Z", "eu": None}, "ends": {"us": None},
            "encounters": [{"id": 2902, "slug": "ulgrax-the-devourer", "name": "Ulgrax the Devourer"}],
        }]}
        recorder = Recorder(lambda request: httpx.Response(200, json=body))
        (raid,) = asyncio.run(self._client(recorder, coordinator, clock).fetch_static_meta(10))
        assert raid.slug == "nerubar-palace"
        assert raid.starts == {"us": "2024-09-10T15:00:00Z"}
        assert raid.ends == {}
        assert recorder.requests[0].url.params["expansion_id"] == "10"

    def test_historical_scores_skip_request_when_no_seasons(self, coordinator, clock):
        recorder = Recorder(lambda request: httpx.Response(500))
        scores = asyncio.run(
            self._client(recorder, coordinator, clock).fetch_historical_scores("Thrall", "area-52", "us", [])
        )
        assert scores == []
        assert recorder.requests == []

    def test_unlimited_provider_never_exhausts(self, coordinator, clock):
        recorder = Recorder(lambda request: httpx.Response(200, json={"seasons": []}))
        client = self._client(recorder, coordinator, clock)
        for _ in range(3):
            asyncio.run(client.fetch_mythic_plus_static_data(10))
        assert coordinator.can_admit(Provider.RAIDERIO)
        assert coordinator.status(Provider.RAIDERIO).requests_this_hour == 3


# ── Character-profile provider ────────────────────────────────────────────────

class TestBlizzardClient:
    def _client(self, recorder, coordinator, clock) -> BlizzardClient:
        return BlizzardClient(
            PROVIDERS.blizzard, coordinator, client_id="id", client_secret="secret",
            http=_http(recorder), sleep=_no_sleep, clock=clock,
        )

    @staticmethod
    def _routes(routes: dict[str, dict]) -> Callable:
        def respond(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/token"):
                return httpx.Response(200, json=TOKEN_BODY)
            body = routes.get(request.url.path)
            return httpx.Response(200, json=body) if body is not None else httpx.Response(404)

        return respond

    def test_profile_request_shape(self, coordinator, clock):
        recorder = Recorder(self._routes({
            "/profile/wow/character/tarren-mill/sylvanas": {
                "id": 99, "name": "Sylvanas", "level": 80,
                "race": {"name": "Undead"}, "character_class": {"name": "Hunter"},
                "active_spec": {"name": "Marksmanship"}, "faction": {"type": "HORDE"},
            },
        }))
        profile = asyncio.run(
            self._client(recorder, coordinator, clock).fetch_character_profile("Sylvanas", "Tarren-Mill", "eu")
        )
        assert profile.class_name == "Hunter"
        assert profile.faction == "horde"
        assert profile.guild is None

        (call,) = recorder.api_requests()
        assert call.url.host == "eu.api.blizzard.com"
        assert call.url.params["namespace"] == "profile-eu"

    def test_profile_not_found(self, coordinator, clock):
        recorder = Recorder(self._routes({}))
        assert asyncio.run(
            self._client(recorder, coordinator, clock).fetch_character_profile("Nobody", "area-52", "us")
        ) is None

    def test_blank_name_skips_request(self, coordinator, clock):
        recorder = Recorder(self._routes({}))
        assert asyncio.run(
            self._client(recorder, coordinator, clock).fetch_character_media("  ", "area-52", "us")
        ) is None
        assert recorder.requests == []

    def test_achievements_filtered(self, coordinator, clock):
        recorder = Recorder(self._routes({
            "/profile/wow/character/area-52/thrall/achievements": {"achievements": [
                {"id": 40253, "achievement": {"id": 40253, "name": "Cutting Edge: Queen Ansurek"},
                 "completed_timestamp": 1727000000000},
                {"id": 6, "achievement": {"id": 6, "name": "Level 10"}},
            ]},
        }))
        achievements = asyncio.run(
            self._client(recorder, coordinator, clock).fetch_character_achievements("Thrall", "area-52", "us")
        )
        assert [a.achievement_id for a in achievements] == [40253]
        assert achievements[0].completed_at is not None

    def test_icon_prefers_icon_asset(self, coordinator, clock):
        recorder = Recorder(self._routes({
            "/data/wow/media/achievement/40236": {"assets": [
                {"key": "other", "value": "https://render/other.jpg"},
                {"key": "icon", "value": "https://render/icon.jpg"},
            ]},
            "/data/wow/media/achievement/1": {"assets": [{"key": "other", "value": "https://render/first.jpg"}]},
        }))
        client = self._client(recorder, coordinator, clock)
        assert asyncio.run(client.fetch_icon(40236)) == "https://render/icon.jpg"
        assert asyncio.run(client.fetch_icon(1)) == "https://render/first.jpg"
        assert asyncio.run(client.fetch_icon(2)) is None
        assert all(r.url.params["namespace"] == "static-us" for r in recorder.api_requests())

    def test_achievement_index(self, coordinator, clock):
        recorder = Recorder(self._routes({
            "/data/wow/achievement/index": {"achievements": [
                {"id": 40236, "name": "Mythic: Ulgrax the Devourer"},
                {"id": 40244, "name": "Mythic: Queen Ansurek"},
            ]},
        }))
        index = asyncio.run(self._client(recorder, coordinator, clock).fetch_static_meta())
        assert [e.id for e in index] == [40236, 40244]
