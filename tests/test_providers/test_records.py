"""Tests for provider record parsing at the client boundary."""

from __future__ import annotations

from datetime import datetime, timezone

from wow_tracker.providers.records import (
    BlizzardAchievement,
    BlizzardMedia,
    EncounterRanking,
    MythicPlusRun,
    MythicPlusSeasonMeta,
    RaiderioCharacter,
    ZoneDetail,
)


class TestZoneDetail:
    def test_nulls_become_defaults(self):
        zone = ZoneDetail.from_api({"id": 38, "name": "Nerub-ar Palace", "frozen": None, "encounters": None})
        assert zone.frozen is False
        assert zone.expansion is None
        assert zone.encounters == ()

    def test_cached_payload_rebuilds_equal_record(self):
        zone = ZoneDetail.from_api({
            "id": 38,
            "name": "Nerub-ar Palace",
            "frozen": True,
            "expansion": {"id": 6, "name": "The War Within"},
            "encounters": [{"id": 2902, "name": "Ulgrax the Devourer", "journalID": 2607}],
            "partitions": [{"id": 1, "name": "Launch", "default": True}],
        })
        assert ZoneDetail.from_api(zone.to_payload()) == zone


class TestEncounterRanking:
    def test_rank_fields(self):
        ranking = EncounterRanking.from_api(2902, {
            "totalKills": 3,
            "encounter": {"name": "Ulgrax the Devourer"},
            "ranks": [{
                "rankPercent": 97.2,
                "amount": 1_250_000.5,
                "spec": "Fire",
                "report": {"code": "xYz98765", "fightID": 12},
                "startTime": 1726000000000,
                "duration": 301_500,
                "bracketData": 622,
            }],
        })
        assert ranking.total_kills == 3
        assert ranking.encounter_name == "Ulgrax the Devourer"
        (rank,) = ranking.ranks
        assert rank.report_code == "xYz98765"
        assert rank.fight_id == 12
        assert rank.item_level == 622.0
        assert rank.started_at == datetime.fromtimestamp(1726000000, tz=timezone.utc)

    def test_missing_counts_default_to_zero(self):
        ranking = EncounterRanking.from_api(2917, {})
        assert ranking.total_kills == 0
        assert ranking.ranks == ()
        assert ranking.encounter_name is None


class TestRaiderioRecords:
    def test_run_timed_from_upgrades(self):
        depleted = MythicPlusRun.from_api({"dungeon": "Grim Batol", "mythic_level": 12, "num_keystone_upgrades": 0})
        timed = MythicPlusRun.from_api({"dungeon": "Grim Batol", "mythic_level": 12, "num_keystone_upgrades": 3})
        assert not depleted.timed
        assert timed.timed

    def test_character_all_runs(self):
        run = {"dungeon": "Mists of Tirna Scithe", "mythic_level": 9}
        character = RaiderioCharacter.from_api({
            "name": "Thrall",
            "class": "Shaman",
            "mythic_plus_best_runs": [run],
            "mythic_plus_recent_runs": [run, run],
            "mythic_plus_alternate_runs": None,
        })
        assert character.class_name == "Shaman"
        assert len(character.all_runs) == 3
        assert character.scores == ()

    def test_season_meta_dungeon_names(self):
        season = MythicPlusSeasonMeta.from_api({
            "slug": "season-tww-1",
            "is_main_season": True,
            "dungeons": [{"name": "The Stonevault"}, "Grim Batol"],
        })
        assert season.name == "season-tww-1"
        assert season.dungeons == ("The Stonevault", "Grim Batol")


class TestBlizzardRecords:
    def test_media_avatar_asset(self):
        media = BlizzardMedia.from_api({"assets": [
            {"key": "inset", "value": "https://render/inset.jpg"},
            {"key": "avatar", "value": "https://render/avatar.jpg"},
        ]})
        assert media.avatar_url == "https://render/avatar.jpg"

    def test_media_legacy_field(self):
        assert BlizzardMedia.from_api({"avatar_url": "https://render/a.jpg"}).avatar_url == "https://render/a.jpg"
        assert BlizzardMedia.from_api({}).avatar_url is None

    def test_achievement_without_timestamp(self):
        achievement = BlizzardAchievement.from_api({"id": 19350, "achievement": {"name": "Ahead of the Curve: Fyrakk"}})
        assert achievement.achievement_id == 19350
        assert achievement.completed_at is None
