"""
Typed records parsed from provider JSON at the client boundary.

Every record is a frozen dataclass built by ``from_api(data)``; missing or
null upstream fields become explicit ``None`` / empty values here so nothing
downstream touches raw dicts.

Records that the raid sync caches also provide ``to_payload()``, which emits
the provider's own JSON shape, so ``from_api(record.to_payload())``
reconstructs an equal record from a cache hit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from wow_tracker.utils.time_utils import from_epoch_ms, parse_iso


def _opt_int(value: Any) -> Optional[int]:
    return int(value) if value is not None else None


def _opt_float(value: Any) -> Optional[float]:
    return float(value) if value is not None else None


def _opt_str(value: Any) -> Optional[str]:
    return str(value) if value not in (None, "") else None


def _name(node: Any) -> Optional[str]:
    """``{"name": "..."}`` → ``"..."``; anything else → ``None``."""
    if isinstance(node, dict):
        return _opt_str(node.get("name"))
    return None


def _region_dates(value: Any) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k): str(v) for k, v in value.items() if v}


# ── Combat-log provider ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class ExpansionRef:
    id: int
    name: str


@dataclass(frozen=True)
class Encounter:
    id: int
    name: str
    journal_id: Optional[int] = None


@dataclass(frozen=True)
class Partition:
    id: int
    name: str
    default: bool = False


@dataclass(frozen=True)
class ZoneDetail:
    """Structural listing of one raid zone: its encounters, no performance data."""

    id: int
    name: str
    frozen: bool = False
    expansion: Optional[ExpansionRef] = None
    encounters: tuple[Encounter, ...] = ()
    partitions: tuple[Partition, ...] = ()

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "ZoneDetail":
        expansion = data.get("expansion")
        return cls(
            id=int(data["id"]),
            name=str(data["name"]),
            frozen=bool(data.get("frozen") or False),
            expansion=(
                ExpansionRef(id=int(expansion["id"]), name=str(expansion["name"]))
                if isinstance(expansion, dict) and expansion.get("id") is not None
                else None
            ),
            encounters=tuple(
                Encounter(
                    id=int(e["id"]),
                    name=str(e["name"]),
                    journal_id=_opt_int(e.get("journalID")),
                )
                for e in data.get("encounters") or []
            ),
            partitions=tuple(
                Partition(id=int(p["id"]), name=str(p["name"]), default=bool(p.get("default")))
                for p in data.get("partitions") or []
            ),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "frozen": self.frozen,
            "expansion": (
                {"id": self.expansion.id, "name": self.expansion.name} if self.expansion else None
            ),
            "encounters": [
                {"id": e.id, "name": e.name, "journalID": e.journal_id} for e in self.encounters
            ],
            "partitions": [
                {"id": p.id, "name": p.name, "default": p.default} for p in self.partitions
            ],
        }


@dataclass(frozen=True)
class RankEntry:
    """One ranked kill."""

    rank_percent: Optional[float]
    amount: Optional[float]
    spec: Optional[str]
    report_code: Optional[str]
    fight_id: Optional[int]
    started_at: Optional[datetime]
    duration_ms: Optional[int]
    item_level: Optional[float]

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "RankEntry":
        return cls(
            rank_percent=_opt_float(data.get("rankPercent")),
            amount=_opt_float(data.get("amount")),
            spec=_opt_str(data.get("spec")),
            report_code=_opt_str(data.get("reportCode") or (data.get("report") or {}).get("code")),
            fight_id=_opt_int(data.get("fightID") or (data.get("report") or {}).get("fightID")),
            started_at=from_epoch_ms(data.get("startTime")),
            duration_ms=_opt_int(data.get("duration")),
            item_level=_opt_float(data.get("bracketData")),
        )


@dataclass(frozen=True)
class EncounterRanking:
    """A character's ranking set on one encounter at one difficulty."""

    encounter_id: int
    total_kills: int
    ranks: tuple[RankEntry, ...] = ()
    encounter_name: Optional[str] = None

    @classmethod
    def from_api(cls, encounter_id: int, data: dict[str, Any]) -> "EncounterRanking":
        encounter = data.get("encounter")
        return cls(
            encounter_id=encounter_id,
            total_kills=int(data.get("totalKills") or 0),
            ranks=tuple(RankEntry.from_api(r) for r in data.get("ranks") or []),
            encounter_name=_name(encounter) or _opt_str(data.get("encounterName")),
        )


# ── Dungeon-ranking provider ──────────────────────────────────────────────────


@dataclass(frozen=True)
class StaticEncounter:
    id: int
    slug: str
    name: str


@dataclass(frozen=True)
class RaidStaticMeta:
    """One raid as listed in the dungeon-ranking provider's static data."""

    id: int
    slug: str
    name: str
    short_name: Optional[str] = None
    icon: Optional[str] = None
    starts: dict[str, str] = field(default_factory=dict)
    ends: dict[str, str] = field(default_factory=dict)
    encounters: tuple[StaticEncounter, ...] = ()

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "RaidStaticMeta":
        return cls(
            id=int(data["id"]),
            slug=str(data["slug"]),
            name=str(data["name"]),
            short_name=_opt_str(data.get("short_name")),
            icon=_opt_str(data.get("icon")),
            starts=_region_dates(data.get("starts")),
            ends=_region_dates(data.get("ends")),
            encounters=tuple(
                StaticEncounter(id=int(e["id"]), slug=str(e.get("slug", "")), name=str(e["name"]))
                for e in data.get("encounters") or []
            ),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "slug": self.slug,
            "name": self.name,
            "short_name": self.short_name,
            "icon": self.icon,
            "starts": dict(self.starts),
            "ends": dict(self.ends),
            "encounters": [{"id": e.id, "slug": e.slug, "name": e.name} for e in self.encounters],
        }


@dataclass(frozen=True)
class MythicPlusSeasonMeta:
    """One Mythic+ season from the provider's static data."""

    slug: str
    name: str
    short_name: Optional[str] = None
    blizzard_season_id: Optional[int] = None
    is_main_season: bool = False
    starts: dict[str, str] = field(default_factory=dict)
    ends: dict[str, str] = field(default_factory=dict)
    dungeons: tuple[str, ...] = ()

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "MythicPlusSeasonMeta":
        return cls(
            slug=str(data["slug"]),
            name=str(data.get("name") or data["slug"]),
            short_name=_opt_str(data.get("short_name")),
            blizzard_season_id=_opt_int(data.get("blizzard_season_id")),
            is_main_season=bool(data.get("is_main_season") or False),
            starts=_region_dates(data.get("starts")),
            ends=_region_dates(data.get("ends")),
            dungeons=tuple(
                str(d["name"]) if isinstance(d, dict) else str(d)
                for d in data.get("dungeons") or []
            ),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "slug": self.slug,
            "name": self.name,
            "short_name": self.short_name,
            "blizzard_season_id": self.blizzard_season_id,
            "is_main_season": self.is_main_season,
            "starts": dict(self.starts),
            "ends": dict(self.ends),
            "dungeons": list(self.dungeons),
        }


@dataclass(frozen=True)
class MythicPlusScore:
    season: str
    all: float = 0.0
    dps: float = 0.0
    healer: float = 0.0
    tank: float = 0.0

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "MythicPlusScore":
        scores = data.get("scores") or {}
        return cls(
            season=str(data["season"]),
            all=float(scores.get("all") or 0.0),
            dps=float(scores.get("dps") or 0.0),
            healer=float(scores.get("healer") or 0.0),
            tank=float(scores.get("tank") or 0.0),
        )


@dataclass(frozen=True)
class MythicPlusRun:
    dungeon: str
    short_name: Optional[str]
    mythic_level: int
    completed_at: Optional[datetime]
    clear_time_ms: Optional[int]
    par_time_ms: Optional[int]
    num_keystone_upgrades: int
    score: Optional[float]

    @property
    def timed(self) -> bool:
        return self.num_keystone_upgrades > 0

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "MythicPlusRun":
        return cls(
            dungeon=str(data.get("dungeon") or "Unknown"),
            short_name=_opt_str(data.get("short_name")),
            mythic_level=int(data.get("mythic_level") or 0),
            completed_at=parse_iso(data.get("completed_at")),
            clear_time_ms=_opt_int(data.get("clear_time_ms")),
            par_time_ms=_opt_int(data.get("par_time_ms")),
            num_keystone_upgrades=int(data.get("num_keystone_upgrades") or 0),
            score=_opt_float(data.get("score")),
        )


@dataclass(frozen=True)
class RaiderioCharacter:
    """Current-season profile: scores and run lists."""

    name: str
    realm: Optional[str] = None
    region: Optional[str] = None
    class_name: Optional[str] = None
    active_spec_name: Optional[str] = None
    scores: tuple[MythicPlusScore, ...] = ()
    best_runs: tuple[MythicPlusRun, ...] = ()
    recent_runs: tuple[MythicPlusRun, ...] = ()
    alternate_runs: tuple[MythicPlusRun, ...] = ()

    @property
    def all_runs(self) -> tuple[MythicPlusRun, ...]:
        return self.best_runs + self.recent_runs + self.alternate_runs

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "RaiderioCharacter":
        return cls(
            name=str(data.get("name") or ""),
            realm=_opt_str(data.get("realm")),
            region=_opt_str(data.get("region")),
            class_name=_opt_str(data.get("class")),
            active_spec_name=_opt_str(data.get("active_spec_name")),
            scores=tuple(
                MythicPlusScore.from_api(s) for s in data.get("mythic_plus_scores_by_season") or []
            ),
            best_runs=parse_runs(data.get("mythic_plus_best_runs")),
            recent_runs=parse_runs(data.get("mythic_plus_recent_runs")),
            alternate_runs=parse_runs(data.get("mythic_plus_alternate_runs")),
        )


@dataclass(frozen=True)
class SeasonRuns:
    """Best and alternate runs for one historical season."""

    season_slug: str
    best_runs: tuple[MythicPlusRun, ...] = ()
    alternate_runs: tuple[MythicPlusRun, ...] = ()

    @property
    def all_runs(self) -> tuple[MythicPlusRun, ...]:
        return self.best_runs + self.alternate_runs


def parse_runs(value: Any) -> tuple[MythicPlusRun, ...]:
    return tuple(MythicPlusRun.from_api(r) for r in value or [])


# ── Character-profile provider ────────────────────────────────────────────────


@dataclass(frozen=True)
class AchievementIndexEntry:
    id: int
    name: str

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "AchievementIndexEntry":
        return cls(id=int(data["id"]), name=str(data.get("name") or ""))

    def to_payload(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name}


@dataclass(frozen=True)
class BlizzardProfile:
    id: Optional[int]
    name: str
    race: Optional[str] = None
    class_name: Optional[str] = None
    spec_name: Optional[str] = None
    faction: Optional[str] = None
    guild: Optional[str] = None
    level: Optional[int] = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "BlizzardProfile":
        faction = data.get("faction") or {}
        return cls(
            id=_opt_int(data.get("id")),
            name=str(data.get("name") or ""),
            race=_name(data.get("race")),
            class_name=_name(data.get("character_class")),
            spec_name=_name(data.get("active_spec")),
            faction=_opt_str(faction.get("type")).lower() if faction.get("type") else None,
            guild=_name(data.get("guild")),
            level=_opt_int(data.get("level")),
        )


@dataclass(frozen=True)
class BlizzardMedia:
    avatar_url: Optional[str] = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "BlizzardMedia":
        for asset in data.get("assets") or []:
            if asset.get("key") == "avatar" and asset.get("value"):
                return cls(avatar_url=str(asset["value"]))
        return cls(avatar_url=_opt_str(data.get("avatar_url")))


@dataclass(frozen=True)
class BlizzardAchievement:
    achievement_id: int
    name: str
    completed_at: Optional[datetime] = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "BlizzardAchievement":
        achievement = data.get("achievement") or {}
        return cls(
            achievement_id=int(achievement.get("id", data.get("id"))),
            name=str(achievement.get("name") or ""),
            completed_at=from_epoch_ms(data.get("completed_timestamp")),
        )
