"""
Application configuration management.

Load order (each layer overrides the previous):
  1. ``config/default.toml``     : committed static defaults
  2. ``config/local.toml``       : optional local overrides (gitignored)
  3. ``.env``                    : local secrets and env overrides (gitignored)
  4. Environment variables       : ``WOW_TRACKER_*`` prefix

Entry point: ``load_config(config_path=None) -> AppConfig``

Provider credentials are never part of ``AppConfig``; they are read from the
environment by ``load_credentials()`` so a config dump cannot leak them.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

# ── Sub-config models ─────────────────────────────────────────────────────────


class DatabaseConfig(BaseModel):
    """SQLite database connection settings."""

    model_config = ConfigDict(frozen=True)

    db_path: str = "data/db/wow_tracker.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000


class LoggingConfig(BaseModel):
    """Logging output settings."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    log_file: str = "data/logs/tracker.log"
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"Log level must be one of {sorted(valid)}, got '{v}'.")
        return v.upper()


class ProviderConfig(BaseModel):
    """Connection and quota settings for one external provider.

    ``hourly_limit = None`` marks the provider as unlimited: the rate limit
    coordinator always admits its calls and never pauses for it.
    """

    model_config = ConfigDict(frozen=True)

    base_url: str
    token_url: Optional[str] = None
    hourly_limit: Optional[int] = None
    low_water_mark: int = 10
    min_interval_ms: int = 200
    timeout_seconds: float = 30.0
    resume_buffer_seconds: float = 5.0

    @field_validator("hourly_limit")
    @classmethod
    def validate_hourly_limit(cls, v: Optional[int]) -> Optional[int]:
        # TOML has no null; 0 means unlimited there
        if v is not None and v <= 0:
            return None
        return v

    @field_validator("low_water_mark", "min_interval_ms")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"Value must be >= 0, got {v}.")
        return v


class ProvidersConfig(BaseModel):
    """Per-provider settings for the three upstream data sources."""

    model_config = ConfigDict(frozen=True)

    warcraftlogs: ProviderConfig = ProviderConfig(
        base_url="https://www.warcraftlogs.com/api/v2/client",
        token_url="https://www.warcraftlogs.com/oauth/token",
        hourly_limit=3600,
        min_interval_ms=200,
    )
    raiderio: ProviderConfig = ProviderConfig(
        base_url="https://raider.io/api/v1",
        hourly_limit=None,
        min_interval_ms=200,
    )
    blizzard: ProviderConfig = ProviderConfig(
        base_url="https://{region}.api.blizzard.com",
        token_url="https://oauth.battle.net/token",
        hourly_limit=36000,
        min_interval_ms=100,
    )


class SeasonDefinition(BaseModel):
    """One configured content season.

    ``zone_ids`` are combat-log provider zone ids; ``static_meta_expansion_id``
    is the dungeon-ranking provider's expansion id used to find raid dates and
    to resolve the season's expansion when none of its zones carries one.
    """

    model_config = ConfigDict(frozen=True)

    slug: str
    number: int
    static_meta_expansion_id: int
    zone_ids: list[int] = []
    external_season_slug: Optional[str] = None

    @field_validator("number")
    @classmethod
    def validate_number(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Season number must be >= 1, got {v}.")
        return v


class RaidsConfig(BaseModel):
    """Tracked content: seasons, current tier, ranking difficulty."""

    model_config = ConfigDict(frozen=True)

    tracked_expansion_ids: list[int] = [11, 10, 9]
    current_zone_ids: list[int] = [44]
    ranking_difficulty: int = 5
    seasons: list[SeasonDefinition] = []

    @field_validator("ranking_difficulty")
    @classmethod
    def validate_difficulty(cls, v: int) -> int:
        if v not in (1, 3, 4, 5):
            raise ValueError(f"ranking_difficulty must be one of 1, 3, 4, 5; got {v}.")
        return v

    @model_validator(mode="after")
    def validate_unique_slugs(self) -> "RaidsConfig":
        slugs = [s.slug for s in self.seasons]
        if len(slugs) != len(set(slugs)):
            raise ValueError(f"Season slugs must be unique, got {slugs}.")
        return self


class CacheConfig(BaseModel):
    """TTL policy for the external API cache (seconds)."""

    model_config = ConfigDict(frozen=True)

    frozen_ttl_seconds: int = 365 * 24 * 3600
    volatile_ttl_seconds: int = 24 * 3600


class SyncConfig(BaseModel):
    """Raid catalog synchronization triggers."""

    model_config = ConfigDict(frozen=True)

    sync_on_boot: bool = True
    daily_sync_hour: int = 4

    @field_validator("daily_sync_hour")
    @classmethod
    def validate_hour(cls, v: int) -> int:
        if not 0 <= v <= 23:
            raise ValueError(f"daily_sync_hour must be in 0..23, got {v}.")
        return v


class QueueConfig(BaseModel):
    """Processing queue worker settings."""

    model_config = ConfigDict(frozen=True)

    poll_interval_seconds: float = 5.0
    admission_wait_seconds: float = 2.0


class AppConfig(BaseModel):
    """Complete application configuration: the single source of truth.

    The runtime, the sync engine and the CLI all receive an ``AppConfig``
    instance. It is constructed by ``load_config()`` which merges TOML + .env.
    """

    model_config = ConfigDict(frozen=True)

    database: DatabaseConfig = DatabaseConfig()
    logging: LoggingConfig = LoggingConfig()
    providers: ProvidersConfig = ProvidersConfig()
    raids: RaidsConfig = RaidsConfig()
    cache: CacheConfig = CacheConfig()
    sync: SyncConfig = SyncConfig()
    queue: QueueConfig = QueueConfig()
    debug: bool = False


@dataclass(frozen=True)
class Credentials:
    """Provider secrets read from the environment."""

    wcl_client_id: str = ""
    wcl_client_secret: str = ""
    blizzard_client_id: str = ""
    blizzard_client_secret: str = ""
    raiderio_api_key: Optional[str] = None

    def missing(self) -> list[str]:
        """Names of required variables that are unset."""
        required = {
            "WCL_CLIENT_ID": self.wcl_client_id,
            "WCL_CLIENT_SECRET": self.wcl_client_secret,
            "BLIZZARD_CLIENT_ID": self.blizzard_client_id,
            "BLIZZARD_CLIENT_SECRET": self.blizzard_client_secret,
        }
        return [name for name, value in required.items() if not value]


# ── Loader ────────────────────────────────────────────────────────────────────

_PROJECT_ROOT = Path(__file__).parent.parent


def _find_project_root() -> Path:
    """Walk up from this file to find the project root (contains pyproject.toml)."""
    candidate = Path(__file__).parent
    for _ in range(5):
        if (candidate / "pyproject.toml").exists():
            return candidate
        candidate = candidate.parent
    return _PROJECT_ROOT


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load and merge application configuration.

    Args:
        config_path: Explicit path to a TOML config file. Defaults to
            ``<project_root>/config/default.toml``.

    Returns:
        Fully validated ``AppConfig`` instance.

    Raises:
        FileNotFoundError: If the specified ``config_path`` does not exist.
        pydantic.ValidationError: If merged config values fail validation.
    """
    root = _find_project_root()

    load_dotenv(dotenv_path=root / ".env", override=False)

    if config_path is None:
        config_path = root / "config" / "default.toml"

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}\n"
            "Create config/default.toml or pass --config."
        )

    with open(config_path, "rb") as f:
        raw: dict[str, Any] = tomllib.load(f)

    local_config_path = config_path.parent / "local.toml"
    if local_config_path.exists():
        with open(local_config_path, "rb") as f:
            local_raw: dict[str, Any] = tomllib.load(f)
        raw = _deep_merge(raw, local_raw)

    raw = _apply_env_overrides(raw)

    return _build_app_config(raw)


def load_credentials() -> Credentials:
    """Read provider secrets from the environment (after ``.env`` is loaded)."""
    return Credentials(
        wcl_client_id=os.environ.get("WCL_CLIENT_ID", ""),
        wcl_client_secret=os.environ.get("WCL_CLIENT_SECRET", ""),
        blizzard_client_id=os.environ.get("BLIZZARD_CLIENT_ID", ""),
        blizzard_client_secret=os.environ.get("BLIZZARD_CLIENT_SECRET", ""),
        raiderio_api_key=os.environ.get("RAIDERIO_API_KEY") or None,
    )


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into ``base``."""
    result = dict(base)
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Apply WOW_TRACKER_* env vars to the raw config dict.

    Supported overrides:
      WOW_TRACKER_DB_PATH       → raw["database"]["db_path"]
      WOW_TRACKER_LOG_LEVEL     → raw["logging"]["level"]
      WOW_TRACKER_SYNC_ON_BOOT  → raw["sync"]["sync_on_boot"]
      WOW_TRACKER_DEBUG         → raw["debug"]
    """
    if db_path := os.environ.get("WOW_TRACKER_DB_PATH"):
        raw.setdefault("database", {})["db_path"] = db_path

    if log_level := os.environ.get("WOW_TRACKER_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    if sync_on_boot := os.environ.get("WOW_TRACKER_SYNC_ON_BOOT"):
        raw.setdefault("sync", {})["sync_on_boot"] = sync_on_boot.lower() in ("1", "true", "yes")

    if debug := os.environ.get("WOW_TRACKER_DEBUG"):
        raw["debug"] = debug.lower() in ("1", "true", "yes")

    return raw


def _build_app_config(raw: dict[str, Any]) -> AppConfig:
    """Map raw TOML dict to ``AppConfig`` model structure."""
    project = raw.pop("project", {})

    providers_raw = raw.get("providers", {})
    defaults = ProvidersConfig()
    providers = ProvidersConfig(
        **{
            name: ProviderConfig(
                **{**getattr(defaults, name).model_dump(), **providers_raw.get(name, {})}
            )
            for name in ("warcraftlogs", "raiderio", "blizzard")
        }
    )

    return AppConfig(
        database=DatabaseConfig(**raw.get("database", {})),
        logging=LoggingConfig(**raw.get("logging", {})),
        providers=providers,
        raids=RaidsConfig(**raw.get("raids", {})),
        cache=CacheConfig(**raw.get("cache", {})),
        sync=SyncConfig(**raw.get("sync", {})),
        queue=QueueConfig(**raw.get("queue", {})),
        debug=raw.get("debug", project.get("debug", False)),
    )
