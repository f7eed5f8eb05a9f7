"""
WoW character tracker: CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Validate inputs.
  4. Execute action (DB init, catalog sync, enqueue, run workers).
  5. Report result to stdout.

Install and run::

    pip install -e .
    wow-tracker --help
    wow-tracker init-db
    wow-tracker validate-config
    wow-tracker sync-raids --force
    wow-tracker track Thrall area-52 --region us
    wow-tracker run --once
    wow-tracker status
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer

app = typer.Typer(
    name="wow-tracker",
    help="WoW character performance tracker: catalog sync and processing queue.",
    add_completion=False,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from wow_tracker.config import load_config

    try:
        cfg_path = Path(config_path) if config_path else None
        return load_config(cfg_path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except Exception as exc:
        typer.echo(f"[ERROR] Config validation failed: {exc}", err=True)
        raise typer.Exit(code=1)


def _configure_logging(config):
    """Set up logging from config."""
    from wow_tracker.utils.logging import configure_logging
    configure_logging(config.logging, debug=config.debug)


def _open_db(config, db_path: Optional[str] = None):
    """Open the long-lived connection and make sure the schema exists."""
    from wow_tracker.db.connection import connect
    from wow_tracker.db.schema import apply_schema

    conn = connect(config.database, db_path)
    apply_schema(conn)
    return conn


def _build_runtime(config, db_path: Optional[str] = None):
    from wow_tracker.config import load_credentials
    from wow_tracker.runtime import TrackerRuntime

    credentials = load_credentials()
    missing = credentials.missing()
    if missing:
        typer.echo(f"  [WARN] Missing credentials: {', '.join(missing)}", err=True)
    target = db_path or config.database.db_path
    sync_conn = _open_db(config, db_path) if target != ":memory:" else None
    return TrackerRuntime(config, credentials, _open_db(config, db_path), sync_conn=sync_conn)


def _run_with_runtime(config, db_path: Optional[str], action):
    """Run ``action(runtime)`` on a fresh event loop, then release everything."""
    runtime = _build_runtime(config, db_path)

    async def _main():
        try:
            return await action(runtime)
        finally:
            await runtime.aclose()

    try:
        return asyncio.run(_main())
    finally:
        runtime.conn.close()
        sync_conn = runtime.sync_engine.catalog.conn
        if sync_conn is not runtime.conn:
            sync_conn.close()


# ── Options ───────────────────────────────────────────────────────────────────

_DB_PATH = typer.Option(None, "--db-path", help="Override DB path from config.")
_CONFIG = typer.Option(None, "--config", help="Path to TOML config file.")


# ── Commands ──────────────────────────────────────────────────────────────────

@app.command("init-db")
def init_db(
    db_path: Optional[str] = _DB_PATH,
    config_path: Optional[str] = _CONFIG,
) -> None:
    """Initialize the SQLite database and apply the full schema.

    Safe to run multiple times; all DDL uses IF NOT EXISTS.
    """
    from wow_tracker.db.connection import get_connection
    from wow_tracker.db.schema import ALL_TABLE_NAMES, apply_schema

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    target_path = db_path or config.database.db_path
    typer.echo(f"Initializing database at: {target_path}")

    with get_connection(
        target_path,
        wal_mode=config.database.wal_mode,
        busy_timeout_ms=config.database.busy_timeout_ms,
    ) as conn:
        apply_schema(conn)

    typer.echo(f"  Tables: {len(ALL_TABLE_NAMES)} created/verified.")
    typer.echo("[OK] Database ready.")


@app.command("validate-config")
def validate_config(
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file (default: config/default.toml).",
    ),
    show_full: bool = typer.Option(
        False,
        "--full",
        help="Print full config including all fields.",
    ),
) -> None:
    """Validate the configuration file and print parsed values.

    Exits with code 1 if the config fails validation.
    """
    from wow_tracker.config import load_credentials

    config = _load_config_or_exit(config_path)

    typer.echo("Configuration validated successfully.")
    typer.echo("")
    typer.echo(f"  Database path:      {config.database.db_path}")
    typer.echo(f"  Seasons:            {', '.join(s.slug for s in config.raids.seasons) or '(none)'}")
    typer.echo(f"  Current zones:      {config.raids.current_zone_ids}")
    typer.echo(f"  Tracked expansions: {config.raids.tracked_expansion_ids}")
    typer.echo(f"  Ranking difficulty: {config.raids.ranking_difficulty}")
    for name in ("warcraftlogs", "raiderio", "blizzard"):
        provider = getattr(config.providers, name)
        limit = provider.hourly_limit or "unlimited"
        typer.echo(
            f"  {name:<18}  limit={limit} low_water={provider.low_water_mark} "
            f"min_interval={provider.min_interval_ms}ms"
        )
    typer.echo(f"  Sync on boot:       {config.sync.sync_on_boot}")
    typer.echo(f"  Daily sync hour:    {config.sync.daily_sync_hour:02d}:00 UTC")
    typer.echo(f"  Log level:          {config.logging.level}")
    typer.echo(f"  Debug mode:         {config.debug}")

    missing = load_credentials().missing()
    if missing:
        typer.echo(f"  [WARN] Missing credentials: {', '.join(missing)}")

    if show_full:
        typer.echo("")
        typer.echo("Full config (JSON):")
        typer.echo(json.dumps(config.model_dump(), indent=2, default=str))

    typer.echo("")
    typer.echo("[OK] Config is valid.")


@app.command("sync-raids")
def sync_raids(
    force: bool = typer.Option(
        False, "--force", help="Bypass cached provider responses (results are still cached)."
    ),
    skip_icons: bool = typer.Option(
        False, "--skip-icons", help="Skip icon resolution; existing icons are kept."
    ),
    db_path: Optional[str] = _DB_PATH,
    config_path: Optional[str] = _CONFIG,
) -> None:
    """Synchronize the raid catalog from all three providers.

    \b
    Phases:
      1. Zone details           (combat-log provider, cached)
      2. Expansions
      3. Seasons
      4. Raid static data       (dungeon-ranking provider: slugs, dates, icons)
      5. Achievement icons      (character-profile provider)
      6. Raids and bosses
    """
    from wow_tracker.sync.raid_sync import SyncOptions

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    typer.echo(f"sync-raids | force={force} | skip_icons={skip_icons}")
    options = SyncOptions(force=force, skip_icons=skip_icons)
    result = _run_with_runtime(config, db_path, lambda rt: rt.sync_catalog(options))

    for table, count in result.counts().items():
        typer.echo(f"  {table:<12} {count}")
    typer.echo(f"  duration     {result.duration_ms} ms")
    for error in result.errors:
        typer.echo(f"  [WARN] {error}", err=True)

    if result.aborted:
        typer.echo("[ERROR] Sync aborted: no zone details available.", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"[OK] Raid sync complete ({len(result.errors)} error(s)).")


@app.command("track")
def track(
    name: str = typer.Argument(..., help="Character name."),
    realm: str = typer.Argument(..., help="Realm name or slug (e.g. 'Area 52')."),
    region: str = typer.Option("us", "--region", help="Region: us, eu, kr, tw, cn."),
    requested_by: Optional[str] = typer.Option(
        None, "--requested-by", help="User key notified on the queued channel."
    ),
    db_path: Optional[str] = _DB_PATH,
    config_path: Optional[str] = _CONFIG,
) -> None:
    """Track a character and queue its lightweight stage."""
    from wow_tracker.processing.admin import enqueue_character

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    conn = _open_db(config, db_path)
    try:
        job = enqueue_character(conn, name, realm, region, requested_by=requested_by)
    except ValueError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    finally:
        conn.close()

    typer.echo(f"[OK] Queued {job.name}-{job.realm_slug} ({job.region}) as job {job.job_id}.")


@app.command("reprocess")
def reprocess(
    character_id: Optional[int] = typer.Argument(None, help="Character id to re-enqueue."),
    all_characters: bool = typer.Option(False, "--all", help="Re-enqueue every character."),
    db_path: Optional[str] = _DB_PATH,
    config_path: Optional[str] = _CONFIG,
) -> None:
    """Discard aggregates, reset processing state and re-enqueue."""
    from wow_tracker.processing.admin import reprocess_all, reprocess_character

    if character_id is None and not all_characters:
        typer.echo("[ERROR] Pass a character id or --all.", err=True)
        raise typer.Exit(code=1)

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    conn = _open_db(config, db_path)
    try:
        if all_characters:
            jobs = reprocess_all(conn, requested_by="cli")
        else:
            jobs = [reprocess_character(conn, character_id, requested_by="cli")]
    except LookupError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    finally:
        conn.close()

    typer.echo(f"[OK] Re-enqueued {len(jobs)} character(s).")


@app.command("status")
def status(
    db_path: Optional[str] = _DB_PATH,
    config_path: Optional[str] = _CONFIG,
) -> None:
    """Show catalog size, queue depth and per-character processing state."""
    from wow_tracker.db.repositories.catalog_repo import CatalogRepository
    from wow_tracker.db.repositories.character_repo import CharacterRepository
    from wow_tracker.db.repositories.processing_repo import ProcessingRepository
    from wow_tracker.db.repositories.queue_repo import QueueRepository
    from wow_tracker.taxonomy.processing_taxonomy import Stage

    config = _load_config_or_exit(config_path)

    conn = _open_db(config, db_path)
    try:
        counts = CatalogRepository(conn).count_rows()
        queue = QueueRepository(conn)
        processing = ProcessingRepository(conn)

        typer.echo("Catalog:")
        for table, n in counts.items():
            typer.echo(f"  {table:<12} {n}")

        typer.echo("Queues:")
        for stage in Stage:
            by_status = queue.count_by_status(stage)
            summary = ", ".join(f"{k}={v}" for k, v in sorted(by_status.items())) or "empty"
            typer.echo(f"  {stage:<12} {summary}")

        typer.echo("Characters:")
        characters = CharacterRepository(conn).list_all()
        if not characters:
            typer.echo("  (none tracked)")
        for character in characters:
            state = processing.get(character.character_id)
            if state is None:
                typer.echo(f"  [{character.character_id}] {character.display_name}: not queued")
                continue
            line = (
                f"  [{character.character_id}] {character.display_name}: "
                f"lightweight={state.lightweight_status} deep={state.deep_scan_status} "
                f"steps={len(state.steps_completed)}/{state.total_steps}"
            )
            if state.current_step:
                line += f" current='{state.current_step}'"
            typer.echo(line)
            if state.error_message:
                typer.echo(f"      error: {state.error_message}")
    finally:
        conn.close()


@app.command("run")
def run(
    once: bool = typer.Option(
        False, "--once", help="Drain both queues and exit instead of running as a daemon."
    ),
    db_path: Optional[str] = _DB_PATH,
    config_path: Optional[str] = _CONFIG,
) -> None:
    """Run the queue workers (plus boot and daily catalog syncs).

    With ``--once`` the catalog is synced first only if it is empty, both
    queues are drained, and the command exits.
    """
    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    async def _drain(runtime) -> int:
        runtime.recover()
        await runtime.refresh_quotas()
        if runtime.sync_engine.catalog_is_empty():
            typer.echo("  Catalog empty; syncing first ...")
            await runtime.sync_catalog()
        return await runtime.drain()

    if once:
        processed = _run_with_runtime(config, db_path, _drain)
        typer.echo(f"[OK] Processed {processed} job(s).")
        return

    typer.echo("Workers running. Press Ctrl-C to stop.")
    try:
        _run_with_runtime(config, db_path, lambda rt: rt.serve())
    except KeyboardInterrupt:
        typer.echo("Stopped.")


if __name__ == "__main__":
    app()
