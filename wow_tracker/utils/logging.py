"""
Root logger setup for the tracker CLI.

``configure_logging()`` is called once per CLI command, before the runtime,
a catalog sync or a queue command does any work. Library modules only ever
do ``logger = logging.getLogger(__name__)``.

Two line formats are supported:

  text (default)::

    2024-09-15T12:00:00Z [INFO] wow_tracker.sync.raid_sync: Phase 1: 1 zone(s) ...

  json (``[logging] json_format = true``)::

    {"ts": "2024-09-15T12:00:00Z", "level": "INFO", "logger": "...", "msg": "..."}

``AppConfig.debug`` forces DEBUG regardless of ``[logging] level``.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from wow_tracker.config import LoggingConfig

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# Per-request lines from the HTTP stack; the provider clients log their own.
_QUIET_LOGGERS = ("httpx", "httpcore")

# Attributes every LogRecord carries; anything else came in through extra=.
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime"}


class _JsonFormatter(logging.Formatter):
    """One JSON object per record; ``extra=`` fields land at the top level."""

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: dict = {
            "ts": stamp.strftime(LOG_DATE_FORMAT),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        payload.update(
            (key, val)
            for key, val in record.__dict__.items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        )
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _build_formatter(json_format: bool) -> logging.Formatter:
    if json_format:
        return _JsonFormatter()
    return logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)


def configure_logging(config: "LoggingConfig", debug: bool = False) -> None:
    """Install stdout (and optional file) handlers on the root logger.

    Args:
        config: ``[logging]`` section of ``AppConfig``.
        debug: Force DEBUG level (``AppConfig.debug``).
    """
    level = logging.DEBUG if debug else getattr(logging, config.level, logging.INFO)
    formatter = _build_formatter(config.json_format)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers, force=True)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
