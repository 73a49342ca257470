"""
Logging setup for the spectrogram processor.

Library modules only create ``logging.getLogger(__name__)`` loggers and
attach per-column context through ``extra=``. Applications (the CLI, or
an embedding service) call configure_logging() once:

- SPECTRO_ENV=production|prod|staging -> one JSON object per line
- otherwise -> readable lines with the column context appended
- SPECTRO_LOG_LEVEL sets the level when none is passed
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import IO, Any

# Context attributes passed via ``extra=`` by the pipeline modules
CONTEXT_FIELDS = ("session", "column_index", "window_index", "column_count", "duration_ms")

PRODUCTION_ENVS = ("production", "prod", "staging")


def _context(record: logging.LogRecord) -> dict[str, Any]:
    return {key: getattr(record, key) for key in CONTEXT_FIELDS if hasattr(record, key)}


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_context(record))

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        # numpy scalars and paths fall back to str()
        return json.dumps(entry, default=str)


class ContextFormatter(logging.Formatter):
    """Readable single-line format with ``key=value`` column context."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _context(record)
        if context:
            line += " (" + ", ".join(f"{k}={v}" for k, v in context.items()) + ")"
        return line


def is_production() -> bool:
    return os.environ.get("SPECTRO_ENV", "development").lower() in PRODUCTION_ENVS


def configure_logging(
    level: int | str | None = None,
    json_output: bool | None = None,
    stream: IO[str] | None = None,
) -> logging.Handler:
    """Install a single console handler on the root logger.

    Args:
        level: Log level; defaults to $SPECTRO_LOG_LEVEL or INFO
        json_output: Force JSON (True) or readable (False) output;
            defaults to the SPECTRO_ENV check
        stream: Destination, stderr by default so stdout stays free for
            command output

    Returns:
        The installed handler
    """
    if level is None:
        level = os.environ.get("SPECTRO_LOG_LEVEL", "INFO")
    if isinstance(level, str):
        level = level.upper()
    if json_output is None:
        json_output = is_production()

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(JSONFormatter() if json_output else ContextFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    logging.getLogger("asyncio").setLevel(logging.WARNING)
    return handler
