"""Structured JSON logging for quire.

Writes JSONL to ~/.quire/quire.log with rotation (5MB, 3 backups).
"""

from __future__ import annotations

import json
import logging
import os
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

LOG_FILENAME = "quire.log"
LOGGER_NAME = "quire"
_setup_lock = threading.Lock()
_MAX_BYTES = 5 * 1024 * 1024  # 5MB
_BACKUP_COUNT = 3

# Attributes passed via ``extra=`` that end up in the JSON entry.
_EXTRA_FIELDS: tuple[str, ...] = ("op", "ticket_id", "project", "backend", "error")


class _JsonFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for name in _EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = str(record.exc_info[1])
        return json.dumps(entry, default=str)


class _VerboseHandler(logging.StreamHandler):  # type: ignore[type-arg]
    """stderr handler installed by ``--verbose``; tagged so setup can find it again."""


def setup_logging(log_dir: Path, *, verbose: bool = False) -> logging.Logger:
    """Set up structured JSON logging to ``log_dir/quire.log``.

    Safe to call repeatedly: a handler for the same file is reused and a
    handler for a different file is replaced. ``verbose`` adds a plain
    stderr handler and drops the level to DEBUG.
    """
    logger = logging.getLogger(LOGGER_NAME)
    log_path = log_dir / LOG_FILENAME
    target_filename = os.path.abspath(str(log_path))

    with _setup_lock:
        have_file_handler = False
        for h in logger.handlers[:]:
            if isinstance(h, RotatingFileHandler):
                if h.baseFilename == target_filename:
                    have_file_handler = True
                    continue
                # Different path: drop the stale handler so records are not duplicated.
                logger.removeHandler(h)
                h.close()
            elif isinstance(h, _VerboseHandler) and not verbose:
                logger.removeHandler(h)

        if not have_file_handler:
            log_dir.mkdir(parents=True, exist_ok=True)
            handler = RotatingFileHandler(
                str(log_path),
                maxBytes=_MAX_BYTES,
                backupCount=_BACKUP_COUNT,
            )
            handler.setFormatter(_JsonFormatter())
            logger.addHandler(handler)

        if verbose and not any(isinstance(h, _VerboseHandler) for h in logger.handlers):
            stream = _VerboseHandler(sys.stderr)
            stream.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
            logger.addHandler(stream)

        logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    return logger
