"""Backend selection config and on-disk locations.

Layout (base directory overridable with ``QUIRE_HOME``)::

    ~/.quire/
        config.json   {"database_type": "sqlite" | "turso"}
        tickets.db    local SQLite store
        quire.log     JSONL log

Remote credentials come from the environment (``TURSO_URL``,
``TURSO_AUTH_TOKEN``); they are never written to config.json.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import TypedDict

from quire.errors import BackendConfigError, ValidationError

logger = logging.getLogger(__name__)

QUIRE_HOME_ENV = "QUIRE_HOME"
QUIRE_DIR_NAME = ".quire"
CONFIG_FILENAME = "config.json"
DB_FILENAME = "tickets.db"

TURSO_URL_ENV = "TURSO_URL"
TURSO_TOKEN_ENV = "TURSO_AUTH_TOKEN"

BACKEND_SQLITE = "sqlite"
BACKEND_TURSO = "turso"
VALID_BACKENDS: tuple[str, ...] = (BACKEND_SQLITE, BACKEND_TURSO)
DEFAULT_BACKEND = BACKEND_SQLITE

# Logical names accepted anywhere a backend kind is read.
BACKEND_ALIASES: dict[str, str] = {
    "local-file": BACKEND_SQLITE,
    "local": BACKEND_SQLITE,
    "remote": BACKEND_TURSO,
    "libsql": BACKEND_TURSO,
}


class AppConfig(TypedDict):
    """Shape of config.json."""

    database_type: str


def normalize_backend_kind(kind: str) -> str:
    """Map an alias to its canonical backend name. Unknown names pass through."""
    cleaned = kind.strip().lower()
    return BACKEND_ALIASES.get(cleaned, cleaned)


def quire_home(env: Mapping[str, str] | None = None) -> Path:
    """Return the base directory for config, database, and logs."""
    environ = os.environ if env is None else env
    override = environ.get(QUIRE_HOME_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / QUIRE_DIR_NAME


def default_db_path(home: Path | None = None) -> Path:
    return (home or quire_home()) / DB_FILENAME


def read_config(home: Path) -> AppConfig:
    """Read config.json, creating it with the default backend if missing.

    A corrupt file is logged and treated as the default.
    """
    defaults = AppConfig(database_type=DEFAULT_BACKEND)
    config_path = home / CONFIG_FILENAME
    if not config_path.exists():
        logger.debug("Config file not found, creating default at %s", config_path)
        write_config(home, defaults)
        logger.info("Created default config", extra={"backend": DEFAULT_BACKEND})
        return defaults
    try:
        data = json.loads(config_path.read_text())
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read %s, using defaults: %s", config_path, exc)
        return defaults
    if not isinstance(data, dict) or not isinstance(data.get("database_type"), str):
        logger.warning("Config %s has no database_type, using defaults", config_path)
        return defaults
    logger.debug("Config loaded: database_type=%s", data["database_type"])
    return AppConfig(database_type=data["database_type"])


def write_config(home: Path, config: AppConfig) -> None:
    home.mkdir(parents=True, exist_ok=True)
    config_path = home / CONFIG_FILENAME
    config_path.write_text(json.dumps(config, indent=2) + "\n")
    logger.debug("Config saved to %s", config_path)


def remote_credentials(env: Mapping[str, str] | None = None) -> tuple[str, str]:
    """Return (url, token) for the remote backend.

    Raises BackendConfigError naming the first missing variable.
    """
    environ = os.environ if env is None else env
    url = environ.get(TURSO_URL_ENV, "")
    token = environ.get(TURSO_TOKEN_ENV, "")
    if not url:
        msg = f"{TURSO_URL_ENV} environment variable is not set"
        raise BackendConfigError(msg)
    if not token:
        msg = f"{TURSO_TOKEN_ENV} environment variable is not set"
        raise BackendConfigError(msg)
    return url, token


def switch_backend(home: Path, kind: str, env: Mapping[str, str] | None = None) -> AppConfig:
    """Persist *kind* as the active backend.

    Switching to the remote backend validates its credentials first so a
    bad switch never reaches config.json.
    """
    canonical = normalize_backend_kind(kind)
    if canonical not in VALID_BACKENDS:
        msg = f"Invalid database type: {kind} (must be {' or '.join(VALID_BACKENDS)})"
        raise ValidationError(msg)
    if canonical == BACKEND_TURSO:
        remote_credentials(env)
    config = AppConfig(database_type=canonical)
    write_config(home, config)
    logger.info("Database type switched to %s", canonical, extra={"backend": canonical})
    return config


def mask_token(token: str, visible: int = 8) -> str:
    if len(token) > visible:
        return token[:visible] + "..."
    return token
