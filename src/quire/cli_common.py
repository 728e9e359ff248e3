"""Shared CLI helpers.

Provides ``get_db()`` and the error/JSON output helpers so that ``cli.py``
and the ``cli_commands/*.py`` modules can use them without circular imports.
"""

from __future__ import annotations

import json as json_mod
import sys
from pathlib import Path
from typing import Any, NoReturn

import click

from quire.config import quire_home
from quire.core import TicketDB
from quire.errors import QuireError


def _cli_settings() -> dict[str, Any]:
    ctx = click.get_current_context()
    obj = ctx.find_root().obj
    return obj if isinstance(obj, dict) else {}


def get_home() -> Path:
    """Base directory chosen by the root command (``QUIRE_HOME`` or ``~/.quire``)."""
    home = _cli_settings().get("home")
    return home if home is not None else quire_home()


def get_db_path() -> Path | None:
    """Local database override from ``--db-path``, if any."""
    return _cli_settings().get("db_path")


def get_db() -> TicketDB:
    """Open the configured backend and return an initialized TicketDB.

    Use as a context manager so the connection is closed when the command ends.
    """
    try:
        return TicketDB.from_config(get_home(), db_path=get_db_path())
    except QuireError as e:
        click.echo(f"Error: failed to open database: {e}", err=True)
        sys.exit(1)


def fail(message: str, *, as_json: bool = False) -> NoReturn:
    """Report *message* and exit with status 1."""
    if as_json:
        click.echo(json_mod.dumps({"error": message}))
    else:
        click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def echo_json(data: Any) -> None:
    click.echo(json_mod.dumps(data, indent=2, default=str))
