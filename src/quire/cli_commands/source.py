"""CLI command for choosing the storage backend: source."""

from __future__ import annotations

import os

import click

from quire.cli_common import echo_json, fail, get_db_path, get_home
from quire.config import (
    BACKEND_TURSO,
    TURSO_TOKEN_ENV,
    TURSO_URL_ENV,
    VALID_BACKENDS,
    mask_token,
    normalize_backend_kind,
    read_config,
    switch_backend,
)
from quire.core import TicketDB
from quire.errors import QuireError


def _show_status(as_json: bool) -> None:
    kind = read_config(get_home())["database_type"]
    url = os.environ.get(TURSO_URL_ENV, "")
    token = os.environ.get(TURSO_TOKEN_ENV, "")
    is_remote = normalize_backend_kind(kind) == BACKEND_TURSO

    if as_json:
        status: dict[str, object] = {"database_type": kind}
        if is_remote:
            status["url"] = url or None
            status["token"] = mask_token(token) if token else None
        echo_json(status)
        return

    click.echo("Current Database Configuration:")
    click.echo("================================")
    click.echo(f"Database Type: {kind}")
    if not is_remote:
        return
    if url:
        click.echo(f"Turso URL: {url}")
    else:
        click.echo(f"Warning: {TURSO_URL_ENV} environment variable is not set")
    if token:
        click.echo(f"Turso Token: {mask_token(token)}")
    else:
        click.echo(f"Warning: {TURSO_TOKEN_ENV} environment variable is not set")


@click.command()
@click.argument("kind", required=False)
@click.option("--status", "show_status", is_flag=True, help="Show the current database configuration")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def source(kind: str | None, show_status: bool, as_json: bool) -> None:
    """Switch the active database between local SQLite and remote Turso.

    \b
    Examples:
      quire source sqlite    # local SQLite file
      quire source turso     # remote libSQL (needs TURSO_URL, TURSO_AUTH_TOKEN)
      quire source --status  # show current configuration
    """
    if show_status:
        _show_status(as_json)
        return
    if kind is None:
        fail(f"requires exactly one argument: {' or '.join(VALID_BACKENDS)}", as_json=as_json)

    home = get_home()
    try:
        config = switch_backend(home, kind)
    except QuireError as e:
        fail(str(e), as_json=as_json)
    new_kind = config["database_type"]
    if not as_json:
        click.echo(f"Switching to {new_kind} database...")

    # Open the new backend once so a bad endpoint is reported now.
    try:
        with TicketDB.from_config(home, db_path=get_db_path()):
            pass
    except QuireError as e:
        fail(f"failed to connect to {new_kind} database: {e}", as_json=as_json)

    if as_json:
        echo_json({"database_type": new_kind})
    else:
        click.echo(f"Successfully switched to {new_kind} database.")


def register(cli: click.Group) -> None:
    """Register backend commands with the CLI group."""
    cli.add_command(source)
