"""CLI for the quire ticket store.

Backend is chosen by ~/.quire/config.json (see ``quire source``); remote
credentials come from the environment or a ``.env`` file in the cwd.

Usage:
    quire create --title "Fix login" --project web --type bug   # Create ticket
    quire view --project web --id 3                             # Show one ticket
    quire update --project web --id 3 --status closed           # Update ticket
    quire delete --project web --title "Fix login"              # Delete ticket
    quire list --project web --tags ui,auth -o summary          # List tickets
    quire source turso                                          # Switch backend
    quire source --status                                       # Show backend
"""

from __future__ import annotations

from pathlib import Path

import click
from dotenv import find_dotenv, load_dotenv

from quire import __version__
from quire.cli_commands import source as source_commands
from quire.cli_commands import tickets as ticket_commands
from quire.config import quire_home
from quire.logging import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="quire")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging on stderr")
@click.option(
    "--db-path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Use this SQLite file instead of ~/.quire/tickets.db",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, db_path: Path | None) -> None:
    """Quire: project tickets stored in local SQLite or remote Turso."""
    # Existing environment variables win over .env entries.
    load_dotenv(find_dotenv(usecwd=True))
    home = quire_home()
    logger = setup_logging(home, verbose=verbose)
    logger.debug("Starting quire", extra={"op": ctx.invoked_subcommand})

    ctx.ensure_object(dict)
    ctx.obj["home"] = home
    ctx.obj["db_path"] = db_path
    ctx.obj["verbose"] = verbose


ticket_commands.register(cli)
source_commands.register(cli)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
