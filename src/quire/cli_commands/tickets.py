"""CLI commands for ticket CRUD: create, view, update, delete, list."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

import click

from quire.cli_common import echo_json, fail, get_db
from quire.errors import QuireError, TicketNotFoundError
from quire.models import (
    DEFAULT_PRIORITY,
    DEFAULT_STATUS,
    DEFAULT_TYPE,
    VALID_PRIORITIES,
    VALID_STATUSES,
    VALID_TYPES,
    Ticket,
    TicketFilters,
    parse_csv_list,
)

logger = logging.getLogger(__name__)

OUTPUT_FORMATS = ("table", "summary", "json")
_TITLE_WIDTH = 35


def _require_identifier(ticket_id: int | None, title: str | None, as_json: bool = False) -> None:
    if ticket_id is None and not title:
        fail("either --id or --title must be provided", as_json=as_json)
    if ticket_id is not None and ticket_id <= 0:
        fail(f"--id must be a positive integer, got {ticket_id}", as_json=as_json)


def _short_ts(value: str | None) -> str:
    """``2024-05-01T12:34:56.789+00:00`` -> ``2024-05-01 12:34``."""
    if not value:
        return "-"
    return value[:16].replace("T", " ")


def _print_ticket(ticket: Ticket) -> None:
    click.echo(f"ID:       {ticket.id}")
    click.echo(f"Project:  {ticket.project}")
    click.echo(f"Title:    {ticket.title}")
    click.echo(f"Type:     {ticket.type}")
    click.echo(f"Status:   {ticket.status}")
    click.echo(f"Priority: {ticket.priority}")
    if ticket.critical_path:
        click.echo("Critical: YES")
    if ticket.assigned_to:
        click.echo(f"Assignee: {ticket.assigned_to}")
    if ticket.created_by:
        click.echo(f"Creator:  {ticket.created_by}")
    click.echo(f"Created:  {_short_ts(ticket.created_at)}")
    click.echo(f"Updated:  {_short_ts(ticket.updated_at)}")
    if ticket.tags:
        click.echo(f"Tags:     {', '.join(ticket.tags)}")
    if ticket.description:
        click.echo(f"\n--- Description ---\n{ticket.description}")
    if ticket.files:
        click.echo("\n--- Files ---")
        for path in ticket.files:
            click.echo(f"  {path}")
    if ticket.comments:
        click.echo("\n--- Comments ---")
        for i, text in enumerate(ticket.comments, 1):
            click.echo(f"  [{i}] {text}")


def _print_table(tickets: list[Ticket]) -> None:
    header = (
        f"{'ID':<6} {'PROJECT':<18} {'TYPE':<10} {'PRIORITY':<10} {'CRITICAL':<10} "
        f"{'TITLE':<{_TITLE_WIDTH}} {'STATUS':<13} {'ASSIGNED TO':<12}"
    )
    click.echo(header)
    click.echo("-" * len(header))
    for t in tickets:
        title = t.title if len(t.title) <= _TITLE_WIDTH else t.title[: _TITLE_WIDTH - 3] + "..."
        critical = "yes" if t.critical_path else "no"
        click.echo(
            f"{t.id!s:<6} {t.project:<18} {t.type:<10} {t.priority:<10} {critical:<10} "
            f"{title:<{_TITLE_WIDTH}} {t.status:<13} {t.assigned_to or 'unassigned':<12}"
        )


def _print_summary(tickets: list[Ticket]) -> None:
    for i, t in enumerate(tickets):
        if i > 0:
            click.echo()
        click.echo(f"ID: {t.id}")
        click.echo(f"Type: {t.type} | Priority: {t.priority} | Status: {t.status}")
        click.echo(f"Title: {t.title}")
        if t.description:
            click.echo(f"Description: {t.description}")
        if t.critical_path:
            click.echo("Critical Path: YES")
        if t.assigned_to:
            click.echo(f"Assigned To: {t.assigned_to}")
        if t.created_by:
            click.echo(f"Created By: {t.created_by}")
        if t.tags:
            click.echo(f"Tags: {', '.join(t.tags)}")
        if t.files:
            click.echo(f"Files: {len(t.files)}")
        if t.comments:
            click.echo(f"Comments: {len(t.comments)}")
        click.echo(f"Created: {_short_ts(t.created_at)} | Updated: {_short_ts(t.updated_at)}")
        click.echo("-" * 80)


@click.command()
@click.option("--title", "-t", required=True, help="Ticket title")
@click.option("--project", "-p", required=True, help="Project name")
@click.option("--description", "-d", default=None, help="Description")
@click.option("--type", "ticket_type", type=click.Choice(VALID_TYPES), default=DEFAULT_TYPE, show_default=True)
@click.option("--priority", type=click.Choice(VALID_PRIORITIES), default=DEFAULT_PRIORITY, show_default=True)
@click.option("--status", type=click.Choice(VALID_STATUSES), default=DEFAULT_STATUS, show_default=True)
@click.option("--critical-path", "-c", is_flag=True, help="Mark the ticket as on the critical path")
@click.option("--assigned-to", "-a", default=None, help="Assignee")
@click.option("--created-by", default=None, help="Ticket creator")
@click.option("--tags", default=None, help="Comma-separated tags")
@click.option("--files", default=None, help="Comma-separated file paths")
@click.option("--comment", "comments", multiple=True, help="Comment (repeatable)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def create(
    title: str,
    project: str,
    description: str | None,
    ticket_type: str,
    priority: str,
    status: str,
    critical_path: bool,
    assigned_to: str | None,
    created_by: str | None,
    tags: str | None,
    files: str | None,
    comments: tuple[str, ...],
    as_json: bool,
) -> None:
    """Create a new ticket."""
    ticket = Ticket(
        title=title,
        project=project,
        type=ticket_type,
        description=description,
        critical_path=critical_path,
        status=status,
        priority=priority,
        created_by=created_by,
        assigned_to=assigned_to,
        tags=parse_csv_list(tags),
        files=parse_csv_list(files),
        comments=list(comments),
    )
    with get_db() as db:
        try:
            created = db.create_ticket(ticket, project)
        except QuireError as e:
            fail(str(e), as_json=as_json)
        if as_json:
            echo_json(created.to_dict())
        else:
            click.echo(f"Created ticket {created.id}: {created.title} [{created.project}]")


@click.command()
@click.option("--project", "-p", required=True, help="Project name")
@click.option("--id", "-i", "ticket_id", type=int, default=None, help="Ticket ID")
@click.option("--title", "-t", default=None, help="Ticket title (first match wins)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def view(project: str, ticket_id: int | None, title: str | None, as_json: bool) -> None:
    """Show one ticket with its tags, files, and comments."""
    _require_identifier(ticket_id, title, as_json)
    with get_db() as db:
        try:
            ticket = db.view_ticket(project, ticket_id=ticket_id, title=title)
        except TicketNotFoundError as e:
            fail(f"Not found: {e}", as_json=as_json)
        except QuireError as e:
            fail(str(e), as_json=as_json)
        if as_json:
            echo_json(ticket.to_dict())
        else:
            _print_ticket(ticket)


@click.command()
@click.option("--project", "-p", required=True, help="Project name")
@click.option("--id", "-i", "ticket_id", type=int, default=None, help="ID of the ticket to update")
@click.option("--title", "-t", default=None, help="Find the ticket to update by title")
@click.option("--new-title", default=None, help="New title")
@click.option("--description", "-d", default=None, help="New description")
@click.option("--type", "ticket_type", type=click.Choice(VALID_TYPES), default=None, help="New type")
@click.option("--status", type=click.Choice(VALID_STATUSES), default=None, help="New status")
@click.option("--priority", type=click.Choice(VALID_PRIORITIES), default=None, help="New priority")
@click.option("--critical-path/--no-critical-path", default=None, help="Set or clear the critical-path flag")
@click.option("--assigned-to", "-a", default=None, help="New assignee")
@click.option("--tags", default=None, help="Comma-separated tags (replaces existing)")
@click.option("--files", default=None, help="Comma-separated file paths (replaces existing)")
@click.option("--comment", "comments", multiple=True, help="Comment to add (repeatable)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def update(
    project: str,
    ticket_id: int | None,
    title: str | None,
    new_title: str | None,
    description: str | None,
    ticket_type: str | None,
    status: str | None,
    priority: str | None,
    critical_path: bool | None,
    assigned_to: str | None,
    tags: str | None,
    files: str | None,
    comments: tuple[str, ...],
    as_json: bool,
) -> None:
    """Update an existing ticket. Only the given fields change."""
    _require_identifier(ticket_id, title, as_json)

    changes: dict[str, Any] = {}
    if new_title is not None:
        changes["title"] = new_title
    if description is not None:
        changes["description"] = description
    if ticket_type is not None:
        changes["type"] = ticket_type
    if status is not None:
        changes["status"] = status
    if priority is not None:
        changes["priority"] = priority
    if critical_path is not None:
        changes["critical_path"] = critical_path
    if assigned_to is not None:
        changes["assigned_to"] = assigned_to
    if tags is not None:
        changes["tags"] = parse_csv_list(tags)
    if files is not None:
        changes["files"] = parse_csv_list(files)
    if not changes and not comments:
        fail("no fields specified to update", as_json=as_json)

    with get_db() as db:
        try:
            existing = db.view_ticket(project, ticket_id=ticket_id, title=title)
            # Comments are append-only: pass just the new ones.
            merged = replace(existing, comments=list(comments), **changes)
            logger.debug("Updating ticket %s fields: %s", existing.id, sorted(changes))
            updated = db.update_ticket(merged, project, ticket_id=existing.id)
        except TicketNotFoundError as e:
            fail(f"Not found: {e}", as_json=as_json)
        except QuireError as e:
            fail(str(e), as_json=as_json)
        if as_json:
            echo_json(updated.to_dict())
        else:
            click.echo(f"Updated ticket {updated.id}: {updated.title} [{updated.status}]")


@click.command()
@click.option("--project", "-p", required=True, help="Project name")
@click.option("--id", "-i", "ticket_id", type=int, default=None, help="Ticket ID")
@click.option("--title", "-t", default=None, help="Ticket title (first match wins)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def delete(project: str, ticket_id: int | None, title: str | None, as_json: bool) -> None:
    """Delete a ticket and its tags, files, and comments."""
    _require_identifier(ticket_id, title, as_json)
    with get_db() as db:
        try:
            deleted = db.delete_ticket(project, ticket_id=ticket_id, title=title)
        except TicketNotFoundError as e:
            fail(f"Not found: {e}", as_json=as_json)
        except QuireError as e:
            fail(str(e), as_json=as_json)
        if as_json:
            echo_json({"deleted": deleted, "project": project})
        else:
            click.echo(f"Deleted ticket {deleted} from project {project}")


@click.command("list")
@click.option("--project", default=None, help="Filter by project")
@click.option("--status", type=click.Choice(VALID_STATUSES), default=None, help="Filter by status")
@click.option("--type", "ticket_type", type=click.Choice(VALID_TYPES), default=None, help="Filter by type")
@click.option("--priority", type=click.Choice(VALID_PRIORITIES), default=None, help="Filter by priority")
@click.option("--assigned-to", default=None, help="Filter by assignee")
@click.option("--tags", default=None, help="Comma-separated tags; matches tickets with any of them")
@click.option(
    "--output", "-o", "output_format", type=click.Choice(OUTPUT_FORMATS), default="table", show_default=True
)
def list_tickets(
    project: str | None,
    status: str | None,
    ticket_type: str | None,
    priority: str | None,
    assigned_to: str | None,
    tags: str | None,
    output_format: str,
) -> None:
    """List tickets, newest first, with optional filters."""
    filters = TicketFilters(
        status=status,
        type=ticket_type,
        priority=priority,
        assigned_to=assigned_to,
        project=project,
        tags=tags.split(",") if tags is not None else None,
    )
    with get_db() as db:
        try:
            tickets = db.list_tickets(filters)
        except QuireError as e:
            fail(str(e), as_json=output_format == "json")

    if output_format == "json":
        echo_json([t.to_dict() for t in tickets])
        return
    if not tickets:
        click.echo("No tickets found.")
        return
    if output_format == "summary":
        _print_summary(tickets)
    else:
        _print_table(tickets)
    click.echo(f"\nTotal: {len(tickets)} ticket(s)")


def register(cli: click.Group) -> None:
    """Register ticket commands with the CLI group."""
    cli.add_command(create)
    cli.add_command(view)
    cli.add_command(update)
    cli.add_command(delete)
    cli.add_command(list_tickets)
