"""Core database operations for the ticket store.

Single source of truth for ticket persistence. The CLI and any other
front end go through :class:`TicketDB`, which wraps an explicitly owned
:class:`~quire.backends.BackendHandle`.

Every public operation runs in exactly one transaction: the main ticket
row and its tag/file/comment rows are committed together or not at all.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from quire import backends
from quire.backends import BackendHandle, BackendParams, DBConnection, params_for
from quire.config import BACKEND_SQLITE, normalize_backend_kind, quire_home, read_config
from quire.db_base import _now_iso
from quire.db_query import TICKET_COLUMNS, build_list_query, select_columns
from quire.db_related import RelatedMixin
from quire.db_schema import initialize_schema
from quire.errors import (
    QuireError,
    TicketInsertError,
    TicketNotFoundError,
    TicketWriteError,
    TransactionError,
    ValidationError,
)
from quire.models import (
    Ticket,
    TicketFilters,
    normalize_tags,
    validate_filters,
    validate_project,
    validate_ticket,
)

logger = logging.getLogger(__name__)


@dataclass
class _TxState:
    operation: str
    ticket_id: int | None = None


def _require_identifier(ticket_id: int | None, title: str | None) -> None:
    if ticket_id is None and not title:
        msg = "Either ticket id or title must be provided"
        raise ValidationError(msg)
    if ticket_id is not None and (isinstance(ticket_id, bool) or not isinstance(ticket_id, int)):
        msg = f"Ticket id must be an integer, got {ticket_id!r}"
        raise ValidationError(msg)
    if ticket_id is not None and ticket_id <= 0:
        msg = f"Ticket id must be positive, got {ticket_id}"
        raise ValidationError(msg)


# ---------------------------------------------------------------------------
# TicketDB
# ---------------------------------------------------------------------------


class TicketDB(RelatedMixin):
    """Transactional ticket CRUD over any registered backend."""

    def __init__(self, handle: BackendHandle) -> None:
        self.handle = handle

    @classmethod
    def connect(
        cls,
        kind: str = BACKEND_SQLITE,
        params: BackendParams | None = None,
        *,
        initialize: bool = True,
    ) -> TicketDB:
        """Open *kind* through the backend registry and bootstrap the schema.

        A schema failure closes the fresh connection before propagating.
        """
        handle = backends.connect(kind, params)
        db = cls(handle)
        if initialize:
            try:
                db.initialize()
            except BaseException:
                handle.close()
                raise
        return db

    @classmethod
    def from_config(
        cls,
        home: Path | None = None,
        *,
        db_path: Path | str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> TicketDB:
        """Connect to whichever backend config.json selects.

        *db_path* overrides the local SQLite file and is ignored for remote
        backends.
        """
        home = home or quire_home(env)
        kind = read_config(home)["database_type"]
        params = params_for(kind, home, env)
        if db_path is not None and normalize_backend_kind(kind) == BACKEND_SQLITE:
            params = BackendParams(db_path=db_path)
        return cls.connect(kind, params)

    def __enter__(self) -> TicketDB:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def conn(self) -> DBConnection:
        return self.handle.conn

    @property
    def backend(self) -> str:
        return self.handle.kind

    def initialize(self) -> None:
        """Create tables and indexes if missing. Idempotent."""
        initialize_schema(self.conn)

    def close(self) -> None:
        self.handle.close()

    # -- Transactions --------------------------------------------------------

    @contextlib.contextmanager
    def _transaction(
        self,
        operation: str,
        *,
        error_cls: type[TransactionError] = TicketWriteError,
    ) -> Iterator[_TxState]:
        """Run the body in BEGIN ... COMMIT, rolling back on any error.

        quire errors (not found, validation) propagate unchanged; anything
        else is wrapped in *error_cls* with the operation and ticket id.
        """
        state = _TxState(operation)
        logger.debug("Beginning %s transaction", operation)
        try:
            self.conn.execute("BEGIN")
        except QuireError:
            raise
        except Exception as exc:
            logger.error("Failed to begin %s: %s", operation, exc, extra={"op": operation, "error": str(exc)})
            raise error_cls(operation, exc) from exc
        try:
            yield state
        except QuireError:
            self._rollback(state)
            raise
        except Exception as exc:
            self._rollback(state)
            logger.error(
                "%s failed: %s",
                operation,
                exc,
                extra={"op": operation, "ticket_id": state.ticket_id, "error": str(exc)},
            )
            raise error_cls(operation, exc, ticket_id=state.ticket_id) from exc
        except BaseException:
            self._rollback(state)
            raise
        try:
            self.conn.execute("COMMIT")
        except Exception as exc:
            self._rollback(state)
            logger.error("Failed to commit %s: %s", operation, exc, extra={"op": operation, "error": str(exc)})
            raise error_cls(operation, exc, ticket_id=state.ticket_id) from exc
        logger.debug("Committed %s transaction", operation)

    def _rollback(self, state: _TxState) -> None:
        try:
            self.conn.execute("ROLLBACK")
        except Exception as exc:
            # The original error is already propagating; only record this one.
            logger.warning("Rollback of %s failed: %s", state.operation, exc)
        else:
            logger.debug("Rolled back %s transaction", state.operation)

    # -- Row helpers ---------------------------------------------------------

    def _row_to_ticket(self, row: tuple[Any, ...]) -> Ticket:
        data = dict(zip(TICKET_COLUMNS, row, strict=True))
        return Ticket(
            id=data["id"],
            project=data["project"],
            type=data["type"],
            title=data["title"],
            description=data["description"],
            critical_path=bool(data["critical_path"]),
            status=data["status"],
            priority=data["priority"],
            created_by=data["created_by"],
            assigned_to=data["assigned_to"],
            created_at=data["created_at"],
            updated_at=data["updated_at"],
        )

    def _fetch_ticket(self, project: str, ticket_id: int) -> Ticket | None:
        row = self.conn.execute(
            f"SELECT {select_columns()} FROM tickets WHERE id = ? AND project = ?",
            (ticket_id, project),
        ).fetchone()
        if row is None:
            return None
        return self._hydrate(self._row_to_ticket(row))

    def _resolve_ticket_id(self, project: str, ticket_id: int | None, title: str | None, operation: str) -> int:
        """Turn an id-or-title into the row id used for the rest of *operation*.

        An explicit id wins and the title is ignored. Otherwise the
        (title, project) pair resolves to its first match by lowest id,
        since titles are not unique.
        """
        if ticket_id is not None:
            return ticket_id
        row = self.conn.execute(
            "SELECT id FROM tickets WHERE title = ? AND project = ? ORDER BY id LIMIT 1",
            (title, project),
        ).fetchone()
        if row is None:
            logger.error("Ticket not found", extra={"op": operation, "project": project})
            raise TicketNotFoundError(project, title=title, operation=operation)
        resolved: int = row[0]
        logger.debug("Resolved title %r in %s to ticket %d", title, project, resolved)
        return resolved

    # -- Ticket CRUD ---------------------------------------------------------

    def create_ticket(self, ticket: Ticket, project: str | None = None) -> Ticket:
        """Insert *ticket* and its children; return the stored ticket with its id.

        *project* defaults to ``ticket.project``. Status and timestamps come
        from the ticket as given, except that both timestamps are set to now.
        """
        project = ticket.project if project is None else project
        validate_ticket(ticket, project)
        tags = normalize_tags(ticket.tags)
        now = _now_iso()

        with self._transaction("create", error_cls=TicketInsertError) as tx:
            cursor = self.conn.execute(
                "INSERT INTO tickets (project, type, title, description, critical_path, "
                "status, priority, created_by, assigned_to, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    project,
                    ticket.type,
                    ticket.title,
                    ticket.description,
                    int(ticket.critical_path),
                    ticket.status,
                    ticket.priority,
                    ticket.created_by,
                    ticket.assigned_to,
                    now,
                    now,
                ),
            )
            new_id = cursor.lastrowid
            if new_id is None:  # pragma: no cover
                msg = "INSERT did not produce a lastrowid"
                raise RuntimeError(msg)
            tx.ticket_id = new_id
            logger.debug("Inserted ticket row %d", new_id)

            self._insert_tags(new_id, tags)
            self._insert_files(new_id, list(ticket.files))
            self._append_comments(new_id, list(ticket.comments))

            created = self._fetch_ticket(project, new_id)
            if created is None:  # pragma: no cover
                raise TicketNotFoundError(project, ticket_id=new_id, operation="create")

        logger.info(
            "Ticket created: %s",
            created.title,
            extra={"op": "create", "ticket_id": created.id, "project": project},
        )
        return created

    def view_ticket(self, project: str, *, ticket_id: int | None = None, title: str | None = None) -> Ticket:
        """Return one ticket with its tags, files, and comments.

        Resolution and fetch run in the same transaction.
        """
        validate_project(project)
        _require_identifier(ticket_id, title)

        with self._transaction("view", error_cls=TransactionError) as tx:
            resolved = self._resolve_ticket_id(project, ticket_id, title, "view")
            tx.ticket_id = resolved
            ticket = self._fetch_ticket(project, resolved)
            if ticket is None:
                logger.error("Ticket not found", extra={"op": "view", "ticket_id": resolved, "project": project})
                raise TicketNotFoundError(project, ticket_id=resolved, operation="view")

        logger.debug("Viewed ticket %d", resolved)
        return ticket

    def update_ticket(
        self,
        ticket: Ticket,
        project: str,
        *,
        ticket_id: int | None = None,
        title: str | None = None,
    ) -> Ticket:
        """Overwrite a ticket's scalar fields, replace its tags and files, append its comments.

        ``ticket.comments`` holds only the *new* comments; existing ones are
        kept. ``created_by`` and ``created_at`` are never changed. The
        UPDATE's affected-row count is the authoritative existence check.
        """
        validate_ticket(ticket, project)
        _require_identifier(ticket_id, title)
        tags = normalize_tags(ticket.tags)

        with self._transaction("update") as tx:
            resolved = self._resolve_ticket_id(project, ticket_id, title, "update")
            tx.ticket_id = resolved
            cursor = self.conn.execute(
                "UPDATE tickets SET type = ?, title = ?, description = ?, critical_path = ?, "
                "status = ?, priority = ?, assigned_to = ?, updated_at = ? "
                "WHERE id = ? AND project = ?",
                (
                    ticket.type,
                    ticket.title,
                    ticket.description,
                    int(ticket.critical_path),
                    ticket.status,
                    ticket.priority,
                    ticket.assigned_to,
                    _now_iso(),
                    resolved,
                    project,
                ),
            )
            if cursor.rowcount == 0:
                logger.error(
                    "No rows affected by update",
                    extra={"op": "update", "ticket_id": resolved, "project": project},
                )
                raise TicketNotFoundError(project, ticket_id=resolved, operation="update")

            self._replace_tags(resolved, tags)
            self._replace_files(resolved, list(ticket.files))
            self._append_comments(resolved, list(ticket.comments))

            updated = self._fetch_ticket(project, resolved)
            if updated is None:  # pragma: no cover
                raise TicketNotFoundError(project, ticket_id=resolved, operation="update")

        logger.info("Ticket updated", extra={"op": "update", "ticket_id": resolved, "project": project})
        return updated

    def delete_ticket(self, project: str, *, ticket_id: int | None = None, title: str | None = None) -> int:
        """Delete a ticket and all of its child rows. Returns the deleted id."""
        validate_project(project)
        _require_identifier(ticket_id, title)

        with self._transaction("delete") as tx:
            resolved = self._resolve_ticket_id(project, ticket_id, title, "delete")
            tx.ticket_id = resolved
            self._delete_children(resolved)
            cursor = self.conn.execute("DELETE FROM tickets WHERE id = ? AND project = ?", (resolved, project))
            if cursor.rowcount == 0:
                logger.error(
                    "No rows affected by delete",
                    extra={"op": "delete", "ticket_id": resolved, "project": project},
                )
                raise TicketNotFoundError(project, ticket_id=resolved, operation="delete")

        logger.info("Ticket deleted", extra={"op": "delete", "ticket_id": resolved, "project": project})
        return resolved

    def list_tickets(self, filters: TicketFilters | None = None) -> list[Ticket]:
        """Return tickets matching every given filter, newest first.

        ``filters.tags`` matches tickets carrying at least one of the tags.
        A tag list that is blank after normalization raises ValidationError.
        """
        filters = filters or TicketFilters()
        validate_filters(filters)
        if filters.tags:
            tags = normalize_tags(filters.tags)
            if not tags:
                msg = "Tag filter contains only blank tags"
                raise ValidationError(msg)
            filters = replace(filters, tags=tags)
        query = build_list_query(filters)
        logger.debug("Listing tickets: %s", filters)

        with self._transaction("list", error_cls=TransactionError):
            rows = self.conn.execute(query.sql, query.params).fetchall()
            tickets = [self._hydrate(self._row_to_ticket(row)) for row in rows]

        logger.info("Listed %d tickets", len(tickets), extra={"op": "list", "project": filters.project})
        return tickets
