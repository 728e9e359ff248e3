"""RelatedMixin: tags, files, and comments stored in the child tables.

Loaders hydrate a ticket's collections; writers run inside the caller's
transaction and never commit on their own. All methods access
``self.conn`` via Python's MRO when composed into ``TicketDB``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from quire.db_base import DBMixinProtocol, _now_iso

if TYPE_CHECKING:
    from quire.models import Ticket

logger = logging.getLogger(__name__)

CHILD_TABLES: tuple[str, ...] = ("ticket_tags", "ticket_files", "ticket_comments")


class RelatedMixin(DBMixinProtocol):
    """Child-table loaders and writers.

    Inherits ``DBMixinProtocol`` for type-safe access to shared attributes.
    """

    # -- Loaders -------------------------------------------------------------

    def _load_tags(self, ticket_id: int) -> list[str]:
        rows = self.conn.execute(
            "SELECT tag FROM ticket_tags WHERE ticket_id = ? ORDER BY tag",
            (ticket_id,),
        ).fetchall()
        logger.debug("Loaded %d tags for ticket %d", len(rows), ticket_id)
        return [r[0] for r in rows]

    def _load_files(self, ticket_id: int) -> list[str]:
        rows = self.conn.execute(
            "SELECT file_path FROM ticket_files WHERE ticket_id = ? ORDER BY id",
            (ticket_id,),
        ).fetchall()
        logger.debug("Loaded %d files for ticket %d", len(rows), ticket_id)
        return [r[0] for r in rows]

    def _load_comments(self, ticket_id: int) -> list[str]:
        rows = self.conn.execute(
            "SELECT comment_text FROM ticket_comments WHERE ticket_id = ? ORDER BY created_at, id",
            (ticket_id,),
        ).fetchall()
        logger.debug("Loaded %d comments for ticket %d", len(rows), ticket_id)
        return [r[0] for r in rows]

    def _hydrate(self, ticket: Ticket) -> Ticket:
        """Fill *ticket*'s tags, files, and comments from the child tables."""
        if ticket.id is None:
            msg = "Cannot hydrate a ticket without an id"
            raise ValueError(msg)
        ticket.tags = self._load_tags(ticket.id)
        ticket.files = self._load_files(ticket.id)
        ticket.comments = self._load_comments(ticket.id)
        return ticket

    # -- Writers -------------------------------------------------------------

    def _insert_tags(self, ticket_id: int, tags: list[str]) -> None:
        if tags:
            logger.debug("Inserting %d tags for ticket %d", len(tags), ticket_id)
        for tag in tags:
            self.conn.execute("INSERT INTO ticket_tags (ticket_id, tag) VALUES (?, ?)", (ticket_id, tag))

    def _insert_files(self, ticket_id: int, files: list[str]) -> None:
        if files:
            logger.debug("Inserting %d files for ticket %d", len(files), ticket_id)
        for path in files:
            self.conn.execute("INSERT INTO ticket_files (ticket_id, file_path) VALUES (?, ?)", (ticket_id, path))

    def _append_comments(self, ticket_id: int, comments: list[str]) -> None:
        """Insert *comments*, each stamped with its own creation time."""
        if comments:
            logger.debug("Appending %d comments to ticket %d", len(comments), ticket_id)
        for text in comments:
            self.conn.execute(
                "INSERT INTO ticket_comments (ticket_id, comment_text, created_at) VALUES (?, ?, ?)",
                (ticket_id, text, _now_iso()),
            )

    def _replace_tags(self, ticket_id: int, tags: list[str]) -> None:
        self.conn.execute("DELETE FROM ticket_tags WHERE ticket_id = ?", (ticket_id,))
        self._insert_tags(ticket_id, tags)

    def _replace_files(self, ticket_id: int, files: list[str]) -> None:
        self.conn.execute("DELETE FROM ticket_files WHERE ticket_id = ?", (ticket_id,))
        self._insert_files(ticket_id, files)

    def _delete_children(self, ticket_id: int) -> None:
        """Remove every child row of *ticket_id* (tags, files, then comments)."""
        for table in CHILD_TABLES:
            # table is a hardcoded literal from CHILD_TABLES, never user input
            self.conn.execute(f"DELETE FROM {table} WHERE ticket_id = ?", (ticket_id,))
        logger.debug("Deleted child rows for ticket %d", ticket_id)
