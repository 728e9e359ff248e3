"""Database schema definitions and bootstrap for the quire ticket store.

Statements are kept as an ordered list of (name, sql) pairs: parent table
first, then the child tables that reference it, then indexes. Each runs on
its own so the same list works on drivers without ``executescript``.
"""

from __future__ import annotations

import logging
from typing import Any

from quire.errors import SchemaInitError

logger = logging.getLogger(__name__)

TICKETS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS tickets (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    project       TEXT NOT NULL,
    type          TEXT NOT NULL,
    title         TEXT NOT NULL,
    description   TEXT,
    critical_path BOOLEAN DEFAULT 0,
    status        TEXT NOT NULL,
    priority      TEXT NOT NULL,
    created_by    TEXT,
    assigned_to   TEXT,
    created_at    TEXT NOT NULL,
    updated_at    TEXT NOT NULL
)"""

TICKET_TAGS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS ticket_tags (
    ticket_id INTEGER NOT NULL REFERENCES tickets(id) ON DELETE CASCADE,
    tag       TEXT NOT NULL,
    PRIMARY KEY (ticket_id, tag)
)"""

TICKET_FILES_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS ticket_files (
    id        INTEGER PRIMARY KEY AUTOINCREMENT,
    ticket_id INTEGER NOT NULL REFERENCES tickets(id) ON DELETE CASCADE,
    file_path TEXT NOT NULL
)"""

TICKET_COMMENTS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS ticket_comments (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    ticket_id    INTEGER NOT NULL REFERENCES tickets(id) ON DELETE CASCADE,
    comment_text TEXT NOT NULL,
    created_at   TEXT NOT NULL
)"""

SCHEMA_STATEMENTS: list[tuple[str, str]] = [
    ("tickets table", TICKETS_TABLE_SQL),
    ("ticket_tags table", TICKET_TAGS_TABLE_SQL),
    ("ticket_files table", TICKET_FILES_TABLE_SQL),
    ("ticket_comments table", TICKET_COMMENTS_TABLE_SQL),
    ("idx_tickets_project", "CREATE INDEX IF NOT EXISTS idx_tickets_project ON tickets(project)"),
    ("idx_tickets_status", "CREATE INDEX IF NOT EXISTS idx_tickets_status ON tickets(status)"),
    ("idx_tickets_priority", "CREATE INDEX IF NOT EXISTS idx_tickets_priority ON tickets(priority)"),
    ("idx_tickets_type", "CREATE INDEX IF NOT EXISTS idx_tickets_type ON tickets(type)"),
    ("idx_tickets_title_project", "CREATE INDEX IF NOT EXISTS idx_tickets_title_project ON tickets(project, title)"),
    ("idx_ticket_files_ticket", "CREATE INDEX IF NOT EXISTS idx_ticket_files_ticket ON ticket_files(ticket_id)"),
    (
        "idx_ticket_comments_ticket",
        "CREATE INDEX IF NOT EXISTS idx_ticket_comments_ticket ON ticket_comments(ticket_id, created_at)",
    ),
]

TABLE_NAMES: tuple[str, ...] = ("tickets", "ticket_tags", "ticket_files", "ticket_comments")


def initialize_schema(conn: Any) -> None:
    """Create the tables and indexes if they do not already exist.

    Safe to call on every start. The first failing statement aborts the
    bootstrap with :class:`SchemaInitError`; nothing is retried.
    """
    logger.debug("Initializing database schema")
    for name, sql in SCHEMA_STATEMENTS:
        logger.debug("Creating schema object: %s", name)
        try:
            conn.execute(sql)
        except Exception as exc:
            logger.error("Failed to execute schema statement %s: %s", name, exc)
            raise SchemaInitError(name, exc) from exc
    logger.debug("Database schema initialized")
