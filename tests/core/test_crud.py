"""Tests for core CRUD operations: create, view, update, delete, and transactional rollback."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import sqlite3
from typing import Any

import pytest

from quire.backends import BackendHandle
from quire.core import TicketDB
from quire.errors import (
    TicketInsertError,
    TicketNotFoundError,
    TicketWriteError,
    TransactionError,
    ValidationError,
)
from quire.models import Ticket, TicketFilters
from tests._db_factory import make_db

_BOOM_TRIGGER = """
    CREATE TRIGGER fail_on_boom BEFORE INSERT ON ticket_files
    WHEN NEW.file_path = 'boom'
    BEGIN
        SELECT RAISE(ABORT, 'boom');
    END
"""


def _count(db: TicketDB, table: str) -> int:
    return db.conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]


class _BeginFailsConn:
    """Connection wrapper whose BEGIN fails, as a dropped remote stream does."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def execute(self, sql: str, params: Any = ()) -> Any:
        if sql == "BEGIN":
            msg = "network stream closed"
            raise sqlite3.OperationalError(msg)
        return self._conn.execute(sql, params)

    def close(self) -> None:
        self._conn.close()


class TestCreate:
    def test_create_assigns_id_and_timestamps(self, db: TicketDB) -> None:
        ticket = db.create_ticket(Ticket(title="Fix the widget"), "web")
        assert isinstance(ticket.id, int)
        assert ticket.project == "web"
        assert ticket.status == "open"
        assert ticket.type == "task"
        assert ticket.priority == "undefined"
        assert ticket.created_at is not None
        assert ticket.created_at == ticket.updated_at

    def test_ids_increase(self, db: TicketDB) -> None:
        first = db.create_ticket(Ticket(title="One"), "web")
        second = db.create_ticket(Ticket(title="Two"), "web")
        assert second.id > first.id

    def test_project_defaults_to_ticket_field(self, db: TicketDB) -> None:
        ticket = db.create_ticket(Ticket(title="Scoped", project="ops"))
        assert ticket.project == "ops"

    def test_children_round_trip(self, db: TicketDB) -> None:
        created = db.create_ticket(
            Ticket(
                title="Full",
                description="All the fields",
                type="bug",
                priority="high",
                critical_path=True,
                created_by="bob",
                assigned_to="alice",
                tags=["ui", "auth"],
                files=["b.py", "a.py"],
                comments=["first", "second"],
            ),
            "web",
        )
        fetched = db.view_ticket("web", ticket_id=created.id)
        assert fetched == created
        assert fetched.tags == ["auth", "ui"]
        assert fetched.files == ["b.py", "a.py"]
        assert fetched.comments == ["first", "second"]
        assert fetched.critical_path is True
        assert fetched.created_by == "bob"

    def test_tags_are_normalized(self, db: TicketDB) -> None:
        ticket = db.create_ticket(Ticket(title="Tags", tags=[" ui ", "ui", "", "api"]), "web")
        assert ticket.tags == ["api", "ui"]

    def test_empty_optional_fields_stay_null(self, db: TicketDB) -> None:
        ticket = db.create_ticket(Ticket(title="Bare"), "web")
        assert ticket.description is None
        assert ticket.assigned_to is None
        assert ticket.created_by is None
        assert ticket.tags == []
        assert ticket.files == []
        assert ticket.comments == []

    @pytest.mark.parametrize(
        ("ticket", "project", "match"),
        [
            (Ticket(title=""), "web", "Title cannot be empty"),
            (Ticket(title="   "), "web", "Title cannot be empty"),
            (Ticket(title="x"), "", "Project cannot be empty"),
            (Ticket(title="x", type="epic"), "web", "Invalid type"),
            (Ticket(title="x", status="done"), "web", "Invalid status"),
            (Ticket(title="x", priority="urgent"), "web", "Invalid priority"),
            (Ticket(title="x", comments=[" "]), "web", "Comment text cannot be empty"),
        ],
    )
    def test_invalid_input_rejected_before_write(self, db: TicketDB, ticket: Ticket, project: str, match: str) -> None:
        with pytest.raises(ValidationError, match=match):
            db.create_ticket(ticket, project)
        assert _count(db, "tickets") == 0

    def test_validation_error_is_value_error(self, db: TicketDB) -> None:
        with pytest.raises(ValueError):
            db.create_ticket(Ticket(title=""), "web")


class TestView:
    def test_view_by_id(self, populated_db: TicketDB) -> None:
        a_id = populated_db._test_ids["a"]  # type: ignore[attr-defined]
        ticket = populated_db.view_ticket("web", ticket_id=a_id)
        assert ticket.title == "Login button broken"
        assert ticket.comments == ["Seen on Safari"]

    def test_view_by_title(self, populated_db: TicketDB) -> None:
        ticket = populated_db.view_ticket("web", title="Add search endpoint")
        assert ticket.id == populated_db._test_ids["b"]  # type: ignore[attr-defined]

    def test_id_wins_over_title(self, populated_db: TicketDB) -> None:
        a_id = populated_db._test_ids["a"]  # type: ignore[attr-defined]
        ticket = populated_db.view_ticket("web", ticket_id=a_id, title="Add search endpoint")
        assert ticket.id == a_id

    def test_id_is_scoped_to_project(self, populated_db: TicketDB) -> None:
        a_id = populated_db._test_ids["a"]  # type: ignore[attr-defined]
        with pytest.raises(TicketNotFoundError):
            populated_db.view_ticket("api", ticket_id=a_id)

    def test_title_is_scoped_to_project(self, populated_db: TicketDB) -> None:
        with pytest.raises(TicketNotFoundError, match="Rotate keys"):
            populated_db.view_ticket("web", title="Rotate keys")

    def test_missing_id_raises_key_error(self, db: TicketDB) -> None:
        with pytest.raises(KeyError):
            db.view_ticket("web", ticket_id=999)

    def test_not_found_message_is_unquoted(self, db: TicketDB) -> None:
        with pytest.raises(TicketNotFoundError) as excinfo:
            db.view_ticket("web", ticket_id=999)
        assert str(excinfo.value) == "view: no ticket found with id 999 in project 'web'"

    def test_duplicate_titles_resolve_to_lowest_id(self, db: TicketDB) -> None:
        first = db.create_ticket(Ticket(title="Same", description="one"), "web")
        db.create_ticket(Ticket(title="Same", description="two"), "web")
        assert db.view_ticket("web", title="Same").id == first.id

    def test_requires_identifier(self, db: TicketDB) -> None:
        with pytest.raises(ValidationError, match="id or title"):
            db.view_ticket("web")

    def test_rejects_non_integer_id(self, db: TicketDB) -> None:
        with pytest.raises(ValidationError, match="integer"):
            db.view_ticket("web", ticket_id="3")  # type: ignore[arg-type]

    @pytest.mark.parametrize("bad_id", [0, -1])
    def test_rejects_non_positive_id(self, populated_db: TicketDB, bad_id: int) -> None:
        with pytest.raises(ValidationError, match="positive"):
            populated_db.view_ticket("web", ticket_id=bad_id, title="Login button broken")

    def test_delete_rejects_zero_id(self, populated_db: TicketDB) -> None:
        with pytest.raises(ValidationError, match="positive"):
            populated_db.delete_ticket("web", ticket_id=0)
        assert len(populated_db.list_tickets()) == 3


class TestUpdate:
    def test_update_scalar_fields(self, populated_db: TicketDB) -> None:
        b_id = populated_db._test_ids["b"]  # type: ignore[attr-defined]
        existing = populated_db.view_ticket("web", ticket_id=b_id)
        changed = replace(
            existing,
            title="Add search API",
            status="closed",
            priority="low",
            type="task",
            critical_path=True,
            assigned_to="carol",
            description="Done via FTS",
            comments=[],
        )
        updated = populated_db.update_ticket(changed, "web", ticket_id=b_id)
        assert updated.title == "Add search API"
        assert updated.status == "closed"
        assert updated.priority == "low"
        assert updated.type == "task"
        assert updated.critical_path is True
        assert updated.assigned_to == "carol"
        assert updated.description == "Done via FTS"

    def test_created_fields_never_change(self, populated_db: TicketDB) -> None:
        a_id = populated_db._test_ids["a"]  # type: ignore[attr-defined]
        existing = populated_db.view_ticket("web", ticket_id=a_id)
        changed = replace(existing, created_by="mallory", created_at="1999-01-01T00:00:00+00:00", comments=[])
        updated = populated_db.update_ticket(changed, "web", ticket_id=a_id)
        assert updated.created_by == "bob"
        assert updated.created_at == existing.created_at
        assert updated.updated_at is not None
        assert updated.updated_at >= existing.updated_at  # type: ignore[operator]

    def test_tags_and_files_are_replaced(self, populated_db: TicketDB) -> None:
        a_id = populated_db._test_ids["a"]  # type: ignore[attr-defined]
        existing = populated_db.view_ticket("web", ticket_id=a_id)
        updated = populated_db.update_ticket(
            replace(existing, tags=["backend"], files=[], comments=[]), "web", ticket_id=a_id
        )
        assert updated.tags == ["backend"]
        assert updated.files == []

    def test_comments_are_appended(self, populated_db: TicketDB) -> None:
        a_id = populated_db._test_ids["a"]  # type: ignore[attr-defined]
        existing = populated_db.view_ticket("web", ticket_id=a_id)
        updated = populated_db.update_ticket(replace(existing, comments=["Fixed in 1.2"]), "web", ticket_id=a_id)
        assert updated.comments == ["Seen on Safari", "Fixed in 1.2"]

    def test_no_new_comments_keeps_existing(self, populated_db: TicketDB) -> None:
        a_id = populated_db._test_ids["a"]  # type: ignore[attr-defined]
        existing = populated_db.view_ticket("web", ticket_id=a_id)
        updated = populated_db.update_ticket(replace(existing, status="closed", comments=[]), "web", ticket_id=a_id)
        assert updated.comments == ["Seen on Safari"]

    def test_update_by_title_touches_first_match_only(self, db: TicketDB) -> None:
        first = db.create_ticket(Ticket(title="Dup"), "web")
        second = db.create_ticket(Ticket(title="Dup"), "web")
        db.update_ticket(Ticket(title="Dup", status="closed"), "web", title="Dup")
        assert db.view_ticket("web", ticket_id=first.id).status == "closed"
        assert db.view_ticket("web", ticket_id=second.id).status == "open"

    def test_update_missing_id_raises(self, db: TicketDB) -> None:
        with pytest.raises(TicketNotFoundError):
            db.update_ticket(Ticket(title="Ghost"), "web", ticket_id=42)

    def test_update_in_wrong_project_changes_nothing(self, populated_db: TicketDB) -> None:
        a_id = populated_db._test_ids["a"]  # type: ignore[attr-defined]
        with pytest.raises(TicketNotFoundError):
            populated_db.update_ticket(Ticket(title="Hijack", tags=["x"]), "api", ticket_id=a_id)
        ticket = populated_db.view_ticket("web", ticket_id=a_id)
        assert ticket.title == "Login button broken"
        assert ticket.tags == ["auth", "ui"]

    def test_update_validates_before_write(self, populated_db: TicketDB) -> None:
        a_id = populated_db._test_ids["a"]  # type: ignore[attr-defined]
        with pytest.raises(ValidationError):
            populated_db.update_ticket(Ticket(title="x", status="wontfix"), "web", ticket_id=a_id)


class TestDelete:
    def test_delete_removes_ticket_and_children(self, populated_db: TicketDB) -> None:
        a_id = populated_db._test_ids["a"]  # type: ignore[attr-defined]
        assert populated_db.delete_ticket("web", ticket_id=a_id) == a_id
        with pytest.raises(TicketNotFoundError):
            populated_db.view_ticket("web", ticket_id=a_id)
        for table in ("ticket_tags", "ticket_files", "ticket_comments"):
            rows = populated_db.conn.execute(f"SELECT COUNT(*) FROM {table} WHERE ticket_id = ?", (a_id,)).fetchone()
            assert rows[0] == 0

    def test_delete_by_title(self, populated_db: TicketDB) -> None:
        deleted = populated_db.delete_ticket("api", title="Rotate keys")
        assert deleted == populated_db._test_ids["c"]  # type: ignore[attr-defined]
        assert [t.title for t in populated_db.list_tickets()] == ["Add search endpoint", "Login button broken"]

    def test_delete_missing_raises(self, db: TicketDB) -> None:
        with pytest.raises(TicketNotFoundError):
            db.delete_ticket("web", ticket_id=7)

    def test_delete_in_wrong_project_keeps_children(self, populated_db: TicketDB) -> None:
        a_id = populated_db._test_ids["a"]  # type: ignore[attr-defined]
        with pytest.raises(TicketNotFoundError):
            populated_db.delete_ticket("api", ticket_id=a_id)
        ticket = populated_db.view_ticket("web", ticket_id=a_id)
        assert ticket.tags == ["auth", "ui"]
        assert ticket.files == ["src/login.py"]

    def test_delete_requires_identifier(self, db: TicketDB) -> None:
        with pytest.raises(ValidationError):
            db.delete_ticket("web")


class TestRollback:
    def test_failed_create_leaves_no_rows(self, db: TicketDB) -> None:
        db.conn.execute(_BOOM_TRIGGER)
        with pytest.raises(TicketInsertError) as excinfo:
            db.create_ticket(Ticket(title="Doomed", tags=["a", "b"], files=["ok.py", "boom"]), "web")
        assert excinfo.value.operation == "create"
        assert excinfo.value.ticket_id is not None
        for table in ("tickets", "ticket_tags", "ticket_files", "ticket_comments"):
            assert _count(db, table) == 0

    def test_failed_update_restores_previous_state(self, populated_db: TicketDB) -> None:
        a_id = populated_db._test_ids["a"]  # type: ignore[attr-defined]
        before = populated_db.view_ticket("web", ticket_id=a_id)
        populated_db.conn.execute(_BOOM_TRIGGER)
        with pytest.raises(TicketWriteError):
            populated_db.update_ticket(
                replace(before, title="Renamed", tags=["new"], files=["boom"], comments=["lost"]),
                "web",
                ticket_id=a_id,
            )
        assert populated_db.view_ticket("web", ticket_id=a_id) == before

    def test_engine_usable_after_rollback(self, db: TicketDB) -> None:
        db.conn.execute(_BOOM_TRIGGER)
        with pytest.raises(TicketInsertError):
            db.create_ticket(Ticket(title="Doomed", files=["boom"]), "web")
        ticket = db.create_ticket(Ticket(title="Fine", files=["ok.py"]), "web")
        assert db.view_ticket("web", ticket_id=ticket.id).files == ["ok.py"]

    def test_failed_begin_is_wrapped(self, db: TicketDB) -> None:
        flaky = TicketDB(BackendHandle("sqlite", _BeginFailsConn(db.conn)))
        with pytest.raises(TransactionError) as excinfo:
            flaky.list_tickets()
        assert excinfo.value.operation == "list"
        assert isinstance(excinfo.value.cause, sqlite3.OperationalError)
        with pytest.raises(TicketInsertError, match="network stream closed"):
            flaky.create_ticket(Ticket(title="Never written"), "web")
        assert _count(db, "tickets") == 0


class TestLifecycle:
    def test_context_manager_closes(self, tmp_path: Path) -> None:
        with make_db(tmp_path) as d:
            d.create_ticket(Ticket(title="x"), "web")
        assert d.handle.closed

    def test_reopen_sees_committed_data(self, tmp_path: Path) -> None:
        with make_db(tmp_path) as d:
            created = d.create_ticket(Ticket(title="Persisted", tags=["keep"]), "web")
        with make_db(tmp_path) as d:
            assert d.view_ticket("web", ticket_id=created.id).tags == ["keep"]


class TestScenario:
    def test_create_list_update_delete(self, db: TicketDB) -> None:
        created = db.create_ticket(Ticket(title="A", type="task", priority="medium"), "P")
        assert created.status == "open"

        listed = db.list_tickets(TicketFilters(project="P"))
        assert [t.id for t in listed] == [created.id]

        db.update_ticket(replace(created, status="in-progress", comments=[]), "P", ticket_id=created.id)
        viewed = db.view_ticket("P", ticket_id=created.id)
        assert viewed.status == "in-progress"
        assert viewed.title == "A"

        db.delete_ticket("P", title="A")
        with pytest.raises(TicketNotFoundError):
            db.view_ticket("P", title="A")
