"""Shared pytest fixtures for quire tests."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
from click.testing import CliRunner

from quire.config import QUIRE_HOME_ENV, TURSO_TOKEN_ENV, TURSO_URL_ENV
from quire.core import TicketDB
from quire.models import Ticket
from tests._db_factory import make_db


@pytest.fixture
def db(tmp_path: Path) -> Generator[TicketDB, None, None]:
    """Fresh SQLite-backed TicketDB for each test."""
    d = make_db(tmp_path)
    yield d
    d.close()


@pytest.fixture
def populated_db(db: TicketDB) -> TicketDB:
    """TicketDB pre-populated with a representative ticket set.

    Creates (in this order, so C is newest):
    - A: project "web", bug, high, critical, tags ["auth", "ui"], one file, one comment, assigned to alice
    - B: project "web", feature, medium, in-progress, tags ["api"]
    - C: project "api", task, closed, tags ["ui"]
    """
    a = db.create_ticket(
        Ticket(
            title="Login button broken",
            type="bug",
            priority="high",
            critical_path=True,
            assigned_to="alice",
            created_by="bob",
            description="Clicking login does nothing",
            tags=["ui", "auth"],
            files=["src/login.py"],
            comments=["Seen on Safari"],
        ),
        "web",
    )
    b = db.create_ticket(
        Ticket(title="Add search endpoint", type="feature", priority="medium", status="in-progress", tags=["api"]),
        "web",
    )
    c = db.create_ticket(Ticket(title="Rotate keys", status="closed", tags=["ui"]), "api")
    # Store IDs for easy access in tests
    db._test_ids: dict[str, int] = {"a": a.id, "b": b.id, "c": c.id}  # type: ignore[attr-defined]
    return db


@pytest.fixture
def quire_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point QUIRE_HOME at a temp dir and clear remote credentials."""
    home = tmp_path / "quire-home"
    monkeypatch.setenv(QUIRE_HOME_ENV, str(home))
    monkeypatch.delenv(TURSO_URL_ENV, raising=False)
    monkeypatch.delenv(TURSO_TOKEN_ENV, raising=False)
    # Keep a stray .env in the repo from leaking into tests.
    monkeypatch.chdir(tmp_path)
    return home


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click CLI test runner."""
    return CliRunner()
