"""Backend connector: a registry of connection factories keyed by backend kind.

A factory takes :class:`BackendParams` and returns an open, pinged DB-API
connection in autocommit mode (the engine issues BEGIN/COMMIT itself).
New kinds are added with :func:`register_backend`; existing factories are
never touched.
"""

from __future__ import annotations

import logging
import os
import sqlite3
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from quire.config import (
    BACKEND_SQLITE,
    BACKEND_TURSO,
    TURSO_TOKEN_ENV,
    TURSO_URL_ENV,
    default_db_path,
    normalize_backend_kind,
    quire_home,
)
from quire.errors import BackendConfigError, BackendConnectionError, UnsupportedBackendError

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"
_BUSY_TIMEOUT_MS = 5000


class DBConnection(Protocol):
    """The slice of the DB-API connection interface the engine relies on."""

    def execute(self, sql: str, parameters: Any = ..., /) -> Any: ...

    def close(self) -> None: ...


@dataclass(frozen=True)
class BackendParams:
    db_path: Path | str | None = None
    url: str | None = None
    auth_token: str | None = None


ConnectionFactory = Callable[[BackendParams], DBConnection]

_FACTORIES: dict[str, ConnectionFactory] = {}


def register_backend(kind: str, factory: ConnectionFactory, *, replace: bool = False) -> None:
    """Register *factory* under *kind*, stored by its canonical name.

    Kinds are compared the way :func:`connect` compares them: stripped,
    lower-cased, with aliases resolved.

    Re-registering an existing kind requires ``replace=True``.
    """
    kind = normalize_backend_kind(kind)
    if kind in _FACTORIES and not replace:
        msg = f"Backend '{kind}' is already registered"
        raise ValueError(msg)
    _FACTORIES[kind] = factory
    logger.debug("Registered backend factory: %s", kind)


def unregister_backend(kind: str) -> None:
    _FACTORIES.pop(normalize_backend_kind(kind), None)


def registered_backends() -> list[str]:
    return sorted(_FACTORIES)


class BackendHandle:
    """An open connection plus the kind that produced it.

    Owned by whoever called :func:`connect`; closing is idempotent.
    """

    def __init__(self, kind: str, conn: DBConnection) -> None:
        self.kind = kind
        self._conn: DBConnection | None = conn

    @property
    def closed(self) -> bool:
        return self._conn is None

    @property
    def conn(self) -> DBConnection:
        if self._conn is None:
            msg = f"Connection to {self.kind} backend is closed"
            raise BackendConnectionError(msg)
        return self._conn

    def ping(self) -> None:
        _ping(self.conn, self.kind)

    def close(self) -> None:
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        logger.debug("Closing %s connection", self.kind)
        try:
            conn.close()
        except Exception as exc:
            logger.error("Failed to close %s connection: %s", self.kind, exc)
            msg = f"Failed to close {self.kind} connection: {exc}"
            raise BackendConnectionError(msg) from exc

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<BackendHandle {self.kind} {state}>"


def connect(kind: str, params: BackendParams | None = None) -> BackendHandle:
    """Open a connection for *kind* (aliases accepted) via its registered factory."""
    canonical = normalize_backend_kind(kind)
    factory = _FACTORIES.get(canonical)
    if factory is None:
        logger.error("Unsupported backend requested: %s", kind)
        raise UnsupportedBackendError(kind, registered_backends())
    logger.debug("Creating %s connection", canonical, extra={"backend": canonical})
    conn = factory(params or BackendParams())
    logger.info("Database connection established", extra={"backend": canonical})
    return BackendHandle(canonical, conn)


def params_for(kind: str, home: Path | None = None, env: Mapping[str, str] | None = None) -> BackendParams:
    """Build the parameters the built-in factories expect for *kind*.

    Missing remote credentials are left empty here; the remote factory
    rejects them before connecting.
    """
    canonical = normalize_backend_kind(kind)
    if canonical == BACKEND_TURSO:
        environ = os.environ if env is None else env
        return BackendParams(url=environ.get(TURSO_URL_ENV) or None, auth_token=environ.get(TURSO_TOKEN_ENV) or None)
    return BackendParams(db_path=default_db_path(home or quire_home(env)))


def _ping(conn: DBConnection, kind: str) -> None:
    try:
        conn.execute("SELECT 1").fetchone()
    except Exception as exc:
        msg = f"Failed to ping {kind} database: {exc}"
        raise BackendConnectionError(msg) from exc


# ---------------------------------------------------------------------------
# Built-in factories
# ---------------------------------------------------------------------------


def connect_sqlite(params: BackendParams) -> sqlite3.Connection:
    """Open a local SQLite file, creating its directory if needed.

    Foreign keys are off by default in SQLite and cascade deletes depend
    on them, so the pragma is set on every connection.
    """
    db_path = params.db_path if params.db_path is not None else default_db_path()
    path_str = str(db_path)
    if path_str != MEMORY_PATH:
        db_dir = Path(db_path).parent
        try:
            db_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.error("Failed to create database directory %s: %s", db_dir, exc)
            msg = f"Failed to create database directory {db_dir}: {exc}"
            raise BackendConnectionError(msg) from exc

    logger.debug("Connecting to SQLite at %s", path_str)
    try:
        conn = sqlite3.connect(path_str, isolation_level=None)
    except sqlite3.Error as exc:
        msg = f"Failed to open SQLite database {path_str}: {exc}"
        raise BackendConnectionError(msg) from exc

    try:
        _ping(conn, BACKEND_SQLITE)
        conn.execute("PRAGMA foreign_keys=ON")
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute(f"PRAGMA busy_timeout={_BUSY_TIMEOUT_MS}")
    except BackendConnectionError:
        conn.close()
        raise
    except sqlite3.Error as exc:
        conn.close()
        msg = f"Failed to configure SQLite connection: {exc}"
        raise BackendConnectionError(msg) from exc
    return conn


def connect_turso(params: BackendParams) -> DBConnection:
    """Open a remote libSQL (Turso) database over its HTTP protocol."""
    if not params.url:
        msg = f"{TURSO_URL_ENV} environment variable is not set"
        raise BackendConfigError(msg)
    if not params.auth_token:
        msg = f"{TURSO_TOKEN_ENV} environment variable is not set"
        raise BackendConfigError(msg)

    import libsql

    logger.debug("Connecting to Turso at %s", params.url)
    try:
        conn: DBConnection = libsql.connect(params.url, auth_token=params.auth_token, isolation_level=None)
    except Exception as exc:
        msg = f"Failed to open Turso database: {exc}"
        raise BackendConnectionError(msg) from exc

    try:
        _ping(conn, BACKEND_TURSO)
    except BackendConnectionError:
        conn.close()
        raise
    return conn


register_backend(BACKEND_SQLITE, connect_sqlite)
register_backend(BACKEND_TURSO, connect_turso)
