"""Shared utilities and Protocol for DB mixins."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from quire.backends import BackendHandle, DBConnection
    from quire.models import Ticket


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class DBMixinProtocol(Protocol):
    """Shared attributes that DB mixins access via self.

    Mixins inherit this Protocol so mypy can type-check ``self.conn`` without
    ``type: ignore`` on every call. Implementations come from ``TicketDB``.
    """

    handle: BackendHandle

    @property
    def conn(self) -> DBConnection: ...

    def _row_to_ticket(self, row: tuple[Any, ...]) -> Ticket: ...
