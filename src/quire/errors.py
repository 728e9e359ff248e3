"""Exception hierarchy for the quire ticket store.

Validation failures subclass ``ValueError`` and lookups that resolve to no
row subclass ``KeyError`` so callers written against plain builtins keep
working.
"""

from __future__ import annotations


class QuireError(Exception):
    """Base class for every error raised by quire."""


class ValidationError(QuireError, ValueError):
    """Raised when caller input is rejected before touching the store."""


class TicketNotFoundError(QuireError, KeyError):
    """Raised when an id or (title, project) pair resolves to no ticket."""

    def __init__(
        self,
        project: str,
        *,
        ticket_id: int | None = None,
        title: str | None = None,
        operation: str = "",
    ) -> None:
        self.project = project
        self.ticket_id = ticket_id
        self.title = title
        self.operation = operation
        if ticket_id is not None:
            target = f"id {ticket_id}"
        else:
            target = f"title '{title}'"
        prefix = f"{operation}: " if operation else ""
        self.message = f"{prefix}no ticket found with {target} in project '{project}'"
        super().__init__(self.message)

    def __str__(self) -> str:
        # KeyError.__str__ would wrap the message in quotes.
        return self.message


class BackendConnectionError(QuireError):
    """Raised when a backend cannot be opened, pinged, or initialized."""


class UnsupportedBackendError(BackendConnectionError):
    """Raised for a backend kind with no registered connection factory."""

    def __init__(self, kind: str, available: list[str]) -> None:
        self.kind = kind
        self.available = available
        super().__init__(f"Unsupported backend: '{kind}'. Available: {', '.join(available)}")


class BackendConfigError(BackendConnectionError):
    """Raised when backend-specific configuration (endpoint, token) is missing."""


class SchemaInitError(BackendConnectionError):
    """Raised when a schema statement fails during bootstrap."""

    def __init__(self, statement: str, cause: Exception) -> None:
        self.statement = statement
        self.cause = cause
        super().__init__(f"Failed to initialize schema ({statement}): {cause}")


class TransactionError(QuireError):
    """Raised when a statement fails inside a transaction; the transaction was rolled back."""

    def __init__(self, operation: str, cause: Exception, *, ticket_id: int | None = None) -> None:
        self.operation = operation
        self.cause = cause
        self.ticket_id = ticket_id
        target = f" (ticket {ticket_id})" if ticket_id is not None else ""
        super().__init__(f"{operation} failed{target}: {cause}")


class TicketWriteError(TransactionError):
    """Raised when a mutating operation fails and is rolled back."""


class TicketInsertError(TicketWriteError):
    """Raised when creating a ticket fails."""
