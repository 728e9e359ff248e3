"""Quire: transactional ticket store over local SQLite or remote libSQL."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("quire")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from quire.core import TicketDB
from quire.errors import QuireError, TicketNotFoundError, ValidationError
from quire.models import Ticket, TicketFilters

__all__ = [
    "QuireError",
    "Ticket",
    "TicketDB",
    "TicketFilters",
    "TicketNotFoundError",
    "ValidationError",
    "__version__",
]
