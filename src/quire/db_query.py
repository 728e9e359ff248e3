"""Filter query builder for ticket listing.

Turns a sparse :class:`~quire.models.TicketFilters` into one parameterized
SELECT. Predicates are ANDed; every filter value travels as a bound
parameter. Values are assumed valid: callers run ``validate_filters`` first.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from quire.models import TicketFilters

TICKET_COLUMNS: tuple[str, ...] = (
    "id",
    "project",
    "type",
    "title",
    "description",
    "critical_path",
    "status",
    "priority",
    "created_by",
    "assigned_to",
    "created_at",
    "updated_at",
)


def select_columns(alias: str = "") -> str:
    prefix = f"{alias}." if alias else ""
    return ", ".join(f"{prefix}{col}" for col in TICKET_COLUMNS)


@dataclass(frozen=True)
class ListQuery:
    sql: str
    params: list[Any]


@dataclass
class ListQueryBuilder:
    """Accumulates (predicate, params) pairs and renders the final SELECT."""

    conditions: list[str] = field(default_factory=list)
    params: list[Any] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)

    def where(self, predicate: str, *params: Any) -> ListQueryBuilder:
        self.conditions.append(predicate)
        self.params.extend(params)
        return self

    def where_equals(self, column: str, value: Any) -> ListQueryBuilder:
        """Add ``t.<column> = ?`` when *value* is not None.

        *column* is always a hardcoded literal at the call site.
        """
        if value is not None:
            self.where(f"t.{column} = ?", value)
        return self

    def with_any_tag(self, tags: list[str] | None) -> ListQueryBuilder:
        if tags:
            self.tags = list(tags)
        return self

    def build(self) -> ListQuery:
        # The tag join yields one row per matching tag; DISTINCT folds them back.
        sql = f"SELECT DISTINCT {select_columns('t')} FROM tickets t"
        conditions = list(self.conditions)
        params = list(self.params)
        if self.tags:
            sql += " JOIN ticket_tags tt ON tt.ticket_id = t.id"
            placeholders = ",".join("?" * len(self.tags))
            conditions.append(f"tt.tag IN ({placeholders})")
            params.extend(self.tags)
        if conditions:
            sql += f" WHERE {' AND '.join(conditions)}"
        sql += " ORDER BY t.created_at DESC, t.id DESC"
        return ListQuery(sql=sql, params=params)


def build_list_query(filters: TicketFilters) -> ListQuery:
    """Build the list query for *filters*. An empty filter lists everything."""
    return (
        ListQueryBuilder()
        .where_equals("status", filters.status)
        .where_equals("type", filters.type)
        .where_equals("priority", filters.priority)
        .where_equals("assigned_to", filters.assigned_to)
        .where_equals("project", filters.project)
        .with_any_tag(filters.tags)
        .build()
    )
