"""Ticket data model and the pure validation helpers shared by all entry points.

No click or database dependencies live here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, TypedDict

from quire.errors import ValidationError

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

TicketType = Literal["bug", "feature", "task"]
TicketStatus = Literal["open", "in-progress", "closed"]
TicketPriority = Literal["undefined", "low", "medium", "high"]

VALID_TYPES: tuple[str, ...] = ("bug", "feature", "task")
VALID_STATUSES: tuple[str, ...] = ("open", "in-progress", "closed")
VALID_PRIORITIES: tuple[str, ...] = ("undefined", "low", "medium", "high")

DEFAULT_TYPE: TicketType = "task"
DEFAULT_STATUS: TicketStatus = "open"
DEFAULT_PRIORITY: TicketPriority = "undefined"


class TicketDict(TypedDict, total=False):
    """Serialized shape of a ticket. Nullable fields are omitted when absent."""

    id: int
    project: str
    type: str
    title: str
    description: str
    criticalPath: bool
    status: str
    priority: str
    createdBy: str
    assignedTo: str
    tags: list[str]
    files: list[str]
    comments: list[str]
    createdAt: str
    updatedAt: str


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class Ticket:
    title: str
    project: str = ""
    type: str = DEFAULT_TYPE
    description: str | None = None
    critical_path: bool = False
    status: str = DEFAULT_STATUS
    priority: str = DEFAULT_PRIORITY
    created_by: str | None = None
    assigned_to: str | None = None
    tags: list[str] = field(default_factory=list)
    files: list[str] = field(default_factory=list)
    comments: list[str] = field(default_factory=list)
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None

    def to_dict(self) -> TicketDict:
        result: TicketDict = {}
        if self.id is not None:
            result["id"] = self.id
        result["project"] = self.project
        result["type"] = self.type
        result["title"] = self.title
        if self.description is not None:
            result["description"] = self.description
        result["criticalPath"] = self.critical_path
        result["status"] = self.status
        result["priority"] = self.priority
        if self.created_by is not None:
            result["createdBy"] = self.created_by
        if self.assigned_to is not None:
            result["assignedTo"] = self.assigned_to
        result["tags"] = list(self.tags)
        result["files"] = list(self.files)
        result["comments"] = list(self.comments)
        if self.created_at is not None:
            result["createdAt"] = self.created_at
        if self.updated_at is not None:
            result["updatedAt"] = self.updated_at
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Ticket:
        """Build a Ticket from its serialized record. Unknown keys are ignored."""
        if "title" not in data:
            msg = "Ticket record is missing 'title'"
            raise ValidationError(msg)
        return cls(
            id=data.get("id"),
            project=data.get("project", ""),
            type=data.get("type", DEFAULT_TYPE),
            title=data["title"],
            description=data.get("description"),
            critical_path=bool(data.get("criticalPath", False)),
            status=data.get("status", DEFAULT_STATUS),
            priority=data.get("priority", DEFAULT_PRIORITY),
            created_by=data.get("createdBy"),
            assigned_to=data.get("assignedTo"),
            tags=list(data.get("tags") or []),
            files=list(data.get("files") or []),
            comments=list(data.get("comments") or []),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )


@dataclass
class TicketFilters:
    """Sparse filter for list queries. ``None`` means "no constraint"."""

    status: str | None = None
    type: str | None = None
    priority: str | None = None
    assigned_to: str | None = None
    project: str | None = None
    tags: list[str] | None = None

    def is_empty(self) -> bool:
        return (
            self.status is None
            and self.type is None
            and self.priority is None
            and self.assigned_to is None
            and self.project is None
            and not self.tags
        )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _validate_choice(value: object, valid: tuple[str, ...], name: str) -> str:
    if not isinstance(value, str) or value not in valid:
        msg = f"Invalid {name}: {value!r} (must be one of: {', '.join(valid)})"
        raise ValidationError(msg)
    return value


def validate_type(value: object) -> str:
    return _validate_choice(value, VALID_TYPES, "type")


def validate_status(value: object) -> str:
    return _validate_choice(value, VALID_STATUSES, "status")


def validate_priority(value: object) -> str:
    return _validate_choice(value, VALID_PRIORITIES, "priority")


def validate_project(project: object) -> str:
    if not isinstance(project, str) or not project.strip():
        msg = "Project cannot be empty"
        raise ValidationError(msg)
    return project


def _validate_string_list(value: object, name: str) -> None:
    """Raise ValidationError if *value* is not a list of strings."""
    if not isinstance(value, list) or not all(isinstance(i, str) for i in value):
        msg = f"{name} must be a list of strings"
        raise ValidationError(msg)


def normalize_tags(tags: list[str]) -> list[str]:
    """Strip, drop empties, and collapse duplicates keeping first occurrence."""
    _validate_string_list(tags, "tags")
    seen: dict[str, None] = {}
    for tag in tags:
        cleaned = tag.strip()
        if cleaned:
            seen.setdefault(cleaned, None)
    return list(seen)


def validate_ticket(ticket: Ticket, project: str) -> None:
    """Reject a ticket whose fields cannot be written as-is.

    Checks every enum and required string, plus the shape of the child
    collections. Nothing is written until this passes.
    """
    validate_project(project)
    if not isinstance(ticket.title, str) or not ticket.title.strip():
        msg = "Title cannot be empty"
        raise ValidationError(msg)
    validate_type(ticket.type)
    validate_status(ticket.status)
    validate_priority(ticket.priority)
    _validate_string_list(ticket.tags, "tags")
    _validate_string_list(ticket.files, "files")
    _validate_string_list(ticket.comments, "comments")
    if any(not c.strip() for c in ticket.comments):
        msg = "Comment text cannot be empty"
        raise ValidationError(msg)


def validate_filters(filters: TicketFilters) -> None:
    if filters.status is not None:
        validate_status(filters.status)
    if filters.type is not None:
        validate_type(filters.type)
    if filters.priority is not None:
        validate_priority(filters.priority)
    if filters.tags is not None:
        _validate_string_list(filters.tags, "tags")


def parse_csv_list(value: str | None) -> list[str]:
    """Split a comma-separated option into trimmed, non-empty items."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]
