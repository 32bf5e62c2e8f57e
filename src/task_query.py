"""Access-scoped query building for task listing.

Turns a requester ``Identity`` plus raw filter/sort parameters into a single
SELECT over Task, joined to the creator and assignee users so each row can be
rendered with ``{id, name, email}`` projections.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import case, or_
from sqlalchemy.orm import aliased
from sqlmodel import select

from auth_service import Identity
from errors import ValidationError
from models import Priority, Task, TaskStatus, User

Creator = aliased(User, name="creator")
Assignee = aliased(User, name="assignee")

# SQL expressions: rank enums by meaning instead of alphabetically
_priority_rank_sql = case(
    (Task.priority == Priority.LOW, 1),
    (Task.priority == Priority.MEDIUM, 2),
    (Task.priority == Priority.HIGH, 3),
    else_=0,
)
_status_rank_sql = case(
    (Task.status == TaskStatus.TODO, 1),
    (Task.status == TaskStatus.IN_PROGRESS, 2),
    (Task.status == TaskStatus.COMPLETED, 3),
    else_=0,
)

_SORT_KEYS = {
    "title": Task.title,
    "status": _status_rank_sql,
    "priority": _priority_rank_sql,
    "due_date": Task.due_date,
    "created_at": Task.created_at,
    "updated_at": Task.updated_at,
}

_SORT_ALIASES = {
    "dueDate": "due_date",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}


def as_utc(value: datetime) -> datetime:
    """Return *value* as an aware UTC datetime; naive values are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_due_date(raw: str, field: str = "due_date") -> datetime:
    """Parse an ISO-8601 date or timestamp into an aware UTC datetime.

    A bare date (``2024-01-01``) becomes midnight UTC of that day.
    """
    try:
        parsed = datetime.fromisoformat(raw.strip())
    except ValueError:
        raise ValidationError.single(field, "Due date must be a valid date") from None
    return as_utc(parsed)


@dataclass(frozen=True)
class SortSpec:
    """A sort field plus its direction, computed once per request."""

    field: str
    descending: bool = False

    @classmethod
    def parse(cls, raw: str | None) -> SortSpec | None:
        """Parse ``field`` / ``-field``. Returns None for an empty value."""
        if raw is None or not raw.strip():
            return None
        raw = raw.strip()
        descending = raw.startswith("-")
        name = raw[1:] if descending else raw
        name = _SORT_ALIASES.get(name, name)
        if name not in _SORT_KEYS:
            allowed = ", ".join(sorted(_SORT_KEYS))
            raise ValidationError.single("sort", f"Unknown sort field '{name}'; expected one of {allowed}")
        return cls(field=name, descending=descending)

    def order_by(self) -> list:
        """ORDER BY clauses: primary key, then task id in the same direction.

        Undated tasks sort after dated ones whichever way due_date is sorted.
        """
        key = _SORT_KEYS[self.field]
        clauses = []
        if self.field == "due_date":
            clauses.append(Task.due_date.is_(None))  # type: ignore[union-attr]
        clauses.append(key.desc() if self.descending else key.asc())
        clauses.append(Task.id.desc() if self.descending else Task.id.asc())  # type: ignore[union-attr]
        return clauses


@dataclass(frozen=True)
class TaskFilters:
    """Raw listing parameters as received from the transport layer."""

    status: str | None = None
    priority: str | None = None
    due_date: str | None = None
    sort: str | None = None


def visibility_clause(identity: Identity):
    """Return the WHERE clause restricting *identity* to visible tasks, or None for admins."""
    if identity.is_admin:
        return None
    return or_(Task.created_by == identity.id, Task.assigned_to == identity.id)


def build_task_query(identity: Identity, filters: TaskFilters):
    """Build the scoped, filtered, sorted SELECT of (Task, creator, assignee).

    Raises ValidationError listing every malformed parameter.
    """
    errors: list[dict[str, str]] = []
    q = (
        select(Task, Creator, Assignee)
        .join(Creator, Task.created_by == Creator.id, isouter=True)
        .join(Assignee, Task.assigned_to == Assignee.id, isouter=True)
    )

    scope = visibility_clause(identity)
    if scope is not None:
        q = q.where(scope)

    if filters.status:
        try:
            q = q.where(Task.status == TaskStatus(filters.status))
        except ValueError:
            errors.append({"field": "status", "msg": f"Invalid status: {filters.status}"})
    if filters.priority:
        try:
            q = q.where(Task.priority == Priority(filters.priority))
        except ValueError:
            errors.append({"field": "priority", "msg": f"Invalid priority: {filters.priority}"})
    if filters.due_date:
        try:
            q = q.where(Task.due_date == parse_due_date(filters.due_date))
        except ValidationError as e:
            errors.extend(e.errors)

    sort_spec = None
    try:
        sort_spec = SortSpec.parse(filters.sort)
    except ValidationError as e:
        errors.extend(e.errors)

    if errors:
        raise ValidationError(errors)

    if sort_spec is not None:
        q = q.order_by(*sort_spec.order_by())
    else:
        q = q.order_by(Task.id)
    return q
