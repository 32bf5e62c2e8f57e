"""Task service: creation, scoped listing, guarded update/delete, leaderboard.

Business logic for every task operation; api.py is a thin transport wrapper
that turns the exceptions raised here into HTTP statuses.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func
from sqlmodel import Session, select

import db as _db
import uploads
from auth_service import Identity
from errors import AuthorizationError, NotFoundError, ValidationError
from models import Priority, Task, TaskStatus, User, utcnow
from schemas import LeaderboardRow, TaskRead
from task_query import TaskFilters, as_utc, build_task_query, parse_due_date

logger = logging.getLogger(__name__)


def _ensure_db() -> None:
    _db.init_db()


# ---------------------------------------------------------------------------
# Field parsing shared by create and update
# ---------------------------------------------------------------------------


def _parse_enum(enum_cls, raw, field: str, errors: list[dict[str, str]]):
    try:
        return enum_cls(raw)
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        errors.append({"field": field, "msg": f"{field.capitalize()} must be one of: {allowed}"})
        return None


def _parse_due(raw, errors: list[dict[str, str]]) -> datetime | None:
    if isinstance(raw, datetime):
        return as_utc(raw)
    try:
        return parse_due_date(str(raw))
    except ValidationError as e:
        errors.extend(e.errors)
        return None


def _parse_user_id(raw, errors: list[dict[str, str]]) -> int | None:
    try:
        return int(raw)
    except (TypeError, ValueError):
        errors.append({"field": "assigned_to", "msg": "Assigned user ID must be a valid ID"})
        return None


def _check_user_exists(session: Session, user_id: int | None, errors: list[dict[str, str]]) -> None:
    if user_id is not None and session.get(User, user_id) is None:
        errors.append({"field": "assigned_to", "msg": "Assigned user does not exist"})


def _read(session: Session, task: Task) -> TaskRead:
    creator = session.get(User, task.created_by)
    assignee = session.get(User, task.assigned_to) if task.assigned_to is not None else None
    return TaskRead.build(task, creator, assignee)


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


def can_modify(task: Task, identity: Identity) -> bool:
    """Only the creator or an admin may update or delete a task."""
    return task.created_by == identity.id or identity.is_admin


def _load_for_mutation(session: Session, task_id: int, identity: Identity, action: str) -> Task:
    task = session.get(Task, task_id)
    if task is None:
        raise NotFoundError("Task not found")
    if not can_modify(task, identity):
        logger.warning("User %s denied %s on task %s", identity.id, action, task_id)
        raise AuthorizationError(f"Not authorized to {action} this task")
    return task


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


def create_task(
    identity: Identity,
    title: str | None,
    description: str | None = None,
    status: str | None = None,
    priority: str | None = None,
    due_date: str | datetime | None = None,
    assigned_to: int | str | None = None,
    image: uploads.IncomingFile | None = None,
) -> TaskRead:
    """Validate, store the optional image, and insert a new Task.

    The requester becomes ``created_by``; ``assigned_to`` defaults to them.
    Every invalid field is reported in a single ValidationError and nothing
    is written in that case.
    """
    _ensure_db()
    errors: list[dict[str, str]] = []
    if not title or not title.strip():
        errors.append({"field": "title", "msg": "Title is required"})
    st = _parse_enum(TaskStatus, status, "status", errors) if status else TaskStatus.TODO
    prio = _parse_enum(Priority, priority, "priority", errors) if priority else Priority.LOW
    due = _parse_due(due_date, errors) if due_date else None
    assignee_id = _parse_user_id(assigned_to, errors) if assigned_to not in (None, "") else None

    with Session(_db.get_engine()) as session:
        _check_user_exists(session, assignee_id, errors)
        if errors:
            raise ValidationError(errors)

        image_path = uploads.save_image(image) if image is not None else None
        task = Task(
            title=title.strip(),
            description=description,
            status=st,
            priority=prio,
            due_date=due,
            image=image_path,
            created_by=identity.id,
            assigned_to=assignee_id if assignee_id is not None else identity.id,
        )
        try:
            session.add(task)
            session.commit()
        except Exception:
            session.rollback()
            uploads.remove_image(image_path)
            raise
        session.refresh(task)
        result = _read(session, task)

    logger.info("Created task id=%s by user %s.", result.id, identity.id)
    if result.assigned_to is not None and result.assigned_to.id != identity.id:
        logger.info(
            "Notification: task '%s' assigned to %s by user %s",
            result.title,
            result.assigned_to.email,
            identity.id,
        )
    return result


def list_tasks(identity: Identity, filters: TaskFilters | None = None) -> list[TaskRead]:
    """Return tasks visible to *identity*, filtered and sorted per *filters*."""
    _ensure_db()
    q = build_task_query(identity, filters or TaskFilters())
    with Session(_db.get_engine()) as session:
        return [TaskRead.build(t, creator, assignee) for t, creator, assignee in session.exec(q)]


def get_visible_task(identity: Identity, task_id: int) -> TaskRead:
    """Return one task if it is visible to *identity* (same rule as listing)."""
    _ensure_db()
    with Session(_db.get_engine()) as session:
        task = session.get(Task, task_id)
        if task is None:
            raise NotFoundError("Task not found")
        if not identity.is_admin and identity.id not in (task.created_by, task.assigned_to):
            raise AuthorizationError("Not authorized to view this task")
        return _read(session, task)


def update_task(
    identity: Identity,
    task_id: int,
    title: str | None = None,
    description: str | None = None,
    status: str | None = None,
    priority: str | None = None,
    due_date: str | datetime | None = None,
    assigned_to: int | str | None = None,
) -> TaskRead:
    """Apply a partial update as the creator or an admin.

    Only truthy arguments replace stored values; ``created_by`` never changes.
    All fields are validated before any is assigned.
    """
    _ensure_db()
    with Session(_db.get_engine()) as session:
        task = _load_for_mutation(session, task_id, identity, "update")

        errors: list[dict[str, str]] = []
        if title and not title.strip():
            errors.append({"field": "title", "msg": "Title must not be blank"})
        st = _parse_enum(TaskStatus, status, "status", errors) if status else None
        prio = _parse_enum(Priority, priority, "priority", errors) if priority else None
        due = _parse_due(due_date, errors) if due_date else None
        assignee_id = _parse_user_id(assigned_to, errors) if assigned_to else None
        _check_user_exists(session, assignee_id, errors)
        if errors:
            raise ValidationError(errors)

        if title:
            task.title = title.strip()
        if description:
            task.description = description
        if st is not None:
            task.status = st
        if prio is not None:
            task.priority = prio
        if due is not None:
            task.due_date = due
        if assignee_id is not None:
            task.assigned_to = assignee_id
        task.updated_at = utcnow()
        session.add(task)
        session.commit()
        session.refresh(task)
        logger.info("Updated task id=%s by user %s.", task_id, identity.id)
        return _read(session, task)


def delete_task(identity: Identity, task_id: int) -> None:
    """Permanently delete a task as the creator or an admin."""
    _ensure_db()
    with Session(_db.get_engine()) as session:
        task = _load_for_mutation(session, task_id, identity, "delete")
        session.delete(task)
        session.commit()
    logger.info("Deleted task id=%s by user %s.", task_id, identity.id)


# ---------------------------------------------------------------------------
# Leaderboard
# ---------------------------------------------------------------------------


def get_leaderboard() -> list[LeaderboardRow]:
    """Completed-task counts per assignee, highest first; ties by user id.

    Users with no completed assignments do not appear.
    """
    _ensure_db()
    completed = func.count(Task.id).label("completed_tasks")
    q = (
        select(User.id, User.name, User.email, completed)
        .join(Task, Task.assigned_to == User.id)
        .where(Task.status == TaskStatus.COMPLETED)
        .group_by(User.id, User.name, User.email)
        .order_by(completed.desc(), User.id)
    )
    with Session(_db.get_engine()) as session:
        return [
            LeaderboardRow(user_id=uid, name=name, email=email, completed_tasks=count)
            for uid, name, email, count in session.exec(q)
        ]
