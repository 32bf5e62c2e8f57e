"""Pydantic schemas for the taskboard REST API (request/response only).

Uses SQLModel (table=False) for consistency with models.py.
"""

from datetime import datetime

from sqlmodel import SQLModel

from models import Priority, Task, TaskBase, TaskStatus, User


class UserSummary(SQLModel):
    """Display projection of a user: never carries the password hash or role."""

    id: int
    name: str
    email: str

    @classmethod
    def from_user(cls, user: User | None) -> "UserSummary | None":
        if user is None:
            return None
        return cls(id=user.id, name=user.name, email=user.email)


class TaskRead(SQLModel):
    """Task response schema with creator/assignee resolved to UserSummary."""

    id: int
    title: str
    description: str | None = None
    status: TaskStatus
    priority: Priority
    due_date: datetime | None = None
    image: str | None = None
    created_by: UserSummary | None = None
    assigned_to: UserSummary | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def build(cls, task: Task, creator: User | None, assignee: User | None) -> "TaskRead":
        fields = TaskBase.model_fields.keys()
        return cls(
            id=task.id,
            **{name: getattr(task, name) for name in fields},
            created_by=UserSummary.from_user(creator),
            assigned_to=UserSummary.from_user(assignee),
            created_at=task.created_at,
            updated_at=task.updated_at,
        )


class TaskUpdate(SQLModel):
    """Request body for task update. Empty or missing fields keep their stored value."""

    title: str | None = None
    description: str | None = None
    status: str | None = None
    priority: str | None = None
    due_date: str | None = None
    assigned_to: int | str | None = None


class LeaderboardRow(SQLModel):
    user_id: int
    name: str
    email: str
    completed_tasks: int


class LoginRequest(SQLModel):
    email: str
    password: str


class TokenResponse(SQLModel):
    token: str


class Message(SQLModel):
    msg: str
