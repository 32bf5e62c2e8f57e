from sqlmodel import SQLModel, Field
from enum import Enum
from datetime import datetime, timezone
from sqlalchemy import DateTime
from sqlalchemy import Enum as SQLAEnum
from sqlalchemy.types import TypeDecorator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _values_enum(enum_cls: type[Enum]) -> SQLAEnum:
    """Store the human-readable enum value ("To Do") rather than the member name."""
    return SQLAEnum(enum_cls, values_callable=lambda x: [e.value for e in x])


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC timestamps on every backend.

    PostgreSQL keeps them in a timestamptz column. SQLite has no timezone
    storage, so values are written as naive UTC and tagged UTC again on read.
    Naive input is taken to be UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


class TaskStatus(str, Enum):
    TODO = "To Do"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"


class Priority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class User(SQLModel, table=True):
    id: int = Field(default=None, primary_key=True)
    name: str
    email: str = Field(index=True, unique=True)
    passwordhash: str
    role: Role = Field(default=Role.USER, sa_type=_values_enum(Role))
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class TaskBase(SQLModel):
    """Shared fields for Task (table) and API response schema. No table."""

    title: str
    description: str | None = Field(default=None)
    status: TaskStatus = Field(default=TaskStatus.TODO, sa_type=_values_enum(TaskStatus))
    priority: Priority = Field(default=Priority.LOW, sa_type=_values_enum(Priority))
    due_date: datetime | None = Field(default=None, sa_type=UTCDateTime)
    image: str | None = Field(default=None)


class Task(TaskBase, table=True):
    id: int = Field(default=None, primary_key=True)
    created_by: int = Field(foreign_key="user.id", index=True)
    assigned_to: int | None = Field(default=None, foreign_key="user.id", index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class AccessToken(SQLModel, table=True):
    id: int = Field(default=None, primary_key=True)
    token: str = Field(index=True, unique=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    expires_at: datetime = Field(sa_type=UTCDateTime)
