import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session

import db
import uploads
from auth_service import Identity
from models import AccessToken, Role, Task, User  # noqa: F401 — register tables


@pytest.fixture
def in_memory_engine(monkeypatch):
    # StaticPool: one shared connection so FastAPI's worker threads see the same DB
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    monkeypatch.setattr(db, "get_engine", lambda: engine)
    monkeypatch.setattr(db, "init_db", lambda: None)
    return engine


@pytest.fixture
def db_session(in_memory_engine):
    with Session(in_memory_engine) as session:
        yield session


@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch):
    target = tmp_path / "uploads"
    monkeypatch.setattr(uploads, "UPLOAD_DIR", target)
    return target


@pytest.fixture
def seed_users(db_session):
    """Insert two regular users and an admin; return their Identities (alice, bob, admin)."""
    rows = [
        User(name="Alice", email="alice@example.com", passwordhash="hash"),
        User(name="Bob", email="bob@example.com", passwordhash="hash"),
        User(name="Admin", email="admin@example.com", passwordhash="hash", role=Role.ADMIN),
    ]
    for user in rows:
        db_session.add(user)
    db_session.commit()
    for user in rows:
        db_session.refresh(user)
    return tuple(Identity(id=u.id, role=u.role) for u in rows)
