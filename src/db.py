"""Database connection and schema init for taskboard.

Uses SQLModel over a PostgreSQL (psycopg2) engine; connection params from env
(DATABASE_URL, or POSTGRES_*).
"""

import logging
import os

from sqlalchemy import create_engine
from sqlmodel import SQLModel

from models import AccessToken, Task, User  # noqa: F401 — ensure all tables registered

logger = logging.getLogger(__name__)


def _connection_params():
    return {
        "host": os.environ.get("POSTGRES_HOST", "localhost"),
        "port": int(os.environ.get("POSTGRES_PORT", "5432")),
        "user": os.environ.get("POSTGRES_USER", "postgres"),
        "password": os.environ.get("POSTGRES_PASSWORD", ""),
        "dbname": os.environ.get("POSTGRES_DB", "taskboard"),
    }


def _database_url() -> str:
    explicit = (os.environ.get("DATABASE_URL") or "").strip()
    if explicit:
        return explicit
    p = _connection_params()
    return (
        f"postgresql+psycopg2://{p['user']}:{p['password']}"
        f"@{p['host']}:{p['port']}/{p['dbname']}"
    )


_engine = None
_initialized = False


def get_engine():
    """Return a shared SQLAlchemy engine for SQLModel sessions."""
    global _engine
    if _engine is None:
        url = _database_url()
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        _engine = create_engine(url, echo=False, connect_args=connect_args)
    return _engine


def init_db() -> None:
    """Create all tables from SQLModel metadata if they do not exist. Runs once per process."""
    global _initialized
    if _initialized:
        return
    engine = get_engine()
    SQLModel.metadata.create_all(engine)
    _initialized = True
    logger.debug("Schema ready on %s", engine.url.render_as_string(hide_password=True))
