"""Authentication and user directory for taskboard.

Passwords are hashed with scrypt (``cryptography``); login issues an opaque
bearer token stored in the AccessToken table, and ``resolve_token`` turns that
token back into an ``Identity`` for the request.
"""

from __future__ import annotations

import base64
import logging
import os
import secrets
from dataclasses import dataclass
from datetime import timedelta

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from sqlmodel import Session, select

import db as _db
from errors import ValidationError
from models import AccessToken, Role, User, utcnow

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TTL_MINUTES = int(os.environ.get("ACCESS_TOKEN_TTL_MINUTES", "60"))

_SCRYPT_N = 2**14
_SCRYPT_R = 8
_SCRYPT_P = 1
_SCRYPT_LEN = 32


@dataclass(frozen=True)
class Identity:
    """The authenticated requester, trusted as-is by the task services."""

    id: int
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def _ensure_db() -> None:
    _db.init_db()


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def _kdf(salt: bytes) -> Scrypt:
    return Scrypt(salt=salt, length=_SCRYPT_LEN, n=_SCRYPT_N, r=_SCRYPT_R, p=_SCRYPT_P)


def hash_password(password: str) -> str:
    """Return ``scrypt$<salt>$<hash>`` (both urlsafe base64)."""
    salt = secrets.token_bytes(16)
    digest = _kdf(salt).derive(password.encode("utf-8"))
    return "scrypt${}${}".format(
        base64.urlsafe_b64encode(salt).decode("ascii"),
        base64.urlsafe_b64encode(digest).decode("ascii"),
    )


def verify_password(password: str, passwordhash: str) -> bool:
    try:
        scheme, salt_b64, digest_b64 = passwordhash.split("$")
    except ValueError:
        return False
    if scheme != "scrypt":
        return False
    salt = base64.urlsafe_b64decode(salt_b64)
    expected = base64.urlsafe_b64decode(digest_b64)
    try:
        _kdf(salt).verify(password.encode("utf-8"), expected)
    except InvalidKey:
        return False
    return True


# ---------------------------------------------------------------------------
# User directory
# ---------------------------------------------------------------------------


def get_user(user_id: int) -> User | None:
    """Return a User by id, or None if not found."""
    _ensure_db()
    with Session(_db.get_engine()) as session:
        return session.get(User, user_id)


def get_user_by_email(email: str) -> User | None:
    _ensure_db()
    with Session(_db.get_engine()) as session:
        return session.exec(select(User).where(User.email == email.strip().lower())).first()


def create_user(name: str, email: str, password: str, role: Role | str = Role.USER) -> User:
    """Create a user with a hashed password. Raises ValidationError on a taken email."""
    _ensure_db()
    email = email.strip().lower()
    with Session(_db.get_engine()) as session:
        existing = session.exec(select(User).where(User.email == email)).first()
        if existing:
            raise ValidationError.single("email", "User already exists")
        user = User(name=name, email=email, passwordhash=hash_password(password), role=Role(role))
        session.add(user)
        session.commit()
        session.refresh(user)
        logger.info("Created %s user id=%s.", user.role.value, user.id)
        return user


def ensure_admin() -> int | None:
    """Create the admin account from ADMIN_EMAIL/ADMIN_PASSWORD if set and missing. Returns its id."""
    email = (os.environ.get("ADMIN_EMAIL") or "").strip()
    password = os.environ.get("ADMIN_PASSWORD") or ""
    if not email or not password:
        return None
    existing = get_user_by_email(email)
    if existing:
        return existing.id
    name = (os.environ.get("ADMIN_NAME") or "Admin").strip()
    return create_user(name, email, password, role=Role.ADMIN).id


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


def issue_token(user_id: int) -> str:
    """Create and store a new access token for *user_id*."""
    _ensure_db()
    now = utcnow()
    token = secrets.token_urlsafe(32)
    with Session(_db.get_engine()) as session:
        expired = session.exec(
            select(AccessToken).where(AccessToken.user_id == user_id, AccessToken.expires_at <= now)
        )
        for stale in list(expired):
            session.delete(stale)
        row = AccessToken(
            token=token,
            user_id=user_id,
            created_at=now,
            expires_at=now + timedelta(minutes=ACCESS_TOKEN_TTL_MINUTES),
        )
        session.add(row)
        session.commit()
    return token


def login(email: str, password: str) -> str | None:
    """Return a fresh token for valid credentials, or None."""
    user = get_user_by_email(email)
    if user is None or not verify_password(password, user.passwordhash):
        logger.info("Rejected login for %s", email)
        return None
    return issue_token(user.id)


def resolve_token(token: str) -> Identity | None:
    """Look up token; return the holder's Identity, or None if unknown or expired."""
    if not token or not token.strip():
        return None
    _ensure_db()
    with Session(_db.get_engine()) as session:
        row = session.exec(select(AccessToken).where(AccessToken.token == token.strip())).first()
        if row is None or row.expires_at <= utcnow():
            return None
        user = session.get(User, row.user_id)
        if user is None:
            return None
        return Identity(id=user.id, role=user.role)
