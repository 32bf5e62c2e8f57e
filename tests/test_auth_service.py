"""Tests for password hashing, user creation, login tokens and token resolution."""

import pytest
from sqlmodel import Session, select

import auth_service
from errors import ValidationError
from models import AccessToken, Role


def test_hash_and_verify_password():
    hashed = auth_service.hash_password("s3cret!")
    assert hashed.startswith("scrypt$")
    assert "s3cret!" not in hashed
    assert auth_service.verify_password("s3cret!", hashed)
    assert not auth_service.verify_password("wrong", hashed)


def test_hash_password_is_salted():
    assert auth_service.hash_password("same") != auth_service.hash_password("same")


def test_verify_password_rejects_foreign_format():
    assert auth_service.verify_password("x", "hash") is False
    assert auth_service.verify_password("x", "bcrypt$a$b") is False


def test_create_user_normalises_email_and_rejects_duplicates(in_memory_engine):
    user = auth_service.create_user("Jo", " Jo@Example.com ", "123456")
    assert user.email == "jo@example.com"
    assert user.role == Role.USER
    with pytest.raises(ValidationError, match="User already exists"):
        auth_service.create_user("Jo again", "jo@example.com", "654321")


def test_login_and_resolve_token(in_memory_engine):
    user = auth_service.create_user("Jo", "jo@example.com", "123456", role="admin")
    token = auth_service.login("jo@example.com", "123456")
    assert token
    identity = auth_service.resolve_token(token)
    assert identity == auth_service.Identity(id=user.id, role=Role.ADMIN)
    assert identity.is_admin


def test_login_wrong_password_returns_none(in_memory_engine):
    auth_service.create_user("Jo", "jo@example.com", "123456")
    assert auth_service.login("jo@example.com", "nope") is None
    assert auth_service.login("nobody@example.com", "123456") is None


def test_resolve_unknown_or_blank_token(in_memory_engine):
    assert auth_service.resolve_token("") is None
    assert auth_service.resolve_token("not-a-token") is None


def test_expired_token_is_rejected(in_memory_engine, monkeypatch):
    auth_service.create_user("Jo", "jo@example.com", "123456")
    monkeypatch.setattr(auth_service, "ACCESS_TOKEN_TTL_MINUTES", -1)
    token = auth_service.login("jo@example.com", "123456")
    assert auth_service.resolve_token(token) is None


def test_ensure_admin_from_env(in_memory_engine, monkeypatch):
    monkeypatch.setenv("ADMIN_EMAIL", "root@example.com")
    monkeypatch.setenv("ADMIN_PASSWORD", "rootpass")
    admin_id = auth_service.ensure_admin()
    assert admin_id is not None
    assert auth_service.ensure_admin() == admin_id
    assert auth_service.get_user(admin_id).role == Role.ADMIN


def test_ensure_admin_noop_without_env(in_memory_engine, monkeypatch):
    monkeypatch.delenv("ADMIN_EMAIL", raising=False)
    monkeypatch.delenv("ADMIN_PASSWORD", raising=False)
    assert auth_service.ensure_admin() is None


def test_issue_token_prunes_expired_rows(in_memory_engine, monkeypatch):
    user = auth_service.create_user("Jo", "jo@example.com", "123456")
    monkeypatch.setattr(auth_service, "ACCESS_TOKEN_TTL_MINUTES", -1)
    auth_service.login("jo@example.com", "123456")
    auth_service.login("jo@example.com", "123456")
    monkeypatch.setattr(auth_service, "ACCESS_TOKEN_TTL_MINUTES", 60)
    live = auth_service.login("jo@example.com", "123456")
    with Session(in_memory_engine) as s:
        rows = list(s.exec(select(AccessToken).where(AccessToken.user_id == user.id)))
    assert [r.token for r in rows] == [live]
    assert auth_service.resolve_token(live).id == user.id


def test_token_expiry_is_timezone_aware(in_memory_engine):
    auth_service.create_user("Jo", "jo@example.com", "123456")
    token = auth_service.login("jo@example.com", "123456")
    with Session(in_memory_engine) as s:
        row = s.exec(select(AccessToken).where(AccessToken.token == token)).one()
    assert row.expires_at.tzinfo is not None
    assert row.expires_at > row.created_at
