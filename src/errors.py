"""Error taxonomy shared by the services and mapped to HTTP statuses in api.py."""

from __future__ import annotations


class TaskboardError(Exception):
    """Base class for expected, client-facing failures."""


class ValidationError(TaskboardError):
    """One or more input fields are missing or malformed.

    ``errors`` is a list of ``{"field": ..., "msg": ...}`` dicts so the caller
    can point at every offending field at once.
    """

    def __init__(self, errors: list[dict[str, str]]):
        self.errors = errors
        super().__init__("; ".join(f"{e['field']}: {e['msg']}" for e in errors))

    @classmethod
    def single(cls, field: str, msg: str) -> "ValidationError":
        return cls([{"field": field, "msg": msg}])


class AuthenticationError(TaskboardError):
    """Missing, unknown, or expired credential."""


class AuthorizationError(TaskboardError):
    """Requester is neither the owner nor an admin."""


class NotFoundError(TaskboardError):
    """Referenced task or user does not exist."""
