"""Shared *Enum* definitions for SQLAlchemy & Pydantic models.

The Enums inherit from ``str`` so that:

* JSON serialisation remains unchanged (values render as plain strings).
* Equality checks against raw literals (``role == "ADMIN"``) keep working.
"""

from __future__ import annotations

from enum import Enum


class UserRole(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"
    GUEST = "GUEST"


class VoteDirection(str, Enum):
    UP = "UP"
    DOWN = "DOWN"


class VoteState(str, Enum):
    """Per-(answer, voter) state. ``NONE`` is never persisted: no row."""

    NONE = "NONE"
    UP = "UP"
    DOWN = "DOWN"


class NotificationKind(str, Enum):
    NEW_ANSWER = "NEW_ANSWER"
    ANSWER_ACCEPTED = "ANSWER_ACCEPTED"
    VOTE_RECEIVED = "VOTE_RECEIVED"


__all__ = [
    "UserRole",
    "VoteDirection",
    "VoteState",
    "NotificationKind",
]
