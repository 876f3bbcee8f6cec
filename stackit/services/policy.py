"""Participation policy.

Which roles may post or vote is a product decision, so the services take an
:data:`AuthorizationPolicy` callable instead of hard-coding role checks.
Ownership rules (only the asker accepts, only the author edits, ...) are not
policy and stay inside the services.
"""

from enum import Enum
from typing import Callable

from stackit.config import get_settings
from stackit.errors import ForbiddenError
from stackit.models.enums import UserRole
from stackit.models.models import Profile


class Action(str, Enum):
    POST_QUESTION = "post_question"
    POST_ANSWER = "post_answer"
    CAST_VOTE = "cast_vote"


AuthorizationPolicy = Callable[[Profile, Action], bool]


def default_policy(profile: Profile, action: Action) -> bool:
    """``USER`` and ``ADMIN`` may do everything; ``GUEST`` only when enabled."""

    if profile.role == UserRole.GUEST:
        return get_settings().guest_can_participate
    return True


def allow_all(profile: Profile, action: Action) -> bool:  # noqa: ARG001
    return True


def ensure_allowed(policy: AuthorizationPolicy, profile: Profile, action: Action) -> None:
    if not policy(profile, action):
        raise ForbiddenError(action.value.replace("_", " "), profile.id, reason=f"role {profile.role.value}")


__all__ = ["Action", "AuthorizationPolicy", "allow_all", "default_policy", "ensure_allowed"]
