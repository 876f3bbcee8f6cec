"""Identity directory – registration and lookup of profiles.

Uniqueness of ``username`` and ``email`` is decided by the database's unique
constraints inside the inserting transaction.  The look-ups done before the
insert only produce a friendlier error message; when two registrations race,
the constraint lets exactly one of them commit and the other is reported as
:class:`~stackit.errors.ConflictError`.
"""

import asyncio
import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError

from stackit.crud import crud
from stackit.database import db_session
from stackit.errors import ConflictError
from stackit.errors import ForbiddenError
from stackit.errors import NotFoundError
from stackit.models.enums import UserRole
from stackit.models.models import Profile
from stackit.schemas.schemas import ProfileCreate
from stackit.schemas.schemas import validate
from stackit.utils.retry import is_concurrent_modification_or_race
from stackit.utils.retry import retry_on_conflict

logger = logging.getLogger(__name__)


class IdentityDirectory:
    """Holds :class:`Profile` records."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def create_profile(
        self,
        username: str,
        email: str,
        password_hash: str,
        role: UserRole = UserRole.USER,
    ) -> Profile:
        command = validate(ProfileCreate, username=username, email=email, password_hash=password_hash, role=role)
        return await asyncio.to_thread(self._create_profile_tx, command)

    @retry_on_conflict()
    def _create_profile_tx(self, command: ProfileCreate) -> Profile:
        try:
            with db_session(self.session_factory) as db:
                if crud.get_profile_by_username(db, command.username) is not None:
                    raise ConflictError(f"Username '{command.username}' is already taken")
                if crud.get_profile_by_email(db, command.email) is not None:
                    raise ConflictError(f"E-mail '{command.email}' is already registered")

                profile = crud.create_profile(
                    db,
                    username=command.username,
                    email=command.email,
                    password_hash=command.password_hash,
                    role=command.role,
                )
        except IntegrityError as exc:
            # Lost the race against a concurrent registration.
            raise ConflictError(f"Username '{command.username}' or e-mail '{command.email}' already exists", cause=exc) from exc

        logger.info("Registered profile %s (%s)", profile.id, profile.username)
        return profile

    # ------------------------------------------------------------------
    # Look-ups
    # ------------------------------------------------------------------

    def _lookup(self, finder, key):
        with db_session(self.session_factory) as db:
            return finder(db, key)

    async def find_by_id(self, profile_id: int) -> Optional[Profile]:
        return await asyncio.to_thread(self._lookup, crud.get_profile, profile_id)

    async def find_by_username(self, username: str) -> Optional[Profile]:
        return await asyncio.to_thread(self._lookup, crud.get_profile_by_username, username)

    async def find_by_email(self, email: str) -> Optional[Profile]:
        return await asyncio.to_thread(self._lookup, crud.get_profile_by_email, email)

    async def exists_by_username(self, username: str) -> bool:
        return await self.find_by_username(username) is not None

    async def exists_by_email(self, email: str) -> bool:
        return await self.find_by_email(email) is not None

    # ------------------------------------------------------------------
    # Removal
    # ------------------------------------------------------------------

    async def delete_profile(self, profile_id: int, acting_profile_id: int) -> None:
        """Delete a profile and everything it owns.

        Allowed for the profile itself and for admins.  Cascade order:
        notifications, votes cast (tallies rolled back), answers written
        (with their votes), questions asked (with all their answers).
        """
        await asyncio.to_thread(self._delete_profile_tx, profile_id, acting_profile_id)

    @retry_on_conflict(retriable=is_concurrent_modification_or_race)
    def _delete_profile_tx(self, profile_id: int, acting_profile_id: int) -> None:
        with db_session(self.session_factory) as db:
            profile = crud.get_profile(db, profile_id)
            if profile is None:
                raise NotFoundError("Profile", profile_id)

            actor = crud.get_profile(db, acting_profile_id)
            if actor is None:
                raise NotFoundError("Profile", acting_profile_id)
            if actor.id != profile.id and not actor.is_admin:
                raise ForbiddenError("delete profile", acting_profile_id, reason="not the owner or an admin")

            notifications = crud.delete_notifications_for_profile(db, profile_id)
            votes = crud.delete_votes_by_voter(db, profile_id)
            answers = crud.delete_answers_by_author(db, profile_id)
            questions = crud.delete_questions_by_author(db, profile_id)
            crud.delete_profile_row(db, profile)

        logger.info(
            "Deleted profile %s with %d notifications, %d votes, %d answers, %d questions",
            profile_id,
            notifications,
            votes,
            answers,
            questions,
        )


__all__ = ["IdentityDirectory"]
