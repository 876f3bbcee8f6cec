"""Notification dispatcher – turns domain events into inbox rows.

The dispatcher is an event-bus subscriber.  Each handler writes in its own
transaction after the triggering operation has already committed, so a
failed notification write is logged and dropped; it can never undo a vote or
an acceptance.

Policy (kept in one place so product can revisit it):

* ``VOTE_RECEIVED`` only when the vote raised the answer's net score, which
  includes withdrawing a downvote.
* No notification is addressed to the profile whose action caused it
  (answering or accepting on one's own question).
"""

import asyncio
import logging
from typing import List
from typing import Optional

from stackit.crud import crud
from stackit.database import db_session
from stackit.errors import ForbiddenError
from stackit.errors import NotFoundError
from stackit.events import AnswerAccepted
from stackit.events import AnswerPosted
from stackit.events import EventBus
from stackit.events import EventType
from stackit.events import VoteCast
from stackit.models.enums import NotificationKind
from stackit.models.enums import VoteState
from stackit.models.models import Notification

logger = logging.getLogger(__name__)


def _shorten(title: str, limit: int = 80) -> str:
    return title if len(title) <= limit else title[: limit - 1] + "…"


class NotificationDispatcher:
    def __init__(self, session_factory):
        self.session_factory = session_factory

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def register(self, bus: EventBus) -> None:
        bus.subscribe(EventType.ANSWER_POSTED, self.on_answer_posted)
        bus.subscribe(EventType.ANSWER_ACCEPTED, self.on_answer_accepted)
        bus.subscribe(EventType.VOTE_CAST, self.on_vote_cast)

    def unregister(self, bus: EventBus) -> None:
        bus.unsubscribe(EventType.ANSWER_POSTED, self.on_answer_posted)
        bus.unsubscribe(EventType.ANSWER_ACCEPTED, self.on_answer_accepted)
        bus.unsubscribe(EventType.VOTE_CAST, self.on_vote_cast)

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    async def on_answer_posted(self, event: AnswerPosted) -> Optional[Notification]:
        if event.question_author_id == event.answer_author_id:
            logger.debug("Answer %s is on the author's own question; no notification", event.answer_id)
            return None

        return await self._notify(
            profile_id=event.question_author_id,
            kind=NotificationKind.NEW_ANSWER,
            message=f'Your question "{_shorten(event.question_title)}" received a new answer!',
            question_id=event.question_id,
            answer_id=event.answer_id,
        )

    async def on_answer_accepted(self, event: AnswerAccepted) -> Optional[Notification]:
        if event.answer_author_id == event.accepted_by_id:
            logger.debug("Answer %s accepted by its own author; no notification", event.answer_id)
            return None

        return await self._notify(
            profile_id=event.answer_author_id,
            kind=NotificationKind.ANSWER_ACCEPTED,
            message=f'Your answer to "{_shorten(event.question_title)}" was accepted!',
            question_id=event.question_id,
            answer_id=event.answer_id,
        )

    async def on_vote_cast(self, event: VoteCast) -> Optional[Notification]:
        if event.net_delta <= 0:
            return None

        if event.new_state == VoteState.UP:
            message = "Your answer received an upvote!"
        else:
            message = "A downvote on your answer was withdrawn."

        return await self._notify(
            profile_id=event.answer_author_id,
            kind=NotificationKind.VOTE_RECEIVED,
            message=message,
            question_id=event.question_id,
            answer_id=event.answer_id,
        )

    async def _notify(self, **fields) -> Optional[Notification]:
        try:
            return await asyncio.to_thread(self._create_notification_tx, fields)
        except Exception as e:
            # Dropping a notification is acceptable; propagating is not.
            logger.error(f"Dropped {fields['kind'].value} notification for profile {fields['profile_id']}: {e!r}")
            return None

    def _create_notification_tx(self, fields: dict) -> Notification:
        with db_session(self.session_factory) as db:
            notification = crud.create_notification(db, **fields)
        logger.debug("Created %s notification %s for profile %s", notification.kind.value, notification.id, notification.profile_id)
        return notification

    # ------------------------------------------------------------------
    # Inbox operations
    # ------------------------------------------------------------------

    async def mark_read(self, notification_id: int, acting_profile_id: int) -> Notification:
        """Set the read flag.  Addressee only; calling it twice is harmless."""

        return await asyncio.to_thread(self._mark_read_tx, notification_id, acting_profile_id)

    def _mark_read_tx(self, notification_id: int, acting_profile_id: int) -> Notification:
        with db_session(self.session_factory) as db:
            notification = self._owned(db, notification_id, acting_profile_id, "mark notification read")
            notification.is_read = True
        return notification

    async def mark_all_read(self, profile_id: int) -> int:
        return await asyncio.to_thread(self._run, crud.mark_all_notifications_read, profile_id)

    async def delete_notification(self, notification_id: int, acting_profile_id: int) -> None:
        await asyncio.to_thread(self._delete_notification_tx, notification_id, acting_profile_id)

    def _delete_notification_tx(self, notification_id: int, acting_profile_id: int) -> None:
        with db_session(self.session_factory) as db:
            notification = self._owned(db, notification_id, acting_profile_id, "delete notification")
            crud.delete_notification_row(db, notification)

    async def delete_all_notifications(self, profile_id: int) -> int:
        """Clear the whole inbox of *profile_id*.  Returns the number removed."""

        deleted = await asyncio.to_thread(self._run, crud.delete_notifications_for_profile, profile_id)
        logger.info("Cleared %d notifications of profile %s", deleted, profile_id)
        return deleted

    async def list_unread(self, profile_id: int) -> List[Notification]:
        return await self.list_for_profile(profile_id, unread_only=True)

    async def list_for_profile(self, profile_id: int, *, unread_only: bool = False) -> List[Notification]:
        return await asyncio.to_thread(self._list, profile_id, unread_only)

    def _list(self, profile_id: int, unread_only: bool) -> List[Notification]:
        with db_session(self.session_factory) as db:
            return crud.get_notifications(db, profile_id, unread_only=unread_only)

    async def unread_count(self, profile_id: int) -> int:
        return await asyncio.to_thread(self._run, crud.count_unread_notifications, profile_id)

    def _run(self, fn, profile_id: int):
        with db_session(self.session_factory) as db:
            return fn(db, profile_id)

    @staticmethod
    def _owned(db, notification_id: int, acting_profile_id: int, action: str) -> Notification:
        notification = crud.get_notification(db, notification_id)
        if notification is None:
            raise NotFoundError("Notification", notification_id)
        if notification.profile_id != acting_profile_id:
            raise ForbiddenError(action, acting_profile_id, reason="not the addressee")
        return notification


__all__ = ["NotificationDispatcher"]
