"""Composition root.

Wires the services onto one session factory and one event bus, with the
notification dispatcher subscribed.  The API layer holds a single
:class:`StackitCore` and calls its services; nothing else mutates state.
"""

import logging
from typing import Optional

from sqlalchemy.orm import sessionmaker

from stackit.config import configure_logging
from stackit.config import get_settings
from stackit.database import get_session_factory
from stackit.database import initialize_database
from stackit.events import EventBus
from stackit.events import drain_pending_events
from stackit.services.answer_engine import AnswerEngine
from stackit.services.identity_directory import IdentityDirectory
from stackit.services.notification_dispatcher import NotificationDispatcher
from stackit.services.policy import AuthorizationPolicy
from stackit.services.policy import default_policy
from stackit.services.question_store import QuestionStore

logger = logging.getLogger(__name__)


class StackitCore:
    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        bus: Optional[EventBus] = None,
        policy: AuthorizationPolicy = default_policy,
    ):
        self.session_factory = session_factory or get_session_factory()
        self.bus = bus or EventBus()

        self.identity = IdentityDirectory(self.session_factory)
        self.questions = QuestionStore(self.session_factory, policy=policy)
        self.answers = AnswerEngine(self.session_factory, bus=self.bus, policy=policy)
        self.notifications = NotificationDispatcher(self.session_factory)
        self.notifications.register(self.bus)

    @classmethod
    def from_settings(cls, *, create_schema: bool = True) -> "StackitCore":
        """Build against ``DATABASE_URL`` from the environment."""

        configure_logging()
        session_factory = get_session_factory()
        if create_schema:
            initialize_database(session_factory.kw["bind"])
        logger.info("Stackit core ready (database %s)", get_settings().resolved_database_url)
        return cls(session_factory=session_factory)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait until every published event has been handled."""

        await drain_pending_events(timeout)

    async def close(self) -> None:
        await self.drain()
        self.notifications.unregister(self.bus)


__all__ = ["StackitCore"]
