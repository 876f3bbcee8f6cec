"""Question store – the question aggregate (title, body, tags, author)."""

import asyncio
import logging
from typing import Iterable
from typing import List
from typing import Optional

from stackit.crud import crud
from stackit.database import db_session
from stackit.errors import ForbiddenError
from stackit.errors import NotFoundError
from stackit.models.models import Question
from stackit.schemas.schemas import QuestionCreate
from stackit.schemas.schemas import QuestionUpdate
from stackit.schemas.schemas import validate
from stackit.services.policy import Action
from stackit.services.policy import AuthorizationPolicy
from stackit.services.policy import default_policy
from stackit.services.policy import ensure_allowed
from stackit.utils.retry import is_concurrent_modification_or_race
from stackit.utils.retry import retry_on_conflict
from stackit.utils.time import utc_now_naive

logger = logging.getLogger(__name__)


class QuestionStore:
    def __init__(self, session_factory, policy: AuthorizationPolicy = default_policy):
        self.session_factory = session_factory
        self.policy = policy

    async def post_question(self, author_id: int, title: str, body: str, tags: Iterable[str] = ()) -> Question:
        command = validate(QuestionCreate, title=title, body=body, tags=list(tags or ()))
        return await asyncio.to_thread(self._post_question_tx, author_id, command)

    @retry_on_conflict(retriable=is_concurrent_modification_or_race)
    def _post_question_tx(self, author_id: int, command: QuestionCreate) -> Question:
        with db_session(self.session_factory) as db:
            author = crud.get_profile(db, author_id)
            if author is None:
                raise NotFoundError("Profile", author_id)
            ensure_allowed(self.policy, author, Action.POST_QUESTION)

            question = crud.create_question(
                db, author_id=author_id, title=command.title, body=command.body, tags=command.tags
            )

        logger.info("Profile %s posted question %s", author_id, question.id)
        return question

    async def get_question(self, question_id: int) -> Optional[Question]:
        return await asyncio.to_thread(self._read, crud.get_question, question_id)

    async def list_by_author(self, author_id: int) -> List[Question]:
        return await asyncio.to_thread(self._read, crud.get_questions_by_author, author_id)

    async def list_by_tag(self, tag: str) -> List[Question]:
        return await asyncio.to_thread(self._read, crud.get_questions_by_tag, tag)

    def _read(self, finder, key):
        with db_session(self.session_factory) as db:
            return finder(db, key)

    async def update_question(
        self,
        question_id: int,
        acting_profile_id: int,
        *,
        title: Optional[str] = None,
        body: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
    ) -> Question:
        """Edit a question.  Only its author may do this."""

        command = validate(QuestionUpdate, title=title, body=body, tags=None if tags is None else list(tags))
        return await asyncio.to_thread(self._update_question_tx, question_id, acting_profile_id, command)

    @retry_on_conflict()
    def _update_question_tx(self, question_id: int, acting_profile_id: int, command: QuestionUpdate) -> Question:
        with db_session(self.session_factory) as db:
            question = crud.get_question(db, question_id)
            if question is None:
                raise NotFoundError("Question", question_id)
            if question.author_id != acting_profile_id:
                raise ForbiddenError("edit question", acting_profile_id, reason="not the author")

            if command.title is not None:
                question.title = command.title
            if command.body is not None:
                question.body = command.body
            if command.tags is not None:
                crud.set_question_tags(db, question, command.tags)
                # Tag rows live in their own table; touch the row so the
                # version counter still guards the aggregate.
                question.updated_at = utc_now_naive()
            db.flush()

        return question

    async def delete_question(self, question_id: int, acting_profile_id: int) -> None:
        """Delete a question with all of its answers.

        Allowed for the author and for admins.  No notification is raised.
        """
        await asyncio.to_thread(self._delete_question_tx, question_id, acting_profile_id)

    @retry_on_conflict(retriable=is_concurrent_modification_or_race)
    def _delete_question_tx(self, question_id: int, acting_profile_id: int) -> None:
        with db_session(self.session_factory) as db:
            question = crud.get_question(db, question_id)
            if question is None:
                raise NotFoundError("Question", question_id)

            actor = crud.get_profile(db, acting_profile_id)
            if actor is None:
                raise NotFoundError("Profile", acting_profile_id)
            if question.author_id != actor.id and not actor.is_admin:
                raise ForbiddenError("delete question", acting_profile_id, reason="not the author or an admin")

            answers = crud.delete_answers_for_question(db, question_id)
            crud.delete_question_row(db, question)

        logger.info("Profile %s deleted question %s with %d answers", acting_profile_id, question_id, answers)


__all__ = ["QuestionStore"]
