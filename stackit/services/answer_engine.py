"""Answer engine – answers, their vote tallies and the acceptance state machine.

Two pieces of per-answer state change concurrently here: the vote tally and
the ``accepted`` flag.  On top of that a question has at most one accepted
answer at any instant.

* Every mutation is one unit of work (read, compute, write, commit) in its
  own session.  ``Answer`` and ``Question`` rows carry a version counter, so
  a commit that raced another one fails with ``StaleDataError`` and is
  re-run by :func:`~stackit.utils.retry.retry_on_conflict`.
* ``accept_answer`` clears the previous accepted answer and sets the new one
  in the same transaction and rewrites ``Question.accepted_answer_id``,
  which bumps the question's version: two concurrent accepts on the same
  question serialize on the question row.
* Events are published only after the commit, fire-and-forget.

Vote state per (answer, voter)::

    current \\ cast    UP            DOWN
    NONE              UP   (+1, 0)  DOWN (0, +1)
    UP                NONE (-1, 0)  DOWN (-1, +1)
    DOWN              UP   (+1, -1) NONE (0, -1)

(the pair is the change to ``(upvotes, downvotes)``).
"""

import asyncio
import logging
from typing import Dict
from typing import List
from typing import NamedTuple
from typing import Optional
from typing import Tuple

from stackit.crud import crud
from stackit.database import db_session
from stackit.errors import ForbiddenError
from stackit.errors import NotFoundError
from stackit.events import AnswerAccepted
from stackit.events import AnswerPosted
from stackit.events import EventBus
from stackit.events import VoteCast
from stackit.events import event_bus
from stackit.events import publish_event_fire_and_forget
from stackit.models.enums import VoteDirection
from stackit.models.enums import VoteState
from stackit.models.models import Answer
from stackit.schemas.schemas import AnswerCreate
from stackit.schemas.schemas import VoteCommand
from stackit.schemas.schemas import VoteResult
from stackit.schemas.schemas import validate
from stackit.services.policy import Action
from stackit.services.policy import AuthorizationPolicy
from stackit.services.policy import default_policy
from stackit.services.policy import ensure_allowed
from stackit.utils.retry import is_concurrent_modification_or_race
from stackit.utils.retry import retry_on_conflict

logger = logging.getLogger(__name__)


class _Transition(NamedTuple):
    new_state: VoteState
    up_delta: int
    down_delta: int


VOTE_TRANSITIONS: Dict[Tuple[VoteState, VoteDirection], _Transition] = {
    (VoteState.NONE, VoteDirection.UP): _Transition(VoteState.UP, +1, 0),
    (VoteState.NONE, VoteDirection.DOWN): _Transition(VoteState.DOWN, 0, +1),
    (VoteState.UP, VoteDirection.UP): _Transition(VoteState.NONE, -1, 0),
    (VoteState.UP, VoteDirection.DOWN): _Transition(VoteState.DOWN, -1, +1),
    (VoteState.DOWN, VoteDirection.DOWN): _Transition(VoteState.NONE, 0, -1),
    (VoteState.DOWN, VoteDirection.UP): _Transition(VoteState.UP, +1, -1),
}


def answer_rank_key(answer: Answer):
    """Display order: accepted first, then score, then oldest first."""

    return (not answer.accepted, -(answer.upvotes - answer.downvotes), answer.created_at, answer.id)


def rank_answers(answers: List[Answer]) -> List[Answer]:
    return sorted(answers, key=answer_rank_key)


class AnswerEngine:
    def __init__(
        self,
        session_factory,
        bus: Optional[EventBus] = None,
        policy: AuthorizationPolicy = default_policy,
    ):
        self.session_factory = session_factory
        self.bus = bus or event_bus
        self.policy = policy

    # ------------------------------------------------------------------
    # Posting & reading
    # ------------------------------------------------------------------

    async def post_answer(self, question_id: int, author_id: int, content: str) -> Answer:
        command = validate(AnswerCreate, content=content)
        answer, event = await asyncio.to_thread(self._post_answer_tx, question_id, author_id, command)
        publish_event_fire_and_forget(event, self.bus)
        return answer

    @retry_on_conflict(retriable=is_concurrent_modification_or_race)
    def _post_answer_tx(self, question_id: int, author_id: int, command: AnswerCreate):
        with db_session(self.session_factory) as db:
            question = crud.get_question(db, question_id)
            if question is None:
                raise NotFoundError("Question", question_id)
            author = crud.get_profile(db, author_id)
            if author is None:
                raise NotFoundError("Profile", author_id)
            ensure_allowed(self.policy, author, Action.POST_ANSWER)

            answer = crud.create_answer(db, question_id=question_id, author_id=author_id, content=command.content)
            event = AnswerPosted(
                answer_id=answer.id,
                question_id=question.id,
                question_title=question.title,
                question_author_id=question.author_id,
                answer_author_id=author_id,
            )

        logger.info("Profile %s answered question %s with answer %s", author_id, question_id, answer.id)
        return answer, event

    async def get_answer(self, answer_id: int) -> Optional[Answer]:
        return await asyncio.to_thread(self._read, crud.get_answer, answer_id)

    async def list_answers(self, question_id: int) -> List[Answer]:
        """Answers of a question in display order (see :func:`answer_rank_key`)."""

        return await asyncio.to_thread(self._list_answers, question_id)

    def _list_answers(self, question_id: int) -> List[Answer]:
        with db_session(self.session_factory) as db:
            if crud.get_question(db, question_id) is None:
                raise NotFoundError("Question", question_id)
            return rank_answers(crud.get_answers_for_question(db, question_id))

    async def list_answers_by_author(self, author_id: int) -> List[Answer]:
        return await asyncio.to_thread(self._read, crud.get_answers_by_author, author_id)

    def _read(self, finder, key):
        with db_session(self.session_factory) as db:
            return finder(db, key)

    # ------------------------------------------------------------------
    # Editing & removal
    # ------------------------------------------------------------------

    async def update_answer(self, answer_id: int, acting_profile_id: int, content: str) -> Answer:
        command = validate(AnswerCreate, content=content)
        return await asyncio.to_thread(self._update_answer_tx, answer_id, acting_profile_id, command)

    @retry_on_conflict()
    def _update_answer_tx(self, answer_id: int, acting_profile_id: int, command: AnswerCreate) -> Answer:
        with db_session(self.session_factory) as db:
            answer = crud.get_answer(db, answer_id)
            if answer is None:
                raise NotFoundError("Answer", answer_id)
            if answer.author_id != acting_profile_id:
                raise ForbiddenError("edit answer", acting_profile_id, reason="not the author")
            answer.content = command.content
            db.flush()
        return answer

    async def delete_answer(self, answer_id: int, acting_profile_id: int) -> None:
        """Remove an answer (author or admin).  An accepted answer takes the
        question's accepted pointer with it."""

        await asyncio.to_thread(self._delete_answer_tx, answer_id, acting_profile_id)

    @retry_on_conflict(retriable=is_concurrent_modification_or_race)
    def _delete_answer_tx(self, answer_id: int, acting_profile_id: int) -> None:
        with db_session(self.session_factory) as db:
            answer = crud.get_answer(db, answer_id)
            if answer is None:
                raise NotFoundError("Answer", answer_id)
            actor = crud.get_profile(db, acting_profile_id)
            if actor is None:
                raise NotFoundError("Profile", acting_profile_id)
            if answer.author_id != actor.id and not actor.is_admin:
                raise ForbiddenError("delete answer", acting_profile_id, reason="not the author or an admin")

            if answer.accepted:
                question = crud.get_question(db, answer.question_id)
                if question is not None and question.accepted_answer_id == answer.id:
                    question.accepted_answer_id = None

            crud.delete_votes_for_answer(db, answer.id)
            crud.delete_answer_row(db, answer)

        logger.info("Profile %s deleted answer %s", acting_profile_id, answer_id)

    # ------------------------------------------------------------------
    # Voting
    # ------------------------------------------------------------------

    async def cast_vote(self, answer_id: int, voter_id: int, direction) -> VoteResult:
        """Record one vote call and return the resulting tally.

        Repeating the current direction retracts the vote, the opposite
        direction switches it.  Self-votes raise :class:`ForbiddenError`.
        """
        command = validate(VoteCommand, direction=direction)
        result, event = await asyncio.to_thread(self._cast_vote_tx, answer_id, voter_id, command.direction)
        if event is not None:
            publish_event_fire_and_forget(event, self.bus)
        return result

    @retry_on_conflict(retriable=is_concurrent_modification_or_race)
    def _cast_vote_tx(self, answer_id: int, voter_id: int, direction: VoteDirection):
        with db_session(self.session_factory) as db:
            answer = crud.get_answer(db, answer_id)
            if answer is None:
                raise NotFoundError("Answer", answer_id)
            voter = crud.get_profile(db, voter_id)
            if voter is None:
                raise NotFoundError("Profile", voter_id)
            if answer.author_id == voter_id:
                raise ForbiddenError("vote on answer", voter_id, reason="self-voting is not allowed")
            ensure_allowed(self.policy, voter, Action.CAST_VOTE)

            vote = crud.get_vote(db, answer_id, voter_id)
            previous = VoteState(vote.direction.value) if vote is not None else VoteState.NONE
            transition = VOTE_TRANSITIONS[(previous, direction)]

            answer.upvotes += transition.up_delta
            answer.downvotes += transition.down_delta

            if transition.new_state == VoteState.NONE:
                db.delete(vote)
            elif vote is None:
                crud.create_vote(db, answer_id=answer_id, voter_id=voter_id, direction=direction)
            else:
                vote.direction = VoteDirection(transition.new_state.value)

            db.flush()

            net_delta = transition.up_delta - transition.down_delta
            result = VoteResult(
                answer_id=answer.id,
                upvotes=answer.upvotes,
                downvotes=answer.downvotes,
                previous_state=previous,
                new_state=transition.new_state,
                net_delta=net_delta,
            )
            event = None
            if net_delta != 0:
                event = VoteCast(
                    answer_id=answer.id,
                    question_id=answer.question_id,
                    voter_id=voter_id,
                    answer_author_id=answer.author_id,
                    direction=direction,
                    previous_state=previous,
                    new_state=transition.new_state,
                    net_delta=net_delta,
                )

        logger.debug(
            "Vote %s by %s on answer %s: %s -> %s (+%d/-%d)",
            direction.value,
            voter_id,
            answer_id,
            previous.value,
            transition.new_state.value,
            result.upvotes,
            result.downvotes,
        )
        return result, event

    async def get_vote_state(self, answer_id: int, voter_id: int) -> VoteState:
        return await asyncio.to_thread(self._get_vote_state, answer_id, voter_id)

    def _get_vote_state(self, answer_id: int, voter_id: int) -> VoteState:
        with db_session(self.session_factory) as db:
            vote = crud.get_vote(db, answer_id, voter_id)
            return VoteState(vote.direction.value) if vote is not None else VoteState.NONE

    # ------------------------------------------------------------------
    # Acceptance
    # ------------------------------------------------------------------

    async def accept_answer(self, answer_id: int, acting_profile_id: int) -> Answer:
        """Mark *answer_id* as the accepted answer of its question.

        Only the question's author may accept.  A previously accepted answer
        of the same question loses the flag in the same transaction.
        """
        answer, event = await asyncio.to_thread(self._accept_answer_tx, answer_id, acting_profile_id)
        if event is not None:
            publish_event_fire_and_forget(event, self.bus)
        return answer

    @retry_on_conflict(retriable=is_concurrent_modification_or_race)
    def _accept_answer_tx(self, answer_id: int, acting_profile_id: int):
        with db_session(self.session_factory) as db:
            answer, question = self._load_for_acceptance(db, answer_id, acting_profile_id, "accept answer")

            if answer.accepted:
                return answer, None

            previous_id = None
            for previous in crud.get_accepted_answers(db, question.id):
                previous.accepted = False
                previous_id = previous.id
            # Clear before set so the one-accepted index never sees two rows.
            db.flush()

            answer.accepted = True
            question.accepted_answer_id = answer.id
            db.flush()

            event = AnswerAccepted(
                answer_id=answer.id,
                question_id=question.id,
                question_title=question.title,
                answer_author_id=answer.author_id,
                accepted_by_id=acting_profile_id,
                previous_answer_id=previous_id,
            )

        logger.info(
            "Answer %s accepted on question %s (previously %s)", answer_id, event.question_id, previous_id
        )
        return answer, event

    async def unaccept_answer(self, answer_id: int, acting_profile_id: int) -> Answer:
        """Clear the accepted flag.  No other answer gets accepted instead."""

        return await asyncio.to_thread(self._unaccept_answer_tx, answer_id, acting_profile_id)

    @retry_on_conflict()
    def _unaccept_answer_tx(self, answer_id: int, acting_profile_id: int) -> Answer:
        with db_session(self.session_factory) as db:
            answer, question = self._load_for_acceptance(db, answer_id, acting_profile_id, "unaccept answer")

            if not answer.accepted:
                return answer

            answer.accepted = False
            if question.accepted_answer_id == answer.id:
                question.accepted_answer_id = None
            db.flush()

        logger.info("Answer %s unaccepted on question %s", answer_id, question.id)
        return answer

    @staticmethod
    def _load_for_acceptance(db, answer_id: int, acting_profile_id: int, action: str):
        answer = crud.get_answer(db, answer_id)
        if answer is None:
            raise NotFoundError("Answer", answer_id)
        question = crud.get_question(db, answer.question_id)
        if question is None:
            raise NotFoundError("Question", answer.question_id)
        if question.author_id != acting_profile_id:
            raise ForbiddenError(action, acting_profile_id, reason="only the question's author decides acceptance")
        return answer, question


__all__ = ["AnswerEngine", "VOTE_TRANSITIONS", "answer_rank_key", "rank_answers"]
