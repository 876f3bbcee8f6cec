"""Domain event payloads.

Each event is an immutable fact tagged with its :class:`EventType`, so a
subscriber can receive any of them and still tell them apart.  They carry
plain ids and scalars only – never ORM rows – because they cross from the
committing transaction into the notification handlers' own sessions.
"""

from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from typing import Optional
from typing import Union

from stackit.models.enums import VoteDirection
from stackit.models.enums import VoteState
from stackit.utils.time import utc_now

from .event_bus import EventType


@dataclass(frozen=True)
class AnswerPosted:
    answer_id: int
    question_id: int
    question_title: str
    question_author_id: int
    answer_author_id: int
    occurred_at: datetime = field(default_factory=utc_now)
    event_type: EventType = field(default=EventType.ANSWER_POSTED, init=False)


@dataclass(frozen=True)
class AnswerAccepted:
    answer_id: int
    question_id: int
    question_title: str
    answer_author_id: int
    accepted_by_id: int
    # Answer that lost its accepted flag in the same transaction, if any.
    previous_answer_id: Optional[int] = None
    occurred_at: datetime = field(default_factory=utc_now)
    event_type: EventType = field(default=EventType.ANSWER_ACCEPTED, init=False)


@dataclass(frozen=True)
class VoteCast:
    answer_id: int
    question_id: int
    voter_id: int
    answer_author_id: int
    direction: VoteDirection
    previous_state: VoteState
    new_state: VoteState
    # Change of ``upvotes - downvotes`` caused by this call (-2 … +2).
    net_delta: int
    occurred_at: datetime = field(default_factory=utc_now)
    event_type: EventType = field(default=EventType.VOTE_CAST, init=False)


DomainEvent = Union[AnswerPosted, AnswerAccepted, VoteCast]

__all__ = ["AnswerAccepted", "AnswerPosted", "DomainEvent", "VoteCast"]
