"""Low-level persistence helpers.

Plain functions taking an open :class:`~sqlalchemy.orm.Session`.  They never
commit – the caller's unit of work (``stackit.database.db_session``) decides
when the transaction ends – but some of them ``flush`` so constraint
violations surface inside the caller's retry/except blocks.

Cascades are spelled out as separate functions (``delete_*_for_*``) instead
of ORM cascade annotations so each ownership edge can be exercised and
tested on its own.
"""

from typing import Iterable
from typing import List
from typing import Optional

from sqlalchemy import func
from sqlalchemy import select
from sqlalchemy.orm import Session

from stackit.models.enums import NotificationKind
from stackit.models.enums import UserRole
from stackit.models.enums import VoteDirection
from stackit.models.models import Answer
from stackit.models.models import Notification
from stackit.models.models import Profile
from stackit.models.models import Question
from stackit.models.models import QuestionTag
from stackit.models.models import Vote

# NOTE: return annotations use ``Optional[Model]`` rather than ``Model | None``
# to stay clear of the declarative metaclass when annotations get evaluated.


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------


def create_profile(
    db: Session,
    *,
    username: str,
    email: str,
    password_hash: str,
    role: UserRole = UserRole.USER,
) -> Profile:
    """Insert a profile and flush so unique violations raise here."""

    profile = Profile(username=username, email=email, password_hash=password_hash, role=role)
    db.add(profile)
    db.flush()
    return profile


def get_profile(db: Session, profile_id: int) -> Optional[Profile]:
    return db.get(Profile, profile_id)


def get_profile_by_username(db: Session, username: str) -> Optional[Profile]:
    return db.query(Profile).filter(Profile.username == username).first()


def get_profile_by_email(db: Session, email: str) -> Optional[Profile]:
    return db.query(Profile).filter(Profile.email == email).first()


def delete_profile_row(db: Session, profile: Profile) -> None:
    """Delete only the profile row; owned rows must already be gone."""

    db.delete(profile)
    db.flush()


# ---------------------------------------------------------------------------
# Questions
# ---------------------------------------------------------------------------


def create_question(db: Session, *, author_id: int, title: str, body: str, tags: Iterable[str] = ()) -> Question:
    question = Question(author_id=author_id, title=title, body=body)
    question.tag_rows = [QuestionTag(tag=tag) for tag in sorted(set(tags))]
    db.add(question)
    db.flush()
    return question


def get_question(db: Session, question_id: int) -> Optional[Question]:
    return db.get(Question, question_id)


def get_questions_by_author(db: Session, author_id: int) -> List[Question]:
    return db.query(Question).filter(Question.author_id == author_id).order_by(Question.id).all()


def get_questions_by_tag(db: Session, tag: str) -> List[Question]:
    """Questions whose tag set contains *tag* (exact, case-sensitive)."""

    # ``==`` on SQLite TEXT is case-sensitive (BINARY collation).
    tagged = select(QuestionTag.question_id).where(QuestionTag.tag == tag)
    return db.query(Question).filter(Question.id.in_(tagged)).order_by(Question.id).all()


def set_question_tags(db: Session, question: Question, tags: Iterable[str]) -> None:
    """Replace the tag set, keeping rows for tags that stay."""

    wanted = set(tags)
    question.tag_rows = [row for row in question.tag_rows if row.tag in wanted]
    present = {row.tag for row in question.tag_rows}
    for tag in sorted(wanted - present):
        question.tag_rows.append(QuestionTag(tag=tag))


def delete_question_row(db: Session, question: Question) -> None:
    """Delete the question row (and its tag rows); answers must already be gone.

    The ORM ``DELETE`` is guarded by the version counter, so a concurrent
    modification of the question raises ``StaleDataError`` here.
    """

    db.delete(question)
    db.flush()


def delete_answers_for_question(db: Session, question_id: int) -> int:
    """Cascade step question -> answers (and their votes).  Returns answers deleted."""

    answer_ids = select(Answer.id).where(Answer.question_id == question_id)
    db.query(Vote).filter(Vote.answer_id.in_(answer_ids)).delete(synchronize_session=False)
    return db.query(Answer).filter(Answer.question_id == question_id).delete(synchronize_session=False)


def delete_questions_by_author(db: Session, author_id: int) -> int:
    """Cascade step profile -> questions (each with its answers)."""

    count = 0
    for question in get_questions_by_author(db, author_id):
        delete_answers_for_question(db, question.id)
        delete_question_row(db, question)
        count += 1
    return count


# ---------------------------------------------------------------------------
# Answers
# ---------------------------------------------------------------------------


def create_answer(db: Session, *, question_id: int, author_id: int, content: str) -> Answer:
    answer = Answer(question_id=question_id, author_id=author_id, content=content, upvotes=0, downvotes=0)
    db.add(answer)
    db.flush()
    return answer


def get_answer(db: Session, answer_id: int) -> Optional[Answer]:
    return db.get(Answer, answer_id)


def get_answers_for_question(db: Session, question_id: int) -> List[Answer]:
    return db.query(Answer).filter(Answer.question_id == question_id).order_by(Answer.id).all()


def get_answers_by_author(db: Session, author_id: int) -> List[Answer]:
    return db.query(Answer).filter(Answer.author_id == author_id).order_by(Answer.id).all()


def get_accepted_answers(db: Session, question_id: int) -> List[Answer]:
    """Accepted answers of a question – a list so callers can assert ``len <= 1``."""

    return db.query(Answer).filter(Answer.question_id == question_id, Answer.accepted.is_(True)).all()


def delete_votes_for_answer(db: Session, answer_id: int) -> int:
    """Cascade step answer -> votes."""

    return db.query(Vote).filter(Vote.answer_id == answer_id).delete(synchronize_session=False)


def delete_answer_row(db: Session, answer: Answer) -> None:
    db.delete(answer)
    db.flush()


def delete_answers_by_author(db: Session, author_id: int) -> int:
    """Cascade step profile -> answers.

    Clears the accepted pointer of any question whose accepted answer goes
    away with the profile.
    """

    count = 0
    for answer in get_answers_by_author(db, author_id):
        if answer.accepted:
            question = get_question(db, answer.question_id)
            if question is not None and question.accepted_answer_id == answer.id:
                question.accepted_answer_id = None
        delete_votes_for_answer(db, answer.id)
        delete_answer_row(db, answer)
        count += 1
    return count


# ---------------------------------------------------------------------------
# Votes
# ---------------------------------------------------------------------------


def get_vote(db: Session, answer_id: int, voter_id: int) -> Optional[Vote]:
    return db.query(Vote).filter(Vote.answer_id == answer_id, Vote.voter_id == voter_id).first()


def create_vote(db: Session, *, answer_id: int, voter_id: int, direction: VoteDirection) -> Vote:
    vote = Vote(answer_id=answer_id, voter_id=voter_id, direction=direction)
    db.add(vote)
    return vote


def delete_votes_by_voter(db: Session, voter_id: int) -> int:
    """Cascade step profile -> votes cast.

    Counters of the affected answers are rolled back so tallies keep
    matching the stored vote rows.
    """

    votes = db.query(Vote).filter(Vote.voter_id == voter_id).all()
    for vote in votes:
        answer = get_answer(db, vote.answer_id)
        if answer is not None:
            if vote.direction == VoteDirection.UP:
                answer.upvotes -= 1
            else:
                answer.downvotes -= 1
        db.delete(vote)
    db.flush()
    return len(votes)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


def create_notification(
    db: Session,
    *,
    profile_id: int,
    kind: NotificationKind,
    message: str,
    question_id: Optional[int] = None,
    answer_id: Optional[int] = None,
) -> Notification:
    notification = Notification(
        profile_id=profile_id,
        kind=kind,
        message=message,
        question_id=question_id,
        answer_id=answer_id,
        is_read=False,
    )
    db.add(notification)
    db.flush()
    return notification


def get_notification(db: Session, notification_id: int) -> Optional[Notification]:
    return db.get(Notification, notification_id)


def get_notifications(db: Session, profile_id: int, *, unread_only: bool = False) -> List[Notification]:
    """Newest first, like the inbox renders them."""

    query = db.query(Notification).filter(Notification.profile_id == profile_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).all()


def count_unread_notifications(db: Session, profile_id: int) -> int:
    return (
        db.query(func.count(Notification.id))
        .filter(Notification.profile_id == profile_id, Notification.is_read.is_(False))
        .scalar()
    )


def mark_all_notifications_read(db: Session, profile_id: int) -> int:
    return (
        db.query(Notification)
        .filter(Notification.profile_id == profile_id, Notification.is_read.is_(False))
        .update({Notification.is_read: True}, synchronize_session=False)
    )


def delete_notification_row(db: Session, notification: Notification) -> None:
    db.delete(notification)
    db.flush()


def delete_notifications_for_profile(db: Session, profile_id: int) -> int:
    """Cascade step profile -> notifications."""

    return db.query(Notification).filter(Notification.profile_id == profile_id).delete(synchronize_session=False)
