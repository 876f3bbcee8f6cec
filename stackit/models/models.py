# SQLAlchemy core imports
from sqlalchemy import Boolean
from sqlalchemy import CheckConstraint
from sqlalchemy import Column
from sqlalchemy import DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey
from sqlalchemy import Index
from sqlalchemy import Integer
from sqlalchemy import String
from sqlalchemy import Text
from sqlalchemy import UniqueConstraint
from sqlalchemy import text
from sqlalchemy.orm import relationship

# Local helpers / enums
from stackit.database import Base
from stackit.models.enums import NotificationKind
from stackit.models.enums import UserRole
from stackit.models.enums import VoteDirection
from stackit.utils.time import utc_now_naive

USERNAME_MAX_LENGTH = 50

# ---------------------------------------------------------------------------
# Identity – Profile table
# ---------------------------------------------------------------------------


class Profile(Base):
    """Registered account.

    ``username`` and ``email`` uniqueness is enforced by the table itself so
    that two racing registrations cannot both commit.
    """

    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(USERNAME_MAX_LENGTH), unique=True, nullable=False, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    # Opaque credential – the core never inspects it.
    password_hash = Column(String, nullable=False)

    # Role / permission level – backed by :class:`stackit.models.enums.UserRole`.
    role = Column(
        SAEnum(UserRole, native_enum=False, name="user_role_enum"),
        nullable=False,
        default=UserRole.USER.value,
    )

    created_at = Column(DateTime, nullable=False, default=utc_now_naive)

    @property
    def is_admin(self) -> bool:  # noqa: D401 – simple boolean accessor
        """Return *True* for profiles with the ``ADMIN`` role."""

        return self.role == UserRole.ADMIN

    def __repr__(self) -> str:
        return f"<Profile id={self.id} username={self.username!r} role={self.role}>"


# ---------------------------------------------------------------------------
# Questions
# ---------------------------------------------------------------------------


class Question(Base):
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    body = Column(Text, nullable=False)

    author_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    author = relationship("Profile", lazy="joined")

    # Pointer to the currently accepted answer.  No FK: answers already point
    # at their question and a two-way FK would make table creation cyclic.
    accepted_answer_id = Column(Integer, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utc_now_naive)
    updated_at = Column(DateTime, nullable=False, default=utc_now_naive, onupdate=utc_now_naive)

    # Optimistic concurrency – bumped on every UPDATE of the row.
    version = Column(Integer, nullable=False)

    # Tags are part of the question aggregate, so the ORM cascade is fine here.
    tag_rows = relationship(
        "QuestionTag",
        back_populates="question",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def tags(self) -> set[str]:
        return {row.tag for row in self.tag_rows}

    def __repr__(self) -> str:
        return f"<Question id={self.id} title={self.title!r}>"


class QuestionTag(Base):
    __tablename__ = "question_tags"

    id = Column(Integer, primary_key=True)
    question_id = Column(Integer, ForeignKey("questions.id"), nullable=False, index=True)
    # Case-sensitive; stored exactly as given (after whitespace strip).
    tag = Column(String, nullable=False, index=True)

    question = relationship("Question", back_populates="tag_rows")

    __table_args__ = (UniqueConstraint("question_id", "tag", name="uq_question_tag"),)


# ---------------------------------------------------------------------------
# Answers & votes
# ---------------------------------------------------------------------------


class Answer(Base):
    __tablename__ = "answers"

    id = Column(Integer, primary_key=True, index=True)
    content = Column(Text, nullable=False)

    author_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    author = relationship("Profile", lazy="joined")

    question_id = Column(Integer, ForeignKey("questions.id"), nullable=False, index=True)

    upvotes = Column(Integer, nullable=False, default=0)
    downvotes = Column(Integer, nullable=False, default=0)
    accepted = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, default=utc_now_naive)
    updated_at = Column(DateTime, nullable=False, default=utc_now_naive, onupdate=utc_now_naive)

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("upvotes >= 0", name="ck_answers_upvotes_non_negative"),
        CheckConstraint("downvotes >= 0", name="ck_answers_downvotes_non_negative"),
        # Storage-level guard: at most one accepted answer per question.
        Index(
            "uq_answers_one_accepted_per_question",
            "question_id",
            unique=True,
            sqlite_where=text("accepted = 1"),
            postgresql_where=text("accepted"),
        ),
    )

    @property
    def score(self) -> int:
        return self.upvotes - self.downvotes

    def __repr__(self) -> str:
        return f"<Answer id={self.id} question_id={self.question_id} +{self.upvotes}/-{self.downvotes}>"


class Vote(Base):
    """Current vote of one profile on one answer.  No row means ``NONE``."""

    __tablename__ = "votes"

    id = Column(Integer, primary_key=True)
    answer_id = Column(Integer, ForeignKey("answers.id"), nullable=False, index=True)
    voter_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    direction = Column(
        SAEnum(VoteDirection, native_enum=False, name="vote_direction_enum"),
        nullable=False,
    )
    updated_at = Column(DateTime, nullable=False, default=utc_now_naive, onupdate=utc_now_naive)

    __table_args__ = (UniqueConstraint("answer_id", "voter_id", name="uq_vote_answer_voter"),)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)

    # Addressee – the owning profile.
    profile_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)

    kind = Column(
        SAEnum(NotificationKind, native_enum=False, name="notification_kind_enum"),
        nullable=False,
    )
    message = Column(String, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)

    # Plain references to the triggering entity; they may outlive it.
    question_id = Column(Integer, nullable=True)
    answer_id = Column(Integer, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utc_now_naive)

    def __repr__(self) -> str:
        return f"<Notification id={self.id} profile_id={self.profile_id} kind={self.kind}>"
