from datetime import datetime
from typing import List
from typing import Optional
from typing import Set

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import EmailStr
from pydantic import Field
from pydantic import ValidationError as PydanticValidationError
from pydantic import field_validator

from stackit.errors import ValidationError
from stackit.models.enums import NotificationKind
from stackit.models.enums import UserRole
from stackit.models.enums import VoteDirection
from stackit.models.enums import VoteState
from stackit.models.models import USERNAME_MAX_LENGTH


def _not_blank(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be blank")
    return value


def normalise_tags(tags) -> Set[str]:
    """Strip, drop empties and de-duplicate.  Case is preserved."""

    if tags is None:
        return set()
    if isinstance(tags, str):
        tags = [tags]
    return {tag.strip() for tag in tags if tag and tag.strip()}


def validate(schema: type, **data):
    """Build *schema* from *data*, translating pydantic errors to ours."""

    try:
        return schema(**data)
    except PydanticValidationError as exc:
        problems = [
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
        ]
        raise ValidationError(f"Invalid {schema.__name__}: {'; '.join(problems)}", errors=problems) from exc


# ------------------------------------------------------------
# Command schemas (input validation)
# ------------------------------------------------------------


class ProfileCreate(BaseModel):
    username: str = Field(min_length=1, max_length=USERNAME_MAX_LENGTH)
    email: EmailStr
    password_hash: str = Field(min_length=1)
    role: UserRole = UserRole.USER

    @field_validator("username")
    @classmethod
    def username_has_no_outer_spaces(cls, value: str) -> str:
        if value != value.strip():
            raise ValueError("must not start or end with whitespace")
        return value


class QuestionCreate(BaseModel):
    title: str
    body: str
    tags: Set[str] = Field(default_factory=set)

    @field_validator("title", "body")
    @classmethod
    def not_blank(cls, value: str) -> str:
        return _not_blank(value)

    @field_validator("tags", mode="before")
    @classmethod
    def tags_normalised(cls, value):
        return normalise_tags(value)


class QuestionUpdate(BaseModel):
    title: Optional[str] = None
    body: Optional[str] = None
    tags: Optional[Set[str]] = None

    @field_validator("title", "body")
    @classmethod
    def optional_not_blank(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else _not_blank(value)

    @field_validator("tags", mode="before")
    @classmethod
    def tags_normalised(cls, value):
        return None if value is None else normalise_tags(value)


class AnswerCreate(BaseModel):
    content: str

    @field_validator("content")
    @classmethod
    def not_blank(cls, value: str) -> str:
        return _not_blank(value)


class VoteCommand(BaseModel):
    direction: VoteDirection

    @field_validator("direction", mode="before")
    @classmethod
    def direction_upper(cls, value):
        return value.upper() if isinstance(value, str) else value


# ------------------------------------------------------------
# Read models (what the API layer renders)
# ------------------------------------------------------------


class ProfileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    role: UserRole
    created_at: datetime


class QuestionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    body: str
    author_id: int
    tags: List[str]
    accepted_answer_id: Optional[int] = None
    created_at: datetime

    @field_validator("tags", mode="before")
    @classmethod
    def tags_sorted(cls, value):
        return sorted(value)


class AnswerOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    question_id: int
    author_id: int
    content: str
    upvotes: int
    downvotes: int
    score: int
    accepted: bool
    created_at: datetime


class VoteResult(BaseModel):
    answer_id: int
    upvotes: int
    downvotes: int
    previous_state: VoteState
    new_state: VoteState
    net_delta: int


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    profile_id: int
    kind: NotificationKind
    message: str
    is_read: bool
    question_id: Optional[int] = None
    answer_id: Optional[int] = None
    created_at: datetime
