from .answer_engine import AnswerEngine
from .identity_directory import IdentityDirectory
from .notification_dispatcher import NotificationDispatcher
from .question_store import QuestionStore

__all__ = [
    "AnswerEngine",
    "IdentityDirectory",
    "NotificationDispatcher",
    "QuestionStore",
]
