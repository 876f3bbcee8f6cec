from .models import Answer
from .models import Notification
from .models import Profile
from .models import Question
from .models import QuestionTag
from .models import Vote

__all__ = ["Answer", "Notification", "Profile", "Question", "QuestionTag", "Vote"]
