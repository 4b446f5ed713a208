"""Convenience imports for all schema classes used by the API."""

from .user import (
    UserCreate,
    UserResponse,
    UserMeResponse,
    UserLogin,
)
from .quiz import (
    AttemptSummary,
    QuizListItem,
    QuizDetail,
    OptionRead,
    QuestionRead,
)
from .attempt import (
    AttemptRead,
    AnswerSelect,
    AnswerSaved,
    SubmitRequest,
    AttemptResult,
    QuizAttemptRow,
)
from .settings import SettingsRead, SettingsUpdate
