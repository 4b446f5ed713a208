"""Exceptions raised by the quiz attempt flow.

Each error carries a machine readable ``code`` and the HTTP status the
API responds with.  ``app.main`` converts them into JSON responses of the
same ``{"code", "message"}`` shape the auth routes use.
"""


class QuizError(Exception):
    """Base class for all attempt-flow errors."""

    code = "quiz_error"
    status_code = 400

    def __init__(self, message: str | None = None):
        super().__init__(message or self.__class__.__doc__)

    @property
    def message(self) -> str:
        return str(self)


class NotFound(QuizError):
    """Requested record does not exist."""

    code = "not_found"
    status_code = 404


class InvalidOption(QuizError):
    """Selected option does not belong to the question."""

    code = "invalid_option"
    status_code = 400


class InvalidQuiz(QuizError):
    """Quiz has no questions and cannot be attempted."""

    code = "invalid_quiz"
    status_code = 400


class AlreadyCompleted(QuizError):
    """Quiz has already been completed and retakes are disabled."""

    code = "already_completed"
    status_code = 409


class AttemptNotInProgress(QuizError):
    """Attempt is not in progress."""

    code = "attempt_not_in_progress"
    status_code = 409


class IncompleteAttempt(QuizError):
    """All questions must be answered before submitting."""

    code = "incomplete_attempt"
    status_code = 400


class PersistenceError(QuizError):
    """The store could not complete the request."""

    code = "persistence_error"
    status_code = 503
