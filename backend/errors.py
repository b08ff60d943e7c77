"""Failures raised by the attempt lifecycle.

Every error carries a human readable message that is safe to show to the user,
a category used by the UI to decide how loudly to report it, and the HTTP
status the API layer answers with.
"""

POLICY_VIOLATION = "policy_violation"
STATE_CONFLICT = "state_conflict"
DATA_INTEGRITY = "data_integrity"
NOT_FOUND = "not_found"


class QuizError(Exception):
    """Base exception for quiz and attempt errors."""

    category = POLICY_VIOLATION
    status_code = 400
    default_message = "Request could not be completed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        return {"message": self.message, "error": self.code, "category": self.category}


# Policy violations: user-correctable or informative

class NotAvailable(QuizError):
    default_message = "Quiz is not active"


class NotYetOpen(QuizError):
    default_message = "Quiz has not started yet"


class StartWindowExpired(QuizError):
    default_message = "Quiz start window has expired"


class Expired(QuizError):
    default_message = "Quiz has expired"


class Forbidden(QuizError):
    status_code = 403
    default_message = "You don't have access to this quiz"


class AttemptLimitReached(QuizError):
    default_message = "Maximum attempts reached"

    def __init__(self, count: int, limit: int):
        self.count = count
        self.limit = limit
        super().__init__(
            f"Maximum attempts reached. You have completed {count}/{limit} attempts."
        )


# Lookups

class NotFound(QuizError):
    category = NOT_FOUND
    status_code = 404
    default_message = "Not found"


# State conflicts: usually a double click or a race, never a crash

class NotInProgress(QuizError):
    category = STATE_CONFLICT
    status_code = 409
    default_message = "Attempt is not in progress"


class AlreadySubmitted(QuizError):
    category = STATE_CONFLICT
    status_code = 409
    default_message = "Attempt has already been submitted"


# Data integrity

class InvalidQuestion(QuizError):
    category = DATA_INTEGRITY
    default_message = "Question does not belong to this quiz"


class InvalidQuestionData(QuizError):
    category = DATA_INTEGRITY
    status_code = 422
    default_message = "Question data is invalid"


class InvalidQuizData(QuizError):
    category = DATA_INTEGRITY
    status_code = 422
    default_message = "Quiz data is invalid"


class NoValidQuestions(QuizError):
    category = DATA_INTEGRITY
    status_code = 422
    default_message = "No valid questions found for this quiz"


class StartConflict(QuizError):
    category = STATE_CONFLICT
    status_code = 409
    default_message = "Another start request is still being processed, please retry"
