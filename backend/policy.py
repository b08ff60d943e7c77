"""Rules deciding whether a student may start an attempt right now."""

from datetime import datetime, timedelta
from typing import Tuple

from config import START_GRACE_MINUTES
from errors import (
    AttemptLimitReached,
    Expired,
    Forbidden,
    NotAvailable,
    NotYetOpen,
    StartWindowExpired,
)
from schemas import QuizDefinition, QuizStatus


def check_available(quiz: QuizDefinition) -> None:
    if quiz.status != QuizStatus.ACTIVE:
        raise NotAvailable()


def check_schedule(quiz: QuizDefinition, now: datetime, grace_minutes: int = START_GRACE_MINUTES) -> None:
    if quiz.startTime:
        if now < quiz.startTime:
            raise NotYetOpen()
        if now > quiz.startTime + timedelta(minutes=grace_minutes):
            raise StartWindowExpired(
                "Quiz start window has expired. You must start within "
                f"{grace_minutes} minutes of the start time."
            )
    if quiz.endTime and now > quiz.endTime:
        raise Expired()


def check_enrollment(quiz: QuizDefinition, user_id: str, ledger) -> None:
    if not ledger.may_attempt(quiz, user_id):
        raise Forbidden()


def check_attempt_limit(quiz: QuizDefinition, submitted_count: int) -> None:
    if quiz.maxAttempts is not None and submitted_count >= quiz.maxAttempts:
        raise AttemptLimitReached(submitted_count, quiz.maxAttempts)


def time_remaining(quiz: QuizDefinition, started_at: datetime, now: datetime) -> int:
    """Seconds left in the attempt budget, never negative."""
    elapsed = int((now - started_at).total_seconds())
    return max(0, quiz.timeLimit * 60 - elapsed)


def quiz_availability(
    quiz: QuizDefinition,
    now: datetime,
    submitted_count: int,
    has_in_progress: bool,
) -> Tuple[bool, str]:
    """Return (can attempt, status label) for the student quiz listing.

    Past the start grace window an attempt already in progress still reports
    ``(True, "in_progress")``: the student continues it through the active
    attempt view. A new start is refused with StartWindowExpired.
    """
    can_attempt = True
    status = "not_started"
    if has_in_progress:
        status = "in_progress"
    elif submitted_count > 0:
        status = "completed"
        if quiz.maxAttempts is not None and submitted_count >= quiz.maxAttempts:
            can_attempt = False

    if quiz.startTime and quiz.startTime > now:
        return False, "not_started"
    if quiz.endTime and quiz.endTime < now:
        return False, "expired"
    # Late arrivals can still resume, but not start
    if quiz.startTime and now > quiz.startTime + timedelta(minutes=START_GRACE_MINUTES) and not has_in_progress:
        can_attempt = False
    return can_attempt, status
