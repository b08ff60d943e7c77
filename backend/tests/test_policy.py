from datetime import timedelta

import pytest

from conftest import NOW
from errors import AttemptLimitReached, Expired, NotAvailable, NotYetOpen, StartWindowExpired
from policy import (
    check_attempt_limit,
    check_available,
    check_schedule,
    quiz_availability,
    time_remaining,
)
from schemas import QuizDefinition, QuizStatus


def quiz(**kwargs):
    kwargs.setdefault("status", QuizStatus.ACTIVE)
    return QuizDefinition(id="QUIZ01", code="QUIZ01", title="Policy", timeLimit=10, **kwargs)


@pytest.mark.parametrize("status", [QuizStatus.DRAFT, QuizStatus.INACTIVE])
def test_only_active_quizzes_are_available(status):
    with pytest.raises(NotAvailable):
        check_available(quiz(status=status))


def test_start_window():
    q = quiz(startTime=NOW)
    check_schedule(q, NOW)
    check_schedule(q, NOW + timedelta(minutes=29))
    check_schedule(q, NOW + timedelta(minutes=30))
    with pytest.raises(StartWindowExpired, match="30 minutes"):
        check_schedule(q, NOW + timedelta(minutes=31))


def test_not_yet_open():
    with pytest.raises(NotYetOpen):
        check_schedule(quiz(startTime=NOW + timedelta(seconds=1)), NOW)


def test_end_time_wins_inside_start_window():
    q = quiz(startTime=NOW - timedelta(minutes=10), endTime=NOW - timedelta(minutes=1))
    with pytest.raises(Expired):
        check_schedule(q, NOW)


def test_unscheduled_quiz_is_always_open():
    check_schedule(quiz(), NOW + timedelta(days=365))


def test_attempt_limit():
    check_attempt_limit(quiz(maxAttempts=2), 1)
    with pytest.raises(AttemptLimitReached) as excinfo:
        check_attempt_limit(quiz(maxAttempts=2), 2)
    assert "2/2" in excinfo.value.message


def test_unlimited_attempts():
    check_attempt_limit(quiz(maxAttempts=None), 1000)


def test_time_remaining():
    q = quiz()
    assert time_remaining(q, NOW, NOW) == 600
    assert time_remaining(q, NOW, NOW + timedelta(seconds=90)) == 510
    assert time_remaining(q, NOW, NOW + timedelta(minutes=15)) == 0


def test_availability_labels():
    assert quiz_availability(quiz(), NOW, 0, False) == (True, "not_started")
    assert quiz_availability(quiz(), NOW, 0, True) == (True, "in_progress")
    assert quiz_availability(quiz(maxAttempts=1), NOW, 1, False) == (False, "completed")
    assert quiz_availability(quiz(endTime=NOW - timedelta(seconds=1)), NOW, 0, False) == (False, "expired")
    assert quiz_availability(quiz(startTime=NOW + timedelta(hours=1)), NOW, 0, False) == (False, "not_started")


def test_late_arrival_can_resume_but_not_start():
    q = quiz(startTime=NOW - timedelta(hours=1))
    assert quiz_availability(q, NOW, 0, False) == (False, "not_started")
    assert quiz_availability(q, NOW, 0, True) == (True, "in_progress")
