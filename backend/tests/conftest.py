from datetime import datetime

import mongomock
import pytest

import database
from attempts import AttemptService
from enrollment import EnrollmentLedger
from question_bank import QuestionBank
from quizzes import QuizStore
from schemas import QuestionCreate, QuizCreate, QuizQuestionCreate, QuizStatus
from stats_cache import stats_cache

NOW = datetime(2026, 3, 2, 9, 0, 0)
STUDENT = "student-1"


@pytest.fixture
def db(monkeypatch):
    test_db = mongomock.MongoClient()["quiz_test"]
    monkeypatch.setattr(database, "_db", test_db)
    database.ensure_indexes(test_db)
    stats_cache.clear()
    yield test_db
    stats_cache.clear()


@pytest.fixture
def bank(db):
    return QuestionBank(db)


@pytest.fixture
def store(db, bank):
    return QuizStore(db, bank)


@pytest.fixture
def ledger(db):
    return EnrollmentLedger(db)


@pytest.fixture
def service(db, store, ledger):
    return AttemptService(db, quizzes=store, ledger=ledger)


@pytest.fixture
def make_question(bank):
    """Questions default to options ["3", "4", "5"] with "4" (index 1) correct."""

    def _make(content="What is 2 + 2?", options=("3", "4", "5"), correct=1, **kwargs):
        return bank.add_question(QuestionCreate(
            title=kwargs.pop("title", "Arithmetic"),
            content=content,
            options=list(options),
            correctAnswer=correct,
            **kwargs,
        ))

    return _make


@pytest.fixture
def make_quiz(store, make_question):
    def _make(points=(1.0, 2.0), status=QuizStatus.ACTIVE, time_limit=10, **kwargs):
        questions = [make_question(content=f"Question {i + 1}") for i in range(len(points))]
        return store.create_quiz(QuizCreate(
            title="Sample quiz",
            timeLimit=time_limit,
            status=status,
            questions=[
                QuizQuestionCreate(questionId=q.id, points=p)
                for q, p in zip(questions, points)
            ],
            **kwargs,
        ))

    return _make
