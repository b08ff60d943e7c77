"""Quiz definitions: policy plus the ordered question list with points."""

import logging
import random
import string
from typing import List, Optional

from database import as_utc, create_document, get_db, get_documents, utcnow
from errors import InvalidQuizData, NotFound
from question_bank import QuestionBank
from schemas import EnrollmentMode, QuizCreate, QuizDefinition, QuizQuestion, QuizStatus

logger = logging.getLogger(__name__)


def generate_quiz_code() -> str:
    return ''.join(random.choices(string.ascii_uppercase + string.digits, k=6))


def total_points(quiz: QuizDefinition) -> float:
    return float(sum(qq.points for qq in quiz.questions))


def validate_quiz(data: QuizCreate) -> None:
    if data.timeLimit <= 0:
        raise InvalidQuizData("timeLimit must be a positive number of minutes")
    if data.maxAttempts is not None and data.maxAttempts <= 0:
        raise InvalidQuizData("maxAttempts must be positive, or omitted for unlimited")
    if data.negativePoints < 0:
        raise InvalidQuizData("negativePoints must not be negative")
    start, end = as_utc(data.startTime), as_utc(data.endTime)
    if start and end and end <= start:
        raise InvalidQuizData("endTime must be after startTime")
    seen = set()
    for qq in data.questions:
        if qq.points <= 0:
            raise InvalidQuizData(f"Question {qq.questionId} must be worth more than 0 points")
        if qq.questionId in seen:
            raise InvalidQuizData(f"Question {qq.questionId} appears more than once")
        seen.add(qq.questionId)


def ordered_questions(data: QuizCreate) -> List[QuizQuestion]:
    """Renumber the question list to a dense 1..N order.

    Entries without an explicit order keep their position after the ordered ones.
    """
    indexed = list(enumerate(data.questions))
    indexed.sort(key=lambda item: (item[1].order is None, item[1].order or 0, item[0]))
    return [
        QuizQuestion(questionId=qq.questionId, order=position, points=qq.points)
        for position, (_, qq) in enumerate(indexed, start=1)
    ]


class QuizStore:
    def __init__(self, db=None, bank: Optional[QuestionBank] = None):
        self.db = db if db is not None else get_db()
        self.collection = self.db["quiz"]
        self.bank = bank or QuestionBank(self.db)

    def create_quiz(self, data: QuizCreate, created_by: Optional[str] = None) -> QuizDefinition:
        validate_quiz(data)
        missing = self.bank.missing_ids(qq.questionId for qq in data.questions)
        if missing:
            raise InvalidQuizData(f"Unknown question ids: {', '.join(missing)}")

        code = generate_quiz_code()
        while self.collection.find_one({"id": code}):
            code = generate_quiz_code()

        quiz = QuizDefinition(
            id=code,
            code=code,
            title=data.title,
            description=data.description,
            timeLimit=data.timeLimit,
            difficulty=data.difficulty,
            status=data.status,
            negativeMarking=data.negativeMarking,
            negativePoints=data.negativePoints if data.negativeMarking else 0.0,
            randomOrder=data.randomOrder,
            maxAttempts=data.maxAttempts,
            showAnswers=data.showAnswers,
            checkAnswerEnabled=data.checkAnswerEnabled,
            startTime=as_utc(data.startTime),
            endTime=as_utc(data.endTime),
            enrollmentMode=EnrollmentMode.OPEN,
            questions=ordered_questions(data),
            createdBy=created_by,
        )
        doc = quiz.model_dump()
        for key in ("difficulty", "status", "enrollmentMode"):
            doc[key] = doc[key].value
        create_document("quiz", doc, db=self.db)
        logger.info("Quiz %s created with %d questions", quiz.id, len(quiz.questions))
        return quiz

    def get_quiz(self, quiz_id: str) -> QuizDefinition:
        doc = self.collection.find_one({"id": quiz_id}, {"_id": 0})
        if not doc:
            raise NotFound("Quiz not found")
        return QuizDefinition(**doc)

    def set_status(self, quiz_id: str, status: QuizStatus) -> QuizDefinition:
        result = self.collection.update_one(
            {"id": quiz_id}, {"$set": {"status": status.value, "updatedAt": utcnow()}}
        )
        if result.matched_count == 0:
            raise NotFound("Quiz not found")
        logger.info("Quiz %s is now %s", quiz_id, status.value)
        return self.get_quiz(quiz_id)

    def list_quizzes(self, status: Optional[QuizStatus] = None, limit: int = 500) -> List[QuizDefinition]:
        filter_dict = {"status": status.value} if status else {}
        return [
            QuizDefinition(**{k: v for k, v in doc.items() if k != "_id"})
            for doc in get_documents("quiz", filter_dict, limit=limit, db=self.db)
        ]
