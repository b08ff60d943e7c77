"""Question bank: canonical question content keyed by question id.

Questions are normalized once at ingest (options as an ordered list of strings,
the correct answer as a zero-based index). ``parse_options`` remains for
documents written before that rule existed.
"""

import json
import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional

from database import create_document, get_db
from errors import InvalidQuestionData, NotFound
from schemas import Question, QuestionCreate, QuestionType

logger = logging.getLogger(__name__)

TRUE_FALSE_OPTIONS = ["True", "False"]


def parse_options(raw: Any) -> Optional[List[str]]:
    """Return the option list stored in ``raw`` or None if it cannot be used."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return None
    if not isinstance(raw, list):
        return None
    options = []
    for option in raw:
        if not isinstance(option, (str, int, float)) or isinstance(option, bool):
            return None
        options.append(str(option))
    return options


def parse_correct_answer(raw: Any, option_count: int) -> int:
    if isinstance(raw, bool):
        raise InvalidQuestionData("correctAnswer must be an option index")
    try:
        index = int(str(raw).strip())
    except (TypeError, ValueError):
        raise InvalidQuestionData(f"correctAnswer {raw!r} is not an option index")
    if not 0 <= index < option_count:
        raise InvalidQuestionData(
            f"correctAnswer {index} is out of range for {option_count} options"
        )
    return index


def normalize_question(payload: QuestionCreate, question_id: Optional[str] = None) -> Question:
    """Validate an incoming question and convert it to the canonical encoding."""
    if not payload.content or not payload.content.strip():
        raise InvalidQuestionData("Question content is required")

    if payload.type == QuestionType.TRUE_FALSE and not payload.options:
        options = list(TRUE_FALSE_OPTIONS)
    else:
        options = parse_options(payload.options)
        if options is None:
            raise InvalidQuestionData("Options must be a list of strings")
    options = [o.strip() for o in options]
    if any(not o for o in options):
        raise InvalidQuestionData("Options must not be empty")

    if payload.type == QuestionType.TRUE_FALSE and len(options) != 2:
        raise InvalidQuestionData("True/false questions need exactly two options")
    if payload.type == QuestionType.MULTIPLE_CHOICE and len(options) < 2:
        raise InvalidQuestionData("Multiple choice questions need at least two options")

    return Question(
        id=question_id or uuid.uuid4().hex,
        title=payload.title,
        content=payload.content.strip(),
        type=payload.type,
        options=options,
        correctAnswer=parse_correct_answer(payload.correctAnswer, len(options)),
        explanation=payload.explanation,
        difficulty=payload.difficulty,
    )


class QuestionBank:
    """Read access to questions plus the ingest path used by administrators."""

    def __init__(self, db=None):
        self.db = db if db is not None else get_db()
        self.collection = self.db["question"]

    def add_question(self, payload: QuestionCreate) -> Question:
        question = normalize_question(payload)
        create_document("question", question.model_dump(mode="json"), db=self.db)
        logger.info("Question %s added to bank", question.id)
        return question

    def get_question(self, question_id: str) -> Question:
        doc = self.collection.find_one({"id": question_id}, {"_id": 0})
        if not doc:
            raise NotFound(f"Question {question_id} not found")
        return Question(**doc)

    def get_raw_questions(self, question_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        """Stored documents by id, unvalidated."""
        ids = list(question_ids)
        cursor = self.collection.find({"id": {"$in": ids}}, {"_id": 0})
        return {doc["id"]: doc for doc in cursor}

    def get_questions(self, question_ids: Iterable[str]) -> Dict[str, Question]:
        questions = {}
        for question_id, doc in self.get_raw_questions(question_ids).items():
            try:
                questions[question_id] = Question(**doc)
            except ValueError:
                logger.error("Question %s failed validation and was skipped", question_id)
        return questions

    def answer_key(self, question_ids: Iterable[str]) -> Dict[str, int]:
        """Map question id to the index of its correct option."""
        key = {}
        for question_id, doc in self.get_raw_questions(question_ids).items():
            try:
                key[question_id] = int(str(doc.get("correctAnswer")).strip())
            except ValueError:
                logger.error("Question %s has an unreadable answer key", question_id)
        return key

    def missing_ids(self, question_ids: Iterable[str]) -> List[str]:
        """Return the subset of ``question_ids`` missing from the bank."""
        ids = list(question_ids)
        found = set(self.get_raw_questions(ids))
        return [question_id for question_id in ids if question_id not in found]
