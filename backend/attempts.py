"""Attempt lifecycle: start or resume, answer, submit.

An attempt moves NONE -> IN_PROGRESS -> SUBMITTED. There is no background
clock; time remaining is always recomputed from ``startedAt`` and the quiz's
time limit, and whichever request submits first wins.

At most one IN_PROGRESS attempt exists per (quiz, student). That is enforced by
the ``attempt_slot`` collection: a start has to insert the slot document keyed
by ``"{quizId}:{userId}"`` before it may insert the attempt, and Mongo's ``_id``
uniqueness makes only one insert succeed. The loser resumes the winner's
attempt. Submission and answer recording are conditional updates on
``status == IN_PROGRESS`` so a submitted attempt is never written again.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from database import get_db, utcnow
from enrollment import EnrollmentLedger
from errors import (
    AlreadySubmitted,
    InvalidQuestion,
    NoValidQuestions,
    NotAvailable,
    NotFound,
    NotInProgress,
    QuizError,
    StartConflict,
)
from policy import (
    check_attempt_limit,
    check_available,
    check_enrollment,
    check_schedule,
    quiz_availability,
    time_remaining,
)
from question_bank import QuestionBank, parse_options
from quizzes import QuizStore, total_points
from schemas import (
    Attempt,
    AttemptHistory,
    AttemptStatus,
    AttemptSummary,
    AttemptView,
    AvailableQuiz,
    EnrollmentMode,
    QuestionView,
    QuizDefinition,
    QuizStatus,
    QuizView,
    StartResult,
    SubmitResult,
)
from scoring import display_percentage, normalize_answer, score_attempt

logger = logging.getLogger(__name__)

IN_PROGRESS = AttemptStatus.IN_PROGRESS.value
SUBMITTED = AttemptStatus.SUBMITTED.value

# A slot whose attempt row never appeared is considered abandoned after this long
STALE_SLOT_SECONDS = 30
START_RETRIES = 3


def slot_key(quiz_id: str, user_id: str) -> str:
    return f"{quiz_id}:{user_id}"


def to_object_id(attempt_id: str) -> ObjectId:
    try:
        return ObjectId(attempt_id)
    except (InvalidId, TypeError):
        raise NotFound("Attempt not found")


def attempt_summary(doc: Dict[str, Any]) -> AttemptSummary:
    submitted = doc.get("status") == SUBMITTED
    return AttemptSummary(
        id=str(doc["_id"]),
        quizId=doc["quizId"],
        status=doc["status"],
        score=doc.get("score"),
        totalPoints=doc.get("totalPoints") or 0,
        percentage=display_percentage(doc.get("score"), doc.get("totalPoints") or 0) if submitted else None,
        timeTaken=doc.get("timeTaken"),
        startedAt=doc["startedAt"],
        submittedAt=doc.get("submittedAt"),
    )


class AttemptService:
    """Runs one student's attempts at one quiz against the stored state."""

    def __init__(self, db=None, quizzes: Optional[QuizStore] = None, ledger: Optional[EnrollmentLedger] = None):
        self.db = db if db is not None else get_db()
        self.attempts = self.db["attempt"]
        self.slots = self.db["attempt_slot"]
        self.quizzes = quizzes or QuizStore(self.db)
        self.bank: QuestionBank = self.quizzes.bank
        self.ledger = ledger or EnrollmentLedger(self.db)

    # -- lookups -----------------------------------------------------------

    def _load_attempt(self, attempt_id: str, user_id: str) -> Dict[str, Any]:
        doc = self.attempts.find_one({"_id": to_object_id(attempt_id)})
        if not doc or doc["userId"] != user_id:
            raise NotFound("Attempt not found")
        return doc

    def _latest_attempt(self, quiz_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        return self.attempts.find_one(
            {"quizId": quiz_id, "userId": user_id}, sort=[("startedAt", DESCENDING)]
        )

    def submitted_count(self, quiz_id: str, user_id: str) -> int:
        return self.attempts.count_documents(
            {"quizId": quiz_id, "userId": user_id, "status": SUBMITTED}
        )

    # -- start ---------------------------------------------------------------

    def start_attempt(self, quiz_id: str, user_id: str, now: Optional[datetime] = None) -> StartResult:
        """Start a new attempt, or resume the one already in progress.

        Policy is checked in order: quiz active, schedule window, enrollment,
        attempt limit. Only SUBMITTED attempts count against the limit.
        """
        now = now or utcnow()
        try:
            quiz = self.quizzes.get_quiz(quiz_id)
        except NotFound:
            raise NotAvailable("Quiz not found")

        try:
            check_available(quiz)
            check_schedule(quiz, now)
            check_enrollment(quiz, user_id, self.ledger)
            check_attempt_limit(quiz, self.submitted_count(quiz_id, user_id))
        except QuizError as exc:
            logger.warning("Start of quiz %s refused for %s: %s", quiz_id, user_id, exc)
            raise

        latest = self._latest_attempt(quiz_id, user_id)
        if latest and latest["status"] == IN_PROGRESS:
            logger.info("Resuming attempt %s on quiz %s for %s", latest["_id"], quiz_id, user_id)
            return StartResult(attemptId=str(latest["_id"]), resumed=True, message="Quiz already in progress")

        return self._create_attempt(quiz, user_id, now)

    def _create_attempt(self, quiz: QuizDefinition, user_id: str, now: datetime) -> StartResult:
        key = slot_key(quiz.id, user_id)
        attempt_id = ObjectId()
        for _ in range(START_RETRIES):
            try:
                self.slots.insert_one({"_id": key, "attemptId": attempt_id, "createdAt": now})
                break
            except DuplicateKeyError:
                slot = self.slots.find_one({"_id": key})
            if slot is None:
                continue
            holder = self.attempts.find_one({"_id": slot["attemptId"]}, {"status": 1})
            in_flight = holder is None and now - slot["createdAt"] < timedelta(seconds=STALE_SLOT_SECONDS)
            if in_flight or (holder is not None and holder["status"] == IN_PROGRESS):
                logger.warning(
                    "Concurrent start on quiz %s for %s; resuming attempt %s",
                    quiz.id, user_id, slot["attemptId"],
                )
                return StartResult(attemptId=str(slot["attemptId"]), resumed=True, message="Quiz already in progress")
            # Left behind by a submitted or abandoned start
            self.slots.delete_one({"_id": key, "attemptId": slot["attemptId"]})
            logger.warning("Released stale attempt slot %s", key)
        else:
            raise StartConflict()

        attempt = Attempt(
            id=str(attempt_id),
            quizId=quiz.id,
            userId=user_id,
            status=AttemptStatus.IN_PROGRESS,
            startedAt=now,
            totalPoints=total_points(quiz),
        )
        doc = attempt.model_dump(exclude={"id"})
        doc.update({"_id": attempt_id, "status": IN_PROGRESS})
        self.attempts.insert_one(doc)
        logger.info("Attempt %s started on quiz %s for %s", attempt_id, quiz.id, user_id)
        return StartResult(attemptId=str(attempt_id))

    # -- in progress ---------------------------------------------------------

    def get_active_attempt_view(self, quiz_id: str, user_id: str, now: Optional[datetime] = None) -> AttemptView:
        """Questions, saved answers and time remaining for the attempt in progress."""
        now = now or utcnow()
        attempt = self.attempts.find_one(
            {"quizId": quiz_id, "userId": user_id, "status": IN_PROGRESS},
            sort=[("startedAt", DESCENDING)],
        )
        if not attempt:
            raise NotFound("No active quiz attempt found")
        quiz = self.quizzes.get_quiz(quiz_id)

        reveal = quiz.showAnswers or quiz.checkAnswerEnabled
        questions = self._question_views(quiz, reveal)
        if not questions:
            logger.error("Quiz %s has no valid questions; attempt %s cannot be shown", quiz_id, attempt["_id"])
            raise NoValidQuestions()

        return AttemptView(
            attemptId=str(attempt["_id"]),
            quiz=QuizView(
                id=quiz.id,
                title=quiz.title,
                description=quiz.description,
                timeLimit=quiz.timeLimit,
                showAnswers=quiz.showAnswers,
                checkAnswerEnabled=quiz.checkAnswerEnabled,
                negativeMarking=quiz.negativeMarking,
                negativePoints=quiz.negativePoints,
                randomOrder=quiz.randomOrder,
                questions=questions,
            ),
            timeRemaining=time_remaining(quiz, attempt["startedAt"], now),
            answers={k: normalize_answer(v) for k, v in (attempt.get("answers") or {}).items()},
        )

    def _question_views(self, quiz: QuizDefinition, reveal: bool) -> List[QuestionView]:
        raw = self.bank.get_raw_questions(qq.questionId for qq in quiz.questions)
        views = []
        for qq in sorted(quiz.questions, key=lambda q: q.order):
            doc = raw.get(qq.questionId)
            if doc is None:
                logger.error("Quiz %s references missing question %s", quiz.id, qq.questionId)
                continue
            if not doc.get("content") or not doc.get("type"):
                logger.error("Question %s is missing content or type", qq.questionId)
                continue
            options = parse_options(doc.get("options"))
            if not options:
                logger.error("Question %s has unparsable options: %r", qq.questionId, doc.get("options"))
                continue
            try:
                view = QuestionView(
                    id=qq.questionId,
                    title=doc.get("title") or f"Question {qq.order}",
                    content=doc["content"],
                    type=doc["type"],
                    options=options,
                    difficulty=doc.get("difficulty") or "MEDIUM",
                    order=qq.order,
                    points=qq.points,
                )
                if reveal:
                    view.correctAnswer = int(str(doc.get("correctAnswer")).strip())
                    view.explanation = doc.get("explanation") or ""
            except ValueError as exc:
                logger.error("Question %s failed validation: %s", qq.questionId, exc)
                continue
            views.append(view)
        return views

    def record_answer(self, attempt_id: str, user_id: str, question_id: str, value: Any) -> None:
        attempt = self._load_attempt(attempt_id, user_id)
        quiz = self.quizzes.get_quiz(attempt["quizId"])
        if question_id not in {qq.questionId for qq in quiz.questions}:
            raise InvalidQuestion()
        result = self.attempts.update_one(
            {"_id": attempt["_id"], "status": IN_PROGRESS},
            {"$set": {f"answers.{question_id}": normalize_answer(value)}},
        )
        if result.matched_count == 0:
            raise NotInProgress()

    # -- submit --------------------------------------------------------------

    def submit(
        self,
        attempt_id: str,
        user_id: str,
        answers: Optional[Mapping[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> SubmitResult:
        """Score and close an attempt. A second submit raises AlreadySubmitted."""
        now = now or utcnow()
        attempt = self._load_attempt(attempt_id, user_id)
        if attempt["status"] == SUBMITTED:
            raise AlreadySubmitted()
        if attempt["status"] != IN_PROGRESS:
            raise NotInProgress()

        quiz = self.quizzes.get_quiz(attempt["quizId"])
        question_ids = {qq.questionId for qq in quiz.questions}
        merged = {k: normalize_answer(v) for k, v in (attempt.get("answers") or {}).items()}
        for question_id, value in (answers or {}).items():
            if question_id in question_ids:
                merged[question_id] = normalize_answer(value)
            else:
                logger.debug("Ignoring answer for foreign question %s on attempt %s", question_id, attempt_id)

        result = score_attempt(quiz, merged, self.bank.answer_key(question_ids))
        time_taken = max(0, int((now - attempt["startedAt"]).total_seconds()))

        updated = self.attempts.find_one_and_update(
            {"_id": attempt["_id"], "status": IN_PROGRESS},
            {"$set": {
                "status": SUBMITTED,
                "submittedAt": now,
                "score": result.score,
                "timeTaken": time_taken,
                "answers": merged,
            }},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            logger.warning("Attempt %s was submitted concurrently; keeping the first score", attempt_id)
            raise AlreadySubmitted()
        self.slots.delete_one({"_id": slot_key(attempt["quizId"], user_id), "attemptId": attempt["_id"]})

        total = attempt.get("totalPoints") or 0
        logger.info(
            "Attempt %s submitted: score %s/%s in %ss",
            attempt_id, result.score, total, time_taken,
        )
        return SubmitResult(
            attemptId=str(attempt["_id"]),
            score=result.score,
            totalPoints=total,
            percentage=display_percentage(result.score, total),
            timeTaken=time_taken,
            submittedAt=updated["submittedAt"],
        )

    # -- history -------------------------------------------------------------

    def get_attempt(self, attempt_id: str, user_id: str) -> AttemptSummary:
        return attempt_summary(self._load_attempt(attempt_id, user_id))

    def list_attempts(self, quiz_id: str, user_id: str) -> AttemptHistory:
        quiz = self.quizzes.get_quiz(quiz_id)
        docs = self.attempts.find({"quizId": quiz_id, "userId": user_id}).sort("startedAt", DESCENDING)
        summaries = [attempt_summary(doc) for doc in docs]
        submitted = [s for s in summaries if s.status == AttemptStatus.SUBMITTED]
        active = next((s for s in summaries if s.status == AttemptStatus.IN_PROGRESS), None)
        under_limit = quiz.maxAttempts is None or len(submitted) < quiz.maxAttempts
        return AttemptHistory(
            quizId=quiz.id,
            title=quiz.title,
            maxAttempts=quiz.maxAttempts,
            userAttemptCount=len(submitted),
            canTakeQuiz=under_limit and active is None,
            hasActiveAttempt=active is not None,
            attempts=submitted,
            activeAttempt=active,
        )

    def list_available_quizzes(self, user_id: str, now: Optional[datetime] = None) -> List[AvailableQuiz]:
        """Active quizzes the student may see: open ones plus those they are enrolled in.

        ``canAttempt`` with ``hasInProgress`` means the attempt can be continued
        with ``get_active_attempt_view``; after the start grace window
        ``start_attempt`` refuses it.
        """
        now = now or utcnow()
        enrolled = set(self.ledger.enrolled_quiz_ids(user_id))
        quizzes = [
            q for q in self.quizzes.list_quizzes(QuizStatus.ACTIVE)
            if q.enrollmentMode == EnrollmentMode.OPEN or q.id in enrolled
        ]
        by_quiz: Dict[str, List[Dict[str, Any]]] = {}
        cursor = self.attempts.find(
            {"userId": user_id, "quizId": {"$in": [q.id for q in quizzes]}}
        ).sort("startedAt", DESCENDING)
        for doc in cursor:
            by_quiz.setdefault(doc["quizId"], []).append(doc)

        listing = []
        for quiz in quizzes:
            attempts = by_quiz.get(quiz.id, [])
            completed = [a for a in attempts if a["status"] == SUBMITTED]
            in_progress = any(a["status"] == IN_PROGRESS for a in attempts)
            can_attempt, status = quiz_availability(quiz, now, len(completed), in_progress)
            listing.append(AvailableQuiz(
                id=quiz.id,
                title=quiz.title,
                description=quiz.description,
                timeLimit=quiz.timeLimit,
                difficulty=quiz.difficulty,
                maxAttempts=quiz.maxAttempts,
                startTime=quiz.startTime,
                endTime=quiz.endTime,
                questionCount=len(quiz.questions),
                attempts=len(completed),
                bestScore=max((a.get("score") or 0 for a in completed), default=None),
                lastAttemptDate=completed[0].get("submittedAt") if completed else None,
                canAttempt=can_attempt,
                attemptStatus=status,
                hasInProgress=in_progress,
            ))
        return listing
