"""Enrollment ledger: which students may take a restricted quiz.

A quiz starts OPEN. The quiz document carries ``enrolledCount``; every new
enrollment row bumps it and sets RESTRICTED in the same update, and a quiz only
goes back to OPEN through an update conditional on ``enrolledCount == 0``. An
enroll racing an unenroll therefore cannot leave the quiz OPEN while rows exist.
"""

import logging
from typing import Any, Dict, Iterable, List, Tuple

from pymongo import DESCENDING

from database import get_db, utcnow
from errors import NotFound
from schemas import AttemptStatus, Enrollment, EnrollmentMode, QuizDefinition

logger = logging.getLogger(__name__)


def enrollment_key(quiz_id: str, user_id: str) -> str:
    return f"{quiz_id}:{user_id}"


class EnrollmentLedger:
    def __init__(self, db=None):
        self.db = db if db is not None else get_db()
        self.collection = self.db["enrollment"]
        self.quizzes = self.db["quiz"]

    def _require_quiz(self, quiz_id: str) -> None:
        if not self.quizzes.find_one({"id": quiz_id}, {"_id": 1}):
            raise NotFound("Quiz not found")

    def _count_enrolled(self, quiz_id: str, delta: int) -> None:
        change: Dict[str, Any] = {"$inc": {"enrolledCount": delta}, "$set": {"updatedAt": utcnow()}}
        if delta > 0:
            change["$set"]["enrollmentMode"] = EnrollmentMode.RESTRICTED.value
        self.quizzes.update_one({"id": quiz_id}, change)

    def _reopen_if_empty(self, quiz_id: str) -> bool:
        result = self.quizzes.update_one(
            {"id": quiz_id, "enrolledCount": {"$lte": 0}},
            {"$set": {"enrollmentMode": EnrollmentMode.OPEN.value, "enrolledCount": 0, "updatedAt": utcnow()}},
        )
        return result.modified_count > 0

    def enroll(self, quiz_id: str, user_ids: Iterable[str]) -> Tuple[int, int]:
        """Enroll students, returning (newly enrolled, already enrolled)."""
        self._require_quiz(quiz_id)
        created = existing = 0
        now = utcnow()
        for user_id in dict.fromkeys(user_ids):
            result = self.collection.update_one(
                {"_id": enrollment_key(quiz_id, user_id)},
                {"$setOnInsert": Enrollment(quizId=quiz_id, userId=user_id, createdAt=now).model_dump()},
                upsert=True,
            )
            if result.upserted_id is not None:
                created += 1
                self._count_enrolled(quiz_id, 1)
            else:
                existing += 1
        logger.info("Quiz %s: %d students enrolled, %d already enrolled", quiz_id, created, existing)
        return created, existing

    def unenroll(self, quiz_id: str, user_id: str) -> None:
        result = self.collection.delete_one({"_id": enrollment_key(quiz_id, user_id)})
        if result.deleted_count == 0:
            raise NotFound("Student is not enrolled in this quiz")
        self._count_enrolled(quiz_id, -1)
        if self._reopen_if_empty(quiz_id):
            logger.info("Quiz %s has no enrolled students left and is open again", quiz_id)
        logger.info("Quiz %s: student %s removed", quiz_id, user_id)

    def is_enrolled(self, quiz_id: str, user_id: str) -> bool:
        return self.collection.count_documents({"_id": enrollment_key(quiz_id, user_id)}) > 0

    def list_enrolled(self, quiz_id: str) -> List[str]:
        return [doc["userId"] for doc in self.collection.find({"quizId": quiz_id})]

    def enrolled_quiz_ids(self, user_id: str) -> List[str]:
        return [doc["quizId"] for doc in self.collection.find({"userId": user_id})]

    def may_attempt(self, quiz: QuizDefinition, user_id: str) -> bool:
        if quiz.enrollmentMode == EnrollmentMode.OPEN:
            return True
        return self.is_enrolled(quiz.id, user_id)

    def enrollment_report(self, quiz_id: str) -> List[Dict[str, Any]]:
        """Enrolled students with their attempt counts, best score and latest attempt."""
        self._require_quiz(quiz_id)
        rows = list(self.collection.find({"quizId": quiz_id}))
        by_user: Dict[str, List[Dict[str, Any]]] = {}
        cursor = self.db["attempt"].find(
            {"quizId": quiz_id, "userId": {"$in": [row["userId"] for row in rows]}}
        ).sort("startedAt", DESCENDING)
        for doc in cursor:
            by_user.setdefault(doc["userId"], []).append(doc)

        report = []
        for row in rows:
            attempts = by_user.get(row["userId"], [])
            completed = [a for a in attempts if a["status"] == AttemptStatus.SUBMITTED.value]
            last = attempts[0] if attempts else None
            report.append({
                "userId": row["userId"],
                "enrolledAt": row.get("createdAt"),
                "attempts": len(attempts),
                "completedAttempts": len(completed),
                "bestScore": max((a.get("score") or 0 for a in completed), default=None),
                "lastAttempt": {
                    "id": str(last["_id"]),
                    "status": last["status"],
                    "score": last.get("score"),
                    "startedAt": last["startedAt"],
                    "submittedAt": last.get("submittedAt"),
                } if last else None,
            })
        return report
