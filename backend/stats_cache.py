"""Read-through cache for per-student dashboard stats.

Entries are fresh for ``STATS_CACHE_SECONDS`` (5 minutes by default) and are
dropped explicitly on logout and after a submission. Only terminal attempt data
is read here. Request handlers run in a threadpool, so every access to the
``TTLCache`` goes through one lock.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

from cachetools import TTLCache
from pymongo import DESCENDING

from config import STATS_CACHE_MAX_USERS, STATS_CACHE_SECONDS
from scoring import display_percentage

logger = logging.getLogger(__name__)


class StatsCache:
    def __init__(
        self,
        ttl_seconds: int = STATS_CACHE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        maxsize: int = STATS_CACHE_MAX_USERS,
    ):
        self._entries: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl_seconds, timer=clock)
        self._lock = threading.Lock()

    def is_fresh(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._entries

    def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._entries.get(user_id)

    def set(self, user_id: str, value: Dict[str, Any]) -> None:
        with self._lock:
            self._entries[user_id] = value

    def get_or_load(self, user_id: str, loader: Callable[[], Dict[str, Any]]) -> Dict[str, Any]:
        """Return the cached stats for ``user_id`` or load, store and return them."""
        cached = self.get(user_id)
        if cached is not None:
            return cached
        value = loader()
        self.set(user_id, value)
        logger.debug("Stats cache refreshed for %s", user_id)
        return value

    def invalidate(self, user_id: str) -> None:
        with self._lock:
            self._entries.pop(user_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


def user_stats(db, user_id: str, recent: int = 5) -> Dict[str, Any]:
    submitted = list(
        db["attempt"].find({"userId": user_id, "status": "SUBMITTED"}).sort("submittedAt", DESCENDING)
    )
    percentages = [display_percentage(a.get("score"), a.get("totalPoints") or 0) for a in submitted]
    titles = {
        q["id"]: q.get("title", "")
        for q in db["quiz"].find({"id": {"$in": list({a["quizId"] for a in submitted})}})
    }
    return {
        "completedQuizzes": len({a["quizId"] for a in submitted}),
        "totalAttempts": len(submitted),
        "averageScore": round(sum(percentages) / len(percentages), 2) if percentages else 0.0,
        "totalTimeSpent": sum(a.get("timeTaken") or 0 for a in submitted),
        "recentActivity": [
            {
                "id": str(a["_id"]),
                "quizTitle": titles.get(a["quizId"], ""),
                "score": a.get("score"),
                "percentage": display_percentage(a.get("score"), a.get("totalPoints") or 0),
                "submittedAt": a.get("submittedAt"),
            }
            for a in submitted[:recent]
        ],
    }


def admin_stats(db) -> Dict[str, Any]:
    return {
        "quizzes": db["quiz"].count_documents({}),
        "attempts": db["attempt"].count_documents({}),
        "activeAttempts": db["attempt"].count_documents({"status": "IN_PROGRESS"}),
    }


stats_cache = StatsCache()
