from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
from pymongo import ASCENDING, DESCENDING, MongoClient

from config import DATABASE_URL, DATABASE_NAME

_client: Optional[MongoClient] = None
_db = None


def get_db():
    global _client, _db
    if _db is None:
        _client = MongoClient(DATABASE_URL)
        _db = _client[DATABASE_NAME]
    return _db


def utcnow() -> datetime:
    # Mongo hands back naive UTC datetimes, so everything is kept naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def ensure_indexes(db=None) -> None:
    db = db if db is not None else get_db()
    db["question"].create_index("id", unique=True)
    db["quiz"].create_index("id", unique=True)
    db["enrollment"].create_index([("quizId", ASCENDING), ("userId", ASCENDING)])
    db["attempt"].create_index(
        [("quizId", ASCENDING), ("userId", ASCENDING), ("startedAt", DESCENDING)]
    )
    db["attempt"].create_index([("userId", ASCENDING), ("status", ASCENDING)])


def create_document(collection_name: str, data: Dict[str, Any], db=None) -> str:
    db = db if db is not None else get_db()
    now = utcnow()
    data.setdefault("createdAt", now)
    data.setdefault("updatedAt", now)
    result = db[collection_name].insert_one(data)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Dict[str, Any] | None = None, limit: int = 100, db=None) -> List[Dict[str, Any]]:
    db = db if db is not None else get_db()
    filter_dict = filter_dict or {}
    cursor = db[collection_name].find(filter_dict).limit(limit)
    return [
        {**doc, "_id": str(doc.get("_id"))}
        for doc in cursor
    ]
