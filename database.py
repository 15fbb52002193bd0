"""
MongoDB access for the campus marketplace.

The API builds one client lazily and hands the database handle to each
component through the `get_db` dependency; tests swap it for an in-memory
database.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

from config import settings

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_db: Optional[Database] = None


def connect(url: Optional[str] = None, name: Optional[str] = None) -> Database:
    client = MongoClient(url or settings.DATABASE_URL, serverSelectionTimeoutMS=5000)
    return client[name or settings.DATABASE_NAME]


def get_db() -> Database:
    global _db
    if _db is None:
        _db = connect()
    return _db


def utcnow() -> datetime:
    # BSON dates keep millisecond precision
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def id_filter(doc_id: Any) -> Dict[str, Any]:
    if isinstance(doc_id, str) and ObjectId.is_valid(doc_id):
        return {"_id": {"$in": [ObjectId(doc_id), doc_id]}}
    return {"_id": doc_id}


def find_by_id(db: Database, collection_name: str, doc_id: Any) -> Optional[dict]:
    if not doc_id:
        return None
    return db[collection_name].find_one(id_filter(doc_id))


def create_document(db: Database, collection_name: str, data: Union[BaseModel, dict], doc_id: Any = None) -> str:
    """Insert a document and return its id as a string.

    Pydantic models are stored with their camelCase aliases. When `doc_id`
    is given it becomes the document `_id`, so a second insert with the same
    id raises DuplicateKeyError.
    """
    if isinstance(data, BaseModel):
        payload = data.model_dump(by_alias=True)
    else:
        payload = dict(data)
    if doc_id is not None:
        payload["_id"] = doc_id
    result = db[collection_name].insert_one(payload)
    return str(result.inserted_id)


def get_documents(db: Database, collection_name: str, filter_dict: Optional[dict] = None,
                  sort: Optional[List[tuple]] = None, limit: Optional[int] = None) -> List[dict]:
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def timestamp_view(value: Any) -> Dict[str, int]:
    """Render a stored timestamp as {seconds, nanoseconds}; absent values are {0, 0}."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        delta = value - EPOCH
        return {
            "seconds": delta.days * 86400 + delta.seconds,
            "nanoseconds": delta.microseconds * 1000,
        }
    if isinstance(value, dict):
        return {
            "seconds": int(value.get("seconds") or 0),
            "nanoseconds": int(value.get("nanoseconds") or 0),
        }
    return {"seconds": 0, "nanoseconds": 0}


def timestamp_key(value: Any) -> tuple:
    ts = timestamp_view(value)
    return ts["seconds"], ts["nanoseconds"]
