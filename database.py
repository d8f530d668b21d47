"""
Record Store for SkillSwap

Generic create / read / update / delete over the named MongoDB collections.
No field-level querying is pushed to callers: domain modules fetch a bounded
page with get_all() and filter client-side.
"""
import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, NamedTuple, Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

from errors import NotFound, StoreUnavailable, ValidationFailed

load_dotenv()

logger = logging.getLogger(__name__)

COLLECTIONS = (
    "userprofiles",
    "chatmessages",
    "swaprequests",
    "sessions",
    "reviews",
    "tests",
)
DEFAULT_PAGE_LIMIT = 1000
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_client = None
db = None

database_url = os.getenv("DATABASE_URL")
database_name = os.getenv("DATABASE_NAME")

if database_url and database_name:
    _client = MongoClient(database_url, tz_aware=True)
    db = _client[database_name]


class Page(NamedTuple):
    items: List[dict]
    has_next: bool


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Any) -> Optional[datetime]:
    """Coerce a stored timestamp (aware, naive or ISO string) to aware UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def serialize_doc(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return doc
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d


class RecordStore:
    """CRUD over SkillSwap collections. Last write wins; there is no versioning."""

    def __init__(self, database: Database):
        self.db = database

    def _collection(self, name: str):
        if name not in COLLECTIONS:
            raise ValidationFailed(f"Unknown collection: {name}")
        return self.db[name]

    def create(self, collection_name: str, data: Union[BaseModel, dict]) -> str:
        """Insert a single record with timestamps and return its id"""
        if isinstance(data, BaseModel):
            data_dict = data.model_dump()
        else:
            data_dict = dict(data)

        record_id = data_dict.pop("id", None) or data_dict.pop("_id", None) or new_id()
        data_dict["_id"] = str(record_id)
        data_dict["created_at"] = utcnow()
        data_dict["updated_at"] = utcnow()

        self._collection(collection_name).insert_one(data_dict)
        logger.debug("created %s/%s", collection_name, record_id)
        return str(record_id)

    def get_by_id(self, collection_name: str, record_id: str) -> Optional[dict]:
        doc = self._collection(collection_name).find_one({"_id": record_id})
        return serialize_doc(doc)

    def get_all(
        self,
        collection_name: str,
        filter_dict: Optional[dict] = None,
        limit: int = DEFAULT_PAGE_LIMIT,
        skip: int = 0,
    ) -> Page:
        if limit < 1 or skip < 0:
            raise ValidationFailed("limit must be at least 1 and skip cannot be negative")
        cursor = self._collection(collection_name).find(filter_dict or {})
        if skip:
            cursor = cursor.skip(skip)
        # one extra row tells us whether another page exists
        docs = list(cursor.limit(limit + 1))
        items = [serialize_doc(d) for d in docs[:limit]]
        return Page(items=items, has_next=len(docs) > limit)

    def update(self, collection_name: str, data: Union[BaseModel, dict]) -> dict:
        """Partial update keyed by the record's id; returns the stored record"""
        if isinstance(data, BaseModel):
            data_dict = data.model_dump(exclude_unset=True)
        else:
            data_dict = dict(data)

        record_id = data_dict.pop("id", None) or data_dict.pop("_id", None)
        if not record_id:
            raise ValidationFailed("Record id is required for update")
        data_dict.pop("created_at", None)
        data_dict["updated_at"] = utcnow()

        coll = self._collection(collection_name)
        result = coll.update_one({"_id": record_id}, {"$set": data_dict})
        if result.matched_count == 0:
            raise NotFound(f"{collection_name} record {record_id} not found")
        return serialize_doc(coll.find_one({"_id": record_id}))

    def delete(self, collection_name: str, record_id: str) -> None:
        result = self._collection(collection_name).delete_one({"_id": record_id})
        if result.deleted_count == 0:
            raise NotFound(f"{collection_name} record {record_id} not found")
        logger.debug("deleted %s/%s", collection_name, record_id)


def get_store() -> RecordStore:
    """FastAPI dependency returning the configured store"""
    if db is None:
        raise StoreUnavailable(
            "Database not available. Check DATABASE_URL and DATABASE_NAME environment variables."
        )
    return RecordStore(db)
