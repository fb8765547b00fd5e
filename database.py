"""
MongoDB access helpers

A single module-level `db` handle is opened from DATABASE_URL / DATABASE_NAME
at import time. Handlers never touch `db` directly: they go through the
helpers below so that `init_db` can swap in another client (tests use
mongomock).

Documents carry camelCase fields plus `createdAt` / `updatedAt`; references
between collections are stored as the referenced document's id string.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import MongoClient, DESCENDING

from backend.config import settings
from backend.exceptions import DatabaseNotConfiguredError, InvalidIdError
from backend.logging_config import get_logger

logger = get_logger(__name__)

client = None
db = None


def init_db(mongo_client=None, database_name: Optional[str] = None):
    """Open (or replace) the database handle. Returns it, or None when unconfigured."""
    global client, db
    if mongo_client is None:
        if not settings.DATABASE_URL:
            logger.warning("DATABASE_URL not set - database features disabled")
            client = None
            db = None
            return None
        mongo_client = MongoClient(settings.DATABASE_URL)
    client = mongo_client
    db = client[database_name or settings.DATABASE_NAME]
    logger.info(f"Database handle ready: {db.name}")
    return db


def close_db() -> None:
    global client, db
    if client is not None:
        client.close()
    client = None
    db = None


def utcnow() -> datetime:
    """Naive UTC timestamp, the form pymongo hands back for stored dates"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def collection(name: str):
    if db is None:
        raise DatabaseNotConfiguredError()
    return db[name]


def to_object_id(value: Any, resource_type: str = "Document") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise InvalidIdError(resource_type, value)


def is_valid_id(value: Any) -> bool:
    return isinstance(value, ObjectId) or (isinstance(value, str) and ObjectId.is_valid(value))


def serialize(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Copy of a raw document with `_id` replaced by a string `id`."""
    if not doc:
        return doc
    out = dict(doc)
    out["id"] = str(out.pop("_id"))
    return out


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document with timestamps, return its id as a string"""
    if isinstance(data, BaseModel):
        data = data.model_dump()
    now = utcnow()
    doc = dict(data)
    doc["createdAt"] = now
    doc["updatedAt"] = now
    result = collection(collection_name).insert_one(doc)
    logger.debug(f"Inserted {collection_name} {result.inserted_id}")
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None,
                  limit: Optional[int] = None) -> List[Dict[str, Any]]:
    """Raw documents, newest first by creation time"""
    cursor = collection(collection_name).find(filter_dict or {}).sort(
        [("createdAt", DESCENDING), ("_id", DESCENDING)]
    )
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def find_document(collection_name: str, doc_id: Any = None,
                  filter_dict: Optional[Dict[str, Any]] = None,
                  resource_type: str = "Document") -> Optional[Dict[str, Any]]:
    query = dict(filter_dict or {})
    if doc_id is not None:
        query["_id"] = to_object_id(doc_id, resource_type)
    return collection(collection_name).find_one(query)


def find_documents_by_ids(collection_name: str, ids: Iterable[Any]) -> Dict[str, Dict[str, Any]]:
    """Map of id string -> raw document; ids that are not ObjectIds are skipped"""
    object_ids = list({to_object_id(i) for i in ids if is_valid_id(i)})
    if not object_ids:
        return {}
    return {str(d["_id"]): d for d in collection(collection_name).find({"_id": {"$in": object_ids}})}


def update_document(collection_name: str, doc_id: Any, changes: Dict[str, Any]) -> bool:
    """$set the given fields and bump updatedAt. True when a document matched."""
    update = dict(changes)
    update["updatedAt"] = utcnow()
    result = collection(collection_name).update_one({"_id": to_object_id(doc_id)}, {"$set": update})
    return result.matched_count > 0


def delete_document(collection_name: str, doc_id: Any) -> bool:
    result = collection(collection_name).delete_one({"_id": to_object_id(doc_id)})
    return result.deleted_count > 0


def list_collection_names() -> List[str]:
    if db is None:
        raise DatabaseNotConfiguredError()
    return db.list_collection_names()


init_db()
