"""
MongoDB access.

The connection is opened lazily from DATABASE_URL / DATABASE_NAME. Routes
receive the handle through the `get_db` dependency in main.py.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

import structlog
from bson.errors import InvalidId
from bson.objectid import ObjectId
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

from config import get_settings
from errors import NotFoundError

logger = structlog.get_logger()

_client: Optional[MongoClient] = None
db: Optional[Database] = None


def connect() -> Optional[Database]:
    """Open the shared client once; returns None when not configured."""
    global _client, db
    if db is not None:
        return db
    settings = get_settings()
    if not (settings.database_url and settings.database_name):
        logger.warning("database_not_configured")
        return None
    _client = MongoClient(settings.database_url)
    db = _client[settings.database_name]
    logger.info("database_connected", database=settings.database_name)
    return db


def close() -> None:
    global _client, db
    if _client is not None:
        _client.close()
    _client = None
    db = None


def now() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: str, what: str = "Document") -> ObjectId:
    """Parse a string id; malformed ids are reported as missing documents."""
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise NotFoundError(f"{what} not found")


def insert_document(database: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> Any:
    """Insert a document, stamping created_at/updated_at. Returns the stored `_id` as is."""
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    stamp = now()
    doc["created_at"] = stamp
    doc["updated_at"] = stamp
    return database[collection_name].insert_one(doc).inserted_id


def create_document(database: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    return str(insert_document(database, collection_name, data))


def get_documents(
    database: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    sort: Optional[List[tuple]] = None,
) -> List[Dict[str, Any]]:
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def serialize_doc(doc):
    if not doc:
        return doc
    doc = dict(doc)
    if "_id" in doc:
        _id = doc.pop("_id")
        doc["id"] = str(_id) if isinstance(_id, ObjectId) else _id
    # convert datetimes
    for k, v in list(doc.items()):
        if isinstance(v, datetime):
            doc[k] = v.isoformat()
        elif isinstance(v, list):
            doc[k] = [serialize_doc(i) if isinstance(i, dict) else i for i in v]
    return doc
