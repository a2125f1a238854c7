"""Per-user notification store backed by the `notification` collection."""
from typing import Any, Dict, List, Optional

import structlog
from pymongo import DESCENDING
from pymongo.database import Database

from database import create_document, get_documents, now, serialize_doc, to_object_id
from errors import ForbiddenError, NotFoundError
from schemas import Notification

logger = structlog.get_logger()

COLLECTION = "notification"


def add_notification(db: Database, user_id: str, type: str, title: str, message: str) -> str:
    notification = Notification(
        type=type,
        title=title,
        message=message,
        user_id=user_id,
        timestamp=now(),
        read=False,
    )
    notification_id = create_document(db, COLLECTION, notification)
    logger.info("notification_added", notification_id=notification_id, user_id=user_id, type=type, title=title)
    return notification_id


def list_notifications(db: Database, user_id: str, unread_only: bool = False, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    """Newest first."""
    filt: Dict[str, Any] = {"user_id": user_id}
    if unread_only:
        filt["read"] = False
    docs = get_documents(db, COLLECTION, filt, limit=limit, sort=[("timestamp", DESCENDING), ("_id", DESCENDING)])
    return [serialize_doc(d) for d in docs]


def _owned(db: Database, notification_id: str, user_id: str) -> Dict[str, Any]:
    doc = db[COLLECTION].find_one({"_id": to_object_id(notification_id, "Notification")})
    if not doc:
        raise NotFoundError("Notification not found")
    if doc["user_id"] != user_id:
        raise ForbiddenError("Notification belongs to another user")
    return doc


def mark_as_read(db: Database, notification_id: str, user_id: str) -> None:
    doc = _owned(db, notification_id, user_id)
    db[COLLECTION].update_one({"_id": doc["_id"]}, {"$set": {"read": True, "updated_at": now()}})


def remove_notification(db: Database, notification_id: str, user_id: str) -> None:
    doc = _owned(db, notification_id, user_id)
    db[COLLECTION].delete_one({"_id": doc["_id"]})


def get_unread_count(db: Database, user_id: str) -> int:
    return db[COLLECTION].count_documents({"user_id": user_id, "read": False})
