"""Vendor/supplier mailbox. Messages are stored, not pushed."""
from typing import Any, Dict, List, Optional

import structlog
from pymongo import ASCENDING
from pymongo.database import Database

import notifications
from database import create_document, get_documents, now, serialize_doc, to_object_id
from errors import ForbiddenError, NotFoundError, ValidationError
from schemas import Message

logger = structlog.get_logger()

COLLECTION = "message"


def send_message(db: Database, sender: Dict[str, Any], to_id: str, body: str) -> Dict[str, Any]:
    if to_id == sender["id"]:
        raise ValidationError("Cannot message yourself", code="message.self")
    recipient = db["user"].find_one({"_id": to_object_id(to_id, "Recipient")})
    if not recipient:
        raise NotFoundError("Recipient not found")

    message = Message(
        from_id=sender["id"],
        to_id=to_id,
        from_name=sender["name"],
        to_name=recipient["name"],
        message=body,
        timestamp=now(),
        read=False,
    )
    message_id = create_document(db, COLLECTION, message)
    logger.info("message_sent", message_id=message_id, from_id=sender["id"], to_id=to_id)
    notifications.add_notification(
        db,
        user_id=to_id,
        type="info",
        title="New Message",
        message=f"New message from {sender['name']}",
    )
    return serialize_doc(db[COLLECTION].find_one({"_id": to_object_id(message_id)}))


def list_messages(db: Database, user_id: str, with_user: Optional[str] = None) -> List[Dict[str, Any]]:
    """Messages sent or received by `user_id`, oldest first."""
    if with_user:
        filt = {
            "$or": [
                {"from_id": user_id, "to_id": with_user},
                {"from_id": with_user, "to_id": user_id},
            ]
        }
    else:
        filt = {"$or": [{"from_id": user_id}, {"to_id": user_id}]}
    docs = get_documents(db, COLLECTION, filt, sort=[("timestamp", ASCENDING), ("_id", ASCENDING)])
    return [serialize_doc(d) for d in docs]


def mark_message_as_read(db: Database, message_id: str, user_id: str) -> None:
    oid = to_object_id(message_id, "Message")
    doc = db[COLLECTION].find_one({"_id": oid})
    if not doc:
        raise NotFoundError("Message not found")
    if doc["to_id"] != user_id:
        raise ForbiddenError("Only the recipient can mark a message as read")
    db[COLLECTION].update_one({"_id": oid}, {"$set": {"read": True, "updated_at": now()}})
