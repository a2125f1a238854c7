"""
Mocked login sessions.

A session document exists per logged-in user id and carries the user's
loyalty points. There is no token: the user id alone identifies the
session, and logging out deletes it together with the points.
"""
from typing import Any, Dict, Optional

import structlog
from pymongo import ReturnDocument
from pymongo.database import Database

from database import now
from errors import UnauthorizedError

logger = structlog.get_logger()

COLLECTION = "session"


def open_session(db: Database, user_id: str, user_type: str) -> Dict[str, Any]:
    """Create the session if absent; an existing session keeps its points."""
    stamp = now()
    session = db[COLLECTION].find_one_and_update(
        {"user_id": user_id},
        {
            "$setOnInsert": {
                "loyalty_points": 0,
                "created_at": stamp,
            },
            "$set": {"user_type": user_type, "updated_at": stamp},
        },
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    logger.info("session_opened", user_id=user_id, user_type=user_type)
    return session


def close_session(db: Database, user_id: str) -> bool:
    res = db[COLLECTION].delete_one({"user_id": user_id})
    logger.info("session_closed", user_id=user_id, existed=bool(res.deleted_count))
    return bool(res.deleted_count)


def get_session(db: Database, user_id: str) -> Optional[Dict[str, Any]]:
    return db[COLLECTION].find_one({"user_id": user_id})


def add_points(db: Database, user_id: str, value: int) -> int:
    """Credit loyalty points; returns the new balance."""
    session = db[COLLECTION].find_one_and_update(
        {"user_id": user_id},
        {"$inc": {"loyalty_points": value}, "$set": {"updated_at": now()}},
        return_document=ReturnDocument.AFTER,
    )
    if not session:
        raise UnauthorizedError("Not logged in")
    return session["loyalty_points"]
