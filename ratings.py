"""Product ratings and supplier ratings."""
from typing import Any, Dict
from uuid import uuid4

import structlog
from pymongo import ReturnDocument
from pymongo.database import Database

from config import get_settings
from database import create_document, now, serialize_doc, to_object_id
from errors import ConflictError, ForbiddenError, NotFoundError
from schemas import ProductRating, SupplierRating

logger = structlog.get_logger()


def add_product_rating(db: Database, product_id: str, user: Dict[str, Any], rating: int, comment: str = "") -> Dict[str, Any]:
    """Append a rating to a product and refresh its average."""
    entry = ProductRating(
        id=uuid4().hex,
        user_id=user["id"],
        user_name=user["name"],
        rating=rating,
        comment=comment,
        date=now(),
    )
    oid = to_object_id(product_id, "Product")
    product = db["product"].find_one_and_update(
        {"_id": oid},
        {"$push": {"ratings": entry.model_dump()}},
        return_document=ReturnDocument.AFTER,
    )
    if not product:
        raise NotFoundError("Product not found")

    scores = [r["rating"] for r in product["ratings"]]
    average = sum(scores) / len(scores)
    db["product"].update_one({"_id": oid}, {"$set": {"average_rating": average}})
    product["average_rating"] = average
    logger.info("product_rated", product_id=product_id, user_id=user["id"], rating=rating, average=average)
    return serialize_doc(product)


def add_supplier_rating(db: Database, order: Dict[str, Any], vendor: Dict[str, Any], rating: int, comment: str = "") -> str:
    """Record a vendor's rating of the supplier that fulfilled `order`."""
    if order["vendor_id"] != vendor["id"]:
        raise ForbiddenError("Only the ordering vendor can rate this order")
    if order["status"] != "completed":
        raise ConflictError("Only completed orders can be rated", code="order.not_completed")
    if db["supplierrating"].find_one({"order_id": order["id"]}):
        raise ConflictError("Order already rated", code="order.already_rated")

    record = SupplierRating(
        supplier_id=order["supplier_id"],
        vendor_id=vendor["id"],
        vendor_name=vendor["name"],
        rating=rating,
        comment=comment,
        order_id=order["id"],
        date=now(),
    )
    rating_id = create_document(db, "supplierrating", record)
    logger.info("supplier_rated", supplier_id=order["supplier_id"], order_id=order["id"], rating=rating)
    return rating_id


def get_supplier_rating(db: Database, supplier_id: str) -> float:
    """Average of a supplier's ratings; the configured default when unrated."""
    scores = [r["rating"] for r in db["supplierrating"].find({"supplier_id": supplier_id}, {"rating": 1})]
    if not scores:
        return get_settings().default_supplier_rating
    return sum(scores) / len(scores)
