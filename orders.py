"""
Checkout and order lifecycle.

An order moves through

    pending -> accepted -> delivered -> completed
    pending -> rejected

Suppliers drive the first three transitions; the vendor confirms receipt
by completing a delivered order. Every accepted/rejected/delivered
transition notifies the vendor.
"""
from typing import Any, Dict, List, Optional

import structlog
from pymongo import DESCENDING
from pymongo.database import Database

import notifications
import pricing
import sessions
from config import get_settings
from database import create_document, get_documents, now, serialize_doc, to_object_id
from errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from schemas import Order, OrderItem

logger = structlog.get_logger()

COLLECTION = "order"

# (from, to) -> role allowed to make the move
TRANSITIONS = {
    ("pending", "accepted"): "supplier",
    ("pending", "rejected"): "supplier",
    ("accepted", "delivered"): "supplier",
    ("delivered", "completed"): "vendor",
}

STATUS_MESSAGES = {
    "accepted": "Your order has been accepted",
    "rejected": "Your order has been rejected",
    "delivered": "Your order has been delivered",
}


def _load_products(db: Database, lines: List[Dict[str, Any]]) -> List[pricing.CartLine]:
    cart = []
    cache: Dict[str, Dict[str, Any]] = {}
    for line in lines:
        product_id = line["product_id"]
        if product_id not in cache:
            doc = db["product"].find_one({"_id": to_object_id(product_id, "Product")})
            if not doc:
                raise NotFoundError(f"Product {product_id} not found")
            cache[product_id] = serialize_doc(doc)
        cart.append((cache[product_id], line["quantity"]))
    return cart


def _check_line(product: Dict[str, Any], quantity: float, delivery_mode: Optional[str]) -> None:
    name = product["name"]
    if quantity < product.get("min_order", 0):
        raise ValidationError(
            f"Minimum order for {name} is {product['min_order']} {product.get('unit', '')}".rstrip(),
            code="cart.below_min_order",
        )
    if quantity > product.get("stock", 0):
        raise ValidationError(
            f"Only {product['stock']} {product.get('unit', '')} of {name} in stock",
            code="cart.insufficient_stock",
        )
    if delivery_mode and delivery_mode not in product.get("delivery_modes", []):
        raise ValidationError(f"{name} is not available for {delivery_mode} delivery", code="cart.delivery_mode")


def quote_cart(db: Database, lines: List[Dict[str, Any]], delivery_mode: Optional[str] = None) -> Dict[str, Any]:
    """Price a cart without placing orders."""
    if not lines:
        raise ValidationError("Cart is empty", code="cart.empty")
    cart = pricing.merge_lines(_load_products(db, lines))
    for product, quantity in cart:
        _check_line(product, quantity, delivery_mode)
    groups = pricing.split_cart(cart)
    return {"groups": groups, "total_amount": pricing.cart_total(groups)}


def checkout(
    db: Database,
    vendor: Dict[str, Any],
    lines: List[Dict[str, Any]],
    delivery_mode: str,
    delivery_time: Optional[str] = None,
    notes: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Place one pending order per supplier represented in the cart."""
    quote = quote_cart(db, lines, delivery_mode)
    # raises before any order is written when the vendor has no session
    points = get_settings().loyalty_points_per_order
    if points:
        sessions.add_points(db, vendor["id"], points)
    online = delivery_mode == "online"
    address = (vendor.get("location") or {}).get("address") or None

    created = []
    for group in quote["groups"]:
        order = Order(
            vendor_id=vendor["id"],
            vendor_name=vendor["name"],
            supplier_id=group["supplier_id"],
            supplier_name=group["supplier_name"],
            items=[
                OrderItem(
                    product_id=item["product_id"],
                    product_name=item["product_name"],
                    quantity=item["quantity"],
                    price=item["price"],
                    unit=item["unit"],
                )
                for item in group["items"]
            ],
            total_amount=group["total_amount"],
            delivery_mode=delivery_mode,
            delivery_address=address if online else None,
            delivery_time=delivery_time if online else None,
            pickup_time=None if online else delivery_time,
            status="pending",
            order_date=now(),
            notes=notes,
        )
        order_id = create_document(db, COLLECTION, order)
        logger.info(
            "order_created",
            order_id=order_id,
            vendor_id=vendor["id"],
            supplier_id=group["supplier_id"],
            total_amount=group["total_amount"],
        )
        notifications.add_notification(
            db,
            user_id=group["supplier_id"],
            type="info",
            title="New Order Received",
            message=f"New order from {vendor['name']} for ₹{group['total_amount']:.2f}",
        )
        created.append(get_order(db, order_id, vendor["id"]))
    return created


def get_order(db: Database, order_id: str, user_id: str) -> Dict[str, Any]:
    """Fetch an order visible to `user_id` (its vendor or supplier)."""
    doc = db[COLLECTION].find_one({"_id": to_object_id(order_id, "Order")})
    if not doc:
        raise NotFoundError("Order not found")
    if user_id not in (doc["vendor_id"], doc["supplier_id"]):
        raise ForbiddenError("Not a party to this order")
    return serialize_doc(doc)


def list_orders(db: Database, user_id: str, user_type: str, status: Optional[str] = None) -> List[Dict[str, Any]]:
    field = "vendor_id" if user_type == "vendor" else "supplier_id"
    filt: Dict[str, Any] = {field: user_id}
    if status and status != "all":
        filt["status"] = status
    docs = get_documents(db, COLLECTION, filt, sort=[("order_date", DESCENDING), ("_id", DESCENDING)])
    return [serialize_doc(d) for d in docs]


def transition_order(db: Database, order_id: str, new_status: str, user_id: str, user_type: str) -> Dict[str, Any]:
    order = get_order(db, order_id, user_id)
    current = order["status"]
    role = TRANSITIONS.get((current, new_status))
    if role is None:
        raise ConflictError(f"Cannot move order from {current} to {new_status}", code="order.invalid_transition")
    party = order["supplier_id"] if role == "supplier" else order["vendor_id"]
    if user_type != role or user_id != party:
        raise ForbiddenError(f"Only the {role} can mark this order {new_status}")

    res = db[COLLECTION].update_one(
        {"_id": to_object_id(order_id, "Order"), "status": current},
        {"$set": {"status": new_status, "updated_at": now()}},
    )
    if res.modified_count == 0:
        raise ConflictError("Order status changed concurrently", code="order.stale_status")
    logger.info("order_status_changed", order_id=order_id, from_status=current, to_status=new_status, by=user_id)

    message = STATUS_MESSAGES.get(new_status)
    if message:
        notifications.add_notification(
            db,
            user_id=order["vendor_id"],
            type="error" if new_status == "rejected" else "success",
            title="Order Status Update",
            message=message,
        )
    return get_order(db, order_id, user_id)


def supplier_order_counts(db: Database, supplier_id: str) -> Dict[str, int]:
    counts = {status: 0 for status in ("pending", "accepted", "rejected", "delivered", "completed")}
    for doc in db[COLLECTION].find({"supplier_id": supplier_id}, {"status": 1}):
        counts[doc["status"]] = counts.get(doc["status"], 0) + 1
    return counts
