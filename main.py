import json
import logging
import re
from contextlib import asynccontextmanager
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
from fastapi import Body, Depends, FastAPI, Header, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, EmailStr, Field
from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError

import database
import messaging
import notifications
import orders
import ratings
import sessions
from config import get_settings
from database import create_document, get_documents, insert_document, now, serialize_doc, to_object_id
from errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ServiceUnavailableError,
    UnauthorizedError,
    register_exception_handlers,
)
from pricing import quote_line
from schemas import (
    BulkDiscount,
    DeliveryMode,
    Location,
    OrderStatus,
    Product as ProductSchema,
    User as UserSchema,
    UserType,
)

_LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer()
        if get_settings().log_format == "json"
        else structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(_LOG_LEVEL_MAP[get_settings().log_level]),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info("starting_marketplace_api", environment=settings.environment)
    database.connect()
    yield
    database.close()
    logger.info("marketplace_api_stopped")


app = FastAPI(title="Street Food Marketplace API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


# ----------------------- Dependencies -----------------------
def get_db():
    db = database.connect()
    if db is None:
        raise ServiceUnavailableError("Database not configured")
    return db


def get_current_user(x_user_id: Optional[str] = Header(None), db=Depends(get_db)):
    """Mocked auth: the X-User-Id header names a user with an open session."""
    if not x_user_id:
        raise UnauthorizedError("Missing X-User-Id header")
    session = sessions.get_session(db, x_user_id)
    if not session:
        raise UnauthorizedError("Not logged in")
    user = db["user"].find_one({"_id": to_object_id(x_user_id, "User")})
    if not user:
        raise UnauthorizedError("User not found")
    user = serialize_doc(user)
    user["loyalty_points"] = session.get("loyalty_points", 0)
    return user


def require_supplier(user=Depends(get_current_user)):
    if user["user_type"] != "supplier":
        raise ForbiddenError("Suppliers only")
    return user


def require_vendor(user=Depends(get_current_user)):
    if user["user_type"] != "vendor":
        raise ForbiddenError("Vendors only")
    return user


# ----------------------- Models -----------------------
class LoginBody(BaseModel):
    name: str
    email: EmailStr
    phone: str = ""
    user_type: UserType
    location: Location = Field(default_factory=Location)
    profile_image: Optional[str] = None


class UserUpdateBody(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[Location] = None
    profile_image: Optional[str] = None


class PointsBody(BaseModel):
    value: int = Field(..., gt=0)


class ProductCreateBody(BaseModel):
    name: str
    category: str
    price: float = Field(..., ge=0)
    unit: str = "kg"
    stock: float = Field(0, ge=0)
    image: Optional[str] = None
    distance: float = Field(0, ge=0)
    delivery_modes: List[DeliveryMode] = Field(default_factory=lambda: ["online", "offline"], min_length=1)
    description: str = ""
    min_order: float = Field(1, gt=0)
    bulk_discounts: List[BulkDiscount] = []


class ProductUpdateBody(BaseModel):
    name: Optional[str] = None
    category: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    unit: Optional[str] = None
    stock: Optional[float] = Field(None, ge=0)
    image: Optional[str] = None
    distance: Optional[float] = Field(None, ge=0)
    delivery_modes: Optional[List[DeliveryMode]] = Field(None, min_length=1)
    description: Optional[str] = None
    min_order: Optional[float] = Field(None, gt=0)
    bulk_discounts: Optional[List[BulkDiscount]] = None


class RatingBody(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str = ""


class CartLineBody(BaseModel):
    product_id: str
    quantity: float = Field(..., gt=0)


class CartQuoteBody(BaseModel):
    items: List[CartLineBody]
    delivery_mode: Optional[DeliveryMode] = None


class CheckoutBody(BaseModel):
    items: List[CartLineBody]
    delivery_mode: DeliveryMode
    delivery_time: Optional[str] = None
    notes: Optional[str] = None


class StatusBody(BaseModel):
    status: OrderStatus


class MessageBody(BaseModel):
    to_id: str
    message: str = Field(..., min_length=1)


# ----------------------- Health -----------------------
@app.get("/", response_class=PlainTextResponse)
def root():
    return "Welcome to the Street Food Marketplace API - backend is running."


@app.get("/test")
def test_database():
    settings = get_settings()
    response = {
        "backend": "Running",
        "database": "Not Available",
        "database_url": "Set" if settings.database_url else "Not Set",
        "database_name": "Set" if settings.database_name else "Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        db = database.connect()
        if db is not None:
            response["collections"] = db.list_collection_names()[:10]
            response["database"] = "Connected & Working"
            response["connection_status"] = "Connected"
    except Exception as e:
        logger.warning("database_check_failed", error=str(e))
        response["database"] = f"Error: {str(e)[:80]}"
    return response


# ----------------------- Vendors & Items -----------------------
@lru_cache
def load_vendors(path: str) -> List[Dict[str, Any]]:
    vendors_path = Path(path)
    if not vendors_path.is_absolute():
        vendors_path = Path(__file__).resolve().parent / vendors_path
    with vendors_path.open(encoding="utf-8") as fh:
        return json.load(fh)


@app.get("/api/vendors")
def list_vendors():
    return load_vendors(get_settings().vendors_file)


@app.get("/api/items")
def list_items(db=Depends(get_db)):
    return [serialize_doc(i) for i in get_documents(db, "item", limit=get_settings().list_limit)]


@app.post("/api/items")
def create_item(body: Dict[str, Any] = Body(...), db=Depends(get_db)):
    try:
        item_id = insert_document(db, "item", body)
    except DuplicateKeyError:
        raise ConflictError("An item with this _id already exists", code="item.duplicate")
    return serialize_doc(db["item"].find_one({"_id": item_id}))


# ----------------------- Auth (mocked) -----------------------
@app.post("/auth/login")
def login(body: LoginBody, db=Depends(get_db)):
    existing = db["user"].find_one({"email": body.email})
    if existing:
        if existing["user_type"] != body.user_type:
            raise ConflictError(
                f"{body.email} is registered as a {existing['user_type']}", code="auth.user_type_mismatch"
            )
        user_id = str(existing["_id"])
    else:
        user = UserSchema(**body.model_dump(), joined_date=now())
        user_id = create_document(db, "user", user)
        logger.info("user_registered", user_id=user_id, user_type=body.user_type)

    session = sessions.open_session(db, user_id, body.user_type)
    user = serialize_doc(db["user"].find_one({"_id": to_object_id(user_id)}))
    return {"user": user, "user_type": body.user_type, "loyalty_points": session["loyalty_points"]}


@app.post("/auth/logout")
def logout(user=Depends(get_current_user), db=Depends(get_db)):
    sessions.close_session(db, user["id"])
    return {"ok": True}


@app.get("/auth/me")
def me(user=Depends(get_current_user)):
    return user


@app.patch("/auth/me")
def update_me(body: UserUpdateBody, user=Depends(get_current_user), db=Depends(get_db)):
    update = body.model_dump(exclude_none=True)
    if update:
        update["updated_at"] = now()
        db["user"].update_one({"_id": to_object_id(user["id"])}, {"$set": update})
        if "name" in update and user["user_type"] == "supplier":
            db["product"].update_many({"supplier_id": user["id"]}, {"$set": {"supplier_name": update["name"]}})
    updated = serialize_doc(db["user"].find_one({"_id": to_object_id(user["id"])}))
    updated["loyalty_points"] = user["loyalty_points"]
    return updated


@app.post("/auth/points")
def add_points(body: PointsBody, user=Depends(get_current_user), db=Depends(get_db)):
    return {"loyalty_points": sessions.add_points(db, user["id"], body.value)}


# ----------------------- Products -----------------------
def _with_supplier_ratings(db, products: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    cache: Dict[str, float] = {}
    for p in products:
        sid = p["supplier_id"]
        if sid not in cache:
            cache[sid] = ratings.get_supplier_rating(db, sid)
        p["supplier_rating"] = cache[sid]
    return products


def _owned_product(db, product_id: str, user) -> Dict[str, Any]:
    item = db["product"].find_one({"_id": to_object_id(product_id, "Product")})
    if not item:
        raise NotFoundError("Product not found")
    if item["supplier_id"] != user["id"]:
        raise ForbiddenError("Only the owning supplier can change this product")
    return item


@app.get("/products")
def list_products(
    q: Optional[str] = None,
    category: Optional[str] = None,
    delivery_mode: Optional[DeliveryMode] = None,
    supplier_id: Optional[str] = None,
    sort_by: str = Query("distance", pattern="^(distance|price|rating)$"),
    db=Depends(get_db),
):
    filt: Dict[str, Any] = {}
    if q:
        pattern = {"$regex": re.escape(q), "$options": "i"}
        filt["$or"] = [{"name": pattern}, {"supplier_name": pattern}]
    if category and category != "All":
        filt["category"] = category
    if delivery_mode:
        filt["delivery_modes"] = delivery_mode
    if supplier_id:
        filt["supplier_id"] = supplier_id

    limit = get_settings().list_limit
    if sort_by == "rating":
        # supplier ratings live in another collection; rank everything, then cut
        items = get_documents(db, "product", filt, sort=[("_id", ASCENDING)])
        products = _with_supplier_ratings(db, [serialize_doc(i) for i in items])
        products.sort(key=lambda p: p["supplier_rating"], reverse=True)
        return products[:limit]

    items = get_documents(db, "product", filt, limit=limit, sort=[(sort_by, ASCENDING), ("_id", ASCENDING)])
    return _with_supplier_ratings(db, [serialize_doc(i) for i in items])


@app.get("/products/{product_id}")
def get_product(product_id: str, db=Depends(get_db)):
    item = db["product"].find_one({"_id": to_object_id(product_id, "Product")})
    if not item:
        raise NotFoundError("Product not found")
    return _with_supplier_ratings(db, [serialize_doc(item)])[0]


@app.get("/products/{product_id}/quote")
def quote_product(product_id: str, quantity: float = Query(..., gt=0), db=Depends(get_db)):
    item = db["product"].find_one({"_id": to_object_id(product_id, "Product")})
    if not item:
        raise NotFoundError("Product not found")
    return quote_line(serialize_doc(item), quantity)


@app.post("/products")
def create_product(body: ProductCreateBody, user=Depends(require_supplier), db=Depends(get_db)):
    product = ProductSchema(
        **body.model_dump(),
        supplier_id=user["id"],
        supplier_name=user["name"],
        last_updated=now(),
    )
    pid = create_document(db, "product", product)
    logger.info("product_created", product_id=pid, supplier_id=user["id"])
    return {"id": pid}


@app.put("/products/{product_id}")
def update_product(product_id: str, body: ProductUpdateBody, user=Depends(require_supplier), db=Depends(get_db)):
    item = _owned_product(db, product_id, user)
    update = {k: v for k, v in body.model_dump(exclude_none=True).items()}
    update["last_updated"] = now()
    update["updated_at"] = update["last_updated"]
    db["product"].update_one({"_id": item["_id"]}, {"$set": update})
    return {"ok": True}


@app.delete("/products/{product_id}")
def delete_product(product_id: str, user=Depends(require_supplier), db=Depends(get_db)):
    item = _owned_product(db, product_id, user)
    db["product"].delete_one({"_id": item["_id"]})
    logger.info("product_deleted", product_id=product_id, supplier_id=user["id"])
    return {"ok": True}


@app.post("/products/{product_id}/ratings")
def rate_product(product_id: str, body: RatingBody, user=Depends(get_current_user), db=Depends(get_db)):
    return ratings.add_product_rating(db, product_id, user, body.rating, body.comment)


# ----------------------- Suppliers -----------------------
@app.get("/suppliers/me/stats")
def supplier_stats(user=Depends(require_supplier), db=Depends(get_db)):
    products = get_documents(db, "product", {"supplier_id": user["id"]})
    return {
        "products": len(products),
        "total_stock": sum(p.get("stock", 0) for p in products),
        "total_value": round(sum(p.get("stock", 0) * p["price"] for p in products), 2),
        "orders": orders.supplier_order_counts(db, user["id"]),
        "rating": ratings.get_supplier_rating(db, user["id"]),
    }


@app.get("/suppliers/{supplier_id}/products")
def supplier_products(supplier_id: str, db=Depends(get_db)):
    items = get_documents(db, "product", {"supplier_id": supplier_id}, sort=[("_id", ASCENDING)])
    return _with_supplier_ratings(db, [serialize_doc(i) for i in items])


@app.get("/suppliers/{supplier_id}/rating")
def supplier_rating(supplier_id: str, db=Depends(get_db)):
    return {
        "supplier_id": supplier_id,
        "rating": ratings.get_supplier_rating(db, supplier_id),
        "count": db["supplierrating"].count_documents({"supplier_id": supplier_id}),
    }


# ----------------------- Cart & Orders -----------------------
@app.post("/cart/quote")
def quote_cart(body: CartQuoteBody, db=Depends(get_db)):
    lines = [line.model_dump() for line in body.items]
    return orders.quote_cart(db, lines, body.delivery_mode)


@app.post("/orders/checkout")
def checkout(body: CheckoutBody, user=Depends(require_vendor), db=Depends(get_db)):
    created = orders.checkout(
        db,
        user,
        [line.model_dump() for line in body.items],
        body.delivery_mode,
        delivery_time=body.delivery_time,
        notes=body.notes,
    )
    session = sessions.get_session(db, user["id"])
    return {"orders": created, "loyalty_points": session["loyalty_points"] if session else 0}


@app.get("/orders")
def list_orders(status: Optional[str] = None, user=Depends(get_current_user), db=Depends(get_db)):
    return orders.list_orders(db, user["id"], user["user_type"], status)


@app.get("/orders/{order_id}")
def get_order(order_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    return orders.get_order(db, order_id, user["id"])


@app.patch("/orders/{order_id}/status")
def update_order_status(order_id: str, body: StatusBody, user=Depends(get_current_user), db=Depends(get_db)):
    return orders.transition_order(db, order_id, body.status, user["id"], user["user_type"])


@app.post("/orders/{order_id}/rating")
def rate_supplier(order_id: str, body: RatingBody, user=Depends(require_vendor), db=Depends(get_db)):
    order = orders.get_order(db, order_id, user["id"])
    rating_id = ratings.add_supplier_rating(db, order, user, body.rating, body.comment)
    return {"id": rating_id, "supplier_rating": ratings.get_supplier_rating(db, order["supplier_id"])}


# ----------------------- Messages -----------------------
@app.post("/messages")
def send_message(body: MessageBody, user=Depends(get_current_user), db=Depends(get_db)):
    return messaging.send_message(db, user, body.to_id, body.message)


@app.get("/messages")
def list_messages(with_user: Optional[str] = None, user=Depends(get_current_user), db=Depends(get_db)):
    return messaging.list_messages(db, user["id"], with_user)


@app.post("/messages/{message_id}/read")
def read_message(message_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    messaging.mark_message_as_read(db, message_id, user["id"])
    return {"ok": True}


# ----------------------- Notifications -----------------------
@app.get("/notifications")
def list_notifications(unread: bool = False, user=Depends(get_current_user), db=Depends(get_db)):
    return notifications.list_notifications(db, user["id"], unread_only=unread, limit=get_settings().list_limit)


@app.get("/notifications/unread-count")
def unread_count(user=Depends(get_current_user), db=Depends(get_db)):
    return {"count": notifications.get_unread_count(db, user["id"])}


@app.post("/notifications/{notification_id}/read")
def read_notification(notification_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    notifications.mark_as_read(db, notification_id, user["id"])
    return {"ok": True}


@app.delete("/notifications/{notification_id}")
def delete_notification(notification_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    notifications.remove_notification(db, notification_id, user["id"])
    return {"ok": True}


# ----------------------- Seed Demo Data -----------------------
DEMO_SUPPLIERS = [
    {
        "name": "Ravi Vegetable Mart",
        "email": "ravi@suppliers.example.com",
        "phone": "+91 98765 43210",
        "location": {"address": "Crawford Market, Mumbai", "coordinates": [18.9477, 72.8342]},
    },
    {
        "name": "Sharma Fresh Supplies",
        "email": "sharma@suppliers.example.com",
        "phone": "+91 98765 11111",
        "location": {"address": "Vashi APMC, Navi Mumbai", "coordinates": [19.0771, 72.9986]},
    },
    {
        "name": "Green Valley Farms",
        "email": "greenvalley@suppliers.example.com",
        "phone": "+91 98765 22222",
        "location": {"address": "Dadar Flower Market, Mumbai", "coordinates": [19.0186, 72.8424]},
    },
]

DEMO_PRODUCTS = [
    {
        "supplier": 0,
        "name": "Fresh Red Onions",
        "category": "Vegetables",
        "price": 30,
        "unit": "kg",
        "stock": 500,
        "image": "https://images.pexels.com/photos/3648850/pexels-photo-3648850.jpeg",
        "distance": 1.2,
        "delivery_modes": ["online", "offline"],
        "description": "Fresh, high-quality red onions sourced directly from local farms.",
        "min_order": 5,
        "bulk_discounts": [{"quantity": 50, "discount": 5}, {"quantity": 100, "discount": 10}],
    },
    {
        "supplier": 1,
        "name": "Premium Potatoes",
        "category": "Vegetables",
        "price": 25,
        "unit": "kg",
        "stock": 300,
        "image": "https://images.pexels.com/photos/144248/potatoes-vegetables-erdfrucht-bio-144248.jpeg",
        "distance": 2.5,
        "delivery_modes": ["online"],
        "description": "Grade A potatoes perfect for all your cooking needs.",
        "min_order": 10,
    },
    {
        "supplier": 0,
        "name": "Garam Masala Powder",
        "category": "Spices",
        "price": 180,
        "unit": "kg",
        "stock": 50,
        "image": "https://images.pexels.com/photos/4198015/pexels-photo-4198015.jpeg",
        "distance": 1.2,
        "delivery_modes": ["online", "offline"],
        "description": "Authentic garam masala blend with premium spices.",
        "min_order": 1,
    },
    {
        "supplier": 2,
        "name": "Fresh Tomatoes",
        "category": "Vegetables",
        "price": 35,
        "unit": "kg",
        "stock": 200,
        "image": "https://images.pexels.com/photos/1327838/pexels-photo-1327838.jpeg",
        "distance": 3.1,
        "delivery_modes": ["online", "offline"],
        "description": "Farm-fresh tomatoes with rich flavor and vibrant color.",
        "min_order": 5,
        "bulk_discounts": [{"quantity": 25, "discount": 8}],
    },
]


@app.post("/seed")
def seed(db=Depends(get_db)):
    if db["product"].count_documents({}) > 0:
        return {"seeded": False, "message": "Products already exist"}

    supplier_ids = []
    for s in DEMO_SUPPLIERS:
        existing = db["user"].find_one({"email": s["email"]})
        if existing:
            supplier_ids.append(str(existing["_id"]))
            continue
        supplier = UserSchema(**s, user_type="supplier", verified=True, joined_date=now())
        supplier_ids.append(create_document(db, "user", supplier))

    for p in DEMO_PRODUCTS:
        data = dict(p)
        owner = data.pop("supplier")
        prod = ProductSchema(
            **data,
            supplier_id=supplier_ids[owner],
            supplier_name=DEMO_SUPPLIERS[owner]["name"],
            last_updated=now(),
        )
        create_document(db, "product", prod)
    logger.info("demo_data_seeded", products=len(DEMO_PRODUCTS), suppliers=len(supplier_ids))
    return {"seeded": True, "products": db["product"].count_documents({})}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)
