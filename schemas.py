"""
Database Schemas for the Street Food Marketplace

Each Pydantic model corresponds to one MongoDB collection.
Collection name is the lowercase of the class name.

Collections:
- user
- product
- order
- message
- notification
- supplierrating
"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

UserType = Literal["vendor", "supplier"]
DeliveryMode = Literal["online", "offline"]
OrderStatus = Literal["pending", "accepted", "rejected", "delivered", "completed"]
NotificationType = Literal["info", "success", "error", "warning"]


class Location(BaseModel):
    address: str = ""
    coordinates: List[float] = Field(default_factory=lambda: [0.0, 0.0], min_length=2, max_length=2)


class User(BaseModel):
    name: str = Field(..., description="Full name or business name")
    email: EmailStr
    phone: str = ""
    user_type: UserType
    location: Location = Field(default_factory=Location)
    profile_image: Optional[str] = None
    verified: bool = False
    rating: Optional[float] = Field(None, ge=0, le=5)
    joined_date: Optional[datetime] = None


class BulkDiscount(BaseModel):
    quantity: float = Field(..., gt=0, description="Threshold that unlocks the discount")
    discount: float = Field(..., ge=0, le=100, description="Percentage off the list price")


class ProductRating(BaseModel):
    id: str
    user_id: str
    user_name: str
    rating: int = Field(..., ge=1, le=5)
    comment: str = ""
    date: datetime


class Product(BaseModel):
    name: str
    category: str
    price: float = Field(..., ge=0)
    unit: str = "kg"
    stock: float = Field(0, ge=0)
    image: Optional[str] = None
    supplier_id: str
    supplier_name: str
    distance: float = Field(0, ge=0, description="Mock distance in km")
    delivery_modes: List[DeliveryMode] = Field(default_factory=lambda: ["online", "offline"])
    description: str = ""
    min_order: float = Field(1, gt=0)
    bulk_discounts: List[BulkDiscount] = []
    ratings: List[ProductRating] = []
    average_rating: Optional[float] = None
    last_updated: Optional[datetime] = None

    @field_validator("delivery_modes")
    @classmethod
    def at_least_one_mode(cls, v):
        if not v:
            raise ValueError("at least one delivery mode is required")
        return list(dict.fromkeys(v))


class OrderItem(BaseModel):
    product_id: str
    product_name: str
    quantity: float
    price: float = Field(..., description="Unit price after bulk discount")
    unit: str


class Order(BaseModel):
    vendor_id: str
    vendor_name: str
    supplier_id: str
    supplier_name: str
    items: List[OrderItem]
    total_amount: float = Field(..., ge=0)
    delivery_mode: DeliveryMode
    delivery_address: Optional[str] = None
    pickup_time: Optional[str] = None
    delivery_time: Optional[str] = None
    status: OrderStatus = "pending"
    order_date: datetime
    notes: Optional[str] = None


class Message(BaseModel):
    from_id: str
    to_id: str
    from_name: str
    to_name: str
    message: str = Field(..., min_length=1)
    timestamp: datetime
    read: bool = False


class Notification(BaseModel):
    type: NotificationType
    title: str
    message: str
    user_id: str
    timestamp: datetime
    read: bool = False


class SupplierRating(BaseModel):
    supplier_id: str
    vendor_id: str
    vendor_name: str
    rating: int = Field(..., ge=1, le=5)
    comment: str = ""
    order_id: str
    date: datetime
