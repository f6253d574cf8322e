"""
Database Schemas for the ClearX marketplace

Each Pydantic model corresponds to one MongoDB collection.
Collection name is the lowercase of the class name.
Documents are stored with camelCase keys (populate with either form).
"""
import time
from datetime import datetime
from typing import Dict, List, Literal, Optional, Set

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

Vertical = Literal["DEALS", "RURAL", "MAKERS"]
Role = Literal["consumer", "seller", "admin"]
OrderStatus = Literal["confirmed", "processing", "shipped", "delivered", "cancelled"]

# Forward path of an order; cancelled is reachable from any non-terminal status.
STATUS_FLOW = ["confirmed", "processing", "shipped", "delivered"]
TERMINAL_STATUSES: Set[str] = {"delivered", "cancelled"}


def can_transition(current: str, new: str) -> bool:
    if current == new:
        return True
    if current in TERMINAL_STATUSES:
        return False
    if new == "cancelled":
        return True
    if current not in STATUS_FLOW or new not in STATUS_FLOW:
        return False
    return STATUS_FLOW.index(new) > STATUS_FLOW.index(current)


def new_order_id() -> str:
    """Order id: "ord-" plus the last six digits of the current millisecond clock."""
    return "ord-" + str(int(time.time() * 1000))[-6:]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SellerProfile(CamelModel):
    business_name: Optional[str] = None
    business_address: Optional[str] = None
    gst_number: Optional[str] = None
    bank_account: Optional[str] = None
    category: Optional[str] = None


class User(CamelModel):
    uid: str = Field(..., description="External identity (Firebase uid)")
    phone_number: Optional[str] = Field(None, description="Unique when present")
    name: str = ""
    email: Optional[EmailStr] = None
    address: str = ""
    role: Role = "consumer"
    seller_profile: Optional[SellerProfile] = None
    wishlist: List[str] = Field(default_factory=list)
    coins: int = 50


class Product(CamelModel):
    id: str = Field(..., description="App-level product id")
    name: str
    description: str = ""
    price: float = Field(..., ge=0)
    original_price: Optional[float] = None
    discount: Optional[str] = None
    image: str = ""
    category: str = ""
    vertical: Optional[Vertical] = None
    store_name: str = ""
    store_id: str = ""
    stock: int = 100
    rating: float = Field(4.5, ge=0, le=5)
    distance: str = ""
    delivery_time: str = ""
    # Deals
    expiry_date: Optional[str] = None
    # Rural
    weight: Optional[str] = None
    origin: Optional[str] = None
    # Makers
    material: Optional[str] = None
    maker_material: Optional[str] = None
    dimensions: Optional[str] = None


class OrderItem(CamelModel):
    id: str
    name: str = ""
    price: float = 0
    quantity: int = Field(1, ge=1)
    vertical: Optional[Vertical] = None


class Order(CamelModel):
    id: str
    user_id: str
    items: List[OrderItem]
    total: float
    status: OrderStatus = "confirmed"
    delivery_address: Optional[str] = None
    payment_mode: Optional[str] = None
    date: datetime


# Request bodies

class LoginBody(CamelModel):
    id_token: Optional[str] = None
    uid: Optional[str] = None
    phone_number: Optional[str] = None
    name: Optional[str] = None
    email: Optional[EmailStr] = None

    @field_validator("email", mode="before")
    @classmethod
    def blank_email_is_none(cls, v):
        # clients send "" when the shopper skipped the field
        return v or None


class ProductUpdateBody(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    original_price: Optional[float] = None
    discount: Optional[str] = None
    image: Optional[str] = None
    category: Optional[str] = None
    vertical: Optional[Vertical] = None
    store_name: Optional[str] = None
    store_id: Optional[str] = None
    stock: Optional[int] = None
    rating: Optional[float] = Field(None, ge=0, le=5)
    distance: Optional[str] = None
    delivery_time: Optional[str] = None
    expiry_date: Optional[str] = None
    weight: Optional[str] = None
    origin: Optional[str] = None
    material: Optional[str] = None
    maker_material: Optional[str] = None
    dimensions: Optional[str] = None


class OrderCreateBody(CamelModel):
    items: List[OrderItem]
    total: float
    delivery_address: Optional[str] = None
    payment_mode: Optional[str] = None


class OrderStatusBody(BaseModel):
    status: OrderStatus


class ProfileUpdateBody(CamelModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    address: Optional[str] = None
    phone_number: Optional[str] = None


class WishlistBody(CamelModel):
    product_id: str


class UpgradeSellerBody(CamelModel):
    seller_profile: SellerProfile


class AssistantBody(BaseModel):
    prompt: str


def dump(model: BaseModel) -> Dict:
    """Storage/wire form of a model: camelCase keys, unset optionals dropped."""
    return model.model_dump(by_alias=True, exclude_none=True)
