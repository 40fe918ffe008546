"""
Database and API Schemas for the storefront

Documents are stored in MongoDB with snake_case keys, one collection per
model named after the lowercase class name (User -> "user"). Over HTTP every
model speaks camelCase (``shippingAddress``, ``totalAmount``) while still
accepting snake_case input.
"""
from __future__ import annotations
from datetime import datetime
from typing import List, Optional
from enum import Enum

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Role(str, Enum):
    admin = "admin"
    user = "user"


class OrderStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    shipped = "shipped"
    delivered = "delivered"
    cancelled = "cancelled"


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    pages: int


# Auth

class RegisterPayload(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6)


class LoginPayload(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class UserOut(CamelModel):
    id: str
    name: str
    email: str
    role: Role
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AuthResponse(CamelModel):
    success: bool = True
    user: UserOut
    token: str


class UserResponse(CamelModel):
    success: bool = True
    user: UserOut


# Products

class ProductIn(CamelModel):
    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    price: float = Field(..., ge=0, allow_inf_nan=False)
    category: str = Field(..., min_length=1)
    stock: int = Field(..., ge=0)
    image: Optional[str] = None


class ProductOut(CamelModel):
    id: str
    name: str
    description: str
    price: float
    category: str
    stock: int
    image: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProductResponse(CamelModel):
    success: bool = True
    product: ProductOut


class ProductListResponse(CamelModel):
    success: bool = True
    products: List[ProductOut]
    pagination: Pagination


class CategoryListResponse(CamelModel):
    success: bool = True
    categories: List[str]


# Orders

class OrderItemIn(CamelModel):
    product_id: str
    # Strict so JSON booleans are rejected; the range is checked by the order
    # service so the message names the item.
    quantity: int = Field(..., strict=True)


class ShippingAddress(CamelModel):
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1)


class OrderCreate(CamelModel):
    items: List[OrderItemIn]
    shipping_address: ShippingAddress


class StatusChange(CamelModel):
    status: str


class ProductRef(CamelModel):
    id: str
    name: str
    image: Optional[str] = None
    description: Optional[str] = None


class OrderUser(CamelModel):
    id: str
    name: str
    email: str


class OrderItemOut(CamelModel):
    product_id: str
    # Null once the product has been deleted; name/image below are snapshots.
    product: Optional[ProductRef] = None
    name: Optional[str] = None
    image: Optional[str] = None
    quantity: int
    price: float


class OrderOut(CamelModel):
    id: str
    user_id: str
    user: Optional[OrderUser] = None
    items: List[OrderItemOut]
    total_amount: float
    shipping_address: ShippingAddress
    status: OrderStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OrderResponse(CamelModel):
    success: bool = True
    order: OrderOut


class OrderListResponse(CamelModel):
    success: bool = True
    orders: List[OrderOut]
    pagination: Pagination


# AI assistant

class AskPayload(CamelModel):
    question: str = Field(..., min_length=1, max_length=2000)
    product_id: Optional[str] = None


class AskResponse(CamelModel):
    success: bool = True
    response: str


class MessageResponse(CamelModel):
    success: bool = True
    message: str
