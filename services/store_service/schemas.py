"""Pydantic schemas for store service."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from services.store_service.models import AddressType, OrderStatus, PaymentStatus

# ============================================================================
# ADDRESS SCHEMAS
# ============================================================================


class AddressBase(BaseModel):
    type: AddressType = AddressType.SHIPPING
    first_name: str = Field(..., max_length=100)
    last_name: str = Field(..., max_length=100)
    company: Optional[str] = Field(None, max_length=255)
    address1: str = Field(..., max_length=255)
    address2: Optional[str] = Field(None, max_length=255)
    city: str = Field(..., max_length=100)
    state: str = Field(..., max_length=100)
    postal_code: str = Field(..., max_length=20)
    country: str = Field("France", max_length=100)
    phone: Optional[str] = Field(None, max_length=20)
    is_default: bool = False


class AddressCreate(AddressBase):
    pass


class AddressResponse(AddressBase):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    created_at: datetime


# ============================================================================
# CART SCHEMAS
# ============================================================================


class CartItemCreate(BaseModel):
    product_id: uuid.UUID
    variant_id: Optional[uuid.UUID] = None
    quantity: int = Field(1, ge=1)


class CartItemUpdate(BaseModel):
    quantity: int = Field(..., ge=1)


class CartItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    product_id: uuid.UUID
    variant_id: Optional[uuid.UUID]
    quantity: int
    price: Decimal
    line_total: Decimal


class CartResponse(BaseModel):
    id: uuid.UUID
    items: list[CartItemResponse] = []
    subtotal: Decimal


# ============================================================================
# CHECKOUT SCHEMAS
# ============================================================================


class CheckoutRequest(BaseModel):
    address_id: uuid.UUID
    payment_method: str = Field("stripe", max_length=50)


class PaymentIntentResponse(BaseModel):
    id: str
    client_secret: Optional[str] = None


# ============================================================================
# ORDER SCHEMAS
# ============================================================================


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    product_id: uuid.UUID
    variant_id: Optional[uuid.UUID]
    product_name: str
    variant_name: Optional[str]
    sku: Optional[str]
    quantity: int
    price: Decimal
    total: Decimal


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_number: str
    user_id: str
    status: OrderStatus

    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal
    total: Decimal
    currency: str

    payment_method: Optional[str]
    payment_status: PaymentStatus
    payment_intent_id: Optional[str]
    notes: Optional[str]

    shipped_at: Optional[datetime]
    delivered_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    items: list[OrderItemResponse] = []
    address: Optional[AddressResponse] = None


class CheckoutResponse(BaseModel):
    order: OrderResponse
    payment_intent: Optional[PaymentIntentResponse] = None


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_orders: int
    has_next_page: bool
    has_prev_page: bool


class OrderListResponse(BaseModel):
    orders: list[OrderResponse]
    pagination: Pagination


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    notes: Optional[str] = None


class OrderItemUpdate(BaseModel):
    quantity: Optional[int] = Field(None, ge=1)
    price: Optional[Decimal] = Field(None, ge=0)
