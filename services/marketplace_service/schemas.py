"""Pydantic schemas for marketplace service."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from services.marketplace_service.models import (
    DeliveryStatus,
    OrderStatus,
    PaymentIntentStatus,
    PaymentStatus,
)

# ============================================================================
# CHECKOUT SCHEMAS
# ============================================================================


class CartLineIn(BaseModel):
    product_id: uuid.UUID
    variant_id: Optional[uuid.UUID] = None
    quantity: int = Field(..., ge=1)


class ShippingAddressIn(BaseModel):
    full_name: str = Field(..., max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    address_line: str = Field(..., max_length=255)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    country: Optional[str] = Field(None, max_length=100)
    postal_code: Optional[str] = Field(None, max_length=20)


class CheckoutRequest(BaseModel):
    items: list[CartLineIn] = Field(..., min_length=1)

    # Address selection: exactly one mode is used, checked in this order
    use_default_address: bool = False
    shipping_address_id: Optional[uuid.UUID] = None
    address_id: Optional[uuid.UUID] = None
    shipping_address: Optional[ShippingAddressIn] = None

    # vendor_id -> chosen shipping option
    shipping_selections: dict[uuid.UUID, uuid.UUID] = Field(default_factory=dict)
    coupon_code: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    redirect_url: Optional[str] = None


# ============================================================================
# ORDER SCHEMAS
# ============================================================================


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    product_id: uuid.UUID
    variant_id: Optional[uuid.UUID]
    product_name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal


class DeliveryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_id: uuid.UUID
    rider_id: Optional[uuid.UUID]
    status: DeliveryStatus
    tracking_number: str
    assigned_at: Optional[datetime]
    picked_up_at: Optional[datetime]
    delivered_at: Optional[datetime]


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_number: str
    user_id: str
    vendor_id: uuid.UUID
    transaction_ref: str

    subtotal: Decimal
    discount_amount: Decimal
    shipping_cost: Decimal
    total_amount: Decimal
    coupon_code: Optional[str]

    status: OrderStatus
    payment_status: PaymentStatus
    payment_intent_id: Optional[uuid.UUID]
    address_id: Optional[uuid.UUID]
    shipping_address_id: Optional[uuid.UUID]
    notes: Optional[str]

    items: list[OrderItemResponse] = []
    delivery: Optional[DeliveryResponse] = None

    cancelled_at: Optional[datetime]
    delivered_at: Optional[datetime]
    created_at: datetime


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class CancelOrderRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class PaginationMeta(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


class OrderPage(BaseModel):
    data: list[OrderResponse]
    meta: PaginationMeta


class TransactionGroupResponse(BaseModel):
    transaction_ref: str
    total_amount: Decimal
    payment_status: PaymentStatus
    orders: list[OrderResponse]


class DashboardStats(BaseModel):
    total_orders: int
    total_revenue: Decimal
    status_counts: dict[str, int]


# ============================================================================
# PAYMENT SCHEMAS
# ============================================================================


class PaymentIntentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    tx_ref: str
    checkout_url: Optional[str]
    currency: str
    total_amount_minor: int
    per_vendor_amounts_minor: dict[str, int]
    status: PaymentIntentStatus


class CheckoutResponse(BaseModel):
    transaction_ref: str
    payment_intent: PaymentIntentResponse
    orders: list[OrderResponse]


class ReconcileResponse(BaseModel):
    tx_ref: str
    status: PaymentIntentStatus
    replayed: bool = False
    pending: bool = False
    order_ids: list[uuid.UUID] = []


# ============================================================================
# DELIVERY SCHEMAS
# ============================================================================


class DeliveryStatusUpdate(BaseModel):
    status: DeliveryStatus


class AssignRiderRequest(BaseModel):
    rider_id: uuid.UUID
