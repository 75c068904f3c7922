"""Marketplace orders router: checkout, listings and status changes."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from libs.auth.dependencies import require_admin
from libs.auth.models import AuthUser
from libs.common.cache import ReadCache
from libs.db.session import get_async_db
from services.marketplace_service.dependencies import (
    get_operator,
    get_payment_gateway,
    get_read_cache,
)
from services.marketplace_service.gateway import PaymentGateway
from services.marketplace_service.models import OrderStatus
from services.marketplace_service.schemas import (
    CancelOrderRequest,
    CheckoutRequest,
    CheckoutResponse,
    DashboardStats,
    OrderPage,
    OrderResponse,
    OrderStatusUpdate,
    PaymentIntentResponse,
    TransactionGroupResponse,
)
from services.marketplace_service.services import fulfillment, order_queries
from services.marketplace_service.services.context import Operator
from services.marketplace_service.services.fanout import create_orders
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/orders", tags=["orders"])


# ============================================================================
# CHECKOUT
# ============================================================================


@router.post("", response_model=CheckoutResponse, status_code=status.HTTP_201_CREATED)
async def checkout(
    request: CheckoutRequest,
    operator: Operator = Depends(get_operator),
    db: AsyncSession = Depends(get_async_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    cache: ReadCache = Depends(get_read_cache),
):
    """Create one order per vendor in the cart, all paid through one checkout."""
    result = await create_orders(db, operator, request, gateway, cache)
    return CheckoutResponse(
        transaction_ref=result.transaction_ref,
        payment_intent=PaymentIntentResponse.model_validate(result.payment_intent),
        orders=[OrderResponse.model_validate(order) for order in result.orders],
    )


# ============================================================================
# LISTINGS
# ============================================================================


@router.get("", response_model=OrderPage)
async def list_my_orders(
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    operator: Operator = Depends(get_operator),
    db: AsyncSession = Depends(get_async_db),
    cache: ReadCache = Depends(get_read_cache),
):
    """Orders the caller bought, or sold when the caller is a vendor."""
    return await order_queries.list_orders(
        db, operator, cache, status=status_filter, page=page, limit=limit
    )


@router.get("/grouped", response_model=list[TransactionGroupResponse])
async def list_grouped_orders(
    operator: Operator = Depends(get_operator),
    db: AsyncSession = Depends(get_async_db),
    cache: ReadCache = Depends(get_read_cache),
):
    return await order_queries.grouped_orders(db, operator, cache)


@router.get("/admin", response_model=OrderPage)
async def list_admin_orders(
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    user_id: Optional[str] = Query(None),
    vendor_id: Optional[uuid.UUID] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    _admin: AuthUser = Depends(require_admin),
    operator: Operator = Depends(get_operator),
    db: AsyncSession = Depends(get_async_db),
    cache: ReadCache = Depends(get_read_cache),
):
    """All orders within the admin's reach. Sub-admins see their scope only."""
    return await order_queries.list_admin_orders(
        db,
        operator,
        cache,
        status=status_filter,
        user_id=user_id,
        vendor_id=vendor_id,
        page=page,
        limit=limit,
    )


@router.get("/dashboard", response_model=DashboardStats)
async def get_dashboard_stats(
    operator: Operator = Depends(get_operator),
    db: AsyncSession = Depends(get_async_db),
    cache: ReadCache = Depends(get_read_cache),
):
    return await order_queries.dashboard_stats(db, operator, cache)


@router.get("/transaction/{transaction_ref}", response_model=TransactionGroupResponse)
async def get_transaction_orders(
    transaction_ref: str,
    operator: Operator = Depends(get_operator),
    db: AsyncSession = Depends(get_async_db),
    cache: ReadCache = Depends(get_read_cache),
):
    return await order_queries.transaction_orders(db, operator, transaction_ref, cache)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: uuid.UUID,
    operator: Operator = Depends(get_operator),
    db: AsyncSession = Depends(get_async_db),
):
    return await order_queries.get_order(db, operator, order_id)


# ============================================================================
# STATUS CHANGES
# ============================================================================


@router.patch("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: uuid.UUID,
    update: OrderStatusUpdate,
    operator: Operator = Depends(get_operator),
    db: AsyncSession = Depends(get_async_db),
    cache: ReadCache = Depends(get_read_cache),
):
    """Move an order along its lifecycle (vendor, admin or in-scope sub-admin)."""
    return await fulfillment.transition_order(
        db, operator, order_id, update.status, cache
    )


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: uuid.UUID,
    request: Optional[CancelOrderRequest] = None,
    operator: Operator = Depends(get_operator),
    db: AsyncSession = Depends(get_async_db),
    cache: ReadCache = Depends(get_read_cache),
):
    """Cancel an order; stock is returned and the buyer notified."""
    return await fulfillment.cancel_order(
        db,
        operator,
        order_id,
        cache,
        reason=request.reason if request else None,
    )
