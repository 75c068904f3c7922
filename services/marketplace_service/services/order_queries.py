"""Role- and scope-filtered order reads, served through the read cache."""

import math
import uuid
from decimal import Decimal
from typing import Iterable, Optional

from libs.common.cache import ReadCache
from libs.common.currency import ZERO, quantize_money
from services.marketplace_service.errors import ForbiddenError, NotFoundError
from services.marketplace_service.models import Delivery, Order, OrderStatus, PaymentStatus
from services.marketplace_service.schemas import (
    DashboardStats,
    OrderPage,
    OrderResponse,
    PaginationMeta,
    TransactionGroupResponse,
)
from services.marketplace_service.services.authorization import (
    ORDERS_RESOURCE,
    READ,
    order_actor,
)
from services.marketplace_service.services.context import Operator
from services.marketplace_service.services.repository import (
    ORDER_LOAD_OPTIONS,
    fetch_order,
    fetch_orders_by_ref,
)
from services.marketplace_service.services.scope import DENY, build_predicate
from services.marketplace_service.services.scope_sql import apply_scope
from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

# ============================================================================
# CACHE KEYS
# ============================================================================


def order_cache_patterns(orders: Iterable[Order]) -> list[str]:
    """Every cached read an order mutation can make stale."""
    patterns = {"orders:admin:*", "orders:dashboard:*"}
    for order in orders:
        patterns.add(f"orders:user:{order.user_id}:*")
        patterns.add(f"orders:grouped:{order.user_id}")
        patterns.add(f"orders:vendor:{order.vendor_id}:*")
        patterns.add("orders:rider:*")
        patterns.add(f"orders:txn:{order.user_id}:{order.transaction_ref}")
    return sorted(patterns)


# ============================================================================
# HELPERS
# ============================================================================


async def _page(
    db: AsyncSession, stmt: Select, page: int, limit: int
) -> OrderPage:
    total = await db.scalar(
        select(func.count()).select_from(stmt.order_by(None).subquery())
    )
    result = await db.execute(
        stmt.options(*ORDER_LOAD_OPTIONS)
        .order_by(Order.created_at.desc(), Order.order_number)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    orders = result.scalars().unique().all()
    total = total or 0
    return OrderPage(
        data=[OrderResponse.model_validate(order) for order in orders],
        meta=PaginationMeta(
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit) if limit else 0,
        ),
    )


def _empty_page(page: int, limit: int) -> OrderPage:
    return OrderPage(
        data=[], meta=PaginationMeta(total=0, page=page, limit=limit, total_pages=0)
    )


def _scoped_base(operator: Operator) -> Optional[Select]:
    """Admin listing query narrowed to the operator's scope; None means deny."""
    if not (operator.is_admin or operator.is_sub_admin):
        raise ForbiddenError()
    predicate = build_predicate(operator, ORDERS_RESOURCE, [READ])
    if predicate is DENY:
        return None
    return apply_scope(select(Order), predicate)


# ============================================================================
# READS
# ============================================================================


async def list_orders(
    db: AsyncSession,
    operator: Operator,
    cache: ReadCache,
    *,
    status: Optional[OrderStatus] = None,
    page: int = 1,
    limit: int = 20,
) -> OrderPage:
    """The caller's own orders: sold (vendor), carried (rider) or bought."""
    suffix = f"{status.value if status else 'all'}:{page}:{limit}"
    if operator.vendor_id is not None:
        key = f"orders:vendor:{operator.vendor_id}:{suffix}"
        stmt = select(Order).where(Order.vendor_id == operator.vendor_id)
    elif operator.rider_id is not None:
        key = f"orders:rider:{operator.rider_id}:{suffix}"
        stmt = (
            select(Order)
            .join(Delivery, Delivery.order_id == Order.id)
            .where(Delivery.rider_id == operator.rider_id)
        )
    else:
        key = f"orders:user:{operator.user_id}:{suffix}"
        stmt = select(Order).where(Order.user_id == operator.user_id)

    if status is not None:
        stmt = stmt.where(Order.status == status)

    return await cache.read_through(
        key, lambda: _page(db, stmt, page, limit), OrderPage
    )


async def list_admin_orders(
    db: AsyncSession,
    operator: Operator,
    cache: ReadCache,
    *,
    status: Optional[OrderStatus] = None,
    user_id: Optional[str] = None,
    vendor_id: Optional[uuid.UUID] = None,
    page: int = 1,
    limit: int = 20,
) -> OrderPage:
    """All orders the admin or sub-admin may see."""
    stmt = _scoped_base(operator)
    if stmt is None:
        return _empty_page(page, limit)

    if status is not None:
        stmt = stmt.where(Order.status == status)
    if user_id is not None:
        stmt = stmt.where(Order.user_id == user_id)
    if vendor_id is not None:
        stmt = stmt.where(Order.vendor_id == vendor_id)

    key = (
        f"orders:admin:{operator.user_id}:{status.value if status else 'all'}:"
        f"{user_id or '-'}:{vendor_id or '-'}:{page}:{limit}"
    )
    return await cache.read_through(
        key, lambda: _page(db, stmt, page, limit), OrderPage
    )


async def dashboard_stats(
    db: AsyncSession, operator: Operator, cache: ReadCache
) -> DashboardStats:
    """Order counts by status and settled revenue within the caller's reach."""
    if operator.is_admin or operator.is_sub_admin:
        stmt = _scoped_base(operator)
        if stmt is None:
            return DashboardStats(total_orders=0, total_revenue=ZERO, status_counts={})
    elif operator.vendor_id is not None:
        stmt = select(Order).where(Order.vendor_id == operator.vendor_id)
    else:
        raise ForbiddenError()

    orders = stmt.subquery()

    async def load() -> DashboardStats:
        rows = await db.execute(
            select(orders.c.status, func.count()).group_by(orders.c.status)
        )
        status_counts = {
            getattr(row_status, "value", row_status): count
            for row_status, count in rows.all()
        }
        revenue = await db.scalar(
            select(func.coalesce(func.sum(orders.c.total_amount), 0)).where(
                orders.c.payment_status == PaymentStatus.COMPLETED
            )
        )
        return DashboardStats(
            total_orders=sum(status_counts.values()),
            total_revenue=quantize_money(Decimal(str(revenue or 0))),
            status_counts=status_counts,
        )

    return await cache.read_through(
        f"orders:dashboard:{operator.user_id}", load, DashboardStats
    )


async def grouped_orders(
    db: AsyncSession, operator: Operator, cache: ReadCache
) -> list[TransactionGroupResponse]:
    """The buyer's orders grouped per checkout."""

    async def load() -> list[TransactionGroupResponse]:
        result = await db.execute(
            select(Order)
            .where(Order.user_id == operator.user_id)
            .options(*ORDER_LOAD_OPTIONS)
            .order_by(Order.created_at.desc(), Order.order_number)
        )
        groups: dict[str, list[Order]] = {}
        for order in result.scalars().all():
            groups.setdefault(order.transaction_ref, []).append(order)
        return [_group(ref, orders) for ref, orders in groups.items()]

    return await cache.read_through(
        f"orders:grouped:{operator.user_id}",
        load,
        list[TransactionGroupResponse],
    )


async def transaction_orders(
    db: AsyncSession, operator: Operator, transaction_ref: str, cache: ReadCache
) -> TransactionGroupResponse:
    """One checkout's orders, visible to the buyer who placed it."""

    async def load() -> TransactionGroupResponse:
        orders = await fetch_orders_by_ref(db, transaction_ref)
        if not orders:
            raise NotFoundError("Transaction", transaction_ref)
        if any(order.user_id != operator.user_id for order in orders):
            raise ForbiddenError()
        return _group(transaction_ref, orders)

    return await cache.read_through(
        f"orders:txn:{operator.user_id}:{transaction_ref}",
        load,
        TransactionGroupResponse,
    )


async def get_order(db: AsyncSession, operator: Operator, order_id: uuid.UUID) -> Order:
    order = await fetch_order(db, order_id)
    order_actor(operator, order, READ)
    return order


def _group(transaction_ref: str, orders: list[Order]) -> TransactionGroupResponse:
    statuses = {order.payment_status for order in orders}
    return TransactionGroupResponse(
        transaction_ref=transaction_ref,
        total_amount=quantize_money(sum((o.total_amount for o in orders), ZERO)),
        payment_status=statuses.pop() if len(statuses) == 1 else PaymentStatus.PENDING,
        orders=[OrderResponse.model_validate(order) for order in orders],
    )
