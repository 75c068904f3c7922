"""Loading helpers and the commit boundary shared by the write paths."""

import uuid

from services.marketplace_service.errors import ConcurrencyConflictError, NotFoundError
from services.marketplace_service.models import Delivery, Order
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

ORDER_LOAD_OPTIONS = (
    selectinload(Order.items),
    selectinload(Order.delivery),
    selectinload(Order.address),
    selectinload(Order.shipping_address),
)


async def fetch_order(db: AsyncSession, order_id: uuid.UUID) -> Order:
    """Load an order with everything transitions and responses touch."""
    order = await db.scalar(
        select(Order)
        .where(Order.id == order_id)
        .options(*ORDER_LOAD_OPTIONS)
        .execution_options(populate_existing=True)
    )
    if order is None:
        raise NotFoundError("Order", order_id)
    return order


async def fetch_orders_by_ref(db: AsyncSession, transaction_ref: str) -> list[Order]:
    result = await db.execute(
        select(Order)
        .where(Order.transaction_ref == transaction_ref)
        .options(*ORDER_LOAD_OPTIONS)
        .order_by(Order.created_at, Order.order_number)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def fetch_delivery(db: AsyncSession, delivery_id: uuid.UUID) -> Delivery:
    delivery = await db.scalar(
        select(Delivery)
        .where(Delivery.id == delivery_id)
        .options(
            selectinload(Delivery.order).selectinload(Order.items),
            selectinload(Delivery.order).selectinload(Order.delivery),
            selectinload(Delivery.order).selectinload(Order.address),
            selectinload(Delivery.order).selectinload(Order.shipping_address),
        )
        .execution_options(populate_existing=True)
    )
    if delivery is None:
        raise NotFoundError("Delivery", delivery_id)
    return delivery


async def commit_or_conflict(db: AsyncSession) -> None:
    """Commit; a lost optimistic-lock race or duplicate key becomes a retryable 409."""
    try:
        await db.commit()
    except (StaleDataError, IntegrityError) as e:
        await db.rollback()
        raise ConcurrencyConflictError() from e
