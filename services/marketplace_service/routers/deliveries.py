"""Delivery assignment and rider progress updates."""

import uuid

from fastapi import APIRouter, Depends
from libs.common.cache import ReadCache
from libs.db.session import get_async_db
from services.marketplace_service.dependencies import get_operator, get_read_cache
from services.marketplace_service.schemas import (
    AssignRiderRequest,
    DeliveryResponse,
    DeliveryStatusUpdate,
)
from services.marketplace_service.services import fulfillment
from services.marketplace_service.services.context import Operator
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/deliveries", tags=["deliveries"])


@router.post("/{delivery_id}/assign", response_model=DeliveryResponse)
async def assign_rider(
    delivery_id: uuid.UUID,
    request: AssignRiderRequest,
    operator: Operator = Depends(get_operator),
    db: AsyncSession = Depends(get_async_db),
    cache: ReadCache = Depends(get_read_cache),
):
    """Hand a pending delivery to a verified, available rider."""
    return await fulfillment.assign_rider(
        db, operator, delivery_id, request.rider_id, cache
    )


@router.patch("/{delivery_id}/status", response_model=DeliveryResponse)
async def update_delivery_status(
    delivery_id: uuid.UUID,
    update: DeliveryStatusUpdate,
    operator: Operator = Depends(get_operator),
    db: AsyncSession = Depends(get_async_db),
    cache: ReadCache = Depends(get_read_cache),
):
    """Rider progress (pickup, transit, drop-off) also moves the order."""
    return await fulfillment.transition_delivery(
        db, operator, delivery_id, update.status, cache
    )
