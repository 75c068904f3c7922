"""Order and delivery status machines.

Each entity has one flow table (state -> next states) and one transition map
keyed by ``(current state, actor)`` derived from it. A move absent from the
flow is an ``InvalidTransitionError``; a move in the flow that the actor may
not make is a ``ForbiddenError``.

Delivery drives order: PICKED_UP, IN_TRANSIT and DELIVERED push the order to
SHIPPED, OUT_FOR_DELIVERY and DELIVERED, but only forward: a re-queued delivery
replays PICKED_UP and IN_TRANSIT without moving the order back. Order changes
never touch the delivery.
"""

import uuid
from decimal import Decimal
from types import MappingProxyType
from typing import Callable, Mapping, Optional, TypeVar

from libs.common.cache import ReadCache
from libs.common.currency import quantize_money
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.marketplace_service.errors import (
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from services.marketplace_service.models import (
    Delivery,
    DeliveryStatus,
    NotificationType,
    Order,
    OrderStatus,
    PaymentStatus,
    Rider,
    RiderEarning,
)
from services.marketplace_service.services.authorization import (
    Actor,
    delivery_actor,
    order_actor,
)
from services.marketplace_service.services.context import Operator
from services.marketplace_service.services.inventory import restock
from services.marketplace_service.services.notifications import notify
from services.marketplace_service.services.order_queries import order_cache_patterns
from services.marketplace_service.services.repository import (
    commit_or_conflict,
    fetch_delivery,
    fetch_order,
)
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

S = TypeVar("S")

RIDER_EARNING_RATE = Decimal("0.10")
MIN_RIDER_EARNING = Decimal("5.00")

# ============================================================================
# TRANSITION TABLES
# ============================================================================

ORDER_FLOW: Mapping[OrderStatus, frozenset[OrderStatus]] = MappingProxyType(
    {
        OrderStatus.PENDING: frozenset(
            {OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.CANCELLED}
        ),
        OrderStatus.CONFIRMED: frozenset(
            {OrderStatus.PROCESSING, OrderStatus.CANCELLED}
        ),
        OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
        OrderStatus.SHIPPED: frozenset(
            {
                OrderStatus.OUT_FOR_DELIVERY,
                OrderStatus.DELIVERED,
                OrderStatus.CANCELLED,
            }
        ),
        OrderStatus.OUT_FOR_DELIVERY: frozenset({OrderStatus.DELIVERED}),
        OrderStatus.DELIVERED: frozenset({OrderStatus.REFUNDED}),
        OrderStatus.CANCELLED: frozenset({OrderStatus.REFUNDED}),
        OrderStatus.REFUNDED: frozenset(),
    }
)

DELIVERY_FLOW: Mapping[DeliveryStatus, frozenset[DeliveryStatus]] = MappingProxyType(
    {
        DeliveryStatus.PENDING: frozenset(
            {DeliveryStatus.ASSIGNED, DeliveryStatus.CANCELLED}
        ),
        DeliveryStatus.ASSIGNED: frozenset(
            {DeliveryStatus.PICKED_UP, DeliveryStatus.CANCELLED}
        ),
        DeliveryStatus.PICKED_UP: frozenset(
            {DeliveryStatus.IN_TRANSIT, DeliveryStatus.CANCELLED}
        ),
        DeliveryStatus.IN_TRANSIT: frozenset(
            {DeliveryStatus.DELIVERED, DeliveryStatus.FAILED}
        ),
        DeliveryStatus.DELIVERED: frozenset(),
        DeliveryStatus.FAILED: frozenset({DeliveryStatus.PENDING}),
        DeliveryStatus.CANCELLED: frozenset({DeliveryStatus.PENDING}),
    }
)

DELIVERY_TO_ORDER: Mapping[DeliveryStatus, OrderStatus] = MappingProxyType(
    {
        DeliveryStatus.PICKED_UP: OrderStatus.SHIPPED,
        DeliveryStatus.IN_TRANSIT: OrderStatus.OUT_FOR_DELIVERY,
        DeliveryStatus.DELIVERED: OrderStatus.DELIVERED,
    }
)

ORDER_PROGRESS: tuple[OrderStatus, ...] = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
)

_RIDER_MOVES = frozenset(
    {
        (DeliveryStatus.ASSIGNED, DeliveryStatus.PICKED_UP),
        (DeliveryStatus.PICKED_UP, DeliveryStatus.IN_TRANSIT),
        (DeliveryStatus.IN_TRANSIT, DeliveryStatus.DELIVERED),
        (DeliveryStatus.IN_TRANSIT, DeliveryStatus.FAILED),
    }
)
_CUSTOMER_CANCELLABLE = frozenset(
    {OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PROCESSING}
)


def _everything(current, target) -> bool:
    return True


def order_reached(current: OrderStatus, target: OrderStatus) -> bool:
    """True when ``current`` is ``target`` or further along the happy path."""
    if current not in ORDER_PROGRESS or target not in ORDER_PROGRESS:
        return current == target
    return ORDER_PROGRESS.index(current) >= ORDER_PROGRESS.index(target)


def _build_transitions(
    flow: Mapping[S, frozenset[S]], rules: Mapping[Actor, Callable[[S, S], bool]]
) -> Mapping[tuple[S, Actor], frozenset[S]]:
    table = {
        (state, actor): frozenset(t for t in targets if allowed(state, t))
        for actor, allowed in rules.items()
        for state, targets in flow.items()
    }
    return MappingProxyType(table)


ORDER_TRANSITIONS = _build_transitions(
    ORDER_FLOW,
    {
        Actor.SYSTEM: _everything,
        Actor.ADMIN: _everything,
        # Payment confirmation comes from the gateway; refunds are admin-only
        Actor.VENDOR: lambda current, target: target != OrderStatus.REFUNDED
        and target != OrderStatus.CONFIRMED,
        Actor.RIDER: lambda current, target: False,
        Actor.CUSTOMER: lambda current, target: target == OrderStatus.CANCELLED
        and current in _CUSTOMER_CANCELLABLE,
    },
)

DELIVERY_TRANSITIONS = _build_transitions(
    DELIVERY_FLOW,
    {
        Actor.SYSTEM: _everything,
        Actor.ADMIN: _everything,
        Actor.VENDOR: lambda current, target: (current, target) not in _RIDER_MOVES,
        Actor.RIDER: lambda current, target: (current, target) in _RIDER_MOVES,
        Actor.CUSTOMER: lambda current, target: False,
    },
)


def check_transition(
    flow: Mapping[S, frozenset[S]],
    transitions: Mapping[tuple[S, Actor], frozenset[S]],
    current: S,
    requested: S,
    actor: Actor,
    entity: str = "order",
) -> None:
    if requested not in flow.get(current, frozenset()):
        raise InvalidTransitionError(current, requested, entity=entity)
    if requested not in transitions.get((current, actor), frozenset()):
        raise ForbiddenError()


# ============================================================================
# SIDE EFFECTS
# ============================================================================


def rider_earning_amount(order_total: Decimal) -> Decimal:
    return max(quantize_money(Decimal(order_total) * RIDER_EARNING_RATE), MIN_RIDER_EARNING)


async def ensure_rider_earning(
    db: AsyncSession, delivery: Optional[Delivery], order: Order
) -> Optional[RiderEarning]:
    """Record the rider's earning for a completed delivery, once.

    Called at most once per unit of work; the unique delivery_id backs it up.
    """
    if delivery is None or delivery.rider_id is None:
        return None
    existing = await db.scalar(
        select(RiderEarning).where(RiderEarning.delivery_id == delivery.id)
    )
    if existing is not None:
        return existing

    earning = RiderEarning(
        rider_id=delivery.rider_id,
        delivery_id=delivery.id,
        order_id=order.id,
        amount=rider_earning_amount(order.total_amount),
    )
    db.add(earning)
    return earning


async def apply_order_status(
    db: AsyncSession,
    order: Order,
    new_status: OrderStatus,
    actor: Actor,
    *,
    reason: Optional[str] = None,
) -> None:
    """Validate and apply one order transition with its side effects.

    The caller owns the commit.
    """
    check_transition(ORDER_FLOW, ORDER_TRANSITIONS, order.status, new_status, actor)

    previous = order.status
    order.status = new_status
    now = utc_now()

    if new_status == OrderStatus.PROCESSING and order.delivery is None:
        order.delivery = Delivery(
            status=DeliveryStatus.PENDING,
            tracking_number=Delivery.generate_tracking_number(),
        )
    elif new_status == OrderStatus.CANCELLED:
        order.cancelled_at = now
        for item in order.items:
            await restock(db, item.product_id, item.variant_id, item.quantity)
    elif new_status == OrderStatus.DELIVERED:
        order.delivered_at = now
        await ensure_rider_earning(db, order.delivery, order)
    elif new_status == OrderStatus.REFUNDED:
        if order.payment_status == PaymentStatus.COMPLETED:
            order.payment_status = PaymentStatus.REFUNDED

    label = new_status.value.replace("_", " ")
    message = f"Your order {order.order_number} is now {label}."
    if reason:
        message = f"{message} Reason: {reason}"
    notify(
        db,
        user_id=order.user_id,
        type=NotificationType.ORDER_STATUS,
        title=f"Order {label}",
        message=message,
        data={"order_id": order.id, "status": new_status.value},
    )

    logger.info(
        f"Order {order.order_number} {previous.value} -> {new_status.value}",
        extra={
            "extra_fields": {
                "order_id": str(order.id),
                "actor": actor.value,
                "from": previous.value,
                "to": new_status.value,
            }
        },
    )


async def apply_delivery_status(
    db: AsyncSession,
    delivery: Delivery,
    new_status: DeliveryStatus,
    actor: Actor,
) -> None:
    check_transition(
        DELIVERY_FLOW,
        DELIVERY_TRANSITIONS,
        delivery.status,
        new_status,
        actor,
        entity="delivery",
    )
    if new_status == DeliveryStatus.ASSIGNED and delivery.rider_id is None:
        raise ValidationError(["A rider must be assigned first"], "Cannot assign delivery")

    previous = delivery.status
    delivery.status = new_status
    now = utc_now()

    if new_status == DeliveryStatus.ASSIGNED:
        delivery.assigned_at = now
    elif new_status == DeliveryStatus.PICKED_UP:
        delivery.picked_up_at = now
    elif new_status == DeliveryStatus.DELIVERED:
        delivery.delivered_at = now
    elif new_status == DeliveryStatus.PENDING:
        # Re-queued: free for another rider
        delivery.rider_id = None
        delivery.assigned_at = None

    order = delivery.order
    target = DELIVERY_TO_ORDER.get(new_status)
    if target is not None and not order_reached(order.status, target):
        await apply_order_status(db, order, target, Actor.SYSTEM)
    elif new_status == DeliveryStatus.DELIVERED:
        await ensure_rider_earning(db, delivery, order)

    if new_status == DeliveryStatus.FAILED:
        notify(
            db,
            user_id=order.user_id,
            type=NotificationType.DELIVERY,
            title="Delivery attempt failed",
            message=f"We could not deliver order {order.order_number}. It will be rescheduled.",
            data={"order_id": order.id, "delivery_id": delivery.id},
        )

    logger.info(
        f"Delivery {delivery.tracking_number} {previous.value} -> {new_status.value}",
        extra={
            "extra_fields": {
                "delivery_id": str(delivery.id),
                "actor": actor.value,
            }
        },
    )


# ============================================================================
# OPERATIONS
# ============================================================================


async def transition_order(
    db: AsyncSession,
    operator: Operator,
    order_id: uuid.UUID,
    new_status: OrderStatus,
    cache: ReadCache,
    *,
    reason: Optional[str] = None,
) -> Order:
    """Move an order to ``new_status`` on behalf of ``operator``."""
    order = await fetch_order(db, order_id)
    actor = order_actor(operator, order)
    await apply_order_status(db, order, new_status, actor, reason=reason)
    await commit_or_conflict(db)
    await cache.invalidate(*order_cache_patterns([order]))
    return await fetch_order(db, order.id)


async def cancel_order(
    db: AsyncSession,
    operator: Operator,
    order_id: uuid.UUID,
    cache: ReadCache,
    *,
    reason: Optional[str] = None,
) -> Order:
    return await transition_order(
        db, operator, order_id, OrderStatus.CANCELLED, cache, reason=reason
    )


async def transition_delivery(
    db: AsyncSession,
    operator: Operator,
    delivery_id: uuid.UUID,
    new_status: DeliveryStatus,
    cache: ReadCache,
) -> Delivery:
    delivery = await fetch_delivery(db, delivery_id)
    actor = delivery_actor(operator, delivery)
    await apply_delivery_status(db, delivery, new_status, actor)
    await commit_or_conflict(db)
    await cache.invalidate(*order_cache_patterns([delivery.order]))
    return await fetch_delivery(db, delivery.id)


async def assign_rider(
    db: AsyncSession,
    operator: Operator,
    delivery_id: uuid.UUID,
    rider_id: uuid.UUID,
    cache: ReadCache,
) -> Delivery:
    """Give a pending delivery to a verified, available rider."""
    delivery = await fetch_delivery(db, delivery_id)
    actor = delivery_actor(operator, delivery)
    check_transition(
        DELIVERY_FLOW,
        DELIVERY_TRANSITIONS,
        delivery.status,
        DeliveryStatus.ASSIGNED,
        actor,
        entity="delivery",
    )

    rider = await db.get(Rider, rider_id)
    if rider is None:
        raise NotFoundError("Rider", rider_id)
    problems = []
    if not rider.is_verified:
        problems.append("Rider is not verified")
    if not rider.is_available:
        problems.append("Rider is not available")
    if problems:
        raise ValidationError(problems, "Rider cannot take this delivery")

    delivery.rider_id = rider.id
    await apply_delivery_status(db, delivery, DeliveryStatus.ASSIGNED, actor)

    order = delivery.order
    notify(
        db,
        user_id=rider.user_id,
        type=NotificationType.DELIVERY,
        title="New delivery assigned",
        message=f"You have been assigned order {order.order_number}.",
        data={"delivery_id": delivery.id, "tracking_number": delivery.tracking_number},
    )
    notify(
        db,
        user_id=order.user_id,
        type=NotificationType.DELIVERY,
        title="Rider assigned",
        message=f"A rider has been assigned to order {order.order_number}.",
        data={"order_id": order.id, "tracking_number": delivery.tracking_number},
    )

    await commit_or_conflict(db)
    await cache.invalidate(*order_cache_patterns([order]))
    return await fetch_delivery(db, delivery.id)
