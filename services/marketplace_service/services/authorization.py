"""Who may act on an order or delivery, and in which capacity."""

import enum

from services.marketplace_service.errors import ForbiddenError
from services.marketplace_service.models import Delivery, Order
from services.marketplace_service.services.context import Operator
from services.marketplace_service.services.scope import (
    build_predicate,
    matches,
    order_location,
)

ORDERS_RESOURCE = "orders"
DELIVERIES_RESOURCE = "deliveries"

READ = "read"
UPDATE = "update"


class Actor(str, enum.Enum):
    ADMIN = "admin"
    VENDOR = "vendor"
    RIDER = "rider"
    CUSTOMER = "customer"
    # Gateway reconciliation and delivery-driven cascades
    SYSTEM = "system"


def _in_scope(operator: Operator, resource: str, action: str, order: Order) -> bool:
    if not operator.is_sub_admin:
        return False
    predicate = build_predicate(operator, resource, [action])
    return matches(predicate, order_location(order))


def order_actor(operator: Operator, order: Order, action: str = UPDATE) -> Actor:
    """Capacity in which ``operator`` acts on ``order``; ForbiddenError if none."""
    if operator.is_admin or _in_scope(operator, ORDERS_RESOURCE, action, order):
        return Actor.ADMIN
    if operator.vendor_id is not None and operator.vendor_id == order.vendor_id:
        return Actor.VENDOR
    delivery = order.delivery
    if (
        operator.rider_id is not None
        and delivery is not None
        and delivery.rider_id == operator.rider_id
    ):
        return Actor.RIDER
    if order.user_id == operator.user_id:
        return Actor.CUSTOMER
    raise ForbiddenError()


def delivery_actor(operator: Operator, delivery: Delivery, action: str = UPDATE) -> Actor:
    order = delivery.order
    if operator.is_admin or _in_scope(operator, DELIVERIES_RESOURCE, action, order):
        return Actor.ADMIN
    if operator.vendor_id is not None and operator.vendor_id == order.vendor_id:
        return Actor.VENDOR
    if operator.rider_id is not None and delivery.rider_id == operator.rider_id:
        return Actor.RIDER
    raise ForbiddenError()
