"""One payment intent per checkout, and reconciliation of its outcome.

Reconciliation never trusts a success callback on its own: the gateway is
asked again, and only a ``successful`` transaction with our reference, our
currency and at least the expected amount confirms the orders. Anything else
cancels them. An intent is resolved once; later callbacks are replays.
"""

import enum
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Mapping, Optional

from libs.common.cache import ReadCache
from libs.common.currency import from_minor_units, to_minor_units
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.marketplace_service.errors import NotFoundError
from services.marketplace_service.gateway.port import (
    PENDING,
    SUCCESSFUL,
    PaymentGateway,
    VerifiedPayment,
)
from services.marketplace_service.models import (
    NotificationType,
    Order,
    OrderStatus,
    PaymentIntent,
    PaymentIntentStatus,
    PaymentStatus,
)
from services.marketplace_service.services.authorization import Actor
from services.marketplace_service.services.fulfillment import ORDER_FLOW, apply_order_status
from services.marketplace_service.services.notifications import notify
from services.marketplace_service.services.order_queries import order_cache_patterns
from services.marketplace_service.services.repository import (
    commit_or_conflict,
    fetch_orders_by_ref,
)
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

# Provider says "not settled yet": leave everything as is
UNSETTLED_STATUSES = frozenset({PENDING, "processing", "ongoing"})


class PaymentOutcome(str, enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class PaymentIntentDraft:
    """Gateway-side intent, not yet persisted."""

    tx_ref: str
    checkout_url: str
    currency: str
    total_amount_minor: int
    per_vendor_amounts_minor: dict[str, int]


@dataclass
class ReconcileResult:
    tx_ref: str
    status: PaymentIntentStatus
    replayed: bool = False
    pending: bool = False
    order_ids: list[uuid.UUID] = field(default_factory=list)


def generate_tx_ref() -> str:
    return f"TX-{uuid.uuid4().hex.upper()}"


async def create_intent(
    gateway: PaymentGateway,
    *,
    tx_ref: str,
    currency: str,
    payer_email: str,
    per_vendor_totals: Mapping[uuid.UUID, Decimal],
    redirect_url: str,
    metadata: Optional[dict[str, Any]] = None,
) -> PaymentIntentDraft:
    """Request one hosted checkout sized at the sum of every vendor total.

    Raises ``PaymentGatewayError`` when the gateway gives no checkout reference.
    """
    per_vendor_minor = {
        str(vendor_id): to_minor_units(total)
        for vendor_id, total in per_vendor_totals.items()
    }
    total_minor = sum(per_vendor_minor.values())
    initiated = await gateway.initiate(
        amount=from_minor_units(total_minor),
        currency=currency,
        payer_email=payer_email,
        tx_ref=tx_ref,
        redirect_url=redirect_url,
        metadata=metadata or {},
    )
    logger.info(
        f"Payment intent {tx_ref} created for {total_minor} minor units",
        extra={"extra_fields": {"tx_ref": tx_ref, "currency": currency}},
    )
    return PaymentIntentDraft(
        tx_ref=tx_ref,
        checkout_url=initiated.checkout_url,
        currency=currency,
        total_amount_minor=total_minor,
        per_vendor_amounts_minor=per_vendor_minor,
    )


def verification_problem(intent: PaymentIntent, verified: VerifiedPayment) -> Optional[str]:
    """Why ``verified`` does not prove ``intent`` was paid, or None if it does."""
    if verified.status != SUCCESSFUL:
        return f"Gateway reports status {verified.status or 'unknown'}"
    if verified.tx_ref != intent.tx_ref:
        return f"Reference mismatch: got {verified.tx_ref}"
    if verified.currency.upper() != intent.currency.upper():
        return f"Currency mismatch: got {verified.currency}"
    paid_minor = to_minor_units(verified.amount)
    if paid_minor < intent.total_amount_minor:
        return (
            f"Amount mismatch: got {paid_minor}, expected {intent.total_amount_minor}"
        )
    return None


async def reconcile(
    db: AsyncSession,
    gateway: PaymentGateway,
    cache: ReadCache,
    *,
    tx_ref: str,
    outcome: PaymentOutcome,
    transaction_id: Optional[str] = None,
) -> ReconcileResult:
    """Apply a gateway outcome to every order sharing ``tx_ref``, exactly once.

    A gateway outage during verification raises ``PaymentGatewayError`` with
    nothing changed, so the provider's retry can land later.
    """
    intent = await db.scalar(
        select(PaymentIntent)
        .where(PaymentIntent.tx_ref == tx_ref)
        .execution_options(populate_existing=True)
    )
    if intent is None or intent.status == PaymentIntentStatus.VOIDED:
        raise NotFoundError("Payment", tx_ref)

    orders = await fetch_orders_by_ref(db, tx_ref)
    order_ids = [order.id for order in orders]

    if intent.status != PaymentIntentStatus.PENDING:
        logger.info(
            f"Callback for {tx_ref} skipped - payment already processed",
            extra={"extra_fields": {"tx_ref": tx_ref, "status": intent.status.value}},
        )
        return ReconcileResult(
            tx_ref=tx_ref, status=intent.status, replayed=True, order_ids=order_ids
        )

    if outcome == PaymentOutcome.SUCCESS:
        if transaction_id:
            verified = await gateway.verify(transaction_id)
        else:
            verified = await gateway.verify_by_reference(tx_ref)

        if verified.status in UNSETTLED_STATUSES:
            return ReconcileResult(
                tx_ref=tx_ref, status=intent.status, pending=True, order_ids=order_ids
            )

        problem = verification_problem(intent, verified)
        if problem is None:
            await _confirm(db, intent, orders, verified)
        else:
            logger.warning(
                f"Payment verification failed for {tx_ref}: {problem}",
                extra={"extra_fields": {"tx_ref": tx_ref}},
            )
            await _fail(db, intent, orders, problem, verified.transaction_id)
    else:
        await _fail(db, intent, orders, "Gateway reported failure", transaction_id)

    await commit_or_conflict(db)
    await cache.invalidate(*order_cache_patterns(orders))
    return ReconcileResult(tx_ref=tx_ref, status=intent.status, order_ids=order_ids)


async def _confirm(
    db: AsyncSession,
    intent: PaymentIntent,
    orders: list[Order],
    verified: VerifiedPayment,
) -> None:
    intent.status = PaymentIntentStatus.SUCCEEDED
    intent.gateway_transaction_id = verified.transaction_id
    intent.resolved_at = utc_now()

    for order in orders:
        order.payment_status = PaymentStatus.COMPLETED
        if order.status == OrderStatus.PENDING:
            await apply_order_status(db, order, OrderStatus.CONFIRMED, Actor.SYSTEM)
        elif order.status == OrderStatus.CANCELLED:
            # Paid but cancelled: money is held until an admin moves it to REFUNDED
            logger.warning(
                f"Order {order.order_number} paid after cancellation, refund due",
                extra={
                    "extra_fields": {
                        "order_id": str(order.id),
                        "tx_ref": intent.tx_ref,
                        "amount": str(order.total_amount),
                    }
                },
            )
            notify(
                db,
                user_id=order.user_id,
                type=NotificationType.PAYMENT,
                title="Refund due",
                message=(
                    f"Order {order.order_number} was cancelled before your payment "
                    "arrived. The amount will be refunded."
                ),
                data={"order_id": order.id, "tx_ref": intent.tx_ref},
            )
        else:
            logger.warning(
                f"Order {order.order_number} paid while {order.status.value}",
                extra={"extra_fields": {"order_id": str(order.id)}},
            )

    notify(
        db,
        user_id=intent.user_id,
        type=NotificationType.PAYMENT,
        title="Payment received",
        message=f"Your payment for {len(orders)} order(s) was successful.",
        data={"tx_ref": intent.tx_ref},
    )


async def _fail(
    db: AsyncSession,
    intent: PaymentIntent,
    orders: list[Order],
    reason: str,
    transaction_id: Optional[str],
) -> None:
    intent.status = PaymentIntentStatus.FAILED
    intent.failure_reason = reason
    intent.gateway_transaction_id = transaction_id
    intent.resolved_at = utc_now()

    for order in orders:
        order.payment_status = PaymentStatus.FAILED
        if OrderStatus.CANCELLED in ORDER_FLOW[order.status]:
            await apply_order_status(
                db, order, OrderStatus.CANCELLED, Actor.SYSTEM, reason="Payment failed"
            )

    notify(
        db,
        user_id=intent.user_id,
        type=NotificationType.PAYMENT,
        title="Payment failed",
        message="Your payment could not be completed and your orders were cancelled.",
        data={"tx_ref": intent.tx_ref},
    )
