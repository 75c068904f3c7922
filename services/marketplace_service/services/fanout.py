"""Checkout: one cart, one payment, one order per vendor.

Stock is reserved and the gateway intent requested before anything is
written, so a rejected cart or an unreachable gateway leaves no trace. The
orders, their items and the intent record are then committed together.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.cache import ReadCache
from libs.common.config import get_settings
from libs.common.currency import ZERO, quantize_money
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.marketplace_service.errors import ConcurrencyConflictError, ValidationError
from services.marketplace_service.gateway.port import PaymentGateway
from services.marketplace_service.models import (
    Order,
    OrderItem,
    OrderStatus,
    PaymentIntent,
    PaymentIntentStatus,
    PaymentStatus,
)
from services.marketplace_service.schemas import CheckoutRequest
from services.marketplace_service.services.addresses import resolve_checkout_address
from services.marketplace_service.services.context import Operator
from services.marketplace_service.services.discounts import distribute, find_coupon
from services.marketplace_service.services.inventory import validate_and_reserve
from services.marketplace_service.services.order_queries import order_cache_patterns
from services.marketplace_service.services.payment_intents import (
    PaymentIntentDraft,
    create_intent,
    generate_tx_ref,
)
from services.marketplace_service.services.pricing import (
    active_flash_sale_percentages,
    resolve_unit_price,
)
from services.marketplace_service.services.repository import fetch_orders_by_ref
from services.marketplace_service.services.shipping import shipping_cost
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

logger = get_logger(__name__)


@dataclass
class CheckoutResult:
    transaction_ref: str
    payment_intent: PaymentIntent
    orders: list[Order]


@dataclass
class _VendorOrder:
    vendor_id: uuid.UUID
    items: list[OrderItem]
    subtotal: Decimal = ZERO
    discount: Decimal = ZERO
    shipping: Decimal = ZERO
    shipping_option_id: Optional[uuid.UUID] = None

    @property
    def total(self) -> Decimal:
        return quantize_money(max(self.subtotal - self.discount, ZERO) + self.shipping)


async def create_orders(
    db: AsyncSession,
    operator: Operator,
    request: CheckoutRequest,
    gateway: PaymentGateway,
    cache: ReadCache,
    *,
    now: Optional[datetime] = None,
) -> CheckoutResult:
    """Split the cart into per-vendor orders under one transaction reference."""
    now = now or utc_now()
    settings = get_settings()

    try:
        address = await resolve_checkout_address(db, operator.user_id, request)

        check = await validate_and_reserve(db, request.items)
        if not check.ok:
            raise ValidationError(check.errors)

        flash_sales = await active_flash_sale_percentages(db, check.products.keys(), now)

        groups: dict[uuid.UUID, _VendorOrder] = {}
        for line in request.items:
            product = check.products[line.product_id]
            variant = check.variant(line.product_id, line.variant_id)
            unit_price = resolve_unit_price(product, variant, flash_sales.get(product.id))
            name = product.name if variant is None else f"{product.name} - {variant.name}"

            group = groups.setdefault(
                product.vendor_id, _VendorOrder(vendor_id=product.vendor_id, items=[])
            )
            group.items.append(
                OrderItem(
                    product_id=product.id,
                    variant_id=line.variant_id,
                    product_name=name,
                    quantity=line.quantity,
                    unit_price=unit_price,
                    total_price=quantize_money(unit_price * line.quantity),
                )
            )
            group.subtotal = quantize_money(group.subtotal + unit_price * line.quantity)

        coupon = None
        if request.coupon_code:
            coupon = await find_coupon(db, request.coupon_code)
            discounts = distribute(
                coupon, {v: g.subtotal for v, g in groups.items()}, now
            )
            for vendor_id, group in groups.items():
                group.discount = min(discounts.get(vendor_id, ZERO), group.subtotal)

        for vendor_id, group in groups.items():
            group.shipping_option_id = request.shipping_selections.get(vendor_id)
            group.shipping = await shipping_cost(db, group.shipping_option_id, vendor_id)

        if not operator.email:
            raise ValidationError(["An email address is required to pay"])

        tx_ref = generate_tx_ref()
        draft = await create_intent(
            gateway,
            tx_ref=tx_ref,
            currency=(request.currency or settings.DEFAULT_CURRENCY).upper(),
            payer_email=operator.email,
            per_vendor_totals={v: g.total for v, g in groups.items()},
            redirect_url=request.redirect_url or settings.PAYMENT_REDIRECT_URL,
            metadata={"user_id": operator.user_id, "vendor_count": len(groups)},
        )
    except Exception:
        await db.rollback()
        raise

    intent = PaymentIntent(
        tx_ref=draft.tx_ref,
        user_id=operator.user_id,
        payer_email=operator.email,
        checkout_url=draft.checkout_url,
        currency=draft.currency,
        total_amount_minor=draft.total_amount_minor,
        per_vendor_amounts_minor=draft.per_vendor_amounts_minor,
        status=PaymentIntentStatus.PENDING,
    )
    db.add(intent)

    for group in groups.values():
        db.add(
            Order(
                order_number=Order.generate_order_number(),
                user_id=operator.user_id,
                vendor_id=group.vendor_id,
                transaction_ref=tx_ref,
                subtotal=group.subtotal,
                discount_amount=group.discount,
                shipping_cost=group.shipping,
                total_amount=group.total,
                coupon_code=coupon.code if coupon is not None else None,
                status=OrderStatus.PENDING,
                payment_status=PaymentStatus.PENDING,
                payment_intent=intent,
                address_id=address.address_id,
                shipping_address_id=address.shipping_address_id,
                shipping_option_id=group.shipping_option_id,
                notes=request.notes,
                items=group.items,
            )
        )

    if coupon is not None and any(g.discount > 0 for g in groups.values()):
        coupon.usage_count = (coupon.usage_count or 0) + 1

    try:
        await db.commit()
    except Exception as e:
        await db.rollback()
        await _record_voided_intent(db, operator, draft, reason=str(e))
        if isinstance(e, (IntegrityError, StaleDataError)):
            raise ConcurrencyConflictError() from e
        raise

    orders = await fetch_orders_by_ref(db, tx_ref)
    await cache.invalidate(*order_cache_patterns(orders))

    logger.info(
        f"Checkout {tx_ref} created {len(orders)} order(s)",
        extra={
            "extra_fields": {
                "tx_ref": tx_ref,
                "user_id": operator.user_id,
                "vendor_ids": [str(order.vendor_id) for order in orders],
                "total_amount_minor": draft.total_amount_minor,
            }
        },
    )
    return CheckoutResult(transaction_ref=tx_ref, payment_intent=intent, orders=orders)


async def _record_voided_intent(
    db: AsyncSession, operator: Operator, draft: PaymentIntentDraft, *, reason: str
) -> None:
    """Keep a trace of a gateway intent whose orders never persisted."""
    logger.error(
        f"Orders for {draft.tx_ref} failed to persist after payment initiation",
        extra={"extra_fields": {"tx_ref": draft.tx_ref, "user_id": operator.user_id}},
    )
    db.add(
        PaymentIntent(
            tx_ref=draft.tx_ref,
            user_id=operator.user_id,
            payer_email=operator.email,
            checkout_url=draft.checkout_url,
            currency=draft.currency,
            total_amount_minor=draft.total_amount_minor,
            per_vendor_amounts_minor=draft.per_vendor_amounts_minor,
            status=PaymentIntentStatus.VOIDED,
            failure_reason=reason[:500],
            resolved_at=utc_now(),
        )
    )
    try:
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.error(f"Could not record voided intent {draft.tx_ref}: {e}")
