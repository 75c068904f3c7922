"""Coupon lookup and per-vendor discount distribution.

One coupon is distributed across every vendor of a checkout at once:

- PERCENTAGE applies independently to each eligible vendor's subtotal,
  capped per vendor by ``max_discount``.
- FIXED splits the face value across eligible vendors in proportion to
  their share of the eligible subtotal. Shares are rounded to cents with a
  largest-remainder pass so they add up to exactly the face value.
- ``min_purchase`` is checked per vendor; a vendor below it gets 0 but still
  counts toward the FIXED split, so the total can fall short of face value.
- A coupon that is inactive, outside its window or used up discounts nothing.
"""

import uuid
from datetime import datetime
from decimal import ROUND_DOWN, Decimal
from typing import Mapping, Optional

from libs.common.currency import CENT, ZERO, quantize_money
from libs.common.datetime_utils import is_within_window
from libs.common.logging import get_logger
from services.marketplace_service.errors import NotFoundError
from services.marketplace_service.models import Coupon, DiscountType
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


async def find_coupon(db: AsyncSession, code: str) -> Coupon:
    """Look a coupon up by code (case-insensitive)."""
    coupon = await db.scalar(
        select(Coupon).where(func.upper(Coupon.code) == code.strip().upper())
    )
    if coupon is None:
        raise NotFoundError("Coupon", code)
    return coupon


def coupon_is_usable(coupon: Coupon, now: datetime) -> bool:
    if not coupon.is_active:
        return False
    if not is_within_window(now, coupon.starts_at, coupon.ends_at):
        return False
    if coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit:
        return False
    return True


def distribute(
    coupon: Coupon,
    vendor_subtotals: Mapping[uuid.UUID, Decimal],
    now: datetime,
) -> dict[uuid.UUID, Decimal]:
    """Discount owed to each vendor of the checkout."""
    discounts = {vendor_id: ZERO for vendor_id in vendor_subtotals}

    if not coupon_is_usable(coupon, now):
        logger.info(
            f"Coupon {coupon.code} not usable, no discount applied",
            extra={"extra_fields": {"coupon_code": coupon.code}},
        )
        return discounts

    eligible = [
        vendor_id
        for vendor_id in vendor_subtotals
        if coupon.vendor_id is None or vendor_id == coupon.vendor_id
    ]
    if not eligible:
        return discounts

    value = Decimal(coupon.discount_value)
    if coupon.discount_type == DiscountType.PERCENTAGE:
        cap = Decimal(coupon.max_discount) if coupon.max_discount is not None else None
        for vendor_id in eligible:
            amount = quantize_money(vendor_subtotals[vendor_id] * value / Decimal(100))
            discounts[vendor_id] = min(amount, cap) if cap is not None else amount
    else:
        discounts.update(
            _split_fixed(value, {v: vendor_subtotals[v] for v in eligible})
        )

    min_purchase: Optional[Decimal] = coupon.min_purchase
    if min_purchase is not None:
        for vendor_id in eligible:
            if vendor_subtotals[vendor_id] < Decimal(min_purchase):
                discounts[vendor_id] = ZERO

    return discounts


def _split_fixed(
    face_value: Decimal, subtotals: Mapping[uuid.UUID, Decimal]
) -> dict[uuid.UUID, Decimal]:
    total = sum(subtotals.values(), ZERO)
    if total <= 0:
        return {vendor_id: ZERO for vendor_id in subtotals}

    face_value = quantize_money(face_value)
    shares: dict[uuid.UUID, Decimal] = {}
    remainders: list[tuple[Decimal, str, uuid.UUID]] = []
    for vendor_id, subtotal in subtotals.items():
        exact = face_value * subtotal / total
        floored = exact.quantize(CENT, rounding=ROUND_DOWN)
        shares[vendor_id] = floored
        remainders.append((exact - floored, str(vendor_id), vendor_id))

    leftover_cents = int((face_value - sum(shares.values(), ZERO)) / CENT)
    # Largest fractional remainder first; vendor id breaks ties deterministically
    remainders.sort(key=lambda r: (-r[0], r[1]))
    for _, _, vendor_id in remainders[:leftover_cents]:
        shares[vendor_id] += CENT
    return shares
