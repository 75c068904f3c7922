"""Shipping cost lookup."""

import uuid
from decimal import Decimal
from typing import Optional

from libs.common.currency import ZERO, quantize_money
from services.marketplace_service.models import ShippingOption, VendorShippingOption
from sqlalchemy.ext.asyncio import AsyncSession


async def shipping_cost(
    db: AsyncSession,
    shipping_option_id: Optional[uuid.UUID],
    vendor_id: uuid.UUID,
) -> Decimal:
    """Marketplace method price, else the vendor's own method price, else 0."""
    if shipping_option_id is None:
        return ZERO

    option = await db.get(ShippingOption, shipping_option_id)
    if option is not None and option.is_active:
        return quantize_money(option.price)

    vendor_option = await db.get(VendorShippingOption, shipping_option_id)
    if (
        vendor_option is not None
        and vendor_option.is_active
        and vendor_option.vendor_id == vendor_id
    ):
        return quantize_money(vendor_option.price_override)

    return ZERO
