"""Unit price resolution.

Order of precedence: variant discount price, variant price, product discount
price, product price. An active flash sale is applied last as a percentage.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from libs.common.currency import quantize_money
from services.marketplace_service.models import FlashSale, FlashSaleItem, Product, ProductVariant
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession


def base_unit_price(product: Product, variant: Optional[ProductVariant] = None) -> Decimal:
    if variant is not None:
        if variant.discount_price is not None:
            return Decimal(variant.discount_price)
        if variant.price is not None:
            return Decimal(variant.price)
    if product.discount_price is not None:
        return Decimal(product.discount_price)
    return Decimal(product.price)


def resolve_unit_price(
    product: Product,
    variant: Optional[ProductVariant] = None,
    flash_sale_percentage: Optional[Decimal] = None,
) -> Decimal:
    """Locked checkout price for one unit, rounded to cents."""
    price = base_unit_price(product, variant)
    if flash_sale_percentage:
        price = price * (Decimal(1) - Decimal(flash_sale_percentage) / Decimal(100))
    return quantize_money(max(price, Decimal(0)))


async def active_flash_sale_percentages(
    db: AsyncSession, product_ids: Iterable[uuid.UUID], now: datetime
) -> dict[uuid.UUID, Decimal]:
    """Best active flash-sale percentage per product."""
    product_ids = list(product_ids)
    if not product_ids:
        return {}

    result = await db.execute(
        select(FlashSaleItem.product_id, FlashSale.discount_percentage)
        .join(FlashSale, FlashSale.id == FlashSaleItem.flash_sale_id)
        .where(
            FlashSaleItem.product_id.in_(product_ids),
            FlashSale.is_active.is_(True),
            FlashSale.starts_at <= now,
            FlashSale.ends_at >= now,
        )
    )
    percentages: dict[uuid.UUID, Decimal] = {}
    for product_id, percentage in result.all():
        percentage = Decimal(percentage)
        if percentage > percentages.get(product_id, Decimal(0)):
            percentages[product_id] = percentage
    return percentages
