"""Inventory validation, reservation and restock."""

import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Optional, Sequence

from libs.common.logging import get_logger
from services.marketplace_service.models import Product, ProductVariant
from services.marketplace_service.schemas import CartLineIn
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

logger = get_logger(__name__)


@dataclass
class InventoryCheck:
    ok: bool
    errors: list[str] = field(default_factory=list)
    products: dict[uuid.UUID, Product] = field(default_factory=dict)

    def variant(self, product_id: uuid.UUID, variant_id: Optional[uuid.UUID]):
        if variant_id is None:
            return None
        product = self.products[product_id]
        return next(v for v in product.variants if v.id == variant_id)


async def validate_and_reserve(
    db: AsyncSession, lines: Sequence[CartLineIn]
) -> InventoryCheck:
    """Check every line and, only if all pass, decrement stock.

    Problems are collected across all lines rather than stopping at the first.
    """
    product_ids = {line.product_id for line in lines}
    result = await db.execute(
        select(Product)
        .where(Product.id.in_(product_ids))
        .options(selectinload(Product.variants))
        .execution_options(populate_existing=True)
    )
    products = {product.id: product for product in result.scalars().all()}

    errors: list[str] = []
    requested: dict[tuple[uuid.UUID, Optional[uuid.UUID]], int] = defaultdict(int)
    stock_rows: dict[tuple[uuid.UUID, Optional[uuid.UUID]], object] = {}

    for index, line in enumerate(lines, start=1):
        product = products.get(line.product_id)
        if product is None:
            errors.append(f"Line {index}: product {line.product_id} not found")
            continue
        if not product.is_published:
            errors.append(f"Line {index}: {product.name} is not available")
            continue
        if product.vendor_id is None:
            errors.append(f"Line {index}: {product.name} has no vendor")
            continue

        row = product
        if line.variant_id is not None:
            variant = next((v for v in product.variants if v.id == line.variant_id), None)
            if variant is None:
                errors.append(
                    f"Line {index}: variant {line.variant_id} not found for {product.name}"
                )
                continue
            row = variant

        key = (line.product_id, line.variant_id)
        requested[key] += line.quantity
        stock_rows[key] = row

    for key, quantity in requested.items():
        row = stock_rows[key]
        if row.stock_quantity < quantity:
            product = products[key[0]]
            errors.append(
                f"Insufficient stock for {product.name}: "
                f"requested {quantity}, available {row.stock_quantity}"
            )

    if errors:
        return InventoryCheck(ok=False, errors=errors, products=products)

    for key, quantity in requested.items():
        stock_rows[key].stock_quantity -= quantity

    return InventoryCheck(ok=True, products=products)


async def restock(
    db: AsyncSession,
    product_id: uuid.UUID,
    variant_id: Optional[uuid.UUID],
    quantity: int,
) -> None:
    """Return ``quantity`` units to the variant (or product) stock."""
    if variant_id is not None:
        row = await db.get(ProductVariant, variant_id)
    else:
        row = await db.get(Product, product_id)

    if row is None:
        logger.warning(
            "Restock skipped, stock row missing",
            extra={
                "extra_fields": {
                    "product_id": str(product_id),
                    "variant_id": str(variant_id) if variant_id else None,
                }
            },
        )
        return

    row.stock_quantity += quantity
