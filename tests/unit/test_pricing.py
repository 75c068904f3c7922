"""Unit tests for unit price resolution, flash sales and shipping cost."""

from datetime import timedelta
from decimal import Decimal

import pytest
from libs.common.datetime_utils import utc_now
from services.marketplace_service.services.pricing import (
    active_flash_sale_percentages,
    base_unit_price,
    resolve_unit_price,
)
from services.marketplace_service.services.shipping import shipping_cost
from tests.factories import (
    FlashSaleFactory,
    ProductFactory,
    ProductVariantFactory,
    ShippingOptionFactory,
    VendorFactory,
    VendorShippingOptionFactory,
)


@pytest.mark.unit
def test_price_precedence_prefers_variant_discount_then_variant_price():
    product = ProductFactory.create(
        price=Decimal("100.00"), discount_price=Decimal("90.00")
    )
    discounted = ProductVariantFactory.create(
        price=Decimal("120.00"), discount_price=Decimal("110.00")
    )
    priced = ProductVariantFactory.create(price=Decimal("120.00"))
    plain = ProductVariantFactory.create()

    assert base_unit_price(product, discounted) == Decimal("110.00")
    assert base_unit_price(product, priced) == Decimal("120.00")
    assert base_unit_price(product, plain) == Decimal("90.00")
    assert base_unit_price(ProductFactory.create(price=Decimal("75.00"))) == Decimal(
        "75.00"
    )


@pytest.mark.unit
def test_flash_sale_percentage_is_applied_last():
    product = ProductFactory.create(
        price=Decimal("100.00"), discount_price=Decimal("80.00")
    )

    assert resolve_unit_price(product, None, Decimal("25")) == Decimal("60.00")
    assert resolve_unit_price(product, None, None) == Decimal("80.00")


@pytest.mark.unit
def test_resolved_price_is_rounded_to_cents():
    product = ProductFactory.create(price=Decimal("9.99"))

    assert resolve_unit_price(product, None, Decimal("15")) == Decimal("8.49")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_best_active_flash_sale_wins(db_session):
    product = ProductFactory.create()
    other = ProductFactory.create()
    now = utc_now()
    small, small_items = FlashSaleFactory.create(
        [product.id], discount_percentage=Decimal("10")
    )
    big, big_items = FlashSaleFactory.create(
        [product.id], discount_percentage=Decimal("30")
    )
    ended, ended_items = FlashSaleFactory.create(
        [product.id, other.id],
        discount_percentage=Decimal("50"),
        starts_at=now - timedelta(days=3),
        ends_at=now - timedelta(days=1),
    )
    paused, paused_items = FlashSaleFactory.create(
        [other.id], discount_percentage=Decimal("40"), is_active=False
    )
    db_session.add_all(
        [product, other, small, big, ended, paused]
        + small_items
        + big_items
        + ended_items
        + paused_items
    )
    await db_session.commit()

    percentages = await active_flash_sale_percentages(
        db_session, [product.id, other.id], now
    )

    assert percentages == {product.id: Decimal("30")}


@pytest.mark.asyncio
@pytest.mark.unit
async def test_shipping_cost_resolution_order(db_session):
    vendor = VendorFactory.create()
    stranger = VendorFactory.create()
    marketplace_option = ShippingOptionFactory.create(price=Decimal("15.00"))
    retired_option = ShippingOptionFactory.create(is_active=False)
    vendor_option = VendorShippingOptionFactory.create(
        vendor.id, price_override=Decimal("7.50")
    )
    db_session.add_all(
        [vendor, stranger, marketplace_option, retired_option, vendor_option]
    )
    await db_session.commit()

    assert await shipping_cost(db_session, marketplace_option.id, vendor.id) == Decimal(
        "15.00"
    )
    assert await shipping_cost(db_session, vendor_option.id, vendor.id) == Decimal(
        "7.50"
    )
    # Another vendor's method and retired methods cost nothing
    assert await shipping_cost(db_session, vendor_option.id, stranger.id) == 0
    assert await shipping_cost(db_session, retired_option.id, vendor.id) == 0
    assert await shipping_cost(db_session, None, vendor.id) == 0
