"""HTTP tests for checkout, order listings and order status changes."""

from decimal import Decimal

import pytest
from libs.auth.models import Role
from services.marketplace_service.models import OrderStatus
from tests.factories import (
    AddressFactory,
    OrderFactory,
    ProductFactory,
    VendorFactory,
)


async def _catalog(db):
    vendor_a = VendorFactory.create(owner_user_id="vendor-a")
    vendor_b = VendorFactory.create(owner_user_id="vendor-b")
    lamp = ProductFactory.create(
        vendor_id=vendor_a.id, name="Lamp", price=Decimal("60.00"), stock_quantity=4
    )
    rug = ProductFactory.create(
        vendor_id=vendor_b.id, name="Rug", price=Decimal("90.00"), stock_quantity=2
    )
    db.add_all([vendor_a, vendor_b, lamp, rug, AddressFactory.create()])
    await db.commit()
    return vendor_a, vendor_b, lamp, rug


async def _checkout(client, lamp, rug):
    response = await client.post(
        "/orders",
        json={
            "items": [
                {"product_id": str(lamp.id), "quantity": 2},
                {"product_id": str(rug.id), "quantity": 1},
            ],
            "use_default_address": True,
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_returns_orders_and_single_payment(client, db_session):
    _, _, lamp, rug = await _catalog(db_session)

    body = await _checkout(client, lamp, rug)

    assert len(body["orders"]) == 2
    assert {o["transaction_ref"] for o in body["orders"]} == {body["transaction_ref"]}
    assert body["payment_intent"]["tx_ref"] == body["transaction_ref"]
    assert body["payment_intent"]["total_amount_minor"] == 21000
    assert body["payment_intent"]["status"] == "pending"
    assert body["payment_intent"]["checkout_url"]
    assert all(o["status"] == "pending" for o in body["orders"])


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_reports_all_stock_problems(client, db_session):
    _, _, lamp, rug = await _catalog(db_session)

    response = await client.post(
        "/orders",
        json={
            "items": [
                {"product_id": str(lamp.id), "quantity": 5},
                {"product_id": str(rug.id), "quantity": 3},
            ],
            "use_default_address": True,
        },
    )

    assert response.status_code == 400
    assert len(response.json()["detail"]["errors"]) == 2


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_rejects_empty_cart(client):
    response = await client.post("/orders", json={"items": []})

    assert response.status_code == 422


@pytest.mark.asyncio
@pytest.mark.integration
async def test_buyer_listings_and_transaction_view(client, db_session):
    _, _, lamp, rug = await _catalog(db_session)
    body = await _checkout(client, lamp, rug)
    tx_ref = body["transaction_ref"]

    mine = await client.get("/orders")
    assert mine.status_code == 200
    assert mine.json()["meta"]["total"] == 2

    confirmed = await client.get("/orders", params={"status": "confirmed"})
    assert confirmed.json()["meta"]["total"] == 0

    grouped = await client.get("/orders/grouped")
    assert grouped.status_code == 200
    assert [g["transaction_ref"] for g in grouped.json()] == [tx_ref]
    assert Decimal(grouped.json()[0]["total_amount"]) == Decimal("210.00")

    txn = await client.get(f"/orders/transaction/{tx_ref}")
    assert txn.status_code == 200
    assert len(txn.json()["orders"]) == 2

    order_id = body["orders"][0]["id"]
    single = await client.get(f"/orders/{order_id}")
    assert single.status_code == 200
    assert single.json()["id"] == order_id


@pytest.mark.asyncio
@pytest.mark.integration
async def test_other_buyers_cannot_read_the_checkout(client, db_session, auth):
    _, _, lamp, rug = await _catalog(db_session)
    body = await _checkout(client, lamp, rug)

    auth.login("buyer-2")

    txn = await client.get(f"/orders/transaction/{body['transaction_ref']}")
    single = await client.get(f"/orders/{body['orders'][0]['id']}")
    mine = await client.get("/orders")

    assert txn.status_code == 403
    assert single.status_code == 403
    assert mine.json()["meta"]["total"] == 0


@pytest.mark.asyncio
@pytest.mark.integration
async def test_vendor_sees_only_its_own_orders(client, db_session, auth):
    vendor_a, _, lamp, rug = await _catalog(db_session)
    await _checkout(client, lamp, rug)

    auth.login("vendor-a", Role.VENDOR)
    response = await client.get("/orders")

    orders = response.json()["data"]
    assert len(orders) == 1
    assert orders[0]["vendor_id"] == str(vendor_a.id)

    stats = await client.get("/orders/dashboard")
    assert stats.status_code == 200
    assert stats.json()["total_orders"] == 1
    assert stats.json()["status_counts"] == {"pending": 1}


@pytest.mark.asyncio
@pytest.mark.integration
async def test_admin_listing_requires_admin(client, db_session, auth):
    _, _, lamp, rug = await _catalog(db_session)
    await _checkout(client, lamp, rug)

    denied = await client.get("/orders/admin")
    assert denied.status_code == 403

    auth.login("admin-1", Role.ADMIN)
    allowed = await client.get("/orders/admin", params={"user_id": "buyer-1"})
    assert allowed.status_code == 200
    assert allowed.json()["meta"]["total"] == 2

    stats = await client.get("/orders/dashboard")
    assert stats.json()["total_orders"] == 2
    assert Decimal(stats.json()["total_revenue"]) == Decimal("0")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_vendor_moves_paid_order_to_processing(client, db_session, auth):
    vendor = VendorFactory.create(owner_user_id="vendor-a")
    product = ProductFactory.create(vendor_id=vendor.id)
    order = OrderFactory.create(vendor.id, product.id, status=OrderStatus.CONFIRMED)
    db_session.add_all([vendor, product, order])
    await db_session.commit()

    auth.login("vendor-a", Role.VENDOR)
    response = await client.patch(
        f"/orders/{order.id}/status", json={"status": "processing"}
    )

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["status"] == "processing"
    assert body["delivery"]["status"] == "pending"

    backwards = await client.patch(
        f"/orders/{order.id}/status", json={"status": "pending"}
    )
    assert backwards.status_code == 400


@pytest.mark.asyncio
@pytest.mark.integration
async def test_buyer_cancels_pending_order(client, db_session):
    _, _, lamp, rug = await _catalog(db_session)
    body = await _checkout(client, lamp, rug)
    order_id = body["orders"][0]["id"]

    cancelled = await client.post(
        f"/orders/{order_id}/cancel", json={"reason": "Ordered twice"}
    )
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"
    assert cancelled.json()["cancelled_at"] is not None

    again = await client.post(f"/orders/{order_id}/cancel")
    assert again.status_code == 400


@pytest.mark.asyncio
@pytest.mark.integration
async def test_buyer_cannot_mark_order_shipped(client, db_session):
    vendor = VendorFactory.create()
    product = ProductFactory.create(vendor_id=vendor.id)
    order = OrderFactory.create(vendor.id, product.id, status=OrderStatus.PROCESSING)
    db_session.add_all([vendor, product, order])
    await db_session.commit()

    response = await client.patch(
        f"/orders/{order.id}/status", json={"status": "shipped"}
    )

    assert response.status_code == 403


@pytest.mark.asyncio
@pytest.mark.integration
async def test_unknown_order_is_404(client):
    response = await client.get("/orders/00000000-0000-0000-0000-000000000000")

    assert response.status_code == 404
