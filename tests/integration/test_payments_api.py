"""HTTP tests for payment webhooks and buyer-triggered verification."""

import hashlib
import hmac
import json
from decimal import Decimal

import pytest
from tests.factories import AddressFactory, ProductFactory, VendorFactory

WEBHOOK_SECRET = "test-webhook-secret"
VERIF_HASH = "test-verif-hash"


def _sign(body: bytes) -> str:
    return hmac.new(WEBHOOK_SECRET.encode(), body, hashlib.sha512).hexdigest()


async def _checkout(client, db):
    vendor_a = VendorFactory.create()
    vendor_b = VendorFactory.create()
    kettle = ProductFactory.create(vendor_id=vendor_a.id, price=Decimal("25.00"))
    mat = ProductFactory.create(vendor_id=vendor_b.id, price=Decimal("15.00"))
    db.add_all([vendor_a, vendor_b, kettle, mat, AddressFactory.create()])
    await db.commit()

    response = await client.post(
        "/orders",
        json={
            "items": [
                {"product_id": str(kettle.id), "quantity": 1},
                {"product_id": str(mat.id), "quantity": 2},
            ],
            "use_default_address": True,
        },
    )
    assert response.status_code == 201, response.text
    return response.json()["transaction_ref"]


async def _post_signed(client, payload, signature=None):
    body = json.dumps(payload).encode()
    return await client.post(
        "/payments/webhook",
        content=body,
        headers={
            "content-type": "application/json",
            "x-webhook-signature": signature or _sign(body),
        },
    )


async def _order_statuses(client):
    response = await client.get("/orders")
    return sorted(
        (o["status"], o["payment_status"]) for o in response.json()["data"]
    )


@pytest.mark.asyncio
@pytest.mark.integration
async def test_signed_success_webhook_confirms_orders(client, db_session, gateway):
    tx_ref = await _checkout(client, db_session)
    payload = {
        "event": "payment.success",
        "data": {"tx_ref": tx_ref, "transaction_id": gateway.transaction_id_for(tx_ref)},
    }

    response = await _post_signed(client, payload)

    assert response.status_code == 200
    assert response.json() == {
        "received": True,
        "status": "succeeded",
        "replayed": False,
        "pending": False,
    }
    assert await _order_statuses(client) == [
        ("confirmed", "completed"),
        ("confirmed", "completed"),
    ]

    replay = await _post_signed(client, payload)
    assert replay.json()["replayed"] is True


@pytest.mark.asyncio
@pytest.mark.integration
async def test_failure_webhook_cancels_orders(client, db_session):
    tx_ref = await _checkout(client, db_session)

    response = await _post_signed(
        client, {"event": "payment.failed", "data": {"tx_ref": tx_ref}}
    )

    assert response.json()["status"] == "failed"
    assert await _order_statuses(client) == [
        ("cancelled", "failed"),
        ("cancelled", "failed"),
    ]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_bad_or_missing_signature_is_rejected(client, db_session):
    tx_ref = await _checkout(client, db_session)
    payload = {"event": "payment.success", "data": {"tx_ref": tx_ref}}

    forged = await _post_signed(client, payload, signature="0" * 128)
    unsigned = await client.post("/payments/webhook", json=payload)

    assert forged.status_code == 400
    assert unsigned.status_code == 400
    assert await _order_statuses(client) == [
        ("pending", "pending"),
        ("pending", "pending"),
    ]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_unknown_reference_and_event_are_acknowledged(client):
    unknown_ref = await _post_signed(
        client, {"event": "payment.success", "data": {"tx_ref": "TX-NOPE"}}
    )
    unknown_event = await _post_signed(
        client, {"event": "charge.dispute", "data": {"tx_ref": "TX-NOPE"}}
    )

    assert unknown_ref.status_code == 200
    assert unknown_ref.json() == {"received": True}
    assert unknown_event.json() == {"received": True}


@pytest.mark.asyncio
@pytest.mark.integration
async def test_gateway_webhook_uses_verif_hash(client, db_session, gateway):
    tx_ref = await _checkout(client, db_session)
    payload = {
        "event": "charge.completed",
        "data": {
            "id": gateway.transaction_id_for(tx_ref),
            "tx_ref": tx_ref,
            "status": "successful",
        },
    }

    rejected = await client.post(
        "/payments/gateway/webhook", json=payload, headers={"verif-hash": "wrong"}
    )
    accepted = await client.post(
        "/payments/gateway/webhook", json=payload, headers={"verif-hash": VERIF_HASH}
    )

    assert rejected.status_code == 400
    assert accepted.status_code == 200
    assert accepted.json()["status"] == "succeeded"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_verify_endpoint_is_owner_only(client, db_session, auth):
    tx_ref = await _checkout(client, db_session)

    auth.login("buyer-2")
    stranger = await client.post(f"/payments/verify/{tx_ref}")
    assert stranger.status_code == 403

    auth.login("buyer-1")
    own = await client.post(f"/payments/verify/{tx_ref}")
    assert own.status_code == 200
    assert own.json()["status"] == "succeeded"
    assert len(own.json()["order_ids"]) == 2

    missing = await client.post("/payments/verify/TX-NOPE")
    assert missing.status_code == 404


@pytest.mark.asyncio
@pytest.mark.integration
async def test_verify_reports_gateway_outage(client, db_session, gateway):
    tx_ref = await _checkout(client, db_session)
    gateway.unreachable = True

    response = await client.post(f"/payments/verify/{tx_ref}")

    assert response.status_code == 502
