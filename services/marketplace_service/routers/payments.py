"""Payment callbacks and buyer-triggered verification."""

import hashlib
import hmac
import json

from fastapi import APIRouter, Depends, Request
from libs.common.cache import ReadCache
from libs.common.config import get_settings
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.marketplace_service.dependencies import (
    get_operator,
    get_payment_gateway,
    get_read_cache,
)
from services.marketplace_service.errors import (
    ForbiddenError,
    NotFoundError,
    WebhookSignatureError,
)
from services.marketplace_service.gateway import PaymentGateway
from services.marketplace_service.gateway.flutterwave import verify_webhook_hash
from services.marketplace_service.gateway.port import FAILED, SUCCESSFUL
from services.marketplace_service.models import PaymentIntent
from services.marketplace_service.schemas import ReconcileResponse
from services.marketplace_service.services.context import Operator
from services.marketplace_service.services.payment_intents import (
    PaymentOutcome,
    reconcile,
)
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/payments", tags=["payments"])
logger = get_logger(__name__)

WEBHOOK_EVENTS = {
    "payment.success": PaymentOutcome.SUCCESS,
    "payment.failed": PaymentOutcome.FAILURE,
}
GATEWAY_STATUSES = {
    SUCCESSFUL: PaymentOutcome.SUCCESS,
    FAILED: PaymentOutcome.FAILURE,
}


def _verify_signature(raw: bytes, signature: str) -> bool:
    secret = get_settings().WEBHOOK_SIGNING_SECRET
    if not secret:
        return False
    computed = hmac.new(secret.encode("utf-8"), raw, hashlib.sha512).hexdigest()
    return hmac.compare_digest(computed, signature)


def _parse(raw: bytes) -> dict:
    try:
        payload = json.loads(raw.decode("utf-8") or "{}")
    except (UnicodeDecodeError, json.JSONDecodeError):
        return {}
    return payload if isinstance(payload, dict) else {}


async def _apply(
    db: AsyncSession,
    gateway: PaymentGateway,
    cache: ReadCache,
    *,
    tx_ref: str,
    outcome: PaymentOutcome,
    transaction_id,
) -> dict:
    try:
        result = await reconcile(
            db,
            gateway,
            cache,
            tx_ref=tx_ref,
            outcome=outcome,
            transaction_id=str(transaction_id) if transaction_id else None,
        )
    except NotFoundError:
        logger.warning(
            f"Webhook received for unknown transaction reference: {tx_ref}",
            extra={"extra_fields": {"tx_ref": tx_ref}},
        )
        return {"received": True}
    return {
        "received": True,
        "status": result.status.value,
        "replayed": result.replayed,
        "pending": result.pending,
    }


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    db: AsyncSession = Depends(get_async_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    cache: ReadCache = Depends(get_read_cache),
):
    """
    Generic provider webhook (no auth; verified by x-webhook-signature).
    """
    raw = await request.body()
    signature = request.headers.get("x-webhook-signature")
    if not signature or not _verify_signature(raw, signature):
        raise WebhookSignatureError()

    payload = _parse(raw)
    event = payload.get("event")
    data = payload.get("data") or {}
    tx_ref = data.get("tx_ref")
    outcome = WEBHOOK_EVENTS.get(event)
    if not tx_ref or outcome is None:
        return {"received": True}

    return await _apply(
        db,
        gateway,
        cache,
        tx_ref=tx_ref,
        outcome=outcome,
        transaction_id=data.get("transaction_id"),
    )


@router.post("/gateway/webhook")
async def gateway_webhook(
    request: Request,
    db: AsyncSession = Depends(get_async_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    cache: ReadCache = Depends(get_read_cache),
):
    """
    Flutterwave webhook (no auth; verified by the verif-hash header).
    """
    if not verify_webhook_hash(
        request.headers.get("verif-hash"), get_settings().FLUTTERWAVE_WEBHOOK_HASH
    ):
        raise WebhookSignatureError()

    payload = _parse(await request.body())
    data = payload.get("data") or {}
    tx_ref = data.get("tx_ref")
    outcome = GATEWAY_STATUSES.get(str(data.get("status") or "").lower())
    if not tx_ref or outcome is None:
        return {"received": True}

    return await _apply(
        db, gateway, cache, tx_ref=tx_ref, outcome=outcome, transaction_id=data.get("id")
    )


@router.post("/verify/{tx_ref}", response_model=ReconcileResponse)
async def verify_payment(
    tx_ref: str,
    operator: Operator = Depends(get_operator),
    db: AsyncSession = Depends(get_async_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    cache: ReadCache = Depends(get_read_cache),
):
    """Ask the gateway about the caller's checkout and settle it if paid."""
    owner = await db.scalar(
        select(PaymentIntent.user_id).where(PaymentIntent.tx_ref == tx_ref)
    )
    if owner is None:
        raise NotFoundError("Payment", tx_ref)
    if owner != operator.user_id:
        raise ForbiddenError()

    result = await reconcile(
        db, gateway, cache, tx_ref=tx_ref, outcome=PaymentOutcome.SUCCESS
    )
    return ReconcileResponse(
        tx_ref=result.tx_ref,
        status=result.status,
        replayed=result.replayed,
        pending=result.pending,
        order_ids=result.order_ids,
    )
