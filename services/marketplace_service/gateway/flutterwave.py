"""Flutterwave Standard (hosted checkout) adapter."""

import hmac
from decimal import Decimal
from typing import Any, Optional

import httpx
from libs.common.config import get_settings
from libs.common.logging import get_logger
from services.marketplace_service.errors import PaymentGatewayError
from services.marketplace_service.gateway.port import (
    InitiatedPayment,
    PaymentGateway,
    VerifiedPayment,
)

logger = get_logger(__name__)

UNREADABLE_RESPONSE = "Payment gateway returned an unreadable response"


def verify_webhook_hash(received: Optional[str], expected: Optional[str]) -> bool:
    """Flutterwave sends the configured secret hash verbatim in ``verif-hash``."""
    if not received or not expected:
        return False
    return hmac.compare_digest(received, expected)


class FlutterwaveGateway(PaymentGateway):
    def __init__(
        self,
        *,
        secret_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.secret_key = secret_key or settings.FLUTTERWAVE_SECRET_KEY
        self.base_url = (base_url or settings.FLUTTERWAVE_API_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.GATEWAY_TIMEOUT_SECONDS
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        if not self.secret_key:
            raise PaymentGatewayError("Flutterwave is not configured")
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={
                "Authorization": f"Bearer {self.secret_key}",
                "Content-Type": "application/json",
            },
        )

    async def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        try:
            async with self._client() as client:
                resp = await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"Flutterwave {method} {path} failed: {e}")
            raise PaymentGatewayError("Payment gateway unreachable") from e

        if resp.status_code >= 400:
            logger.error(
                f"Flutterwave {method} {path} returned {resp.status_code}: {resp.text}"
            )
            raise PaymentGatewayError("Payment gateway rejected the request")

        try:
            body = resp.json()
        except ValueError as e:
            logger.error(f"Flutterwave {method} {path} returned a non-JSON body")
            raise PaymentGatewayError(UNREADABLE_RESPONSE) from e
        if not isinstance(body, dict):
            raise PaymentGatewayError(UNREADABLE_RESPONSE)

        if body.get("status") != "success":
            raise PaymentGatewayError(body.get("message") or "Payment gateway error")
        data = body.get("data") or {}
        if not isinstance(data, dict):
            raise PaymentGatewayError(UNREADABLE_RESPONSE)
        return data

    async def initiate(
        self,
        *,
        amount: Decimal,
        currency: str,
        payer_email: str,
        tx_ref: str,
        redirect_url: str,
        metadata: dict[str, Any],
    ) -> InitiatedPayment:
        payload = {
            "tx_ref": tx_ref,
            "amount": str(amount),
            "currency": currency,
            "redirect_url": redirect_url,
            "customer": {"email": payer_email},
            "meta": metadata,
            "customizations": {"title": "Marketplace checkout"},
        }
        data = await self._request("POST", "/payments", json=payload)
        link = data.get("link")
        if not link:
            raise PaymentGatewayError("Payment gateway returned no checkout link")
        return InitiatedPayment(tx_ref=tx_ref, checkout_url=link)

    async def verify(self, transaction_id: str) -> VerifiedPayment:
        data = await self._request("GET", f"/transactions/{transaction_id}/verify")
        return self._to_verified(data)

    async def verify_by_reference(self, tx_ref: str) -> VerifiedPayment:
        data = await self._request(
            "GET", "/transactions/verify_by_reference", params={"tx_ref": tx_ref}
        )
        return self._to_verified(data)

    @staticmethod
    def _to_verified(data: dict[str, Any]) -> VerifiedPayment:
        try:
            amount = Decimal(str(data.get("amount") or "0"))
        except ArithmeticError as e:
            raise PaymentGatewayError(UNREADABLE_RESPONSE) from e
        return VerifiedPayment(
            status=str(data.get("status") or "").lower(),
            tx_ref=str(data.get("tx_ref") or ""),
            amount=amount,
            currency=str(data.get("currency") or "").upper(),
            transaction_id=str(data["id"]) if data.get("id") is not None else None,
            raw=data,
        )
