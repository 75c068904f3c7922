"""In-process gateway for local development and tests.

Behaviour is configurable per instance: fail on initiate, report a given
status on verify, tamper with the verified amount, or act unreachable.
"""

from decimal import Decimal
from typing import Any, Optional

from services.marketplace_service.errors import PaymentGatewayError
from services.marketplace_service.gateway.port import (
    SUCCESSFUL,
    InitiatedPayment,
    PaymentGateway,
    VerifiedPayment,
)


class FakePaymentGateway(PaymentGateway):
    def __init__(
        self,
        *,
        fail_initiate: bool = False,
        unreachable: bool = False,
        verify_status: str = SUCCESSFUL,
        amount_override: Optional[Decimal] = None,
        checkout_base_url: str = "https://checkout.example.test/pay",
    ):
        self.fail_initiate = fail_initiate
        self.unreachable = unreachable
        self.verify_status = verify_status
        self.amount_override = amount_override
        self.checkout_base_url = checkout_base_url

        self.initiated: dict[str, dict[str, Any]] = {}
        self.verify_calls: list[str] = []
        self._transaction_ids: dict[str, str] = {}

    def transaction_id_for(self, tx_ref: str) -> str:
        return self.initiated[tx_ref]["transaction_id"]

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
        if self.fail_initiate or self.unreachable:
            raise PaymentGatewayError("Payment gateway unreachable")

        transaction_id = f"FAKE-{len(self.initiated) + 1}"
        self.initiated[tx_ref] = {
            "amount": Decimal(amount),
            "currency": currency,
            "payer_email": payer_email,
            "redirect_url": redirect_url,
            "metadata": metadata,
            "transaction_id": transaction_id,
        }
        self._transaction_ids[transaction_id] = tx_ref
        return InitiatedPayment(
            tx_ref=tx_ref, checkout_url=f"{self.checkout_base_url}/{tx_ref}"
        )

    async def verify(self, transaction_id: str) -> VerifiedPayment:
        tx_ref = self._transaction_ids.get(transaction_id, "")
        return self._verified(tx_ref, transaction_id)

    async def verify_by_reference(self, tx_ref: str) -> VerifiedPayment:
        transaction_id = (self.initiated.get(tx_ref) or {}).get("transaction_id")
        return self._verified(tx_ref, transaction_id)

    def _verified(self, tx_ref: str, transaction_id: Optional[str]) -> VerifiedPayment:
        self.verify_calls.append(transaction_id or tx_ref)
        if self.unreachable:
            raise PaymentGatewayError("Payment gateway unreachable")

        record = self.initiated.get(tx_ref)
        if record is None:
            return VerifiedPayment(
                status="not_found",
                tx_ref=tx_ref,
                amount=Decimal("0"),
                currency="",
                transaction_id=transaction_id,
            )
        amount = self.amount_override if self.amount_override is not None else record["amount"]
        return VerifiedPayment(
            status=self.verify_status,
            tx_ref=tx_ref,
            amount=amount,
            currency=record["currency"],
            transaction_id=transaction_id,
        )
