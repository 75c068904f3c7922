"""Payment gateway port.

Checkout and reconciliation talk to the payment provider only through this
interface; adapters live next to it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional

SUCCESSFUL = "successful"
FAILED = "failed"
PENDING = "pending"


@dataclass(frozen=True)
class InitiatedPayment:
    tx_ref: str
    checkout_url: str


@dataclass(frozen=True)
class VerifiedPayment:
    """Authoritative transaction state as reported by the provider."""

    status: str
    tx_ref: str
    amount: Decimal
    currency: str
    transaction_id: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False)


class PaymentGateway(ABC):
    """Hosted-checkout payment provider."""

    @abstractmethod
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
        """Create a hosted checkout; raise ``PaymentGatewayError`` on failure."""

    @abstractmethod
    async def verify(self, transaction_id: str) -> VerifiedPayment:
        """Fetch a transaction by provider id."""

    @abstractmethod
    async def verify_by_reference(self, tx_ref: str) -> VerifiedPayment:
        """Fetch a transaction by our reference."""
