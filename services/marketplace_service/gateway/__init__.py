"""Payment gateway port and adapters."""

from services.marketplace_service.gateway.fake import FakePaymentGateway
from services.marketplace_service.gateway.flutterwave import FlutterwaveGateway
from services.marketplace_service.gateway.port import (
    InitiatedPayment,
    PaymentGateway,
    VerifiedPayment,
)

__all__ = [
    "FakePaymentGateway",
    "FlutterwaveGateway",
    "InitiatedPayment",
    "PaymentGateway",
    "VerifiedPayment",
]
