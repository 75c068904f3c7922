"""Domain errors.

Each is an ``HTTPException`` so the service layer can raise it directly and
routers never have to translate.
"""
from typing import Any, Optional

from fastapi import HTTPException, status


class ValidationError(HTTPException):
    """Bad or unfulfillable cart input; carries every line-level problem."""

    def __init__(self, errors: list[str], message: str = "Checkout validation failed"):
        self.errors = list(errors)
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": message, "errors": self.errors},
        )


class AddressResolutionError(HTTPException):
    def __init__(self, detail: str = "No usable shipping address for checkout"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class NotFoundError(HTTPException):
    def __init__(self, resource: str, identifier: Any = None):
        self.resource = resource
        detail = f"{resource} not found"
        if identifier is not None:
            detail = f"{resource} {identifier} not found"
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class ForbiddenError(HTTPException):
    """Authorization or scope failure. The message never names the rule."""

    def __init__(self):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have access to this resource",
        )


class InvalidTransitionError(HTTPException):
    def __init__(self, current: Any, requested: Any, entity: str = "order"):
        self.current = current
        self.requested = requested
        current_value = getattr(current, "value", current)
        requested_value = getattr(requested, "value", requested)
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=(
                f"Invalid {entity} status transition from "
                f"{current_value} to {requested_value}"
            ),
        )


class PaymentGatewayError(HTTPException):
    def __init__(self, detail: str = "Payment gateway unavailable"):
        super().__init__(status_code=status.HTTP_502_BAD_GATEWAY, detail=detail)


class ConcurrencyConflictError(HTTPException):
    """Another writer won the race; the caller may retry."""

    retryable = True

    def __init__(self, detail: Optional[str] = None):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail or "Concurrent update detected, please retry",
        )


class WebhookSignatureError(HTTPException):
    def __init__(self):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid signature"
        )
