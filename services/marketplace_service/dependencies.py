"""FastAPI dependencies shared by the marketplace routers."""

from fastapi import Depends
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.common.cache import ReadCache
from libs.common.config import get_settings
from libs.db.session import get_async_db
from services.marketplace_service.gateway import (
    FakePaymentGateway,
    FlutterwaveGateway,
    PaymentGateway,
)
from services.marketplace_service.services.context import Operator
from services.marketplace_service.services.operators import load_operator
from sqlalchemy.ext.asyncio import AsyncSession


def get_payment_gateway() -> PaymentGateway:
    settings = get_settings()
    if settings.PAYMENT_GATEWAY == "fake":
        return FakePaymentGateway()
    return FlutterwaveGateway()


def get_read_cache() -> ReadCache:
    return ReadCache()


async def get_operator(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
) -> Operator:
    """The caller with vendor/rider identity and scope grants loaded."""
    return await load_operator(db, current_user)
