"""Checkout address resolution."""

import uuid
from dataclasses import dataclass
from typing import Optional

from services.marketplace_service.errors import AddressResolutionError, NotFoundError
from services.marketplace_service.models import Address, ShippingAddress
from services.marketplace_service.schemas import CheckoutRequest
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession


@dataclass(frozen=True)
class ResolvedAddress:
    address_id: Optional[uuid.UUID] = None
    shipping_address_id: Optional[uuid.UUID] = None


async def resolve_checkout_address(
    db: AsyncSession, user_id: str, request: CheckoutRequest
) -> ResolvedAddress:
    """Pick the checkout address using the first selection mode present.

    Modes, in order: the user's default address, a saved shipping address
    (own or shared), an explicit legacy address id, an ad-hoc shipping
    address which is saved on the fly.
    """
    if request.use_default_address:
        address = await db.scalar(
            select(Address)
            .where(Address.user_id == user_id, Address.is_default.is_(True))
            .limit(1)
        )
        if address is None:
            raise AddressResolutionError("No default address on file")
        return ResolvedAddress(address_id=address.id)

    if request.shipping_address_id is not None:
        shipping = await db.scalar(
            select(ShippingAddress).where(
                ShippingAddress.id == request.shipping_address_id,
                or_(
                    ShippingAddress.user_id == user_id,
                    ShippingAddress.user_id.is_(None),
                ),
            )
        )
        if shipping is None:
            raise NotFoundError("Shipping address", request.shipping_address_id)
        return ResolvedAddress(shipping_address_id=shipping.id)

    if request.address_id is not None:
        address = await db.scalar(
            select(Address).where(
                Address.id == request.address_id, Address.user_id == user_id
            )
        )
        if address is None:
            raise NotFoundError("Address", request.address_id)
        return ResolvedAddress(address_id=address.id)

    if request.shipping_address is not None:
        shipping = ShippingAddress(
            user_id=user_id, **request.shipping_address.model_dump()
        )
        db.add(shipping)
        await db.flush()
        return ResolvedAddress(shipping_address_id=shipping.id)

    raise AddressResolutionError()
