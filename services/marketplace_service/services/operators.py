"""Build the explicit ``Operator`` context for an authenticated user."""

from libs.auth.models import AuthUser, Role
from services.marketplace_service.models import (
    OperatorPosition,
    Permission,
    PositionPermission,
    Rider,
    SubAdminProfile,
    Vendor,
)
from services.marketplace_service.services.context import GeoScope, Operator, ScopeGrant
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession


async def load_operator(db: AsyncSession, user: AuthUser) -> Operator:
    """Hydrate vendor/rider identity, scope grants and profile geography."""
    vendor_id = await db.scalar(
        select(Vendor.id).where(Vendor.owner_user_id == user.user_id)
    )
    rider_id = await db.scalar(select(Rider.id).where(Rider.user_id == user.user_id))

    grants: tuple[ScopeGrant, ...] = ()
    profile = None
    if user.role == Role.SUB_ADMIN:
        grants = await _load_grants(db, user.user_id)
        profile = await _load_profile(db, user.user_id)

    return Operator(
        user_id=user.user_id,
        role=user.role,
        email=user.email,
        vendor_id=vendor_id,
        rider_id=rider_id,
        grants=grants,
        profile=profile,
    )


async def _load_grants(db: AsyncSession, user_id: str) -> tuple[ScopeGrant, ...]:
    result = await db.execute(
        select(Permission)
        .join(PositionPermission, PositionPermission.permission_id == Permission.id)
        .join(
            OperatorPosition,
            OperatorPosition.position_id == PositionPermission.position_id,
        )
        .where(OperatorPosition.user_id == user_id)
        .distinct()
    )
    return tuple(
        ScopeGrant(
            resource=permission.resource,
            actions=frozenset(permission.actions or ()),
            scope=GeoScope.from_dict(permission.scope),
        )
        for permission in result.scalars().all()
    )


async def _load_profile(db: AsyncSession, user_id: str):
    profile = await db.scalar(
        select(SubAdminProfile).where(SubAdminProfile.user_id == user_id)
    )
    if profile is None:
        return None
    scope = GeoScope(
        cities=tuple(profile.allowed_cities or ()),
        states=tuple(profile.allowed_states or ()),
        countries=tuple(profile.allowed_countries or ()),
    )
    return None if scope.is_empty else scope

