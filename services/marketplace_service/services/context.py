"""Explicit operator context passed into every core operation."""

import uuid
from dataclasses import dataclass, field
from typing import Optional

from libs.auth.models import Role


@dataclass(frozen=True)
class GeoScope:
    """Geographic restriction. Empty lists place no constraint on that field."""

    cities: tuple[str, ...] = ()
    states: tuple[str, ...] = ()
    countries: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, raw: Optional[dict]) -> Optional["GeoScope"]:
        if raw is None:
            return None
        return cls(
            cities=tuple(raw.get("cities") or ()),
            states=tuple(raw.get("states") or ()),
            countries=tuple(raw.get("countries") or ()),
        )

    @property
    def is_empty(self) -> bool:
        return not (self.cities or self.states or self.countries)


@dataclass(frozen=True)
class ScopeGrant:
    """``actions`` on ``resource``; ``scope=None`` means unrestricted."""

    resource: str
    actions: frozenset[str]
    scope: Optional[GeoScope] = None


@dataclass(frozen=True)
class Operator:
    """Who is acting, with everything authorization needs already loaded."""

    user_id: str
    role: Role
    email: Optional[str] = None
    vendor_id: Optional[uuid.UUID] = None
    rider_id: Optional[uuid.UUID] = None
    grants: tuple[ScopeGrant, ...] = field(default_factory=tuple)
    profile: Optional[GeoScope] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_sub_admin(self) -> bool:
        return self.role == Role.SUB_ADMIN
