"""Scope filtering: which records a delegated operator may see or change.

Predicates form a small algebra (``FieldIn``, ``AllOf``, ``AnyOf``) plus the
``GLOBAL`` and ``DENY`` sentinels. ``build_predicate`` derives one from an
operator's grants and profile; ``matches`` evaluates it in memory and
``scope_sql.compile_predicate`` turns it into a SQL filter.

Rules:
- admins are unrestricted;
- no grant for (resource, any required action) denies everything;
- a matching grant without scope makes the permission part unrestricted;
- otherwise grants OR together, each grant ANDing its non-empty field lists;
- the sub-admin profile geography is ANDed on top and always narrows.
"""

import enum
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Union

from services.marketplace_service.services.context import GeoScope, Operator


class GeoField(str, enum.Enum):
    CITY = "city"
    STATE = "state"
    COUNTRY = "country"


@dataclass(frozen=True)
class FieldIn:
    field: GeoField
    values: frozenset[str]

    @classmethod
    def of(cls, field: GeoField, values: Iterable[str]) -> "FieldIn":
        return cls(field, frozenset(v.strip().lower() for v in values if v))


@dataclass(frozen=True)
class AllOf:
    terms: tuple["Predicate", ...]


@dataclass(frozen=True)
class AnyOf:
    terms: tuple["Predicate", ...]


class _Sentinel(enum.Enum):
    GLOBAL = "global"
    DENY = "deny"


GLOBAL = _Sentinel.GLOBAL
DENY = _Sentinel.DENY

Predicate = Union[FieldIn, AllOf, AnyOf]
ScopeResult = Union[Predicate, _Sentinel]
Location = Mapping[GeoField, Optional[str]]


def geo_predicate(scope: GeoScope) -> Optional[Predicate]:
    """AND of the scope's non-empty field lists; None when nothing is listed."""
    terms = []
    if scope.cities:
        terms.append(FieldIn.of(GeoField.CITY, scope.cities))
    if scope.states:
        terms.append(FieldIn.of(GeoField.STATE, scope.states))
    if scope.countries:
        terms.append(FieldIn.of(GeoField.COUNTRY, scope.countries))
    if not terms:
        return None
    return terms[0] if len(terms) == 1 else AllOf(tuple(terms))


def build_predicate(
    operator: Operator, resource: str, required_actions: Iterable[str]
) -> ScopeResult:
    """Compute the access predicate for ``operator`` on ``resource``."""
    if operator.is_admin:
        return GLOBAL

    required = set(required_actions)
    matching = [
        grant
        for grant in operator.grants
        if grant.resource == resource and grant.actions & required
    ]
    if not matching:
        return DENY

    permission: Optional[Predicate]
    if any(grant.scope is None for grant in matching):
        permission = None
    else:
        # A scope object that lists nothing grants nothing
        terms = [p for p in (geo_predicate(g.scope) for g in matching) if p]
        if not terms:
            return DENY
        permission = terms[0] if len(terms) == 1 else AnyOf(tuple(terms))

    profile = geo_predicate(operator.profile) if operator.profile else None

    if permission is None and profile is None:
        return GLOBAL
    if permission is None:
        return profile
    if profile is None:
        return permission
    return AllOf((profile, permission))


def matches(predicate: ScopeResult, location: Location) -> bool:
    """Evaluate against one resolved location (missing fields never match)."""
    if predicate is GLOBAL:
        return True
    if predicate is DENY:
        return False
    if isinstance(predicate, FieldIn):
        value = location.get(predicate.field)
        return bool(value) and value.strip().lower() in predicate.values
    if isinstance(predicate, AllOf):
        return all(matches(term, location) for term in predicate.terms)
    if isinstance(predicate, AnyOf):
        return any(matches(term, location) for term in predicate.terms)
    raise TypeError(f"Unknown predicate node: {predicate!r}")


def order_location(order) -> dict[GeoField, Optional[str]]:
    """Shipping location of an order.

    Each field prefers the shipping address and falls back to the legacy address.
    """
    shipping = order.shipping_address
    legacy = order.address
    location: dict[GeoField, Optional[str]] = {}
    for geo_field in GeoField:
        value = getattr(shipping, geo_field.value, None) if shipping else None
        if not value and legacy is not None:
            value = getattr(legacy, geo_field.value, None)
        location[geo_field] = value or None
    return location
