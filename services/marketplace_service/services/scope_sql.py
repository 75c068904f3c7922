"""SQLAlchemy adapter for scope predicates over orders."""

from services.marketplace_service.models import Address, Order, ShippingAddress
from services.marketplace_service.services.scope import (
    DENY,
    GLOBAL,
    AllOf,
    AnyOf,
    FieldIn,
    GeoField,
    ScopeResult,
)
from sqlalchemy import Select, and_, false, func, or_, true
from sqlalchemy.sql.elements import ColumnElement

_COLUMNS = {
    GeoField.CITY: (ShippingAddress.city, Address.city),
    GeoField.STATE: (ShippingAddress.state, Address.state),
    GeoField.COUNTRY: (ShippingAddress.country, Address.country),
}


def _location_column(geo_field: GeoField) -> ColumnElement:
    shipping_col, legacy_col = _COLUMNS[geo_field]
    # Empty strings behave like missing values, as in the in-memory matcher
    return func.lower(
        func.coalesce(func.nullif(shipping_col, ""), legacy_col)
    )


def compile_predicate(predicate: ScopeResult) -> ColumnElement:
    """Compile to a WHERE clause; requires ``join_order_locations``."""
    if predicate is GLOBAL:
        return true()
    if predicate is DENY:
        return false()
    if isinstance(predicate, FieldIn):
        # NULL locations drop out: NULL IN (...) is never true
        return _location_column(predicate.field).in_(sorted(predicate.values))
    if isinstance(predicate, AllOf):
        return and_(*(compile_predicate(term) for term in predicate.terms))
    if isinstance(predicate, AnyOf):
        return or_(*(compile_predicate(term) for term in predicate.terms))
    raise TypeError(f"Unknown predicate node: {predicate!r}")


def join_order_locations(stmt: Select) -> Select:
    """Outer-join both address tables an order's location can come from."""
    return stmt.outerjoin(
        ShippingAddress, Order.shipping_address_id == ShippingAddress.id
    ).outerjoin(Address, Order.address_id == Address.id)


def apply_scope(stmt: Select, predicate: ScopeResult) -> Select:
    """Narrow an order query. Never call with DENY; short-circuit instead."""
    if predicate is GLOBAL:
        return stmt
    return join_order_locations(stmt).where(compile_predicate(predicate))
