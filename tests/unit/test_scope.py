"""Unit tests for the scope predicate algebra and its SQL compilation."""

import pytest
from libs.auth.models import AuthUser, Role
from services.marketplace_service.services.context import GeoScope, Operator, ScopeGrant
from services.marketplace_service.services.operators import load_operator
from services.marketplace_service.services.order_queries import list_admin_orders
from services.marketplace_service.services.scope import (
    DENY,
    GLOBAL,
    AllOf,
    AnyOf,
    FieldIn,
    GeoField,
    build_predicate,
    matches,
)
from tests.factories import (
    AddressFactory,
    OrderFactory,
    PermissionFactory,
    ProductFactory,
    ShippingAddressFactory,
    SubAdminProfileFactory,
    VendorFactory,
    grant_position,
)


def _sub_admin(*grants, profile=None):
    return Operator(
        user_id="sub-1", role=Role.SUB_ADMIN, grants=tuple(grants), profile=profile
    )


def _grant(scope=None, actions=("read",), resource="orders"):
    return ScopeGrant(resource=resource, actions=frozenset(actions), scope=scope)


def _location(city=None, state=None, country=None):
    return {GeoField.CITY: city, GeoField.STATE: state, GeoField.COUNTRY: country}


# ---------------------------------------------------------------------------
# build_predicate
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_admin_is_global():
    admin = Operator(user_id="admin-1", role=Role.ADMIN)

    assert build_predicate(admin, "orders", ["read"]) is GLOBAL


@pytest.mark.unit
def test_no_matching_grant_denies():
    operator = _sub_admin(
        _grant(resource="deliveries"),
        _grant(actions=("delete",)),
    )

    assert build_predicate(operator, "orders", ["read"]) is DENY


@pytest.mark.unit
def test_unscoped_grant_is_global_without_profile():
    operator = _sub_admin(_grant(GeoScope(cities=("Lagos",))), _grant(None))

    assert build_predicate(operator, "orders", ["read"]) is GLOBAL


@pytest.mark.unit
def test_unscoped_grant_still_narrowed_by_profile():
    profile = GeoScope(states=("Lagos",))
    operator = _sub_admin(_grant(None), profile=profile)

    predicate = build_predicate(operator, "orders", ["read"])

    assert predicate == FieldIn.of(GeoField.STATE, ["lagos"])


@pytest.mark.unit
def test_grants_widen_and_fields_within_a_grant_narrow():
    operator = _sub_admin(
        _grant(GeoScope(cities=("Ikeja",), states=("Lagos",))),
        _grant(GeoScope(countries=("Ghana",))),
    )

    predicate = build_predicate(operator, "orders", ["read"])

    assert isinstance(predicate, AnyOf)
    assert matches(predicate, _location("Ikeja", "Lagos", "Nigeria"))
    assert matches(predicate, _location("Accra", "Greater Accra", "Ghana"))
    assert not matches(predicate, _location("Ikeja", "Ogun", "Nigeria"))


@pytest.mark.unit
def test_profile_is_anded_on_top_of_grants():
    operator = _sub_admin(
        _grant(GeoScope(cities=("Ikeja", "Abuja"))),
        profile=GeoScope(states=("Lagos",)),
    )

    predicate = build_predicate(operator, "orders", ["read"])

    assert isinstance(predicate, AllOf)
    assert matches(predicate, _location("Ikeja", "Lagos"))
    assert not matches(predicate, _location("Abuja", "FCT"))


@pytest.mark.unit
def test_empty_scope_object_grants_nothing():
    operator = _sub_admin(_grant(GeoScope()))

    assert build_predicate(operator, "orders", ["read"]) is DENY


@pytest.mark.unit
def test_matching_is_case_insensitive_and_missing_fields_never_match():
    predicate = FieldIn.of(GeoField.CITY, ["LAGOS"])

    assert matches(predicate, _location(city=" lagos "))
    assert not matches(predicate, _location(state="Lagos"))
    assert not matches(DENY, _location(city="Lagos"))
    assert matches(GLOBAL, _location())


# ---------------------------------------------------------------------------
# load_operator + SQL compilation
# ---------------------------------------------------------------------------


async def _seed_orders(db):
    vendor = VendorFactory.create()
    product = ProductFactory.create(vendor_id=vendor.id)
    ikeja = ShippingAddressFactory.create(city="Ikeja", state="Lagos")
    legacy_lagos = AddressFactory.create(city="LAGOS", state="Lagos")
    # Blank shipping city falls back to the legacy address city
    blank_city = ShippingAddressFactory.create(city="", state="Lagos")
    accra = ShippingAddressFactory.create(
        city="Accra", state="Greater Accra", country="Ghana"
    )

    orders = {
        "ikeja": OrderFactory.create(
            vendor.id, product.id, shipping_address_id=ikeja.id
        ),
        "legacy": OrderFactory.create(vendor.id, product.id, address_id=legacy_lagos.id),
        "fallback": OrderFactory.create(
            vendor.id,
            product.id,
            shipping_address_id=blank_city.id,
            address_id=legacy_lagos.id,
        ),
        "accra": OrderFactory.create(
            vendor.id, product.id, shipping_address_id=accra.id
        ),
        "nowhere": OrderFactory.create(vendor.id, product.id),
    }
    db.add_all(
        [vendor, product, ikeja, legacy_lagos, blank_city, accra, *orders.values()]
    )
    await db.commit()
    return orders


@pytest.mark.asyncio
@pytest.mark.unit
async def test_sql_scope_matches_in_memory_rules(db_session, read_cache):
    orders = await _seed_orders(db_session)
    permission = PermissionFactory.create(
        scope={"cities": ["lagos", "Ikeja"], "states": [], "countries": []}
    )
    db_session.add_all([permission, *grant_position("sub-1", permission)])
    await db_session.commit()

    operator = await load_operator(
        db_session, AuthUser(user_id="sub-1", role=Role.SUB_ADMIN)
    )
    page = await list_admin_orders(db_session, operator, read_cache)

    visible = {order.id for order in page.data}
    assert visible == {orders["ikeja"].id, orders["legacy"].id, orders["fallback"].id}
    assert page.meta.total == 3


@pytest.mark.asyncio
@pytest.mark.unit
async def test_profile_narrows_sql_listing(db_session, read_cache):
    orders = await _seed_orders(db_session)
    permission = PermissionFactory.create(scope=None)
    db_session.add_all(
        [
            permission,
            *grant_position("sub-2", permission),
            SubAdminProfileFactory.create("sub-2", allowed_countries=["ghana"]),
        ]
    )
    await db_session.commit()

    operator = await load_operator(
        db_session, AuthUser(user_id="sub-2", role=Role.SUB_ADMIN)
    )
    page = await list_admin_orders(db_session, operator, read_cache)

    assert [order.id for order in page.data] == [orders["accra"].id]


@pytest.mark.asyncio
@pytest.mark.unit
async def test_denied_sub_admin_gets_empty_page(db_session, read_cache):
    await _seed_orders(db_session)

    operator = await load_operator(
        db_session, AuthUser(user_id="sub-3", role=Role.SUB_ADMIN)
    )
    page = await list_admin_orders(db_session, operator, read_cache)

    assert page.data == []
    assert page.meta.total == 0
