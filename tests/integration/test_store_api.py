"""Integration tests for the store customer and admin endpoints."""

from decimal import Decimal

import pytest
from tests.conftest import DEFAULT_USER_ID, make_user, override_auth, persist
from tests.factories import (
    AddressFactory,
    OrderFactory,
    ProductFactory,
    VariantFactory,
)

ADDRESS_PAYLOAD = {
    "first_name": "Camille",
    "last_name": "Martin",
    "address1": "12 Rue de la Paix",
    "city": "Paris",
    "state": "Ile-de-France",
    "postal_code": "75002",
}


async def _stocked_variant(db, stock=5, price=Decimal("10.00")):
    product = await persist(db, ProductFactory.create(base_price=price))
    variant = await persist(db, VariantFactory.create(product, stock=stock))
    return product, variant


async def _fill_cart(client, product, variant, quantity):
    response = await client.post(
        "/store/cart/items",
        json={
            "product_id": str(product.id),
            "variant_id": str(variant.id),
            "quantity": quantity,
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


async def _create_address(client):
    response = await client.post("/store/addresses", json=ADDRESS_PAYLOAD)
    assert response.status_code == 201, response.text
    return response.json()


# ---------------------------------------------------------------------------
# Health and addresses
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_request_id_is_echoed(client):
    response = await client.get("/health", headers={"X-Request-ID": "req-abc-123"})
    assert response.headers["X-Request-ID"] == "req-abc-123"

    generated = await client.get("/store/cart")
    assert generated.headers["X-Request-ID"]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_create_and_list_addresses(client):
    created = await _create_address(client)
    assert created["country"] == "France"
    assert created["type"] == "shipping"

    response = await client.get("/store/addresses")
    assert response.status_code == 200
    assert [a["id"] for a in response.json()] == [created["id"]]


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_cart_lifecycle(client, db_session):
    product, variant = await _stocked_variant(db_session)

    empty = (await client.get("/store/cart")).json()
    assert empty["items"] == []

    cart = await _fill_cart(client, product, variant, 2)
    assert Decimal(cart["subtotal"]) == Decimal("20.00")
    item_id = cart["items"][0]["id"]

    response = await client.patch(f"/store/cart/items/{item_id}", json={"quantity": 3})
    assert response.status_code == 200
    assert Decimal(response.json()["subtotal"]) == Decimal("30.00")

    response = await client.delete(f"/store/cart/items/{item_id}")
    assert response.status_code == 200
    assert response.json()["items"] == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_add_beyond_stock_returns_structured_error(client, db_session):
    product, variant = await _stocked_variant(db_session, stock=1)

    response = await client.post(
        "/store/cart/items",
        json={
            "product_id": str(product.id),
            "variant_id": str(variant.id),
            "quantity": 2,
        },
    )

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "insufficient_stock"
    assert body["available"] == 1
    assert body["product"] == product.name


@pytest.mark.asyncio
@pytest.mark.integration
async def test_zero_quantity_is_validation_error(client, db_session):
    product, variant = await _stocked_variant(db_session)

    response = await client.post(
        "/store/cart/items",
        json={
            "product_id": str(product.id),
            "variant_id": str(variant.id),
            "quantity": 0,
        },
    )
    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "validation_error"
    assert body["detail"][0]["loc"][-1] == "quantity"


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_returns_order_and_payment_intent(client, db_session, gateway):
    product, variant = await _stocked_variant(db_session, stock=5)
    address = await _create_address(client)
    await _fill_cart(client, product, variant, 3)

    response = await client.post("/store/orders", json={"address_id": address["id"]})

    assert response.status_code == 201, response.text
    data = response.json()
    order = data["order"]
    assert order["status"] == "pending"
    assert order["payment_status"] == "pending"
    assert Decimal(order["total"]) == Decimal("41.99")
    assert order["order_number"].startswith("ORD-")
    assert order["address"]["id"] == address["id"]
    assert order["items"][0]["quantity"] == 3
    assert data["payment_intent"] == {
        "id": "pi_test_1",
        "client_secret": "pi_test_1_secret",
    }

    cart = (await client.get("/store/cart")).json()
    assert cart["items"] == []
    await db_session.refresh(variant)
    assert variant.stock == 2


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_with_failing_gateway_still_creates_order(client, db_session, gateway):
    gateway.fail = True
    product, variant = await _stocked_variant(db_session)
    address = await _create_address(client)
    await _fill_cart(client, product, variant, 1)

    response = await client.post("/store/orders", json={"address_id": address["id"]})

    assert response.status_code == 201, response.text
    assert response.json()["payment_intent"] is None
    assert response.json()["order"]["status"] == "pending"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_empty_cart(client):
    address = await _create_address(client)

    response = await client.post("/store/orders", json={"address_id": address["id"]})

    assert response.status_code == 400
    assert response.json()["error"] == "empty_cart"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_unknown_address(client, db_session):
    product, variant = await _stocked_variant(db_session)
    await _fill_cart(client, product, variant, 1)
    stranger_address = await persist(db_session, AddressFactory.create("stranger"))

    response = await client.post(
        "/store/orders", json={"address_id": str(stranger_address.id)}
    )

    assert response.status_code == 404
    assert response.json()["error"] == "not_found"
    assert response.json()["entity"] == "address"


# ---------------------------------------------------------------------------
# Order history and cancellation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_order_history_pagination_and_cancel(client, db_session):
    product, variant = await _stocked_variant(db_session, stock=5)
    address = await _create_address(client)
    await _fill_cart(client, product, variant, 2)
    order = (
        await client.post("/store/orders", json={"address_id": address["id"]})
    ).json()["order"]

    listing = await client.get("/store/orders", params={"page": 1, "limit": 10})
    assert listing.status_code == 200
    body = listing.json()
    assert body["pagination"] == {
        "current_page": 1,
        "total_pages": 1,
        "total_orders": 1,
        "has_next_page": False,
        "has_prev_page": False,
    }

    detail = await client.get(f"/store/orders/{order['id']}")
    assert detail.status_code == 200

    cancelled = await client.post(f"/store/orders/{order['id']}/cancel")
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"
    await db_session.refresh(variant)
    assert variant.stock == 5

    again = await client.post(f"/store/orders/{order['id']}/cancel")
    assert again.status_code == 400
    assert again.json()["error"] == "invalid_transition"
    assert again.json()["detail"] == "Order cannot be cancelled at this stage"

    filtered = await client.get("/store/orders", params={"status": "pending"})
    assert filtered.json()["pagination"]["total_orders"] == 0


@pytest.mark.asyncio
@pytest.mark.integration
async def test_orders_are_private(client, app, db_session):
    address = await persist(db_session, AddressFactory.create(DEFAULT_USER_ID))
    order = await persist(db_session, OrderFactory.create(DEFAULT_USER_ID, address))

    with override_auth(app, make_user(user_id="someone-else")):
        response = await client.get(f"/store/orders/{order.id}")
        listing = await client.get("/store/orders")

    assert response.status_code == 404
    assert listing.json()["orders"] == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_requires_authentication(app, client):
    from libs.auth.dependencies import get_current_user

    app.dependency_overrides.pop(get_current_user, None)
    response = await client.get("/store/cart")

    assert response.status_code in (401, 403)
    assert response.json()["error"] in ("unauthorized", "forbidden")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_invalid_token_is_unauthorized(app, client):
    from libs.auth.dependencies import get_current_user

    app.dependency_overrides.pop(get_current_user, None)
    response = await client.get(
        "/store/cart", headers={"Authorization": "Bearer not-a-jwt"}
    )

    assert response.status_code == 401
    assert response.json() == {
        "error": "unauthorized",
        "detail": "Could not validate credentials",
    }
    assert response.headers["WWW-Authenticate"] == "Bearer"


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_admin_routes_reject_regular_users(client):
    response = await client.get("/admin/store/orders")
    assert response.status_code == 403
    assert response.json() == {
        "error": "forbidden",
        "detail": "Admin privileges required",
    }


@pytest.mark.asyncio
@pytest.mark.integration
async def test_admin_order_management(admin_client, db_session):
    address = await persist(db_session, AddressFactory.create(DEFAULT_USER_ID))
    order = await persist(db_session, OrderFactory.create(DEFAULT_USER_ID, address))

    listing = await admin_client.get("/admin/store/orders", params={"status": "pending"})
    assert listing.status_code == 200
    assert listing.json()["pagination"]["total_orders"] == 1

    paid = await admin_client.post(f"/admin/store/orders/{order.id}/mark-paid")
    assert paid.status_code == 200
    assert paid.json()["status"] == "paid"
    assert paid.json()["payment_status"] == "paid"

    shipped = await admin_client.patch(
        f"/admin/store/orders/{order.id}/status",
        json={"status": "shipped", "notes": "tracking FR123"},
    )
    assert shipped.status_code == 200
    assert shipped.json()["shipped_at"] is not None
    assert shipped.json()["notes"] == "tracking FR123"

    detail = await admin_client.get(f"/admin/store/orders/{order.id}")
    assert detail.json()["status"] == "shipped"

    missing = await admin_client.get(f"/admin/store/orders/{address.id}")
    assert missing.status_code == 404
