"""HTTP API tests: routers mounted on a bare FastAPI app over the in-memory database."""

import json

import httpx
import pytest
from fastapi import FastAPI

from farm_market.domain.models import UserRole
from farm_market.domain.notifications import NotificationType
from farm_market.infrastructure.http_clients import sign_webhook_payload
from farm_market.presentation.api import router
from farm_market.presentation.catalog_api import router as catalog_router
from farm_market.presentation.dependencies import get_connection_registry, get_payments_service, get_uow
from farm_market.presentation.notifications_api import router as notifications_router

from conftest import WEBHOOK_SECRET


@pytest.fixture
def app(uow, payments, registry):
    app = FastAPI()
    app.include_router(router, prefix="/api")
    app.include_router(notifications_router, prefix="/api")
    app.include_router(catalog_router, prefix="/api")
    app.dependency_overrides[get_uow] = lambda: uow
    app.dependency_overrides[get_payments_service] = lambda: payments
    app.dependency_overrides[get_connection_registry] = lambda: registry
    return app


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def _as(user):
    return {"X-User-Id": user.id}


async def _place(client, buyer, product, quantity=2):
    response = await client.post(
        "/api/orders", json={"product_id": product.id, "quantity": quantity}, headers=_as(buyer)
    )
    assert response.status_code == 201
    return response.json()


class TestAuthentication:
    async def test_missing_header(self, client):
        response = await client.get("/api/orders")
        assert response.status_code == 401
        assert response.json()["detail"]["reason"] == "not_authenticated"

    async def test_unknown_user(self, client):
        response = await client.get("/api/users/me", headers={"X-User-Id": "ghost"})
        assert response.status_code == 401

    async def test_register_and_fetch_self(self, client):
        response = await client.post("/api/users", json={"name": "Dana", "email": "dana@farm.test", "role": "farmer"})
        assert response.status_code == 201
        user = response.json()

        me = await client.get("/api/users/me", headers={"X-User-Id": user["id"]})
        assert me.json()["role"] == "farmer"

    async def test_admin_registration_is_rejected(self, client):
        response = await client.post("/api/users", json={"name": "Mallory", "role": "admin"})

        assert response.status_code == 400
        assert response.json()["detail"]["reason"] == "invalid_role"


class TestOrderEndpoints:
    async def test_order_lifecycle(self, client, buyer, farmer, product):
        order = await _place(client, buyer, product)
        assert order["status"] == "pending"

        confirmed = await client.put(f"/api/orders/{order['id']}/confirm", headers=_as(farmer))
        assert confirmed.status_code == 200
        assert confirmed.json()["status"] == "confirmed"

        completed = await client.put(f"/api/orders/{order['id']}/complete", headers=_as(farmer))
        assert completed.json()["status"] == "completed"

        tracking = await client.get(f"/api/orders/{order['id']}/tracking", headers=_as(buyer))
        assert [entry["status"] for entry in tracking.json()["timeline"]] == ["pending", "confirmed", "completed"]

    async def test_forbidden_transition_maps_to_403(self, client, buyer, product):
        order = await _place(client, buyer, product)

        response = await client.put(f"/api/orders/{order['id']}/confirm", headers=_as(buyer))

        assert response.status_code == 403
        assert response.json()["detail"]["reason"] == "not_authorized"

    async def test_invalid_status_maps_to_400(self, client, buyer, farmer, product):
        order = await _place(client, buyer, product)
        await client.put(f"/api/orders/{order['id']}/cancel", headers=_as(buyer))

        response = await client.put(f"/api/orders/{order['id']}/confirm", headers=_as(farmer))

        assert response.status_code == 400
        assert response.json()["detail"]["reason"] == "invalid_status"

    async def test_insufficient_stock(self, client, buyer, product):
        response = await client.post(
            "/api/orders", json={"product_id": product.id, "quantity": 50}, headers=_as(buyer)
        )
        assert response.status_code == 400
        assert response.json()["detail"]["reason"] == "insufficient_stock"

    async def test_missing_order_maps_to_404(self, client, buyer):
        response = await client.get("/api/orders/missing", headers=_as(buyer))
        assert response.status_code == 404
        assert response.json()["detail"]["reason"] == "not_found"

    async def test_list_filters_by_status(self, client, buyer, farmer, product):
        first = await _place(client, buyer, product, quantity=1)
        await _place(client, buyer, product, quantity=1)
        await client.put(f"/api/orders/{first['id']}/confirm", headers=_as(farmer))

        response = await client.get("/api/orders", params={"status": "confirmed"}, headers=_as(buyer))

        body = response.json()
        assert body["total"] == 1
        assert body["items"][0]["id"] == first["id"]

    async def test_negative_delivery_cost_is_invalid(self, client, buyer, product):
        response = await client.post(
            "/api/orders",
            json={"product_id": product.id, "quantity": 3, "delivery_cost": "-25"},
            headers=_as(buyer)
        )
        assert response.status_code == 422

    async def test_reorder(self, client, buyer, product):
        order = await _place(client, buyer, product)

        same = await client.post(f"/api/orders/{order['id']}/reorder", headers=_as(buyer))
        assert same.status_code == 201
        assert same.json()["quantity"] == 2

        more = await client.post(f"/api/orders/{order['id']}/reorder", json={"quantity": 4}, headers=_as(buyer))
        assert more.json()["quantity"] == 4

    async def test_reorder_of_foreign_order(self, client, buyer, farmer, product):
        order = await _place(client, buyer, product)
        response = await client.post(f"/api/orders/{order['id']}/reorder", headers=_as(farmer))
        assert response.status_code == 403

    async def test_bulk_order(self, client, buyer, farmer, make_product):
        eggs = await make_product(farmer, name="Eggs", price="4.00")
        milk = await make_product(farmer, name="Milk", price="2.00")

        response = await client.post(
            "/api/orders/bulk",
            json={"items": [{"product_id": eggs.id, "quantity": 1}, {"product_id": milk.id, "quantity": 2}]},
            headers=_as(buyer)
        )

        assert response.status_code == 201
        assert len(response.json()) == 2


class TestPaymentEndpoints:
    async def test_intent_and_webhook(self, client, payments, buyer, farmer, product):
        order = await _place(client, buyer, product)
        await client.put(f"/api/orders/{order['id']}/confirm", headers=_as(farmer))

        intent = await client.post("/api/payments/create-intent", json={"order_id": order["id"]}, headers=_as(buyer))
        assert intent.status_code == 200
        intent_id = intent.json()["payment_intent_id"]

        payload = json.dumps({
            "id": "evt_1", "type": "payment_intent.succeeded", "data": {"object": {"id": intent_id}}
        }).encode()
        webhook = await client.post(
            "/api/payments/webhook",
            content=payload,
            headers={"Stripe-Signature": sign_webhook_payload(payload, WEBHOOK_SECRET)}
        )
        assert webhook.json() == {"received": True}

        status = await client.get(f"/api/payments/status/{order['id']}", headers=_as(buyer))
        assert status.json()["payment_status"] == "succeeded"

    async def test_webhook_without_signature(self, client):
        response = await client.post("/api/payments/webhook", content=b"{}")
        assert response.status_code == 400
        assert response.json()["detail"]["reason"] == "invalid_signature"

    async def test_provider_outage_maps_to_502(self, client, payments, buyer, farmer, product):
        order = await _place(client, buyer, product)
        await client.put(f"/api/orders/{order['id']}/confirm", headers=_as(farmer))
        payments.unavailable = True

        response = await client.post("/api/payments/create-intent", json={"order_id": order["id"]}, headers=_as(buyer))

        assert response.status_code == 502

    async def test_failed_confirmation(self, client, payments, buyer, farmer, product):
        order = await _place(client, buyer, product)
        await client.put(f"/api/orders/{order['id']}/confirm", headers=_as(farmer))
        intent = await client.post("/api/payments/create-intent", json={"order_id": order["id"]}, headers=_as(buyer))
        intent_id = intent.json()["payment_intent_id"]
        payments.set_status(intent_id, "canceled")

        response = await client.post(
            "/api/payments/confirm", json={"order_id": order["id"], "payment_intent_id": intent_id}, headers=_as(buyer)
        )

        assert response.status_code == 400
        assert response.json()["detail"]["reason"] == "payment_failed"


class TestNotificationEndpoints:
    async def test_order_notifications_flow(self, client, drain_outbox, buyer, farmer, product):
        await _place(client, buyer, product)
        await drain_outbox()

        unread = await client.get("/api/notifications/unread-count", headers=_as(farmer))
        assert unread.json() == {"unread_count": 1}

        listing = await client.get("/api/notifications", headers=_as(farmer))
        [notification] = listing.json()["items"]
        assert notification["type"] == "new_order"

        read = await client.put(f"/api/notifications/{notification['id']}/read", headers=_as(farmer))
        assert read.json()["is_read"] is True

        foreign = await client.delete(f"/api/notifications/{notification['id']}", headers=_as(buyer))
        assert foreign.status_code == 403

        deleted = await client.delete(f"/api/notifications/{notification['id']}", headers=_as(farmer))
        assert deleted.status_code == 204

    async def test_read_all(self, client, notify, buyer):
        await notify(buyer.id, NotificationType.NEW_MESSAGE, "New Message", "one")
        await notify(buyer.id, NotificationType.NEW_MESSAGE, "New Message", "two")

        response = await client.put("/api/notifications/read-all", headers=_as(buyer))

        assert response.json() == {"updated": 2}

    async def test_preferences(self, client, buyer):
        defaults = await client.get("/api/notifications/preferences", headers=_as(buyer))
        assert defaults.json()["email_order_confirmed"] is True

        updated = await client.put(
            "/api/notifications/preferences", json={"email_order_confirmed": False}, headers=_as(buyer)
        )
        assert updated.json()["email_order_confirmed"] is False


class TestCatalogEndpoints:
    async def test_price_drop_alert(self, client, drain_outbox, buyer, farmer, product):
        added = await client.post("/api/wishlists/items", json={"product_id": product.id}, headers=_as(buyer))
        assert added.status_code == 201
        again = await client.post("/api/wishlists/items", json={"product_id": product.id}, headers=_as(buyer))
        assert again.status_code == 200

        await client.put(f"/api/products/{product.id}", json={"price": "8.00"}, headers=_as(farmer))
        await drain_outbox()

        listing = await client.get("/api/notifications", headers=_as(buyer))
        assert listing.json()["items"][0]["title"] == "Price Drop Alert!"

    async def test_follow_farmer(self, client, buyer, farmer, make_user):
        response = await client.post(f"/api/follows/{farmer.id}", headers=_as(buyer))
        assert response.status_code == 201

        duplicate = await client.post(f"/api/follows/{farmer.id}", headers=_as(buyer))
        assert duplicate.json()["detail"]["reason"] == "already_following"

        other = await make_user(UserRole.BUYER)
        not_farmer = await client.post(f"/api/follows/{other.id}", headers=_as(buyer))
        assert not_farmer.status_code == 404

    async def test_public_product_listing(self, client, farmer, make_product):
        listed = await make_product(farmer, name="Carrots")
        await make_product(farmer, name="Beets", approved=False)

        response = await client.get("/api/products", params={"search": "carr", "sort_by": "price_low"})

        body = response.json()
        assert body["total"] == 1
        assert body["items"][0]["id"] == listed.id

    async def test_invalid_product_sort(self, client):
        response = await client.get("/api/products", params={"sort_by": "random"})
        assert response.status_code == 400
        assert response.json()["detail"]["reason"] == "invalid_sort"

    async def test_farmer_products(self, client, buyer, farmer, make_product):
        await make_product(farmer, name="Beets", approved=False)

        mine = await client.get("/api/products/farmer/my-products", headers=_as(farmer))
        assert mine.json()["total"] == 1

        forbidden = await client.get("/api/products/farmer/my-products", headers=_as(buyer))
        assert forbidden.status_code == 403

    async def test_delivery_cost(self, client, buyer, farmer):
        created = await client.post(
            "/api/products",
            json={"name": "Kale", "price": "3.00", "quantity": 5, "farm_location": {"city": "Salem", "state": "OR"}},
            headers=_as(farmer)
        )
        product_id = created.json()["id"]

        response = await client.post(
            "/api/delivery/calculate-cost",
            json={"product_id": product_id, "quantity": 1, "delivery_address": {"city": "Salem", "state": "OR"}},
            headers=_as(buyer)
        )

        assert response.status_code == 200
        assert response.json()["delivery_cost"] == "7.50"
