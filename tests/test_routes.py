"""
HTTP tests for the order and health endpoints.

The app is built with an injected fake gateway and a file-backed SQLite
database, then driven through Flask's test client.
"""

from unittest.mock import patch

import pytest

from app import create_app, error_status
from core.exceptions import (
    EmptyOrderError,
    GatewayNotConfiguredError,
    GatewayUnavailableError,
    IllegalTransitionError,
    InventoryContentionError,
    UnknownOrderError,
)
from conftest import FakeGateway, seed_catalog


# Fixtures

@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def app(tmp_path, gateway):
    app = create_app(
        "config.TestingConfig",
        gateway=gateway,
        config_overrides={"DATABASE_URL": f"sqlite:///{tmp_path / 'app.db'}"},
    )
    yield app
    app.config["CLEANUP"]()


@pytest.fixture
def catalog(app):
    return seed_catalog(app.config["DATABASE"])


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def order_payload(catalog):
    return {
        "items": [
            {"productId": "classic-tee", "variantId": catalog.tee_m, "quantity": 2, "price": 1},
            {"productId": "sticker-pack", "variantId": catalog.stickers_default, "quantity": 1},
        ],
        "shipping": {
            "name": "Satoshi N.",
            "address": {"line1": "1 Genesis Way", "city": "Austin"},
            "email": "satoshi@example.com",
        },
    }


@pytest.fixture
def created(client, order_payload):
    response = client.post("/api/orders", json=order_payload)
    assert response.status_code == 201
    return response.get_json()


# Tests for POST /api/orders

class TestCreateOrderRoute:
    """create-order over HTTP."""

    def test_create(self, created, gateway):
        assert created["totalSats"] == 55000
        assert created["status"] == "pending"
        assert created["encodedPaymentRequest"] == "lnbc55000n1req-1"
        assert created["orderId"]
        assert gateway.issued[0][1] == 55000

    def test_unknown_product(self, client, catalog):
        response = client.post("/api/orders", json={
            "items": [{"productId": "ghost", "quantity": 1}],
            "shipping": {"name": "A"},
        })

        assert response.status_code == 400
        assert response.get_json()["error"] == "UnknownProduct"

    def test_invalid_quantity(self, client, catalog):
        response = client.post("/api/orders", json={
            "items": [{"productId": "classic-tee", "quantity": 0}],
            "shipping": {"name": "A"},
        })

        assert response.status_code == 400
        assert response.get_json()["error"] == "InvalidQuantity"

    def test_empty_items(self, client, catalog):
        response = client.post("/api/orders", json={"items": [], "shipping": {"name": "A"}})

        assert response.status_code == 400
        assert response.get_json()["error"] == "EmptyOrder"

    @pytest.mark.parametrize("body", [
        None,
        {"items": "classic-tee", "shipping": {"name": "A"}},
        {"items": ["classic-tee"], "shipping": {"name": "A"}},
        {"items": [{"productId": "classic-tee", "quantity": 1}]},
        {"items": [{"productId": "classic-tee", "quantity": 1}], "shipping": {"name": "  "}},
    ])
    def test_malformed_body(self, client, catalog, body):
        if body is None:
            response = client.post("/api/orders", data="not json", content_type="text/plain")
        else:
            response = client.post("/api/orders", json=body)

        assert response.status_code == 400
        assert response.get_json()["error"] == "InvalidRequest"

    def test_huge_quantity_is_rejected(self, client, catalog):
        response = client.post("/api/orders", json={
            "items": [{"productId": "sticker-pack", "quantity": 10**19}],
            "shipping": {"name": "A"},
        })

        assert response.status_code == 400
        assert response.get_json()["error"] == "InvalidQuantity"

    def test_configured_quantity_limit(self, tmp_path, gateway):
        app = create_app(
            "config.TestingConfig",
            gateway=gateway,
            config_overrides={
                "DATABASE_URL": f"sqlite:///{tmp_path / 'limit.db'}",
                "MAX_LINE_QUANTITY": 2,
            },
        )
        try:
            seed_catalog(app.config["DATABASE"])
            response = app.test_client().post("/api/orders", json={
                "items": [{"productId": "sticker-pack", "quantity": 3}],
                "shipping": {"name": "A"},
            })
        finally:
            app.config["CLEANUP"]()

        assert response.status_code == 400
        assert response.get_json()["error"] == "InvalidQuantity"

    def test_gateway_unavailable(self, client, gateway, order_payload, app):
        gateway.fail_create = True

        response = client.post("/api/orders", json=order_payload)

        assert response.status_code == 503
        body = response.get_json()
        assert body["error"] == "GatewayUnavailable"
        order_id = body["details"]["order_id"]

        # Order was kept; issuance can be retried once the gateway is back
        gateway.fail_create = False
        retry = client.post(f"/api/orders/{order_id}/payment-request")
        assert retry.status_code == 200
        assert retry.get_json()["encodedPaymentRequest"] == "lnbc55000n1req-1"


# Tests for POST /api/orders/<id>/verify

class TestVerifyRoute:
    """verify-payment over HTTP."""

    def test_pending(self, client, created):
        response = client.post(f"/api/orders/{created['orderId']}/verify")

        assert response.status_code == 200
        assert response.get_json() == {"status": "pending"}

    def test_paid(self, client, created, gateway, app, catalog):
        gateway.settle("req-1")

        first = client.post(f"/api/orders/{created['orderId']}/verify")
        second = client.post(f"/api/orders/{created['orderId']}/verify")

        assert first.get_json() == {"status": "paid"}
        assert second.get_json() == {"status": "paid"}
        inventory = app.config["INVENTORY_LEDGER"]
        assert inventory.available(catalog.tee_m) == 8

    def test_unknown_order(self, client, catalog):
        response = client.post("/api/orders/missing/verify")

        assert response.status_code == 404
        assert response.get_json()["error"] == "UnknownOrder"

    def test_gateway_unavailable(self, client, created, gateway):
        gateway.fail_status = True

        response = client.post(f"/api/orders/{created['orderId']}/verify")

        assert response.status_code == 503
        assert response.get_json()["details"]["order_id"] == created["orderId"]

    def test_inventory_contention(self, client, created, gateway, app, catalog):
        gateway.settle("req-1")
        inventory = app.config["INVENTORY_LEDGER"]

        with patch.object(inventory, "decrement_for_order",
                          side_effect=InventoryContentionError(catalog.tee_m, 10)):
            response = client.post(f"/api/orders/{created['orderId']}/verify")

        assert response.status_code == 503
        assert response.get_json()["error"] == "InventoryContention"

        retry = client.post(f"/api/orders/{created['orderId']}/verify")
        assert retry.get_json() == {"status": "paid"}
        assert inventory.available(catalog.tee_m) == 8


# Tests for the remaining endpoints

class TestOrderSnapshotRoute:
    """GET /api/orders/<id> and payment request retry."""

    def test_get_order(self, client, created):
        response = client.get(f"/api/orders/{created['orderId']}")

        assert response.status_code == 200
        body = response.get_json()
        assert body["status"] == "pending"
        assert body["totalSats"] == 55000
        assert body["ageSeconds"] >= 0
        assert len(body["lines"]) == 2

    def test_get_unknown_order(self, client, catalog):
        assert client.get("/api/orders/missing").status_code == 404

    def test_payment_request_for_paid_order(self, client, created, gateway):
        gateway.settle("req-1")
        client.post(f"/api/orders/{created['orderId']}/verify")

        response = client.post(f"/api/orders/{created['orderId']}/payment-request")

        assert response.status_code == 409
        assert response.get_json()["error"] == "OrderNotPending"

    def test_payment_request_is_reused(self, client, created, gateway):
        response = client.post(f"/api/orders/{created['orderId']}/payment-request")

        assert response.get_json()["encodedPaymentRequest"] == created["encodedPaymentRequest"]
        assert len(gateway.issued) == 1

    def test_unknown_route_is_json(self, client):
        response = client.get("/api/nothing-here")

        assert response.status_code == 404
        assert response.get_json()["error"] == "Not Found"


class TestHealthRoute:
    """GET /health."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.get_json()
        assert body["status"] == "ok"
        assert body["checks"] == {"database": "ok", "gateway": "external", "sweep": "disabled"}


# Tests for the app factory

class TestCreateApp:
    """Startup behavior."""

    def test_fails_fast_without_gateway_config(self, tmp_path):
        with pytest.raises(GatewayNotConfiguredError):
            create_app("config.TestingConfig", config_overrides={
                "DATABASE_URL": f"sqlite:///{tmp_path / 'app.db'}",
                "PAYMENT_GATEWAY_URL": "",
                "PAYMENT_GATEWAY_API_KEY": "",
            })

    def test_builds_http_gateway_from_config(self, tmp_path):
        app = create_app("config.TestingConfig", config_overrides={
            "DATABASE_URL": f"sqlite:///{tmp_path / 'app.db'}",
            "PAYMENT_GATEWAY_URL": "https://gateway.test",
            "PAYMENT_GATEWAY_API_KEY": "key",
        })
        try:
            manager = app.config["GATEWAY_MANAGER"]
            assert manager.is_initialized
            assert manager.base_url == "https://gateway.test"
        finally:
            app.config["CLEANUP"]()

        assert not manager.is_initialized

    @pytest.mark.parametrize("error,status", [
        (EmptyOrderError(), 400),
        (UnknownOrderError("x"), 404),
        (IllegalTransitionError("x", "paid", "cancelled"), 409),
        (GatewayUnavailableError(), 503),
        (InventoryContentionError("v1", 10), 503),
    ])
    def test_error_status(self, error, status):
        assert error_status(error) == status
