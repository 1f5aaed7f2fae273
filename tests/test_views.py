"""Tests for the order admin HTTP views."""

from __future__ import annotations

import asyncio
import json
import random
from datetime import timedelta
from typing import Any

import pytest
from django.test import AsyncRequestFactory
from django.urls import resolve, reverse

from orders import views
from orders.manager import OrderLifecycleManager
from tests.factories import BASE_TIME, FakeOrderStore, make_record

factory = AsyncRequestFactory()

CHECKOUT = {
    "items": [
        {"product_id": "prod-1", "product_name": "Baby Romper", "unit_price": 400, "quantity": 2},
    ],
    "shipping_address": {
        "full_name": "Ayesha Khan",
        "email": "ayesha@example.com",
        "phone": "03001234567",
        "address": "12 Canal Road",
        "city": "Lahore",
        "state": "Punjab",
        "postal_code": "54000",
    },
    "payment_info": {"method": "cash_on_delivery"},
    "subtotal": 800,
    "tax": 136,
    "shipping": 200,
    "total": 1136,
}


@pytest.fixture
def store() -> FakeOrderStore:
    return FakeOrderStore([
        make_record("order-101", status="delivered"),
        make_record("order-102", status="shipped", created_at=BASE_TIME + timedelta(hours=1)),
        make_record("order-103", status="pending", created_at=BASE_TIME + timedelta(hours=2)),
    ])


@pytest.fixture
def manager(store: FakeOrderStore, orders_app_config) -> OrderLifecycleManager:
    manager = OrderLifecycleManager(store, rng=random.Random(3), poll_interval=0)
    orders_app_config.manager = manager
    return manager


def call(manager: OrderLifecycleManager, view, request, *args: Any):
    """Run one view on a fresh event loop, closing the manager afterwards."""
    async def scenario():
        try:
            return await view(request, *args)
        finally:
            await manager.close()

    return asyncio.run(scenario())


def post(path: str, data: Any = None, raw: str | None = None):
    body = raw if raw is not None else json.dumps(data or {})
    return factory.post(path, data=body, content_type="application/json")


def payload(response) -> dict[str, Any]:
    return json.loads(response.content)


class TestUrls:
    """Tests for URL routing."""

    @pytest.mark.parametrize(
        ("path", "name"),
        [
            ("/orders/", "order-collection"),
            ("/orders/refresh/", "refresh-orders"),
            ("/orders/order-1/", "order-detail"),
            ("/orders/order-1/status/", "update-order-status"),
            ("/orders/order-1/tracking/", "update-tracking-number"),
            ("/orders/order-1/cancel/", "cancel-order"),
            ("/orders/order-1/focus/", "focus-order"),
        ],
    )
    def test_resolve(self, path: str, name: str) -> None:
        assert resolve(path).url_name == name

    def test_reverse(self) -> None:
        assert reverse("update-order-status", args=["order-9"]) == "/orders/order-9/status/"


class TestOrderCollection:
    """Tests for listing and creating orders."""

    def test_list_all(self, manager: OrderLifecycleManager) -> None:
        response = call(manager, views.order_collection, factory.get("/orders/"))

        data = payload(response)
        assert response.status_code == 200
        assert [o["id"] for o in data["orders"]] == ["order-103", "order-102", "order-101"]
        assert data["counts"]["all"] == 3
        assert data["counts"]["dispatched"] == 1
        assert data["last_error"] is None
        assert data["is_loading"] is False

    def test_list_by_category_and_search(self, manager: OrderLifecycleManager) -> None:
        request = factory.get("/orders/", {"category": "dispatched", "q": "102"})

        data = payload(call(manager, views.order_collection, request))

        assert [o["id"] for o in data["orders"]] == ["order-102"]
        assert data["orders"][0]["display_category"] == "dispatched"

    def test_unknown_category(self, manager: OrderLifecycleManager) -> None:
        response = call(manager, views.order_collection, factory.get("/orders/", {"category": "lost"}))

        assert response.status_code == 400

    def test_method_not_allowed(self, manager: OrderLifecycleManager) -> None:
        response = asyncio.run(views.order_collection(factory.delete("/orders/")))

        assert response.status_code == 405

    def test_create(self, manager: OrderLifecycleManager, store: FakeOrderStore) -> None:
        """Test a checkout payload becomes a confirmed COD order."""
        response = call(manager, views.order_collection, post("/orders/", CHECKOUT))

        data = payload(response)
        assert response.status_code == 201
        assert data["order"]["status"] == "confirmed"
        assert data["order"]["display_category"] == "payment_due"
        assert data["order"]["shipping_address"]["country"] == "Pakistan"
        assert data["order"]["id"] in store.headers

    def test_create_invalid_json(self, manager: OrderLifecycleManager) -> None:
        response = call(manager, views.order_collection, post("/orders/", raw="{not json"))

        assert response.status_code == 400
        assert payload(response)["error"] == "Invalid JSON"

    @pytest.mark.parametrize(
        "change",
        [
            {"items": []},
            {"items": [{"product_id": "prod-1", "quantity": 0}]},
            {"payment_info": {"method": "barter"}},
            {"shipping_address": {"full_name": "Only Name"}},
            {"items": [{"product_id": "prod-1", "unit_price": 400, "quantity": 1.9}]},
            {"items": [{"product_id": "prod-1", "unit_price": 400, "quantity": True}]},
            {"items": [{"product_id": "prod-1", "unit_price": -400, "quantity": 2}]},
            {"subtotal": -1000, "tax": 0, "shipping": 0, "total": 5},
            {"shipping": -200, "total": 736},
            {"total": 2000},
            {"total": "NaN"},
        ],
    )
    def test_create_rejects_bad_payload(
        self, manager: OrderLifecycleManager, store: FakeOrderStore, change: dict
    ) -> None:
        response = call(manager, views.order_collection, post("/orders/", {**CHECKOUT, **change}))

        assert response.status_code == 400
        assert "insert_order" not in store.calls

    def test_create_accepts_whole_float_quantity(self, manager: OrderLifecycleManager) -> None:
        """Test 2.0 is read as a quantity of 2."""
        items = [{"product_id": "prod-1", "product_name": "Baby Romper", "unit_price": 400, "quantity": 2.0}]

        response = call(manager, views.order_collection, post("/orders/", {**CHECKOUT, "items": items}))

        assert response.status_code == 201
        assert payload(response)["order"]["items"][0]["quantity"] == 2

    def test_total_mismatch_message(self, manager: OrderLifecycleManager) -> None:
        response = call(manager, views.order_collection, post("/orders/", {**CHECKOUT, "total": 5}))

        assert "does not equal subtotal + tax + shipping" in payload(response)["error"]

    def test_create_missing_field(self, manager: OrderLifecycleManager) -> None:
        data = {key: value for key, value in CHECKOUT.items() if key != "total"}

        response = call(manager, views.order_collection, post("/orders/", data))

        assert response.status_code == 400
        assert "total" in payload(response)["error"]

    def test_create_store_unavailable(self, manager: OrderLifecycleManager, store: FakeOrderStore) -> None:
        store.fail_on("insert_order")

        response = call(manager, views.order_collection, post("/orders/", CHECKOUT))

        assert response.status_code == 503
        assert payload(response)["last_error"] == "store_unavailable"
        assert payload(response)["error_message"]


class TestOrderActions:
    """Tests for the per-order endpoints."""

    def test_detail(self, manager: OrderLifecycleManager) -> None:
        response = call(manager, views.order_detail, factory.get("/orders/order-101/"), "order-101")

        assert response.status_code == 200
        assert payload(response)["order"]["display_category"] == "completed"

    def test_detail_missing(self, manager: OrderLifecycleManager) -> None:
        response = call(manager, views.order_detail, factory.get("/orders/nope/"), "nope")

        assert response.status_code == 404

    def test_refresh(self, manager: OrderLifecycleManager, store: FakeOrderStore) -> None:
        response = call(manager, views.refresh_orders, post("/orders/refresh/"))

        assert payload(response)["refreshed"] is True
        assert payload(response)["count"] == 3
        assert store.calls.count("fetch_orders") == 2

    def test_status_by_action(self, manager: OrderLifecycleManager, store: FakeOrderStore) -> None:
        """Test a status button maps its category to a stored status."""
        request = post("/orders/order-103/status/", {"action": "dispatched"})

        response = call(manager, views.update_order_status, request, "order-103")

        assert response.status_code == 200
        assert payload(response)["status"] == "shipped"
        assert store.headers["order-103"]["status"] == "shipped"

    def test_status_by_value(self, manager: OrderLifecycleManager) -> None:
        request = post("/orders/order-103/status/", {"status": "returned"})

        response = call(manager, views.update_order_status, request, "order-103")

        assert payload(response)["order"]["display_category"] == "returned"

    @pytest.mark.parametrize("body", [{"status": "lost"}, {"action": "processing"}, {}])
    def test_status_rejected(self, manager: OrderLifecycleManager, body: dict) -> None:
        response = call(manager, views.update_order_status, post("/orders/order-103/status/", body), "order-103")

        assert response.status_code == 400

    def test_status_unknown_order(self, manager: OrderLifecycleManager) -> None:
        request = post("/orders/nope/status/", {"status": "shipped"})

        response = call(manager, views.update_order_status, request, "nope")

        assert response.status_code == 404
        assert payload(response)["last_error"] == "not_found"

    def test_status_store_unavailable(self, manager: OrderLifecycleManager, store: FakeOrderStore) -> None:
        store.fail_on("update_order")
        request = post("/orders/order-103/status/", {"status": "shipped"})

        response = call(manager, views.update_order_status, request, "order-103")

        assert response.status_code == 503

    def test_tracking(self, manager: OrderLifecycleManager) -> None:
        request = post("/orders/order-103/tracking/", {"tracking_number": " TRK-5 "})

        response = call(manager, views.update_tracking_number, request, "order-103")

        order = payload(response)["order"]
        assert order["tracking_number"] == "TRK-5"
        assert order["status"] == "shipped"

    def test_tracking_required(self, manager: OrderLifecycleManager) -> None:
        request = post("/orders/order-103/tracking/", {"tracking_number": ""})

        response = call(manager, views.update_tracking_number, request, "order-103")

        assert response.status_code == 400

    def test_cancel_pending(self, manager: OrderLifecycleManager) -> None:
        response = call(manager, views.cancel_order, post("/orders/order-103/cancel/"), "order-103")

        assert response.status_code == 200
        assert payload(response)["order"]["status"] == "cancelled"

    def test_cancel_shipped_conflicts(self, manager: OrderLifecycleManager) -> None:
        response = call(manager, views.cancel_order, post("/orders/order-102/cancel/"), "order-102")

        assert response.status_code == 409

    def test_cancel_missing(self, manager: OrderLifecycleManager) -> None:
        response = call(manager, views.cancel_order, post("/orders/nope/cancel/"), "nope")

        assert response.status_code == 404

    def test_focus(self, manager: OrderLifecycleManager) -> None:
        response = call(manager, views.focus_order, post("/orders/order-101/focus/"), "order-101")

        assert payload(response)["order"]["id"] == "order-101"
        assert manager.state.focused_order.id == "order-101"

    def test_focus_missing(self, manager: OrderLifecycleManager) -> None:
        response = call(manager, views.focus_order, post("/orders/nope/focus/"), "nope")

        assert response.status_code == 404
