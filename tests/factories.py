"""Builders for orders, records and an in-memory order store."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any

from orders.errors import OrderNotFound, StoreUnavailable
from orders.models import LineItem, Order, PaymentInfo, ShippingAddress
from orders.store import OrderStore, Subscription
from orders.translator import ITEMS_KEY, format_timestamp

BASE_TIME = datetime(2025, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


def make_address(**overrides: Any) -> ShippingAddress:
    values = {
        "full_name": "Ayesha Khan",
        "email": "ayesha@example.com",
        "phone": "03001234567",
        "address": "12 Canal Road",
        "city": "Lahore",
        "state": "Punjab",
        "postal_code": "54000",
        "country": "Pakistan",
    }
    values.update(overrides)
    return ShippingAddress(**values)


def make_items() -> list[LineItem]:
    return [
        LineItem(product_id="prod-1", product_name="Baby Romper", unit_price=400.0, quantity=2),
        LineItem(product_id="prod-2", product_name="Soft Blanket", unit_price=200.0, quantity=1),
    ]


def make_order(
    order_id: str = "order-1",
    status: str = "pending",
    created_at: datetime | None = None,
    order_number: str | None = None,
    full_name: str = "Ayesha Khan",
    email: str = "ayesha@example.com",
    **overrides: Any,
) -> Order:
    created = created_at or BASE_TIME
    values = {
        "id": order_id,
        "order_number": order_number or f"MW{order_id[-3:]}",
        "items": tuple(make_items()),
        "subtotal": 1000.0,
        "tax": 170.0,
        "shipping": 200.0,
        "total": 1370.0,
        "shipping_address": make_address(full_name=full_name, email=email),
        "payment_info": PaymentInfo(method="cash_on_delivery"),
        "status": status,
        "created_at": created,
        "updated_at": created,
        "estimated_delivery": created + timedelta(days=5),
        "notes": "Cash on Delivery - Payment due upon delivery",
    }
    values.update(overrides)
    return Order(**values)


def make_record(order_id: str = "order-1", status: str = "confirmed", created_at: datetime | None = None,
                **overrides: Any) -> dict[str, Any]:
    created = created_at or BASE_TIME
    record = {
        "id": order_id,
        "order_number": f"MW{order_id[-3:]}",
        "customer_name": "Ayesha Khan",
        "customer_email": "ayesha@example.com",
        "customer_phone": "03001234567",
        "customer_address": "12 Canal Road",
        "customer_city": "Lahore",
        "customer_postal_code": "54000",
        "customer_state": "Punjab",
        "customer_country": "Pakistan",
        "subtotal": 1000.0,
        "tax": 170.0,
        "shipping": 200.0,
        "total_amount": 1370.0,
        "payment_method": "cash_on_delivery",
        "payment_details": None,
        "status": status,
        "estimated_delivery": format_timestamp(created + timedelta(days=5)),
        "notes": "Cash on Delivery - Payment due upon delivery",
        "tracking_number": None,
        "created_at": format_timestamp(created),
        "updated_at": format_timestamp(created),
        ITEMS_KEY: [
            {"id": f"{order_id}-item-1", "product_id": "prod-1", "product_name": "Baby Romper",
             "quantity": 2, "unit_price": 400.0, "total_price": 800.0},
        ],
    }
    record.update(overrides)
    return record


class FakeOrderStore(OrderStore):
    """In-memory order store with failure injection.

    Operations named in ``failing`` raise StoreUnavailable. With
    ``emit_changes`` set, header writes notify subscribers like a real
    change feed.
    """

    def __init__(self, records: list[dict[str, Any]] | None = None, emit_changes: bool = False) -> None:
        self.headers: dict[str, dict[str, Any]] = {}
        self.items: list[dict[str, Any]] = []
        self.failing: set[str] = set()
        self.calls: list[str] = []
        self.handlers: list = []
        self.emit_changes = emit_changes
        self.fetch_delay = 0.0
        self._next_item = 1
        for record in records or []:
            record = dict(record)
            for item in record.pop(ITEMS_KEY, []):
                self.items.append({**item, "order_id": record["id"]})
            self.headers[record["id"]] = record

    def fail_on(self, *operations: str) -> None:
        self.failing.update(operations)

    def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.failing:
            raise StoreUnavailable(operation)

    def _emit(self, kind: str) -> None:
        if self.emit_changes:
            for handler in list(self.handlers):
                handler([kind])

    async def insert_order(self, record):
        self._enter("insert_order")
        self.headers[record["id"]] = dict(record)
        self._emit("ADDED")

    async def insert_line_items(self, records):
        self._enter("insert_line_items")
        for record in records:
            self.items.append({**record, "id": f"item-{self._next_item}"})
            self._next_item += 1

    async def update_order(self, order_id, fields):
        self._enter("update_order")
        if order_id not in self.headers:
            raise OrderNotFound(order_id)
        self.headers[order_id].update(fields)
        self._emit("MODIFIED")

    async def fetch_orders(self):
        self._enter("fetch_orders")
        if self.fetch_delay:
            await asyncio.sleep(self.fetch_delay)
        records = []
        for header in sorted(self.headers.values(), key=lambda r: r.get("created_at") or "", reverse=True):
            record = dict(header)
            record[ITEMS_KEY] = [dict(i) for i in self.items if i.get("order_id") == header.get("id")]
            records.append(record)
        return records

    async def count_orders(self):
        self._enter("count_orders")
        return len(self.headers)

    def subscribe(self, handler):
        self.calls.append("subscribe")
        self.handlers.append(handler)
        return Subscription(lambda: self.handlers.remove(handler))


async def wait_for(predicate, timeout: float = 1.0) -> bool:
    """Yield to the event loop until ``predicate()`` holds or time runs out."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            return False
        await asyncio.sleep(0.01)
    return True
