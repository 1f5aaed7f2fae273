from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from django.db import models


class OrderStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    CONFIRMED = 'confirmed', 'Confirmed'
    SHIPPED = 'shipped', 'Shipped'
    DELIVERED = 'delivered', 'Delivered'
    CANCELLED = 'cancelled', 'Cancelled'
    RETURNED = 'returned', 'Returned'


class DisplayCategory(models.TextChoices):
    COMPLETED = 'completed', 'Completed'
    DISPATCHED = 'dispatched', 'Dispatched'
    PAYMENT_DUE = 'payment_due', 'Payment Due'
    CANCELLED = 'cancelled', 'Cancelled'
    RETURNED = 'returned', 'Returned'
    PROCESSING = 'processing', 'Processing'


class PaymentMethod(models.TextChoices):
    CASH_ON_DELIVERY = 'cash_on_delivery', 'Cash on Delivery'
    BANK_TRANSFER = 'bank_transfer', 'Bank Transfer'
    JAZZCASH = 'jazzcash', 'JazzCash'
    CREDIT_CARD = 'credit_card', 'Credit Card'


@dataclass(frozen=True)
class LineItem:
    """
    One product-and-quantity entry of an order. Name and unit price are
    snapshots taken when the order was placed.

    `id` is assigned by the store on the line-items side and is None before
    insertion.
    """
    product_id: str
    product_name: str
    unit_price: float
    quantity: int
    id: Optional[str] = None

    @property
    def total_price(self) -> float:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class ShippingAddress:
    full_name: str
    email: str
    phone: str
    address: str
    city: str
    state: str
    postal_code: str
    country: str = 'Pakistan'


@dataclass(frozen=True)
class PaymentAccount:
    """Value snapshot of the payment-collection account chosen at checkout."""
    id: str
    account_name: str
    account_number: str
    bank_name: str
    payment_method_type: str = 'bank_transfer'
    iban: Optional[str] = None
    mobile_number: Optional[str] = None
    branch_code: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class PaymentInfo:
    method: str
    selected_account: Optional[PaymentAccount] = None


@dataclass(frozen=True)
class Order:
    id: str
    order_number: str
    items: Tuple[LineItem, ...]
    subtotal: float
    tax: float
    shipping: float
    total: float
    shipping_address: ShippingAddress
    payment_info: PaymentInfo
    status: str
    created_at: datetime
    updated_at: datetime
    estimated_delivery: Optional[datetime] = None
    tracking_number: Optional[str] = None
    notes: str = ''

    def __str__(self):
        return f"Order {self.order_number} for {self.shipping_address.full_name} - {self.status}"


@dataclass(frozen=True)
class CategoryCounts:
    """Per-display-category order counts for the admin badges."""
    all: int = 0
    completed: int = 0
    dispatched: int = 0
    payment_due: int = 0
    cancelled: int = 0
    returned: int = 0
    processing: int = 0

    def as_dict(self) -> dict:
        return {
            'all': self.all,
            DisplayCategory.COMPLETED.value: self.completed,
            DisplayCategory.DISPATCHED.value: self.dispatched,
            DisplayCategory.PAYMENT_DUE.value: self.payment_due,
            DisplayCategory.CANCELLED.value: self.cancelled,
            DisplayCategory.RETURNED.value: self.returned,
            DisplayCategory.PROCESSING.value: self.processing,
        }


ALL_CATEGORIES = 'all'

ORDER_NOTES = {
    PaymentMethod.CASH_ON_DELIVERY: 'Cash on Delivery - Payment due upon delivery',
}
DEFAULT_ORDER_NOTE = 'Bank Transfer - Awaiting payment confirmation'


def notes_for_payment_method(method: str) -> str:
    return ORDER_NOTES.get(method, DEFAULT_ORDER_NOTE)


def initial_status_for_payment_method(method: str) -> str:
    if method == PaymentMethod.CASH_ON_DELIVERY:
        return OrderStatus.CONFIRMED
    return OrderStatus.PENDING
