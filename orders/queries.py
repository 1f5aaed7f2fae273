"""
Read-only views over a cached order sequence, as shown on the admin order page.
"""
from collections import Counter
from typing import Iterable, List, Sequence

from .models import ALL_CATEGORIES, CategoryCounts, DisplayCategory, Order
from .status import display_category


def filter_by_category(orders: Sequence[Order], category: str) -> List[Order]:
    if category == ALL_CATEGORIES:
        return list(orders)
    return [order for order in orders if display_category(order.status) == category]


def search(orders: Sequence[Order], term: str) -> List[Order]:
    """Case-insensitive match on order number, customer name or customer email."""
    needle = (term or '').lower()
    if not needle:
        return list(orders)
    return [
        order for order in orders
        if needle in order.order_number.lower()
        or needle in order.shipping_address.full_name.lower()
        or needle in order.shipping_address.email.lower()
    ]


def sorted_by_recency(orders: Iterable[Order]) -> List[Order]:
    # sorted() is stable, so equal timestamps keep their insertion order.
    return sorted(orders, key=lambda order: order.created_at, reverse=True)


def counts_by_category(orders: Sequence[Order]) -> CategoryCounts:
    counts = Counter(display_category(order.status) for order in orders)
    return CategoryCounts(
        all=len(orders),
        completed=counts[DisplayCategory.COMPLETED],
        dispatched=counts[DisplayCategory.DISPATCHED],
        payment_due=counts[DisplayCategory.PAYMENT_DUE],
        cancelled=counts[DisplayCategory.CANCELLED],
        returned=counts[DisplayCategory.RETURNED],
        processing=counts[DisplayCategory.PROCESSING],
    )


def order_listing(orders: Sequence[Order], category: str = ALL_CATEGORIES, term: str = '') -> List[Order]:
    """The admin order list: category filter, then search, newest first."""
    return sorted_by_recency(search(filter_by_category(orders, category), term))
