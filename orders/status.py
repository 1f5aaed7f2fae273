"""
Mapping between persisted order statuses and the coarser display categories
the admin console filters, counts and labels by.

This is the only place display-category semantics live. Filtering, badge
counts and the "Update Status" buttons all go through these tables.
"""
from .models import DisplayCategory, OrderStatus

DISPLAY_CATEGORY_BY_STATUS = {
    OrderStatus.DELIVERED: DisplayCategory.COMPLETED,
    OrderStatus.SHIPPED: DisplayCategory.DISPATCHED,
    OrderStatus.PENDING: DisplayCategory.PAYMENT_DUE,
    OrderStatus.CONFIRMED: DisplayCategory.PAYMENT_DUE,
    OrderStatus.CANCELLED: DisplayCategory.CANCELLED,
    OrderStatus.RETURNED: DisplayCategory.RETURNED,
}

# Status written when an operator clicks a category's action button.
# There is no button for "processing".
STATUS_ACTIONS = {
    DisplayCategory.COMPLETED: OrderStatus.DELIVERED,
    DisplayCategory.DISPATCHED: OrderStatus.SHIPPED,
    DisplayCategory.PAYMENT_DUE: OrderStatus.CONFIRMED,
    DisplayCategory.CANCELLED: OrderStatus.CANCELLED,
    DisplayCategory.RETURNED: OrderStatus.RETURNED,
}


def display_category(status) -> DisplayCategory:
    """Total: unknown or missing statuses fall into "processing"."""
    return DISPLAY_CATEGORY_BY_STATUS.get(status, DisplayCategory.PROCESSING)


def status_for_action(category) -> OrderStatus:
    """
    Returns the persisted status behind a category's action button.

    Raises:
        ValueError: the category has no action button.
    """
    try:
        return STATUS_ACTIONS[category]
    except KeyError:
        raise ValueError(f"No status action for display category '{category}'") from None


def is_valid_status(status) -> bool:
    return status in OrderStatus.values
