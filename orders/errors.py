"""
Exceptions raised by the order lifecycle core.

Hierarchy:
- OrderError (base)
  - StoreUnavailable
  - MalformedRecordError
  - PartialWriteFailure
  - OrderNotFound

Each exception carries an ErrorKind so the manager can record it in the
cache's ``last_error`` without keeping the exception object around.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    STORE_UNAVAILABLE = 'store_unavailable'
    MALFORMED_RECORD = 'malformed_record'
    PARTIAL_WRITE = 'partial_write'
    NOT_FOUND = 'not_found'


class OrderError(Exception):
    """Base class for order lifecycle errors."""

    kind: ErrorKind = ErrorKind.STORE_UNAVAILABLE

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class StoreUnavailable(OrderError):
    """The remote order store could not be reached or rejected the request."""

    kind = ErrorKind.STORE_UNAVAILABLE

    def __init__(self, operation: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"Order store unavailable during {operation}", details={"operation": operation})
        self.operation = operation


class MalformedRecordError(OrderError):
    """A stored record lacks a field that cannot be defaulted (its id)."""

    kind = ErrorKind.MALFORMED_RECORD

    def __init__(self, field: str, record: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(f"Order record is missing required field '{field}'", details={"field": field})
        self.field = field
        self.record = record


class PartialWriteFailure(OrderError):
    """The order header was committed but its line items were not."""

    kind = ErrorKind.PARTIAL_WRITE

    def __init__(self, order_id: str, item_count: int, reason: str = '') -> None:
        msg = f"Order {order_id} saved without its {item_count} line item(s)"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg, details={"order_id": order_id, "item_count": item_count})
        self.order_id = order_id
        self.item_count = item_count


class OrderNotFound(OrderError):
    """An update targeted an order id the store does not know."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, order_id: str) -> None:
        super().__init__(f"Order not found: {order_id}", details={"order_id": order_id})
        self.order_id = order_id
