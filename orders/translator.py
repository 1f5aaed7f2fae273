"""
Conversion between stored order records and the in-memory Order.

Stored records use the flat column naming of the orders table
(customer_name, total_amount, ...) with line items nested under
``order_items``. Reading is forgiving: anything but a missing id is filled
with a default instead of raising.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .errors import MalformedRecordError
from .models import (
    LineItem,
    Order,
    OrderStatus,
    PaymentAccount,
    PaymentInfo,
    ShippingAddress,
)

logger = logging.getLogger(__name__)

DEFAULT_COUNTRY = 'Pakistan'
DEFAULT_NUMBER_PREFIX = 'MW'
UNKNOWN_PRODUCT_ID = 'unknown'
UNKNOWN_PRODUCT_NAME = 'Unknown Product'
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

ITEMS_KEY = 'order_items'


# --- Timestamps ---

def format_timestamp(value: datetime) -> str:
    """UTC, millisecond precision, e.g. 2025-03-01T09:15:02.120Z. Sorts lexically."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime('%Y-%m-%dT%H:%M:%S.') + f"{value.microsecond // 1000:03d}Z"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Returns an aware UTC datetime, or None when the value is absent or unreadable."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.warning(f"Unreadable timestamp in order record: {value!r}")
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def truncate_to_millis(value: datetime) -> datetime:
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


# --- Coercion helpers ---

def _as_float(value, default=0.0) -> float:
    if value is None or value == '':
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning(f"Non-numeric amount in order record: {value!r}")
        return default


def _as_int(value, default) -> int:
    if value is None or value == '':
        return default
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        logger.warning(f"Non-integer quantity in order record: {value!r}")
        return default


def _as_text(value, default='') -> str:
    if value is None:
        return default
    return str(value)


def _pick(data: Dict[str, Any], *keys):
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


# --- Payment account snapshot ---

def account_to_dict(account: PaymentAccount) -> Dict[str, Any]:
    return {
        'id': account.id,
        'account_name': account.account_name,
        'account_number': account.account_number,
        'bank_name': account.bank_name,
        'payment_method_type': account.payment_method_type,
        'iban': account.iban,
        'mobile_number': account.mobile_number,
        'branch_code': account.branch_code,
        'description': account.description,
    }


def account_from_dict(data: Dict[str, Any]) -> PaymentAccount:
    # Older checkouts stored the account with camelCase keys.
    return PaymentAccount(
        id=_as_text(_pick(data, 'id')),
        account_name=_as_text(_pick(data, 'account_name', 'accountName')),
        account_number=_as_text(_pick(data, 'account_number', 'accountNumber')),
        bank_name=_as_text(_pick(data, 'bank_name', 'bankName')),
        payment_method_type=_as_text(_pick(data, 'payment_method_type', 'paymentMethodType'), 'bank_transfer'),
        iban=_pick(data, 'iban'),
        mobile_number=_pick(data, 'mobile_number', 'mobileNumber'),
        branch_code=_pick(data, 'branch_code', 'branchCode'),
        description=_pick(data, 'description'),
    )


def _read_payment_details(value) -> Optional[PaymentAccount]:
    if not value:
        return None
    data = value
    if isinstance(value, str):
        try:
            data = json.loads(value)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable payment_details on order record.")
            return None
    if not isinstance(data, dict):
        logger.warning(f"Discarding payment_details of unexpected type {type(data).__name__}.")
        return None
    return account_from_dict(data)


# --- Records -> Order ---

def line_item_from_record(record: Dict[str, Any]) -> LineItem:
    item_id = record.get('id')
    return LineItem(
        product_id=_as_text(record.get('product_id')) or UNKNOWN_PRODUCT_ID,
        product_name=_as_text(record.get('product_name')) or UNKNOWN_PRODUCT_NAME,
        unit_price=_as_float(record.get('unit_price')),
        quantity=_as_int(record.get('quantity'), 1),
        id=None if item_id is None else str(item_id),
    )


def from_record(record: Dict[str, Any], home_country: str = DEFAULT_COUNTRY,
                number_prefix: str = DEFAULT_NUMBER_PREFIX) -> Order:
    """
    Builds an Order from a stored header record with nested line items.

    Raises:
        MalformedRecordError: the record has no id.
    """
    order_id = record.get('id') if isinstance(record, dict) else None
    if not order_id:
        raise MalformedRecordError('id', record if isinstance(record, dict) else None)
    order_id = str(order_id)

    raw_items = record.get(ITEMS_KEY) or []
    if not isinstance(raw_items, (list, tuple)):
        logger.warning(f"Ignoring {ITEMS_KEY} of unexpected type {type(raw_items).__name__} on order {order_id}.")
        raw_items = []
    items = tuple(line_item_from_record(item) for item in raw_items if isinstance(item, dict))

    created_at = parse_timestamp(record.get('created_at')) or EPOCH
    updated_at = parse_timestamp(record.get('updated_at')) or created_at
    if updated_at < created_at:
        updated_at = created_at

    return Order(
        id=order_id,
        order_number=_as_text(record.get('order_number')) or f"{number_prefix}{order_id[-6:]}",
        items=items,
        subtotal=_as_float(record.get('subtotal')),
        tax=_as_float(record.get('tax')),
        shipping=_as_float(record.get('shipping')),
        total=_as_float(record.get('total_amount')),
        shipping_address=ShippingAddress(
            full_name=_as_text(record.get('customer_name')),
            email=_as_text(record.get('customer_email')),
            phone=_as_text(record.get('customer_phone')),
            address=_as_text(record.get('customer_address')),
            city=_as_text(record.get('customer_city')),
            state=_as_text(record.get('customer_state')),
            postal_code=_as_text(record.get('customer_postal_code')),
            country=_as_text(record.get('customer_country')) or home_country,
        ),
        payment_info=PaymentInfo(
            method=_as_text(record.get('payment_method')),
            selected_account=_read_payment_details(record.get('payment_details')),
        ),
        status=_as_text(record.get('status')) or OrderStatus.PENDING.value,
        created_at=created_at,
        updated_at=updated_at,
        estimated_delivery=parse_timestamp(record.get('estimated_delivery')),
        tracking_number=_as_text(record.get('tracking_number')) or None,
        notes=_as_text(record.get('notes')),
    )


# --- Order -> records ---

def line_item_to_record(item: LineItem) -> Dict[str, Any]:
    record = {
        'product_id': item.product_id,
        'product_name': item.product_name,
        'quantity': item.quantity,
        'unit_price': item.unit_price,
        'total_price': item.total_price,
    }
    if item.id is not None:
        record['id'] = item.id
    return record


def header_record(order: Order) -> Dict[str, Any]:
    """The order header as written to the orders table (no line items)."""
    address = order.shipping_address
    account = order.payment_info.selected_account
    return {
        'id': order.id,
        'order_number': order.order_number,
        'customer_name': address.full_name,
        'customer_email': address.email,
        'customer_phone': address.phone,
        'customer_address': address.address,
        'customer_city': address.city,
        'customer_postal_code': address.postal_code,
        'customer_state': address.state,
        'customer_country': address.country,
        'subtotal': order.subtotal,
        'tax': order.tax,
        'shipping': order.shipping,
        'total_amount': order.total,
        'payment_method': str(order.payment_info.method),
        'payment_details': json.dumps(account_to_dict(account)) if account else None,
        'status': str(order.status),
        'estimated_delivery': format_timestamp(order.estimated_delivery) if order.estimated_delivery else None,
        'notes': order.notes,
        'tracking_number': order.tracking_number or None,
        'created_at': format_timestamp(order.created_at),
        'updated_at': format_timestamp(order.updated_at),
    }


def line_item_records(order: Order) -> List[Dict[str, Any]]:
    """Line-item rows for insertion, each referencing the order header by id."""
    records = []
    for position, item in enumerate(order.items):
        record = line_item_to_record(item)
        record.pop('id', None)
        record['order_id'] = order.id
        record['position'] = position
        records.append(record)
    return records


def to_record(order: Order) -> Dict[str, Any]:
    """Header record with the line items nested under ``order_items``."""
    record = header_record(order)
    record[ITEMS_KEY] = [line_item_to_record(item) for item in order.items]
    return record
