from dataclasses import asdict
import json
import logging
import math

from django.apps import apps
from django.conf import settings
from django.http import HttpResponseBadRequest, HttpResponseNotAllowed, JsonResponse
from django.views.decorators.csrf import csrf_exempt

from .errors import ErrorKind, OrderError
from .models import ALL_CATEGORIES, DisplayCategory, LineItem, PaymentInfo, PaymentMethod, ShippingAddress
from .status import display_category, is_valid_status, status_for_action
from .translator import account_from_dict

logger = logging.getLogger(__name__)

ADDRESS_FIELDS = ['full_name', 'email', 'phone', 'address', 'city', 'state', 'postal_code']
ORDER_FIELDS = ['items', 'shipping_address', 'payment_info', 'subtotal', 'tax', 'shipping', 'total']
AMOUNT_FIELDS = ['subtotal', 'tax', 'shipping', 'total']


async def _get_manager():
    manager = apps.get_app_config('orders').manager
    await manager.ensure_started()
    return manager


def _order_payload(order):
    data = asdict(order)
    data['display_category'] = display_category(order.status)
    return data


def _state_payload(manager):
    state = manager.state
    return {
        'is_loading': state.is_loading,
        'last_error': state.last_error.value if state.last_error else None,
        'error_message': state.error_message,
    }


def _failure_response(manager, message):
    state = manager.state
    status = 404 if state.last_error == ErrorKind.NOT_FOUND else 503
    return JsonResponse({'error': message, **_state_payload(manager)}, status=status)


def _read_json(request):
    data = json.loads(request.body or b'{}')
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON object")
    return data


def _read_quantity(value):
    if isinstance(value, bool):
        raise ValueError(f"Invalid quantity: {value!r}")
    number = float(value)
    if not number.is_integer():
        raise ValueError(f"Quantity must be a whole number: {value!r}")
    return int(number)


def _build_order_input(data):
    """Turns a checkout payload into the arguments of OrderLifecycleManager.create."""
    missing = [name for name in ORDER_FIELDS if name not in data]
    if missing:
        raise ValueError(f"Missing required fields: {missing}")
    if not data['items']:
        raise ValueError("Cannot process an empty order.")

    items = []
    for item in data['items']:
        quantity = _read_quantity(item.get('quantity', 0))
        if not item.get('product_id') or quantity < 1:
            raise ValueError('Each item must have a product_id and a quantity of at least 1.')
        unit_price = float(item.get('unit_price', 0))
        if not math.isfinite(unit_price) or unit_price < 0:
            raise ValueError(f"Invalid unit price for {item['product_id']}: {unit_price}")
        items.append(LineItem(
            product_id=str(item['product_id']),
            product_name=str(item.get('product_name', '')),
            unit_price=unit_price,
            quantity=quantity,
        ))

    address = data['shipping_address']
    missing = [name for name in ADDRESS_FIELDS if not address.get(name)]
    if missing:
        raise ValueError(f"Missing shipping address fields: {missing}")
    shipping_address = ShippingAddress(
        **{name: str(address[name]) for name in ADDRESS_FIELDS},
        country=address.get('country') or settings.ORDERS_HOME_COUNTRY,
    )

    payment = data['payment_info']
    if payment.get('method') not in PaymentMethod.values:
        raise ValueError(f"Unsupported payment method: {payment.get('method')}")
    account = payment.get('selected_account')
    payment_info = PaymentInfo(
        method=payment['method'],
        selected_account=account_from_dict(account) if account else None,
    )

    amounts = {name: float(data[name]) for name in AMOUNT_FIELDS}
    invalid = [name for name, value in amounts.items() if not math.isfinite(value) or value < 0]
    if invalid:
        raise ValueError(f"Amounts must be finite and non-negative: {invalid}")
    expected = amounts['subtotal'] + amounts['tax'] + amounts['shipping']
    if not math.isclose(amounts['total'], expected, rel_tol=1e-9, abs_tol=0.005):
        logger.warning(f"Order total check FAILED. Sent: {amounts['total']}, expected: {expected}")
        raise ValueError(f"Total {amounts['total']} does not equal subtotal + tax + shipping ({expected})")

    return {
        'items': items,
        'shipping_address': shipping_address,
        'payment_info': payment_info,
        **amounts,
    }


@csrf_exempt
async def order_collection(request):
    """
    GET lists orders for the admin page (filtered, searched, newest first)
    with per-category counts. POST places a new order.
    """
    if request.method == 'GET':
        return await _list_orders(request)
    if request.method == 'POST':
        return await _create_order(request)
    return HttpResponseNotAllowed(['GET', 'POST'])


async def _list_orders(request):
    category = request.GET.get('category', ALL_CATEGORIES)
    if category != ALL_CATEGORIES and category not in DisplayCategory.values:
        return HttpResponseBadRequest(f"Unknown category: {category}")
    term = request.GET.get('q', '')

    manager = await _get_manager()
    orders = manager.listing(category, term)
    return JsonResponse({
        'orders': [_order_payload(order) for order in orders],
        'counts': manager.counts().as_dict(),
        **_state_payload(manager),
    })


async def _create_order(request):
    try:
        order_input = _build_order_input(_read_json(request))
    except json.JSONDecodeError:
        return JsonResponse({'error': 'Invalid JSON'}, status=400)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        logger.warning(f"Rejected order payload: {e}")
        return JsonResponse({'error': str(e)}, status=400)

    manager = await _get_manager()
    try:
        order = await manager.create(**order_input)
    except OrderError as e:
        return JsonResponse({'error': e.message, **_state_payload(manager)}, status=503)
    return JsonResponse({'order': _order_payload(order)}, status=201)


@csrf_exempt
async def refresh_orders(request):
    if request.method != 'POST':
        return HttpResponseNotAllowed(['POST'])
    manager = await _get_manager()
    refreshed = await manager.fetch_all()
    return JsonResponse({'refreshed': refreshed, 'count': len(manager.orders), **_state_payload(manager)})


async def order_detail(request, order_id):
    if request.method != 'GET':
        return HttpResponseNotAllowed(['GET'])
    manager = await _get_manager()
    order = manager.get(order_id)
    if order is None:
        return JsonResponse({'error': f"Order not found: {order_id}"}, status=404)
    return JsonResponse({'order': _order_payload(order)})


@csrf_exempt
async def update_order_status(request, order_id):
    """
    Accepts either {"status": <persisted status>} or {"action": <display
    category>} as sent by the status buttons.
    """
    if request.method != 'POST':
        return HttpResponseNotAllowed(['POST'])
    try:
        data = _read_json(request)
        if 'action' in data:
            new_status = status_for_action(data['action'])
        else:
            new_status = data.get('status')
    except json.JSONDecodeError:
        return JsonResponse({'error': 'Invalid JSON'}, status=400)
    except (TypeError, ValueError) as e:
        return JsonResponse({'error': str(e)}, status=400)
    if not is_valid_status(new_status):
        return JsonResponse({'error': f"Unknown order status: {new_status}"}, status=400)

    manager = await _get_manager()
    if not await manager.update_status(order_id, new_status):
        return _failure_response(manager, 'Failed to update order status')
    order = manager.get(order_id)
    return JsonResponse({'order': _order_payload(order) if order else None, 'status': new_status})


@csrf_exempt
async def update_tracking_number(request, order_id):
    if request.method != 'POST':
        return HttpResponseNotAllowed(['POST'])
    try:
        tracking_number = str(_read_json(request).get('tracking_number') or '').strip()
    except (json.JSONDecodeError, ValueError):
        return JsonResponse({'error': 'Invalid JSON'}, status=400)
    if not tracking_number:
        return JsonResponse({'error': 'tracking_number is required'}, status=400)

    manager = await _get_manager()
    if not await manager.update_tracking_number(order_id, tracking_number):
        return _failure_response(manager, 'Failed to update tracking number')
    order = manager.get(order_id)
    return JsonResponse({'order': _order_payload(order) if order else None})


@csrf_exempt
async def cancel_order(request, order_id):
    if request.method != 'POST':
        return HttpResponseNotAllowed(['POST'])
    manager = await _get_manager()
    order = manager.get(order_id)
    if order is None:
        return JsonResponse({'error': f"Order not found: {order_id}"}, status=404)
    if not await manager.cancel(order_id):
        return JsonResponse({'error': f"Order {order.order_number} could not be cancelled",
                             **_state_payload(manager)}, status=409)
    return JsonResponse({'order': _order_payload(manager.get(order_id))})


@csrf_exempt
async def focus_order(request, order_id):
    if request.method != 'POST':
        return HttpResponseNotAllowed(['POST'])
    manager = await _get_manager()
    order = manager.focus(order_id)
    if order is None:
        return JsonResponse({'error': f"Order not found: {order_id}"}, status=404)
    return JsonResponse({'order': _order_payload(order)})
