import logging

from asgiref.sync import sync_to_async
from django.conf import settings
from django.core.mail import send_mail

from .models import Order, PaymentMethod

logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    'pending': 'Your order has been received and is awaiting confirmation.',
    'confirmed': 'Your order has been confirmed and is being prepared for processing.',
    'processing': 'Your order is currently being processed and will be shipped soon.',
    'shipped': 'Great news! Your order has been shipped{tracking}.',
    'delivered': 'Your order has been successfully delivered! We hope you and your little one love your new items.',
    'cancelled': 'Your order has been cancelled as requested.',
    'returned': 'Your order has been returned as requested. We will process your refund shortly.',
}


def format_price(amount: float) -> str:
    return f"{settings.ORDERS_CURRENCY} {amount:,.0f}"


def _format_date(value) -> str:
    return value.strftime('%d %b %Y') if value else 'Within 7 business days'


def build_order_confirmation(order: Order):
    """Returns (subject, body) for the order confirmation email."""
    address = order.shipping_address
    method = 'Cash on Delivery' if order.payment_info.method == PaymentMethod.CASH_ON_DELIVERY else 'Bank Transfer'
    items = "\n".join(f"- {item.product_name} (Qty: {item.quantity})" for item in order.items) or 'No items'

    subject = f"Order Confirmation - {order.order_number}"
    body = (
        f"Dear {address.full_name},\n\n"
        f"Thank you for your order! We're excited to get your baby essentials to you.\n\n"
        f"ORDER DETAILS:\n"
        f"- Order Number: {order.order_number}\n"
        f"- Total: {format_price(order.total)}\n"
        f"- Payment Method: {method}\n\n"
        f"ITEMS ORDERED:\n{items}\n\n"
        f"SHIPPING ADDRESS:\n"
        f"{address.full_name}\n"
        f"{address.address}\n"
        f"{address.city}, {address.state} {address.postal_code}\n\n"
        f"ESTIMATED DELIVERY: {_format_date(order.estimated_delivery)}\n\n"
        f"We'll keep you updated on your order status via email.\n\n"
        f"Best regards,\nThe MiniHub Team"
    )
    return subject, body


def build_status_update(order: Order, old_status: str, new_status: str):
    """Returns (subject, body) for a status change email."""
    tracking = f" with tracking number: {order.tracking_number}" if order.tracking_number else ''
    message = STATUS_MESSAGES.get(str(new_status), f"Your order status has been updated to {new_status}.")
    message = message.format(tracking=tracking)

    subject = f"Order Update - #{order.order_number} is now {new_status}"
    body = (
        f"Dear {order.shipping_address.full_name},\n\n"
        f"Your order #{order.order_number} status has been updated.\n\n"
        f"Status: {str(old_status).upper()} -> {str(new_status).upper()}\n\n"
        f"{message}\n"
    )
    if new_status == 'shipped' and order.tracking_number:
        body += (
            f"\nTracking Number: {order.tracking_number}\n"
            f"Estimated Delivery: {_format_date(order.estimated_delivery)}\n"
        )
    body += (
        "\nYou can always check your order status in your account dashboard.\n\n"
        "Best regards,\nThe MiniHub Team"
    )
    return subject, body


def _send(subject, body, recipient):
    send_mail(subject, body, settings.DEFAULT_FROM_EMAIL, [recipient], fail_silently=False)


class OrderNotifier:
    """
    Sends customer emails about orders through Django's configured email
    backend. Send failures raise; callers decide whether they matter.
    """

    def __init__(self, enabled=None):
        self.enabled = settings.ORDERS_SEND_NOTIFICATIONS if enabled is None else enabled

    async def order_created(self, order: Order) -> bool:
        if not self._should_send(order):
            return False
        subject, body = build_order_confirmation(order)
        await sync_to_async(_send)(subject, body, order.shipping_address.email)
        logger.info(f"Order confirmation email sent to {order.shipping_address.email} for order {order.order_number}")
        return True

    async def status_changed(self, order: Order, old_status: str, new_status: str) -> bool:
        if not self._should_send(order):
            return False
        subject, body = build_status_update(order, old_status, new_status)
        await sync_to_async(_send)(subject, body, order.shipping_address.email)
        logger.info(f"Status update email sent for order {order.order_number}: {old_status} -> {new_status}")
        return True

    def _should_send(self, order):
        if not self.enabled:
            logger.debug(f"Notifications disabled; skipping email for order {order.order_number}")
            return False
        if not order.order_number or not order.shipping_address.email:
            logger.error(f"Missing required order information for email on order {order.id}")
            return False
        return True
