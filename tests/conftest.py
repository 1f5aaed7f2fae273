"""Shared test configuration and fixtures.

Configures Django without a database and with the locmem email backend,
and provides an in-memory order store.
"""

from __future__ import annotations

import django
import pytest
from django.apps import apps
from django.conf import settings
from django.core import mail


def pytest_configure() -> None:
    if settings.configured:
        return
    settings.configure(
        DEBUG=False,
        SECRET_KEY="test-secret",
        ALLOWED_HOSTS=["testserver"],
        INSTALLED_APPS=["orders.apps.OrdersConfig"],
        ROOT_URLCONF="storefront_admin.urls",
        DATABASES={},
        USE_TZ=True,
        EMAIL_BACKEND="django.core.mail.backends.locmem.EmailBackend",
        DEFAULT_FROM_EMAIL="support@example.com",
        GOOGLE_APPLICATION_CREDENTIALS=None,
        ORDERS_COLLECTION="orders",
        ORDER_ITEMS_COLLECTION="order_items",
        ORDERS_HOME_COUNTRY="Pakistan",
        ORDERS_NUMBER_PREFIX="MW",
        ORDERS_DELIVERY_WINDOW_DAYS=(3, 7),
        ORDERS_POLL_INTERVAL_SECONDS=0,
        ORDERS_SEND_NOTIFICATIONS=True,
        ORDERS_CURRENCY="PKR",
        RESEND_API_KEY="re_test_key",
        RESEND_API_URL="https://api.resend.test/emails",
    )
    django.setup()


@pytest.fixture(autouse=True)
def outbox() -> list:
    """Empty the locmem outbox before each test and return it."""
    mail.outbox = []
    return mail.outbox


@pytest.fixture
def orders_app_config():
    """The orders app config; its manager is restored after the test."""
    config = apps.get_app_config("orders")
    previous = config.manager
    yield config
    config.manager = previous
