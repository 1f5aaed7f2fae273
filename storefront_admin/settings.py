"""
Django settings for the storefront admin console.

Values come from the environment (a local .env file is honoured through
python-dotenv).
"""
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-insecure-secret-key")
DEBUG = os.getenv("DJANGO_DEBUG", "false").lower() == "true"
ALLOWED_HOSTS = [h for h in os.getenv("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1").split(",") if h]

INSTALLED_APPS = [
    "orders.apps.OrdersConfig",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "storefront_admin.urls"
ASGI_APPLICATION = "storefront_admin.asgi.application"

# Orders live in Firestore; no relational database is used.
DATABASES = {}

USE_TZ = True
TIME_ZONE = "UTC"

# --- Firebase / Firestore ---
GOOGLE_APPLICATION_CREDENTIALS = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
ORDERS_COLLECTION = os.getenv("ORDERS_COLLECTION", "orders")
ORDER_ITEMS_COLLECTION = os.getenv("ORDER_ITEMS_COLLECTION", "order_items")

# --- Order lifecycle ---
ORDERS_HOME_COUNTRY = os.getenv("ORDERS_HOME_COUNTRY", "Pakistan")
ORDERS_NUMBER_PREFIX = os.getenv("ORDERS_NUMBER_PREFIX", "MW")
ORDERS_DELIVERY_WINDOW_DAYS = (
    int(os.getenv("ORDERS_DELIVERY_MIN_DAYS", "3")),
    int(os.getenv("ORDERS_DELIVERY_MAX_DAYS", "7")),
)
# 0 disables periodic refreshes; change notifications still trigger them.
ORDERS_POLL_INTERVAL_SECONDS = float(os.getenv("ORDERS_POLL_INTERVAL_SECONDS", "0"))
ORDERS_SEND_NOTIFICATIONS = os.getenv("ORDERS_SEND_NOTIFICATIONS", "true").lower() == "true"
ORDERS_CURRENCY = os.getenv("ORDERS_CURRENCY", "PKR")

# --- Email ---
# Use "orders.email_backends.ResendEmailBackend" in production.
EMAIL_BACKEND = os.getenv("EMAIL_BACKEND", "django.core.mail.backends.console.EmailBackend")
DEFAULT_FROM_EMAIL = os.getenv("DEFAULT_FROM_EMAIL", "MiniHub Support Team <support@minihubpk.com>")
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
RESEND_API_URL = os.getenv("RESEND_API_URL", "https://api.resend.com/emails")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "%(asctime)s - %(levelname)s - %(name)s - %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    },
    "root": {"handlers": ["console"], "level": "INFO"},
    "loggers": {
        "orders": {"handlers": ["console"], "level": os.getenv("ORDERS_LOG_LEVEL", "INFO"), "propagate": False},
    },
}
