"""
ASGI entrypoint. The order manager keeps a background refresh task on the
server's event loop, so the console must be served through ASGI.
"""
import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "storefront_admin.settings")

application = get_asgi_application()
