import logging

import requests
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.core.mail.backends.base import BaseEmailBackend

logger = logging.getLogger(__name__)


class ResendEmailBackend(BaseEmailBackend):
    """
    Django email backend that delivers through the Resend HTTP API.
    """

    def __init__(self, fail_silently=False, api_key=None, api_url=None, timeout=10, **kwargs):
        super().__init__(fail_silently=fail_silently, **kwargs)
        self.api_key = api_key or settings.RESEND_API_KEY
        self.api_url = api_url or settings.RESEND_API_URL
        self.timeout = timeout

        if not all([self.api_key, self.api_url]):
            raise ImproperlyConfigured("Resend settings are not configured properly.")

    def _get_headers(self):
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _payload(self, message):
        payload = {
            "from": message.from_email or settings.DEFAULT_FROM_EMAIL,
            "to": list(message.to),
            "subject": message.subject,
            "text": message.body,
            "tags": [{"name": "source", "value": "storefront-admin"}],
        }
        if message.cc:
            payload["cc"] = list(message.cc)
        if message.bcc:
            payload["bcc"] = list(message.bcc)
        if message.reply_to:
            payload["reply_to"] = list(message.reply_to)
        for content, mimetype in getattr(message, "alternatives", []) or []:
            if mimetype == "text/html":
                payload["html"] = content
        return payload

    def send_messages(self, email_messages):
        sent = 0
        for message in email_messages:
            if not message.recipients():
                continue
            try:
                response = requests.post(
                    self.api_url,
                    headers=self._get_headers(),
                    json=self._payload(message),
                    timeout=self.timeout,
                )
                response.raise_for_status()
                logger.info(f"Email '{message.subject}' sent via Resend: {response.json().get('id')}")
                sent += 1
            except requests.exceptions.HTTPError as e:
                logger.error(f"Resend API Error: {e.response.status_code} - {e.response.text}")
                if not self.fail_silently:
                    raise
            except requests.exceptions.RequestException as e:
                logger.error(f"Failed to reach Resend API: {e}")
                if not self.fail_silently:
                    raise
        return sent
