import logging

import firebase_admin
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from firebase_admin import credentials, firestore, firestore_async

logger = logging.getLogger(__name__)


def initialize_firebase():
    """
    Initializes the Firebase Admin SDK once per process from the service
    account file named by GOOGLE_APPLICATION_CREDENTIALS.
    """
    if firebase_admin._apps:
        return firebase_admin.get_app()

    cred_path = settings.GOOGLE_APPLICATION_CREDENTIALS
    if not cred_path:
        raise ImproperlyConfigured("GOOGLE_APPLICATION_CREDENTIALS environment variable not set.")

    cred = credentials.Certificate(cred_path)
    app = firebase_admin.initialize_app(cred)
    logger.info("Firebase initialized successfully.")
    return app


def get_async_db():
    """Firestore AsyncClient used for reads and writes."""
    initialize_firebase()
    return firestore_async.client()


def get_db():
    """Firestore sync client; only its snapshot listeners are used."""
    initialize_firebase()
    return firestore.client()
