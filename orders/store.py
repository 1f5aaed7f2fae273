"""
Remote order store: the interface the lifecycle manager needs, and its
Firestore implementation.

Orders are kept as two collections:
order headers keyed by order id, and order line items that reference their
header through ``order_id``.
"""
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from django.conf import settings
from google.api_core import exceptions as google_exceptions
from google.cloud.firestore_v1.base_query import FieldFilter
from firebase_admin import firestore

from storefront_admin.firebase_config import get_async_db, get_db
from .errors import OrderNotFound, StoreUnavailable
from .translator import ITEMS_KEY

logger = logging.getLogger(__name__)

# Change handlers receive the change kinds of one notification, e.g. ["ADDED"].
ChangeHandler = Callable[[List[str]], None]

# Firestore caps "in" filters at 30 values.
IN_QUERY_LIMIT = 30


class Subscription:
    """
    Handle for a change-feed subscription. Closing it is idempotent.
    """

    def __init__(self, on_close: Callable[[], None]):
        self._on_close = on_close
        self._closed = False
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._on_close()


class OrderStore:
    """
    What the order lifecycle manager requires from the remote store.

    Every method raises StoreUnavailable when the service fails;
    update_order raises OrderNotFound for an unknown id.
    """

    async def insert_order(self, record: Dict[str, Any]) -> None:
        raise NotImplementedError

    async def insert_line_items(self, records: List[Dict[str, Any]]) -> None:
        raise NotImplementedError

    async def update_order(self, order_id: str, fields: Dict[str, Any]) -> None:
        raise NotImplementedError

    async def fetch_orders(self) -> List[Dict[str, Any]]:
        """All order headers, newest first, each with its line items under ``order_items``."""
        raise NotImplementedError

    async def count_orders(self) -> int:
        raise NotImplementedError

    def subscribe(self, handler: ChangeHandler) -> Subscription:
        """
        Invokes `handler` on any insert, update or delete of an order header.
        The handler may be called from another thread.
        """
        raise NotImplementedError


class FirestoreOrderStore(OrderStore):
    """
    Firestore-backed order store. Reads and writes go through the async
    client; the change feed uses the sync client's snapshot listener, which
    calls back on a Firestore worker thread.
    """

    def __init__(self, orders_collection: Optional[str] = None, items_collection: Optional[str] = None,
                 async_db=None, db=None):
        self.orders_collection = orders_collection or settings.ORDERS_COLLECTION
        self.items_collection = items_collection or settings.ORDER_ITEMS_COLLECTION
        self._async_db = async_db
        self._db = db

    @property
    def async_db(self):
        if self._async_db is None:
            self._async_db = get_async_db()
        return self._async_db

    @property
    def db(self):
        if self._db is None:
            self._db = get_db()
        return self._db

    async def insert_order(self, record):
        order_id = record['id']
        try:
            doc_ref = self.async_db.collection(self.orders_collection).document(order_id)
            await doc_ref.create(record)
            logger.info(f"Saved order header {order_id} to Firestore.")
        except Exception as e:
            logger.error(f"Failed to save order header {order_id} to Firestore: {e}")
            raise StoreUnavailable('insert_order', f"Failed to save order: {e}") from e

    async def insert_line_items(self, records):
        if not records:
            return
        try:
            collection = self.async_db.collection(self.items_collection)
            batch = self.async_db.batch()
            for record in records:
                batch.set(collection.document(), record)
            await batch.commit()
            logger.info(f"Saved {len(records)} line item(s) for order {records[0].get('order_id')}.")
        except Exception as e:
            logger.error(f"Failed to save order line items: {e}")
            raise StoreUnavailable('insert_line_items', f"Failed to save order items: {e}") from e

    async def update_order(self, order_id, fields):
        try:
            doc_ref = self.async_db.collection(self.orders_collection).document(order_id)
            await doc_ref.update(fields)
            logger.info(f"Updated Firestore order {order_id}: {sorted(fields)}")
        except google_exceptions.NotFound as e:
            logger.warning(f"Firestore order {order_id} does not exist.")
            raise OrderNotFound(order_id) from e
        except Exception as e:
            logger.error(f"Failed to update Firestore order {order_id}: {e}")
            raise StoreUnavailable('update_order', f"Failed to update order {order_id}: {e}") from e

    async def fetch_orders(self):
        try:
            query = self.async_db.collection(self.orders_collection).order_by(
                'created_at', direction=firestore.Query.DESCENDING
            )
            headers = []
            async for doc in query.stream():
                record = doc.to_dict() or {}
                record.setdefault('id', doc.id)
                headers.append(record)

            items_by_order = await self._fetch_line_items([h['id'] for h in headers if h.get('id')])
        except Exception as e:
            logger.error(f"Failed to fetch orders from Firestore: {e}")
            raise StoreUnavailable('fetch_orders', f"Failed to fetch orders: {e}") from e

        for record in headers:
            record[ITEMS_KEY] = items_by_order.get(record.get('id'), [])
        logger.debug(f"Fetched {len(headers)} order(s) from Firestore.")
        return headers

    async def _fetch_line_items(self, order_ids):
        """
        Groups line items by order id. Items are queried in chunks because
        Firestore has no join.
        """
        items_by_order: Dict[str, List[Dict[str, Any]]] = {}
        collection = self.async_db.collection(self.items_collection)
        for start in range(0, len(order_ids), IN_QUERY_LIMIT):
            chunk = order_ids[start:start + IN_QUERY_LIMIT]
            query = collection.where(filter=FieldFilter('order_id', 'in', chunk))
            async for doc in query.stream():
                item = doc.to_dict() or {}
                item.setdefault('id', doc.id)
                items_by_order.setdefault(item.get('order_id'), []).append(item)
        for items in items_by_order.values():
            items.sort(key=lambda item: item.get('position', 0))
        return items_by_order

    async def count_orders(self):
        try:
            result = await self.async_db.collection(self.orders_collection).count().get()
            return int(result[0][0].value)
        except Exception as e:
            logger.error(f"Failed to count Firestore orders: {e}")
            raise StoreUnavailable('count_orders', f"Failed to count orders: {e}") from e

    def subscribe(self, handler):
        def on_snapshot(col_snapshot, changes, read_time):
            kinds = [change.type.name for change in changes]
            logger.debug(f"Order change notification at {read_time}: {kinds}")
            if kinds:
                handler(kinds)

        watch = self.db.collection(self.orders_collection).on_snapshot(on_snapshot)
        logger.info(f"Subscribed to changes on '{self.orders_collection}'.")
        return Subscription(watch.unsubscribe)
