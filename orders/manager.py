"""
Order lifecycle manager: creates orders, applies status changes, and keeps
the in-memory order cache in step with the remote store.

The manager is the only writer of the cache. Everything runs on one event
loop; store calls may suspend, and the cache is changed only after the store
has acknowledged the corresponding write. Change notifications from the
store never touch the cache directly, they queue a full refresh that a
background task performs.
"""
import asyncio
import logging
import random
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

from django.conf import settings

from . import queries
from .errors import ErrorKind, MalformedRecordError, OrderError, PartialWriteFailure, StoreUnavailable
from .models import (
    ALL_CATEGORIES,
    CategoryCounts,
    LineItem,
    Order,
    OrderStatus,
    PaymentInfo,
    ShippingAddress,
    initial_status_for_payment_method,
    notes_for_payment_method,
)
from .state import (
    ClearError,
    Create,
    OrderState,
    ReplaceAll,
    SetError,
    SetFocused,
    SetLoading,
    UpdateStatus,
    UpdateTracking,
    apply,
)
from .store import OrderStore, Subscription
from .translator import format_timestamp, from_record, header_record, line_item_records, truncate_to_millis

logger = logging.getLogger(__name__)

CANCELLABLE_STATUSES = (OrderStatus.PENDING, OrderStatus.CONFIRMED)


def _utc_now():
    return datetime.now(timezone.utc)


class OrderLifecycleManager:

    def __init__(self, store: OrderStore, notifier=None, home_country=None, number_prefix=None,
                 delivery_window_days=None, poll_interval=None, clock=None, rng=None):
        self.store = store
        self.notifier = notifier
        self.home_country = home_country or settings.ORDERS_HOME_COUNTRY
        self.number_prefix = number_prefix or settings.ORDERS_NUMBER_PREFIX
        self.delivery_window_days = tuple(delivery_window_days or settings.ORDERS_DELIVERY_WINDOW_DAYS)
        self.poll_interval = settings.ORDERS_POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval
        self._clock = clock or _utc_now
        self._rng = rng or random.Random()

        self._state = OrderState()
        self._loads_in_flight = 0
        self._startup: Optional[asyncio.Future] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._subscription: Optional[Subscription] = None
        self._refresh_requests: Optional[asyncio.Queue] = None
        self._background: List[asyncio.Task] = []

    # --- Snapshot access ---

    @property
    def state(self) -> OrderState:
        """Current cache snapshot. Snapshots are immutable."""
        return self._state

    @property
    def orders(self):
        return self._state.orders

    def get(self, order_id: str) -> Optional[Order]:
        """Cache lookup only; never fetches."""
        return self._state.get(order_id)

    def listing(self, category: str = ALL_CATEGORIES, term: str = '') -> List[Order]:
        return queries.order_listing(self._state.orders, category, term)

    def counts(self) -> CategoryCounts:
        return queries.counts_by_category(self._state.orders)

    def focus(self, order_id: str) -> Optional[Order]:
        self._dispatch(SetFocused(order_id))
        return self._state.focused_order

    def clear_focus(self) -> None:
        self._dispatch(SetFocused(None))

    def _dispatch(self, command) -> None:
        self._state = apply(self._state, command)

    # --- Lifecycle ---

    async def start(self) -> None:
        """
        Checks the store connection, subscribes to order changes, starts the
        refresh task and loads the initial order set.
        """
        if self._startup is None:
            self._startup = asyncio.ensure_future(self._start())
        # Concurrent callers share one startup task.
        await asyncio.shield(self._startup)

    async def _start(self):
        self._loop = asyncio.get_running_loop()
        self._refresh_requests = asyncio.Queue()
        self._background.append(asyncio.create_task(self._refresh_worker()))
        if self.poll_interval:
            self._background.append(asyncio.create_task(self._poll()))

        await self.check_connection()
        try:
            self._subscription = self.store.subscribe(self._on_store_change)
        except Exception as e:
            logger.error(f"Could not subscribe to order changes, relying on explicit refreshes: {e}")
        await self.fetch_all()

    async def ensure_started(self) -> None:
        """Starts the manager, or waits for a startup already under way."""
        if self._startup is None or not self._startup.done():
            await self.start()

    async def close(self) -> None:
        """Closes the change subscription and stops background tasks."""
        startup, self._startup = self._startup, None
        if startup is not None and not startup.done():
            startup.cancel()
            try:
                await startup
            except asyncio.CancelledError:
                pass
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        tasks, self._background = self._background, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._refresh_requests = None
        self._loop = None
        logger.info("Order lifecycle manager closed.")

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def check_connection(self) -> Optional[int]:
        try:
            count = await self.store.count_orders()
        except Exception as e:
            logger.error(f"Order store connection check failed: {e}")
            return None
        logger.info(f"Order store reachable with {count} order(s).")
        return count

    # --- Change feed ---

    def request_refresh(self) -> None:
        """Queues a full refresh. Must be called on the manager's loop."""
        if self._refresh_requests is not None:
            self._refresh_requests.put_nowait(None)

    def _on_store_change(self, kinds) -> None:
        # Called by the store, possibly from a non-loop thread.
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        logger.info(f"Order change notification received: {kinds}")
        try:
            loop.call_soon_threadsafe(self.request_refresh)
        except RuntimeError:
            logger.debug("Event loop closed before the order refresh could be queued.")

    async def _refresh_worker(self):
        queue = self._refresh_requests
        while True:
            await queue.get()
            # Collapse a burst of notifications into one refresh.
            while not queue.empty():
                queue.get_nowait()
            try:
                await self.fetch_all()
            except Exception as e:
                logger.error(f"Order refresh failed: {e}")
                logger.exception(e)

    async def _poll(self):
        while True:
            await asyncio.sleep(self.poll_interval)
            self.request_refresh()

    # --- Store operations ---

    async def fetch_all(self) -> bool:
        """
        Replaces the cached orders with the store's full order set.

        Never raises. On failure the previous cache is kept and the error is
        recorded in the state; returns False.
        """
        self._loads_in_flight += 1
        self._dispatch(SetLoading(True))
        records, error = None, None
        try:
            records = await self.store.fetch_orders()
        except asyncio.CancelledError:
            self._loads_in_flight -= 1
            self._dispatch(SetLoading(self._loads_in_flight > 0))
            raise
        except Exception as e:
            error = e
        self._loads_in_flight -= 1

        if error is not None:
            logger.error(f"Error fetching orders: {error}")
            self._record_error(error, 'Failed to fetch orders')
            return False

        orders = []
        malformed = 0
        for record in records or []:
            try:
                orders.append(from_record(record, self.home_country, self.number_prefix))
            except MalformedRecordError as e:
                malformed += 1
                logger.warning(f"Skipping order record: {e}")
            except Exception as e:
                malformed += 1
                logger.error(f"Skipping unreadable order record: {e}")
                logger.exception(e)

        self._dispatch(ReplaceAll(tuple(orders)))
        self._dispatch(SetLoading(self._loads_in_flight > 0))
        if malformed:
            self._dispatch(SetError(ErrorKind.MALFORMED_RECORD, f"Skipped {malformed} malformed order record(s)"))
        else:
            self._dispatch(ClearError())
        logger.info(f"Loaded {len(orders)} order(s) from the store.")
        return True

    async def create(self, items: Sequence[LineItem], shipping_address: ShippingAddress, payment_info: PaymentInfo,
                     subtotal: float, tax: float, shipping: float, total: float) -> Order:
        """
        Places a new order: writes the header, then its line items.

        A failed line-item write is logged and the order still counts as
        created. The confirmation email is best effort.

        Raises:
            ValueError: `items` is empty.
            StoreUnavailable: the order header could not be saved.
        """
        if not items:
            raise ValueError("Cannot create an order without line items.")

        now = self._now()
        lo, hi = self.delivery_window_days
        order = Order(
            id=self._new_order_id(now),
            order_number=self._new_order_number(now),
            items=tuple(items),
            subtotal=subtotal,
            tax=tax,
            shipping=shipping,
            total=total,
            shipping_address=shipping_address,
            payment_info=payment_info,
            status=initial_status_for_payment_method(payment_info.method),
            created_at=now,
            updated_at=now,
            estimated_delivery=now + timedelta(days=self._rng.randint(lo, hi)),
            notes=notes_for_payment_method(payment_info.method),
        )

        try:
            await self.store.insert_order(header_record(order))
        except Exception as e:
            logger.error(f"Error creating order {order.order_number}: {e}")
            self._record_error(e, 'Failed to create order')
            if isinstance(e, OrderError):
                raise
            raise StoreUnavailable('insert_order', f"Failed to save order: {e}") from e

        try:
            await self.store.insert_line_items(line_item_records(order))
        except Exception as e:
            # The header is committed; keep the sale and leave the orphan for manual reconciliation.
            failure = PartialWriteFailure(order.id, len(order.items), str(e))
            logger.error(f"{failure}")
            logger.exception(e)

        self._dispatch(Create(order))
        logger.info(f"Created order {order.order_number} ({order.id}) with status {order.status}.")

        if self.notifier is not None:
            try:
                await self.notifier.order_created(order)
            except Exception as e:
                logger.error(f"Failed to send confirmation email for order {order.order_number}: {e}")
                logger.exception(e)
        return order

    async def update_status(self, order_id: str, new_status: str) -> bool:
        """
        Persists a new status for one order and applies it to the cache.
        Returns False, leaving the cache untouched, when the store write fails.
        """
        previous = self.get(order_id)
        updated_at = self._next_updated_at(previous)
        fields = {'status': str(new_status), 'updated_at': format_timestamp(updated_at)}
        try:
            await self.store.update_order(order_id, fields)
        except Exception as e:
            logger.error(f"Error updating status of order {order_id} to {new_status}: {e}")
            self._record_error(e, 'Failed to update order status')
            return False

        self._dispatch(UpdateStatus(order_id, new_status, updated_at))
        logger.info(f"Order {order_id} status set to {new_status}.")
        if previous is not None and previous.status != new_status:
            await self._notify_status_change(order_id, previous.status, new_status)
        return True

    async def update_tracking_number(self, order_id: str, tracking_number: str) -> bool:
        """Records a tracking number and marks the order shipped."""
        previous = self.get(order_id)
        updated_at = self._next_updated_at(previous)
        fields = {
            'tracking_number': tracking_number,
            'status': OrderStatus.SHIPPED.value,
            'updated_at': format_timestamp(updated_at),
        }
        try:
            await self.store.update_order(order_id, fields)
        except Exception as e:
            logger.error(f"Error adding tracking number to order {order_id}: {e}")
            self._record_error(e, 'Failed to update tracking number')
            return False

        self._dispatch(UpdateTracking(order_id, tracking_number, OrderStatus.SHIPPED, updated_at))
        logger.info(f"Order {order_id} shipped with tracking number {tracking_number}.")
        if previous is not None and previous.status != OrderStatus.SHIPPED:
            await self._notify_status_change(order_id, previous.status, OrderStatus.SHIPPED)
        return True

    async def cancel(self, order_id: str) -> bool:
        """Cancels a cached order that is still pending or confirmed."""
        order = self.get(order_id)
        if order is None or order.status not in CANCELLABLE_STATUSES:
            logger.warning(f"Order {order_id} cannot be cancelled from status "
                           f"{order.status if order else 'unknown'}.")
            return False
        return await self.update_status(order_id, OrderStatus.CANCELLED)

    # --- Helpers ---

    def _record_error(self, error: Exception, fallback_message: str) -> None:
        kind = getattr(error, 'kind', ErrorKind.STORE_UNAVAILABLE)
        message = getattr(error, 'message', None) or str(error) or fallback_message
        self._dispatch(SetError(kind, message))
        self._dispatch(SetLoading(self._loads_in_flight > 0))

    async def _notify_status_change(self, order_id, old_status, new_status):
        if self.notifier is None:
            return
        order = self.get(order_id)
        if order is None:
            return
        try:
            await self.notifier.status_changed(order, old_status, new_status)
        except Exception as e:
            logger.error(f"Failed to send status update email for order {order.order_number}: {e}")
            logger.exception(e)

    def _now(self) -> datetime:
        return truncate_to_millis(self._clock())

    def _next_updated_at(self, previous: Optional[Order]) -> datetime:
        now = self._now()
        if previous is not None and now <= previous.updated_at:
            now = previous.updated_at + timedelta(milliseconds=1)
        return now

    def _new_order_id(self, now: datetime) -> str:
        millis = int(now.timestamp() * 1000)
        return f"order_{millis}_{uuid.uuid4().hex[:9]}"

    def _new_order_number(self, now: datetime) -> str:
        # Not checked against the store; a collision needs the same millisecond and suffix.
        millis = int(now.timestamp() * 1000)
        return f"{self.number_prefix}{millis}{self._rng.randint(0, 999):03d}"
