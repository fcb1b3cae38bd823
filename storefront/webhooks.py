# storefront/webhooks.py
import threading
from collections import OrderedDict

from storefront.errors import ConfigError, SignatureError, ValidationError
from storefront.logs import get_logger, notify, sync_stats
from storefront.vendors.base import (
    CATALOG_UPDATED, INVENTORY_UPDATED, ORDER_COMPLETED, PAYMENT_FAILED, PRICE_CHANGED,
    PRODUCT_CREATED, PRODUCT_DELETED, PRODUCT_UPDATED,
)

log = get_logger("webhooks")


class WebhookProcessor:
    """Verifies and dispatches vendor notifications.

    Status codes: 400 for a missing/invalid signature or malformed body,
    500 only when the signing secret is not configured, 200 otherwise,
    including when processing failed and the error was swallowed.
    """

    def __init__(self, vendor, sync, mailer=None, stats=None, remember=1000):
        self.vendor = vendor
        self.sync = sync
        self.mailer = mailer
        self.stats = stats or sync_stats
        self._remember = remember
        self._orders_done = OrderedDict()
        self._lock = threading.Lock()

    def handle(self, body, headers):
        try:
            event = self.vendor.parse_event(body, headers)
        except SignatureError as e:
            return 400, {"error": str(e)}
        except ValidationError as e:
            return 400, {"error": str(e)}
        except ConfigError as e:
            log.error(str(e))
            return 500, {"error": "Webhook secret not configured"}

        log.info(f"{self.vendor.name} webhook {event.type} ({event.object_id})")
        try:
            self.dispatch(event)
        except Exception as e:
            log.exception(f"{self.vendor.name} webhook error")
            self.stats.record_failure("webhook", e)
            notify(f"{self.vendor.name} webhook error: {e}")
        return 200, {"received": True}

    def dispatch(self, event):
        kind = event.type
        if kind in (PRODUCT_CREATED, PRODUCT_UPDATED, PRICE_CHANGED):
            if event.object_id:
                self.sync.handle_product_event(event.object_id)
        elif kind == PRODUCT_DELETED:
            self.sync.handle_product_event(event.object_id, deleted=True)
        elif kind == CATALOG_UPDATED:
            result = self.sync.sync_all()
            if result.failed:
                self.stats.record_failure("catalog_sync", RuntimeError(f"{result.failed} product(s) failed"))
        elif kind == ORDER_COMPLETED:
            self.handle_order_completed(event.object_id)
        elif kind == PAYMENT_FAILED:
            log.error(f"Payment failed: {event.object_id}")
        elif kind == INVENTORY_UPDATED:
            log.info(f"Inventory count updated: {event.object_id}")
        else:
            log.info(f"Unhandled event type: {kind}")

    def _first_time(self, order_id) -> bool:
        with self._lock:
            if order_id in self._orders_done:
                return False
            self._orders_done[order_id] = True
            while len(self._orders_done) > self._remember:
                self._orders_done.popitem(last=False)
            return True

    def _forget(self, order_id):
        with self._lock:
            self._orders_done.pop(order_id, None)

    def handle_order_completed(self, order_id):
        if not order_id:
            log.error("No order ID in completed payment")
            return
        if not self._first_time(order_id):
            log.info(f"Order {order_id} already processed, skipping")
            return
        # claim is released on failure so a redelivery retries
        try:
            order = self.vendor.retrieve_order(order_id)
        except Exception:
            self._forget(order_id)
            raise
        if not order:
            self._forget(order_id)
            log.error(f"Order not found: {order_id}")
            return

        for line in order.lines:
            if not (line.product_id and line.variant_id):
                continue
            try:
                remaining = self.vendor.decrement_inventory(line.product_id, line.variant_id, line.quantity)
                log.info(f"Decremented inventory for {line.product_id} by {line.quantity} x {line.size or 'item'}, {remaining} left")
            except Exception as e:
                log.error(f"Failed to decrement inventory for {line.product_id}: {e}")
                self.stats.record_failure("inventory_decrement", e)

        notify(f"Order {order.id} paid: {order.total_cents/100:.2f} {order.currency.upper()}")
        if not self.mailer:
            return
        # mail failures never undo the order
        try:
            result = self.mailer.send_order_confirmation(order)
            if not result.success:
                log.error(f"Failed to send customer confirmation: {result.error}")
            result = self.mailer.send_admin_order_notification(order)
            if not result.success:
                log.error(f"Failed to send admin notification: {result.error}")
        except Exception as e:
            log.error(f"Error sending order emails: {e}")
            self.stats.record_failure("email", e)


# ---------- default processors (one per vendor, built on first delivery) ----------
_processors = {}
_processors_lock = threading.Lock()


def default_processor(vendor_name: str) -> WebhookProcessor:
    from storefront.cms import get_cms
    from storefront.emails import Mailer
    from storefront.sync import SyncHandler
    from storefront.vendors import get_vendor

    with _processors_lock:
        if vendor_name not in _processors:
            vendor = get_vendor(vendor_name)
            _processors[vendor_name] = WebhookProcessor(vendor, SyncHandler(vendor, get_cms()), Mailer())
        return _processors[vendor_name]


def handle_stripe_webhook(body, headers, processor=None):
    return (processor or default_processor("stripe")).handle(body, headers)


def handle_square_webhook(body, headers, processor=None):
    return (processor or default_processor("square")).handle(body, headers)
