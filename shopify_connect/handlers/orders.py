import logging

from django.utils import timezone

from ..router import WebhookTopic, register_handler
from ..services.order_sync import upsert_order_from_shopify

logger = logging.getLogger(__name__)


def _order_label(payload):
    order_id = payload.get("id") or "unknown"
    order_number = payload.get("order_number") or payload.get("number") or "unknown"
    return f"{order_id} (#{order_number})"


def handle_order_create(event, payload):
    """Handle orders/create webhook: mirror the new order locally."""
    upsert_order_from_shopify(event.store, payload)
    logger.info(
        "Order %s created for store %s", _order_label(payload), event.store_id
    )


def handle_order_updated(event, payload):
    """Handle orders/updated webhook.

    Same upsert as create: the order may not exist locally yet if the
    create delivery was lost or is still in flight.
    """
    upsert_order_from_shopify(event.store, payload)
    logger.info(
        "Order %s updated for store %s", _order_label(payload), event.store_id
    )


def handle_order_cancelled(event, payload):
    """Handle orders/cancelled webhook: upsert with a cancellation time.

    Shopify normally includes ``cancelled_at``; when it is missing the
    receipt time is used so the order still reads as cancelled.
    """
    cancelled = dict(payload)
    if not cancelled.get("cancelled_at"):
        cancelled["cancelled_at"] = timezone.now().isoformat()
    upsert_order_from_shopify(event.store, cancelled)
    logger.info(
        "Order %s cancelled for store %s", _order_label(payload), event.store_id
    )


# ---------------------------------------------------------------------------
# Handler registration, called when this module is imported via apps.ready()
# ---------------------------------------------------------------------------
register_handler(WebhookTopic.ORDERS_CREATE, handle_order_create)
register_handler(WebhookTopic.ORDERS_UPDATED, handle_order_updated)
register_handler(WebhookTopic.ORDERS_CANCELLED, handle_order_cancelled)
