import logging

from ..router import WebhookTopic, register_handler

logger = logging.getLogger(__name__)


def handle_fulfillment_event(event, payload):
    """Handle fulfillments/create and fulfillments/update: log only.

    Fulfillment state is not mirrored yet; the event row keeps the payload.
    """
    logger.info(
        "Fulfillment %s for order %s (%s) logged but not processed (store=%s)",
        payload.get("id") or "unknown",
        payload.get("order_id") or "unknown",
        event.topic,
        event.store_id,
    )


register_handler(WebhookTopic.FULFILLMENTS_CREATE, handle_fulfillment_event)
register_handler(WebhookTopic.FULFILLMENTS_UPDATE, handle_fulfillment_event)
