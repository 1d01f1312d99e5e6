"""Webhook dispatch: deduplicate, persist, route to the topic handler."""

import logging

from ..models import WebhookEvent
from ..router import get_handler, parse_topic

logger = logging.getLogger(__name__)


def record_webhook_event(store, topic, payload, webhook_id):
    """Insert the event row, or return None if this delivery was seen before.

    Deduplication relies on the ``(store, shopify_webhook_id)`` unique
    constraint: ``get_or_create`` falls back to a lookup when a concurrent
    insert wins the race, so two redeliveries cannot both be recorded.
    """
    if not webhook_id:
        return WebhookEvent.objects.create(
            store=store, topic=topic, payload=payload, shopify_webhook_id=None
        )

    event, created = WebhookEvent.objects.get_or_create(
        store=store,
        shopify_webhook_id=webhook_id,
        defaults={"topic": topic, "payload": payload},
    )
    if created:
        return event

    logger.info(
        "Duplicate webhook ignored: %s for store %s (first received %s, "
        "topic=%s, processed=%s)",
        webhook_id,
        store.pk,
        event.created_at.isoformat(),
        event.topic,
        event.processed,
    )
    return None


def handle_webhook(store, topic, payload, webhook_id=None):
    """Process one Shopify webhook delivery for ``store``.

    Returns:
        The recorded :class:`WebhookEvent`, or None for a duplicate delivery.

    Raises:
        Whatever the topic handler raised, after the event has been marked
        failed.
    """
    event = record_webhook_event(store, topic, payload, webhook_id)
    if event is None:
        return None

    logger.info(
        "Processing %s for store %s (%s), webhook ID: %s",
        topic,
        store.pk,
        store.shopify_domain,
        webhook_id or "none",
    )

    handler = get_handler(topic)
    if handler is None:
        # Unknown topics are accepted and logged, not treated as failures.
        if parse_topic(topic) is None:
            logger.warning("Unknown webhook topic: %s", topic)
        else:
            logger.error("No handler registered for topic: %s", topic)
        event.mark_processed()
        return event

    try:
        handler(event, payload)
    except Exception as exc:
        event.mark_failed(exc)
        logger.exception(
            "Failed to process webhook event %s (topic=%s) for store %s",
            event.pk,
            topic,
            store.pk,
        )
        raise

    event.mark_processed()
    logger.info(
        "Successfully processed webhook %s (%s) for store %s",
        event.pk,
        topic,
        store.pk,
    )
    return event
