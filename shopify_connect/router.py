import logging

from django.core.exceptions import ImproperlyConfigured
from django.db import models

logger = logging.getLogger(__name__)


class WebhookTopic(models.TextChoices):
    """Closed set of Shopify webhook topics this app subscribes to."""

    ORDERS_CREATE = "orders/create"
    ORDERS_UPDATED = "orders/updated"
    ORDERS_CANCELLED = "orders/cancelled"
    FULFILLMENTS_CREATE = "fulfillments/create"
    FULFILLMENTS_UPDATE = "fulfillments/update"
    APP_UNINSTALLED = "app/uninstalled"


ORDER_TOPICS = frozenset(
    {
        WebhookTopic.ORDERS_CREATE,
        WebhookTopic.ORDERS_UPDATED,
        WebhookTopic.ORDERS_CANCELLED,
    }
)

FULFILLMENT_TOPICS = frozenset(
    {
        WebhookTopic.FULFILLMENTS_CREATE,
        WebhookTopic.FULFILLMENTS_UPDATE,
    }
)

# Registry mapping WebhookTopic members to handler callables.
# Handlers are registered by handler modules (orders.py, app.py,
# fulfillments.py) when AppConfig.ready() imports them.
_topic_handlers = {}


def parse_topic(topic):
    """Return the WebhookTopic for a raw header value, or None if unknown."""
    try:
        return WebhookTopic(topic)
    except ValueError:
        return None


def register_handler(topic, handler):
    """Register a handler callable for a Shopify webhook topic."""
    _topic_handlers[WebhookTopic(topic)] = handler
    logger.debug("Registered handler for topic: %s", topic)


def get_handler(topic):
    """Return the handler callable for the given topic, or None."""
    parsed = parse_topic(topic)
    if parsed is None:
        return None
    return _topic_handlers.get(parsed)


def check_handlers_complete():
    """Fail startup if any WebhookTopic has no registered handler."""
    missing = [topic.value for topic in WebhookTopic if topic not in _topic_handlers]
    if missing:
        raise ImproperlyConfigured(
            "No webhook handler registered for: " + ", ".join(sorted(missing))
        )
