import logging

from ..router import WebhookTopic, register_handler

logger = logging.getLogger(__name__)


def handle_app_uninstalled(event, payload):
    """Handle app/uninstalled webhook: mark the store disconnected.

    The access token and scopes are cleared; the client id and secret
    stay so the merchant can reconnect without re-entering them.
    """
    store = event.store
    if not store.is_connected:
        logger.warning(
            "app/uninstalled received for store %s (%s) but store is "
            "already disconnected",
            store.pk,
            store.shopify_domain,
        )

    store.clear_connection()
    logger.info(
        "Store %s (%s) marked as uninstalled; access token and scopes "
        "cleared, client credentials preserved",
        store.pk,
        store.shopify_domain,
    )


register_handler(WebhookTopic.APP_UNINSTALLED, handle_app_uninstalled)
