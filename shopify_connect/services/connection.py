"""Store connection lifecycle.

A store moves ``disconnected -> connecting -> token_exchanged ->
webhooks_registered -> connected``. Only ``disconnected`` and ``connected``
are persisted: credentials are written in a single update at the end of
:func:`complete_oauth_connection`, so a failure at any earlier step leaves
the store as it was.
"""

import logging
import secrets

from ..crypto import encrypt_credentials
from . import oauth
from .webhook_registration import reregister_store_webhooks, unregister_store_webhooks

logger = logging.getLogger(__name__)

WEBHOOK_SECRET_BYTES = 32


def generate_webhook_secret():
    return secrets.token_hex(WEBHOOK_SECRET_BYTES)


def complete_oauth_connection(store, client_id, client_secret, code, base_url):
    """Finish the OAuth handshake for ``store`` and persist its credentials.

    Raises:
        TokenExchangeError: if Shopify rejects the code.
        requests.RequestException: on transport failure during the exchange.

    Scope introspection and webhook registration failures do not raise.
    """
    logger.info("Exchanging OAuth code for store %s (%s)", store.pk, store.shopify_domain)
    grant = oauth.exchange_code_for_token(
        store.shopify_domain, client_id, client_secret, code
    )
    logger.info("Token exchanged for store %s", store.pk)

    granted_scopes = oauth.fetch_granted_scopes(store.shopify_domain, grant.access_token)
    if not granted_scopes:
        logger.warning(
            "Granted scopes unknown for store %s, falling back to token response",
            store.pk,
        )
    scopes = oauth.resolve_scopes(granted_scopes, grant.scope)

    if not store.webhook_secret:
        store.webhook_secret = generate_webhook_secret()

    subscriptions = reregister_store_webhooks(store, grant.access_token, base_url)
    logger.info(
        "Registered %d webhook subscriptions for store %s",
        len(subscriptions),
        store.pk,
    )

    store.shopify_client_id_encrypted = encrypt_credentials({"clientId": client_id})
    store.shopify_client_secret_encrypted = encrypt_credentials(
        {"clientSecret": client_secret}
    )
    store.shopify_access_token_encrypted = encrypt_credentials(
        {"accessToken": grant.access_token}
    )
    store.shopify_scopes = scopes
    store.save(
        update_fields=[
            "shopify_client_id_encrypted",
            "shopify_client_secret_encrypted",
            "shopify_access_token_encrypted",
            "shopify_scopes",
            "webhook_secret",
            "updated_at",
        ]
    )
    logger.info("Store %s (%s) connected", store.pk, store.shopify_domain)
    return store


def disconnect_store(store):
    """Unregister webhooks and clear the store's access token and scopes."""
    unregister_store_webhooks(store)
    store.clear_connection()
    logger.info("Store %s (%s) disconnected", store.pk, store.shopify_domain)
    return store
