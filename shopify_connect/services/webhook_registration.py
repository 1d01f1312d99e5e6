"""Webhook subscription management against the Shopify Admin REST API.

Registration is deliberately lenient: each topic is attempted on its own,
Shopify's "address has already been taken" 422 counts as success, and any
other per-topic failure is logged and skipped. A store that ends up with a
subset of its subscriptions is still usable.
"""

import logging
from dataclasses import dataclass

import requests
from django.db import transaction
from django.urls import reverse

from ..crypto import decrypt_field
from ..exceptions import DecryptionError, RemoteApiError
from ..models import WebhookSubscription
from ..router import WebhookTopic
from ..utils import admin_api_url, get_http_timeout

logger = logging.getLogger(__name__)

# Ordered list of all topics to register.
WEBHOOK_TOPICS = [topic.value for topic in WebhookTopic]


@dataclass(frozen=True)
class RegisteredWebhook:
    remote_id: str
    topic: str
    address: str


def _api_headers(access_token):
    """Return headers for authenticated Shopify Admin API requests."""
    return {
        "X-Shopify-Access-Token": access_token,
        "Content-Type": "application/json",
    }


def _is_already_taken(response):
    """Return True for Shopify's duplicate-subscription 422 answer."""
    if response.status_code != 422:
        return False
    try:
        data = response.json()
    except ValueError:
        return False
    errors = data.get("errors") if isinstance(data, dict) else None
    if not isinstance(errors, dict):
        return False
    address_errors = errors.get("address")
    if not isinstance(address_errors, list):
        return False
    return any("has already been taken" in str(err) for err in address_errors)


def webhook_callback_url(base_url):
    """Return the public URL Shopify posts webhooks to."""
    return f"{base_url.rstrip('/')}{reverse('shopify_webhook')}"


def create_webhook(shop_domain, access_token, topic, callback_url):
    """Create one webhook subscription.

    Returns:
        The created webhook dict, or None when Shopify reports that the
        subscription already exists.

    Raises:
        RemoteApiError: for any other non-2xx answer or a body without a
            ``webhook`` object.
    """
    payload = {
        "webhook": {
            "topic": topic,
            "address": callback_url,
            "format": "json",
        }
    }
    response = requests.post(
        admin_api_url(shop_domain, "webhooks.json"),
        json=payload,
        headers=_api_headers(access_token),
        timeout=get_http_timeout(),
    )

    if response.ok:
        data = response.json()
        webhook = data.get("webhook") if isinstance(data, dict) else None
        if not isinstance(webhook, dict):
            raise RemoteApiError(
                f"Unexpected webhook create response for {topic}",
                status_code=response.status_code,
                body=response.text[:2000],
            )
        return webhook

    if _is_already_taken(response):
        logger.info("Webhook for %s already exists on %s", topic, shop_domain)
        return None

    raise RemoteApiError(
        f"Failed to create webhook {topic}: HTTP {response.status_code}",
        status_code=response.status_code,
        body=response.text[:2000],
    )


def register_webhooks(shop_domain, access_token, callback_url, signing_secret=None):
    """Register every topic in :data:`WEBHOOK_TOPICS` for a shop.

    ``signing_secret`` is accepted for symmetry with the stored webhook
    secret; Shopify itself signs deliveries with the app's client secret.

    Returns:
        list[RegisteredWebhook]: one entry per newly created subscription.
    """
    results = []
    for topic in WEBHOOK_TOPICS:
        try:
            webhook = create_webhook(shop_domain, access_token, topic, callback_url)
        except (RemoteApiError, requests.RequestException, ValueError):
            logger.exception(
                "Failed to register webhook for topic %s on %s", topic, shop_domain
            )
            continue

        if webhook and webhook.get("id") is not None:
            results.append(
                RegisteredWebhook(
                    remote_id=str(webhook["id"]),
                    topic=topic,
                    address=webhook.get("address", callback_url),
                )
            )

    logger.info(
        "Registered %d/%d webhooks for %s",
        len(results),
        len(WEBHOOK_TOPICS),
        shop_domain,
    )
    return results


def list_webhooks(shop_domain, access_token):
    """Return all webhook subscriptions registered for a shop.

    Raises:
        RemoteApiError: if Shopify does not answer 200 with a ``webhooks``
            list.
    """
    response = requests.get(
        admin_api_url(shop_domain, "webhooks.json"),
        headers=_api_headers(access_token),
        timeout=get_http_timeout(),
    )
    if response.status_code != 200:
        raise RemoteApiError(
            f"Failed to list webhooks: HTTP {response.status_code}",
            status_code=response.status_code,
            body=response.text[:2000],
        )
    data = response.json()
    webhooks = data.get("webhooks") if isinstance(data, dict) else None
    if not isinstance(webhooks, list):
        raise RemoteApiError(
            "Unexpected webhook list response",
            status_code=response.status_code,
            body=response.text[:2000],
        )
    return webhooks


def delete_webhook(shop_domain, access_token, webhook_id):
    response = requests.delete(
        admin_api_url(shop_domain, f"webhooks/{webhook_id}.json"),
        headers=_api_headers(access_token),
        timeout=get_http_timeout(),
    )
    if not response.ok:
        raise RemoteApiError(
            f"Failed to delete webhook {webhook_id}: HTTP {response.status_code}",
            status_code=response.status_code,
            body=response.text[:2000],
        )


def unregister_webhooks(shop_domain, access_token):
    """Delete every webhook subscription for a shop.

    Never raises for remote failures: a failed listing deletes nothing,
    and a failed deletion is logged and skipped.

    Returns:
        int: number of subscriptions deleted.
    """
    try:
        webhooks = list_webhooks(shop_domain, access_token)
    except (RemoteApiError, requests.RequestException, ValueError):
        logger.exception("Failed to list webhooks for deletion on %s", shop_domain)
        return 0

    deleted = 0
    for webhook in webhooks:
        webhook_id = webhook.get("id") if isinstance(webhook, dict) else None
        if webhook_id is None:
            logger.warning("Skipping webhook without id on %s: %r", shop_domain, webhook)
            continue
        try:
            delete_webhook(shop_domain, access_token, webhook_id)
        except (RemoteApiError, requests.RequestException):
            logger.exception(
                "Failed to delete webhook %s on %s", webhook_id, shop_domain
            )
            continue
        deleted += 1

    logger.info(
        "Deleted %d/%d webhooks for %s", deleted, len(webhooks), shop_domain
    )
    return deleted


def reregister_store_webhooks(store, access_token, base_url):
    """Replace a store's webhook subscriptions, remotely and locally.

    Superseded subscription rows are deleted before the new ones are
    created; they are never updated in place.

    Returns:
        list[WebhookSubscription]: the newly stored subscriptions.
    """
    callback_url = webhook_callback_url(base_url)

    unregister_webhooks(store.shopify_domain, access_token)
    WebhookSubscription.objects.filter(store=store).delete()

    registered = register_webhooks(
        store.shopify_domain, access_token, callback_url, store.webhook_secret
    )

    subscriptions = []
    with transaction.atomic():
        for webhook in registered:
            subscription, _ = WebhookSubscription.objects.get_or_create(
                store=store,
                shopify_webhook_id=webhook.remote_id,
                defaults={"topic": webhook.topic, "webhook_url": webhook.address},
            )
            subscriptions.append(subscription)

    logger.info(
        "Re-registered %d webhooks for store %s", len(subscriptions), store.pk
    )
    return subscriptions


def unregister_store_webhooks(store):
    """Remove a store's webhooks from Shopify and drop the local records.

    Remote cleanup is best-effort; local records are always deleted.
    Stores without an access token only get the local cleanup.
    """
    if store.is_connected:
        try:
            access_token = decrypt_field(
                store.shopify_access_token_encrypted, "accessToken"
            )
        except DecryptionError:
            logger.exception(
                "Cannot decrypt access token for store %s; skipping remote cleanup",
                store.pk,
            )
        else:
            unregister_webhooks(store.shopify_domain, access_token)
    else:
        logger.info(
            "Store %s has no access token, skipping remote webhook cleanup",
            store.pk,
        )

    WebhookSubscription.objects.filter(store=store).delete()
