"""
Manage Shopify webhook subscriptions for a connected store.

Usage:
    python manage.py register_shopify_webhooks \
        --store-id <uuid> --base-url https://dashboard.example.com

    # List current registrations
    python manage.py register_shopify_webhooks --store-id <uuid> --list

    # Remove all webhooks
    python manage.py register_shopify_webhooks --store-id <uuid> --delete-all
"""

import logging

import requests
from django.core.exceptions import ValidationError
from django.core.management.base import BaseCommand

from shopify_connect.crypto import decrypt_field
from shopify_connect.exceptions import DecryptionError, RemoteApiError
from shopify_connect.models import Store
from shopify_connect.services.webhook_registration import (
    list_webhooks,
    reregister_store_webhooks,
    unregister_webhooks,
)
from shopify_connect.utils import get_base_url

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Register, list or delete Shopify webhook subscriptions for a store"

    def add_arguments(self, parser):
        parser.add_argument(
            "--store-id",
            type=str,
            required=True,
            help="The store UUID (shopify_connect.Store.id).",
        )
        parser.add_argument(
            "--base-url",
            type=str,
            default="",
            help="Public base URL for webhook callbacks. Defaults to SHOPIFY_APP_BASE_URL.",
        )
        parser.add_argument(
            "--list",
            action="store_true",
            dest="list_webhooks",
            help="List currently registered webhooks for this store.",
        )
        parser.add_argument(
            "--delete-all",
            action="store_true",
            help="Delete all registered webhooks for this store.",
        )

    def handle(self, *args, **options):
        store_id = options["store_id"]

        try:
            store = Store.objects.get(pk=store_id)
        except (Store.DoesNotExist, ValidationError):
            print(f"ERROR: No store with id={store_id}")
            return

        if not store.is_connected:
            print(f"ERROR: Store {store.shopify_domain} is not connected to Shopify")
            return

        try:
            access_token = decrypt_field(
                store.shopify_access_token_encrypted, "accessToken"
            )
        except DecryptionError as exc:
            print(f"ERROR: Cannot decrypt access token for {store.shopify_domain}: {exc}")
            return

        if options["list_webhooks"]:
            self._list_webhooks(store, access_token)
            return

        if options["delete_all"]:
            deleted = unregister_webhooks(store.shopify_domain, access_token)
            store.webhook_subscriptions.all().delete()
            print(f"Deleted {deleted} webhooks for {store.shopify_domain}")
            return

        base_url = (options["base_url"] or get_base_url()).rstrip("/")
        subscriptions = reregister_store_webhooks(store, access_token, base_url)
        for subscription in subscriptions:
            print(
                f"  SUCCESS: {subscription.topic} -> {subscription.webhook_url} "
                f"(id={subscription.shopify_webhook_id})"
            )
        print(
            f"\nDone: {len(subscriptions)} registered "
            f"(store={store.pk}, domain={store.shopify_domain})"
        )

    def _list_webhooks(self, store, access_token):
        """List all webhook subscriptions registered for this store."""
        try:
            webhooks = list_webhooks(store.shopify_domain, access_token)
        except (RemoteApiError, requests.RequestException) as exc:
            print(f"ERROR: Failed to list webhooks: {exc}")
            return

        if not webhooks:
            print(f"No webhooks registered for {store.shopify_domain}")
            return

        print(f"Webhooks for {store.shopify_domain}:")
        print(f"{'ID':<15} {'Topic':<30} {'Address'}")
        print("-" * 80)
        for wh in webhooks:
            print(f"{wh['id']:<15} {wh['topic']:<30} {wh.get('address', '')}")
        print(f"\nTotal: {len(webhooks)}")
