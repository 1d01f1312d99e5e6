"""Order mirroring: maps Shopify order payloads onto :class:`Order` rows.

Every write goes through :func:`upsert_order_from_shopify`, which upserts on
``(store, shopify_order_id)``. Webhook deliveries, redeliveries and manual
syncs can therefore arrive in any order and any number of times.
"""

import logging
from dataclasses import dataclass

from django.conf import settings
from django.db import DatabaseError
from django.db.models import Count, Q
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from ..crypto import decrypt_field
from ..exceptions import StoreNotConnectedError
from ..models import Order
from .admin_api import ShopifyAdminClient

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "RON"
DEFAULT_SYNC_LIMIT = 50

SHIPPING_ADDRESS_FIELDS = (
    "first_name",
    "last_name",
    "address1",
    "address2",
    "city",
    "province",
    "country",
    "zip",
    "phone",
    "company",
)


@dataclass(frozen=True)
class SyncResult:
    synced: int
    errors: int


def _str_or_none(value):
    if value is None or value == "":
        return None
    return str(value)


def _parse_timestamp(value):
    """Parse a Shopify ISO-8601 timestamp; None for blanks or garbage."""
    if not value:
        return None
    parsed = parse_datetime(str(value))
    if parsed is None:
        logger.warning("Unparseable Shopify timestamp: %r", value)
    return parsed


def _price_string(value):
    """Keep Shopify's price text as-is; numbers are stringified."""
    if value is None or value == "":
        return None
    return str(value)


def _customer_name(customer):
    if not customer:
        return None
    first = customer.get("first_name") or ""
    last = customer.get("last_name") or ""
    return f"{first} {last}".strip() or None


def _map_shipping_address(address):
    if not address:
        return None
    return {
        field: str(address[field])
        for field in SHIPPING_ADDRESS_FIELDS
        if address.get(field)
    }


def _map_line_items(line_items):
    if line_items is None:
        return None
    mapped = []
    for item in line_items:
        try:
            quantity = int(item.get("quantity") or 0)
        except (TypeError, ValueError):
            quantity = 0
        entry = {"quantity": quantity}
        for field in ("id", "title", "sku", "variant_id"):
            if item.get(field):
                entry[field] = str(item[field])
        price = _price_string(item.get("price"))
        if price is not None:
            entry["price"] = price
        mapped.append(entry)
    return mapped


def map_shopify_order(payload):
    """Map a Shopify order payload to :class:`Order` field values.

    Returns:
        dict: keyword arguments for ``Order`` excluding ``store`` and
        ``shopify_order_id``.
    """
    customer = payload.get("customer") or {}
    order_number = payload.get("order_number") or payload.get("number") or ""
    return {
        "shopify_order_number": str(order_number),
        "customer_name": _customer_name(customer),
        "customer_email": _str_or_none(customer.get("email")),
        "customer_phone": _str_or_none(customer.get("phone")),
        "shipping_address": _map_shipping_address(payload.get("shipping_address")),
        "line_items": _map_line_items(payload.get("line_items")),
        "total_price": _price_string(payload.get("total_price")),
        "currency": str(
            payload.get("currency")
            or getattr(settings, "SHOPIFY_DEFAULT_CURRENCY", DEFAULT_CURRENCY)
        ),
        "financial_status": _str_or_none(payload.get("financial_status")),
        "fulfillment_status": _str_or_none(payload.get("fulfillment_status")),
        "cancelled_at": _parse_timestamp(payload.get("cancelled_at")),
        "shopify_created_at": _parse_timestamp(payload.get("created_at")),
    }


def upsert_order_from_shopify(store, payload):
    """Create or update the local mirror of a Shopify order.

    Raises:
        ValueError: if the payload has no order ``id``.
    """
    shopify_order_id = payload.get("id")
    if shopify_order_id in (None, ""):
        raise ValueError("Missing order id in Shopify order payload")

    defaults = map_shopify_order(payload)
    defaults["synced_at"] = timezone.now()

    order, created = Order.objects.update_or_create(
        store=store,
        shopify_order_id=str(shopify_order_id),
        defaults=defaults,
    )
    logger.debug(
        "%s order %s (#%s) for store %s",
        "Created" if created else "Updated",
        order.shopify_order_id,
        order.shopify_order_number,
        store.pk,
    )
    return order


def sync_orders_from_shopify(store, limit=None, client=None):
    """Pull recent orders from Shopify and upsert each one.

    Per-order failures are logged and counted; a failure to fetch the
    order list propagates.

    Raises:
        StoreNotConnectedError: if the store has no access token.
    """
    if not store.is_connected:
        raise StoreNotConnectedError("Store is not connected to Shopify")

    if client is None:
        access_token = decrypt_field(
            store.shopify_access_token_encrypted, "accessToken"
        )
        client = ShopifyAdminClient(store.shopify_domain, access_token)

    limit = limit or getattr(settings, "SHOPIFY_ORDER_SYNC_LIMIT", DEFAULT_SYNC_LIMIT)
    shopify_orders = client.fetch_orders(limit=limit)

    synced = 0
    errors = 0
    for shopify_order in shopify_orders:
        try:
            upsert_order_from_shopify(store, shopify_order)
        except (ValueError, DatabaseError):
            logger.exception(
                "Failed to sync order %s for store %s",
                shopify_order.get("id"),
                store.pk,
            )
            errors += 1
        else:
            synced += 1

    logger.info(
        "Synced %d orders (%d errors) for store %s", synced, errors, store.pk
    )
    return SyncResult(synced=synced, errors=errors)


def get_order_stats(user):
    """Return dashboard counters across all of ``user``'s stores."""
    return Order.objects.filter(store__user=user).aggregate(
        total_orders=Count("id"),
        pending_awbs=Count("id", filter=Q(awb_number__isnull=True) | Q(awb_number="")),
        pending_invoices=Count(
            "id", filter=Q(invoice_number__isnull=True) | Q(invoice_number="")
        ),
    )
