"""Utility helpers for the Shopify connection app."""

import re

from django.conf import settings

from .exceptions import InvalidShopDomainError

DEFAULT_API_VERSION = "2025-10"
DEFAULT_HTTP_TIMEOUT = 30
DEFAULT_SCOPES = (
    "read_customers",
    "read_fulfillments",
    "write_fulfillments",
    "read_orders",
    "write_orders",
    "read_products",
)

SHOP_DOMAIN_RE = re.compile(r"^[a-zA-Z0-9-]+\.myshopify\.com$")


def get_api_version():
    return getattr(settings, "SHOPIFY_API_VERSION", DEFAULT_API_VERSION)


def get_http_timeout():
    return getattr(settings, "SHOPIFY_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT)


def get_requested_scopes():
    """Return the OAuth scopes requested at install time, as a list."""
    scopes = getattr(settings, "SHOPIFY_OAUTH_SCOPES", DEFAULT_SCOPES)
    if isinstance(scopes, str):
        scopes = scopes.split(",")
    return [scope.strip() for scope in scopes if scope.strip()]


def admin_api_url(shop_domain, path):
    """Build a Shopify Admin REST API URL.

    Examples::

        >>> admin_api_url("demo.myshopify.com", "webhooks.json")
        'https://demo.myshopify.com/admin/api/2025-10/webhooks.json'
    """
    return f"https://{shop_domain}/admin/api/{get_api_version()}/{path}"


def validate_shop_domain(domain):
    """Return ``domain`` lower-cased if it is a ``*.myshopify.com`` host.

    Raises:
        InvalidShopDomainError: for anything else.
    """
    domain = (domain or "").strip().lower()
    if not SHOP_DOMAIN_RE.match(domain):
        raise InvalidShopDomainError(
            "Invalid Shopify domain format (e.g., store.myshopify.com)"
        )
    return domain


def get_base_url(request=None):
    """Return the public base URL used for OAuth and webhook callbacks.

    ``SHOPIFY_APP_BASE_URL`` wins; otherwise the URL is derived from the
    incoming request's scheme and host.
    """
    configured = getattr(settings, "SHOPIFY_APP_BASE_URL", "")
    if configured:
        return configured.rstrip("/")
    if request is not None:
        return f"{request.scheme}://{request.get_host()}"
    return "http://localhost:8000"
