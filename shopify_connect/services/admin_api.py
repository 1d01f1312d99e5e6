import logging

import requests

from ..exceptions import RemoteApiError
from ..utils import admin_api_url, get_http_timeout

logger = logging.getLogger(__name__)

ORDER_FILTERS = (
    "limit",
    "status",
    "financial_status",
    "fulfillment_status",
    "created_at_min",
    "created_at_max",
)


class ShopifyAdminClient:
    """Minimal read client for the Shopify Admin REST API."""

    def __init__(self, shop_domain, access_token):
        self.shop_domain = shop_domain
        self.access_token = access_token

    def _headers(self):
        return {
            "X-Shopify-Access-Token": self.access_token,
            "Content-Type": "application/json",
        }

    def _get(self, path, params=None):
        response = requests.get(
            admin_api_url(self.shop_domain, path),
            headers=self._headers(),
            params=params,
            timeout=get_http_timeout(),
        )
        if not response.ok:
            raise RemoteApiError(
                f"Shopify API error: {response.status_code} {response.reason}",
                status_code=response.status_code,
                body=response.text[:2000],
            )
        return response.json()

    def fetch_orders(self, **filters):
        """Fetch orders; accepts the filters listed in ``ORDER_FILTERS``."""
        params = {
            key: value
            for key, value in filters.items()
            if key in ORDER_FILTERS and value not in (None, "")
        }
        data = self._get("orders.json", params=params or None)
        return data.get("orders") or []

    def fetch_order(self, order_id):
        data = self._get(f"orders/{order_id}.json")
        return data.get("order")
