import re

from rest_framework import serializers

from .exceptions import InvalidShopDomainError
from .models import Order, Store
from .utils import validate_shop_domain

CLIENT_ID_RE = re.compile(r"^[a-f0-9]{32}$", re.IGNORECASE)
CLIENT_SECRET_RE = re.compile(r"^shpss_[a-f0-9]{32}$", re.IGNORECASE)


def _validate_domain(value):
    try:
        return validate_shop_domain(value)
    except InvalidShopDomainError as exc:
        raise serializers.ValidationError(str(exc))


class StoreSerializer(serializers.ModelSerializer):
    """Dashboard view of a store. Credential ciphertext is never exposed."""

    is_connected = serializers.BooleanField(read_only=True)

    class Meta:
        model = Store
        fields = (
            "id",
            "name",
            "shopify_domain",
            "shopify_scopes",
            "is_connected",
            "courier_provider",
            "invoice_provider",
            "auto_fulfill",
            "created_at",
            "updated_at",
        )
        read_only_fields = ("id", "shopify_scopes", "created_at", "updated_at")

    def validate_name(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Store name is required")
        return value

    def validate_shopify_domain(self, value):
        domain = _validate_domain(value)
        if (
            self.instance is not None
            and self.instance.is_connected
            and domain != self.instance.shopify_domain
        ):
            raise serializers.ValidationError(
                "Disconnect the store before changing its Shopify domain"
            )
        return domain


class ConnectStoreSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100)
    shopify_domain = serializers.CharField(max_length=255)
    client_id = serializers.CharField()
    client_secret = serializers.CharField()

    def validate_shopify_domain(self, value):
        domain = _validate_domain(value)
        if Store.objects.filter(shopify_domain=domain).exists():
            raise serializers.ValidationError(
                "A store with this Shopify domain already exists"
            )
        return domain

    def validate_client_id(self, value):
        if not CLIENT_ID_RE.match(value):
            raise serializers.ValidationError(
                "Client ID must be a 32-character hexadecimal string"
            )
        return value

    def validate_client_secret(self, value):
        if not CLIENT_SECRET_RE.match(value):
            raise serializers.ValidationError(
                "Client Secret must start with shpss_ followed by a hexadecimal string"
            )
        return value


class OrderSerializer(serializers.ModelSerializer):
    store_name = serializers.CharField(source="store.name", read_only=True)

    class Meta:
        model = Order
        fields = (
            "id",
            "store",
            "store_name",
            "shopify_order_id",
            "shopify_order_number",
            "customer_name",
            "customer_email",
            "customer_phone",
            "shipping_address",
            "line_items",
            "total_price",
            "currency",
            "financial_status",
            "fulfillment_status",
            "cancelled_at",
            "awb_number",
            "awb_created_at",
            "invoice_number",
            "invoice_created_at",
            "shopify_created_at",
            "synced_at",
        )
        read_only_fields = fields
