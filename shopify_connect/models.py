import uuid

from django.conf import settings
from django.db import models
from django.utils import timezone


class Store(models.Model):
    """A merchant's Shopify store. One record per shop domain.

    Credential fields hold ciphertext produced by
    :mod:`shopify_connect.crypto`, never plaintext. A store is connected
    when it has an access token; disconnecting clears the token and scopes
    but keeps the client id/secret for reconnection.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="shopify_stores",
    )
    name = models.CharField(max_length=100)
    shopify_domain = models.CharField(max_length=255, unique=True)
    shopify_client_id_encrypted = models.TextField(null=True, blank=True)
    shopify_client_secret_encrypted = models.TextField(null=True, blank=True)
    shopify_access_token_encrypted = models.TextField(null=True, blank=True)
    shopify_scopes = models.JSONField(default=list, blank=True)
    webhook_secret = models.CharField(max_length=255, null=True, blank=True)
    courier_provider = models.CharField(max_length=50, null=True, blank=True)
    courier_credentials_encrypted = models.TextField(null=True, blank=True)
    invoice_provider = models.CharField(max_length=50, null=True, blank=True)
    invoice_credentials_encrypted = models.TextField(null=True, blank=True)
    auto_fulfill = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "shopify_store"
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.name} ({self.shopify_domain})"

    @property
    def is_connected(self):
        return bool(self.shopify_access_token_encrypted)

    def clear_connection(self):
        """Drop the access token and scopes, keeping client credentials."""
        self.shopify_access_token_encrypted = None
        self.shopify_scopes = []
        self.save(
            update_fields=[
                "shopify_access_token_encrypted",
                "shopify_scopes",
                "updated_at",
            ]
        )


class WebhookSubscription(models.Model):
    """A webhook registered on Shopify for a store."""

    store = models.ForeignKey(
        Store, on_delete=models.CASCADE, related_name="webhook_subscriptions"
    )
    shopify_webhook_id = models.CharField(max_length=64)
    topic = models.CharField(max_length=100)
    webhook_url = models.URLField(max_length=500)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "shopify_webhook_subscription"
        constraints = [
            models.UniqueConstraint(
                fields=["store", "shopify_webhook_id"],
                name="unique_store_webhook_subscription",
            ),
        ]

    def __str__(self):
        return f"{self.topic} ({self.shopify_webhook_id})"


class WebhookEvent(models.Model):
    """Durable log of every accepted webhook delivery.

    ``(store, shopify_webhook_id)`` is unique when the id is present so
    that concurrent redeliveries cannot both be inserted.
    """

    store = models.ForeignKey(
        Store, on_delete=models.CASCADE, related_name="webhook_events"
    )
    topic = models.CharField(max_length=100)
    payload = models.JSONField(default=dict)
    shopify_webhook_id = models.CharField(max_length=255, null=True, blank=True)
    processed = models.BooleanField(default=False)
    error = models.TextField(null=True, blank=True)
    retry_count = models.IntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "shopify_webhook_event"
        indexes = [
            models.Index(
                fields=["store", "topic", "created_at"],
                name="shopify_evt_store_topic_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["store", "shopify_webhook_id"],
                condition=models.Q(shopify_webhook_id__isnull=False),
                name="unique_store_webhook_id",
            ),
        ]

    def __str__(self):
        state = "processed" if self.processed else "pending"
        return f"{self.topic} [{state}] ({self.shopify_webhook_id or 'no id'})"

    def mark_processed(self):
        self.processed = True
        self.error = None
        self.processed_at = timezone.now()
        self.save(update_fields=["processed", "error", "processed_at"])

    def mark_failed(self, error):
        self.processed = False
        self.error = str(error)[:2000]
        self.retry_count = models.F("retry_count") + 1
        self.save(update_fields=["processed", "error", "retry_count"])
        self.refresh_from_db(fields=["retry_count"])


class Order(models.Model):
    """Local mirror of a Shopify order, keyed by (store, shopify_order_id)."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    store = models.ForeignKey(Store, on_delete=models.CASCADE, related_name="orders")
    shopify_order_id = models.CharField(max_length=64)
    shopify_order_number = models.CharField(max_length=64, blank=True, default="")
    customer_name = models.CharField(max_length=255, null=True, blank=True)
    customer_email = models.CharField(max_length=255, null=True, blank=True)
    customer_phone = models.CharField(max_length=64, null=True, blank=True)
    shipping_address = models.JSONField(null=True, blank=True)
    line_items = models.JSONField(null=True, blank=True)
    # Kept as a string so amounts round-trip exactly.
    total_price = models.CharField(max_length=32, null=True, blank=True)
    currency = models.CharField(max_length=8, default="RON")
    financial_status = models.CharField(max_length=50, null=True, blank=True)
    fulfillment_status = models.CharField(max_length=50, null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    awb_number = models.CharField(max_length=100, null=True, blank=True)
    awb_created_at = models.DateTimeField(null=True, blank=True)
    awb_pdf_url = models.URLField(max_length=500, null=True, blank=True)
    invoice_number = models.CharField(max_length=100, null=True, blank=True)
    invoice_created_at = models.DateTimeField(null=True, blank=True)
    invoice_pdf_url = models.URLField(max_length=500, null=True, blank=True)
    shopify_created_at = models.DateTimeField(null=True, blank=True)
    synced_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "shopify_order"
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["store", "shopify_order_id"],
                name="unique_store_shopify_order",
            ),
        ]

    def __str__(self):
        return f"#{self.shopify_order_number or self.shopify_order_id} ({self.store_id})"


class FailedJob(models.Model):
    """Bookkeeping for background jobs that raised. Nothing drains this table."""

    type = models.CharField(max_length=100)
    payload = models.JSONField(default=dict)
    error = models.TextField()
    retry_count = models.IntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    last_attempted_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "shopify_failed_job"
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.type}: {self.error[:80]}"
