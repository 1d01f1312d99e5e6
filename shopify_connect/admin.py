from django.contrib import admin

from .models import FailedJob, Order, Store, WebhookEvent, WebhookSubscription


@admin.register(Store)
class StoreAdmin(admin.ModelAdmin):
    list_display = (
        "name",
        "shopify_domain",
        "user",
        "is_connected",
        "auto_fulfill",
        "updated_at",
    )
    list_filter = ("auto_fulfill",)
    search_fields = (
        "name",
        "shopify_domain",
    )
    raw_id_fields = ("user",)
    # Ciphertext is never editable by hand.
    readonly_fields = (
        "shopify_client_id_encrypted",
        "shopify_client_secret_encrypted",
        "shopify_access_token_encrypted",
        "courier_credentials_encrypted",
        "invoice_credentials_encrypted",
        "shopify_scopes",
        "webhook_secret",
        "created_at",
        "updated_at",
    )

    @admin.display(boolean=True)
    def is_connected(self, obj):
        return obj.is_connected


@admin.register(WebhookSubscription)
class WebhookSubscriptionAdmin(admin.ModelAdmin):
    list_display = ("store", "topic", "shopify_webhook_id", "created_at")
    list_filter = ("topic",)
    search_fields = ("shopify_webhook_id", "store__shopify_domain")
    raw_id_fields = ("store",)


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    list_display = (
        "shopify_webhook_id",
        "topic",
        "store",
        "processed",
        "retry_count",
        "created_at",
    )
    list_filter = (
        "processed",
        "topic",
    )
    search_fields = (
        "shopify_webhook_id",
        "store__shopify_domain",
    )
    raw_id_fields = ("store",)
    readonly_fields = ("payload", "error", "retry_count", "processed_at")
    date_hierarchy = "created_at"
    ordering = ("-created_at",)


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = (
        "shopify_order_number",
        "store",
        "customer_name",
        "total_price",
        "currency",
        "financial_status",
        "fulfillment_status",
        "shopify_created_at",
    )
    list_filter = ("financial_status", "fulfillment_status")
    search_fields = (
        "shopify_order_id",
        "shopify_order_number",
        "customer_email",
    )
    raw_id_fields = ("store",)
    readonly_fields = ("synced_at", "created_at", "updated_at")


@admin.register(FailedJob)
class FailedJobAdmin(admin.ModelAdmin):
    list_display = ("type", "retry_count", "created_at", "last_attempted_at")
    list_filter = ("type",)
    readonly_fields = ("payload", "error", "created_at")
    ordering = ("-created_at",)
