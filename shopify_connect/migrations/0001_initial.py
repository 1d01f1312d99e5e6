# Generated manually for shopify_connect app

import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Store",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("name", models.CharField(max_length=100)),
                ("shopify_domain", models.CharField(max_length=255, unique=True)),
                (
                    "shopify_client_id_encrypted",
                    models.TextField(blank=True, null=True),
                ),
                (
                    "shopify_client_secret_encrypted",
                    models.TextField(blank=True, null=True),
                ),
                (
                    "shopify_access_token_encrypted",
                    models.TextField(blank=True, null=True),
                ),
                ("shopify_scopes", models.JSONField(blank=True, default=list)),
                (
                    "webhook_secret",
                    models.CharField(blank=True, max_length=255, null=True),
                ),
                (
                    "courier_provider",
                    models.CharField(blank=True, max_length=50, null=True),
                ),
                (
                    "courier_credentials_encrypted",
                    models.TextField(blank=True, null=True),
                ),
                (
                    "invoice_provider",
                    models.CharField(blank=True, max_length=50, null=True),
                ),
                (
                    "invoice_credentials_encrypted",
                    models.TextField(blank=True, null=True),
                ),
                ("auto_fulfill", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="shopify_stores",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "shopify_store",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="FailedJob",
            fields=[
                (
                    "id",
                    models.AutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("type", models.CharField(max_length=100)),
                ("payload", models.JSONField(default=dict)),
                ("error", models.TextField()),
                ("retry_count", models.IntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("last_attempted_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "db_table": "shopify_failed_job",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="WebhookSubscription",
            fields=[
                (
                    "id",
                    models.AutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("shopify_webhook_id", models.CharField(max_length=64)),
                ("topic", models.CharField(max_length=100)),
                ("webhook_url", models.URLField(max_length=500)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "store",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="webhook_subscriptions",
                        to="shopify_connect.store",
                    ),
                ),
            ],
            options={
                "db_table": "shopify_webhook_subscription",
                "constraints": [
                    models.UniqueConstraint(
                        fields=("store", "shopify_webhook_id"),
                        name="unique_store_webhook_subscription",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="WebhookEvent",
            fields=[
                (
                    "id",
                    models.AutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("topic", models.CharField(max_length=100)),
                ("payload", models.JSONField(default=dict)),
                (
                    "shopify_webhook_id",
                    models.CharField(blank=True, max_length=255, null=True),
                ),
                ("processed", models.BooleanField(default=False)),
                ("error", models.TextField(blank=True, null=True)),
                ("retry_count", models.IntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "store",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="webhook_events",
                        to="shopify_connect.store",
                    ),
                ),
            ],
            options={
                "db_table": "shopify_webhook_event",
                "indexes": [
                    models.Index(
                        fields=["store", "topic", "created_at"],
                        name="shopify_evt_store_topic_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(shopify_webhook_id__isnull=False),
                        fields=("store", "shopify_webhook_id"),
                        name="unique_store_webhook_id",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Order",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("shopify_order_id", models.CharField(max_length=64)),
                (
                    "shopify_order_number",
                    models.CharField(blank=True, default="", max_length=64),
                ),
                (
                    "customer_name",
                    models.CharField(blank=True, max_length=255, null=True),
                ),
                (
                    "customer_email",
                    models.CharField(blank=True, max_length=255, null=True),
                ),
                (
                    "customer_phone",
                    models.CharField(blank=True, max_length=64, null=True),
                ),
                ("shipping_address", models.JSONField(blank=True, null=True)),
                ("line_items", models.JSONField(blank=True, null=True)),
                (
                    "total_price",
                    models.CharField(blank=True, max_length=32, null=True),
                ),
                ("currency", models.CharField(default="RON", max_length=8)),
                (
                    "financial_status",
                    models.CharField(blank=True, max_length=50, null=True),
                ),
                (
                    "fulfillment_status",
                    models.CharField(blank=True, max_length=50, null=True),
                ),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                (
                    "awb_number",
                    models.CharField(blank=True, max_length=100, null=True),
                ),
                ("awb_created_at", models.DateTimeField(blank=True, null=True)),
                (
                    "awb_pdf_url",
                    models.URLField(blank=True, max_length=500, null=True),
                ),
                (
                    "invoice_number",
                    models.CharField(blank=True, max_length=100, null=True),
                ),
                ("invoice_created_at", models.DateTimeField(blank=True, null=True)),
                (
                    "invoice_pdf_url",
                    models.URLField(blank=True, max_length=500, null=True),
                ),
                ("shopify_created_at", models.DateTimeField(blank=True, null=True)),
                ("synced_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "store",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="orders",
                        to="shopify_connect.store",
                    ),
                ),
            ],
            options={
                "db_table": "shopify_order",
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("store", "shopify_order_id"),
                        name="unique_store_shopify_order",
                    ),
                ],
            },
        ),
    ]
