import logging
import time

import dramatiq
from datadog import statsd
from django.utils import timezone

from .models import FailedJob, Store
from .services.webhook_processing import handle_webhook

logger = logging.getLogger(__name__)

SHOPIFY_WEBHOOK_QUEUE = "shopify_webhooks"
FAILED_JOB_TYPE = "shopify_webhook"


def _record_failed_job(store_id, topic, payload, webhook_id, exc):
    FailedJob.objects.create(
        type=FAILED_JOB_TYPE,
        payload={
            "store_id": str(store_id),
            "topic": topic,
            "webhook_id": webhook_id,
            "payload": payload,
        },
        error=str(exc)[:2000],
        last_attempted_at=timezone.now(),
    )


def _process_event(store_id, topic, payload, webhook_id):
    """Run the dispatcher for one delivery and emit metrics.

    Loads the Store, hands the delivery to
    :func:`~shopify_connect.services.webhook_processing.handle_webhook`,
    and records the outcome with elapsed time.
    """
    try:
        store = Store.objects.get(pk=store_id)
    except Store.DoesNotExist:
        logger.error("Store %s not found for webhook %s", store_id, topic)
        return

    tags = [f"topic:{topic}", f"shop_domain:{store.shopify_domain}"]
    statsd.increment("shopify.webhook.received", tags=tags)

    start = time.monotonic()
    status = "success"
    try:
        event = handle_webhook(store, topic, payload, webhook_id)
        if event is None:
            status = "duplicate"
    except Exception as exc:
        status = "failed"
        _record_failed_job(store_id, topic, payload, webhook_id, exc)
        raise
    finally:
        elapsed_ms = int((time.monotonic() - start) * 1000)
        result_tags = tags + [f"status:{status}"]
        if status == "success":
            statsd.increment("shopify.webhook.processed", tags=result_tags)
        elif status == "duplicate":
            statsd.increment("shopify.webhook.duplicate", tags=result_tags)
        else:
            statsd.increment("shopify.webhook.failed", tags=result_tags)
        statsd.histogram(
            "shopify.webhook.processing_time_ms", elapsed_ms, tags=result_tags
        )


# Shopify redelivers on its own schedule; the app never retries a delivery.
@dramatiq.actor(queue_name=SHOPIFY_WEBHOOK_QUEUE, max_retries=0)
def process_shopify_webhook_event(store_id, topic, payload, webhook_id=None):
    """Process a Shopify webhook delivery asynchronously."""
    _process_event(store_id, topic, payload, webhook_id)
