import base64
import hashlib
import hmac
import logging

from .crypto import decrypt_field
from .exceptions import DecryptionError

logger = logging.getLogger(__name__)


def compute_shopify_hmac(request_body: bytes, secret: str) -> str:
    """Return the Base64 HMAC-SHA256 digest Shopify sends for ``request_body``."""
    return base64.b64encode(
        hmac.new(secret.encode("utf-8"), request_body, hashlib.sha256).digest()
    ).decode("utf-8")


def verify_shopify_hmac(request_body: bytes, hmac_header: str, secret: str) -> bool:
    """Verify the HMAC-SHA256 signature from a Shopify webhook request.

    Shopify sends an X-Shopify-Hmac-Sha256 header containing a Base64-encoded
    HMAC-SHA256 digest of the raw request body, computed using the app's
    client secret. The body must be the exact bytes received: parsing and
    re-serialising the JSON changes the digest.

    Args:
        request_body: The raw HTTP request body bytes.
        hmac_header: The value of X-Shopify-Hmac-Sha256 header.
        secret: The signing secret resolved by :func:`resolve_webhook_secret`.

    Returns:
        True if the signature is valid, False otherwise.
    """
    if not hmac_header or not secret:
        return False
    computed = compute_shopify_hmac(request_body, secret)
    return hmac.compare_digest(
        computed.encode("utf-8"), hmac_header.encode("utf-8", "replace")
    )


def resolve_webhook_secret(store):
    """Return the secret used to verify webhooks for ``store``.

    Shopify signs webhooks with the app's client secret, so the decrypted
    client secret wins. The generated ``webhook_secret`` is the fallback
    for stores whose client secret is missing or unreadable. Returns None
    when neither is available.
    """
    if store.shopify_client_secret_encrypted:
        try:
            return decrypt_field(store.shopify_client_secret_encrypted, "clientSecret")
        except DecryptionError:
            logger.exception(
                "Failed to decrypt client secret for store %s", store.pk
            )

    if store.webhook_secret:
        return store.webhook_secret

    return None
