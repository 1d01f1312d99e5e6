"""OAuth ``state`` parameter encoding.

The state is a base64url-encoded JSON object binding the store, the user
and a random nonce. It is neither signed nor encrypted: it only correlates
the Shopify redirect with the request that started it. The callback view
compensates by comparing it against the ``shopify_oauth_state`` cookie
when that cookie is present and by checking the decoded user id against
the authenticated session.
"""

import base64
import binascii
import json
import secrets
from dataclasses import dataclass

from .exceptions import InvalidStateError

NONCE_BYTES = 16


@dataclass(frozen=True)
class OAuthState:
    store_id: str
    user_id: str
    nonce: str


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + padding)


def encode_oauth_state(store_id, user_id) -> str:
    payload = {
        "storeId": str(store_id),
        "userId": str(user_id),
        "nonce": secrets.token_hex(NONCE_BYTES),
    }
    return _b64url_encode(json.dumps(payload).encode("utf-8"))


def decode_oauth_state(token: str) -> OAuthState:
    """Decode a state token produced by :func:`encode_oauth_state`.

    Raises:
        InvalidStateError: if the token is not base64url JSON or any of
            ``storeId``, ``userId`` and ``nonce`` is missing or empty.
    """
    if not token:
        raise InvalidStateError("Missing OAuth state")
    try:
        decoded = _b64url_decode(token).decode("utf-8")
        parsed = json.loads(decoded)
    except (binascii.Error, ValueError) as exc:
        raise InvalidStateError("Invalid or corrupted OAuth state") from exc

    if not isinstance(parsed, dict):
        raise InvalidStateError("Invalid state structure")

    store_id = parsed.get("storeId")
    user_id = parsed.get("userId")
    nonce = parsed.get("nonce")
    if not store_id or not user_id or not nonce:
        raise InvalidStateError("Invalid state structure")

    return OAuthState(store_id=str(store_id), user_id=str(user_id), nonce=str(nonce))
