"""Symmetric encryption of small JSON credential blobs at rest.

Tokens have the form ``<ivHex>:<authTagHex>:<ciphertextHex>`` and are
produced with AES-256-GCM using a fresh 16-byte IV per call.
"""

import json
import os
from functools import lru_cache

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from .exceptions import DecryptionError

KEY_LENGTH = 32
IV_LENGTH = 16
TAG_LENGTH = 16


def load_encryption_key(value):
    """Validate a hex-encoded key and return its raw bytes.

    Raises:
        ImproperlyConfigured: if the key is missing, not hex, or not
            exactly 32 bytes long.
    """
    if not value:
        raise ImproperlyConfigured(
            "SHOPIFY_CREDENTIALS_ENCRYPTION_KEY is not set"
        )
    try:
        key = bytes.fromhex(value)
    except (TypeError, ValueError):
        raise ImproperlyConfigured(
            "SHOPIFY_CREDENTIALS_ENCRYPTION_KEY must be a hex string"
        )
    if len(key) != KEY_LENGTH:
        raise ImproperlyConfigured(
            "SHOPIFY_CREDENTIALS_ENCRYPTION_KEY must be a 32-byte hex string"
        )
    return key


class CredentialCipher:
    """Encrypts JSON-serialisable values into opaque, tamper-evident tokens."""

    def __init__(self, key: bytes):
        if len(key) != KEY_LENGTH:
            raise ImproperlyConfigured("Credential key must be 32 bytes")
        self._aesgcm = AESGCM(key)

    def encrypt(self, payload) -> str:
        iv = os.urandom(IV_LENGTH)
        plaintext = json.dumps(payload).encode("utf-8")
        sealed = self._aesgcm.encrypt(iv, plaintext, None)
        # AESGCM appends the tag to the ciphertext.
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return f"{iv.hex()}:{tag.hex()}:{ciphertext.hex()}"

    def decrypt(self, token: str):
        parts = (token or "").split(":")
        if len(parts) < 3 or not all(parts[:3]):
            raise DecryptionError("Invalid encrypted credential format")
        iv_hex, tag_hex, data_hex = parts[:3]

        try:
            iv = bytes.fromhex(iv_hex)
            tag = bytes.fromhex(tag_hex)
            ciphertext = bytes.fromhex(data_hex)
        except ValueError as exc:
            raise DecryptionError("Encrypted credential is not valid hex") from exc

        try:
            plaintext = self._aesgcm.decrypt(iv, ciphertext + tag, None)
        except (InvalidTag, ValueError) as exc:
            raise DecryptionError("Credential authentication failed") from exc

        try:
            return json.loads(plaintext.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise DecryptionError("Decrypted credential is not JSON") from exc


@lru_cache(maxsize=1)
def get_credential_cipher() -> CredentialCipher:
    """Return the process-wide cipher built from Django settings."""
    key = load_encryption_key(
        getattr(settings, "SHOPIFY_CREDENTIALS_ENCRYPTION_KEY", "")
    )
    return CredentialCipher(key)


def encrypt_credentials(payload) -> str:
    return get_credential_cipher().encrypt(payload)


def decrypt_credentials(token: str):
    return get_credential_cipher().decrypt(token)


def decrypt_field(token, field, cipher=None):
    """Decrypt ``token`` and return ``field`` from the resulting object.

    Stored credentials are wrapped in single-key objects such as
    ``{"accessToken": "..."}``.
    """
    cipher = cipher or get_credential_cipher()
    data = cipher.decrypt(token)
    if not isinstance(data, dict) or field not in data:
        raise DecryptionError(f"Decrypted credential has no '{field}' field")
    return data[field]
