"""Exception hierarchy for the Shopify connection app."""


class ShopifyConnectError(Exception):
    """Base class for all errors raised by shopify_connect."""


class InvalidStateError(ShopifyConnectError):
    """The OAuth ``state`` parameter could not be decoded."""


class InvalidShopDomainError(ShopifyConnectError):
    """A shop domain is not of the form ``<name>.myshopify.com``."""


class DecryptionError(ShopifyConnectError):
    """An encrypted credential blob is corrupt, tampered with, or not JSON."""


class StoreNotConnectedError(ShopifyConnectError):
    """The store has no access token."""


class RemoteApiError(ShopifyConnectError):
    """Shopify answered with a non-2xx status or an unusable body."""

    def __init__(self, message, status_code=None, body=""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class TokenExchangeError(RemoteApiError):
    """The OAuth code could not be exchanged for an access token."""
