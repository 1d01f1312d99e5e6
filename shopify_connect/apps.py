from django.apps import AppConfig


class ShopifyConnectConfig(AppConfig):
    name = "shopify_connect"
    verbose_name = "Shopify Connect"
    default_auto_field = "django.db.models.AutoField"

    def ready(self):
        # Import handler modules to trigger topic registration in router.
        import shopify_connect.handlers.app  # noqa: F401
        import shopify_connect.handlers.fulfillments  # noqa: F401
        import shopify_connect.handlers.orders  # noqa: F401

        from .crypto import get_credential_cipher
        from .router import check_handlers_complete

        check_handlers_complete()
        # Fail at startup, not on the first webhook, if the key is unusable.
        get_credential_cipher()
