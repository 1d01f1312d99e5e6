"""
Print the X-Shopify-Hmac-Sha256 value for a webhook body.

Usage:
    python manage.py sign_shopify_webhook --secret shpss_... \
        --body '{"id":123,"order_number":"1001"}'

    python manage.py sign_shopify_webhook --secret shpss_... --file order.json

The body is signed byte for byte; a file with a trailing newline gets a
different signature than the same JSON passed with --body.
"""

from django.core.management.base import BaseCommand, CommandError

from shopify_connect.middleware import compute_shopify_hmac


class Command(BaseCommand):
    help = "Compute the Shopify webhook HMAC header for a request body"

    def add_arguments(self, parser):
        parser.add_argument("--secret", type=str, required=True)
        source = parser.add_mutually_exclusive_group(required=True)
        source.add_argument("--body", type=str, help="Literal request body.")
        source.add_argument("--file", type=str, help="Path to a file holding the body.")

    def handle(self, *args, **options):
        if options["file"]:
            try:
                with open(options["file"], "rb") as fh:
                    body = fh.read()
            except OSError as exc:
                raise CommandError(f"Cannot read {options['file']}: {exc}")
        else:
            body = options["body"].encode("utf-8")

        print(compute_shopify_hmac(body, options["secret"]))
