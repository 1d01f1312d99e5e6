"""Tests for the management commands."""

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from shopify_connect.models import WebhookSubscription
from shopify_connect.tests.factories import ACCESS_TOKEN, SHOP_DOMAIN, hmac_header

COMMAND_MODULE = "shopify_connect.management.commands.register_shopify_webhooks"


@pytest.mark.django_db
class TestRegisterShopifyWebhooks:
    def test_unknown_store(self, capsys):
        call_command(
            "register_shopify_webhooks", "--store-id", "00000000-0000-0000-0000-000000000000"
        )
        assert "ERROR: No store" in capsys.readouterr().out

    def test_disconnected_store(self, disconnected_store, capsys):
        call_command("register_shopify_webhooks", "--store-id", str(disconnected_store.pk))
        assert "not connected" in capsys.readouterr().out

    def test_register_uses_base_url(self, store, mocker, capsys):
        subscription = WebhookSubscription(
            store=store,
            shopify_webhook_id="77",
            topic="orders/create",
            webhook_url="https://hooks.example.com/api/webhooks/shopify",
        )
        mock_reregister = mocker.patch(
            f"{COMMAND_MODULE}.reregister_store_webhooks", return_value=[subscription]
        )

        call_command(
            "register_shopify_webhooks",
            "--store-id",
            str(store.pk),
            "--base-url",
            "https://hooks.example.com/",
        )

        mock_reregister.assert_called_once_with(store, ACCESS_TOKEN, "https://hooks.example.com")
        out = capsys.readouterr().out
        assert "SUCCESS: orders/create" in out
        assert "Done: 1 registered" in out

    def test_register_defaults_to_settings_base_url(self, store, mocker):
        mock_reregister = mocker.patch(
            f"{COMMAND_MODULE}.reregister_store_webhooks", return_value=[]
        )
        call_command("register_shopify_webhooks", "--store-id", str(store.pk))
        assert mock_reregister.call_args.args[2] == "https://dashboard.example.com"

    def test_list(self, store, mocker, capsys):
        mocker.patch(
            f"{COMMAND_MODULE}.list_webhooks",
            return_value=[{"id": 1, "topic": "orders/create", "address": "https://x"}],
        )
        call_command("register_shopify_webhooks", "--store-id", str(store.pk), "--list")
        out = capsys.readouterr().out
        assert f"Webhooks for {SHOP_DOMAIN}" in out
        assert "Total: 1" in out

    def test_delete_all(self, store, mocker, capsys):
        WebhookSubscription.objects.create(
            store=store, shopify_webhook_id="1", topic="orders/create", webhook_url="https://x"
        )
        mock_unregister = mocker.patch(
            f"{COMMAND_MODULE}.unregister_webhooks", return_value=1
        )
        call_command("register_shopify_webhooks", "--store-id", str(store.pk), "--delete-all")
        mock_unregister.assert_called_once_with(SHOP_DOMAIN, ACCESS_TOKEN)
        assert not WebhookSubscription.objects.exists()
        assert "Deleted 1 webhooks" in capsys.readouterr().out


class TestSignShopifyWebhook:
    def test_signs_literal_body(self, capsys):
        body = '{"id":123}'
        call_command("sign_shopify_webhook", "--secret", "s3cret", "--body", body)
        assert capsys.readouterr().out.strip() == hmac_header(body.encode(), "s3cret")

    def test_signs_file_bytes(self, tmp_path, capsys):
        path = tmp_path / "order.json"
        path.write_bytes(b'{"id":123}\n')
        call_command("sign_shopify_webhook", "--secret", "s3cret", "--file", str(path))
        assert capsys.readouterr().out.strip() == hmac_header(b'{"id":123}\n', "s3cret")

    def test_missing_file(self, tmp_path):
        with pytest.raises(CommandError):
            call_command(
                "sign_shopify_webhook", "--secret", "s", "--file", str(tmp_path / "nope")
            )
