"""Tests for the Shopify webhook endpoint and the OAuth views."""

import json
from urllib.parse import parse_qs, urlparse

import pytest

from shopify_connect.crypto import decrypt_credentials, decrypt_field, encrypt_credentials
from shopify_connect.exceptions import TokenExchangeError
from shopify_connect.models import Order, WebhookEvent
from shopify_connect.oauth_state import encode_oauth_state
from shopify_connect.services.oauth import TokenGrant
from shopify_connect.services.webhook_registration import reregister_store_webhooks
from shopify_connect.tasks import process_shopify_webhook_event
from shopify_connect.tests.factories import (
    CLIENT_ID,
    CLIENT_SECRET,
    SHOP_DOMAIN,
    WEBHOOK_SECRET,
    hmac_header,
    make_store,
)

pytestmark = pytest.mark.django_db

WEBHOOK_URL = "/api/webhooks/shopify"
AUTH_URL = "/api/shopify/auth"
CONNECT_URL = "/api/shopify/connect"
CALLBACK_URL = "/api/shopify/callback"
BASE_URL = "https://dashboard.example.com"

LITERAL_BODY = b'{"id":123,"order_number":"1001","total_price":"42.50","currency":"RON"}'


def _post_webhook(client, body, topic="orders/create", shop_domain=SHOP_DOMAIN,
                  webhook_id="wh_test", secret=CLIENT_SECRET, signature=None):
    """POST raw bytes with Shopify headers; falsy header values are omitted."""
    headers = {
        "HTTP_X_SHOPIFY_SHOP_DOMAIN": shop_domain,
        "HTTP_X_SHOPIFY_TOPIC": topic,
        "HTTP_X_SHOPIFY_HMAC_SHA256": signature if signature is not None else hmac_header(body, secret),
        "HTTP_X_SHOPIFY_WEBHOOK_ID": webhook_id,
    }
    return client.post(
        WEBHOOK_URL,
        data=body,
        content_type="application/json",
        **{key: value for key, value in headers.items() if value},
    )


@pytest.fixture
def mock_task(mocker):
    return mocker.patch("shopify_connect.views.process_shopify_webhook_event")


class TestShopifyWebhookView:
    def test_missing_shop_domain_returns_400(self, api_client, store, mock_task):
        response = _post_webhook(api_client, LITERAL_BODY, shop_domain="")
        assert response.status_code == 400
        assert "Missing" in response.json()["error"]
        mock_task.send.assert_not_called()

    def test_missing_topic_returns_400(self, api_client, store, mock_task):
        response = _post_webhook(api_client, LITERAL_BODY, topic="")
        assert response.status_code == 400

    def test_missing_hmac_returns_401(self, api_client, store, mock_task):
        response = _post_webhook(api_client, LITERAL_BODY, signature="")
        assert response.status_code == 401

    def test_unknown_shop_domain_returns_404(self, api_client, store, mock_task):
        response = _post_webhook(
            api_client, LITERAL_BODY, shop_domain="unknown-shop.myshopify.com"
        )
        assert response.status_code == 404

    def test_missing_secret_returns_500(self, api_client, user, mock_task):
        make_store(user, shopify_client_secret_encrypted=None, webhook_secret=None)
        response = _post_webhook(api_client, LITERAL_BODY)
        assert response.status_code == 500
        mock_task.send.assert_not_called()

    def test_wrong_secret_returns_401(self, api_client, store, mock_task):
        response = _post_webhook(api_client, LITERAL_BODY, secret="wrong-secret")
        assert response.status_code == 401
        mock_task.send.assert_not_called()

    def test_reserialized_body_returns_401(self, api_client, store, mock_task):
        reserialized = json.dumps(json.loads(LITERAL_BODY)).encode("utf-8")
        assert reserialized != LITERAL_BODY
        response = _post_webhook(
            api_client, LITERAL_BODY, signature=hmac_header(reserialized)
        )
        assert response.status_code == 401

    def test_webhook_secret_fallback(self, api_client, user, mock_task):
        make_store(user, shopify_client_secret_encrypted=None)
        response = _post_webhook(api_client, LITERAL_BODY, secret=WEBHOOK_SECRET)
        assert response.status_code == 200

    def test_invalid_json_returns_400(self, api_client, store, mock_task):
        response = _post_webhook(api_client, b"{not json")
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid JSON payload"

    def test_shop_domain_header_is_case_insensitive(self, api_client, store, mock_task):
        response = _post_webhook(api_client, LITERAL_BODY, shop_domain=SHOP_DOMAIN.upper())
        assert response.status_code == 200

    def test_valid_webhook_enqueues_and_acknowledges(self, api_client, store, mock_task):
        response = _post_webhook(api_client, LITERAL_BODY, webhook_id="wh_ok")

        assert response.status_code == 200
        assert response.json() == {"received": True}
        mock_task.send.assert_called_once_with(
            str(store.pk), "orders/create", json.loads(LITERAL_BODY), "wh_ok"
        )
        # Nothing is written before the worker runs.
        assert not WebhookEvent.objects.exists()

    def test_missing_webhook_id_is_accepted(self, api_client, store, mock_task):
        response = _post_webhook(api_client, LITERAL_BODY, webhook_id="")
        assert response.status_code == 200
        assert mock_task.send.call_args.args[3] is None

    def test_end_to_end_order_create(self, api_client, store, mock_task, mock_statsd):
        response = _post_webhook(api_client, LITERAL_BODY, webhook_id="wh_e2e")
        assert response.status_code == 200
        assert response.json() == {"received": True}

        # Run the enqueued message the way a worker would.
        process_shopify_webhook_event(*mock_task.send.call_args.args)

        orders = Order.objects.filter(store=store)
        assert orders.count() == 1
        order = orders.get()
        assert order.shopify_order_id == "123"
        assert order.total_price == "42.50"
        assert order.shopify_order_number == "1001"
        assert WebhookEvent.objects.get(shopify_webhook_id="wh_e2e").processed is True

    def test_redelivery_end_to_end_is_processed_once(self, api_client, store, mock_task, mock_statsd):
        for _ in range(2):
            _post_webhook(api_client, LITERAL_BODY, webhook_id="wh_twice")
        for call in mock_task.send.call_args_list:
            process_shopify_webhook_event(*call.args)

        assert Order.objects.filter(store=store).count() == 1
        assert WebhookEvent.objects.filter(shopify_webhook_id="wh_twice").count() == 1


class TestShopifyAuthView:
    def test_requires_authentication(self, api_client, store):
        response = api_client.get(AUTH_URL, {"storeId": str(store.pk)})
        assert response.status_code == 403

    def test_missing_store_id(self, auth_client):
        assert auth_client.get(AUTH_URL).status_code == 400

    def test_other_users_store_is_404(self, api_client, store, other_user):
        api_client.force_authenticate(user=other_user)
        response = api_client.get(
            AUTH_URL,
            {"storeId": str(store.pk), "clientId": CLIENT_ID, "clientSecret": CLIENT_SECRET},
        )
        assert response.status_code == 404

    def test_malformed_store_id_is_404(self, auth_client):
        response = auth_client.get(
            AUTH_URL, {"storeId": "nope", "clientId": CLIENT_ID, "clientSecret": CLIENT_SECRET}
        )
        assert response.status_code == 404

    def test_missing_credentials(self, auth_client, store):
        response = auth_client.get(AUTH_URL, {"storeId": str(store.pk)})
        assert response.status_code == 400

    def test_redirects_to_shopify_with_cookies(self, auth_client, store):
        response = auth_client.get(
            AUTH_URL,
            {"storeId": str(store.pk), "clientId": CLIENT_ID, "clientSecret": CLIENT_SECRET},
        )

        assert response.status_code == 302
        location = urlparse(response["Location"])
        assert location.netloc == SHOP_DOMAIN
        assert location.path == "/admin/oauth/authorize"
        params = parse_qs(location.query)
        assert params["redirect_uri"] == [f"{BASE_URL}/api/shopify/callback"]

        state_cookie = response.cookies["shopify_oauth_state"]
        assert state_cookie.value == params["state"][0]
        assert state_cookie["httponly"]
        assert state_cookie["max-age"] == 600
        assert state_cookie["samesite"] == "Lax"

        creds = decrypt_credentials(response.cookies["shopify_oauth_creds"].value)
        assert creds == {"clientId": CLIENT_ID, "clientSecret": CLIENT_SECRET}


class TestShopifyConnectView:
    def _oauth_url(self, host=SHOP_DOMAIN):
        return f"https://{host}/admin/oauth/authorize?client_id={CLIENT_ID}&state=abc"

    def test_requires_all_params(self, auth_client, store):
        response = auth_client.get(CONNECT_URL, {"storeId": str(store.pk)})
        assert response.status_code == 400

    def test_sets_state_cookie_and_redirects(self, auth_client, store):
        response = auth_client.get(
            CONNECT_URL,
            {"storeId": str(store.pk), "state": "abc", "oauthUrl": self._oauth_url()},
        )
        assert response.status_code == 302
        assert response["Location"] == self._oauth_url()
        assert response.cookies["shopify_oauth_state"].value == "abc"

    @pytest.mark.parametrize(
        "oauth_url",
        [
            "https://evil.example.com/admin/oauth/authorize",
            "https://other-shop.myshopify.com/admin/oauth/authorize",
            f"http://{SHOP_DOMAIN}/admin/oauth/authorize",
            f"https://{SHOP_DOMAIN}/somewhere-else",
        ],
    )
    def test_rejects_foreign_oauth_url(self, auth_client, store, oauth_url):
        response = auth_client.get(
            CONNECT_URL, {"storeId": str(store.pk), "state": "abc", "oauthUrl": oauth_url}
        )
        assert response.status_code == 400


class TestShopifyCallbackView:
    @pytest.fixture
    def exchange(self, mocker):
        mocker.patch(
            "shopify_connect.services.oauth.fetch_granted_scopes",
            return_value=["read_orders", "write_orders", "read_fulfillments"],
        )
        mocker.patch(
            "shopify_connect.services.connection.reregister_store_webhooks",
            return_value=[],
        )
        return mocker.patch(
            "shopify_connect.services.oauth.exchange_code_for_token",
            return_value=TokenGrant(access_token="shpat_fresh", scope="read_orders"),
        )

    def _redirect_params(self, response):
        assert response.status_code == 302
        location = urlparse(response["Location"])
        assert f"{location.scheme}://{location.netloc}" == BASE_URL
        assert location.path == "/stores"
        return {key: values[0] for key, values in parse_qs(location.query).items()}

    def test_unauthenticated_goes_to_signin(self, api_client, store):
        response = api_client.get(CALLBACK_URL, {"code": "c", "state": "s"})
        assert response.status_code == 302
        assert response["Location"] == f"{BASE_URL}/signin?error=unauthorized"

    def test_missing_state(self, auth_client, store):
        response = auth_client.get(CALLBACK_URL, {"code": "c"})
        assert self._redirect_params(response) == {"error": "invalid_state"}

    def test_state_cookie_mismatch(self, auth_client, store, user, exchange):
        auth_client.cookies["shopify_oauth_state"] = "something-else"
        state = encode_oauth_state(store.pk, user.pk)
        response = auth_client.get(CALLBACK_URL, {"code": "c", "state": state})
        assert self._redirect_params(response) == {"error": "invalid_state"}
        exchange.assert_not_called()

    def test_garbage_state(self, auth_client, store):
        response = auth_client.get(CALLBACK_URL, {"code": "c", "state": "%%%"})
        assert self._redirect_params(response) == {"error": "invalid_state"}

    def test_state_for_other_user_is_unauthorized(self, auth_client, store, other_user, exchange):
        before = (
            store.shopify_access_token_encrypted,
            store.shopify_client_id_encrypted,
            store.shopify_client_secret_encrypted,
        )
        state = encode_oauth_state(store.pk, other_user.pk)

        response = auth_client.get(CALLBACK_URL, {"code": "c", "state": state})

        assert self._redirect_params(response) == {"error": "unauthorized"}
        exchange.assert_not_called()
        store.refresh_from_db()
        assert (
            store.shopify_access_token_encrypted,
            store.shopify_client_id_encrypted,
            store.shopify_client_secret_encrypted,
        ) == before

    def test_store_of_other_user_not_found(self, auth_client, user, other_user):
        foreign = make_store(other_user, shopify_domain="foreign.myshopify.com")
        state = encode_oauth_state(foreign.pk, user.pk)
        response = auth_client.get(CALLBACK_URL, {"code": "c", "state": state})
        assert self._redirect_params(response) == {"error": "store_not_found"}

    def test_domain_mismatch(self, auth_client, store, user):
        state = encode_oauth_state(store.pk, user.pk)
        response = auth_client.get(
            CALLBACK_URL, {"code": "c", "state": state, "shop": "other.myshopify.com"}
        )
        assert self._redirect_params(response) == {"error": "domain_mismatch"}

    def test_missing_credentials(self, auth_client, user):
        bare = make_store(
            user,
            connected=False,
            shopify_client_id_encrypted=None,
            shopify_client_secret_encrypted=None,
        )
        state = encode_oauth_state(bare.pk, user.pk)
        response = auth_client.get(CALLBACK_URL, {"code": "c", "state": state})
        assert self._redirect_params(response) == {"error": "missing_credentials"}

    def test_corrupt_credentials_cookie(self, auth_client, store, user):
        auth_client.cookies["shopify_oauth_creds"] = "aa:bb:cc"
        state = encode_oauth_state(store.pk, user.pk)
        response = auth_client.get(CALLBACK_URL, {"code": "c", "state": state})
        assert self._redirect_params(response) == {"error": "invalid_credentials"}

    def test_corrupt_stored_credentials(self, auth_client, user):
        broken = make_store(user, connected=False, shopify_client_id_encrypted="zz:zz:zz")
        state = encode_oauth_state(broken.pk, user.pk)
        response = auth_client.get(CALLBACK_URL, {"code": "c", "state": state})
        assert self._redirect_params(response) == {"error": "invalid_credentials"}

    def test_missing_code(self, auth_client, store, user):
        state = encode_oauth_state(store.pk, user.pk)
        response = auth_client.get(CALLBACK_URL, {"state": state})
        assert self._redirect_params(response) == {"error": "no_code"}

    def test_token_exchange_failure(self, auth_client, disconnected_store, user, exchange):
        exchange.side_effect = TokenExchangeError("bad code", status_code=400)
        state = encode_oauth_state(disconnected_store.pk, user.pk)

        response = auth_client.get(CALLBACK_URL, {"code": "bad", "state": state})

        assert self._redirect_params(response) == {"error": "oauth_failed"}
        disconnected_store.refresh_from_db()
        assert disconnected_store.is_connected is False

    def test_unexpected_error_redirects(self, auth_client, disconnected_store, user, exchange, mocker):
        mocker.patch(
            "shopify_connect.services.connection.reregister_store_webhooks",
            side_effect=TypeError("unexpected payload"),
        )
        state = encode_oauth_state(disconnected_store.pk, user.pk)

        response = auth_client.get(CALLBACK_URL, {"code": "good", "state": state})

        assert self._redirect_params(response) == {"error": "oauth_failed"}
        disconnected_store.refresh_from_db()
        assert disconnected_store.is_connected is False

    def test_malformed_webhook_responses_still_connect(self, auth_client, disconnected_store, user, exchange, mocker):
        registration = "shopify_connect.services.webhook_registration.requests"
        list_response = mocker.Mock(status_code=200, ok=True, text="[]")
        list_response.json.return_value = []
        create_response = mocker.Mock(status_code=201, ok=True, text="[]")
        create_response.json.return_value = []
        mocker.patch(
            "shopify_connect.services.connection.reregister_store_webhooks",
            side_effect=reregister_store_webhooks,
        )
        mocker.patch(f"{registration}.get", return_value=list_response)
        mocker.patch(f"{registration}.post", return_value=create_response)
        state = encode_oauth_state(disconnected_store.pk, user.pk)

        response = auth_client.get(CALLBACK_URL, {"code": "good", "state": state})

        assert self._redirect_params(response) == {"success": "connected"}
        disconnected_store.refresh_from_db()
        assert disconnected_store.is_connected is True
        assert not disconnected_store.webhook_subscriptions.exists()

    def test_success_with_stored_credentials(self, auth_client, disconnected_store, user, exchange):
        auth_client.cookies["shopify_oauth_state"] = state = encode_oauth_state(
            disconnected_store.pk, user.pk
        )

        response = auth_client.get(
            CALLBACK_URL,
            {"code": "good", "state": state, "shop": disconnected_store.shopify_domain},
        )

        assert self._redirect_params(response) == {"success": "connected"}
        exchange.assert_called_once_with(
            disconnected_store.shopify_domain, CLIENT_ID, CLIENT_SECRET, "good"
        )
        disconnected_store.refresh_from_db()
        assert disconnected_store.is_connected is True
        assert decrypt_field(
            disconnected_store.shopify_access_token_encrypted, "accessToken"
        ) == "shpat_fresh"
        assert disconnected_store.shopify_scopes == [
            "read_orders",
            "write_orders",
            "read_fulfillments",
        ]
        # Existing webhook secrets are reused.
        assert disconnected_store.webhook_secret == WEBHOOK_SECRET
        assert response.cookies["shopify_oauth_state"].value == ""
        assert response.cookies["shopify_oauth_creds"].value == ""

    def test_success_with_cookie_credentials(self, auth_client, user, exchange):
        store = make_store(
            user,
            connected=False,
            shopify_client_id_encrypted=None,
            shopify_client_secret_encrypted=None,
            webhook_secret=None,
        )
        new_id = "f" * 32
        new_secret = "shpss_" + "e" * 32
        auth_client.cookies["shopify_oauth_creds"] = encrypt_credentials(
            {"clientId": new_id, "clientSecret": new_secret}
        )
        state = encode_oauth_state(store.pk, user.pk)

        response = auth_client.get(CALLBACK_URL, {"code": "good", "state": state})

        assert self._redirect_params(response) == {"success": "connected"}
        store.refresh_from_db()
        assert decrypt_field(store.shopify_client_id_encrypted, "clientId") == new_id
        assert decrypt_field(store.shopify_client_secret_encrypted, "clientSecret") == new_secret
        assert len(store.webhook_secret) == 64

    def test_scopes_fall_back_to_token_response(self, auth_client, disconnected_store, user, exchange, mocker):
        mocker.patch("shopify_connect.services.oauth.fetch_granted_scopes", return_value=[])
        state = encode_oauth_state(disconnected_store.pk, user.pk)

        auth_client.get(CALLBACK_URL, {"code": "good", "state": state})

        disconnected_store.refresh_from_db()
        assert disconnected_store.shopify_scopes == ["read_orders"]
