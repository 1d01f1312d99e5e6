import json
import logging
from urllib.parse import urlencode, urlparse

import requests
from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import DatabaseError
from django.http import Http404, HttpResponseRedirect
from django.shortcuts import get_object_or_404
from django.urls import reverse
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .crypto import decrypt_credentials, decrypt_field, encrypt_credentials
from .exceptions import (
    DecryptionError,
    InvalidStateError,
    RemoteApiError,
    ShopifyConnectError,
    StoreNotConnectedError,
)
from .middleware import resolve_webhook_secret, verify_shopify_hmac
from .models import Order, Store
from .oauth_state import decode_oauth_state, encode_oauth_state
from .serializers import ConnectStoreSerializer, OrderSerializer, StoreSerializer
from .services.connection import complete_oauth_connection, disconnect_store
from .services.oauth import build_authorization_url
from .services.order_sync import get_order_stats, sync_orders_from_shopify
from .services.webhook_registration import reregister_store_webhooks
from .tasks import process_shopify_webhook_event
from .utils import get_base_url

logger = logging.getLogger(__name__)

OAUTH_STATE_COOKIE = "shopify_oauth_state"
OAUTH_CREDS_COOKIE = "shopify_oauth_creds"
OAUTH_COOKIE_MAX_AGE = 600

DEFAULT_ORDER_LIMIT = 50
MAX_ORDER_LIMIT = 250


def _set_oauth_cookie(response, name, value):
    response.set_cookie(
        name,
        value,
        max_age=OAUTH_COOKIE_MAX_AGE,
        path="/",
        secure=not settings.DEBUG,
        httponly=True,
        samesite="Lax",
    )


def _callback_url(request):
    return f"{get_base_url(request)}{reverse('shopify_oauth_callback')}"


def _get_owned_store(request, store_id):
    """Return the requesting user's store or raise Http404."""
    try:
        return get_object_or_404(Store, pk=store_id, user=request.user)
    except ValidationError:
        # Malformed UUIDs look the same as missing stores.
        raise Http404("No Store matches the given query.")


class ShopifyWebhookView(APIView):
    """Generic Shopify webhook endpoint.

    The store is resolved from ``X-Shopify-Shop-Domain`` and the body is
    verified against the store's signing secret before anything is
    parsed. Accepted deliveries are handed to Dramatiq and acknowledged
    immediately, so Shopify's retry timer never waits on local processing.
    """

    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request):
        # Read before anything touches request.data: HMAC covers these bytes.
        raw_body = request.body

        shop_domain = request.META.get("HTTP_X_SHOPIFY_SHOP_DOMAIN", "").strip().lower()
        if not shop_domain:
            return Response(
                {"error": "Missing X-Shopify-Shop-Domain header"},
                status=status.HTTP_400_BAD_REQUEST,
            )

        topic = request.META.get("HTTP_X_SHOPIFY_TOPIC", "")
        if not topic:
            return Response(
                {"error": "Missing X-Shopify-Topic header"},
                status=status.HTTP_400_BAD_REQUEST,
            )

        hmac_header = request.META.get("HTTP_X_SHOPIFY_HMAC_SHA256", "")
        if not hmac_header:
            return Response(
                {"error": "Missing X-Shopify-Hmac-Sha256 header"},
                status=status.HTTP_401_UNAUTHORIZED,
            )

        store = Store.objects.filter(shopify_domain=shop_domain).first()
        if store is None:
            logger.error("Store not found for domain: %s, topic: %s", shop_domain, topic)
            return Response(
                {"error": "Store not found"},
                status=status.HTTP_404_NOT_FOUND,
            )

        secret = resolve_webhook_secret(store)
        if not secret:
            logger.error(
                "Store %s (%s) has no webhook signing secret, topic: %s",
                store.pk,
                store.shopify_domain,
                topic,
            )
            return Response(
                {"error": "Store webhook secret not configured"},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        if not verify_shopify_hmac(raw_body, hmac_header, secret):
            logger.warning(
                "HMAC verification failed for store %s (%s), topic: %s, "
                "payload length: %d",
                store.pk,
                store.shopify_domain,
                topic,
                len(raw_body),
            )
            return Response(
                {"error": "Invalid signature"},
                status=status.HTTP_401_UNAUTHORIZED,
            )

        webhook_id = request.META.get("HTTP_X_SHOPIFY_WEBHOOK_ID") or None
        logger.info(
            "Received %s for store %s (%s), webhook ID: %s",
            topic,
            store.pk,
            store.shopify_domain,
            webhook_id or "none",
        )
        if topic == "app/uninstalled":
            logger.warning(
                "app/uninstalled received for store %s (%s); connected=%s",
                store.pk,
                store.shopify_domain,
                store.is_connected,
            )

        try:
            payload = json.loads(raw_body)
        except (UnicodeDecodeError, ValueError):
            return Response(
                {"error": "Invalid JSON payload"},
                status=status.HTTP_400_BAD_REQUEST,
            )

        process_shopify_webhook_event.send(str(store.pk), topic, payload, webhook_id)
        return Response({"received": True}, status=status.HTTP_200_OK)


class ShopifyAuthView(APIView):
    """Start OAuth with credentials supplied on the query string.

    The credentials ride to the callback in an encrypted cookie.
    """

    permission_classes = [IsAuthenticated]

    def get(self, request):
        store_id = request.query_params.get("storeId")
        if not store_id:
            return Response(
                {"error": "storeId is required"}, status=status.HTTP_400_BAD_REQUEST
            )

        store = _get_owned_store(request, store_id)

        client_id = request.query_params.get("clientId")
        client_secret = request.query_params.get("clientSecret")
        if not client_id or not client_secret:
            return Response(
                {"error": "Client ID and Client Secret are required"},
                status=status.HTTP_400_BAD_REQUEST,
            )

        state = encode_oauth_state(store.pk, request.user.pk)
        auth_url = build_authorization_url(
            store.shopify_domain, client_id, _callback_url(request), state
        )

        response = HttpResponseRedirect(auth_url)
        _set_oauth_cookie(
            response,
            OAUTH_CREDS_COOKIE,
            encrypt_credentials({"clientId": client_id, "clientSecret": client_secret}),
        )
        _set_oauth_cookie(response, OAUTH_STATE_COOKIE, state)
        logger.info("OAuth started for store %s by user %s", store.pk, request.user.pk)
        return response


class ShopifyConnectView(APIView):
    """Set the state cookie and forward to a prepared authorize URL.

    Used when the client credentials are already stored on the store.
    """

    permission_classes = [IsAuthenticated]

    def get(self, request):
        store_id = request.query_params.get("storeId")
        state = request.query_params.get("state")
        oauth_url = request.query_params.get("oauthUrl")
        if not store_id or not state or not oauth_url:
            return Response(
                {"error": "storeId, state, and oauthUrl are required"},
                status=status.HTTP_400_BAD_REQUEST,
            )

        store = _get_owned_store(request, store_id)

        parsed = urlparse(oauth_url)
        if (
            parsed.scheme != "https"
            or parsed.netloc.lower() != store.shopify_domain
            or parsed.path != "/admin/oauth/authorize"
        ):
            logger.warning(
                "Rejected oauthUrl for store %s: %s", store.pk, parsed.netloc
            )
            return Response(
                {"error": "oauthUrl must point to the store's authorize endpoint"},
                status=status.HTTP_400_BAD_REQUEST,
            )

        response = HttpResponseRedirect(oauth_url)
        _set_oauth_cookie(response, OAUTH_STATE_COOKIE, state)
        return response


class ShopifyCallbackView(APIView):
    """OAuth redirect target.

    Every outcome is a redirect to the dashboard's stores page carrying
    either ``success=connected`` or ``error=<code>``.
    """

    permission_classes = [AllowAny]

    def _redirect(self, request, **params):
        return HttpResponseRedirect(
            f"{get_base_url(request)}/stores?{urlencode(params)}"
        )

    def _client_credentials(self, request, store):
        """Return ``(client_id, client_secret)`` or an error code string."""
        encrypted = request.COOKIES.get(OAUTH_CREDS_COOKIE)
        if encrypted:
            try:
                credentials = decrypt_credentials(encrypted)
                return credentials["clientId"], credentials["clientSecret"]
            except (DecryptionError, KeyError, TypeError):
                logger.warning("Unreadable OAuth credentials cookie for store %s", store.pk)
                return "invalid_credentials"

        if store.shopify_client_id_encrypted and store.shopify_client_secret_encrypted:
            try:
                return (
                    decrypt_field(store.shopify_client_id_encrypted, "clientId"),
                    decrypt_field(store.shopify_client_secret_encrypted, "clientSecret"),
                )
            except DecryptionError:
                logger.exception("Failed to decrypt client credentials for store %s", store.pk)
                return "invalid_credentials"

        return "missing_credentials"

    def get(self, request):
        if not request.user.is_authenticated:
            return HttpResponseRedirect(f"{get_base_url(request)}/signin?error=unauthorized")

        code = request.query_params.get("code")
        state = request.query_params.get("state")
        shop = request.query_params.get("shop")

        if not state:
            return self._redirect(request, error="invalid_state")

        # The cookie is absent when the flow started outside this browser.
        cookie_state = request.COOKIES.get(OAUTH_STATE_COOKIE)
        if cookie_state and cookie_state != state:
            logger.warning("OAuth state does not match cookie for user %s", request.user.pk)
            return self._redirect(request, error="invalid_state")

        try:
            oauth_state = decode_oauth_state(state)
        except InvalidStateError:
            return self._redirect(request, error="invalid_state")

        if oauth_state.user_id != str(request.user.pk):
            logger.warning(
                "OAuth state user %s does not match session user %s",
                oauth_state.user_id,
                request.user.pk,
            )
            return self._redirect(request, error="unauthorized")

        try:
            store = Store.objects.filter(pk=oauth_state.store_id, user=request.user).first()
        except ValidationError:
            store = None
        if store is None:
            return self._redirect(request, error="store_not_found")

        if shop and shop.lower() != store.shopify_domain:
            logger.warning(
                "OAuth callback shop %s does not match store %s (%s)",
                shop,
                store.pk,
                store.shopify_domain,
            )
            return self._redirect(request, error="domain_mismatch")

        credentials = self._client_credentials(request, store)
        if isinstance(credentials, str):
            return self._redirect(request, error=credentials)
        client_id, client_secret = credentials

        if not code:
            return self._redirect(request, error="no_code")

        try:
            complete_oauth_connection(
                store, client_id, client_secret, code, get_base_url(request)
            )
        except (ShopifyConnectError, requests.RequestException, DatabaseError):
            logger.exception("Shopify OAuth callback failed for store %s", store.pk)
            return self._redirect(request, error="oauth_failed")
        except Exception:
            # Every callback outcome is a redirect back to the dashboard.
            logger.exception(
                "Unexpected error in Shopify OAuth callback for store %s", store.pk
            )
            return self._redirect(request, error="oauth_failed")

        response = self._redirect(request, success="connected")
        response.delete_cookie(OAUTH_STATE_COOKIE, path="/")
        response.delete_cookie(OAUTH_CREDS_COOKIE, path="/")
        return response


class StoreListView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        stores = Store.objects.filter(user=request.user)
        return Response(StoreSerializer(stores, many=True).data)

    def post(self, request):
        serializer = StoreSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        store = serializer.save(user=request.user)
        logger.info("Store %s (%s) created by user %s", store.pk, store.shopify_domain, request.user.pk)
        return Response(StoreSerializer(store).data, status=status.HTTP_201_CREATED)


class StoreDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, store_id):
        store = _get_owned_store(request, store_id)
        return Response(StoreSerializer(store).data)

    def patch(self, request, store_id):
        store = _get_owned_store(request, store_id)
        serializer = StoreSerializer(store, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(serializer.data)

    def delete(self, request, store_id):
        store = _get_owned_store(request, store_id)
        disconnect_store(store)
        logger.info("Store %s (%s) deleted by user %s", store.pk, store.shopify_domain, request.user.pk)
        store.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


class StoreConnectView(APIView):
    """Create a store with its app credentials and prepare the OAuth redirect."""

    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = ConnectStoreSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        store = Store.objects.create(
            user=request.user,
            name=data["name"],
            shopify_domain=data["shopify_domain"],
            shopify_client_id_encrypted=encrypt_credentials({"clientId": data["client_id"]}),
            shopify_client_secret_encrypted=encrypt_credentials(
                {"clientSecret": data["client_secret"]}
            ),
        )
        state = encode_oauth_state(store.pk, request.user.pk)
        oauth_url = build_authorization_url(
            store.shopify_domain, data["client_id"], _callback_url(request), state
        )
        connect_url = "{}?{}".format(
            reverse("shopify_oauth_connect"),
            urlencode({"storeId": str(store.pk), "state": state, "oauthUrl": oauth_url}),
        )
        logger.info("Store %s (%s) created for OAuth connect", store.pk, store.shopify_domain)
        return Response(
            {
                "store": StoreSerializer(store).data,
                "state": state,
                "oauthUrl": oauth_url,
                "connectUrl": connect_url,
            },
            status=status.HTTP_201_CREATED,
        )


class StoreDisconnectView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, store_id):
        store = _get_owned_store(request, store_id)
        disconnect_store(store)
        return Response(StoreSerializer(store).data)


class StoreWebhooksView(APIView):
    """Re-register the store's webhook subscriptions."""

    permission_classes = [IsAuthenticated]

    def post(self, request, store_id):
        store = _get_owned_store(request, store_id)
        if not store.is_connected:
            return Response(
                {"error": "Store is not connected to Shopify"},
                status=status.HTTP_400_BAD_REQUEST,
            )
        try:
            access_token = decrypt_field(store.shopify_access_token_encrypted, "accessToken")
        except DecryptionError:
            logger.exception("Failed to decrypt access token for store %s", store.pk)
            return Response(
                {"error": "invalid_credentials"}, status=status.HTTP_400_BAD_REQUEST
            )

        subscriptions = reregister_store_webhooks(store, access_token, get_base_url(request))
        return Response(
            {
                "registered": len(subscriptions),
                "topics": [subscription.topic for subscription in subscriptions],
            }
        )


class StoreOrderSyncView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, store_id):
        store = _get_owned_store(request, store_id)
        try:
            result = sync_orders_from_shopify(store)
        except StoreNotConnectedError as exc:
            return Response({"error": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        except DecryptionError:
            logger.exception("Failed to decrypt access token for store %s", store.pk)
            return Response(
                {"error": "invalid_credentials"}, status=status.HTTP_400_BAD_REQUEST
            )
        except (RemoteApiError, requests.RequestException) as exc:
            logger.exception("Order sync failed for store %s", store.pk)
            return Response({"error": str(exc)}, status=status.HTTP_502_BAD_GATEWAY)
        return Response({"synced": result.synced, "errors": result.errors})


class OrderListView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        orders = Order.objects.filter(store__user=request.user).select_related("store")

        store_id = request.query_params.get("store")
        if store_id:
            orders = orders.filter(store=_get_owned_store(request, store_id))

        try:
            limit = int(request.query_params.get("limit", DEFAULT_ORDER_LIMIT))
        except ValueError:
            limit = DEFAULT_ORDER_LIMIT
        limit = max(1, min(limit, MAX_ORDER_LIMIT))

        orders = orders.order_by("-shopify_created_at", "-created_at")[:limit]
        return Response(OrderSerializer(orders, many=True).data)


class OrderStatsView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(get_order_stats(request.user))
