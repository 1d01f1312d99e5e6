from django.urls import path

from .views import (
    OrderListView,
    OrderStatsView,
    ShopifyAuthView,
    ShopifyCallbackView,
    ShopifyConnectView,
    ShopifyWebhookView,
    StoreConnectView,
    StoreDetailView,
    StoreDisconnectView,
    StoreListView,
    StoreOrderSyncView,
    StoreWebhooksView,
)

urlpatterns = [
    path(
        "api/webhooks/shopify",
        ShopifyWebhookView.as_view(),
        name="shopify_webhook",
    ),
    path(
        "api/shopify/auth",
        ShopifyAuthView.as_view(),
        name="shopify_oauth_auth",
    ),
    path(
        "api/shopify/connect",
        ShopifyConnectView.as_view(),
        name="shopify_oauth_connect",
    ),
    path(
        "api/shopify/callback",
        ShopifyCallbackView.as_view(),
        name="shopify_oauth_callback",
    ),
    path("api/stores/", StoreListView.as_view(), name="store_list"),
    path("api/stores/connect/", StoreConnectView.as_view(), name="store_connect"),
    path("api/stores/<uuid:store_id>/", StoreDetailView.as_view(), name="store_detail"),
    path(
        "api/stores/<uuid:store_id>/disconnect/",
        StoreDisconnectView.as_view(),
        name="store_disconnect",
    ),
    path(
        "api/stores/<uuid:store_id>/webhooks/",
        StoreWebhooksView.as_view(),
        name="store_webhooks",
    ),
    path(
        "api/stores/<uuid:store_id>/orders/sync/",
        StoreOrderSyncView.as_view(),
        name="store_orders_sync",
    ),
    path("api/orders/", OrderListView.as_view(), name="order_list"),
    path("api/orders/stats/", OrderStatsView.as_view(), name="order_stats"),
]
