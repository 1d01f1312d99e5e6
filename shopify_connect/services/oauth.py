"""Shopify OAuth client: authorize URL and token exchange, plus scope lookup."""

import logging
from dataclasses import dataclass
from urllib.parse import urlencode

import requests

from ..exceptions import TokenExchangeError
from ..utils import admin_api_url, get_http_timeout, get_requested_scopes

logger = logging.getLogger(__name__)

GRANTED_SCOPES_QUERY = """
query {
  appInstallation {
    accessScopes {
      handle
    }
  }
}
"""


@dataclass(frozen=True)
class TokenGrant:
    access_token: str
    scope: str


def build_authorization_url(shop_domain, client_id, redirect_uri, state):
    """Return the Shopify authorize URL the merchant is redirected to."""
    params = {
        "client_id": client_id,
        "scope": ",".join(get_requested_scopes()),
        "redirect_uri": redirect_uri,
        "state": state,
    }
    return f"https://{shop_domain}/admin/oauth/authorize?{urlencode(params)}"


def exchange_code_for_token(shop_domain, client_id, client_secret, code):
    """Exchange an OAuth authorization code for an offline access token.

    Raises:
        TokenExchangeError: on a non-2xx answer, a non-JSON body or a body
            without ``access_token``. Transport errors from ``requests``
            propagate unchanged.
    """
    url = f"https://{shop_domain}/admin/oauth/access_token"
    response = requests.post(
        url,
        json={
            "client_id": client_id,
            "client_secret": client_secret,
            "code": code,
        },
        headers={"Content-Type": "application/json"},
        timeout=get_http_timeout(),
    )

    if not response.ok:
        raise TokenExchangeError(
            f"Failed to exchange code for token: {response.status_code}",
            status_code=response.status_code,
            body=response.text[:2000],
        )

    try:
        data = response.json()
    except ValueError:
        raise TokenExchangeError(
            "Token exchange response is not JSON",
            status_code=response.status_code,
            body=response.text[:2000],
        )

    access_token = data.get("access_token") if isinstance(data, dict) else None
    if not access_token:
        raise TokenExchangeError(
            "Access token not found in response",
            status_code=response.status_code,
        )

    return TokenGrant(
        access_token=access_token,
        scope=data.get("scope") or ",".join(get_requested_scopes()),
    )


def fetch_granted_scopes(shop_domain, access_token):
    """Return the scopes actually granted to the installation.

    Best-effort: any failure is logged and yields an empty list, which
    callers must read as "unknown", not "no scopes".
    """
    url = admin_api_url(shop_domain, "graphql.json")
    try:
        response = requests.post(
            url,
            json={"query": GRANTED_SCOPES_QUERY},
            headers={
                "Content-Type": "application/json",
                "X-Shopify-Access-Token": access_token,
            },
            timeout=get_http_timeout(),
        )
    except requests.RequestException:
        logger.warning(
            "Failed to query granted scopes for %s", shop_domain, exc_info=True
        )
        return []

    if not response.ok:
        logger.warning(
            "Granted scopes query for %s returned HTTP %s",
            shop_domain,
            response.status_code,
        )
        return []

    try:
        data = response.json()
    except ValueError:
        logger.warning("Granted scopes response for %s is not JSON", shop_domain)
        return []

    if not isinstance(data, dict) or data.get("errors"):
        logger.warning(
            "GraphQL errors querying scopes for %s: %s",
            shop_domain,
            data.get("errors") if isinstance(data, dict) else data,
        )
        return []

    payload = data.get("data")
    installation = payload.get("appInstallation") if isinstance(payload, dict) else None
    scopes = installation.get("accessScopes") if isinstance(installation, dict) else None
    if not isinstance(scopes, list):
        logger.warning("Unexpected granted scopes payload for %s", shop_domain)
        return []
    return [
        scope["handle"]
        for scope in scopes
        if isinstance(scope, dict) and scope.get("handle")
    ]


def verify_access_token(shop_domain, access_token):
    """Return True if ``access_token`` can read the shop resource."""
    try:
        response = requests.get(
            admin_api_url(shop_domain, "shop.json"),
            headers={"X-Shopify-Access-Token": access_token},
            timeout=get_http_timeout(),
        )
    except requests.RequestException:
        logger.warning("Access token check failed for %s", shop_domain, exc_info=True)
        return False
    return response.ok


def resolve_scopes(granted_scopes, token_scope):
    """Pick the scope list to persist after a successful token exchange.

    Introspected scopes are authoritative; the token response's ``scope``
    string comes next; the requested scopes are the last resort.
    """
    if granted_scopes:
        return list(granted_scopes)
    if isinstance(token_scope, str):
        scopes = [scope.strip() for scope in token_scope.split(",") if scope.strip()]
        if scopes:
            return scopes
    return get_requested_scopes()
