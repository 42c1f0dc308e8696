"""
Shopify OAuth integration - authorization-code grant for custom/public apps.

Docs: https://shopify.dev/docs/apps/auth/oauth
All calls have 10-second timeout per project standard.
"""
import logging
import re
from urllib.parse import urlencode, urlparse

import httpx

from tandril.config import Settings
from tandril.errors import AuthenticationError, ConfigurationError, DownstreamError, ValidationError
from tandril.integrations.oauth_base import OAuthProvider, ProviderAccount, ProviderTokens
from tandril.utils.webhook_signatures import verify_query_hmac

logger = logging.getLogger(__name__)

TIMEOUT = 10.0
SHOP_SUFFIX = ".myshopify.com"
_STORE_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9-]*$")

SHOPIFY_SCOPES = (
    "read_products",
    "write_products",
    "read_orders",
    "read_inventory",
    "write_inventory",
)


def normalize_store_name(raw: str) -> str:
    """
    Reduce free-form input to the bare store handle.
    "https://Acme.myshopify.com/admin" -> "acme"
    """
    value = (raw or "").strip().lower()
    if "://" in value:
        value = urlparse(value).netloc
    value = value.split("/", 1)[0]
    if value.endswith(SHOP_SUFFIX):
        value = value[: -len(SHOP_SUFFIX)]
    return value.strip()


def shop_domain_for(store_name: str) -> str:
    return f"{store_name}{SHOP_SUFFIX}"


def is_valid_shop_domain(shop: str) -> bool:
    if not shop or not shop.endswith(SHOP_SUFFIX):
        return False
    return bool(_STORE_NAME_RE.match(shop[: -len(SHOP_SUFFIX)]))


class ShopifyOAuth(OAuthProvider):
    name = "shopify"
    scopes = SHOPIFY_SCOPES

    def __init__(self, settings: Settings):
        self.settings = settings

    def prepare(self, params: dict) -> dict:
        raw = params.get("store_name")
        if not raw or not isinstance(raw, str):
            raise ValidationError("Missing store_name parameter", field="store_name")

        store_name = normalize_store_name(raw)
        if not _STORE_NAME_RE.match(store_name):
            raise ValidationError("Invalid store_name parameter", field="store_name")

        return {"shop_domain": shop_domain_for(store_name)}

    def callback_context(self, params: dict) -> dict:
        """Shopify signs the redirect query string with the app secret."""
        if not self.settings.shopify_api_secret:
            raise ConfigurationError("Shopify API credentials not configured")
        if not verify_query_hmac(params, self.settings.shopify_api_secret):
            raise AuthenticationError("Invalid callback signature")

        shop = (params.get("shop") or "").strip().lower()
        if not is_valid_shop_domain(shop):
            raise ValidationError("Invalid shop parameter", field="shop")
        return {"shop_domain": shop}

    def check_configured(self) -> None:
        if not self.settings.shopify_api_key:
            raise ConfigurationError("SHOPIFY_API_KEY environment variable not set")

    def authorization_url(self, context: dict, state: str) -> str:
        query = urlencode({
            "client_id": self.settings.shopify_api_key,
            "scope": ",".join(self.scopes),
            "redirect_uri": self.settings.resolved_shopify_redirect_uri,
            "state": state,
        })
        return f"https://{context['shop_domain']}/admin/oauth/authorize?{query}"

    async def exchange_code(self, code: str, context: dict) -> ProviderTokens:
        if not self.settings.shopify_api_key or not self.settings.shopify_api_secret:
            raise ConfigurationError("Shopify API credentials not configured")

        shop = context["shop_domain"]
        try:
            async with httpx.AsyncClient(timeout=TIMEOUT) as client:
                response = await client.post(
                    f"https://{shop}/admin/oauth/access_token",
                    json={
                        "client_id": self.settings.shopify_api_key,
                        "client_secret": self.settings.shopify_api_secret,
                        "code": code,
                    },
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            logger.error("Shopify token exchange failed: %s", str(e), extra={"shop_domain": shop})
            raise DownstreamError("Failed to exchange code for token") from e

        access_token = data.get("access_token")
        if not access_token:
            raise DownstreamError("No access token received from Shopify")

        scope = data.get("scope") or ""
        return ProviderTokens(
            access_token=access_token,
            scopes=[s for s in scope.split(",") if s],
        )

    async def fetch_account(self, tokens: ProviderTokens, context: dict) -> ProviderAccount:
        """Look up the shop's display name. Falls back to the domain."""
        shop = context["shop_domain"]
        account = ProviderAccount(shop_domain=shop, shop_name=shop)
        try:
            async with httpx.AsyncClient(timeout=TIMEOUT) as client:
                response = await client.get(
                    f"https://{shop}/admin/api/{self.settings.shopify_api_version}/shop.json",
                    headers={"X-Shopify-Access-Token": tokens.access_token},
                )
                response.raise_for_status()
                account.shop_name = (response.json().get("shop") or {}).get("name") or shop
        except httpx.HTTPError as e:
            logger.warning("Shopify shop lookup failed: %s", str(e), extra={"shop_domain": shop})
        return account


async def set_inventory_level(
    shop_domain: str,
    access_token: str,
    inventory_item_id: int,
    location_id: int,
    available: int,
    api_version: str,
) -> dict:
    """
    Set the available quantity of one inventory item at one location.
    Returns Shopify's inventory_level object.
    """
    try:
        async with httpx.AsyncClient(timeout=TIMEOUT) as client:
            response = await client.post(
                f"https://{shop_domain}/admin/api/{api_version}/inventory_levels/set.json",
                headers={
                    "X-Shopify-Access-Token": access_token,
                    "Content-Type": "application/json",
                },
                json={
                    "inventory_item_id": inventory_item_id,
                    "location_id": location_id,
                    "available": available,
                },
            )
            response.raise_for_status()
            data = response.json()
    except httpx.HTTPStatusError as e:
        logger.error(
            "Shopify inventory update failed: %d %s",
            e.response.status_code, e.response.text,
            extra={"shop_domain": shop_domain},
        )
        raise DownstreamError(f"Shopify API error ({e.response.status_code})") from e
    except httpx.HTTPError as e:
        logger.error("Shopify inventory update failed: %s", str(e), extra={"shop_domain": shop_domain})
        raise DownstreamError("Shopify API request failed") from e

    return data.get("inventory_level") or {}
