"""
eBay OAuth integration - user consent flow for the Sell APIs.

Docs: https://developer.ebay.com/api-docs/static/oauth-authorization-code-grant.html
All calls have 10-second timeout per project standard.
"""
import base64
import logging
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode

import httpx

from tandril.config import Settings
from tandril.errors import ConfigurationError, DownstreamError
from tandril.integrations.oauth_base import OAuthProvider, ProviderAccount, ProviderTokens

logger = logging.getLogger(__name__)

TIMEOUT = 10.0

EBAY_SCOPES = (
    "https://api.ebay.com/oauth/api_scope",
    "https://api.ebay.com/oauth/api_scope/sell.marketing.readonly",
    "https://api.ebay.com/oauth/api_scope/sell.marketing",
    "https://api.ebay.com/oauth/api_scope/sell.inventory.readonly",
    "https://api.ebay.com/oauth/api_scope/sell.inventory",
    "https://api.ebay.com/oauth/api_scope/sell.account.readonly",
    "https://api.ebay.com/oauth/api_scope/sell.account",
    "https://api.ebay.com/oauth/api_scope/sell.fulfillment.readonly",
    "https://api.ebay.com/oauth/api_scope/sell.fulfillment",
)

_HOSTS = {
    "production": ("https://auth.ebay.com", "https://api.ebay.com"),
    "sandbox": ("https://auth.sandbox.ebay.com", "https://api.sandbox.ebay.com"),
}


class EbayOAuth(OAuthProvider):
    name = "ebay"
    scopes = EBAY_SCOPES

    def __init__(self, settings: Settings):
        self.settings = settings
        self.auth_host, self.api_host = _HOSTS.get(settings.ebay_environment, _HOSTS["production"])

    def prepare(self, params: dict) -> dict:
        return {}

    def check_configured(self) -> None:
        if not self.settings.ebay_client_id:
            raise ConfigurationError("eBay client ID not configured")

    def authorization_url(self, context: dict, state: str) -> str:
        query = urlencode({
            "client_id": self.settings.ebay_client_id,
            "response_type": "code",
            "redirect_uri": self.settings.resolved_ebay_redirect_uri,
            "scope": " ".join(self.scopes),
            "state": state,
        })
        return f"{self.auth_host}/oauth2/authorize?{query}"

    async def exchange_code(self, code: str, context: dict) -> ProviderTokens:
        if not self.settings.ebay_client_id or not self.settings.ebay_client_secret:
            raise ConfigurationError("eBay credentials not configured")

        basic = base64.b64encode(
            f"{self.settings.ebay_client_id}:{self.settings.ebay_client_secret}".encode()
        ).decode()
        try:
            async with httpx.AsyncClient(timeout=TIMEOUT) as client:
                response = await client.post(
                    f"{self.api_host}/identity/v1/oauth2/token",
                    headers={
                        "Authorization": f"Basic {basic}",
                        "Content-Type": "application/x-www-form-urlencoded",
                    },
                    data={
                        "grant_type": "authorization_code",
                        "code": code,
                        "redirect_uri": self.settings.resolved_ebay_redirect_uri,
                    },
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            logger.error("eBay token exchange failed: %s", str(e), extra={"provider": "ebay"})
            raise DownstreamError("Token exchange failed") from e

        access_token = data.get("access_token")
        if not access_token:
            raise DownstreamError("No access token received from eBay")

        expires_at = None
        if data.get("expires_in"):
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(data["expires_in"]))

        return ProviderTokens(
            access_token=access_token,
            refresh_token=data.get("refresh_token"),
            scopes=list(self.scopes),
            expires_at=expires_at,
        )

    async def fetch_account(self, tokens: ProviderTokens, context: dict) -> ProviderAccount:
        """
        Resolve the eBay user id and username. Both are needed later to match
        MARKETPLACE_ACCOUNT_DELETION notifications to this connection.
        """
        try:
            async with httpx.AsyncClient(timeout=TIMEOUT) as client:
                response = await client.get(
                    f"{self.api_host}/commerce/identity/v1/user/",
                    headers={"Authorization": f"Bearer {tokens.access_token}"},
                )
                response.raise_for_status()
                info = response.json()
        except httpx.HTTPError as e:
            logger.error("eBay identity lookup failed: %s", str(e), extra={"provider": "ebay"})
            raise DownstreamError("Could not resolve eBay account") from e

        return ProviderAccount(
            provider_user_id=info.get("userId"),
            provider_username=info.get("username"),
        )
