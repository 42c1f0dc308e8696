"""
OAuth initiation and callback completion for marketplace connections.

begin():    authenticated user -> state token -> provider authorize URL
complete(): provider redirect -> consume state -> code exchange -> platforms row

The redirect to the provider is the frontend's job; begin() only returns the URL.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import and_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tandril.config import Settings
from tandril.errors import AuthenticationError, DownstreamError, ValidationError
from tandril.integrations.ebay import EbayOAuth
from tandril.integrations.oauth_base import OAuthProvider, ProviderAccount, ProviderTokens
from tandril.integrations.shopify import ShopifyOAuth
from tandril.models.platform import PlatformConnection
from tandril.services.state_tokens import StateTokenNotFound, StateTokenStore
from tandril.utils.encryption import encrypt_value

logger = logging.getLogger(__name__)

PROVIDERS: dict[str, type[OAuthProvider]] = {
    "shopify": ShopifyOAuth,
    "ebay": EbayOAuth,
}


def get_provider(name: str, settings: Settings) -> OAuthProvider:
    provider_cls = PROVIDERS.get((name or "").lower())
    if provider_cls is None:
        raise ValidationError(
            f"Unsupported provider. Must be one of: {', '.join(sorted(PROVIDERS))}",
            field="provider",
        )
    return provider_cls(settings)


@dataclass
class AuthorizationRequest:
    provider: str
    authorization_url: str
    state: str
    expires_at: datetime
    shop_domain: Optional[str] = None


class OAuthInitiator:
    def __init__(
        self,
        session: AsyncSession,
        settings: Settings,
        state_store: Optional[StateTokenStore] = None,
    ):
        self.session = session
        self.settings = settings
        self.state_store = state_store or StateTokenStore(
            session,
            ttl_minutes=settings.oauth_state_ttl_minutes,
            failure_fatal=settings.oauth_state_failure_fatal,
        )

    async def begin(
        self,
        owner_identity: Optional[str],
        provider: str,
        provider_params: Optional[dict] = None,
    ) -> AuthorizationRequest:
        if not owner_identity:
            raise AuthenticationError("Unauthorized")

        oauth = get_provider(provider, self.settings)
        context = oauth.prepare(provider_params or {})
        oauth.check_configured()

        token = await self.state_store.issue(
            owner_identity, oauth.name, shop_domain=context.get("shop_domain"),
        )
        url = oauth.authorization_url(context, token.token)

        logger.info(
            "Generated %s authorization URL", oauth.name,
            extra={"provider": oauth.name, "user_id": owner_identity, "shop_domain": context.get("shop_domain")},
        )
        return AuthorizationRequest(
            provider=oauth.name,
            authorization_url=url,
            state=token.token,
            expires_at=token.expires_at,
            shop_domain=context.get("shop_domain"),
        )

    async def complete(
        self,
        provider: str,
        params: dict,
        owner_identity: Optional[str] = None,
    ) -> PlatformConnection:
        """
        Finish the flow started by begin(). owner_identity is given when the
        callback itself is authenticated (eBay posts from the frontend) and
        must then match the identity the state was issued to.
        """
        oauth = get_provider(provider, self.settings)

        code = params.get("code")
        state = params.get("state")
        if not code or not state:
            raise ValidationError("Missing required OAuth parameters", field="code" if not code else "state")

        context = oauth.callback_context(params)
        consumed = await self.state_store.consume(state)

        if consumed.provider != oauth.name:
            raise StateTokenNotFound("Invalid or expired OAuth state")
        if owner_identity and consumed.owner_identity != owner_identity:
            raise StateTokenNotFound("Invalid or expired OAuth state")
        if consumed.shop_domain and context.get("shop_domain") not in (None, consumed.shop_domain):
            logger.warning(
                "OAuth callback shop does not match issued state",
                extra={"provider": oauth.name, "shop_domain": context.get("shop_domain")},
            )
            raise StateTokenNotFound("Invalid or expired OAuth state")
        if consumed.shop_domain:
            context["shop_domain"] = consumed.shop_domain

        tokens = await oauth.exchange_code(code, context)
        account = await oauth.fetch_account(tokens, context)
        connection = await self._store_connection(consumed.owner_identity, oauth.name, tokens, account)

        logger.info(
            "Connected %s account", oauth.name,
            extra={"provider": oauth.name, "user_id": consumed.owner_identity, "shop_domain": account.shop_domain},
        )
        return connection

    async def _store_connection(
        self,
        user_id: str,
        platform_type: str,
        tokens: ProviderTokens,
        account: ProviderAccount,
    ) -> PlatformConnection:
        """Insert or refresh the user's connection for this shop / eBay account."""
        if account.shop_domain:
            match = PlatformConnection.shop_domain == account.shop_domain
        else:
            match = PlatformConnection.provider_user_id == account.provider_user_id

        try:
            result = await self.session.execute(
                select(PlatformConnection).where(and_(
                    PlatformConnection.user_id == user_id,
                    PlatformConnection.platform_type == platform_type,
                    match,
                )).limit(1)
            )
            connection = result.scalar_one_or_none()
            if connection is None:
                connection = PlatformConnection(user_id=user_id, platform_type=platform_type)
                self.session.add(connection)

            connection.shop_domain = account.shop_domain
            connection.shop_name = account.shop_name
            connection.provider_user_id = account.provider_user_id
            connection.provider_username = account.provider_username
            connection.access_token = encrypt_value(tokens.access_token)
            connection.refresh_token = encrypt_value(tokens.refresh_token)
            connection.access_scopes = tokens.scopes
            connection.token_expires_at = tokens.expires_at
            connection.is_active = True
            connection.updated_at = datetime.now(timezone.utc)

            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Error storing platform: %s", str(e), extra={"provider": platform_type})
            raise DownstreamError("Failed to store platform credentials") from e

        return connection
