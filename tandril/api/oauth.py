"""
OAuth endpoints - start and finish marketplace connections.

- POST /api/v1/oauth/{provider}/init   (Bearer auth) -> authorization URL + state
- GET  /api/v1/oauth/shopify/callback  (Shopify redirect, signed query) -> 302 to the app
- POST /api/v1/oauth/ebay/callback     (Bearer auth, frontend relays code/state) -> JSON
"""
import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from tandril.api.auth import get_current_user_id
from tandril.api.params import read_json_params
from tandril.config import Settings, get_settings
from tandril.database import get_db
from tandril.errors import TandrilError
from tandril.schemas.api_responses import (
    AuthorizationData,
    ConnectionResponse,
    EbayCallbackRequest,
    ErrorResponse,
    OAuthInitResponse,
    PlatformSummary,
)
from tandril.services.oauth import OAuthInitiator

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/v1/oauth",
    tags=["oauth"],
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
)


@router.post("/{provider}/init", response_model=OAuthInitResponse)
async def oauth_init(
    provider: str,
    request: Request,
    user_id: str = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings),
    db: AsyncSession = Depends(get_db),
):
    """Mint a state token and return the provider authorization URL."""
    params = await read_json_params(request)
    auth_request = await OAuthInitiator(db, settings).begin(user_id, provider, params)
    return OAuthInitResponse(
        data=AuthorizationData(
            authorization_url=auth_request.authorization_url,
            state=auth_request.state,
            provider=auth_request.provider,
            expires_at=auth_request.expires_at,
            shop_domain=auth_request.shop_domain,
        )
    )


@router.get("/shopify/callback")
async def shopify_callback(
    request: Request,
    settings: Settings = Depends(get_settings),
    db: AsyncSession = Depends(get_db),
):
    """Shopify redirects the merchant's browser here; always answer with a redirect to the app."""
    params = dict(request.query_params)
    try:
        connection = await OAuthInitiator(db, settings).complete("shopify", params)
    except TandrilError as e:
        logger.warning("Shopify callback rejected: %s", e.message, extra={"provider": "shopify"})
        query = urlencode({"error": e.message})
        return RedirectResponse(f"{settings.app_url}/Platforms?{query}", status_code=302)

    query = urlencode({"connected": "true", "platform": "shopify", "shop": connection.shop_domain})
    return RedirectResponse(f"{settings.app_url}/Platforms?{query}", status_code=302)


@router.post("/ebay/callback", response_model=ConnectionResponse)
async def ebay_callback(
    payload: EbayCallbackRequest,
    user_id: str = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings),
    db: AsyncSession = Depends(get_db),
):
    """The frontend relays eBay's code and state after the consent redirect."""
    connection = await OAuthInitiator(db, settings).complete(
        "ebay", payload.model_dump(), owner_identity=user_id,
    )
    return ConnectionResponse(
        message="eBay account connected successfully!",
        data=PlatformSummary(
            id=str(connection.id),
            platform_type=connection.platform_type,
            shop_domain=connection.shop_domain,
            shop_name=connection.shop_name,
            provider_username=connection.provider_username,
            is_active=connection.is_active,
        ),
    )
