"""
GDPR / marketplace compliance handlers.

Shopify (mandatory app webhooks):
- customers/data_request: recorded for manual export, nothing deleted
- customers/redact: Tandril stores shop-owner data only, never the shop's
  customers, so there is nothing to delete; the request is recorded
- shop/redact: delete the shop's platform connection

eBay:
- MARKETPLACE_ACCOUNT_DELETION: delete every platform connection of the account

Every handler is idempotent: deleting rows that are already gone reports 0.
"""
import logging
from typing import Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import and_, delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tandril.config import Settings
from tandril.errors import ValidationError
from tandril.models.platform import PlatformConnection
from tandril.schemas.webhook_payloads import (
    EbayAccountDeletionPayload,
    ShopifyCustomerRedactPayload,
    ShopifyDataRequestPayload,
    ShopifyShopRedactPayload,
)
from tandril.services.webhook_ingestor import (
    DeliveryContext,
    HandlerOutcome,
    TopicRoute,
    WebhookIngestor,
)

logger = logging.getLogger(__name__)

SHOPIFY_DATA_REQUEST = "customers/data_request"
SHOPIFY_CUSTOMERS_REDACT = "customers/redact"
SHOPIFY_SHOP_REDACT = "shop/redact"
EBAY_ACCOUNT_DELETION = "MARKETPLACE_ACCOUNT_DELETION"


def _parse(model, payload: dict):
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError("Malformed payload") from e


async def handle_shopify_data_request(
    session: AsyncSession, payload: dict, ctx: DeliveryContext,
) -> HandlerOutcome:
    data = _parse(ShopifyDataRequestPayload, payload)
    customer_id = data.customer.id if data.customer else None
    logger.info(
        "GDPR data request for customer %s (%d orders)",
        customer_id, len(data.orders_requested),
        extra={"shop_domain": data.shop_domain or ctx.source_domain, "topic": ctx.topic},
    )
    # Export is fulfilled manually from the webhook_logs row
    return HandlerOutcome(
        message="Data request received and will be processed",
        counts={"orders_requested": len(data.orders_requested)},
    )


async def handle_shopify_customers_redact(
    session: AsyncSession, payload: dict, ctx: DeliveryContext,
) -> HandlerOutcome:
    data = _parse(ShopifyCustomerRedactPayload, payload)
    customer_id = data.customer.id if data.customer else None
    logger.info(
        "GDPR customer redact for customer %s (%d orders)",
        customer_id, len(data.orders_to_redact),
        extra={"shop_domain": data.shop_domain or ctx.source_domain, "topic": ctx.topic},
    )
    return HandlerOutcome(
        message="Customer data redaction request received",
        counts={"platforms_deleted": 0, "orders_to_redact": len(data.orders_to_redact)},
    )


async def handle_shopify_shop_redact(
    session: AsyncSession, payload: dict, ctx: DeliveryContext,
) -> HandlerOutcome:
    data = _parse(ShopifyShopRedactPayload, payload)
    shop_domain = (data.shop_domain or ctx.source_domain or "").strip().lower()
    if not shop_domain:
        raise ValidationError("Missing shop_domain", field="shop_domain")

    deleted = await delete_shop_connections(session, shop_domain)
    logger.info(
        "Shop redact deleted %d platform connection(s)", deleted,
        extra={"shop_domain": shop_domain, "topic": ctx.topic},
    )
    return HandlerOutcome(
        message="Shop data redaction request received and processed",
        counts={"platforms_deleted": deleted},
    )


async def handle_ebay_account_deletion(
    session: AsyncSession, payload: dict, ctx: DeliveryContext,
) -> HandlerOutcome:
    data = _parse(EbayAccountDeletionPayload, payload).notification.data
    if not data.username and not data.userId:
        raise ValidationError("Missing username or userId in notification", field="username")

    deleted = await delete_ebay_connections(session, user_id=data.userId, username=data.username)
    logger.info(
        "eBay account deletion removed %d platform connection(s)", deleted,
        extra={"provider": "ebay", "topic": ctx.topic},
    )
    if deleted == 0:
        return HandlerOutcome(message="No platforms found", counts={"platforms_deleted": 0})
    return HandlerOutcome(
        message="Account deletion processed successfully",
        counts={"platforms_deleted": deleted},
    )


async def delete_shop_connections(session: AsyncSession, shop_domain: str) -> int:
    result = await session.execute(
        delete(PlatformConnection)
        .where(and_(
            PlatformConnection.platform_type == "shopify",
            PlatformConnection.shop_domain == shop_domain,
        ))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


async def delete_ebay_connections(
    session: AsyncSession,
    user_id: Optional[str] = None,
    username: Optional[str] = None,
) -> int:
    """
    Delete eBay connections for one account. An exact user id match wins;
    the username is used only when the user id matches nothing, so a
    stale username on another row is never touched alongside it.
    """
    if user_id:
        result = await session.execute(
            delete(PlatformConnection)
            .where(and_(
                PlatformConnection.platform_type == "ebay",
                PlatformConnection.provider_user_id == user_id,
            ))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            return result.rowcount

    if username:
        result = await session.execute(
            delete(PlatformConnection)
            .where(and_(
                PlatformConnection.platform_type == "ebay",
                PlatformConnection.provider_username == username,
            ))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    return 0


def _ebay_topic(payload: dict) -> Optional[str]:
    metadata = payload.get("metadata")
    if isinstance(metadata, dict):
        return metadata.get("topic")
    return None


def build_shopify_ingestor(settings: Settings, session_factory: async_sessionmaker) -> WebhookIngestor:
    return WebhookIngestor(
        provider="shopify",
        secret=settings.shopify_api_secret,
        routes={
            SHOPIFY_DATA_REQUEST: TopicRoute("gdpr_data_request", handle_shopify_data_request),
            SHOPIFY_CUSTOMERS_REDACT: TopicRoute("gdpr_customer_redact", handle_shopify_customers_redact),
            SHOPIFY_SHOP_REDACT: TopicRoute("gdpr_shop_redact", handle_shopify_shop_redact),
        },
        session_factory=session_factory,
    )


def build_ebay_ingestor(settings: Settings, session_factory: async_sessionmaker) -> WebhookIngestor:
    return WebhookIngestor(
        provider="ebay",
        secret=settings.ebay_webhook_secret,
        routes={
            EBAY_ACCOUNT_DELETION: TopicRoute("ebay_account_deletion", handle_ebay_account_deletion),
        },
        session_factory=session_factory,
        topic_resolver=_ebay_topic,
    )
