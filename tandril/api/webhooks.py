"""
Provider compliance webhook endpoints.

Security layers (in order):
1. Rate limiting (per IP, fails open)
2. Signature validation over the raw body
3. Topic dispatch + audit trail (webhook_logs table)

Every verified delivery for an unknown topic still gets a 200 so the
provider stops redelivering it.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import async_sessionmaker

from tandril.config import Settings, get_settings
from tandril.database import get_session_factory
from tandril.errors import RateLimitError
from tandril.services.compliance import (
    SHOPIFY_CUSTOMERS_REDACT,
    SHOPIFY_DATA_REQUEST,
    SHOPIFY_SHOP_REDACT,
    build_ebay_ingestor,
    build_shopify_ingestor,
)
from tandril.services.webhook_ingestor import IngestResult
from tandril.utils.rate_limiter import check_webhook_rate_limit

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/webhooks", tags=["webhooks"])

SHOPIFY_HMAC_HEADER = "X-Shopify-Hmac-Sha256"
SHOPIFY_DOMAIN_HEADER = "X-Shopify-Shop-Domain"
SHOPIFY_TOPIC_HEADER = "X-Shopify-Topic"
EBAY_HMAC_HEADER = "X-Ebay-Hmac-Sha256"


async def _enforce_rate_limit(request: Request) -> None:
    """Check rate limits and raise 429 if exceeded."""
    client_ip = request.client.host if request.client else "unknown"
    allowed, retry_after = await check_webhook_rate_limit(client_ip)
    if not allowed:
        raise RateLimitError("Rate limit exceeded", retry_after=retry_after or 60)


def _respond(result: IngestResult) -> JSONResponse:
    for warning in result.warnings:
        logger.warning("Webhook side-channel warning: %s", warning)
    return JSONResponse(status_code=result.status_code, content=result.body)


async def _ingest_shopify(
    request: Request,
    settings: Settings,
    session_factory: async_sessionmaker,
    topic: Optional[str],
) -> JSONResponse:
    await _enforce_rate_limit(request)
    body = await request.body()
    ingestor = build_shopify_ingestor(settings, session_factory)
    result = await ingestor.receive(
        topic=topic,
        source_domain=request.headers.get(SHOPIFY_DOMAIN_HEADER),
        raw_body=body,
        signature_header=request.headers.get(SHOPIFY_HMAC_HEADER),
    )
    return _respond(result)


@router.post("/shopify")
async def shopify_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """Any Shopify compliance topic; the topic comes from X-Shopify-Topic."""
    return await _ingest_shopify(
        request, settings, session_factory, request.headers.get(SHOPIFY_TOPIC_HEADER),
    )


@router.post("/shopify/customers-data-request")
async def shopify_customers_data_request(
    request: Request,
    settings: Settings = Depends(get_settings),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    return await _ingest_shopify(request, settings, session_factory, SHOPIFY_DATA_REQUEST)


@router.post("/shopify/customers-redact")
async def shopify_customers_redact(
    request: Request,
    settings: Settings = Depends(get_settings),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    return await _ingest_shopify(request, settings, session_factory, SHOPIFY_CUSTOMERS_REDACT)


@router.post("/shopify/shop-redact")
async def shopify_shop_redact(
    request: Request,
    settings: Settings = Depends(get_settings),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    return await _ingest_shopify(request, settings, session_factory, SHOPIFY_SHOP_REDACT)


@router.post("/ebay/account-deletion")
async def ebay_account_deletion(
    request: Request,
    settings: Settings = Depends(get_settings),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """eBay marketplace account deletion. The topic is read from metadata.topic in the body."""
    await _enforce_rate_limit(request)
    body = await request.body()
    ingestor = build_ebay_ingestor(settings, session_factory)
    result = await ingestor.receive(
        topic=None,
        source_domain=None,
        raw_body=body,
        signature_header=request.headers.get(EBAY_HMAC_HEADER),
    )
    return _respond(result)
