"""
Tandril edge - provider webhooks and OAuth for the Tandril e-commerce platform.
Main FastAPI application entry point.
"""
import logging
import re
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware
from tandril.config import get_settings
from tandril.api.router import api_router
from tandril.errors import RateLimitError, TandrilError
from tandril.utils.logging import (
    configure_structured_logging,
    generate_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger("tandril")

# Caller-supplied IDs are stored on audit rows (String(64))
_CORRELATION_ID_RE = re.compile(r"^[A-Za-z0-9._:-]{1,64}$")

# Webhook callers are provider servers, not browsers
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": (
        "authorization, x-client-info, apikey, content-type, "
        "x-shopify-hmac-sha256, x-shopify-shop-domain, x-shopify-topic, x-ebay-hmac-sha256"
    ),
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
}


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Injects a correlation ID into every request context and response header."""

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = request.headers.get("X-Correlation-ID") or ""
        if not _CORRELATION_ID_RE.match(cid):
            cid = generate_correlation_id()
        set_correlation_id(cid)
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response


async def tandril_error_handler(request: Request, exc: TandrilError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
    headers = None
    if isinstance(exc, RateLimitError):
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message},
        headers=headers,
    )


class PreflightMiddleware(BaseHTTPMiddleware):
    """Answers bare OPTIONS requests that CORSMiddleware does not treat as preflight."""

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method == "OPTIONS":
            return PlainTextResponse("ok", headers=CORS_HEADERS)
        return await call_next(request)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    settings = get_settings()
    logger.info("Tandril edge starting up (env=%s)", settings.app_env)

    if not settings.shopify_api_secret:
        logger.warning("SHOPIFY_API_SECRET not set - Shopify webhooks will be rejected with 500")
    if not settings.ebay_webhook_secret:
        logger.warning("EBAY_WEBHOOK_SECRET not set - eBay notifications will be rejected with 500")
    if not settings.encryption_key:
        logger.warning(
            "ENCRYPTION_KEY not set - provider tokens will be stored unencrypted. "
            "Generate a Fernet key for production."
        )
    if not settings.oauth_state_failure_fatal:
        logger.warning("OAUTH_STATE_FAILURE_FATAL=false - OAuth CSRF state persistence errors are ignored")

    if settings.sentry_dsn:
        try:
            import sentry_sdk
            sentry_sdk.init(
                dsn=settings.sentry_dsn,
                traces_sample_rate=0.1,
                environment=settings.app_env,
            )
            logger.info("Sentry initialized")
        except Exception as e:
            logger.warning("Sentry initialization failed: %s", str(e))

    # Drop OAuth states whose callback never came
    try:
        from tandril.database import async_session_factory
        from tandril.services.state_tokens import StateTokenStore

        async with async_session_factory() as db:
            purged = await StateTokenStore(db).purge_expired()
            if purged:
                logger.info("Purged %d expired OAuth state(s)", purged)
    except Exception as e:
        logger.warning("Failed to purge expired OAuth states: %s", str(e))

    yield

    logger.info("Tandril edge shutdown complete")


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()

    configure_structured_logging(settings.log_level)

    application = FastAPI(
        title="Tandril Edge",
        description="Provider webhooks and OAuth for Tandril",
        version="1.0.0",
        lifespan=lifespan,
    )

    # Innermost, so CORSMiddleware answers real browser preflights first
    application.add_middleware(PreflightMiddleware)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    # Correlation ID middleware (must be added AFTER CORS so it runs on every request)
    application.add_middleware(CorrelationIdMiddleware)

    application.add_exception_handler(TandrilError, tandril_error_handler)

    application.include_router(api_router)

    return application


app = create_app()
