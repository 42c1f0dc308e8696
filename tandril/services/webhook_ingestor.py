"""
Webhook ingestor - verify, parse, dispatch, audit, acknowledge.

Per delivery:
1. Signature check (fail fast, nothing logged or mutated on failure)
2. JSON parse
3. Topic lookup (unknown topics are acknowledged with 200 so providers stop retrying)
4. Topic handler in its own transaction
5. Audit row in a separate session (best effort, failures become warnings)
6. JSON acknowledgment with handler counts

Providers retry any non-2xx delivery, so every handler must be idempotent.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tandril.errors import ConfigurationError, DownstreamError, TandrilError
from tandril.models.webhook_log import WebhookLog
from tandril.utils.logging import get_correlation_id
from tandril.utils.webhook_signatures import (
    SignatureCheck,
    check_signature,
    compute_payload_hash,
)

logger = logging.getLogger(__name__)


@dataclass
class DeliveryContext:
    provider: str
    topic: Optional[str]
    source_domain: Optional[str]


@dataclass
class HandlerOutcome:
    message: str
    counts: dict[str, Any] = field(default_factory=dict)


TopicHandler = Callable[[AsyncSession, dict, DeliveryContext], Awaitable[HandlerOutcome]]


@dataclass
class TopicRoute:
    webhook_type: str  # Audit label, e.g. gdpr_shop_redact
    handler: TopicHandler


@dataclass
class IngestResult:
    status_code: int
    body: dict
    warnings: list[str] = field(default_factory=list)


def _rejected(status_code: int, error: str) -> IngestResult:
    return IngestResult(status_code=status_code, body={"success": False, "error": error})


class WebhookIngestor:
    def __init__(
        self,
        provider: str,
        secret: str,
        routes: dict[str, TopicRoute],
        session_factory: async_sessionmaker,
        topic_resolver: Optional[Callable[[dict], Optional[str]]] = None,
    ):
        self.provider = provider
        self.secret = secret
        self.routes = routes
        self.session_factory = session_factory
        # For providers that carry the topic inside the signed body (eBay)
        self.topic_resolver = topic_resolver

    async def receive(
        self,
        topic: Optional[str],
        source_domain: Optional[str],
        raw_body: bytes,
        signature_header: Optional[str],
    ) -> IngestResult:
        check = check_signature(raw_body, signature_header, self.secret)
        if check is SignatureCheck.SECRET_NOT_CONFIGURED:
            logger.error(
                "Webhook secret not configured - cannot verify delivery",
                extra={"provider": self.provider, "error_code": check.value},
            )
            raise ConfigurationError(f"{self.provider} webhook secret not configured")
        if check is not SignatureCheck.VALID:
            logger.warning(
                "Rejected webhook: %s", check.value,
                extra={"provider": self.provider, "shop_domain": source_domain, "topic": topic},
            )
            if check is SignatureCheck.MISSING_SIGNATURE:
                return _rejected(400, "Missing HMAC signature")
            if check is SignatureCheck.EMPTY_BODY:
                return _rejected(400, "Empty payload")
            return _rejected(400, "Invalid HMAC signature")

        try:
            payload = json.loads(raw_body)
        except (UnicodeDecodeError, json.JSONDecodeError):
            payload = None
        if not isinstance(payload, dict):
            logger.warning(
                "Rejected webhook: malformed payload sha256=%s", compute_payload_hash(raw_body),
                extra={"provider": self.provider, "shop_domain": source_domain, "topic": topic},
            )
            return _rejected(400, "Malformed payload")

        if topic is None and self.topic_resolver is not None:
            topic = self.topic_resolver(payload)
        ctx = DeliveryContext(provider=self.provider, topic=topic, source_domain=source_domain)

        route = self.routes.get(topic or "")
        if route is None:
            logger.info(
                "Ignoring unhandled topic", extra={"provider": self.provider, "topic": topic},
            )
            warnings = await self._append_log(
                f"{self.provider}_unhandled", ctx, payload, raw_body, outcome="ignored",
            )
            return IngestResult(
                status_code=200,
                body={"success": True, "message": "Topic ignored"},
                warnings=warnings,
            )

        outcome: Optional[HandlerOutcome] = None
        error: Optional[TandrilError] = None
        try:
            outcome = await self._dispatch(route, payload, ctx)
        except TandrilError as e:
            error = e
        except Exception as e:
            logger.exception(
                "Webhook handler failed: %s", str(e),
                extra={"provider": self.provider, "topic": topic},
            )
            error = DownstreamError("Failed to process webhook")

        warnings = await self._append_log(
            route.webhook_type, ctx, payload, raw_body,
            outcome="failed" if error else "processed",
        )

        if error is not None:
            return IngestResult(
                status_code=error.status_code,
                body={"success": False, "error": error.message},
                warnings=warnings,
            )

        return IngestResult(
            status_code=200,
            body={"success": True, "message": outcome.message, **outcome.counts},
            warnings=warnings,
        )

    async def _dispatch(
        self, route: TopicRoute, payload: dict, ctx: DeliveryContext,
    ) -> HandlerOutcome:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    return await route.handler(session, payload, ctx)
        except SQLAlchemyError as e:
            logger.error(
                "Datastore error handling webhook: %s", str(e),
                extra={"provider": ctx.provider, "topic": ctx.topic, "shop_domain": ctx.source_domain},
            )
            raise DownstreamError("Datastore error while processing webhook") from e

    async def _append_log(
        self,
        webhook_type: str,
        ctx: DeliveryContext,
        payload: dict,
        raw_body: bytes,
        outcome: str,
    ) -> list[str]:
        """Write the audit row. Returns warnings instead of raising."""
        try:
            async with self.session_factory() as session:
                session.add(WebhookLog(
                    webhook_type=webhook_type,
                    source_domain=ctx.source_domain,
                    topic=ctx.topic,
                    raw_payload=payload,
                    payload_hash=compute_payload_hash(raw_body),
                    outcome=outcome,
                    correlation_id=get_correlation_id(),
                ))
                await session.commit()
        except Exception as e:
            logger.warning(
                "Could not write webhook audit log: %s", str(e),
                extra={"provider": ctx.provider, "topic": ctx.topic},
            )
            return [f"audit_log_failed: {e}"]
        return []
