"""
OAuth state token store - single-use CSRF tokens for authorization-code flows.

issue() persists a random token with a fixed expiry; consume() deletes and
returns it in one DELETE ... RETURNING statement, so two concurrent callbacks
presenting the same token cannot both succeed.
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tandril.errors import DownstreamError, NotFoundError
from tandril.models.oauth_state import OAuthState

logger = logging.getLogger(__name__)

DEFAULT_TTL_MINUTES = 10
TOKEN_BYTES = 32  # 256 bits


# Both render as 400 with the same message
class StateTokenNotFound(NotFoundError):
    status_code = 400


class StateTokenExpired(NotFoundError):
    status_code = 400


@dataclass
class StateToken:
    token: str
    owner_identity: str
    provider: str
    created_at: datetime
    expires_at: datetime
    shop_domain: Optional[str] = None
    persisted: bool = True


@dataclass
class ConsumedState:
    owner_identity: str
    provider: str
    shop_domain: Optional[str] = None


def _utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class StateTokenStore:
    def __init__(
        self,
        session: AsyncSession,
        ttl_minutes: int = DEFAULT_TTL_MINUTES,
        failure_fatal: bool = True,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.session = session
        self.ttl = timedelta(minutes=ttl_minutes)
        self.failure_fatal = failure_fatal
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def issue(
        self,
        owner_identity: str,
        provider: str,
        shop_domain: Optional[str] = None,
    ) -> StateToken:
        """
        Mint and persist a state token.

        If the write fails and failure_fatal is off, the token is still
        returned with persisted=False. Its callback will fail consume().
        """
        now = self._clock()
        token = StateToken(
            token=secrets.token_urlsafe(TOKEN_BYTES),
            owner_identity=owner_identity,
            provider=provider,
            shop_domain=shop_domain,
            created_at=now,
            expires_at=now + self.ttl,
        )

        try:
            self.session.add(OAuthState(
                state=token.token,
                user_id=owner_identity,
                provider=provider,
                shop_domain=shop_domain,
                created_at=token.created_at,
                expires_at=token.expires_at,
            ))
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            if self.failure_fatal:
                logger.error(
                    "Could not store OAuth state: %s", str(e),
                    extra={"provider": provider, "user_id": owner_identity},
                )
                raise DownstreamError("Failed to initialize OAuth session") from e
            logger.warning(
                "Could not store OAuth state, continuing without CSRF state: %s", str(e),
                extra={"provider": provider, "user_id": owner_identity},
            )
            token.persisted = False

        return token

    async def consume(self, token: str) -> ConsumedState:
        """
        Atomically delete and return a state token.
        Raises StateTokenNotFound or StateTokenExpired. Expired rows are
        deleted too, so each token is looked at exactly once.
        """
        if not token:
            raise StateTokenNotFound("Invalid or expired OAuth state")

        stmt = (
            delete(OAuthState)
            .where(OAuthState.state == token)
            .returning(
                OAuthState.user_id,
                OAuthState.provider,
                OAuthState.shop_domain,
                OAuthState.expires_at,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.session.execute(stmt)
            row = result.first()
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise DownstreamError("Failed to verify OAuth state") from e

        if row is None:
            raise StateTokenNotFound("Invalid or expired OAuth state")

        if _utc(row.expires_at) <= self._clock():
            logger.info("Rejected expired OAuth state", extra={"provider": row.provider})
            raise StateTokenExpired("Invalid or expired OAuth state")

        return ConsumedState(
            owner_identity=row.user_id,
            provider=row.provider,
            shop_domain=row.shop_domain,
        )

    async def purge_expired(self) -> int:
        """Delete tokens whose callback never arrived. Returns the number removed."""
        result = await self.session.execute(
            delete(OAuthState)
            .where(OAuthState.expires_at < self._clock())
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        return result.rowcount or 0
