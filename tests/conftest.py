"""
Test configuration and fixtures.
Uses SQLite in-memory for fast tests. Mocks all external services.
"""
import base64
import hashlib
import hmac
import uuid

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.pool import StaticPool

from tandril.config import Settings
from tandril.database import Base
import tandril.models  # noqa: F401  registers every table on Base.metadata

SHOPIFY_SECRET = "shpss_test_secret"
EBAY_SECRET = "ebay_test_webhook_secret"
JWT_SECRET = "test_jwt_secret_that_is_long_enough_for_hs256"


# Register JSONB as JSON for SQLite compatibility in tests
@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(type_, compiler, **kw):
    return "JSON"


def sign(body: bytes, secret: str = SHOPIFY_SECRET) -> str:
    """Base64 HMAC-SHA256, as Shopify puts it in X-Shopify-Hmac-Sha256."""
    return base64.b64encode(hmac.new(secret.encode(), body, hashlib.sha256).digest()).decode()


@pytest.fixture
async def db_engine():
    """
    In-memory SQLite engine shared by every session in a test.
    StaticPool keeps one connection so separate sessions see the same database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    """In-memory SQLite database for tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def settings():
    """Fully configured settings; tests override single fields with model_copy."""
    return Settings(
        _env_file=None,
        app_env="test",
        app_url="https://app.tandril.test",
        api_base_url="https://api.tandril.test",
        session_jwt_secret=JWT_SECRET,
        shopify_api_key="shopify_key_123",
        shopify_api_secret=SHOPIFY_SECRET,
        ebay_client_id="ebay-client-id",
        ebay_client_secret="ebay-client-secret",
        ebay_webhook_secret=EBAY_SECRET,
        encryption_key="",
    )


@pytest.fixture
def user_id():
    return str(uuid.UUID("11111111-1111-1111-1111-111111111111"))
