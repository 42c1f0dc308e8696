"""
Tests for tandril/api/oauth.py and tandril/api/auth.py - init and callback endpoints.
"""
import hashlib
import hmac
import time
from unittest.mock import AsyncMock, MagicMock, patch
from urllib.parse import parse_qs, urlparse

import httpx
import jwt
import pytest
from sqlalchemy import select

from tandril.api.auth import decode_session_token
from tandril.config import get_settings
from tandril.database import get_db
from tandril.errors import AuthenticationError, ConfigurationError, DownstreamError
from tandril.main import create_app
from tandril.models.oauth_state import OAuthState
from tandril.models.platform import PlatformConnection
from tests.conftest import JWT_SECRET, SHOPIFY_SECRET


def _token(sub: str, secret: str = JWT_SECRET, exp_offset: int = 3600, aud: str = "authenticated") -> str:
    return jwt.encode(
        {"sub": sub, "aud": aud, "exp": int(time.time()) + exp_offset},
        secret,
        algorithm="HS256",
    )


def _auth(user_id: str) -> dict:
    return {"Authorization": f"Bearer {_token(user_id)}"}


def _mock_http(post_json: dict, get_json: dict) -> AsyncMock:
    post_response = MagicMock()
    post_response.json.return_value = post_json
    get_response = MagicMock()
    get_response.json.return_value = get_json
    mock_client = AsyncMock()
    mock_client.post = AsyncMock(return_value=post_response)
    mock_client.get = AsyncMock(return_value=get_response)
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    return mock_client


@pytest.fixture
def app(settings, session_factory):
    async def _get_db():
        async with session_factory() as session:
            yield session

    application = create_app()
    application.dependency_overrides[get_settings] = lambda: settings
    application.dependency_overrides[get_db] = _get_db
    return application


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


class TestSessionToken:
    def test_valid_token(self, settings):
        assert decode_session_token(_token("user-1"), settings) == "user-1"

    def test_expired_token(self, settings):
        with pytest.raises(AuthenticationError) as exc_info:
            decode_session_token(_token("user-1", exp_offset=-10), settings)
        assert exc_info.value.message == "Token expired"

    def test_wrong_secret(self, settings):
        with pytest.raises(AuthenticationError):
            decode_session_token(_token("user-1", secret="x" * 40), settings)

    def test_wrong_audience(self, settings):
        with pytest.raises(AuthenticationError):
            decode_session_token(_token("user-1", aud="anon"), settings)

    def test_secret_not_configured(self, settings):
        with pytest.raises(ConfigurationError):
            decode_session_token(_token("user-1"), settings.model_copy(update={"session_jwt_secret": ""}))


class TestInitEndpoint:
    async def test_shopify_init(self, client, session_factory, user_id):
        response = await client.post(
            "/api/v1/oauth/shopify/init", json={"store_name": "acme"}, headers=_auth(user_id),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        data = body["data"]
        assert urlparse(data["authorization_url"]).netloc == "acme.myshopify.com"
        assert data["provider"] == "shopify"
        assert data["shop_domain"] == "acme.myshopify.com"

        async with session_factory() as session:
            row = (await session.execute(select(OAuthState))).scalar_one()
        assert row.state == data["state"]
        assert row.user_id == user_id

    async def test_ebay_init_without_body(self, client, user_id):
        response = await client.post("/api/v1/oauth/ebay/init", headers=_auth(user_id))
        assert response.status_code == 200
        assert response.json()["data"]["authorization_url"].startswith("https://auth.ebay.com/oauth2/authorize")

    async def test_missing_authorization(self, client, session_factory):
        response = await client.post("/api/v1/oauth/ebay/init")
        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "Missing authorization header"}
        async with session_factory() as session:
            assert (await session.execute(select(OAuthState))).scalars().all() == []

    async def test_missing_store_name(self, client, user_id):
        response = await client.post("/api/v1/oauth/shopify/init", json={}, headers=_auth(user_id))
        assert response.status_code == 400
        assert response.json()["error"] == "Missing store_name parameter"

    async def test_invalid_json(self, client, user_id):
        response = await client.post(
            "/api/v1/oauth/shopify/init",
            content=b"{store_name",
            headers={**_auth(user_id), "Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid JSON body"

    async def test_unsupported_provider(self, client, user_id):
        response = await client.post("/api/v1/oauth/etsy/init", headers=_auth(user_id))
        assert response.status_code == 400

    async def test_state_store_failure(self, client, user_id):
        with patch(
            "tandril.services.state_tokens.StateTokenStore.issue",
            new_callable=AsyncMock,
            side_effect=DownstreamError("Failed to initialize OAuth session"),
        ):
            response = await client.post("/api/v1/oauth/ebay/init", headers=_auth(user_id))
        assert response.status_code == 500
        assert response.json()["error"] == "Failed to initialize OAuth session"


class TestShopifyCallback:
    async def _state(self, client, user_id) -> str:
        response = await client.post(
            "/api/v1/oauth/shopify/init", json={"store_name": "acme"}, headers=_auth(user_id),
        )
        return response.json()["data"]["state"]

    def _signed(self, params: dict) -> dict:
        message = "&".join(f"{k}={params[k]}" for k in sorted(params))
        return {**params, "hmac": hmac.new(SHOPIFY_SECRET.encode(), message.encode(), hashlib.sha256).hexdigest()}

    async def test_success_redirects_to_app(self, client, session_factory, user_id):
        state = await self._state(client, user_id)
        params = self._signed({"code": "c", "shop": "acme.myshopify.com", "state": state, "timestamp": "1"})
        mock_client = _mock_http({"access_token": "shpat_x", "scope": "read_products"}, {"shop": {"name": "Acme"}})

        with patch("httpx.AsyncClient", return_value=mock_client):
            response = await client.get("/api/v1/oauth/shopify/callback", params=params)

        assert response.status_code == 302
        location = urlparse(response.headers["location"])
        assert f"{location.scheme}://{location.netloc}{location.path}" == "https://app.tandril.test/Platforms"
        query = parse_qs(location.query)
        assert query["connected"] == ["true"]
        assert query["shop"] == ["acme.myshopify.com"]

        async with session_factory() as session:
            row = (await session.execute(select(PlatformConnection))).scalar_one()
        assert row.user_id == user_id
        assert row.shop_name == "Acme"

    async def test_unknown_state_redirects_with_error(self, client):
        params = self._signed({"code": "c", "shop": "acme.myshopify.com", "state": "forged"})
        response = await client.get("/api/v1/oauth/shopify/callback", params=params)

        assert response.status_code == 302
        query = parse_qs(urlparse(response.headers["location"]).query)
        assert query["error"] == ["Invalid or expired OAuth state"]

    async def test_missing_params_redirects_with_error(self, client):
        response = await client.get("/api/v1/oauth/shopify/callback")
        assert response.status_code == 302
        assert "error=" in response.headers["location"]


class TestEbayCallback:
    async def test_connects_account(self, client, user_id):
        init = await client.post("/api/v1/oauth/ebay/init", headers=_auth(user_id))
        state = init.json()["data"]["state"]
        mock_client = _mock_http(
            {"access_token": "v^1.1", "refresh_token": "r", "expires_in": 7200},
            {"userId": "ebay-uid-1", "username": "seller_one"},
        )

        with patch("httpx.AsyncClient", return_value=mock_client):
            response = await client.post(
                "/api/v1/oauth/ebay/callback",
                json={"code": "auth-code", "state": state},
                headers=_auth(user_id),
            )

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "eBay account connected successfully!"
        assert body["data"]["platform_type"] == "ebay"
        assert body["data"]["provider_username"] == "seller_one"

    async def test_replayed_state(self, client, user_id):
        init = await client.post("/api/v1/oauth/ebay/init", headers=_auth(user_id))
        state = init.json()["data"]["state"]
        mock_client = _mock_http({"access_token": "t"}, {"userId": "u", "username": "n"})

        with patch("httpx.AsyncClient", return_value=mock_client):
            first = await client.post(
                "/api/v1/oauth/ebay/callback", json={"code": "c", "state": state}, headers=_auth(user_id),
            )
            second = await client.post(
                "/api/v1/oauth/ebay/callback", json={"code": "c", "state": state}, headers=_auth(user_id),
            )

        assert first.status_code == 200
        assert second.status_code == 400
        assert second.json()["error"] == "Invalid or expired OAuth state"

    async def test_missing_code(self, client, user_id):
        response = await client.post(
            "/api/v1/oauth/ebay/callback", json={"state": "abc"}, headers=_auth(user_id),
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Missing required OAuth parameters"

    async def test_requires_auth(self, client):
        response = await client.post("/api/v1/oauth/ebay/callback", json={"code": "c", "state": "s"})
        assert response.status_code == 401
