"""
Application configuration using pydantic-settings.
Secrets default to empty so the app can boot; handlers that need a secret
raise ConfigurationError when it is missing.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    app_env: str = "development"
    app_url: str = "http://localhost:5173"  # Frontend, target of OAuth redirects
    api_base_url: str = "http://localhost:8000"
    log_level: str = "INFO"

    # Database
    database_url: str = "postgresql+asyncpg://localhost:5432/tandril"
    database_pool_size: int = 10
    database_max_overflow: int = 5

    # Redis (webhook rate limiting)
    redis_url: str = "redis://localhost:6379/0"
    webhook_rate_limit_per_minute: int = 120

    # Session tokens issued by the hosted auth platform (HS256)
    session_jwt_secret: str = ""
    session_jwt_audience: str = "authenticated"

    # Shopify
    shopify_api_key: str = ""
    shopify_api_secret: str = ""  # Also signs webhooks and callback redirects
    shopify_redirect_uri: str = ""  # Defaults to {api_base_url}/api/v1/oauth/shopify/callback
    shopify_api_version: str = "2024-01"

    # eBay
    ebay_client_id: str = ""
    ebay_client_secret: str = ""
    ebay_environment: str = "production"  # production, sandbox
    ebay_redirect_uri: str = ""  # Defaults to {app_url}/ebay-callback
    ebay_webhook_secret: str = ""

    # OAuth state tokens
    oauth_state_ttl_minutes: int = 10
    oauth_state_failure_fatal: bool = True  # False skips CSRF state persistence on DB errors

    # Encryption (Fernet key for provider tokens at rest)
    encryption_key: str = ""

    # Sentry
    sentry_dsn: str = ""

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def resolved_shopify_redirect_uri(self) -> str:
        return self.shopify_redirect_uri or f"{self.api_base_url}/api/v1/oauth/shopify/callback"

    @property
    def resolved_ebay_redirect_uri(self) -> str:
        return self.ebay_redirect_uri or f"{self.app_url}/ebay-callback"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
