"""
Abstract OAuth provider interface - every marketplace integration implements this.
Providers own their static scope sets, URL shapes and token exchange calls.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class ProviderTokens:
    access_token: str
    refresh_token: Optional[str] = None
    scopes: list[str] = field(default_factory=list)
    expires_at: Optional[datetime] = None


@dataclass
class ProviderAccount:
    """Display identity of the connected account."""
    shop_domain: Optional[str] = None
    shop_name: Optional[str] = None
    provider_user_id: Optional[str] = None
    provider_username: Optional[str] = None


class OAuthProvider(ABC):
    name: str = ""
    scopes: tuple[str, ...] = ()

    @abstractmethod
    def prepare(self, params: dict) -> dict:
        """
        Validate and normalize the caller's provider parameters.
        Returns the context bound to the state token (e.g. {"shop_domain": ...}).
        Raises ValidationError naming the missing or bad field.
        """
        ...

    def check_configured(self) -> None:
        """Raise ConfigurationError if the client credentials needed to start a flow are missing."""

    def callback_context(self, params: dict) -> dict:
        """
        Check provider-specific callback parameters and return the context
        the code exchange needs. Default: nothing beyond code and state.
        """
        return {}

    @abstractmethod
    def authorization_url(self, context: dict, state: str) -> str:
        """Build the provider's authorize URL. Called after check_configured()."""
        ...

    @abstractmethod
    async def exchange_code(self, code: str, context: dict) -> ProviderTokens:
        """Trade an authorization code for tokens. Raises DownstreamError on provider failure."""
        ...

    @abstractmethod
    async def fetch_account(self, tokens: ProviderTokens, context: dict) -> ProviderAccount:
        ...
