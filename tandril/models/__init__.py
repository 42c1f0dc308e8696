"""
Database models - import all models here so Alembic can discover them.
"""
from tandril.models.oauth_state import OAuthState
from tandril.models.platform import PlatformConnection
from tandril.models.webhook_log import WebhookLog

__all__ = [
    "OAuthState",
    "PlatformConnection",
    "WebhookLog",
]
