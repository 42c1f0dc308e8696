"""
API request/response schemas for the OAuth endpoints.
Webhook acknowledgments are plain dicts built by the ingestor.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class AuthorizationData(BaseModel):
    authorization_url: str
    state: str
    provider: str
    expires_at: datetime
    shop_domain: Optional[str] = None


class OAuthInitResponse(BaseModel):
    success: bool = True
    data: AuthorizationData


class EbayCallbackRequest(BaseModel):
    code: Optional[str] = None
    state: Optional[str] = None


class PlatformSummary(BaseModel):
    id: str
    platform_type: str
    shop_domain: Optional[str] = None
    shop_name: Optional[str] = None
    provider_username: Optional[str] = None
    is_active: bool = True


class ConnectionResponse(BaseModel):
    success: bool = True
    message: str
    data: PlatformSummary


class ErrorResponse(BaseModel):
    success: bool = False
    error: str


class InventoryUpdateData(BaseModel):
    inventory_level: dict
    message: str


class InventoryUpdateResponse(BaseModel):
    success: bool = True
    data: InventoryUpdateData
