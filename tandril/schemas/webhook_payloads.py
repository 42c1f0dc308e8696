"""
Webhook payload schemas - compliance notifications from each provider.
Unknown fields are allowed; providers add fields without notice.
"""
from typing import Optional, Union
from pydantic import BaseModel, ConfigDict, Field


class ShopifyCustomer(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[Union[int, str]] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class ShopifyDataRequestPayload(BaseModel):
    """customers/data_request"""
    model_config = ConfigDict(extra="allow")

    shop_id: Optional[Union[int, str]] = None
    shop_domain: Optional[str] = None
    customer: Optional[ShopifyCustomer] = None
    orders_requested: list[Union[int, str]] = Field(default_factory=list)
    data_request: Optional[dict] = None


class ShopifyCustomerRedactPayload(BaseModel):
    """customers/redact"""
    model_config = ConfigDict(extra="allow")

    shop_id: Optional[Union[int, str]] = None
    shop_domain: Optional[str] = None
    customer: Optional[ShopifyCustomer] = None
    orders_to_redact: list[Union[int, str]] = Field(default_factory=list)


class ShopifyShopRedactPayload(BaseModel):
    """shop/redact - sent 48 hours after a store uninstalls the app."""
    model_config = ConfigDict(extra="allow")

    shop_id: Optional[Union[int, str]] = None
    shop_domain: Optional[str] = None


class EbayNotificationData(BaseModel):
    model_config = ConfigDict(extra="allow")

    username: Optional[str] = None
    userId: Optional[str] = None
    eiasToken: Optional[str] = None


class EbayNotification(BaseModel):
    model_config = ConfigDict(extra="allow")

    notificationId: Optional[str] = None
    eventDate: Optional[str] = None
    publishDate: Optional[str] = None
    publishAttemptCount: Optional[int] = None
    data: EbayNotificationData = Field(default_factory=EbayNotificationData)


class EbayMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    topic: Optional[str] = None
    schemaVersion: Optional[str] = None
    deprecated: Optional[bool] = None


class EbayAccountDeletionPayload(BaseModel):
    """MARKETPLACE_ACCOUNT_DELETION notification."""
    metadata: EbayMetadata = Field(default_factory=EbayMetadata)
    notification: EbayNotification = Field(default_factory=EbayNotification)
