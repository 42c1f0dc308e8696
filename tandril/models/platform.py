"""
Platform connection - a marketplace account a Tandril user has linked via OAuth.
Created by the OAuth callback, removed by provider redact/deletion webhooks.
Tokens are Fernet-encrypted at rest (see tandril.utils.encryption).
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Text, Boolean, DateTime, Index, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column
from tandril.database import Base


class PlatformConnection(Base):
    __tablename__ = "platforms"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    platform_type: Mapped[str] = mapped_column(String(30), nullable=False)  # shopify, ebay

    # Shopify identity
    shop_domain: Mapped[Optional[str]] = mapped_column(String(255))
    shop_name: Mapped[Optional[str]] = mapped_column(String(255))

    # eBay identity
    provider_user_id: Mapped[Optional[str]] = mapped_column(String(255))
    provider_username: Mapped[Optional[str]] = mapped_column(String(255))

    # Credentials (encrypted)
    access_token: Mapped[Optional[str]] = mapped_column(Text)
    refresh_token: Mapped[Optional[str]] = mapped_column(Text)
    access_scopes: Mapped[Optional[list]] = mapped_column(JSONB)
    token_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint("user_id", "platform_type", "shop_domain", name="uq_platforms_user_shop"),
        Index("ix_platforms_shop_domain", "shop_domain"),
        Index("ix_platforms_provider_user_id", "provider_user_id"),
        Index("ix_platforms_provider_username", "provider_username"),
    )

    def __repr__(self) -> str:
        ident = self.shop_domain or self.provider_username or self.provider_user_id
        return f"<PlatformConnection {self.platform_type} {ident}>"
