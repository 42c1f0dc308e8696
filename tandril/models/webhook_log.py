"""
Webhook audit trail - every verified provider delivery is recorded.
Append-only: rows are never updated or deleted. Required for GDPR
compliance evidence (Shopify and eBay both audit receipt of redact requests).
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime
from sqlalchemy.dialects.postgresql import UUID, JSONB
from tandril.database import Base


class WebhookLog(Base):
    __tablename__ = "webhook_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    webhook_type = Column(String(50), nullable=False, index=True)  # gdpr_shop_redact, ebay_account_deletion, ...
    source_domain = Column(String(255), nullable=True, index=True)
    topic = Column(String(100), nullable=True)
    raw_payload = Column(JSONB, nullable=False)
    payload_hash = Column(String(64), nullable=False)
    outcome = Column(String(20), nullable=False, default="processed")  # processed, ignored, failed
    correlation_id = Column(String(64), nullable=True, index=True)
    processed_at = Column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )

    def __repr__(self) -> str:
        return f"<WebhookLog {self.webhook_type} outcome={self.outcome}>"
