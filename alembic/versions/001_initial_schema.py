"""Initial schema: platforms, oauth_states, webhook_logs

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Marketplace connections created by OAuth callbacks
    op.create_table(
        "platforms",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("platform_type", sa.String(30), nullable=False),
        sa.Column("shop_domain", sa.String(255), nullable=True),
        sa.Column("shop_name", sa.String(255), nullable=True),
        sa.Column("provider_user_id", sa.String(255), nullable=True),
        sa.Column("provider_username", sa.String(255), nullable=True),
        sa.Column("access_token", sa.Text, nullable=True),
        sa.Column("refresh_token", sa.Text, nullable=True),
        sa.Column("access_scopes", postgresql.JSONB, nullable=True),
        sa.Column("token_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "platform_type", "shop_domain", name="uq_platforms_user_shop"),
    )
    op.create_index("ix_platforms_shop_domain", "platforms", ["shop_domain"])
    op.create_index("ix_platforms_provider_user_id", "platforms", ["provider_user_id"])
    op.create_index("ix_platforms_provider_username", "platforms", ["provider_username"])

    # Single-use OAuth CSRF state, 10 minute lifetime
    op.create_table(
        "oauth_states",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("state", sa.String(128), nullable=False, unique=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("provider", sa.String(30), nullable=False),
        sa.Column("shop_domain", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_oauth_states_expires_at", "oauth_states", ["expires_at"])

    # Append-only webhook audit trail
    op.create_table(
        "webhook_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("webhook_type", sa.String(50), nullable=False),
        sa.Column("source_domain", sa.String(255), nullable=True),
        sa.Column("topic", sa.String(100), nullable=True),
        sa.Column("raw_payload", postgresql.JSONB, nullable=False),
        sa.Column("payload_hash", sa.String(64), nullable=False),
        sa.Column("outcome", sa.String(20), nullable=False, server_default="processed"),
        sa.Column("correlation_id", sa.String(64), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_webhook_logs_webhook_type", "webhook_logs", ["webhook_type"])
    op.create_index("ix_webhook_logs_source_domain", "webhook_logs", ["source_domain"])
    op.create_index("ix_webhook_logs_correlation_id", "webhook_logs", ["correlation_id"])


def downgrade() -> None:
    op.drop_index("ix_webhook_logs_correlation_id", table_name="webhook_logs")
    op.drop_index("ix_webhook_logs_source_domain", table_name="webhook_logs")
    op.drop_index("ix_webhook_logs_webhook_type", table_name="webhook_logs")
    op.drop_table("webhook_logs")

    op.drop_index("ix_oauth_states_expires_at", table_name="oauth_states")
    op.drop_table("oauth_states")

    op.drop_index("ix_platforms_provider_username", table_name="platforms")
    op.drop_index("ix_platforms_provider_user_id", table_name="platforms")
    op.drop_index("ix_platforms_shop_domain", table_name="platforms")
    op.drop_table("platforms")
