"""initial schema (users, properties, media uploads, token ledger)

Revision ID: 0001_initial
Revises:
Create Date: 2026-01-14
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("username", sa.String(length=80), nullable=False),
        sa.Column("wallet_address", sa.String(length=255), nullable=True),
        sa.Column("token_balance", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("username", name="uq_users_username"),
    )
    op.create_index("ix_users_username", "users", ["username"])

    op.create_table(
        "properties",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("location", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("price", sa.Float(), nullable=False, server_default="0"),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("bedrooms", sa.Integer(), nullable=True),
        sa.Column("bathrooms", sa.Integer(), nullable=True),
        sa.Column("area_sqm", sa.Float(), nullable=True),
        sa.Column("content_hash", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_properties_user_id", "properties", ["user_id"])
    op.create_index("ix_properties_created_at", "properties", ["created_at"])

    op.create_table(
        "media_uploads",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("property_id", sa.Uuid(), sa.ForeignKey("properties.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("file_path", sa.String(length=512), nullable=False),
        sa.Column("file_type", sa.String(length=10), nullable=False),
        sa.Column("content_hash", sa.String(length=64), nullable=False),
        sa.Column("file_size", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("is_original", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("tokens_earned", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("original_filename", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("content_type", sa.String(length=100), nullable=False, server_default=""),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_media_uploads_property_id", "media_uploads", ["property_id"])
    op.create_index("ix_media_uploads_user_id", "media_uploads", ["user_id"])
    op.create_index("ix_media_uploads_content_hash", "media_uploads", ["content_hash"])
    # Dedup gate: one original row per fingerprint; duplicates may repeat it.
    op.create_index(
        "uq_media_uploads_original_content_hash",
        "media_uploads",
        ["content_hash"],
        unique=True,
        postgresql_where=sa.text("is_original"),
        sqlite_where=sa.text("is_original = 1"),
    )

    op.create_table(
        "token_transactions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("media_id", sa.Uuid(), sa.ForeignKey("media_uploads.id", ondelete="SET NULL"), nullable=True),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("transaction_type", sa.String(length=40), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("media_id", name="uq_token_transactions_media_id"),
    )
    op.create_index("ix_token_transactions_user_id", "token_transactions", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_token_transactions_user_id", table_name="token_transactions")
    op.drop_table("token_transactions")

    op.drop_index("uq_media_uploads_original_content_hash", table_name="media_uploads")
    op.drop_index("ix_media_uploads_content_hash", table_name="media_uploads")
    op.drop_index("ix_media_uploads_user_id", table_name="media_uploads")
    op.drop_index("ix_media_uploads_property_id", table_name="media_uploads")
    op.drop_table("media_uploads")

    op.drop_index("ix_properties_created_at", table_name="properties")
    op.drop_index("ix_properties_user_id", table_name="properties")
    op.drop_table("properties")

    op.drop_index("ix_users_username", table_name="users")
    op.drop_table("users")
