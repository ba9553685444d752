"""auth core tables: users, password resets, smtp configurations, ai api keys

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa


revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "sys_users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("avatar_url", sa.String(500), nullable=True),
        sa.Column("phone_number", sa.String(500), nullable=True),
        sa.Column("points", sa.String(500), nullable=True),
        sa.Column("referral_code", sa.String(16), nullable=True),
        sa.Column("browser_fingerprint", sa.String(255), nullable=True),
        sa.Column("role_id", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_sys_users_id", "sys_users", ["id"])
    op.create_index("ix_sys_users_email", "sys_users", ["email"], unique=True)
    op.create_index("ix_sys_users_referral_code", "sys_users", ["referral_code"], unique=True)

    op.create_table(
        "sys_password_resets",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("sys_users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_sys_password_resets_id", "sys_password_resets", ["id"])
    op.create_index("ix_sys_password_resets_user_id", "sys_password_resets", ["user_id"])
    op.create_index("ix_sys_password_resets_token_hash", "sys_password_resets", ["token_hash"], unique=True)

    op.create_table(
        "sys_smtp_configurations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("host", sa.String(255), nullable=False),
        sa.Column("port", sa.Integer(), nullable=False),
        sa.Column("secure", sa.Boolean(), server_default=sa.false()),
        sa.Column("user", sa.String(255), nullable=False),
        sa.Column("password_encrypted", sa.String(1000), nullable=False),
        sa.Column("status", sa.String(20), server_default="active", nullable=False),
        sa.Column("failure_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_sys_smtp_configurations_id", "sys_smtp_configurations", ["id"])

    op.create_table(
        "sys_ai_api_keys",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("service", sa.String(32), server_default="gemini", nullable=False),
        sa.Column("api_key_encrypted", sa.String(1000), nullable=False),
        sa.Column("status", sa.String(20), server_default="active", nullable=False),
        sa.Column("failure_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_sys_ai_api_keys_id", "sys_ai_api_keys", ["id"])


def downgrade() -> None:
    op.drop_table("sys_ai_api_keys")
    op.drop_table("sys_smtp_configurations")
    op.drop_table("sys_password_resets")
    op.drop_table("sys_users")
