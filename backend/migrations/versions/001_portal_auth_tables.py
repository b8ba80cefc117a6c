"""Create portal auth tables: users, clients, verification_codes, verification_tokens.

Revision ID: 001_portal_auth_tables
Revises:
Create Date: 2026-10-19

- users: identity platform accounts (client portal population flag).
- clients: customer directory read by the identity resolver.
- verification_codes: one-time codes. No unique (email, purpose)
  constraint; issuance deletes then inserts.
- verification_tokens: hashed single-use link tokens and authorization codes.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001_portal_auth_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    # =========================================================================
    # users
    # =========================================================================
    op.create_table(
        "users",
        sa.Column(
            "id",
            UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("email_verified", sa.DateTime(timezone=True), nullable=True),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column(
            "is_client", sa.Boolean(), server_default=sa.text("false"), nullable=False
        ),
        sa.Column(
            "is_admin", sa.Boolean(), server_default=sa.text("false"), nullable=False
        ),
        sa.Column(
            "token_invalidated_before", sa.DateTime(timezone=True), nullable=True
        ),
        *_timestamps(),
    )

    # =========================================================================
    # clients
    # =========================================================================
    op.create_table(
        "clients",
        sa.Column(
            "id",
            UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("client_code", sa.String(20), unique=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(40), nullable=True),
        sa.Column(
            "is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False
        ),
        sa.Column(
            "user_id",
            UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        *_timestamps(),
    )
    op.create_index("ix_clients_email", "clients", ["email"])

    # =========================================================================
    # verification_codes
    # =========================================================================
    op.create_table(
        "verification_codes",
        sa.Column(
            "id",
            UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("code", sa.String(6), nullable=False),
        sa.Column("purpose", sa.String(32), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "purpose IN ('login', 'contact_verification')",
            name="ck_verification_codes_purpose",
        ),
    )
    op.create_index(
        "idx_verification_codes_email_purpose",
        "verification_codes",
        ["email", "purpose"],
    )
    op.create_index(
        "idx_verification_codes_expires_at", "verification_codes", ["expires_at"]
    )

    # =========================================================================
    # verification_tokens
    # =========================================================================
    op.create_table(
        "verification_tokens",
        sa.Column("identifier", sa.String(255), primary_key=True),
        sa.Column("token", sa.String(255), primary_key=True),
        sa.Column("expires", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "purpose",
            sa.String(20),
            server_default="magiclink",
            nullable=False,
        ),
        sa.Column("flow_type", sa.String(20), nullable=True),
        sa.UniqueConstraint(
            "identifier", "token", name="uq_verification_tokens_identifier_token"
        ),
        sa.CheckConstraint(
            "purpose IN ('magiclink', 'recovery', 'invite', 'authorization_code')",
            name="ck_verification_tokens_purpose",
        ),
    )
    op.create_index(
        "idx_verification_tokens_token", "verification_tokens", ["token"]
    )


def downgrade() -> None:
    op.drop_table("verification_tokens")
    op.drop_table("verification_codes")
    op.drop_table("clients")
    op.drop_table("users")
