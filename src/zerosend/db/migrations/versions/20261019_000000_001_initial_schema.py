"""Initial schema.

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

Creates all tables for ZeroSend:
- users, user_public_keys (accounts and recipient keys)
- transfer_sessions (transfer state machine)
- audit_logs (append-only audit trail)
- sender_sessions (sender bearer sessions)
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

ENUMS = {
    "user_role": ("user", "admin"),
    "key_type": ("kyber768",),
    "cloud_type": ("s3",),
    "session_status": ("initiated", "ready", "downloaded", "expired", "deleted"),
    "audit_event_type": (
        "url_issued",
        "access",
        "auth_success",
        "auth_fail",
        "dl_success",
        "dl_fail",
        "deleted",
        "admin_delete",
        "lock",
        "unlock",
    ),
    "audit_result": ("success", "failure"),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _timestamps(*, updated: bool = True) -> list[sa.Column]:
    columns = [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        )
    ]
    if updated:
        columns.append(
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=True),
                server_default=sa.text("now()"),
                nullable=False,
            )
        )
    return columns


def upgrade() -> None:
    """Apply migration: initial schema."""
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name, create_type=False).create(op.get_bind(), checkfirst=True)

    op.create_table(
        "users",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        *_timestamps(),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("email_hash", sa.String(64), nullable=False),
        sa.Column("display_name", sa.String(100), nullable=False),
        sa.Column("role", _enum("user_role"), nullable=False, server_default="user"),
        sa.Column("password_hash", sa.Text(), nullable=True),
        sa.Column("totp_secret_enc", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_users")),
        sa.UniqueConstraint("email_hash", name=op.f("uq_users_email_hash")),
    )

    op.create_table(
        "user_public_keys",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        *_timestamps(updated=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("key_type", _enum("key_type"), nullable=False),
        sa.Column("public_key_b64", sa.Text(), nullable=False),
        sa.Column("fingerprint", sa.String(64), nullable=False),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_revoked", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("label", sa.String(100), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_user_public_keys")),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name=op.f("fk_user_public_keys_user_id_users"),
            ondelete="CASCADE",
        ),
    )
    op.create_index(
        "ix_user_public_keys_user_primary",
        "user_public_keys",
        ["user_id", "is_primary"],
        unique=False,
    )

    op.create_table(
        "transfer_sessions",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        *_timestamps(),
        sa.Column("url_token", sa.String(64), nullable=False),
        sa.Column("sender_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("recipient_key_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("recipient_email", sa.String(255), nullable=False),
        sa.Column("recipient_email_hash", sa.String(64), nullable=False),
        sa.Column("file_hash_sha3", sa.String(64), nullable=False),
        sa.Column("encrypted_filename", sa.Text(), nullable=True),
        sa.Column("file_size_bytes", sa.BigInteger(), nullable=False),
        sa.Column("cloud_type", _enum("cloud_type"), nullable=False, server_default="s3"),
        sa.Column("cloud_file_id", sa.String(512), nullable=True),
        sa.Column("max_downloads", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("download_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "status", _enum("session_status"), nullable=False, server_default="initiated"
        ),
        sa.Column("downloaded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_transfer_sessions")),
        sa.UniqueConstraint("url_token", name=op.f("uq_transfer_sessions_url_token")),
        sa.CheckConstraint(
            "download_count >= 0 AND download_count <= max_downloads",
            name=op.f("ck_transfer_sessions_download_budget"),
        ),
        sa.CheckConstraint(
            "max_downloads BETWEEN 1 AND 5",
            name=op.f("ck_transfer_sessions_max_downloads_range"),
        ),
        sa.CheckConstraint(
            "file_size_bytes > 0",
            name=op.f("ck_transfer_sessions_file_size_positive"),
        ),
        sa.ForeignKeyConstraint(
            ["sender_id"],
            ["users.id"],
            name=op.f("fk_transfer_sessions_sender_id_users"),
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["recipient_key_id"],
            ["user_public_keys.id"],
            name=op.f("fk_transfer_sessions_recipient_key_id_user_public_keys"),
            ondelete="RESTRICT",
        ),
    )
    op.create_index(
        "ix_transfer_sessions_sender_created",
        "transfer_sessions",
        ["sender_id", "created_at"],
        unique=False,
    )
    op.create_index(
        "ix_transfer_sessions_status_expires",
        "transfer_sessions",
        ["status", "expires_at"],
        unique=False,
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        *_timestamps(updated=False),
        sa.Column("session_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("actor_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("event_type", _enum("audit_event_type"), nullable=False),
        sa.Column("result", _enum("audit_result"), nullable=False),
        sa.Column("ip_address", postgresql.INET(), nullable=True),
        sa.Column("user_agent_hash", sa.String(64), nullable=True),
        sa.Column("error_code", sa.String(50), nullable=True),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_audit_logs")),
        sa.ForeignKeyConstraint(
            ["session_id"],
            ["transfer_sessions.id"],
            name=op.f("fk_audit_logs_session_id_transfer_sessions"),
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["actor_id"],
            ["users.id"],
            name=op.f("fk_audit_logs_actor_id_users"),
            ondelete="SET NULL",
        ),
    )
    op.create_index(
        "ix_audit_logs_session_created", "audit_logs", ["session_id", "created_at"], unique=False
    )
    op.create_index(
        "ix_audit_logs_event_created", "audit_logs", ["event_type", "created_at"], unique=False
    )

    op.create_table(
        "sender_sessions",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        *_timestamps(updated=False),
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ip_address", postgresql.INET(), nullable=True),
        sa.Column("user_agent_hash", sa.String(64), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_sender_sessions")),
        sa.UniqueConstraint("token_hash", name=op.f("uq_sender_sessions_token_hash")),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name=op.f("fk_sender_sessions_user_id_users"),
            ondelete="CASCADE",
        ),
    )
    op.create_index(
        "ix_sender_sessions_user_active",
        "sender_sessions",
        ["user_id", "is_active"],
        unique=False,
    )


def downgrade() -> None:
    """Revert migration: drop all tables and enum types."""
    op.drop_index("ix_sender_sessions_user_active", table_name="sender_sessions")
    op.drop_table("sender_sessions")
    op.drop_index("ix_audit_logs_event_created", table_name="audit_logs")
    op.drop_index("ix_audit_logs_session_created", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_transfer_sessions_status_expires", table_name="transfer_sessions")
    op.drop_index("ix_transfer_sessions_sender_created", table_name="transfer_sessions")
    op.drop_table("transfer_sessions")
    op.drop_index("ix_user_public_keys_user_primary", table_name="user_public_keys")
    op.drop_table("user_public_keys")
    op.drop_table("users")

    for name in reversed(list(ENUMS)):
        postgresql.ENUM(name=name).drop(op.get_bind(), checkfirst=True)
