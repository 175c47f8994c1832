"""User accounts and recipient public keys."""

from __future__ import annotations

import uuid  # noqa: TC003 - required at runtime for SQLAlchemy type resolution

from sqlalchemy import Boolean, ForeignKey, Index, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from zerosend.db.models.base import (
    Base,
    Digest,
    KeyType,
    MediumString,
    OptionalTimestampTZ,
    ShortString,
    TimestampTZ,
    UserRole,
    UUIDPrimaryKey,
    pg_enum,
)


class User(Base):
    """A sender and/or recipient account.

    Lookups go through ``email_hash`` so the plaintext address is only read
    when a notification has to be sent.
    """

    __tablename__ = "users"

    id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]
    updated_at: Mapped[TimestampTZ]

    email: Mapped[MediumString] = mapped_column(nullable=False)
    email_hash: Mapped[Digest] = mapped_column(unique=True, nullable=False)
    display_name: Mapped[ShortString] = mapped_column(nullable=False)
    role: Mapped[UserRole] = mapped_column(
        pg_enum(UserRole, "user_role"),
        nullable=False,
        default=UserRole.USER,
    )
    password_hash: Mapped[str | None] = mapped_column(Text, nullable=True)
    # AES-256-GCM encrypted base32 TOTP secret ("iv:tag:ciphertext" hex)
    totp_secret_enc: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_login_at: Mapped[OptionalTimestampTZ]

    def __repr__(self) -> str:
        return f"<User(id={self.id}, role={self.role.value if self.role else None})>"


class UserPublicKey(Base):
    """A recipient public key.

    Transfer sessions reference the exact key row used at initiation, so a
    later rotation never changes which key a pending transfer was wrapped for.
    """

    __tablename__ = "user_public_keys"

    id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    key_type: Mapped[KeyType] = mapped_column(
        pg_enum(KeyType, "key_type"),
        nullable=False,
    )
    public_key_b64: Mapped[str] = mapped_column(Text, nullable=False)
    # SHA3-256 of the decoded key
    fingerprint: Mapped[Digest] = mapped_column(nullable=False)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_revoked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    expires_at: Mapped[OptionalTimestampTZ]
    label: Mapped[str | None] = mapped_column(String(100), nullable=True)

    __table_args__ = (Index("ix_user_public_keys_user_primary", "user_id", "is_primary"),)

    def __repr__(self) -> str:
        return f"<UserPublicKey(id={self.id}, user_id={self.user_id}, type={self.key_type})>"
