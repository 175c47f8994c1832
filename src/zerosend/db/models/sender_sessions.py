"""Sender login sessions.

Sessions are database-backed so they can be revoked, and expire on their
own. Only the SHA-256 hash of the bearer token is stored.
"""

from __future__ import annotations

import uuid  # noqa: TC003 - required at runtime for SQLAlchemy type resolution

from sqlalchemy import Boolean, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import INET, UUID
from sqlalchemy.orm import Mapped, mapped_column

from zerosend.db.models.base import (
    Base,
    OptionalTimestampTZ,
    TimestampTZ,
    UUIDPrimaryKey,
)


class SenderSession(Base):
    """Bearer session issued by password login."""

    __tablename__ = "sender_sessions"

    id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]

    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    expires_at: Mapped[TimestampTZ]
    revoked_at: Mapped[OptionalTimestampTZ]

    ip_address: Mapped[str | None] = mapped_column(INET, nullable=True)
    user_agent_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    __table_args__ = (Index("ix_sender_sessions_user_active", "user_id", "is_active"),)

    def __repr__(self) -> str:
        return f"<SenderSession(id={self.id}, user_id={self.user_id}, active={self.is_active})>"
