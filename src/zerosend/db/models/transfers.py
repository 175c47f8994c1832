"""Transfer session model.

A transfer session is the durable half of a transfer. The wrapped key is
deliberately absent: it only ever lives in the secret cache.
"""

from __future__ import annotations

import uuid  # noqa: TC003 - required at runtime for SQLAlchemy type resolution
from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from zerosend.db.models.base import (
    Base,
    CloudType,
    Digest,
    MediumString,
    OptionalTimestampTZ,
    SessionStatus,
    TimestampTZ,
    UUIDPrimaryKey,
    pg_enum,
)


class TransferSession(Base):
    """One sender-to-recipient file transfer.

    Invariants enforced here and by the store's conditional updates:
    - download_count never exceeds max_downloads
    - cloud_file_id is set before status becomes ready
    - once deleted_at is set no wrapped key is ever released again

    Rows are never hard-deleted; deleted_at is a logical tombstone so the
    audit trail keeps pointing at something.
    """

    __tablename__ = "transfer_sessions"

    id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]
    updated_at: Mapped[TimestampTZ]

    # 256-bit random token; the only identifier the recipient ever sees
    url_token: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)

    sender_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )
    # Snapshot of the exact key used at initiation, never re-resolved
    recipient_key_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("user_public_keys.id", ondelete="RESTRICT"),
        nullable=False,
    )
    recipient_email: Mapped[MediumString] = mapped_column(nullable=False)
    recipient_email_hash: Mapped[Digest] = mapped_column(nullable=False)

    file_hash_sha3: Mapped[Digest] = mapped_column(nullable=False)
    encrypted_filename: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)

    cloud_type: Mapped[CloudType] = mapped_column(
        pg_enum(CloudType, "cloud_type"),
        nullable=False,
        default=CloudType.S3,
    )
    cloud_file_id: Mapped[str | None] = mapped_column(String(512), nullable=True)

    max_downloads: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    download_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[SessionStatus] = mapped_column(
        pg_enum(SessionStatus, "session_status"),
        nullable=False,
        default=SessionStatus.INITIATED,
    )
    downloaded_at: Mapped[OptionalTimestampTZ]
    deleted_at: Mapped[OptionalTimestampTZ]

    __table_args__ = (
        CheckConstraint(
            "download_count >= 0 AND download_count <= max_downloads",
            name="download_budget",
        ),
        CheckConstraint("max_downloads BETWEEN 1 AND 5", name="max_downloads_range"),
        CheckConstraint("file_size_bytes > 0", name="file_size_positive"),
        Index("ix_transfer_sessions_sender_created", "sender_id", "created_at"),
        Index("ix_transfer_sessions_status_expires", "status", "expires_at"),
    )

    @property
    def remaining_downloads(self) -> int:
        """Downloads left in the budget."""
        return max(0, self.max_downloads - self.download_count)

    @property
    def is_deleted(self) -> bool:
        """Whether the logical tombstone is set."""
        return self.deleted_at is not None

    def is_expired(self, now: datetime) -> bool:
        """Whether the session's validity window has closed at ``now``."""
        return now >= self.expires_at

    def __repr__(self) -> str:
        return (
            f"<TransferSession(id={self.id}, status={self.status.value}, "
            f"downloads={self.download_count}/{self.max_downloads})>"
        )
