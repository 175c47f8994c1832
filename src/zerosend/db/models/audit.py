"""Append-only audit log."""

from __future__ import annotations

import uuid  # noqa: TC003 - required at runtime for SQLAlchemy type resolution

from sqlalchemy import BigInteger, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import INET, JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from zerosend.db.models.base import (
    AuditEventType,
    AuditResult,
    Base,
    TimestampTZ,
    pg_enum,
)


class AuditLogEntry(Base):
    """One security-relevant event.

    Rows are only ever inserted. session_id and actor_id are nullable since
    some events (failed logins for unknown accounts) have neither.
    """

    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    created_at: Mapped[TimestampTZ]

    session_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("transfer_sessions.id", ondelete="SET NULL"),
        nullable=True,
    )
    actor_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    event_type: Mapped[AuditEventType] = mapped_column(
        pg_enum(AuditEventType, "audit_event_type"),
        nullable=False,
    )
    result: Mapped[AuditResult] = mapped_column(
        pg_enum(AuditResult, "audit_result"),
        nullable=False,
    )
    ip_address: Mapped[str | None] = mapped_column(INET, nullable=True)
    # SHA-256 of the User-Agent header, never the raw value
    user_agent_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    error_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    event_metadata: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)

    __table_args__ = (
        Index("ix_audit_logs_session_created", "session_id", "created_at"),
        Index("ix_audit_logs_event_created", "event_type", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<AuditLogEntry(id={self.id}, event={self.event_type.value})>"
