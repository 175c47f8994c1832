"""SQLAlchemy ORM models for ZeroSend.

This package contains all database models organized by domain:
- base: Common metadata, column types and enums
- users: Accounts and recipient public keys
- transfers: Transfer session state machine
- audit: Append-only audit log
- sender_sessions: Sender bearer sessions
"""

from zerosend.db.models.audit import AuditLogEntry
from zerosend.db.models.base import (
    AuditEventType,
    AuditResult,
    Base,
    CloudType,
    KeyType,
    SessionStatus,
    UserRole,
    metadata,
)
from zerosend.db.models.sender_sessions import SenderSession
from zerosend.db.models.transfers import TransferSession
from zerosend.db.models.users import User, UserPublicKey

__all__ = [
    "AuditEventType",
    "AuditLogEntry",
    "AuditResult",
    "Base",
    "CloudType",
    "KeyType",
    "SenderSession",
    "SessionStatus",
    "TransferSession",
    "User",
    "UserPublicKey",
    "UserRole",
    "metadata",
]
