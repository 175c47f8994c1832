"""Base model definitions and common types.

This module provides:
- SQLAlchemy declarative base with naming conventions
- Reusable annotated column types
- Enum types used across multiple models
"""

import enum
import uuid
from datetime import datetime
from typing import Annotated

from sqlalchemy import DateTime, Enum, MetaData, String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, mapped_column, registry

# Naming convention for constraints ensures consistent migration generation.
# See: https://alembic.sqlalchemy.org/en/latest/naming.html
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=NAMING_CONVENTION)

type_registry = registry()

# UUID primary key with server-side default generation
UUIDPrimaryKey = Annotated[
    uuid.UUID,
    mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    ),
]

# Timestamp with timezone, defaults to now
TimestampTZ = Annotated[
    datetime,
    mapped_column(DateTime(timezone=True), server_default=text("now()")),
]

# Optional timestamp with timezone
OptionalTimestampTZ = Annotated[
    datetime | None,
    mapped_column(DateTime(timezone=True), nullable=True),
]

ShortString = Annotated[str, mapped_column(String(100))]
MediumString = Annotated[str, mapped_column(String(255))]
# Hex SHA-256 / SHA3-256 digests
Digest = Annotated[str, mapped_column(String(64))]


class Base(DeclarativeBase):
    """Declarative base for all ZeroSend models."""

    metadata = metadata
    registry = type_registry


def pg_enum(enum_cls: type[enum.Enum], name: str) -> Enum:
    """Postgres ENUM column type storing member values rather than names."""
    return Enum(
        enum_cls,
        name=name,
        create_constraint=True,
        values_callable=lambda members: [m.value for m in members],
    )


# =============================================================================
# Common Enums
# =============================================================================


class UserRole(enum.Enum):
    """Account role.

    Values:
        USER: Sender and/or recipient
        ADMIN: May list, force-delete and unlock transfers
    """

    USER = "user"
    ADMIN = "admin"


class KeyType(enum.Enum):
    """Recipient public key algorithm.

    Values:
        KYBER768: ML-KEM-768 key encapsulation key
    """

    KYBER768 = "kyber768"


class CloudType(enum.Enum):
    """Object storage backend holding the ciphertext.

    Values:
        S3: S3-compatible object storage (MinIO, AWS, ...)
    """

    S3 = "s3"


class SessionStatus(enum.Enum):
    """Transfer session lifecycle states.

    States:
        INITIATED: Row created, upload and key hand-off pending
        READY: Key stored and share URL issued
        DOWNLOADED: Download budget fully used
        EXPIRED: Past expires_at (set by admin listings, never required)
        DELETED: Terminal; wrapped key and object removed
    """

    INITIATED = "initiated"
    READY = "ready"
    DOWNLOADED = "downloaded"
    EXPIRED = "expired"
    DELETED = "deleted"


class AuditEventType(enum.Enum):
    """Security-relevant events written to the audit log.

    Values:
        URL_ISSUED: Transfer created, key stored or share URL finalized
        ACCESS: Recipient opened the transfer landing page
        AUTH_SUCCESS: Password login or TOTP check succeeded
        AUTH_FAIL: Password login or TOTP check failed
        DL_SUCCESS: Wrapped key and download URL released
        DL_FAIL: Release refused after authentication
        DELETED: Recipient completed the transfer (zero-retention cleanup)
        ADMIN_DELETE: Administrator force-deleted the transfer
        LOCK: Transfer URL locked by repeated TOTP failures
        UNLOCK: Administrator reset the lock counter
    """

    URL_ISSUED = "url_issued"
    ACCESS = "access"
    AUTH_SUCCESS = "auth_success"
    AUTH_FAIL = "auth_fail"
    DL_SUCCESS = "dl_success"
    DL_FAIL = "dl_fail"
    DELETED = "deleted"
    ADMIN_DELETE = "admin_delete"
    LOCK = "lock"
    UNLOCK = "unlock"


class AuditResult(enum.Enum):
    """Outcome recorded with an audit event."""

    SUCCESS = "success"
    FAILURE = "failure"
