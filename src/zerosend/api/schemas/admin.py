"""Pydantic schemas for admin endpoints.

Session views never carry wrapped keys, auth tokens, TOTP material or
password hashes; only the presence of a cached key is reported.
"""

from __future__ import annotations

# NOTE: datetime and UUID must remain at runtime for Pydantic validation
from datetime import datetime  # noqa: TC003
from typing import Any
from uuid import UUID  # noqa: TC003

from pydantic import BaseModel, Field

# -----------------------------------------------------------------------------
# Transfer sessions
# -----------------------------------------------------------------------------


class SessionSummary(BaseModel):
    id: UUID
    sender_id: UUID
    recipient_email: str
    status: str
    cloud_type: str
    file_size_bytes: int
    max_downloads: int
    download_count: int
    expires_at: datetime
    created_at: datetime
    deleted_at: datetime | None = None


class SessionListResponse(BaseModel):
    items: list[SessionSummary]
    total: int
    page: int
    limit: int


class SessionDetailResponse(SessionSummary):
    """Session plus live cache state."""

    file_hash_sha3: str
    recipient_key_id: UUID
    cloud_file_id: str | None = None
    downloaded_at: datetime | None = None
    failed_attempts: int = Field(..., description="Current TOTP failure counter")
    locked: bool
    wrapped_key_present: bool


class ForceDeleteResponse(BaseModel):
    deleted: bool = True
    already_deleted: bool
    storage_deleted: bool


class UnlockResponse(BaseModel):
    unlocked: bool = True
    counter_existed: bool


# -----------------------------------------------------------------------------
# Audit log
# -----------------------------------------------------------------------------


class AuditLogItem(BaseModel):
    id: int
    session_id: UUID | None = None
    actor_id: UUID | None = None
    event_type: str
    result: str
    ip_address: str | None = None
    error_code: str | None = None
    metadata: dict[str, Any] | None = None
    created_at: datetime


class AuditLogListResponse(BaseModel):
    items: list[AuditLogItem]
    total: int
    page: int
    limit: int


# -----------------------------------------------------------------------------
# Users
# -----------------------------------------------------------------------------


class UserSummary(BaseModel):
    id: UUID
    email: str
    display_name: str
    role: str
    is_active: bool
    created_at: datetime
    last_login_at: datetime | None = None


class UserListResponse(BaseModel):
    items: list[UserSummary]
    total: int
    page: int
    limit: int


class DeactivateUserResponse(BaseModel):
    deactivated: bool = True
