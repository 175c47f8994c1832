"""Admin router.

All endpoints require a sender session with the admin role. Pagination is
``page`` (1-based) and ``limit`` (default 50, max 200).
"""

from __future__ import annotations

import logging

# NOTE: datetime and UUID must remain at runtime for FastAPI query parsing
from datetime import UTC, datetime  # noqa: TC003
from typing import TYPE_CHECKING, Annotated
from uuid import UUID  # noqa: TC003

from fastapi import APIRouter, Query
from fastapi.responses import Response

from zerosend.api.dependencies import ClientIp, CurrentAdmin, Services, UserAgent
from zerosend.api.schemas.admin import (
    AuditLogItem,
    AuditLogListResponse,
    DeactivateUserResponse,
    ForceDeleteResponse,
    SessionDetailResponse,
    SessionListResponse,
    SessionSummary,
    UnlockResponse,
    UserListResponse,
    UserSummary,
)
from zerosend.db.models import AuditEventType, AuditResult, SessionStatus
from zerosend.services.admin import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT, make_page
from zerosend.services.store import AuditLogFilter, SessionFilter

if TYPE_CHECKING:
    from zerosend.db.models import AuditLogEntry, TransferSession, User
    from zerosend.services.admin import SessionDetail

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    responses={
        401: {"description": "Authentication required"},
        403: {"description": "Administrator role required"},
    },
)

PageNumber = Annotated[int, Query(ge=1, description="1-based page number")]
PageLimit = Annotated[int, Query(ge=1, le=MAX_PAGE_LIMIT, description="Page size")]


# -----------------------------------------------------------------------------
# Converters
# -----------------------------------------------------------------------------


def _session_fields(transfer: TransferSession) -> dict:
    return {
        "id": transfer.id,
        "sender_id": transfer.sender_id,
        "recipient_email": transfer.recipient_email,
        "status": transfer.status.value,
        "cloud_type": transfer.cloud_type.value,
        "file_size_bytes": transfer.file_size_bytes,
        "max_downloads": transfer.max_downloads,
        "download_count": transfer.download_count,
        "expires_at": transfer.expires_at,
        "created_at": transfer.created_at,
        "deleted_at": transfer.deleted_at,
    }


def _session_detail(detail: SessionDetail) -> SessionDetailResponse:
    transfer = detail.transfer
    return SessionDetailResponse(
        **_session_fields(transfer),
        file_hash_sha3=transfer.file_hash_sha3,
        recipient_key_id=transfer.recipient_key_id,
        cloud_file_id=transfer.cloud_file_id,
        downloaded_at=transfer.downloaded_at,
        failed_attempts=detail.failed_attempts,
        locked=detail.locked,
        wrapped_key_present=detail.wrapped_key_present,
    )


def _audit_item(entry: AuditLogEntry) -> AuditLogItem:
    return AuditLogItem(
        id=entry.id,
        session_id=entry.session_id,
        actor_id=entry.actor_id,
        event_type=entry.event_type.value,
        result=entry.result.value,
        ip_address=str(entry.ip_address) if entry.ip_address is not None else None,
        error_code=entry.error_code,
        metadata=entry.event_metadata,
        created_at=entry.created_at,
    )


def _user_summary(user: User) -> UserSummary:
    return UserSummary(
        id=user.id,
        email=user.email,
        display_name=user.display_name,
        role=user.role.value,
        is_active=user.is_active,
        created_at=user.created_at,
        last_login_at=user.last_login_at,
    )


# -----------------------------------------------------------------------------
# Transfer sessions
# -----------------------------------------------------------------------------


@router.get("/sessions", response_model=SessionListResponse, summary="List transfer sessions")
async def list_sessions(
    admin: CurrentAdmin,
    services: Services,
    status: Annotated[SessionStatus | None, Query(description="Filter by status")] = None,
    search: Annotated[
        str | None, Query(max_length=254, description="Recipient email substring")
    ] = None,
    sender_id: Annotated[UUID | None, Query(description="Filter by sender")] = None,
    page: PageNumber = 1,
    limit: PageLimit = DEFAULT_PAGE_LIMIT,
) -> SessionListResponse:
    result = await services.admin.list_sessions(
        admin,
        SessionFilter(status=status, search=search or None, sender_id=sender_id),
        make_page(page, limit),
    )
    return SessionListResponse(
        items=[SessionSummary(**_session_fields(t)) for t in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
    )


@router.get(
    "/sessions/{session_id}", response_model=SessionDetailResponse, summary="Session detail"
)
async def get_session(
    session_id: UUID, admin: CurrentAdmin, services: Services
) -> SessionDetailResponse:
    return _session_detail(await services.admin.get_session(admin, session_id))


@router.delete(
    "/sessions/{session_id}",
    response_model=ForceDeleteResponse,
    summary="Force-delete a transfer (key, object and session)",
)
async def force_delete(
    session_id: UUID,
    admin: CurrentAdmin,
    services: Services,
    ip_address: ClientIp,
    user_agent: UserAgent,
) -> ForceDeleteResponse:
    result = await services.admin.force_delete(
        admin, session_id, ip_address=ip_address, user_agent=user_agent
    )
    return ForceDeleteResponse(
        already_deleted=result.already_deleted,
        storage_deleted=result.storage_deleted,
    )


@router.post(
    "/sessions/{session_id}/unlock",
    response_model=UnlockResponse,
    summary="Reset the TOTP lockout of a transfer URL",
)
async def unlock(
    session_id: UUID,
    admin: CurrentAdmin,
    services: Services,
    ip_address: ClientIp,
    user_agent: UserAgent,
) -> UnlockResponse:
    existed = await services.admin.unlock(
        admin, session_id, ip_address=ip_address, user_agent=user_agent
    )
    return UnlockResponse(counter_existed=existed)


# -----------------------------------------------------------------------------
# Audit log
# -----------------------------------------------------------------------------


def _log_filter(
    session_id: UUID | None,
    actor_id: UUID | None,
    event_type: AuditEventType | None,
    result: AuditResult | None,
    since: datetime | None,
    until: datetime | None,
) -> AuditLogFilter:
    return AuditLogFilter(
        session_id=session_id,
        actor_id=actor_id,
        event_type=event_type,
        result=result,
        since=since,
        until=until,
    )


@router.get("/logs", response_model=AuditLogListResponse, summary="List audit entries")
async def list_logs(
    admin: CurrentAdmin,
    services: Services,
    session_id: UUID | None = None,
    actor_id: UUID | None = None,
    event_type: AuditEventType | None = None,
    result: AuditResult | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    page: PageNumber = 1,
    limit: PageLimit = DEFAULT_PAGE_LIMIT,
) -> AuditLogListResponse:
    listing = await services.admin.list_logs(
        admin,
        _log_filter(session_id, actor_id, event_type, result, since, until),
        make_page(page, limit),
    )
    return AuditLogListResponse(
        items=[_audit_item(e) for e in listing.items],
        total=listing.total,
        page=listing.page,
        limit=listing.limit,
    )


@router.get(
    "/logs/export",
    summary="Export audit entries as CSV",
    response_class=Response,
    responses={200: {"content": {"text/csv": {}}}},
)
async def export_logs(
    admin: CurrentAdmin,
    services: Services,
    session_id: UUID | None = None,
    actor_id: UUID | None = None,
    event_type: AuditEventType | None = None,
    result: AuditResult | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
) -> Response:
    csv_body = await services.admin.export_logs_csv(
        admin, _log_filter(session_id, actor_id, event_type, result, since, until)
    )
    filename = f"zerosend-audit-{datetime.now(UTC):%Y%m%dT%H%M%SZ}.csv"
    return Response(
        content=csv_body,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# -----------------------------------------------------------------------------
# Users
# -----------------------------------------------------------------------------


@router.get("/users", response_model=UserListResponse, summary="List users")
async def list_users(
    admin: CurrentAdmin,
    services: Services,
    page: PageNumber = 1,
    limit: PageLimit = DEFAULT_PAGE_LIMIT,
) -> UserListResponse:
    listing = await services.admin.list_users(admin, make_page(page, limit))
    return UserListResponse(
        items=[_user_summary(u) for u in listing.items],
        total=listing.total,
        page=listing.page,
        limit=listing.limit,
    )


@router.delete(
    "/users/{user_id}", response_model=DeactivateUserResponse, summary="Deactivate a user"
)
async def deactivate_user(
    user_id: UUID, admin: CurrentAdmin, services: Services
) -> DeactivateUserResponse:
    await services.admin.deactivate_user(admin, user_id)
    return DeactivateUserResponse()
