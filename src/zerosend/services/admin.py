"""Administrative operations over transfers, audit logs and users.

Every entry point takes the acting principal and refuses non-admins, so the
service stays safe to call from anywhere, not just the admin router.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

from zerosend.core.errors import BadRequestError, ConflictError, NotFoundError
from zerosend.db.models import AuditEventType, AuditResult, CloudType
from zerosend.services.audit import render_audit_csv
from zerosend.services.auth import utc_now
from zerosend.services.secret_cache import CacheKeys
from zerosend.services.store import AuditLogFilter, Page, SessionFilter
from zerosend.services.transfer import delete_object_quietly

if TYPE_CHECKING:
    import uuid
    from datetime import datetime

    from zerosend.db.models import AuditLogEntry, TransferSession, User
    from zerosend.services.audit import AuditRecorder
    from zerosend.services.auth import SenderPrincipal
    from zerosend.services.lockout import LockoutGuard
    from zerosend.services.secret_cache import SecretCache
    from zerosend.services.storage import S3ObjectStorage
    from zerosend.services.store import TransferStore

logger = logging.getLogger(__name__)

DEFAULT_PAGE_LIMIT = 50
MAX_PAGE_LIMIT = 200
MAX_EXPORT_ROWS = 10000

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class PageResult(Generic[T]):
    """One page of a listing plus the total match count."""

    items: Sequence[T]
    total: int
    page: int
    limit: int


@dataclass(frozen=True, slots=True)
class SessionDetail:
    """A transfer session with its live cache state.

    Attributes:
        transfer: The stored session row.
        failed_attempts: Current TOTP failure counter for its URL.
        locked: Whether the URL is locked.
        wrapped_key_present: Whether the wrapped key is still cached. Only
            presence is reported, never the key.
    """

    transfer: TransferSession
    failed_attempts: int
    locked: bool
    wrapped_key_present: bool


@dataclass(frozen=True, slots=True)
class ForceDeleteResult:
    already_deleted: bool
    storage_deleted: bool


def make_page(page: int = 1, limit: int = DEFAULT_PAGE_LIMIT) -> Page:
    """Validate pagination parameters.

    Raises:
        BadRequestError: page < 1 or limit outside 1..200.
    """
    if page < 1:
        raise BadRequestError("page must be >= 1")
    if not 1 <= limit <= MAX_PAGE_LIMIT:
        raise BadRequestError(f"limit must be between 1 and {MAX_PAGE_LIMIT}")
    return Page(page=page, limit=limit)


class AdminService:
    """Session, audit and user administration."""

    def __init__(
        self,
        store: TransferStore,
        cache: SecretCache,
        lockout: LockoutGuard,
        storage_backends: Mapping[CloudType, S3ObjectStorage],
        audit: AuditRecorder,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._cache = cache
        self._lockout = lockout
        self._storage_backends = dict(storage_backends)
        self._audit = audit
        self._clock = clock

    # -------------------------------------------------------------------------
    # Transfer sessions
    # -------------------------------------------------------------------------

    async def list_sessions(
        self, admin: SenderPrincipal, filters: SessionFilter, page: Page
    ) -> PageResult[TransferSession]:
        admin.require_admin()
        items, total = await self._store.list_sessions(filters, page, self._clock())
        return PageResult(items=items, total=total, page=page.page, limit=page.limit)

    async def _load(self, session_id: uuid.UUID) -> TransferSession:
        transfer = await self._store.get_session_by_id(session_id)
        if transfer is None:
            raise NotFoundError("Transfer not found", session_id=str(session_id))
        return transfer

    async def get_session(self, admin: SenderPrincipal, session_id: uuid.UUID) -> SessionDetail:
        admin.require_admin()
        transfer = await self._load(session_id)
        failures = await self._lockout.failures(transfer.url_token)
        wrapped = await self._cache.get(CacheKeys.wrapped_key(transfer.url_token))
        return SessionDetail(
            transfer=transfer,
            failed_attempts=failures,
            locked=failures >= self._lockout.threshold,
            wrapped_key_present=wrapped is not None,
        )

    async def force_delete(
        self,
        admin: SenderPrincipal,
        session_id: uuid.UUID,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> ForceDeleteResult:
        """Tear a transfer down the same way recipient completion does.

        Repeating the call on a deleted transfer is harmless.
        """
        admin.require_admin()
        transfer = await self._load(session_id)

        await self._cache.delete_and_return_previous(CacheKeys.wrapped_key(transfer.url_token))

        storage_deleted = False
        storage = self._storage_backends.get(transfer.cloud_type)
        if transfer.cloud_file_id is not None and not transfer.is_deleted and storage is not None:
            storage_deleted = await delete_object_quietly(
                storage, transfer.cloud_file_id, session_id=transfer.id
            )

        newly_deleted = await self._store.mark_deleted(transfer.id, self._clock())
        if newly_deleted:
            await self._audit.record(
                AuditEventType.ADMIN_DELETE,
                AuditResult.SUCCESS,
                session_id=transfer.id,
                actor_id=admin.user_id,
                ip_address=ip_address,
                user_agent=user_agent,
                metadata={"storage_deleted": storage_deleted},
            )
            logger.info(
                "Transfer force-deleted by admin %s",
                admin.user_id,
                extra={"session_id": str(transfer.id)},
            )
        return ForceDeleteResult(already_deleted=not newly_deleted, storage_deleted=storage_deleted)

    async def unlock(
        self,
        admin: SenderPrincipal,
        session_id: uuid.UUID,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> bool:
        """Reset the TOTP lockout counter of a transfer URL.

        Returns:
            True if a counter existed and was removed.
        """
        admin.require_admin()
        transfer = await self._load(session_id)
        existed = await self._lockout.reset(transfer.url_token)
        await self._audit.record(
            AuditEventType.UNLOCK,
            AuditResult.SUCCESS,
            session_id=transfer.id,
            actor_id=admin.user_id,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata={"counter_existed": existed},
        )
        return existed

    # -------------------------------------------------------------------------
    # Audit log
    # -------------------------------------------------------------------------

    async def list_logs(
        self, admin: SenderPrincipal, filters: AuditLogFilter, page: Page
    ) -> PageResult[AuditLogEntry]:
        admin.require_admin()
        items, total = await self._store.list_audit_logs(filters, page)
        return PageResult(items=items, total=total, page=page.page, limit=page.limit)

    async def export_logs_csv(self, admin: SenderPrincipal, filters: AuditLogFilter) -> str:
        """CSV export, oldest first, capped at MAX_EXPORT_ROWS rows."""
        admin.require_admin()
        entries = await self._store.export_audit_logs(filters, max_rows=MAX_EXPORT_ROWS)
        return render_audit_csv(entries)

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    async def list_users(self, admin: SenderPrincipal, page: Page) -> PageResult[User]:
        admin.require_admin()
        items, total = await self._store.list_users(page)
        return PageResult(items=items, total=total, page=page.page, limit=page.limit)

    async def deactivate_user(self, admin: SenderPrincipal, user_id: uuid.UUID) -> None:
        """Disable an account. Existing sender sessions stop resolving at once.

        Raises:
            ConflictError: An admin tried to deactivate themselves.
            NotFoundError: Unknown user.
        """
        admin.require_admin()
        if user_id == admin.user_id:
            raise ConflictError("Administrators cannot deactivate their own account")
        if not await self._store.set_user_active(user_id, active=False):
            raise NotFoundError("User not found", user_id=str(user_id))
        logger.info("User %s deactivated by admin %s", user_id, admin.user_id)
