"""Durable store for transfer sessions, users, keys and the audit log.

Every state change is a single conditional UPDATE executed in its own short
transaction: the precondition (expected status, not deleted, budget left)
is part of the WHERE clause, so two concurrent requests can never both pass
a check that only one of them should. Nothing here reads a row, decides in
Python, and writes it back.

The store holds no business rules beyond those preconditions; the
orchestrating services decide which transition to request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import case, cast, func, literal, or_, select, update
from sqlalchemy.exc import IntegrityError

from zerosend.core.errors import ConflictError
from zerosend.db.models import (
    AuditEventType,
    AuditLogEntry,
    AuditResult,
    KeyType,
    SenderSession,
    SessionStatus,
    TransferSession,
    User,
    UserPublicKey,
)

if TYPE_CHECKING:
    import uuid
    from collections.abc import Collection, Sequence
    from datetime import datetime
    from typing import Any

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)

_STATUS_TYPE = TransferSession.__table__.c.status.type


@dataclass(frozen=True, slots=True)
class SessionFilter:
    """Admin listing filter for transfer sessions.

    Attributes:
        status: Stored status to match; EXPIRED matches live sessions whose
            expires_at has passed even though their stored status lags.
        search: Case-insensitive substring of the recipient address.
        sender_id: Restrict to one sender.
    """

    status: SessionStatus | None = None
    search: str | None = None
    sender_id: uuid.UUID | None = None


@dataclass(frozen=True, slots=True)
class AuditLogFilter:
    """Admin listing and export filter for audit entries."""

    session_id: uuid.UUID | None = None
    actor_id: uuid.UUID | None = None
    event_type: AuditEventType | None = None
    result: AuditResult | None = None
    since: datetime | None = None
    until: datetime | None = None


@dataclass(frozen=True, slots=True)
class Page:
    """Pagination window."""

    page: int = 1
    limit: int = 50

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class TransferStore:
    """SQLAlchemy implementation of the durable store.

    The session factory is injected; each method opens, commits and closes
    its own AsyncSession.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Initialize the store.

        Args:
            session_factory: Factory created with ``expire_on_commit=False`` so
                returned rows stay readable after commit.
        """
        self._session_factory = session_factory

    # -------------------------------------------------------------------------
    # Transfer sessions
    # -------------------------------------------------------------------------

    async def create_session(self, transfer: TransferSession) -> TransferSession:
        """Insert a new transfer session row."""
        async with self._session_factory() as db:
            db.add(transfer)
            await db.flush()
            await db.refresh(transfer)
            await db.commit()
        return transfer

    async def get_session_by_token(self, url_token: str) -> TransferSession | None:
        async with self._session_factory() as db:
            result = await db.execute(
                select(TransferSession).where(TransferSession.url_token == url_token)
            )
            return result.scalar_one_or_none()

    async def get_session_by_id(self, session_id: uuid.UUID) -> TransferSession | None:
        async with self._session_factory() as db:
            return await db.get(TransferSession, session_id)

    async def update_session(
        self,
        session_id: uuid.UUID,
        *,
        expected_statuses: Collection[SessionStatus],
        values: dict[str, Any],
    ) -> TransferSession:
        """Apply ``values`` if the session is live and in an expected status.

        Args:
            session_id: Session to update.
            expected_statuses: Statuses the row must currently have.
            values: Column values to set.

        Returns:
            The updated row.

        Raises:
            ConflictError: If no live row in an expected status matched.
        """
        stmt = (
            update(TransferSession)
            .where(
                TransferSession.id == session_id,
                TransferSession.status.in_(list(expected_statuses)),
                TransferSession.deleted_at.is_(None),
            )
            .values(**values, updated_at=func.now())
            .returning(TransferSession)
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            row = result.scalar_one_or_none()
            await db.commit()

        if row is None:
            raise ConflictError(
                "Transfer is not in a state that allows this operation",
                session_id=str(session_id),
                expected=[s.value for s in expected_statuses],
            )
        return row

    async def increment_download_count(
        self, session_id: uuid.UUID, now: datetime
    ) -> TransferSession | None:
        """Consume one download from the budget.

        The budget check and the increment are the same statement, so N
        concurrent callers on a budget of M < N see exactly M successes.

        Returns:
            The updated row, or None when the session is deleted, expired,
            not ready, or its budget is already used up.
        """
        new_count = TransferSession.download_count + 1
        stmt = (
            update(TransferSession)
            .where(
                TransferSession.id == session_id,
                TransferSession.status == SessionStatus.READY,
                TransferSession.deleted_at.is_(None),
                TransferSession.expires_at > now,
                TransferSession.download_count < TransferSession.max_downloads,
            )
            .values(
                download_count=new_count,
                # Both branches are bind parameters; without the cast
                # PostgreSQL types the CASE as text, not session_status.
                status=cast(
                    case(
                        (
                            new_count >= TransferSession.max_downloads,
                            literal(SessionStatus.DOWNLOADED, _STATUS_TYPE),
                        ),
                        else_=literal(SessionStatus.READY, _STATUS_TYPE),
                    ),
                    _STATUS_TYPE,
                ),
                downloaded_at=now,
                updated_at=now,
            )
            .returning(TransferSession)
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            row = result.scalar_one_or_none()
            await db.commit()
        return row

    async def mark_deleted(self, session_id: uuid.UUID, now: datetime) -> bool:
        """Set the logical tombstone.

        Returns:
            True if this call set it, False if it was already set (or the
            session does not exist). Both are success for the caller.
        """
        stmt = (
            update(TransferSession)
            .where(TransferSession.id == session_id, TransferSession.deleted_at.is_(None))
            .values(deleted_at=now, status=SessionStatus.DELETED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            await db.commit()
        return result.rowcount > 0

    async def list_sessions(
        self, filters: SessionFilter, page: Page, now: datetime
    ) -> tuple[Sequence[TransferSession], int]:
        """Return one page of sessions (newest first) and the total count."""
        conditions = []
        if filters.status is SessionStatus.EXPIRED:
            conditions.append(
                or_(
                    TransferSession.status == SessionStatus.EXPIRED,
                    (TransferSession.expires_at <= now) & TransferSession.deleted_at.is_(None),
                )
            )
        elif filters.status is not None:
            conditions.append(TransferSession.status == filters.status)
        if filters.search:
            conditions.append(TransferSession.recipient_email.ilike(f"%{filters.search}%"))
        if filters.sender_id is not None:
            conditions.append(TransferSession.sender_id == filters.sender_id)

        async with self._session_factory() as db:
            total = await db.scalar(
                select(func.count()).select_from(TransferSession).where(*conditions)
            )
            result = await db.execute(
                select(TransferSession)
                .where(*conditions)
                .order_by(TransferSession.created_at.desc())
                .offset(page.offset)
                .limit(page.limit)
            )
            return result.scalars().all(), int(total or 0)

    # -------------------------------------------------------------------------
    # Users and keys
    # -------------------------------------------------------------------------

    async def find_user_by_email_hash(self, email_hash: str) -> User | None:
        async with self._session_factory() as db:
            result = await db.execute(select(User).where(User.email_hash == email_hash))
            return result.scalar_one_or_none()

    async def find_user_by_id(self, user_id: uuid.UUID) -> User | None:
        async with self._session_factory() as db:
            return await db.get(User, user_id)

    async def find_primary_active_key(
        self, user_id: uuid.UUID, key_type: KeyType, now: datetime
    ) -> UserPublicKey | None:
        """Newest primary key of ``key_type`` that is neither revoked nor expired."""
        stmt = (
            select(UserPublicKey)
            .where(
                UserPublicKey.user_id == user_id,
                UserPublicKey.key_type == key_type,
                UserPublicKey.is_primary.is_(True),
                UserPublicKey.is_revoked.is_(False),
                or_(UserPublicKey.expires_at.is_(None), UserPublicKey.expires_at > now),
            )
            .order_by(UserPublicKey.created_at.desc())
            .limit(1)
        )
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            return result.scalar_one_or_none()

    async def create_user_with_key(self, user: User, key: UserPublicKey) -> tuple[User, UserPublicKey]:
        """Insert a user and its first public key in one transaction.

        Raises:
            ConflictError: If the email hash is already registered.
        """
        async with self._session_factory() as db:
            db.add(user)
            db.add(key)
            try:
                await db.flush()
            except IntegrityError as e:
                await db.rollback()
                raise ConflictError("Email already registered") from e
            await db.refresh(user)
            await db.refresh(key)
            await db.commit()
        return user, key

    async def touch_last_login(self, user_id: uuid.UUID, now: datetime) -> None:
        async with self._session_factory() as db:
            await db.execute(
                update(User)
                .where(User.id == user_id)
                .values(last_login_at=now)
                .execution_options(synchronize_session=False)
            )
            await db.commit()

    async def set_user_active(self, user_id: uuid.UUID, *, active: bool) -> bool:
        async with self._session_factory() as db:
            result = await db.execute(
                update(User)
                .where(User.id == user_id)
                .values(is_active=active, updated_at=func.now())
                .execution_options(synchronize_session=False)
            )
            await db.commit()
        return result.rowcount > 0

    async def list_users(self, page: Page) -> tuple[Sequence[User], int]:
        async with self._session_factory() as db:
            total = await db.scalar(select(func.count()).select_from(User))
            result = await db.execute(
                select(User).order_by(User.created_at.desc()).offset(page.offset).limit(page.limit)
            )
            return result.scalars().all(), int(total or 0)

    # -------------------------------------------------------------------------
    # Sender sessions
    # -------------------------------------------------------------------------

    async def create_sender_session(self, sender_session: SenderSession) -> SenderSession:
        async with self._session_factory() as db:
            db.add(sender_session)
            await db.flush()
            await db.refresh(sender_session)
            await db.commit()
        return sender_session

    async def find_sender_session(self, token_hash: str) -> SenderSession | None:
        async with self._session_factory() as db:
            result = await db.execute(
                select(SenderSession).where(SenderSession.token_hash == token_hash)
            )
            return result.scalar_one_or_none()

    async def revoke_sender_session(self, token_hash: str, now: datetime) -> bool:
        async with self._session_factory() as db:
            result = await db.execute(
                update(SenderSession)
                .where(SenderSession.token_hash == token_hash, SenderSession.is_active.is_(True))
                .values(is_active=False, revoked_at=now)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
        return result.rowcount > 0

    # -------------------------------------------------------------------------
    # Audit log
    # -------------------------------------------------------------------------

    async def append_audit_log(self, entry: AuditLogEntry) -> None:
        """Insert one audit row in its own transaction."""
        async with self._session_factory() as db:
            db.add(entry)
            await db.commit()

    def _audit_conditions(self, filters: AuditLogFilter) -> list[Any]:
        conditions: list[Any] = []
        if filters.session_id is not None:
            conditions.append(AuditLogEntry.session_id == filters.session_id)
        if filters.actor_id is not None:
            conditions.append(AuditLogEntry.actor_id == filters.actor_id)
        if filters.event_type is not None:
            conditions.append(AuditLogEntry.event_type == filters.event_type)
        if filters.result is not None:
            conditions.append(AuditLogEntry.result == filters.result)
        if filters.since is not None:
            conditions.append(AuditLogEntry.created_at >= filters.since)
        if filters.until is not None:
            conditions.append(AuditLogEntry.created_at < filters.until)
        return conditions

    async def list_audit_logs(
        self, filters: AuditLogFilter, page: Page
    ) -> tuple[Sequence[AuditLogEntry], int]:
        """Return one page of audit entries (newest first) and the total count."""
        conditions = self._audit_conditions(filters)
        async with self._session_factory() as db:
            total = await db.scalar(
                select(func.count()).select_from(AuditLogEntry).where(*conditions)
            )
            result = await db.execute(
                select(AuditLogEntry)
                .where(*conditions)
                .order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id.desc())
                .offset(page.offset)
                .limit(page.limit)
            )
            return result.scalars().all(), int(total or 0)

    async def export_audit_logs(
        self, filters: AuditLogFilter, *, max_rows: int
    ) -> Sequence[AuditLogEntry]:
        """Entries for CSV export, oldest first, capped at ``max_rows``."""
        async with self._session_factory() as db:
            result = await db.execute(
                select(AuditLogEntry)
                .where(*self._audit_conditions(filters))
                .order_by(AuditLogEntry.created_at.asc(), AuditLogEntry.id.asc())
                .limit(max_rows)
            )
            return result.scalars().all()
