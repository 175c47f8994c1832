"""Recipient-side half of the transfer session state machine.

get_key releases the wrapped key and a signed download URL, then spends one
unit of the download budget with a single atomic conditional increment.
complete is the recipient's signal that the file is safely decrypted: the
wrapped key is destroyed, the ciphertext object is deleted (best effort),
and the session is logically deleted.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from zerosend.core.errors import GoneError, InternalError, LockedError, NotFoundError
from zerosend.db.models import AuditEventType, AuditResult, CloudType
from zerosend.services.auth import TWO_FACTOR_TYPE, utc_now
from zerosend.services.availability import ensure_finalized, ensure_transfer_available
from zerosend.services.secret_cache import CacheKeys
from zerosend.services.storage import StorageError
from zerosend.services.transfer import delete_object_quietly

if TYPE_CHECKING:
    from zerosend.db.models import TransferSession
    from zerosend.services.audit import AuditRecorder
    from zerosend.services.auth import AuthBroker
    from zerosend.services.lockout import LockoutGuard
    from zerosend.services.secret_cache import SecretCache
    from zerosend.services.storage import S3ObjectStorage
    from zerosend.services.store import TransferStore

logger = logging.getLogger(__name__)

UNKNOWN_SENDER = "Unknown sender"


@dataclass(frozen=True, slots=True)
class TransferInfo:
    """Public metadata shown before the recipient authenticates."""

    sender_display_name: str
    file_size_bytes: int
    expires_at: datetime
    remaining_downloads: int
    two_factor_type: str


@dataclass(frozen=True, slots=True)
class ReleasedKey:
    """Everything the recipient needs to fetch and decrypt the file.

    Attributes:
        wrapped_key: Opaque wrapped key blob, exactly as the sender stored it.
        download_url: Signed GET URL for the ciphertext.
        download_url_expires_at: Expiry of ``download_url``.
        file_hash_sha3: Plaintext digest for integrity checking.
        remaining_downloads: Budget left after this release.
    """

    wrapped_key: bytes
    download_url: str
    download_url_expires_at: datetime
    file_hash_sha3: str
    remaining_downloads: int


@dataclass(frozen=True, slots=True)
class CompletionResult:
    """Outcome of the recipient's completion signal."""

    deleted: bool
    storage_deleted: bool


class DownloadBroker:
    """Serves transfer info, releases keys, and tears down on completion."""

    def __init__(
        self,
        store: TransferStore,
        cache: SecretCache,
        lockout: LockoutGuard,
        auth: AuthBroker,
        storage_backends: Mapping[CloudType, S3ObjectStorage],
        audit: AuditRecorder,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._cache = cache
        self._lockout = lockout
        self._auth = auth
        self._storage_backends = dict(storage_backends)
        self._audit = audit
        self._clock = clock

    def _storage_for(self, transfer: TransferSession) -> S3ObjectStorage:
        storage = self._storage_backends.get(transfer.cloud_type)
        if storage is None:
            logger.error(
                "No storage backend configured for %s",
                transfer.cloud_type.value,
                extra={"session_id": str(transfer.id)},
            )
            raise InternalError("Storage unavailable")
        return storage

    async def get_info(
        self,
        url_token: str,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> TransferInfo:
        """Describe a transfer to an unauthenticated visitor.

        Raises:
            NotFoundError: Unknown, deleted or not yet finalized transfer.
            GoneError: Expired transfer or exhausted budget.
            LockedError: Too many TOTP failures on this URL.
        """
        transfer = ensure_transfer_available(
            await self._store.get_session_by_token(url_token), self._clock()
        )
        if await self._lockout.is_locked(url_token):
            raise LockedError("Too many failed attempts. This transfer is locked.")
        ensure_finalized(transfer)

        sender = await self._store.find_user_by_id(transfer.sender_id)
        await self._audit.record(
            AuditEventType.ACCESS,
            AuditResult.SUCCESS,
            session_id=transfer.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        return TransferInfo(
            sender_display_name=sender.display_name if sender else UNKNOWN_SENDER,
            file_size_bytes=transfer.file_size_bytes,
            expires_at=transfer.expires_at,
            remaining_downloads=transfer.remaining_downloads,
            two_factor_type=TWO_FACTOR_TYPE,
        )

    async def get_key(
        self,
        url_token: str,
        auth_token: str | None,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> ReleasedKey:
        """Release the wrapped key and a signed download URL.

        The download budget is spent last, by one conditional increment; a
        caller losing the race for the final unit gets GoneError and the
        signed URL it was about to receive is discarded.

        Raises:
            UnauthorizedError: Missing or mis-bound auth token.
            NotFoundError: Transfer gone from the store, or wrapped key absent.
            GoneError: Expired, or budget exhausted (possibly concurrently).
            InternalError: Storage could not sign a download URL.
        """
        binding = await self._auth.require_binding(auth_token, url_token)
        now = self._clock()
        transfer = ensure_transfer_available(await self._store.get_session_by_token(url_token), now)
        ensure_finalized(transfer)
        if transfer.cloud_file_id is None:
            raise NotFoundError("Transfer not found")

        wrapped_key = await self._cache.get(CacheKeys.wrapped_key(url_token))
        if wrapped_key is None:
            await self._audit.record(
                AuditEventType.DL_FAIL,
                AuditResult.FAILURE,
                session_id=transfer.id,
                actor_id=binding.user_id,
                ip_address=ip_address,
                user_agent=user_agent,
                error_code="not-found",
                metadata={"reason": "key_missing"},
            )
            raise NotFoundError("Key not available")

        storage = self._storage_for(transfer)
        try:
            signed = storage.create_signed_download_url(transfer.cloud_file_id)
        except StorageError as e:
            logger.error("Download URL signing failed: %s", e.message)
            raise InternalError("Storage unavailable") from e

        updated = await self._store.increment_download_count(transfer.id, now)
        if updated is None:
            await self._audit.record(
                AuditEventType.DL_FAIL,
                AuditResult.FAILURE,
                session_id=transfer.id,
                actor_id=binding.user_id,
                ip_address=ip_address,
                user_agent=user_agent,
                error_code="gone",
                metadata={"reason": "budget_exhausted"},
            )
            raise GoneError("Download limit reached", reason="budget_exhausted")

        await self._audit.record(
            AuditEventType.DL_SUCCESS,
            AuditResult.SUCCESS,
            session_id=transfer.id,
            actor_id=binding.user_id,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata={"download_count": updated.download_count},
        )

        return ReleasedKey(
            wrapped_key=wrapped_key,
            download_url=signed.url,
            download_url_expires_at=signed.expires_at,
            file_hash_sha3=transfer.file_hash_sha3,
            remaining_downloads=updated.remaining_downloads,
        )

    async def complete(
        self,
        url_token: str,
        auth_token: str | None,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> CompletionResult:
        """Destroy the wrapped key and retire the transfer.

        Safe to retry: every step is unconditional and idempotent, so a call
        that failed halfway can simply be repeated.

        Raises:
            UnauthorizedError: Missing or mis-bound auth token.
            NotFoundError: Unknown transfer.
        """
        binding = await self._auth.require_binding(auth_token, url_token)
        transfer = await self._store.get_session_by_token(url_token)
        if transfer is None:
            raise NotFoundError("Transfer not found")

        await self._cache.delete_and_return_previous(CacheKeys.wrapped_key(url_token))

        storage_deleted = False
        if transfer.cloud_file_id is not None and not transfer.is_deleted:
            # The tombstone below must still be set without a backend
            storage = self._storage_backends.get(transfer.cloud_type)
            if storage is None:
                logger.warning(
                    "No storage backend configured for %s; object left in place",
                    transfer.cloud_type.value,
                    extra={"session_id": str(transfer.id)},
                )
            else:
                storage_deleted = await delete_object_quietly(
                    storage, transfer.cloud_file_id, session_id=transfer.id
                )

        newly_deleted = await self._store.mark_deleted(transfer.id, self._clock())
        if newly_deleted:
            await self._audit.record(
                AuditEventType.DELETED,
                AuditResult.SUCCESS,
                session_id=transfer.id,
                actor_id=binding.user_id,
                ip_address=ip_address,
                user_agent=user_agent,
                metadata={"trigger": "recipient_complete", "storage_deleted": storage_deleted},
            )
            logger.info(
                "Transfer completed and deleted", extra={"session_id": str(transfer.id)}
            )

        return CompletionResult(deleted=True, storage_deleted=storage_deleted)
