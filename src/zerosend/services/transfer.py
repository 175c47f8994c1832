"""Sender-side half of the transfer session state machine.

Lifecycle driven from here:

    initiate     -> INITIATED   (row created, upload URL issued)
    store_key    -> INITIATED   (wrapped key cached, cloud_file_id recorded)
    finalize_url -> READY       (share URL issued, recipient notified)

The wrapped key is written only to the secret cache, never to the durable
store. Every durable mutation is a single conditional update.
"""

from __future__ import annotations

import asyncio
import logging
import re
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from zerosend.core.errors import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    GoneError,
    InternalError,
    NotFoundError,
)
from zerosend.core.hashing import generate_token, hash_email
from zerosend.db.models import (
    AuditEventType,
    AuditResult,
    CloudType,
    KeyType,
    SessionStatus,
    TransferSession,
)
from zerosend.services.auth import utc_now
from zerosend.services.best_effort import attempt
from zerosend.services.secret_cache import CacheKeys
from zerosend.services.storage import StorageError

if TYPE_CHECKING:
    from zerosend.services.audit import AuditRecorder
    from zerosend.services.auth import SenderPrincipal
    from zerosend.services.notifier import EmailNotifier
    from zerosend.services.secret_cache import SecretCache
    from zerosend.services.storage import S3ObjectStorage
    from zerosend.services.store import TransferStore

logger = logging.getLogger(__name__)

MIN_DOWNLOADS, MAX_DOWNLOADS = 1, 5
MIN_TTL_HOURS, MAX_TTL_HOURS = 1, 168
DEFAULT_TTL_HOURS = 72
SHA3_256_HEX = re.compile(r"^[0-9a-f]{64}$")


@dataclass(frozen=True, slots=True)
class InitiatedTransfer:
    """What the sender needs to encrypt, wrap and upload.

    Attributes:
        session_id: Transfer session id (sender-side handle).
        url_token: Recipient-facing token.
        upload_url: Presigned PUT URL for the ciphertext.
        cloud_file_id: Object id to report back in store_key.
        recipient_public_key: Base64 public key to wrap the file key for.
        recipient_key_fingerprint: SHA3-256 fingerprint of that key.
        expires_at: Transfer expiry.
    """

    session_id: uuid.UUID
    url_token: str
    upload_url: str
    cloud_file_id: str
    recipient_public_key: str
    recipient_key_fingerprint: str
    expires_at: datetime


@dataclass(frozen=True, slots=True)
class FinalizedTransfer:
    """Share URL and whether the recipient email went out."""

    share_url: str
    email_sent: bool
    expires_at: datetime


class TransferOrchestrator:
    """Creates transfer sessions and hands off the wrapped key."""

    def __init__(
        self,
        store: TransferStore,
        cache: SecretCache,
        audit: AuditRecorder,
        storage_backends: Mapping[CloudType, S3ObjectStorage],
        notifier: EmailNotifier,
        *,
        frontend_base_url: str,
        wrapped_key_ttl_seconds: int = 3600,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            store: Durable store.
            cache: Secret cache receiving wrapped keys.
            audit: Best-effort audit recorder.
            storage_backends: Object storage adapter per supported cloud type.
            notifier: Download-link notifier.
            frontend_base_url: Base of share URLs.
            wrapped_key_ttl_seconds: Safety-net TTL of the wrapped key.
            clock: Source of the current UTC time.
        """
        self._store = store
        self._cache = cache
        self._audit = audit
        self._storage_backends = dict(storage_backends)
        self._notifier = notifier
        self._frontend_base_url = frontend_base_url.rstrip("/")
        self._wrapped_key_ttl_seconds = wrapped_key_ttl_seconds
        self._clock = clock

    def share_url_for(self, url_token: str) -> str:
        return f"{self._frontend_base_url}/download/{url_token}"

    def _storage_for(self, cloud_type: CloudType) -> S3ObjectStorage:
        try:
            return self._storage_backends[cloud_type]
        except KeyError:
            raise BadRequestError(
                f"Unsupported cloud type: {cloud_type.value}", cloud_type=cloud_type.value
            ) from None

    async def initiate(
        self,
        sender: SenderPrincipal,
        recipient_email: str,
        file_hash_sha3: str,
        file_size_bytes: int,
        cloud_type: CloudType = CloudType.S3,
        max_downloads: int = 1,
        ttl_hours: int = DEFAULT_TTL_HOURS,
        *,
        encrypted_filename: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> InitiatedTransfer:
        """Create a transfer session for one recipient.

        Args:
            sender: Authenticated sender.
            recipient_email: Recipient address.
            file_hash_sha3: SHA3-256 of the plaintext (64 lowercase hex chars).
            file_size_bytes: Ciphertext size in bytes.
            cloud_type: Storage backend for the ciphertext.
            max_downloads: Download budget (1-5).
            ttl_hours: Transfer lifetime in hours (1-168).
            encrypted_filename: Client-encrypted filename, opaque here.
            ip_address: Client address for the audit trail.
            user_agent: Client User-Agent for the audit trail.

        Returns:
            InitiatedTransfer with upload URL and recipient public key.

        Raises:
            BadRequestError: Invalid parameters or unsupported cloud type.
            NotFoundError: Recipient has no account or no usable key.
            InternalError: Storage could not issue an upload URL.
        """
        if not SHA3_256_HEX.match(file_hash_sha3):
            raise BadRequestError("file_hash_sha3 must be 64 lowercase hex characters")
        if file_size_bytes <= 0:
            raise BadRequestError("file_size_bytes must be positive")
        if not MIN_DOWNLOADS <= max_downloads <= MAX_DOWNLOADS:
            raise BadRequestError(f"max_downloads must be between {MIN_DOWNLOADS} and {MAX_DOWNLOADS}")
        if not MIN_TTL_HOURS <= ttl_hours <= MAX_TTL_HOURS:
            raise BadRequestError(f"ttl_hours must be between {MIN_TTL_HOURS} and {MAX_TTL_HOURS}")
        storage = self._storage_for(cloud_type)

        now = self._clock()
        recipient = await self._store.find_user_by_email_hash(hash_email(recipient_email))
        key = None
        if recipient is not None and recipient.is_active:
            key = await self._store.find_primary_active_key(recipient.id, KeyType.KYBER768, now)
        if recipient is None or key is None:
            raise NotFoundError("Recipient public key not found")

        session_id = uuid.uuid4()
        try:
            handle = storage.create_signed_upload_handle(session_id, file_size_bytes)
        except StorageError as e:
            logger.error("Upload URL issuance failed: %s", e.message)
            raise InternalError("Storage unavailable") from e

        transfer = await self._store.create_session(
            TransferSession(
                id=session_id,
                url_token=generate_token(),
                sender_id=sender.user_id,
                recipient_key_id=key.id,
                recipient_email=recipient.email,
                recipient_email_hash=recipient.email_hash,
                file_hash_sha3=file_hash_sha3,
                encrypted_filename=encrypted_filename,
                file_size_bytes=file_size_bytes,
                cloud_type=cloud_type,
                cloud_file_id=None,
                max_downloads=max_downloads,
                download_count=0,
                expires_at=now + timedelta(hours=ttl_hours),
                status=SessionStatus.INITIATED,
            )
        )

        await self._audit.record(
            AuditEventType.URL_ISSUED,
            AuditResult.SUCCESS,
            session_id=transfer.id,
            actor_id=sender.user_id,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata={
                "step": "initiated",
                "max_downloads": max_downloads,
                "ttl_hours": ttl_hours,
                "cloud_type": cloud_type.value,
            },
        )
        logger.info("Transfer initiated", extra={"session_id": str(transfer.id)})

        return InitiatedTransfer(
            session_id=transfer.id,
            url_token=transfer.url_token,
            upload_url=handle.upload_url,
            cloud_file_id=handle.object_id,
            recipient_public_key=key.public_key_b64,
            recipient_key_fingerprint=key.fingerprint,
            expires_at=transfer.expires_at,
        )

    async def _load_owned(self, session_id: uuid.UUID, sender_id: uuid.UUID) -> TransferSession:
        transfer = await self._store.get_session_by_id(session_id)
        if transfer is None or transfer.is_deleted:
            raise NotFoundError("Transfer not found")
        if transfer.sender_id != sender_id:
            raise ForbiddenError("Only the sender may modify this transfer")
        return transfer

    async def store_key(
        self,
        session_id: uuid.UUID,
        sender_id: uuid.UUID,
        wrapped_key: bytes,
        cloud_file_id: str,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        """Cache the wrapped key and record where the ciphertext was uploaded.

        Raises:
            NotFoundError: Unknown or deleted transfer.
            ForbiddenError: Caller is not the sender.
            ConflictError: Transfer is no longer ``initiated``.
            GoneError: Transfer has expired.
            BadRequestError: Empty key, or object id not issued for this session.
        """
        transfer = await self._load_owned(session_id, sender_id)
        if transfer.status is not SessionStatus.INITIATED:
            raise ConflictError("Key can only be stored before the URL is finalized")
        if transfer.is_expired(self._clock()):
            raise GoneError("Transfer has expired")
        if not wrapped_key:
            raise BadRequestError("Wrapped key must not be empty")
        storage = self._storage_for(transfer.cloud_type)
        if not cloud_file_id or not storage.owns_object(transfer.id, cloud_file_id):
            raise BadRequestError("cloud_file_id does not belong to this transfer")

        # Durable precondition first: a key is only ever cached for a session
        # that is still initiated.
        await self._store.update_session(
            transfer.id,
            expected_statuses={SessionStatus.INITIATED},
            values={"cloud_file_id": cloud_file_id},
        )
        await self._cache.set_with_ttl(
            CacheKeys.wrapped_key(transfer.url_token),
            wrapped_key,
            self._wrapped_key_ttl_seconds,
        )

        await self._audit.record(
            AuditEventType.URL_ISSUED,
            AuditResult.SUCCESS,
            session_id=transfer.id,
            actor_id=sender_id,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata={"step": "key_stored"},
        )

    async def finalize_url(
        self,
        session_id: uuid.UUID,
        sender_id: uuid.UUID,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> FinalizedTransfer:
        """Mark the transfer ready and notify the recipient.

        Notification is best effort: the transfer becomes ready whether or
        not the email was accepted, and ``email_sent`` tells the sender.

        Raises:
            NotFoundError: Unknown or deleted transfer.
            ForbiddenError: Caller is not the sender.
            GoneError: Transfer has expired.
            ConflictError: Not ``initiated``, or no key/object stored yet.
        """
        transfer = await self._load_owned(session_id, sender_id)
        if transfer.is_expired(self._clock()):
            raise GoneError("Transfer has expired")
        if transfer.status is not SessionStatus.INITIATED or transfer.cloud_file_id is None:
            raise ConflictError("Store the key before finalizing the URL")
        if await self._cache.get(CacheKeys.wrapped_key(transfer.url_token)) is None:
            raise ConflictError("Wrapped key is missing or expired; store it again")

        transfer = await self._store.update_session(
            transfer.id,
            expected_statuses={SessionStatus.INITIATED},
            values={"status": SessionStatus.READY},
        )

        share_url = self.share_url_for(transfer.url_token)
        email_sent = await attempt(
            "download link notification",
            lambda: self._notifier.send_download_link(
                transfer.recipient_email, share_url, transfer.expires_at
            ),
            context={"session_id": str(transfer.id)},
        )

        await self._audit.record(
            AuditEventType.URL_ISSUED,
            AuditResult.SUCCESS,
            session_id=transfer.id,
            actor_id=sender_id,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata={"step": "finalized", "email_sent": email_sent},
        )
        logger.info(
            "Transfer ready (email_sent=%s)", email_sent, extra={"session_id": str(transfer.id)}
        )

        return FinalizedTransfer(
            share_url=share_url,
            email_sent=email_sent,
            expires_at=transfer.expires_at,
        )


async def delete_object_quietly(
    storage: S3ObjectStorage, object_id: str, *, session_id: uuid.UUID
) -> bool:
    """Best-effort object deletion off the event loop."""
    return await attempt(
        "object deletion",
        lambda: asyncio.to_thread(storage.delete_object, object_id),
        context={"session_id": str(session_id)},
    )
