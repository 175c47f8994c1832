"""Object storage for encrypted transfer blobs.

Clients upload and download ciphertext directly against presigned URLs; the
service never proxies file bytes. Object keys are namespaced per transfer
session (``transfers/{session_id}/{random}``) so a sender can only attach an
object that was issued for their own session.

Example:
    from zerosend.services.storage import S3ObjectStorage

    storage = S3ObjectStorage.from_settings(settings.s3)
    handle = storage.create_signed_upload_handle(session_id, size_bytes=1024)
    # client PUTs ciphertext to handle.upload_url
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

if TYPE_CHECKING:
    import uuid

    from mypy_boto3_s3 import S3Client

    from zerosend.core.config import S3Settings

logger = logging.getLogger(__name__)

OBJECT_PREFIX = "transfers"


@dataclass(frozen=True, slots=True)
class UploadHandle:
    """Where the sender uploads the ciphertext.

    Attributes:
        upload_url: Presigned PUT URL.
        object_id: Object key the upload will create.
        expires_at: When the URL stops working.
    """

    upload_url: str
    object_id: str
    expires_at: datetime


@dataclass(frozen=True, slots=True)
class SignedUrl:
    """A presigned, time-limited URL."""

    url: str
    expires_at: datetime


class StorageError(Exception):
    """Base exception for storage operations.

    Attributes:
        message: Human-readable error description.
        bucket: The bucket involved in the operation.
        key: The object key involved (if applicable).
        operation: The operation that failed.
    """

    def __init__(
        self,
        message: str,
        *,
        bucket: str | None = None,
        key: str | None = None,
        operation: str | None = None,
    ) -> None:
        self.message = message
        self.bucket = bucket
        self.key = key
        self.operation = operation
        super().__init__(message)


class S3ObjectStorage:
    """S3-compatible storage adapter issuing presigned URLs.

    The client uses synchronous boto3. Presigning is local computation;
    ``delete_object`` performs network I/O and is run off the event loop by
    its callers.
    """

    def __init__(
        self,
        endpoint_url: str | None,
        access_key: str,
        secret_key: str,
        bucket: str,
        region: str = "us-east-1",
        *,
        upload_url_ttl_seconds: int = 900,
        download_url_ttl_seconds: int = 600,
        connect_timeout: float = 5.0,
        read_timeout: float = 30.0,
        max_retries: int = 3,
    ) -> None:
        """Initialize the storage adapter.

        Args:
            endpoint_url: S3-compatible endpoint URL (None for AWS defaults).
            access_key: S3 access key ID.
            secret_key: S3 secret access key.
            bucket: Bucket holding transfer blobs.
            region: AWS region (use us-east-1 for MinIO).
            upload_url_ttl_seconds: Lifetime of presigned PUT URLs.
            download_url_ttl_seconds: Lifetime of presigned GET URLs.
            connect_timeout: Connection timeout in seconds.
            read_timeout: Read timeout in seconds.
            max_retries: Maximum retry attempts for transient failures.
        """
        self._bucket = bucket
        self._upload_url_ttl_seconds = upload_url_ttl_seconds
        self._download_url_ttl_seconds = download_url_ttl_seconds

        config = Config(
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
            retries={"max_attempts": max_retries, "mode": "standard"},
            signature_version="s3v4",
        )

        self._client: S3Client = boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region,
            config=config,
        )

        logger.debug(
            "Initialized S3ObjectStorage for endpoint=%s bucket=%s",
            endpoint_url,
            bucket,
        )

    @classmethod
    def from_settings(cls, settings: S3Settings) -> S3ObjectStorage:
        """Create the adapter from S3Settings configuration."""
        return cls(
            endpoint_url=settings.endpoint,
            access_key=settings.access_key.get_secret_value(),
            secret_key=settings.secret_key.get_secret_value(),
            bucket=settings.bucket,
            region=settings.region,
            upload_url_ttl_seconds=settings.upload_url_ttl_seconds,
            download_url_ttl_seconds=settings.download_url_ttl_seconds,
        )

    @property
    def bucket(self) -> str:
        return self._bucket

    @staticmethod
    def object_prefix(session_id: uuid.UUID) -> str:
        return f"{OBJECT_PREFIX}/{session_id}/"

    def owns_object(self, session_id: uuid.UUID, object_id: str) -> bool:
        """Whether ``object_id`` lies in the namespace issued for ``session_id``."""
        prefix = self.object_prefix(session_id)
        return object_id.startswith(prefix) and len(object_id) > len(prefix) and ".." not in object_id

    def _presign(self, operation: str, key: str, expires_in: int) -> str:
        try:
            return self._client.generate_presigned_url(
                ClientMethod=operation,
                Params={"Bucket": self._bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(
                f"Failed to generate presigned URL: {e}",
                bucket=self._bucket,
                key=key,
                operation=operation,
            ) from e

    def create_signed_upload_handle(self, session_id: uuid.UUID, size_bytes: int) -> UploadHandle:
        """Issue a presigned PUT URL for a new object in the session's namespace.

        Args:
            session_id: Transfer session the object belongs to.
            size_bytes: Declared ciphertext size (logged only).

        Returns:
            UploadHandle with the URL and the object id to report back.

        Raises:
            StorageError: If URL generation fails.
        """
        object_id = f"{self.object_prefix(session_id)}{secrets.token_hex(16)}"
        url = self._presign("put_object", object_id, self._upload_url_ttl_seconds)
        logger.debug(
            "Issued upload URL for %s (%d bytes, expires in %ds)",
            object_id,
            size_bytes,
            self._upload_url_ttl_seconds,
        )
        return UploadHandle(
            upload_url=url,
            object_id=object_id,
            expires_at=datetime.now(UTC) + timedelta(seconds=self._upload_url_ttl_seconds),
        )

    def create_signed_download_url(self, object_id: str) -> SignedUrl:
        """Issue a presigned GET URL for an uploaded object.

        Raises:
            StorageError: If URL generation fails.
        """
        url = self._presign("get_object", object_id, self._download_url_ttl_seconds)
        return SignedUrl(
            url=url,
            expires_at=datetime.now(UTC) + timedelta(seconds=self._download_url_ttl_seconds),
        )

    def delete_object(self, object_id: str) -> None:
        """Delete an object.

        S3 delete is idempotent: deleting a missing object succeeds.

        Raises:
            StorageError: If the delete call fails.
        """
        try:
            self._client.delete_object(Bucket=self._bucket, Key=object_id)
            logger.debug("Deleted %s/%s", self._bucket, object_id)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(
                f"Delete failed: {e}",
                bucket=self._bucket,
                key=object_id,
                operation="delete_object",
            ) from e

    def ensure_bucket(self) -> bool:
        """Create the bucket if it does not exist.

        Returns:
            True if the bucket was created, False if it already existed.

        Raises:
            StorageError: If the bucket cannot be checked or created.
        """
        try:
            self._client.head_bucket(Bucket=self._bucket)
            return False
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code not in ("404", "NoSuchBucket"):
                raise StorageError(
                    f"Failed to check bucket existence: {e}",
                    bucket=self._bucket,
                    operation="head_bucket",
                ) from e
        try:
            self._client.create_bucket(Bucket=self._bucket)
        except ClientError as e:
            raise StorageError(
                f"Failed to create bucket: {e}",
                bucket=self._bucket,
                operation="create_bucket",
            ) from e
        logger.info("Created bucket: %s", self._bucket)
        return True
