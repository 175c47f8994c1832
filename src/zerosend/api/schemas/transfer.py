"""Pydantic schemas for sender transfer endpoints."""

from __future__ import annotations

# NOTE: datetime and UUID must remain at runtime for Pydantic validation
from datetime import datetime  # noqa: TC003
from uuid import UUID  # noqa: TC003

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from zerosend.db.models import CloudType


class InitiateTransferRequest(BaseModel):
    """Create a transfer session for one recipient."""

    recipient_email: EmailStr = Field(..., description="Recipient account email")
    file_hash_sha3: str = Field(
        ...,
        pattern=r"^[0-9a-f]{64}$",
        description="SHA3-256 of the plaintext, lowercase hex",
    )
    encrypted_filename: str | None = Field(
        None, max_length=1024, description="Client-encrypted filename, stored opaquely"
    )
    file_size_bytes: int = Field(..., gt=0, description="Ciphertext size in bytes")
    cloud_type: CloudType = Field(CloudType.S3, description="Storage backend")
    max_downloads: int = Field(1, ge=1, le=5, description="Download budget")
    expires_in_hours: int = Field(72, ge=1, le=168, description="Transfer lifetime")

    model_config = ConfigDict(extra="forbid")


class InitiateTransferResponse(BaseModel):
    session_id: UUID
    upload_url: str
    cloud_file_id: str = Field(..., description="Object id to send back with the wrapped key")
    recipient_public_key_b64: str
    recipient_key_fingerprint: str
    url_token: str
    expires_at: datetime


class StoreKeyRequest(BaseModel):
    enc_key_b64: str = Field(..., min_length=1, description="Base64 wrapped key blob")
    cloud_file_id: str = Field(..., min_length=1, max_length=512)

    model_config = ConfigDict(extra="forbid")


class StoreKeyResponse(BaseModel):
    message: str = "Encrypted key stored successfully"


class FinalizeUrlResponse(BaseModel):
    share_url: str
    email_sent: bool
    expires_at: datetime
