"""Pydantic schemas for recipient download endpoints."""

from __future__ import annotations

# NOTE: datetime must remain at runtime for Pydantic validation
from datetime import datetime  # noqa: TC003

from pydantic import BaseModel, Field


class TransferInfoResponse(BaseModel):
    """Public landing-page metadata."""

    sender_display_name: str
    file_size_bytes: int
    expires_at: datetime
    remaining_downloads: int
    twofa_type: str = Field(..., description="Second factor the recipient must present")


class DownloadKeyResponse(BaseModel):
    encrypted_key_b64: str = Field(..., description="Wrapped key exactly as the sender stored it")
    cloud_file_url: str = Field(..., description="Signed, short-lived ciphertext URL")
    cloud_file_url_expires_at: datetime
    file_hash_sha3: str
    remaining_downloads: int


class CompleteResponse(BaseModel):
    deleted: bool
    message: str = "File and encryption key permanently deleted"
