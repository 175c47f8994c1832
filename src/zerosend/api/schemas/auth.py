"""Pydantic schemas for authentication endpoints.

Covers sender registration and login, and the recipient TOTP exchange that
yields a transfer-bound auth token.
"""

from __future__ import annotations

# NOTE: datetime and UUID must remain at runtime for Pydantic validation
from datetime import datetime  # noqa: TC003
from uuid import UUID  # noqa: TC003

from pydantic import BaseModel, ConfigDict, EmailStr, Field

# -----------------------------------------------------------------------------
# Sender accounts
# -----------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Account creation with the user's primary Kyber-768 public key."""

    email: EmailStr = Field(..., description="Account email address")
    display_name: str = Field(..., min_length=1, max_length=100, description="Shown to recipients")
    password: str = Field(..., min_length=12, max_length=256, description="Account password")
    public_key_b64: str = Field(
        ..., min_length=1, max_length=8192, description="Base64-encoded Kyber-768 public key"
    )
    key_type: str = Field("kyber768", pattern=r"^kyber768$", description="Public key algorithm")

    model_config = ConfigDict(extra="forbid")


class RegisterResponse(BaseModel):
    user_id: UUID
    key_fingerprint: str = Field(..., description="SHA3-256 of the decoded public key")
    totp_provisioning_uri: str = Field(
        ..., description="otpauth:// URI for authenticator enrolment; shown once"
    )


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=256)

    model_config = ConfigDict(extra="forbid")


class LoginUser(BaseModel):
    id: UUID
    display_name: str
    role: str


class LoginResponse(BaseModel):
    """Bearer session for the sender API."""

    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    expires_in: int = Field(..., description="Seconds until the session expires")
    user: LoginUser


class LogoutResponse(BaseModel):
    revoked: bool


# -----------------------------------------------------------------------------
# Recipient second factor
# -----------------------------------------------------------------------------


class TotpVerifyRequest(BaseModel):
    url_token: str = Field(..., min_length=1, max_length=64)
    email: EmailStr
    otp: str = Field(..., pattern=r"^\d{6}$", description="Six-digit TOTP code")

    model_config = ConfigDict(extra="forbid")


class TotpVerifyResponse(BaseModel):
    auth_token: str = Field(..., description="Bearer token for download key and complete calls")
    expires_in: int
