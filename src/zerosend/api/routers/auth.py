"""Authentication router.

Sender registration, login and logout, and the recipient TOTP exchange.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, status

from zerosend.api.dependencies import BearerToken, ClientIp, Services, UserAgent
from zerosend.api.schemas.auth import (
    LoginRequest,
    LoginResponse,
    LoginUser,
    LogoutResponse,
    RegisterRequest,
    RegisterResponse,
    TotpVerifyRequest,
    TotpVerifyResponse,
)
from zerosend.core.errors import UnauthorizedError
from zerosend.db.models import KeyType

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an account",
)
async def register(body: RegisterRequest, services: Services) -> RegisterResponse:
    """Register a user with a primary Kyber-768 public key.

    The TOTP provisioning URI in the response is the only time the secret
    leaves the server.
    """
    result = await services.auth.register(
        email=str(body.email),
        display_name=body.display_name,
        password=body.password,
        public_key_b64=body.public_key_b64,
        key_type=KeyType(body.key_type),
    )
    return RegisterResponse(
        user_id=result.user_id,
        key_fingerprint=result.key_fingerprint,
        totp_provisioning_uri=result.totp_provisioning_uri,
    )


@router.post("/login", response_model=LoginResponse, summary="Sender login")
async def login(
    body: LoginRequest,
    services: Services,
    ip_address: ClientIp,
    user_agent: UserAgent,
) -> LoginResponse:
    result = await services.auth.login(
        str(body.email), body.password, ip_address=ip_address, user_agent=user_agent
    )
    return LoginResponse(
        access_token=result.token,
        expires_at=result.expires_at,
        expires_in=result.expires_in,
        user=LoginUser(
            id=result.user_id,
            display_name=result.display_name,
            role=result.role.value,
        ),
    )


@router.post("/logout", response_model=LogoutResponse, summary="Revoke the sender session")
async def logout(services: Services, token: BearerToken) -> LogoutResponse:
    if token is None:
        raise UnauthorizedError("Authentication required")
    return LogoutResponse(revoked=await services.auth.logout(token))


@router.post(
    "/totp/verify",
    response_model=TotpVerifyResponse,
    summary="Exchange a TOTP code for a transfer-bound auth token",
)
async def verify_totp(
    body: TotpVerifyRequest,
    services: Services,
    ip_address: ClientIp,
    user_agent: UserAgent,
) -> TotpVerifyResponse:
    """Verify the recipient's second factor for one transfer URL.

    Failures return ``auth-failed`` with ``remaining_attempts``; once the
    URL is locked every call returns ``locked`` without checking the code.
    """
    grant = await services.auth.verify_totp(
        body.url_token,
        str(body.email),
        body.otp,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return TotpVerifyResponse(auth_token=grant.auth_token, expires_in=grant.expires_in)
