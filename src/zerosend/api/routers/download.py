"""Recipient download router.

The landing-page call is anonymous; key release and completion require the
auth token from ``/auth/totp/verify`` as a Bearer credential.
"""

from __future__ import annotations

import base64
import logging
from typing import Annotated

from fastapi import APIRouter, Path

from zerosend.api.dependencies import BearerToken, ClientIp, Services, UserAgent
from zerosend.api.schemas.download import (
    CompleteResponse,
    DownloadKeyResponse,
    TransferInfoResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/download", tags=["download"])

UrlToken = Annotated[str, Path(min_length=1, max_length=64, description="Transfer URL token")]


@router.get("/{url_token}", response_model=TransferInfoResponse, summary="Transfer landing info")
async def get_info(
    url_token: UrlToken,
    services: Services,
    ip_address: ClientIp,
    user_agent: UserAgent,
) -> TransferInfoResponse:
    info = await services.downloads.get_info(
        url_token, ip_address=ip_address, user_agent=user_agent
    )
    return TransferInfoResponse(
        sender_display_name=info.sender_display_name,
        file_size_bytes=info.file_size_bytes,
        expires_at=info.expires_at,
        remaining_downloads=info.remaining_downloads,
        twofa_type=info.two_factor_type,
    )


@router.get(
    "/{url_token}/key",
    response_model=DownloadKeyResponse,
    summary="Release the wrapped key and a signed download URL",
)
async def get_key(
    url_token: UrlToken,
    services: Services,
    auth_token: BearerToken,
    ip_address: ClientIp,
    user_agent: UserAgent,
) -> DownloadKeyResponse:
    released = await services.downloads.get_key(
        url_token, auth_token, ip_address=ip_address, user_agent=user_agent
    )
    return DownloadKeyResponse(
        encrypted_key_b64=base64.b64encode(released.wrapped_key).decode("ascii"),
        cloud_file_url=released.download_url,
        cloud_file_url_expires_at=released.download_url_expires_at,
        file_hash_sha3=released.file_hash_sha3,
        remaining_downloads=released.remaining_downloads,
    )


@router.post(
    "/{url_token}/complete",
    response_model=CompleteResponse,
    summary="Confirm decryption; destroys the key and the file",
)
async def complete(
    url_token: UrlToken,
    services: Services,
    auth_token: BearerToken,
    ip_address: ClientIp,
    user_agent: UserAgent,
) -> CompleteResponse:
    result = await services.downloads.complete(
        url_token, auth_token, ip_address=ip_address, user_agent=user_agent
    )
    return CompleteResponse(deleted=result.deleted)
