"""Sender transfer router.

    POST /transfer/initiate     create session, get upload URL + recipient key
    POST /transfer/{id}/key     hand over the wrapped key (base64 on the wire)
    POST /transfer/{id}/url     finalize and notify the recipient
"""

from __future__ import annotations

import base64
import binascii
import logging
from uuid import UUID  # noqa: TC003

from fastapi import APIRouter, status

from zerosend.api.dependencies import ClientIp, CurrentSender, Services, UserAgent
from zerosend.api.schemas.transfer import (
    FinalizeUrlResponse,
    InitiateTransferRequest,
    InitiateTransferResponse,
    StoreKeyRequest,
    StoreKeyResponse,
)
from zerosend.core.errors import BadRequestError

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/transfer",
    tags=["transfer"],
    responses={
        401: {"description": "Authentication required"},
        403: {"description": "Not the sender of this transfer"},
    },
)


def decode_wrapped_key(enc_key_b64: str) -> bytes:
    """Decode the wire form of a wrapped key.

    Raises:
        BadRequestError: Not valid base64, or empty once decoded.
    """
    try:
        raw = base64.b64decode(enc_key_b64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise BadRequestError("enc_key_b64 is not valid base64") from e
    if not raw:
        raise BadRequestError("enc_key_b64 must not be empty")
    return raw


@router.post(
    "/initiate",
    response_model=InitiateTransferResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a transfer session",
)
async def initiate(
    body: InitiateTransferRequest,
    sender: CurrentSender,
    services: Services,
    ip_address: ClientIp,
    user_agent: UserAgent,
) -> InitiateTransferResponse:
    result = await services.transfers.initiate(
        sender,
        recipient_email=str(body.recipient_email),
        file_hash_sha3=body.file_hash_sha3,
        file_size_bytes=body.file_size_bytes,
        cloud_type=body.cloud_type,
        max_downloads=body.max_downloads,
        ttl_hours=body.expires_in_hours,
        encrypted_filename=body.encrypted_filename,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return InitiateTransferResponse(
        session_id=result.session_id,
        upload_url=result.upload_url,
        cloud_file_id=result.cloud_file_id,
        recipient_public_key_b64=result.recipient_public_key,
        recipient_key_fingerprint=result.recipient_key_fingerprint,
        url_token=result.url_token,
        expires_at=result.expires_at,
    )


@router.post("/{session_id}/key", response_model=StoreKeyResponse, summary="Store the wrapped key")
async def store_key(
    session_id: UUID,
    body: StoreKeyRequest,
    sender: CurrentSender,
    services: Services,
    ip_address: ClientIp,
    user_agent: UserAgent,
) -> StoreKeyResponse:
    await services.transfers.store_key(
        session_id,
        sender.user_id,
        decode_wrapped_key(body.enc_key_b64),
        body.cloud_file_id,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return StoreKeyResponse()


@router.post(
    "/{session_id}/url",
    response_model=FinalizeUrlResponse,
    summary="Finalize the share URL and notify the recipient",
)
async def finalize_url(
    session_id: UUID,
    sender: CurrentSender,
    services: Services,
    ip_address: ClientIp,
    user_agent: UserAgent,
) -> FinalizeUrlResponse:
    result = await services.transfers.finalize_url(
        session_id, sender.user_id, ip_address=ip_address, user_agent=user_agent
    )
    return FinalizeUrlResponse(
        share_url=result.share_url,
        email_sent=result.email_sent,
        expires_at=result.expires_at,
    )
