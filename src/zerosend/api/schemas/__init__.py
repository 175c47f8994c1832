"""Pydantic request/response schemas for the ZeroSend API."""

from zerosend.api.schemas.admin import (
    AuditLogItem,
    AuditLogListResponse,
    DeactivateUserResponse,
    ForceDeleteResponse,
    SessionDetailResponse,
    SessionListResponse,
    SessionSummary,
    UnlockResponse,
    UserListResponse,
    UserSummary,
)
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
from zerosend.api.schemas.download import (
    CompleteResponse,
    DownloadKeyResponse,
    TransferInfoResponse,
)
from zerosend.api.schemas.transfer import (
    FinalizeUrlResponse,
    InitiateTransferRequest,
    InitiateTransferResponse,
    StoreKeyRequest,
    StoreKeyResponse,
)

__all__ = [
    "AuditLogItem",
    "AuditLogListResponse",
    "CompleteResponse",
    "DeactivateUserResponse",
    "DownloadKeyResponse",
    "FinalizeUrlResponse",
    "ForceDeleteResponse",
    "InitiateTransferRequest",
    "InitiateTransferResponse",
    "LoginRequest",
    "LoginResponse",
    "LoginUser",
    "LogoutResponse",
    "RegisterRequest",
    "RegisterResponse",
    "SessionDetailResponse",
    "SessionListResponse",
    "SessionSummary",
    "StoreKeyRequest",
    "StoreKeyResponse",
    "TotpVerifyRequest",
    "TotpVerifyResponse",
    "UnlockResponse",
    "UserListResponse",
    "UserSummary",
]
