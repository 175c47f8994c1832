"""Domain error taxonomy.

Every failure raised by the service layer is a ZeroSendError subclass with a
stable machine-readable ErrorKind. Services never pick HTTP status codes or
response bodies; the API error middleware is the single place that maps a
kind to a transport status and a problem document.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, ClassVar


class ErrorKind(str, Enum):
    """Stable error kinds exposed to clients as ``/errors/<kind>``.

    Values:
        UNAUTHORIZED: Missing, expired or mis-bound credential
        AUTH_FAILED: Wrong second factor; carries remaining attempts
        LOCKED: Transfer URL locked after repeated second-factor failures
        FORBIDDEN: Authenticated caller may not act on this resource
        NOT_FOUND: Resource (or wrapped key) does not exist
        GONE: Transfer expired or download budget exhausted
        CONFLICT: Resource is in the wrong state for the transition
        BAD_REQUEST: Input failed validation
        RATE_LIMITED: Too many requests from this origin
        INTERNAL: Unexpected failure, details withheld
    """

    UNAUTHORIZED = "unauthorized"
    AUTH_FAILED = "auth-failed"
    LOCKED = "locked"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not-found"
    GONE = "gone"
    CONFLICT = "conflict"
    BAD_REQUEST = "bad-request"
    RATE_LIMITED = "rate-limited"
    INTERNAL = "internal"


# Transport mapping lives here so the boundary and its tests share one table.
HTTP_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.AUTH_FAILED: 401,
    ErrorKind.LOCKED: 423,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.GONE: 410,
    ErrorKind.CONFLICT: 409,
    ErrorKind.BAD_REQUEST: 400,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.INTERNAL: 500,
}


class ZeroSendError(Exception):
    """Base exception for domain failures.

    Attributes:
        message: Human-readable description (safe to show the client).
        context: Extra structured fields for logs and, for some kinds,
            for the problem document.
    """

    kind: ClassVar[ErrorKind] = ErrorKind.INTERNAL

    def __init__(self, message: str, **context: Any) -> None:
        self.message = message
        self.context = context
        super().__init__(message)

    @property
    def status_code(self) -> int:
        """HTTP status associated with this error's kind."""
        return HTTP_STATUS_BY_KIND[self.kind]


class UnauthorizedError(ZeroSendError):
    """Credential missing, expired, or bound to a different transfer."""

    kind = ErrorKind.UNAUTHORIZED


class AuthFailedError(ZeroSendError):
    """Second-factor code rejected.

    Attributes:
        remaining_attempts: Failures left before the transfer URL locks.
    """

    kind = ErrorKind.AUTH_FAILED

    def __init__(self, message: str, *, remaining_attempts: int, **context: Any) -> None:
        self.remaining_attempts = remaining_attempts
        super().__init__(message, remaining_attempts=remaining_attempts, **context)


class LockedError(ZeroSendError):
    """Transfer URL is locked until an administrator unlocks it."""

    kind = ErrorKind.LOCKED


class ForbiddenError(ZeroSendError):
    """Caller is authenticated but not allowed to perform the action."""

    kind = ErrorKind.FORBIDDEN


class NotFoundError(ZeroSendError):
    """Requested resource does not exist (or is deliberately hidden)."""

    kind = ErrorKind.NOT_FOUND


class GoneError(ZeroSendError):
    """Transfer has expired or used its whole download budget."""

    kind = ErrorKind.GONE


class ConflictError(ZeroSendError):
    """Transfer is not in the state the requested transition requires."""

    kind = ErrorKind.CONFLICT


class BadRequestError(ZeroSendError):
    """Input rejected by domain validation."""

    kind = ErrorKind.BAD_REQUEST


class RateLimitedError(ZeroSendError):
    """Request ceiling exceeded for the current window.

    Attributes:
        retry_after: Seconds until the window resets.
    """

    kind = ErrorKind.RATE_LIMITED

    def __init__(self, message: str, *, retry_after: int, **context: Any) -> None:
        self.retry_after = retry_after
        super().__init__(message, retry_after=retry_after, **context)


class InternalError(ZeroSendError):
    """Unexpected server-side failure; message is never shown verbatim."""

    kind = ErrorKind.INTERNAL
