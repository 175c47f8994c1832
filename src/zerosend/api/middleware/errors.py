"""Problem-document rendering of domain errors.

This is the only place where an ErrorKind becomes an HTTP status. Responses
follow RFC 7807 (``application/problem+json``):

    {
      "type": "/errors/<kind>",
      "title": "<message>",
      "status": <http status>,
      "instance": "<request path>",
      "request_id": "<X-Request-ID>",
      "remaining_attempts": <int>        # auth-failed only
    }

Unexpected exceptions are logged with their traceback and rendered as
``internal`` without detail.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from zerosend.api.middleware.request_id import get_request_id
from zerosend.core.errors import (
    HTTP_STATUS_BY_KIND,
    AuthFailedError,
    ErrorKind,
    RateLimitedError,
    ZeroSendError,
)

if TYPE_CHECKING:
    from fastapi import FastAPI
    from starlette.middleware.base import RequestResponseEndpoint
    from starlette.requests import Request
    from starlette.responses import Response

logger = logging.getLogger(__name__)

PROBLEM_CONTENT_TYPE = "application/problem+json"

# Framework-level HTTP errors (unknown route, wrong method) mapped to kinds.
_KIND_BY_HTTP_STATUS: dict[int, ErrorKind] = {
    400: ErrorKind.BAD_REQUEST,
    401: ErrorKind.UNAUTHORIZED,
    403: ErrorKind.FORBIDDEN,
    404: ErrorKind.NOT_FOUND,
    405: ErrorKind.BAD_REQUEST,
    409: ErrorKind.CONFLICT,
    410: ErrorKind.GONE,
    423: ErrorKind.LOCKED,
    429: ErrorKind.RATE_LIMITED,
}


class ProblemResponse(JSONResponse):
    media_type = PROBLEM_CONTENT_TYPE


def build_problem_response(
    request: Request,
    kind: ErrorKind,
    title: str,
    *,
    status_code: int | None = None,
    extra: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> ProblemResponse:
    """Build a problem document for ``kind``.

    Args:
        request: Current request (supplies ``instance`` and the request id).
        kind: Error kind.
        title: Client-safe message.
        status_code: Override for framework errors whose status differs
            from the kind's default (e.g. 405).
        extra: Additional members such as ``remaining_attempts``.
        headers: Extra response headers.
    """
    status_code = status_code or HTTP_STATUS_BY_KIND[kind]
    body: dict[str, Any] = {
        "type": f"/errors/{kind.value}",
        "title": title,
        "status": status_code,
        "instance": request.url.path,
    }
    request_id = getattr(request.state, "request_id", None) or get_request_id()
    if request_id:
        body["request_id"] = request_id
    if extra:
        body.update(extra)
    return ProblemResponse(status_code=status_code, content=body, headers=headers)


def problem_for_error(request: Request, exc: ZeroSendError) -> ProblemResponse:
    """Render a domain error, adding kind-specific members and headers."""
    extra: dict[str, Any] = {}
    headers: dict[str, str] = {}
    if isinstance(exc, AuthFailedError):
        extra["remaining_attempts"] = exc.remaining_attempts
    if isinstance(exc, RateLimitedError):
        headers["Retry-After"] = str(exc.retry_after)

    if exc.kind is ErrorKind.INTERNAL:
        logger.error("Internal error on %s %s: %s", request.method, request.url.path, exc.message)
        title = "An internal error occurred"
    else:
        title = exc.message
        logger.info(
            "Request failed: %s",
            exc.kind.value,
            extra={"path": request.url.path, "error_kind": exc.kind.value},
        )
    return build_problem_response(request, exc.kind, title, extra=extra, headers=headers or None)


async def _handle_domain_error(request: Request, exc: Exception) -> Response:
    assert isinstance(exc, ZeroSendError)
    return problem_for_error(request, exc)


async def _handle_validation_error(request: Request, exc: Exception) -> Response:
    assert isinstance(exc, RequestValidationError)
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    title = f"{location}: {first.get('msg')}" if location else "Request validation failed"
    return build_problem_response(
        request,
        ErrorKind.BAD_REQUEST,
        title,
        extra={"errors": [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errors]},
    )


async def _handle_http_exception(request: Request, exc: Exception) -> Response:
    assert isinstance(exc, StarletteHTTPException)
    kind = _KIND_BY_HTTP_STATUS.get(exc.status_code, ErrorKind.INTERNAL)
    return build_problem_response(
        request,
        kind,
        str(exc.detail),
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


def install_error_handlers(app: FastAPI) -> None:
    """Register the problem-document handlers on ``app``."""
    app.add_exception_handler(ZeroSendError, _handle_domain_error)
    app.add_exception_handler(RequestValidationError, _handle_validation_error)
    app.add_exception_handler(StarletteHTTPException, _handle_http_exception)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Last line of defence: anything the handlers did not render.

    Domain errors raised inside other middleware (rate limiting) also land
    here, because exception handlers only cover the routing layer.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            return await call_next(request)
        except ZeroSendError as exc:
            return problem_for_error(request, exc)
        except Exception:
            logger.exception(
                "Unexpected error processing request: %s %s",
                request.method,
                request.url.path,
            )
            return build_problem_response(
                request, ErrorKind.INTERNAL, "An internal error occurred"
            )
