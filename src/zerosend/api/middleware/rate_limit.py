"""Per-client request throttling.

Charges every request except health checks to the client IP. Login calls
are charged to their own, tighter counter. Responses carry
X-RateLimit-Limit / X-RateLimit-Remaining / X-RateLimit-Reset; a refused
request gets a ``rate-limited`` problem document with Retry-After.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from starlette.middleware.base import BaseHTTPMiddleware

from zerosend.api.dependencies import bearer_token, client_ip
from zerosend.api.middleware.errors import problem_for_error
from zerosend.core.errors import RateLimitedError
from zerosend.services.rate_limit import RateScope

if TYPE_CHECKING:
    from starlette.middleware.base import RequestResponseEndpoint
    from starlette.requests import Request
    from starlette.responses import Response

    from zerosend.services.rate_limit import RateLimitDecision

logger = logging.getLogger(__name__)

EXEMPT_PATHS = frozenset({"/health"})
LOGIN_PATH_SUFFIX = "/auth/login"


def _apply_headers(response: Response, decision: RateLimitDecision) -> None:
    response.headers["X-RateLimit-Limit"] = str(decision.limit)
    response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
    response.headers["X-RateLimit-Reset"] = str(decision.reset_seconds)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Fixed-window limiter in front of every API route."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        services = getattr(request.app.state, "services", None)
        if request.url.path in EXEMPT_PATHS or request.method == "OPTIONS" or services is None:
            return await call_next(request)

        scope = (
            RateScope.LOGIN
            if request.method == "POST" and request.url.path.endswith(LOGIN_PATH_SUFFIX)
            else RateScope.GENERAL
        )
        authenticated = bearer_token(request.headers.get("Authorization")) is not None

        try:
            decision = await services.rate_limiter.hit(
                client_ip(request), scope, authenticated=authenticated
            )
        except Exception:
            # Counter store unreachable: serve the request unmetered.
            logger.warning("Rate limiter unavailable; request not counted", exc_info=True)
            return await call_next(request)

        if not decision.allowed:
            response = problem_for_error(
                request,
                RateLimitedError("Too many requests", retry_after=decision.reset_seconds),
            )
            _apply_headers(response, decision)
            return response

        response = await call_next(request)
        _apply_headers(response, decision)
        return response
