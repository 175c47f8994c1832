"""ZeroSend API middleware components.

- Request ID tracking and log correlation
- Problem-document error rendering
- Per-client rate limiting
"""

from zerosend.api.middleware.errors import (
    ErrorHandlerMiddleware,
    build_problem_response,
    install_error_handlers,
)
from zerosend.api.middleware.rate_limit import RateLimitMiddleware
from zerosend.api.middleware.request_id import (
    RequestIDMiddleware,
    RequestIdLogFilter,
    get_request_id,
)

__all__ = [
    "ErrorHandlerMiddleware",
    "RateLimitMiddleware",
    "RequestIDMiddleware",
    "RequestIdLogFilter",
    "build_problem_response",
    "get_request_id",
    "install_error_handlers",
]
