"""Helper for side effects that must never fail the caller.

Object deletion after completion and download-link notification are
attempted once; a failure is logged and reported as ``False`` so the
logical state transition that depends on them still happens.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)


async def attempt(
    action: str,
    operation: Callable[[], Awaitable[Any]],
    *,
    context: dict[str, Any] | None = None,
) -> bool:
    """Run ``operation`` once, swallowing and logging any exception.

    Args:
        action: Short description for the log line (e.g. "object deletion").
        operation: Zero-argument coroutine factory.
        context: Extra fields attached to the log record.

    Returns:
        False if the operation raised or itself returned False, else True.
    """
    try:
        result = await operation()
    except Exception as e:
        logger.warning(
            "Best-effort %s failed: %s",
            action,
            e,
            exc_info=True,
            extra=context or {},
        )
        return False
    return result is not False
