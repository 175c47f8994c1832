"""Cached settings accessor for ZeroSend configuration.

Usage:
    from zerosend.core.settings import get_settings

    settings = get_settings()
    threshold = settings.security.lock_threshold

The settings are loaded once and cached. To reload settings (e.g., in tests),
use clear_settings_cache(). Components never call get_settings() themselves:
the API entry point loads settings once and passes them to the factories that
build each service.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from pydantic import ValidationError

from zerosend.core.config import (
    ConfigValidationError,
    Settings,
    validate_settings,
)

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the cached application settings.

    Returns:
        Validated Settings instance.

    Raises:
        SystemExit: If settings cannot be loaded (fail-fast behavior).
    """
    try:
        logger.info("Loading application settings from environment")
        settings = Settings()
        validate_settings(settings)

        logger.info(
            "Configuration loaded: environment=%s, lock_threshold=%d, wrapped_key_ttl=%ds",
            settings.environment.value,
            settings.security.lock_threshold,
            settings.security.wrapped_key_ttl_seconds,
        )
        return settings

    except ValidationError as e:
        error_messages = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            msg = error["msg"]
            error_messages.append(f"  - {loc}: {msg}")

        logger.critical(
            "Configuration validation failed:\n%s",
            "\n".join(error_messages),
        )
        raise SystemExit(1) from e

    except ConfigValidationError as e:
        logger.critical(
            "Configuration validation failed: %s (field: %s)",
            e.message,
            e.field or "unknown",
        )
        raise SystemExit(1) from e


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Use this function in tests to reset settings between test cases,
    or when configuration needs to be reloaded.
    """
    get_settings.cache_clear()
    logger.debug("Settings cache cleared")
