"""ZeroSend core module.

Shared components used across all services:
- Configuration management
- Domain error taxonomy
- Token, digest and password helpers
"""

from zerosend.core.config import (
    ConfigValidationError,
    DatabaseSettings,
    Environment,
    RedisSettings,
    S3Settings,
    SecuritySettings,
    Settings,
    SMTPSettings,
)
from zerosend.core.errors import ErrorKind, ZeroSendError
from zerosend.core.settings import clear_settings_cache, get_settings

__all__ = [
    "ConfigValidationError",
    "DatabaseSettings",
    "Environment",
    "ErrorKind",
    "RedisSettings",
    "S3Settings",
    "SMTPSettings",
    "SecuritySettings",
    "Settings",
    "ZeroSendError",
    "clear_settings_cache",
    "get_settings",
]
