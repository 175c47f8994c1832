"""ZeroSend service layer.

- TransferStore: durable state (transfer sessions, users, keys, audit log)
- SecretCache / RedisSecretCache: TTL-bounded wrapped keys and counters
- LockoutGuard: per-URL TOTP failure lockout
- RateLimiter: per-client request throttling
- AuditRecorder: best-effort audit trail
- AuthBroker: sender sessions and recipient TOTP verification
- TransferOrchestrator: sender-side transfer lifecycle
- DownloadBroker: key release and completion for recipients
- AdminService: administration of sessions, logs and users
- S3ObjectStorage: signed URLs and object deletion
- EmailNotifier: download-link emails
- ServiceContainer: explicit wiring of all of the above
"""

from zerosend.services.admin import AdminService
from zerosend.services.audit import AuditRecorder
from zerosend.services.auth import AuthBroker, SenderPrincipal
from zerosend.services.container import ServiceContainer
from zerosend.services.download import DownloadBroker
from zerosend.services.lockout import LockoutGuard
from zerosend.services.notifier import EmailNotifier
from zerosend.services.rate_limit import RateLimiter
from zerosend.services.secret_cache import CacheKeys, RedisSecretCache, SecretCache
from zerosend.services.storage import S3ObjectStorage, StorageError
from zerosend.services.store import TransferStore
from zerosend.services.transfer import TransferOrchestrator

__all__ = [
    "AdminService",
    "AuditRecorder",
    "AuthBroker",
    "CacheKeys",
    "DownloadBroker",
    "EmailNotifier",
    "LockoutGuard",
    "RateLimiter",
    "RedisSecretCache",
    "S3ObjectStorage",
    "SecretCache",
    "SenderPrincipal",
    "ServiceContainer",
    "StorageError",
    "TransferOrchestrator",
    "TransferStore",
]
