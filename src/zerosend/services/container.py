"""Explicit wiring of the service graph.

Every client handle (database engine, Redis connection, S3 client, SMTP
settings) is created here from Settings and passed down by constructor.
The API builds one container at startup; tests build their own from fakes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from zerosend.db import create_engine_from_settings, create_session_factory
from zerosend.db.models import CloudType
from zerosend.services.admin import AdminService
from zerosend.services.audit import AuditRecorder
from zerosend.services.auth import AuthBroker
from zerosend.services.download import DownloadBroker
from zerosend.services.lockout import LockoutGuard
from zerosend.services.notifier import EmailNotifier
from zerosend.services.rate_limit import RateLimiter
from zerosend.services.secret_cache import RedisSecretCache
from zerosend.services.storage import S3ObjectStorage
from zerosend.services.store import TransferStore
from zerosend.services.totp import TotpSecretCipher
from zerosend.services.transfer import TransferOrchestrator

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping
    from datetime import datetime

    from zerosend.core.config import Settings
    from zerosend.services.secret_cache import SecretCache

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """All long-lived services of one running application."""

    store: TransferStore
    cache: SecretCache
    audit: AuditRecorder
    lockout: LockoutGuard
    rate_limiter: RateLimiter
    auth: AuthBroker
    transfers: TransferOrchestrator
    downloads: DownloadBroker
    admin: AdminService
    closers: list[Callable[[], Awaitable[Any]]] = field(default_factory=list)

    @classmethod
    def assemble(
        cls,
        settings: Settings,
        *,
        store: TransferStore,
        cache: SecretCache,
        storage_backends: Mapping[CloudType, S3ObjectStorage],
        notifier: EmailNotifier,
        clock: Callable[[], datetime] | None = None,
    ) -> ServiceContainer:
        """Build the service graph around already-constructed handles.

        Args:
            settings: Application settings.
            store: Durable store.
            cache: Secret cache.
            storage_backends: Object storage per cloud type.
            notifier: Download-link notifier.
            clock: Optional clock override shared by all services.
        """
        security = settings.security
        clock_kwargs = {"clock": clock} if clock is not None else {}

        audit = AuditRecorder(store)
        lockout = LockoutGuard(
            cache,
            threshold=security.lock_threshold,
            ttl_seconds=security.lock_ttl_seconds,
        )
        rate_limiter = RateLimiter(
            cache,
            window_seconds=security.rate_window_seconds,
            unauthenticated_limit=security.rate_limit_unauthenticated,
            authenticated_limit=security.rate_limit_authenticated,
            login_limit=security.rate_limit_login,
        )
        auth = AuthBroker(
            store,
            cache,
            lockout,
            audit,
            TotpSecretCipher.from_hex(security.totp_encryption_key.get_secret_value()),
            auth_session_ttl_seconds=security.auth_session_ttl_seconds,
            sender_session_hours=security.sender_session_hours,
            totp_issuer=security.totp_issuer,
            **clock_kwargs,
        )
        transfers = TransferOrchestrator(
            store,
            cache,
            audit,
            storage_backends,
            notifier,
            frontend_base_url=settings.frontend_base_url,
            wrapped_key_ttl_seconds=security.wrapped_key_ttl_seconds,
            **clock_kwargs,
        )
        downloads = DownloadBroker(
            store, cache, lockout, auth, storage_backends, audit, **clock_kwargs
        )
        admin = AdminService(store, cache, lockout, storage_backends, audit, **clock_kwargs)

        return cls(
            store=store,
            cache=cache,
            audit=audit,
            lockout=lockout,
            rate_limiter=rate_limiter,
            auth=auth,
            transfers=transfers,
            downloads=downloads,
            admin=admin,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> ServiceContainer:
        """Create real clients from settings and wire the services."""
        engine = create_engine_from_settings(settings.database)
        cache = RedisSecretCache.from_url(
            settings.redis.url, socket_timeout=settings.redis.socket_timeout
        )
        container = cls.assemble(
            settings,
            store=TransferStore(create_session_factory(engine)),
            cache=cache,
            storage_backends={CloudType.S3: S3ObjectStorage.from_settings(settings.s3)},
            notifier=EmailNotifier(settings.smtp, app_name=settings.app_name),
        )
        container.closers.extend([cache.close, engine.dispose])
        logger.info("Service container built", extra={"environment": settings.environment.value})
        return container

    async def aclose(self) -> None:
        """Release client resources in reverse creation order."""
        for closer in reversed(self.closers):
            try:
                await closer()
            except Exception:
                logger.warning("Error while releasing a client resource", exc_info=True)
        self.closers.clear()
