"""ZeroSend API service.

FastAPI application providing:
- Sender accounts, login and the recipient TOTP exchange
- Sender transfer lifecycle (initiate, store key, finalize URL)
- Recipient landing info, key release and completion
- Admin session, audit log and user management

The app factory builds the service graph from settings at startup, or
accepts a prebuilt ServiceContainer (tests).
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from zerosend.api.middleware import (
    ErrorHandlerMiddleware,
    RateLimitMiddleware,
    RequestIDMiddleware,
    install_error_handlers,
)
from zerosend.api.routers import admin_router, auth_router, download_router, transfer_router
from zerosend.services.container import ServiceContainer

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from zerosend.core.config import Settings

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
API_TITLE = "ZeroSend API"
API_DESCRIPTION = """
Zero-retention end-to-end encrypted file transfer.

The server never sees plaintext or unwrapped keys. It brokers a wrapped key
and a signed storage URL to a recipient who proves possession of their TOTP
device, and destroys both once the recipient confirms decryption.

## Namespaces

- **/api/v1/auth/** - Accounts, login, recipient TOTP
- **/api/v1/transfer/** - Sender operations (authenticated)
- **/api/v1/download/** - Recipient operations (TOTP auth token)
- **/api/v1/admin/** - Administration (admin role)
"""


def create_app(
    settings: Settings | None = None,
    *,
    services: ServiceContainer | None = None,
) -> FastAPI:
    """Create and configure a FastAPI application instance.

    Args:
        settings: Application settings. Loaded from the environment when
            omitted.
        services: Prebuilt service container. When omitted, one is built
            from ``settings`` at startup and closed at shutdown.

    Returns:
        Configured FastAPI application.
    """
    if settings is None:
        from zerosend.core.settings import get_settings

        settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned: ServiceContainer | None = None
        if app.state.services is None:
            owned = ServiceContainer.from_settings(settings)
            app.state.services = owned
        logger.info("Configuration: %s", settings.get_config_snapshot())
        try:
            yield
        finally:
            if owned is not None:
                await owned.aclose()
                app.state.services = None

    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=settings.app_version,
        docs_url=f"{API_PREFIX}/docs",
        redoc_url=f"{API_PREFIX}/redoc",
        openapi_url=f"{API_PREFIX}/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.services = services

    install_error_handlers(app)
    _add_middleware(app, settings)
    _include_routers(app)

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, str]:
        """Liveness probe; exempt from rate limiting."""
        return {"status": "healthy"}

    logger.info("ZeroSend API application created (version=%s)", settings.app_version)
    return app


def _add_middleware(app: FastAPI, settings: Settings) -> None:
    """Add middleware (last added is outermost).

    Resulting order, outside in: CORS, request id, error handler, rate limit.
    """
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=[
            "X-Request-ID",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
            "Retry-After",
        ],
    )


def _include_routers(app: FastAPI) -> None:
    app.include_router(auth_router, prefix=API_PREFIX)
    app.include_router(transfer_router, prefix=API_PREFIX)
    app.include_router(download_router, prefix=API_PREFIX)
    app.include_router(admin_router, prefix=API_PREFIX)
