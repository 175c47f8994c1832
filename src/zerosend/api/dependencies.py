"""FastAPI dependencies shared by the routers.

Services are reached through ``request.app.state.services`` (a
ServiceContainer built at startup or injected by tests); nothing here
constructs clients.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from zerosend.core.errors import InternalError, UnauthorizedError
from zerosend.core.net import parse_ip
from zerosend.services.auth import SenderPrincipal  # noqa: TC001

# NOTE: resolved at runtime by FastAPI dependency injection
from zerosend.services.container import ServiceContainer  # noqa: TC001

UNKNOWN_CLIENT = "unknown"


def bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        return None
    return token


def client_ip(request: Request) -> str:
    """Best guess at the originating client address.

    First X-Forwarded-For hop, then X-Real-IP, then the socket peer. A
    candidate that does not parse as an IP address is skipped.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    candidates = [
        forwarded.split(",")[0] if forwarded else None,
        request.headers.get("X-Real-IP"),
        request.client.host if request.client else None,
    ]
    for candidate in candidates:
        address = parse_ip(candidate)
        if address is not None:
            return address
    return UNKNOWN_CLIENT


def user_agent(request: Request) -> str | None:
    return request.headers.get("User-Agent")


def get_services(request: Request) -> ServiceContainer:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise InternalError("Services are not initialised")
    return services


def get_bearer(request: Request) -> str | None:
    return bearer_token(request.headers.get("Authorization"))


Services = Annotated[ServiceContainer, Depends(get_services)]
ClientIp = Annotated[str, Depends(client_ip)]
UserAgent = Annotated[str | None, Depends(user_agent)]
BearerToken = Annotated[str | None, Depends(get_bearer)]


async def current_sender(services: Services, token: BearerToken) -> SenderPrincipal:
    """Resolve the sender behind the bearer token.

    Raises:
        UnauthorizedError: No token, or it does not resolve to an active session.
    """
    if token is None:
        raise UnauthorizedError("Authentication required")
    return await services.auth.authenticate_sender(token)


CurrentSender = Annotated[SenderPrincipal, Depends(current_sender)]


async def current_admin(sender: CurrentSender) -> SenderPrincipal:
    """Resolve the sender and require the admin role.

    Raises:
        ForbiddenError: The sender is not an administrator.
    """
    return sender.require_admin()


CurrentAdmin = Annotated[SenderPrincipal, Depends(current_admin)]
