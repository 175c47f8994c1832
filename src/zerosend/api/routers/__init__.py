"""ZeroSend API routers, all mounted under ``/api/v1``.

- auth: sender accounts and the recipient TOTP exchange
- transfer: sender-side transfer lifecycle
- download: recipient landing page, key release and completion
- admin: session, audit and user administration
"""

from zerosend.api.routers.admin import router as admin_router
from zerosend.api.routers.auth import router as auth_router
from zerosend.api.routers.download import router as download_router
from zerosend.api.routers.transfer import router as transfer_router

__all__ = [
    "admin_router",
    "auth_router",
    "download_router",
    "transfer_router",
]
