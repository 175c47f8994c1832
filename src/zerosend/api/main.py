"""ZeroSend API service entry point.

``zerosend.api.main:app`` is the ASGI application for uvicorn; ``run()``
backs the ``zerosend-api`` console script.
"""

import logging

from zerosend.api import create_app
from zerosend.api.middleware import RequestIdLogFilter
from zerosend.core.settings import get_settings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] [%(request_id)s] %(message)s"


def configure_logging(level: str) -> None:
    """Root logging with the request id stamped on every record."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
    for handler in logging.getLogger().handlers:
        handler.addFilter(RequestIdLogFilter())


settings = get_settings()
configure_logging(settings.log_level)
app = create_app(settings)


def run() -> None:
    """Run the API server using uvicorn."""
    import uvicorn

    logger.info("Starting ZeroSend API on %s:%d", settings.api_host, settings.api_port)
    uvicorn.run(
        "zerosend.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
        log_config=None,
    )


if __name__ == "__main__":
    run()
