# uploadgate/core/logging_config.py
import logging
import sys

import structlog


def setup_logging(level: str = "INFO") -> None:
    """
    JSON-logging voor de upload-coordinator: stdlib logging + structlog.

    The per-request ``request_id`` bound by the HTTP middleware is merged into
    every event, so one multipart flow (create, sign, complete) can be
    followed across requests by its upload id and request id.
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


# gedeeld door services, routers en middleware
logger = structlog.get_logger("uploadgate")
