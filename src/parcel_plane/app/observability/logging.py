"""Structured logging for the share-link / entitlement service.

structlog renders every record, including records from stdlib ``logging``
loggers, so the whole process emits one format.  Each entry carries the
current request id (set by ``RequestIDMiddleware``) for correlation.

Usage::

    from parcel_plane.app.observability.logging import configure_logging, get_logger

    configure_logging(level="INFO", json_output=True)  # once, at startup
    logger = get_logger(__name__)
    logger.info("share_link_viewed", link_id=link.id, view_count=3)
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar

import structlog

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

# Keys whose values must never reach a log sink.
SENSITIVE_KEYS = frozenset({
    "token",
    "authorization",
    "service_role_key",
    "jwt_secret",
    "password",
})

_configured = False


def _add_request_id(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict,
) -> dict:
    rid = request_id_ctx.get()
    if rid is not None and "request_id" not in event_dict:
        event_dict["request_id"] = rid
    return event_dict


def _drop_sensitive(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict,
) -> dict:
    for key in SENSITIVE_KEYS.intersection(event_dict):
        event_dict[key] = "<redacted>"
    return event_dict


def configure_logging(
    *,
    level: str = "INFO",
    json_output: bool = True,
    force: bool = False,
) -> None:
    """Configure structlog and route stdlib logging through it.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR).
        json_output: JSON lines when True, human-readable console otherwise.
        force: Reconfigure even if already configured (tests).
    """
    global _configured
    if _configured and not force:
        return
    _configured = True

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        _add_request_id,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        _drop_sensitive,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
