"""
Structured Logging with Structlog.

Every entry carries the service identity and, inside a request, the
request id bound by the HTTP middleware. Secret-bearing fields are
redacted before rendering so shared tool keys never reach the log sink.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from app.config import settings

# Event fields whose values are never rendered
REDACTED_FIELDS = frozenset(
    {"api_key", "password", "password_hash", "token", "authorization", "mirror_auth_token"}
)
REDACTED = "[redacted]"

# Libraries that log full request URLs (the mirror auth token travels as a query param)
QUIET_LOGGERS = ("httpx", "httpcore")


def add_service_identity(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict["service"] = settings.service_name
    event_dict["version"] = settings.api_version
    event_dict["environment"] = settings.environment
    return event_dict


def redact_secrets(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Replace secret-bearing values, at the top level and one dict deep."""
    for key, value in event_dict.items():
        if key in REDACTED_FIELDS and value is not None:
            event_dict[key] = REDACTED
        elif isinstance(value, dict):
            event_dict[key] = {
                k: REDACTED if k in REDACTED_FIELDS and v is not None else v
                for k, v in value.items()
            }
    return event_dict


def setup_logging() -> None:
    """
    Route structlog through the stdlib root logger.

    LOG_FORMAT=json renders one JSON object per line:
    {
        "event": "api_key_copied",
        "level": "info",
        "timestamp": "2026-10-19T12:00:00.123456Z",
        "logger": "app.services.quota",
        "service": "key-hub-api",
        "request_id": "req-123",
        "user_id": "...",
        "key_id": "..."
    }
    LOG_FORMAT=console gives colored key=value lines for local runs.
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper()),
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_service_identity,
        redact_secrets,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
    ]

    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)  # type: ignore[no-any-return]


@contextmanager
def request_log_context(request_id: str, method: str, path: str) -> Iterator[None]:
    """Bind request fields to every entry logged while handling one request."""
    with structlog.contextvars.bound_contextvars(
        request_id=request_id, method=method, path=path
    ):
        yield
