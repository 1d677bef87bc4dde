"""
Structured Logging Module
=========================

structlog configuration for PhonePool.

Every event carries the service name and version, plus whatever is bound
with :class:`LogContext` (request id on HTTP requests, session id inside
capture workers). Provider tokens, API keys and webhook signatures are
masked before rendering, whichever module logged them.

Development renders colored console lines with rich tracebacks; production
renders one JSON object per line.

Usage:
    from phonepool.utils.logger import get_logger

    logger = get_logger(__name__)
    logger.info("Capture started", session_id="abc", provider="GeeLark")
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from phonepool import __version__
from phonepool.config import get_settings
from phonepool.utils.security import sanitize_for_logging

SERVICE_NAME = "phonepool"

# Third-party loggers that only get to speak on warnings
QUIET_LOGGERS = ("aiohttp.access", "httpx", "uvicorn.access", "PIL")


def add_service(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("version", __version__)
    return event_dict


def redact_secrets(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask credential-looking keys anywhere in the event."""
    return sanitize_for_logging(event_dict)


def _renderer(debug: bool) -> list[Processor]:
    if debug:
        return [structlog.dev.ConsoleRenderer(colors=True, exception_formatter=structlog.dev.rich_traceback)]
    return [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]


def setup_logging() -> None:
    """Configure structlog and stdlib logging. Call once at startup."""
    settings = get_settings()
    level = getattr(logging, settings.server.log_level)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_service,
        redact_secrets,
        *_renderer(settings.server.debug),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


class LogContext:
    """
    Bind keys to every log event emitted inside the block.

    Nested contexts restore the outer values on exit, so a capture worker
    binding ``session_id`` inside a request keeps the request's
    ``request_id`` intact.

    Usage:
        with LogContext(session_id="abc123", provider="DuoPlus"):
            logger.info("Navigating")  # Will include session_id and provider
    """

    def __init__(self, **kwargs: Any) -> None:
        self.context = kwargs
        self._bound: Any = None

    def __enter__(self) -> "LogContext":
        self._bound = structlog.contextvars.bound_contextvars(**self.context)
        self._bound.__enter__()
        return self

    def __exit__(self, *args: Any) -> None:
        self._bound.__exit__(*args)
