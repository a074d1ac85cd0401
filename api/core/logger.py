"""structlog setup for the badge API.

Every line carries ``service`` plus whatever the request middleware bound
(``request_id``, ``method``, ``path``). Output is JSON unless stdout is a
terminal; ``LOG_FORMAT=json|console`` overrides that. Event names are dotted:
``streak.cache.hit``, ``github.fetch.failed``, ``request.completed``.
"""

import logging
import os
import sys

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars
from structlog.types import EventDict, Processor, WrappedLogger

from core.config import SERVICE_NAME

__all__ = [
    "bind_contextvars",
    "clear_contextvars",
    "configure_logging",
    "get_logger",
]

# Third-party loggers that would otherwise log every upstream request
_QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def _add_service_name(
    _logger: WrappedLogger, _method_name: str, event_dict: EventDict
) -> EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _get_log_level() -> int:
    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_name, logging.INFO)


def _is_json_format() -> bool:
    log_format = os.environ.get("LOG_FORMAT", "").lower()
    if log_format == "json":
        return True
    if log_format == "console":
        return False
    # Containers and log shippers get JSON, a developer shell gets colours
    return not sys.stdout.isatty()


def configure_logging() -> None:
    """Route structlog and stdlib (uvicorn) records through one formatter.

    Call once at startup, before the first log line.
    """
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        _add_service_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if _is_json_format():
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=True, exception_formatter=structlog.dev.plain_traceback
        )

    structlog.configure(
        processors=shared_processors
        + [
            structlog.processors.format_exc_info,
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
            structlog.processors.format_exc_info,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(_get_log_level())

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.stdlib.get_logger(name)
