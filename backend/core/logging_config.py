"""Structured logging configuration using structlog.

Both processes log through structlog: the API (``component="api"``) and the
Celery worker (``component="worker"``). stdlib loggers used by the HTTP layer
and third-party libraries are rendered by the same formatter, so one log
stream carries both.

Context bound with ``bind_request_context`` (request id, workflow id, run id)
is merged into every entry logged from the same task, including runs started
in the background from that request.
"""

import logging
import sys
from typing import Any, Optional

import structlog

from app.config import get_settings

SERVICE_NAME = "flowline"

# Libraries that log too much at INFO
NOISY_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "aiosqlite": logging.WARNING,
    "celery": logging.INFO,
}


def _add_service(component: str):
    def processor(logger, method_name, event_dict):
        event_dict.setdefault("service", SERVICE_NAME)
        event_dict.setdefault("component", component)
        return event_dict

    return processor


def setup_logging(component: str = "api") -> None:
    """Route structlog and stdlib logging through one formatter.

    Console output when ``LOG_FORMAT=text`` or in development,
    JSON lines otherwise.
    """
    settings = get_settings()

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        _add_service(component),
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.is_development or settings.LOG_FORMAT == "text":
        renderer: Any = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                renderer,
            ],
            foreign_pre_chain=shared_processors,
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    for name, level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(level)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.SQLALCHEMY_ECHO else logging.WARNING
    )


def bind_request_context(request_id: str, **values: Optional[str]) -> None:
    """Start a fresh logging context for one request or worker task."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        **{k: v for k, v in values.items() if v is not None},
    )
