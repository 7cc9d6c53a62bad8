"""structlog setup for TaskFlow.

structlog events and stdlib records (uvicorn, SQLAlchemy) go through one
root handler, so every line carries the same timestamp, level, logger name
and request fields. ``LOG_FORMAT=json`` renders JSON lines; anything else
renders for the console.
"""

import logging
import sys

import structlog

from taskflow.config import Settings, get_settings

REQUEST_FIELDS = ("request_id", "user_id", "method", "path")

# Requests are logged as request_completed; SQL statements only with DATABASE_ECHO.
_QUIET_LOGGERS = ("sqlalchemy.engine", "uvicorn.access")


def configure_logging(settings: Settings | None = None) -> None:
    """Route structlog and stdlib logging through a single formatter."""
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    if settings.log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer(
            ensure_ascii=False
        )
        shared_processors.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

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
            processor=renderer,
            foreign_pre_chain=shared_processors,
        )
    )
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        verbose = name == "sqlalchemy.engine" and settings.database_echo
        logging.getLogger(name).setLevel(level if verbose else max(level, logging.WARNING))
    # uvicorn installs its own handlers; let records reach the root handler instead.
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).handlers.clear()
        logging.getLogger(name).propagate = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_request(request_id: str, method: str, path: str) -> None:
    """Tag every log line of the current request."""
    structlog.contextvars.bind_contextvars(request_id=request_id, method=method, path=path)


def bind_actor(user_id: int) -> None:
    """Add the authenticated user to the current request's log lines."""
    structlog.contextvars.bind_contextvars(user_id=user_id)


def clear_request_context() -> None:
    structlog.contextvars.unbind_contextvars(*REQUEST_FIELDS)
