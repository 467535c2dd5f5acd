"""Logging configuration for the storefront domain.

structlog sits on top of the standard library: every structlog event ends up on
the root logger, so uvicorn, Protean and storefront lines share one stream.
``PROTEAN_ENV`` picks the level and the renderer; ``LOG_LEVEL`` and
``LOG_FORMAT`` override them.
"""

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Any

import structlog

_LEVELS = {
    "production": "INFO",
    "staging": "INFO",
    "development": "DEBUG",
    "test": "WARNING",
}

# Libraries whose INFO chatter drowns out the storefront's own events
_QUIET_LOGGERS = ("protean", "asyncio", "httpx", "uvicorn.access")

_MAX_LOG_BYTES = 10 * 1024 * 1024


def current_env() -> str:
    return (os.getenv("ENV") or os.getenv("ENVIRONMENT") or os.getenv("PROTEAN_ENV") or "development").lower()


def get_log_level() -> str:
    """Log level for the current environment, unless ``LOG_LEVEL`` says otherwise."""
    return os.getenv("LOG_LEVEL", _LEVELS.get(current_env(), "INFO")).upper()


def _wants_json(env: str) -> bool:
    log_format = os.getenv("LOG_FORMAT")
    if log_format:
        return log_format.lower() == "json"
    return env in ("production", "staging")


def _rotating_handler(path: Path, level) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        filename=path,
        maxBytes=_MAX_LOG_BYTES,
        backupCount=5,
        encoding="utf-8",
    )
    handler.setLevel(level)
    return handler


def setup_stdlib_logging() -> None:
    """Point the root logger at stdout, plus rotating files when ``LOG_DIR`` is set."""
    level = get_log_level()

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = []

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    root.addHandler(console)

    log_dir = os.getenv("LOG_DIR")
    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        root.addHandler(_rotating_handler(path / "storefront.log", level))
        root.addHandler(_rotating_handler(path / "storefront_error.log", logging.ERROR))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_structlog() -> None:
    env = current_env()

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if _wants_json(env):
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=env == "development",
                exception_formatter=structlog.dev.RichTracebackFormatter(show_locals=False, max_frames=2),
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_logging() -> None:
    setup_stdlib_logging()
    setup_structlog()


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def add_context(**kwargs: Any) -> None:
    """Bind fields (request path, account id...) onto every later log line of this context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
