"""Structured JSON logging shared by the CLI and the cache-warming service."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

import structlog

# Third-party loggers that are chatty at INFO.
QUIET_LOGGERS = ("httpx", "httpcore", "apscheduler")


def _json_handler(handler: logging.Handler, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def configure_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    console: bool = True,
) -> None:
    """Route structlog events through stdlib handlers as one JSON object per line.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR).
        log_file: Append events to this file, creating parent directories.
        console: Also write events to stdout.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handlers: List[logging.Handler] = []
    if console:
        handlers.append(_json_handler(logging.StreamHandler(sys.stdout), log_level))
    if log_file is not None:
        log_file = Path(log_file).expanduser()
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            _json_handler(logging.FileHandler(log_file, encoding="utf-8"), log_level)
        )

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)
        existing.close()
    if not handlers:
        handlers.append(logging.NullHandler())
    for handler in handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str) -> "structlog.stdlib.BoundLogger":
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind fields to every event logged from the current context."""
    structlog.contextvars.bind_contextvars(**kwargs)
