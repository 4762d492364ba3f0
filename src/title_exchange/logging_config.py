"""Structured logging configuration using structlog.

Provides JSON-structured logging in production and human-readable colored
output in development. Every log entry carries the correlation request_id
(bound by the API middleware) and, inside a marketplace entry point, the
operation name and caller.

Usage:
    from title_exchange.logging_config import setup_logging, get_logger
    setup_logging(log_level="DEBUG", json_logs=False)
    logger = get_logger(__name__)
    logger.info("listing.created", title_id="title-1", ask_price=1000)
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import Iterator

# Integers above this lose precision in most JSON consumers.
_JSON_SAFE_INT = 2**53 - 1


def _stringify_large_amounts(
    _logger: Any, _method: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    """Render integer fields outside the JSON-safe range as strings."""
    for key, value in event_dict.items():
        if isinstance(value, int) and not isinstance(value, bool) and abs(value) > _JSON_SAFE_INT:
            event_dict[key] = str(value)
    return event_dict


def setup_logging(log_level: str = "DEBUG", json_logs: bool = False) -> None:
    """Configure structlog with shared processors.

    Args:
        log_level: Standard Python log level string (DEBUG, INFO, WARNING, etc.)
        json_logs: If True, output JSON (for production). If False, colored console.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_logs:
        # Production: JSON output for log aggregation
        shared_processors.append(_stringify_large_amounts)
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

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
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.DEBUG))

    # Quiet noisy third-party loggers
    for noisy_logger in ("uvicorn.access", "sqlalchemy.engine", "aiosqlite", "httpx"):
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)


@contextmanager
def bound_operation(operation: str, caller: str | None) -> Iterator[None]:
    """Bind operation and caller to every log entry emitted inside the block."""
    with structlog.contextvars.bound_contextvars(operation=operation, caller=caller):
        yield


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Optional logger name. If None, uses the calling module's name.

    Returns:
        A bound structlog logger with context variable support.
    """
    return structlog.get_logger(name)
