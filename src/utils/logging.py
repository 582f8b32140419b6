"""Structured logging configuration using structlog."""

import logging
import sys
from typing import Any, Optional

import structlog

# Third-party loggers that are too chatty below WARNING
NOISY_LOGGERS = ("asyncpg",)


def configure_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    correlation_id: Optional[str] = None,
) -> structlog.BoundLogger:
    """Configure structured logging for the row mover.

    Args:
        log_level: Log level (DEBUG, INFO, WARN, ERROR, CRITICAL)
        log_format: Log format ('json' or 'console')
        correlation_id: Optional correlation ID bound to every event

    Returns:
        Configured logger instance
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if log_format.lower() == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logger = structlog.get_logger("rowmover")
    if correlation_id:
        logger = logger.bind(correlation_id=correlation_id)

    return logger


def get_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    """Get a logger instance.

    Args:
        name: Optional logger name

    Returns:
        Logger instance
    """
    if name:
        return structlog.get_logger(name)
    return structlog.get_logger()
