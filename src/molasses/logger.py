"""structlog logger setup."""

from __future__ import annotations

import logging
import sys

import structlog

SDK_LOGGER = "molasses"


def set_level(level: str) -> None:
    """Set the level of the SDK's stdlib logger, leaving the host's handlers alone."""
    logging.getLogger(SDK_LOGGER).setLevel(getattr(logging, level.upper(), logging.INFO))


def new_logger(level: str = "INFO", format: str = "json") -> structlog.stdlib.BoundLogger:
    """Configure structlog for an application and return the SDK logger.

    The SDK itself never calls this; it only logs through ``structlog.get_logger``,
    so hosts that already configure structlog keep their setup.

    Args:
        level: log level ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
        format: output format ("json" or "text")

    Returns:
        a configured structlog.stdlib.BoundLogger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=log_level,
    )
    set_level(level)

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if format == "json":
        processors += [
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.stdlib.get_logger(SDK_LOGGER)

