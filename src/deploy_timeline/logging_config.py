"""Structured logging configuration.

This module sets up structured logging using structlog. The report
itself is written to stdout, so all log output goes to stderr:
- development: colorized console output
- production: one JSON object per line, for log shippers

Usage:
    from deploy_timeline.logging_config import setup_logging, get_logger

    setup_logging(environment="production")
    logger = get_logger(__name__)
    logger.info("page_fetched", pipeline="myorg/deploy", page=2, count=30)
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def setup_logging(
    environment: str | None = None,
    log_level: str | None = None,
) -> None:
    """Configure structured logging for the application.

    Args:
        environment: "development" or "production". Reads from
                     ENVIRONMENT env var if not provided.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
                   Reads from LOG_LEVEL env var if not provided.

    Raises:
        ValueError: If the level is not one of LOG_LEVELS
    """
    env = environment or os.environ.get("ENVIRONMENT", "development")
    level = (log_level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    if level not in LOG_LEVELS:
        raise ValueError(
            f"Unknown log level {level!r}, expected one of {', '.join(LOG_LEVELS)}"
        )
    numeric_level = logging.getLevelName(level)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if env == "production":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # httpx logs every request through the standard library.
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=numeric_level,
    )


def get_logger(name: str) -> Any:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        A structlog bound logger
    """
    return structlog.get_logger(name)
