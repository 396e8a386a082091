"""Structured logging configuration."""

import logging
import sys
from pathlib import Path
from typing import cast

import structlog
from structlog.stdlib import BoundLogger
from structlog.types import Processor

from lumentree.config import get_settings


def configure_logging() -> None:
    """Configure structured logging with structlog."""
    settings = get_settings()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level),
    )

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    # JSON in production, console in development
    if settings.app_env == "production":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    if settings.log_file:
        try:
            log_file = Path(settings.log_file)
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(getattr(logging, settings.log_level))
            logging.getLogger().addHandler(file_handler)
        except OSError as e:
            logging.warning(f"Could not create log file: {e}. Logging to stdout only.")

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> BoundLogger:
    """Get a configured logger instance.

    Args:
        name: Logger name (default: module name)

    Returns:
        Configured structlog logger
    """
    return cast(BoundLogger, structlog.get_logger(name))
