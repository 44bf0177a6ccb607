"""
Structured logging configuration using structlog.

Produces JSON logs by default, human-readable colored logs at DEBUG.
"""

import logging
import sys
from typing import Optional

import structlog

from .config import get_settings


def setup_logging(log_level: Optional[str] = None, *, stream=None) -> None:
    """Configure structlog for structured logging.

    Args:
        log_level: Override log level (default: from settings.log_level)
        stream: Output stream (default: stderr, keeping stdout for CLI output)
    """
    level = getattr(logging, (log_level or get_settings().log_level).upper(), logging.INFO)
    is_dev = level == logging.DEBUG

    # Shared processors for both structlog and stdlib
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if is_dev:
        renderer = structlog.dev.ConsoleRenderer()
    else:
        shared_processors.append(structlog.processors.format_exc_info)
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

    # Route stdlib logging through structlog's formatter so run_id/account
    # bound in contextvars show up on every record
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in ("httpcore", "httpx"):
        logging.getLogger(name).setLevel(logging.WARNING)
