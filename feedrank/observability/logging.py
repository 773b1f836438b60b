"""Structured logging configuration."""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TextIO

import structlog


def configure_logging(
    level: int = logging.INFO,
    output: TextIO = sys.stderr,
    json_format: bool = True,
) -> None:
    """Configure structured logging for the application.

    Logs go to stderr by default so command output on stdout stays
    machine readable. Context bound with ``log_context`` is merged into
    every event.

    Args:
        level: Logging level (default: INFO).
        output: Output stream (default: stderr).
        json_format: Whether to use JSON format (default: True).
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer(sort_keys=True))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=output),
        cache_logger_on_first_use=True,
    )

    # sqlite3 and concurrent.futures log through the standard library
    logging.basicConfig(
        format="%(message)s",
        stream=output,
        level=level,
    )


@contextmanager
def log_context(**fields: object) -> Iterator[None]:
    """Bind fields to every log message emitted inside the block.

    Fields are bound through contextvars, so they reach loggers in the
    current thread only. Work submitted to an executor does not inherit them.

    Args:
        **fields: Context values such as ``run_id`` or ``kind``.
    """
    with structlog.contextvars.bound_contextvars(**fields):
        yield
