"""Observability module for structured logging."""

from feedrank.observability.logging import configure_logging, log_context


__all__ = [
    "configure_logging",
    "log_context",
]
