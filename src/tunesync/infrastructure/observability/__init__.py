"""Observability infrastructure for structured logging and progress reporting."""

from tunesync.infrastructure.observability.logging import (
    configure_logging,
    get_correlation_id,
    set_correlation_id,
)
from tunesync.infrastructure.observability.progress import LoggingProgressSink

__all__ = [
    "LoggingProgressSink",
    "configure_logging",
    "get_correlation_id",
    "set_correlation_id",
]
