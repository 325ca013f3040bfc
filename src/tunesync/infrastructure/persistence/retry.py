# Hey future me - SQLite allows ONE writer at a time. The reconciliation run writes
# entries while prefetch workers and the scanner read/write too, so "database is locked"
# happens. Locks are short-lived: wait a bit and try again.
"""Database retry utilities for handling SQLite lock errors."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, ParamSpec, TypeVar

from sqlalchemy.exc import OperationalError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


class DatabaseLockMetrics:
    """Process-wide counters for database lock events."""

    _instance: DatabaseLockMetrics | None = None

    def __init__(self) -> None:
        self.retries: int = 0
        self.failures: int = 0

    @classmethod
    def get_instance(cls) -> DatabaseLockMetrics:
        """Get singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def get_stats(self) -> dict[str, Any]:
        return {"lock_retries": self.retries, "lock_failures": self.failures}

    def reset(self) -> None:
        """Reset all metrics (for testing)."""
        self.retries = 0
        self.failures = 0


def is_lock_error(exception: BaseException) -> bool:
    """Check if an exception is a retryable SQLite lock error.

    Args:
        exception: The exception to check

    Returns:
        True if this is a "database is locked"/"busy" OperationalError
    """
    if not isinstance(exception, OperationalError):
        return False
    error_msg = str(exception).lower()
    return "locked" in error_msg or "busy" in error_msg


def with_db_retry(
    max_attempts: int = 3,
    initial_delay: float = 0.5,
    max_delay: float = 5.0,
    backoff_factor: float = 2.0,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator for retrying async database operations on lock errors.

    Backoff is exponential (0.5s, 1s, 2s...) capped at max_delay. Any other
    OperationalError is raised immediately.

    Args:
        max_attempts: Maximum attempts including the first one
        initial_delay: Delay before the first retry in seconds
        max_delay: Maximum delay cap in seconds
        backoff_factor: Multiply delay by this each retry

    Returns:
        Decorated coroutine function
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            metrics = DatabaseLockMetrics.get_instance()
            delay = initial_delay
            attempt = 1
            while True:
                try:
                    return await func(*args, **kwargs)
                except OperationalError as e:
                    if not is_lock_error(e) or attempt >= max_attempts:
                        if is_lock_error(e):
                            metrics.failures += 1
                            logger.error(
                                "Database locked after %d attempts, giving up: %s",
                                attempt,
                                func.__qualname__,
                            )
                        raise

                    metrics.retries += 1
                    logger.warning(
                        "Database locked (attempt %d/%d), retrying in %.1fs: %s",
                        attempt,
                        max_attempts,
                        delay,
                        func.__qualname__,
                    )
                    await asyncio.sleep(delay)
                    delay = min(delay * backoff_factor, max_delay)
                    attempt += 1

        return wrapper

    return decorator
