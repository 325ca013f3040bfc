"""Domain exceptions."""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, we store message as an attribute so code can inspect it without parsing str(exception).
    # Don't raise this directly - use a specific subclass so callers can catch precisely.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class EntityNotFoundException(DomainException):
    """Raised when an entity is not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(f"{entity_type} with id {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ConfigurationError(DomainException):
    """Raised when settings are missing or invalid at startup."""

    pass


class FileTooLargeError(DomainException):
    """Raised when a file exceeds the remote per-track size limit.

    Never retried - the file won't shrink between attempts.
    """

    def __init__(self, path: str, size: int, limit: int) -> None:
        super().__init__(
            f"File size ({size} bytes) exceeds the upload limit of {limit} bytes"
        )
        self.path = path
        self.size = size
        self.limit = limit


class RemoteServiceError(DomainException):
    """Raised when the remote catalog rejects a call with a retryable signal."""

    def __init__(self, message: str, http_status: int | None = None) -> None:
        super().__init__(message)
        self.http_status = http_status


# Yo, RunAborted is the ONLY exception allowed to end a reconciliation run early!
# It's raised from inside wait points (retry backoff, network wait) when the abort
# signal is observed, so the driver can unwind without persisting the current entry.
# Never catch it in per-file error handling.
class RunAborted(DomainException):
    """Raised when the process-wide abort signal is observed mid-operation."""

    def __init__(self, message: str = "Reconciliation run aborted") -> None:
        super().__init__(message)


__all__ = [
    "ConfigurationError",
    "DomainException",
    "EntityNotFoundException",
    "FileTooLargeError",
    "RemoteServiceError",
    "RunAborted",
]
