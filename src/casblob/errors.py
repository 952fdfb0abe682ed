"""Custom exceptions for casblob.

This module defines typed exceptions so callers can tell a failed
transfer from a cancelled one, and both from a broken contract.
"Not found" is never surfaced from the public store APIs: reads return
``None`` and deletes succeed silently.
"""

from typing import Optional


class CasBlobError(RuntimeError):
    """Base class for all casblob errors."""
    pass


# Transport Errors
class TransportError(CasBlobError):
    """The backing store or network failed."""

    def __init__(self, message: str, key: Optional[str] = None):
        self.key = key
        super().__init__(message)


class NotFoundError(TransportError):
    """Key does not exist in the backing store (404).

    Raised by transports only. ``RemoteBlobStore`` turns it into an empty
    result or a no-op.
    """

    def __init__(self, key: str):
        super().__init__(f"Blob not found: {key}", key=key)


# Cancellation
class OperationCancelled(CasBlobError):
    """An in-flight operation was stopped by its caller."""

    def __init__(self, operation: str = "operation"):
        self.operation = operation
        super().__init__(f"{operation} was cancelled")


# Contract Errors
class InvariantViolation(CasBlobError, ValueError):
    """A programming contract was broken (missing argument, bad plugin result)."""
    pass


class EmptyStatisticsError(InvariantViolation):
    """Average requested from a summary with no blobs."""

    def __init__(self):
        super().__init__("Average is undefined for an empty statistics summary")


# Configuration Errors
class ConfigError(CasBlobError):
    """Invalid store settings."""
    pass


def require(condition: bool, message: str) -> None:
    """Fail fast with InvariantViolation unless condition holds."""
    if not condition:
        raise InvariantViolation(message)
