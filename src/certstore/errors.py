"""Structured error types for certstore."""

from __future__ import annotations


class CertStoreError(Exception):
    """Base error for all certstore errors."""


class NotFoundError(CertStoreError):
    """Raised when a key (or its backing object) does not exist."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Key not found: {key}")


class OperationTimeoutError(CertStoreError):
    """Raised when an operation does not finish before its deadline."""

    def __init__(self, operation: str, detail: str | None = None) -> None:
        self.operation = operation
        message = f"Timed out during {operation}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class LockContentionError(OperationTimeoutError):
    """Raised when a lock cannot be acquired within timeout."""

    def __init__(self, key: str, timeout_ms: int) -> None:
        self.key = key
        self.timeout_ms = timeout_ms
        super().__init__("acquire_lock", f"could not lock '{key}' within {timeout_ms}ms")


class OperationCancelledError(CertStoreError):
    """Raised when the caller's cancellation event is set mid-operation."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Cancelled during {operation}")


class StorageBackendError(CertStoreError):
    """Raised when backend storage operations fail."""

    def __init__(self, operation: str, detail: str) -> None:
        self.operation = operation
        self.detail = detail
        super().__init__(f"Storage backend error during {operation}: {detail}")


class PreconditionFailedError(CertStoreError):
    """Raised when a conditional write or delete loses a race."""

    def __init__(self, object_id: str) -> None:
        self.object_id = object_id
        super().__init__(f"Precondition failed for object '{object_id}'")


class LeaseExpiredError(CertStoreError):
    """Raised when a held lock lease is lost or about to expire."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Lock lease for '{key}' expired or was lost")


class ConfigurationError(CertStoreError):
    """Raised when provisioning options are missing or invalid."""


class InvalidKeyError(CertStoreError, ValueError):
    """Raised when a logical key is malformed."""

    def __init__(self, key: str, reason: str) -> None:
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid key {key!r}: {reason}")
