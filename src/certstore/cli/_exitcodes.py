"""Process exit codes shared by CLI commands."""

from __future__ import annotations

from certstore.errors import (
    CertStoreError,
    ConfigurationError,
    InvalidKeyError,
    NotFoundError,
)

OK = 0
GENERAL_ERROR = 1
USAGE_ERROR = 2
STORAGE_ERROR = 3
NOT_FOUND = 4


def for_error(err: Exception) -> int:
    if isinstance(err, NotFoundError):
        return NOT_FOUND
    if isinstance(err, (ConfigurationError, InvalidKeyError)):
        return USAGE_ERROR
    if isinstance(err, CertStoreError):
        return STORAGE_ERROR
    return GENERAL_ERROR
