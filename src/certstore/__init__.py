"""certstore: object-store backed TLS certificate storage with distributed locks."""

__version__ = "0.1.0"

from loguru import logger

from certstore.certstorage import CertStorage, KeyInfo, open_storage
from certstore.config import CertStoreConfig, config_from_env, load_config
from certstore.deadline import Deadline
from certstore.errors import (
    CertStoreError,
    ConfigurationError,
    InvalidKeyError,
    LeaseExpiredError,
    LockContentionError,
    NotFoundError,
    OperationCancelledError,
    OperationTimeoutError,
    PreconditionFailedError,
    StorageBackendError,
)
from certstore.locks import LockHandle, LockManager, LockRecord
from certstore.storage import MemoryObjectStore, ObjectStoreProtocol, parse_storage_target

logger.disable("certstore")

__all__ = [
    "__version__",
    "CertStorage",
    "KeyInfo",
    "open_storage",
    "CertStoreConfig",
    "config_from_env",
    "load_config",
    "Deadline",
    "LockHandle",
    "LockManager",
    "LockRecord",
    "MemoryObjectStore",
    "ObjectStoreProtocol",
    "parse_storage_target",
    "CertStoreError",
    "ConfigurationError",
    "InvalidKeyError",
    "LeaseExpiredError",
    "LockContentionError",
    "NotFoundError",
    "OperationCancelledError",
    "OperationTimeoutError",
    "PreconditionFailedError",
    "StorageBackendError",
]
