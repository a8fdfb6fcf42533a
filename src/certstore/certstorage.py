"""Certificate storage facade: the contract consumed by certificate managers."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterator

from certstore.config import CertStoreConfig
from certstore.deadline import Deadline
from certstore.errors import NotFoundError
from certstore.keys import (
    DELIMITER,
    from_object_id,
    is_lock_object,
    to_object_id,
    validate_key,
)
from certstore.locks import LockHandle, LockManager
from certstore.storage import ObjectStoreProtocol, open_object_store


@dataclass(frozen=True)
class KeyInfo:
    """Metadata of a stored key. Only leaf objects exist, so always terminal."""

    key: str
    size: int
    modified: datetime
    is_terminal: bool = True


class CertStorage:
    """Lock/Unlock/Store/Load/Delete/Exists/Stat/List over one object store.

    Every method takes an optional ``timeout``: seconds, a Deadline (which may
    carry a cancellation event), or None.
    """

    def __init__(
        self,
        store: ObjectStoreProtocol,
        *,
        config: CertStoreConfig | None = None,
        lock_manager: LockManager | None = None,
    ) -> None:
        self._store = store
        self._config = config or CertStoreConfig(backend="memory")
        self.prefix = self._config.prefix.strip(DELIMITER)
        self.locks = lock_manager or LockManager(store, config=self._config, prefix=self.prefix)

    def _object_id(self, key: str) -> str:
        validate_key(key, lock_namespace=self._config.lock_namespace)
        return to_object_id(key, self.prefix)

    # --- Locking ---

    def lock(self, key: str, *, timeout: Deadline | float | None = None) -> LockHandle:
        return self.locks.acquire(key, timeout=timeout)

    def unlock(self, key: str, *, timeout: Deadline | float | None = None) -> None:
        self.locks.release(key, timeout=timeout)

    @contextmanager
    def locked(self, key: str, *, timeout: Deadline | float | None = None) -> Iterator[LockHandle]:
        handle = self.lock(key, timeout=timeout)
        try:
            yield handle
        finally:
            self.unlock(key)

    # --- Blobs ---

    def store(self, key: str, value: bytes, *, timeout: Deadline | float | None = None) -> None:
        if not isinstance(value, (bytes, bytearray, memoryview)):
            raise TypeError(f"value must be bytes, not {type(value).__name__}")
        self._store.put(self._object_id(key), bytes(value), deadline=Deadline.coerce(timeout))

    def load(self, key: str, *, timeout: Deadline | float | None = None) -> bytes:
        object_id = self._object_id(key)
        try:
            body, _ = self._store.get(object_id, deadline=Deadline.coerce(timeout))
        except NotFoundError as e:
            raise NotFoundError(key) from e
        return body

    def delete(self, key: str, *, timeout: Deadline | float | None = None) -> None:
        object_id = self._object_id(key)
        try:
            self._store.delete(object_id, deadline=Deadline.coerce(timeout))
        except NotFoundError as e:
            raise NotFoundError(key) from e

    def exists(self, key: str, *, timeout: Deadline | float | None = None) -> bool:
        """True unless the backend unambiguously reports absence."""
        try:
            self._store.head(self._object_id(key), deadline=Deadline.coerce(timeout))
        except NotFoundError:
            return False
        return True

    def stat(self, key: str, *, timeout: Deadline | float | None = None) -> KeyInfo:
        object_id = self._object_id(key)
        try:
            info = self._store.head(object_id, deadline=Deadline.coerce(timeout))
        except NotFoundError as e:
            raise NotFoundError(key) from e
        return KeyInfo(key=key, size=info.size, modified=info.modified, is_terminal=True)

    def list(
        self,
        prefix: str = "",
        recursive: bool = False,
        *,
        timeout: Deadline | float | None = None,
    ) -> Iterator[str]:
        """Lazily yield logical keys under ``prefix``; lock objects are skipped."""
        dl = Deadline.coerce(timeout)
        delimiter = None if recursive else DELIMITER
        namespace = self._config.lock_namespace
        for object_id in self._store.list(
            to_object_id(prefix, self.prefix), delimiter=delimiter, deadline=dl
        ):
            if is_lock_object(object_id, self.prefix, namespace):
                continue
            key = from_object_id(object_id, self.prefix)
            if key is not None:
                yield key

    # --- Lifecycle ---

    def storage_info(self) -> dict[str, Any]:
        info = dict(self._store.storage_info())
        info.update(
            {
                "prefix": self.prefix,
                "lock_namespace": self._config.lock_namespace,
                "lease_ttl_ms": self._config.lease_ttl_ms,
                "lock_timeout_ms": self._config.lock_timeout_ms,
                "held_locks": self.locks.held_keys(),
            }
        )
        return info

    def close(self) -> None:
        try:
            self.locks.close()
        finally:
            self._store.close()

    def __enter__(self) -> "CertStorage":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def open_storage(config: CertStoreConfig) -> CertStorage:
    """Validate ``config`` and build a ready-to-use storage."""
    config.validate()
    store = open_object_store(config)
    return CertStorage(store, config=config)


__all__ = ["CertStorage", "KeyInfo", "open_storage"]
