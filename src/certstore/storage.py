"""Object store backends: contract, target parsing and the in-memory store."""

from __future__ import annotations

import hashlib
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterator, Protocol, runtime_checkable
from urllib.parse import urlparse

from certstore.config import CertStoreConfig
from certstore.deadline import Deadline
from certstore.errors import ConfigurationError, NotFoundError, PreconditionFailedError
from certstore.keys import matches_prefix


@dataclass(frozen=True)
class ObjectInfo:
    """Metadata of a stored object as reported by the backend."""

    object_id: str
    size: int
    modified: datetime
    etag: str | None = None


@dataclass(frozen=True)
class StorageTarget:
    """Resolved storage target from a storage URI."""

    backend: str
    uri: str
    bucket: str | None = None
    prefix: str | None = None


def parse_storage_target(storage_uri: str) -> StorageTarget:
    """Resolve ``s3://bucket/prefix`` and ``memory://[name]`` URIs."""
    parsed = urlparse(storage_uri)

    if parsed.scheme == "s3":
        bucket = parsed.netloc
        prefix = parsed.path.lstrip("/").rstrip("/")
        if not bucket:
            raise ConfigurationError(f"Invalid s3 URI (missing bucket): {storage_uri}")
        return StorageTarget(backend="s3", uri=storage_uri, bucket=bucket, prefix=prefix)

    if parsed.scheme == "memory":
        prefix = parsed.path.lstrip("/").rstrip("/")
        return StorageTarget(
            backend="memory", uri=storage_uri, bucket=parsed.netloc or None, prefix=prefix
        )

    raise ConfigurationError(
        f"Unsupported storage URI scheme '{parsed.scheme}' for '{storage_uri}'"
    )


@runtime_checkable
class ObjectStoreProtocol(Protocol):
    """Flat object store contract used by the lock manager and the facade.

    ``if_none_match=True`` is an atomic create-if-absent and ``if_match`` a
    compare-and-swap on the etag; both raise PreconditionFailedError when
    the condition does not hold.
    """

    def put(
        self,
        object_id: str,
        body: bytes,
        *,
        if_none_match: bool = False,
        if_match: str | None = None,
        content_type: str | None = None,
        deadline: Deadline | None = None,
    ) -> str: ...

    def get(
        self, object_id: str, *, deadline: Deadline | None = None
    ) -> tuple[bytes, str | None]: ...

    def head(self, object_id: str, *, deadline: Deadline | None = None) -> ObjectInfo: ...

    def delete(
        self,
        object_id: str,
        *,
        if_match: str | None = None,
        deadline: Deadline | None = None,
    ) -> None: ...

    def list(
        self,
        prefix: str,
        *,
        delimiter: str | None = None,
        deadline: Deadline | None = None,
    ) -> Iterator[str]: ...

    def storage_info(self) -> dict[str, Any]: ...

    def close(self) -> None: ...


@dataclass
class _MemoryObject:
    body: bytes
    etag: str
    modified: datetime
    content_type: str | None


class MemoryObjectStore:
    """Thread-safe in-process object store with S3-style conditional writes."""

    def __init__(self, name: str | None = None) -> None:
        self.name = name
        self._objects: dict[str, _MemoryObject] = {}
        self._generation = 0
        self._mu = threading.Lock()

    def _next_etag(self, body: bytes) -> str:
        self._generation += 1
        digest = hashlib.md5(body).hexdigest()
        return f'"{digest[:16]}-{self._generation}"'

    def put(
        self,
        object_id: str,
        body: bytes,
        *,
        if_none_match: bool = False,
        if_match: str | None = None,
        content_type: str | None = None,
        deadline: Deadline | None = None,
    ) -> str:
        (deadline or Deadline()).check("put")
        with self._mu:
            current = self._objects.get(object_id)
            if if_none_match and current is not None:
                raise PreconditionFailedError(object_id)
            if if_match is not None:
                if current is None:
                    raise NotFoundError(object_id)
                if current.etag != if_match:
                    raise PreconditionFailedError(object_id)
            etag = self._next_etag(body)
            self._objects[object_id] = _MemoryObject(
                body=bytes(body),
                etag=etag,
                modified=datetime.now(timezone.utc),
                content_type=content_type,
            )
            return etag

    def get(self, object_id: str, *, deadline: Deadline | None = None) -> tuple[bytes, str | None]:
        (deadline or Deadline()).check("get")
        with self._mu:
            obj = self._objects.get(object_id)
            if obj is None:
                raise NotFoundError(object_id)
            return obj.body, obj.etag

    def head(self, object_id: str, *, deadline: Deadline | None = None) -> ObjectInfo:
        (deadline or Deadline()).check("head")
        with self._mu:
            obj = self._objects.get(object_id)
            if obj is None:
                raise NotFoundError(object_id)
            return ObjectInfo(
                object_id=object_id, size=len(obj.body), modified=obj.modified, etag=obj.etag
            )

    def delete(
        self,
        object_id: str,
        *,
        if_match: str | None = None,
        deadline: Deadline | None = None,
    ) -> None:
        (deadline or Deadline()).check("delete")
        with self._mu:
            obj = self._objects.get(object_id)
            if obj is None:
                raise NotFoundError(object_id)
            if if_match is not None and obj.etag != if_match:
                raise PreconditionFailedError(object_id)
            del self._objects[object_id]

    def list(
        self,
        prefix: str,
        *,
        delimiter: str | None = None,
        deadline: Deadline | None = None,
    ) -> Iterator[str]:
        dl = deadline or Deadline()
        dl.check("list")
        with self._mu:
            snapshot = sorted(self._objects)
        for object_id in snapshot:
            if matches_prefix(object_id, prefix, delimiter):
                yield object_id

    def storage_info(self) -> dict[str, Any]:
        with self._mu:
            count = len(self._objects)
        return {"backend": "memory", "name": self.name, "object_count": count}

    def close(self) -> None:
        pass


def open_object_store(config: CertStoreConfig) -> ObjectStoreProtocol:
    """Build the backend named by ``config.backend``."""
    config.validate()
    if config.backend == "memory":
        return MemoryObjectStore(config.bucket or None)
    if config.backend == "s3":
        from certstore.storage_s3 import S3ObjectStore

        return S3ObjectStore(bucket=config.bucket, config=config)
    raise ConfigurationError(f"Unsupported backend '{config.backend}'")


__all__ = [
    "MemoryObjectStore",
    "ObjectInfo",
    "ObjectStoreProtocol",
    "StorageTarget",
    "open_object_store",
    "parse_storage_target",
]
