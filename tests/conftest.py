"""Shared test fixtures for certstore tests."""

from __future__ import annotations

import hashlib
import io
import threading
from datetime import datetime, timezone
from typing import Any, Iterator

import pytest
from botocore.exceptions import ClientError, ParamValidationError

from certstore.certstorage import CertStorage
from certstore.config import CertStoreConfig
from certstore.storage import MemoryObjectStore
from certstore.storage_s3 import S3ObjectStore


def client_error(code: str, status: int, operation: str) -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
        operation,
    )


class FakeS3Client:
    """Just enough of the boto3 S3 client for S3ObjectStore.

    Mirrors S3 behaviour that matters here: deletes of absent keys succeed,
    conditional writes answer 412, listings are paginated and collapse
    deeper "directories" into CommonPrefixes.
    """

    def __init__(
        self,
        *,
        conditional_writes: bool = True,
        conditional_deletes: bool = True,
        page_size: int = 2,
    ) -> None:
        self.objects: dict[str, tuple[bytes, str, datetime]] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.failures: dict[str, Exception] = {}
        self.conditional_writes = conditional_writes
        self.conditional_deletes = conditional_deletes
        self.page_size = page_size
        self.closed = False
        self._mu = threading.Lock()

    def _maybe_fail(self, operation: str) -> None:
        err = self.failures.get(operation)
        if err is not None:
            raise err

    def put_object(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("put_object", kwargs))
        self._maybe_fail("put_object")
        with self._mu:
            return self._put_locked(kwargs)

    def _put_locked(self, kwargs: dict[str, Any]) -> dict[str, Any]:
        key = kwargs["Key"]
        if not self.conditional_writes and ("IfNoneMatch" in kwargs or "IfMatch" in kwargs):
            raise ParamValidationError(report="Unknown parameter in input: IfNoneMatch")
        current = self.objects.get(key)
        if kwargs.get("IfNoneMatch") == "*" and current is not None:
            raise client_error("PreconditionFailed", 412, "PutObject")
        if "IfMatch" in kwargs:
            if current is None:
                raise client_error("NoSuchKey", 404, "PutObject")
            if current[1] != kwargs["IfMatch"]:
                raise client_error("PreconditionFailed", 412, "PutObject")
        body = bytes(kwargs["Body"])
        etag = f'"{hashlib.md5(body).hexdigest()}"'
        self.objects[key] = (body, etag, datetime.now(timezone.utc))
        return {"ETag": etag}

    def get_object(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("get_object", kwargs))
        self._maybe_fail("get_object")
        current = self.objects.get(kwargs["Key"])
        if current is None:
            raise client_error("NoSuchKey", 404, "GetObject")
        return {"Body": io.BytesIO(current[0]), "ETag": current[1]}

    def head_object(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("head_object", kwargs))
        self._maybe_fail("head_object")
        current = self.objects.get(kwargs["Key"])
        if current is None:
            raise client_error("404", 404, "HeadObject")
        return {"ContentLength": len(current[0]), "LastModified": current[2], "ETag": current[1]}

    def delete_object(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("delete_object", kwargs))
        self._maybe_fail("delete_object")
        with self._mu:
            return self._delete_locked(kwargs)

    def _delete_locked(self, kwargs: dict[str, Any]) -> dict[str, Any]:
        key = kwargs["Key"]
        if "IfMatch" in kwargs:
            if not self.conditional_deletes:
                raise ParamValidationError(report="Unknown parameter in input: IfMatch")
            current = self.objects.get(key)
            if current is not None and current[1] != kwargs["IfMatch"]:
                raise client_error("PreconditionFailed", 412, "DeleteObject")
        self.objects.pop(key, None)
        return {}

    def get_paginator(self, name: str) -> "_FakePaginator":
        assert name == "list_objects_v2"
        return _FakePaginator(self)

    def close(self) -> None:
        self.closed = True


class _FakePaginator:
    def __init__(self, client: FakeS3Client) -> None:
        self._client = client

    def paginate(self, **kwargs: Any) -> Iterator[dict[str, Any]]:
        self._client.calls.append(("list_objects_v2", kwargs))
        prefix = kwargs.get("Prefix", "")
        delimiter = kwargs.get("Delimiter")
        contents: list[dict[str, Any]] = []
        common: list[str] = []
        for key in sorted(self._client.objects):
            if not key.startswith(prefix):
                continue
            rest = key[len(prefix) :]
            if delimiter and delimiter in rest:
                folder = prefix + rest.split(delimiter, 1)[0] + delimiter
                if folder not in common:
                    common.append(folder)
                continue
            contents.append({"Key": key, "Size": len(self._client.objects[key][0])})

        size = self._client.page_size
        pages = [contents[i : i + size] for i in range(0, len(contents), size)] or [[]]
        for index, page in enumerate(pages):
            self._client._maybe_fail(f"list_page_{index}")
            out: dict[str, Any] = {"Contents": page}
            if index == 0 and common:
                out["CommonPrefixes"] = [{"Prefix": p} for p in common]
            yield out


@pytest.fixture
def fast_config() -> CertStoreConfig:
    """Config with short leases so lock tests finish quickly."""
    return CertStoreConfig(
        backend="memory",
        lease_ttl_ms=300,
        lock_timeout_ms=2000,
        lock_poll_interval_ms=10,
        request_timeout_s=1.0,
    )


@pytest.fixture
def memory_store() -> MemoryObjectStore:
    return MemoryObjectStore("test")


@pytest.fixture
def storage(memory_store, fast_config):
    s = CertStorage(memory_store, config=fast_config)
    yield s
    s.close()


@pytest.fixture
def fake_s3() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def s3_store(fake_s3) -> S3ObjectStore:
    return S3ObjectStore(
        bucket="certs",
        config=CertStoreConfig(bucket="certs", lease_ttl_ms=300, lock_poll_interval_ms=10),
        client=fake_s3,
    )
