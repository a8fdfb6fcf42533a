"""S3 object store backend with conditional writes for lock coordination."""

from __future__ import annotations

from typing import Any, Iterator

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    ParamValidationError,
    ReadTimeoutError,
)

from certstore.config import CertStoreConfig
from certstore.deadline import Deadline
from certstore.errors import (
    CertStoreError,
    NotFoundError,
    OperationTimeoutError,
    PreconditionFailedError,
    StorageBackendError,
)
from certstore.keys import matches_prefix
from certstore.storage import ObjectInfo

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}
_PRECONDITION_CODES = {"PreconditionFailed", "412", "ConditionalRequestConflict", "409"}
_UNSUPPORTED_CODES = {"NotImplemented", "501"}


def _error_code(err: Exception) -> str:
    if isinstance(err, ClientError):
        return str(err.response.get("Error", {}).get("Code", ""))
    return ""


class S3ObjectStore:
    """Flat S3 object store.

    Object ids are used verbatim as S3 keys; root prefixes are applied by the
    caller. Every provider error leaves this class as a CertStoreError.
    """

    def __init__(
        self,
        *,
        bucket: str,
        config: CertStoreConfig,
        client: Any | None = None,
    ) -> None:
        self.bucket = bucket
        self._config = config
        if client is None:
            session = boto3.Session(region_name=config.region)
            client = session.client(
                "s3",
                region_name=config.region,
                endpoint_url=config.endpoint_url,
                config=BotoConfig(
                    connect_timeout=config.request_timeout_s,
                    read_timeout=config.request_timeout_s,
                    retries={"max_attempts": 5, "mode": "standard"},
                ),
            )
        self._s3 = client

    # --- Error translation ---

    def _is_not_found(self, err: Exception) -> bool:
        return _error_code(err) in _NOT_FOUND_CODES

    def _is_precondition_failed(self, err: Exception) -> bool:
        return _error_code(err) in _PRECONDITION_CODES

    def _translate(self, err: Exception, operation: str, object_id: str) -> CertStoreError:
        if self._is_not_found(err):
            return NotFoundError(object_id)
        if self._is_precondition_failed(err):
            return PreconditionFailedError(object_id)
        if isinstance(err, (ReadTimeoutError, ConnectTimeoutError)):
            return OperationTimeoutError(operation, f"{object_id}: {err}")
        if isinstance(err, (ClientError, BotoCoreError)):
            return StorageBackendError(operation, f"{object_id}: {err}")
        return StorageBackendError(operation, f"{object_id}: {type(err).__name__}: {err}")

    # --- Object operations ---

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
        kwargs: dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": object_id,
            "Body": body,
        }
        if content_type is not None:
            kwargs["ContentType"] = content_type
        if if_none_match:
            kwargs["IfNoneMatch"] = "*"
        if if_match is not None:
            kwargs["IfMatch"] = if_match
        conditional = if_none_match or if_match is not None

        try:
            resp = self._s3.put_object(**kwargs)
        except ParamValidationError as e:
            if conditional:
                raise StorageBackendError(
                    "conditional_write",
                    "S3 client does not support conditional write preconditions",
                ) from e
            raise StorageBackendError("put", f"{object_id}: {e}") from e
        except Exception as e:
            if conditional and _error_code(e) in _UNSUPPORTED_CODES:
                raise StorageBackendError(
                    "conditional_write",
                    "S3 endpoint does not support conditional write preconditions",
                ) from e
            raise self._translate(e, "put", object_id) from e
        etag = resp.get("ETag")
        return etag if isinstance(etag, str) else ""

    def get(self, object_id: str, *, deadline: Deadline | None = None) -> tuple[bytes, str | None]:
        (deadline or Deadline()).check("get")
        try:
            resp = self._s3.get_object(Bucket=self.bucket, Key=object_id)
            body = resp["Body"].read()
        except Exception as e:
            raise self._translate(e, "get", object_id) from e
        etag = resp.get("ETag")
        return body, etag if isinstance(etag, str) else None

    def head(self, object_id: str, *, deadline: Deadline | None = None) -> ObjectInfo:
        (deadline or Deadline()).check("head")
        try:
            resp = self._s3.head_object(Bucket=self.bucket, Key=object_id)
        except Exception as e:
            raise self._translate(e, "head", object_id) from e
        etag = resp.get("ETag")
        return ObjectInfo(
            object_id=object_id,
            size=int(resp.get("ContentLength", 0)),
            modified=resp["LastModified"],
            etag=etag if isinstance(etag, str) else None,
        )

    def delete(
        self,
        object_id: str,
        *,
        if_match: str | None = None,
        deadline: Deadline | None = None,
    ) -> None:
        dl = deadline or Deadline()
        # S3 reports success for deletes of absent keys; probe first so callers
        # get NotFoundError.
        self.head(object_id, deadline=dl)
        dl.check("delete")
        kwargs: dict[str, Any] = {"Bucket": self.bucket, "Key": object_id}
        if if_match is not None:
            kwargs["IfMatch"] = if_match
        try:
            self._s3.delete_object(**kwargs)
        except ParamValidationError as e:
            if if_match is not None:
                raise StorageBackendError(
                    "conditional_delete",
                    "S3 client does not support conditional deletes",
                ) from e
            raise StorageBackendError("delete", f"{object_id}: {e}") from e
        except Exception as e:
            if if_match is not None and _error_code(e) in _UNSUPPORTED_CODES:
                raise StorageBackendError(
                    "conditional_delete",
                    "S3 endpoint does not support conditional deletes",
                ) from e
            raise self._translate(e, "delete", object_id) from e

    def list(
        self,
        prefix: str,
        *,
        delimiter: str | None = None,
        deadline: Deadline | None = None,
    ) -> Iterator[str]:
        dl = deadline or Deadline()
        dl.check("list")
        params: dict[str, Any] = {"Bucket": self.bucket, "Prefix": prefix}
        if delimiter:
            params["Delimiter"] = delimiter
        try:
            paginator = self._s3.get_paginator("list_objects_v2")
            pages = iter(paginator.paginate(**params))
        except Exception as e:
            raise self._translate(e, "list", prefix) from e

        while True:
            dl.check("list")
            try:
                page = next(pages)
            except StopIteration:
                return
            except Exception as e:
                raise self._translate(e, "list", prefix) from e
            # CommonPrefixes are deeper "directories" and never emitted.
            for item in page.get("Contents", []):
                key = item.get("Key")
                if isinstance(key, str) and matches_prefix(key, prefix, delimiter):
                    yield key

    # --- Lifecycle ---

    def storage_info(self) -> dict[str, Any]:
        return {
            "backend": "s3",
            "bucket": self.bucket,
            "region": self._config.region,
            "endpoint_url": self._config.endpoint_url,
        }

    def close(self) -> None:
        close = getattr(self._s3, "close", None)
        if callable(close):
            close()
