"""Lease-based distributed locks on top of an object store.

A lock is a small JSON object created with an atomic create-if-absent write.
Contenders that find it present read it; if its lease has expired they
replace it with a compare-and-swap on the etag they read, so only one of
several racing reclaimers can win. Holders keep their lease alive from a
background thread and learn about a lost lease through ``LockHandle.lost``.
"""

from __future__ import annotations

import json
import random
import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Iterator

from loguru import logger

from certstore.config import CertStoreConfig
from certstore.deadline import Deadline
from certstore.errors import (
    CertStoreError,
    LeaseExpiredError,
    LockContentionError,
    NotFoundError,
    OperationCancelledError,
    OperationTimeoutError,
    PreconditionFailedError,
    StorageBackendError,
)
from certstore.keys import (
    lock_key_from_object_id,
    lock_namespace_prefix,
    lock_object_id,
    validate_key,
)
from certstore.storage import ObjectStoreProtocol

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class LockRecord:
    """Persisted state of one lock object."""

    key: str
    owner_id: str
    acquired_at: datetime
    expires_at: datetime
    lease_ttl_ms: int

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or _now()) >= self.expires_at

    def to_json(self) -> bytes:
        payload = {
            "key": self.key,
            "owner_id": self.owner_id,
            "acquired_at": self.acquired_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "lease_ttl_ms": self.lease_ttl_ms,
        }
        return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")

    @classmethod
    def from_json(cls, key: str, body: bytes) -> "LockRecord":
        """Parse a lock object; anything unreadable counts as already expired."""
        try:
            obj = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            obj = {}
        if not isinstance(obj, dict):
            obj = {}

        def _ts(name: str) -> datetime:
            try:
                return _parse_iso(str(obj[name]))
            except (KeyError, TypeError, ValueError):
                return _EPOCH

        try:
            ttl = int(obj.get("lease_ttl_ms", 0))
        except (TypeError, ValueError):
            ttl = 0
        return cls(
            key=str(obj.get("key", key)),
            owner_id=str(obj.get("owner_id", "")),
            acquired_at=_ts("acquired_at"),
            expires_at=_ts("expires_at"),
            lease_ttl_ms=ttl,
        )


class LockHandle:
    """A lock held by this process.

    ``lost`` is set from the renewal thread when the lease can no longer be
    guaranteed; critical sections should call :meth:`ensure_held` before
    each externally visible step.
    """

    def __init__(self, record: LockRecord) -> None:
        self.key = record.key
        self.owner_id = record.owner_id
        self.acquired_at = record.acquired_at
        self.lease_ttl_ms = record.lease_ttl_ms
        self.lost = threading.Event()
        self._expires_at = record.expires_at
        self._released = False
        self._mu = threading.Lock()

    @property
    def expires_at(self) -> datetime:
        with self._mu:
            return self._expires_at

    @property
    def released(self) -> bool:
        return self._released

    def _extend(self, expires_at: datetime) -> None:
        with self._mu:
            self._expires_at = expires_at

    def is_lost(self) -> bool:
        return self.lost.is_set()

    def ensure_held(self, margin_ms: int | None = None) -> None:
        if self._released or self.lost.is_set():
            raise LeaseExpiredError(self.key)
        if margin_ms is None:
            margin_ms = self.lease_ttl_ms // 3
        if _now() + timedelta(milliseconds=max(1, margin_ms)) >= self.expires_at:
            raise LeaseExpiredError(self.key)

    def __repr__(self) -> str:
        return (
            f"LockHandle(key={self.key!r}, owner_id={self.owner_id!r}, "
            f"expires_at={self.expires_at.isoformat()!r}, lost={self.is_lost()!r})"
        )


@dataclass
class _HeldLock:
    handle: LockHandle
    object_id: str
    stop: threading.Event = field(default_factory=threading.Event)
    mu: threading.Lock = field(default_factory=threading.Lock)
    thread: threading.Thread | None = None
    failures: int = 0


class LockManager:
    """Acquire, renew and release locks stored next to the data they guard."""

    def __init__(
        self,
        store: ObjectStoreProtocol,
        *,
        config: CertStoreConfig | None = None,
        prefix: str | None = None,
    ) -> None:
        self._store = store
        self._config = config or CertStoreConfig()
        self.prefix = self._config.prefix if prefix is None else prefix
        self.namespace = self._config.lock_namespace
        self._held: dict[str, _HeldLock] = {}
        self._mu = threading.Lock()

    def _lock_id(self, key: str) -> str:
        return lock_object_id(key, self.prefix, self.namespace)

    def _acquire_deadline(self, timeout: Deadline | float | None) -> Deadline:
        if timeout is None:
            return Deadline(self._config.lock_timeout_ms / 1000.0)
        dl = Deadline.coerce(timeout)
        if dl.remaining() is None:
            # Acquisition is always bounded.
            return Deadline(self._config.lock_timeout_ms / 1000.0, cancel_event=dl.cancel_event)
        return dl

    def _poll_delay(self) -> float:
        base = self._config.lock_poll_interval_ms / 1000.0
        return base + random.uniform(0.0, base / 2)

    # --- Acquire ---

    def acquire(self, key: str, *, timeout: Deadline | float | None = None) -> LockHandle:
        validate_key(key, lock_namespace=self.namespace)
        dl = self._acquire_deadline(timeout)
        budget_ms = int((dl.remaining() or 0.0) * 1000)
        object_id = self._lock_id(key)
        owner_id = uuid.uuid4().hex
        ttl_ms = self._config.lease_ttl_ms

        try:
            while True:
                if dl.cancelled():
                    raise OperationCancelledError("acquire_lock")
                now = _now()
                record = LockRecord(
                    key=key,
                    owner_id=owner_id,
                    acquired_at=now,
                    expires_at=now + timedelta(milliseconds=ttl_ms),
                    lease_ttl_ms=ttl_ms,
                )

                try:
                    self._store.put(
                        object_id,
                        record.to_json(),
                        if_none_match=True,
                        content_type="application/json",
                        deadline=dl,
                    )
                    logger.debug(f"Acquired lock '{key}' (owner={owner_id})")
                    return self._start(record, object_id)
                except PreconditionFailedError:
                    pass

                # Existing lock: inspect and attempt takeover if expired.
                try:
                    body, etag = self._store.get(object_id, deadline=dl)
                except NotFoundError:
                    continue
                current = LockRecord.from_json(key, body)

                if current.is_expired() and etag is not None:
                    try:
                        self._store.put(
                            object_id,
                            record.to_json(),
                            if_match=etag,
                            content_type="application/json",
                            deadline=dl,
                        )
                    except (PreconditionFailedError, NotFoundError):
                        continue
                    logger.info(
                        f"Reclaimed expired lock '{key}' from owner {current.owner_id or '?'} "
                        f"(expired {current.expires_at.isoformat()})"
                    )
                    return self._start(record, object_id)

                if dl.expired():
                    raise LockContentionError(key, budget_ms)
                dl.sleep(self._poll_delay())
        except OperationTimeoutError as e:
            if isinstance(e, LockContentionError) or not dl.expired():
                raise
            raise LockContentionError(key, budget_ms) from e

    def _start(self, record: LockRecord, object_id: str) -> LockHandle:
        handle = LockHandle(record)
        held = _HeldLock(handle=handle, object_id=object_id)
        with self._mu:
            previous = self._held.pop(record.key, None)
            self._held[record.key] = held
        if previous is not None:
            previous.stop.set()
        thread = threading.Thread(
            target=self._renew_loop,
            args=(held,),
            name=f"certstore-lease:{record.key}",
            daemon=True,
        )
        held.thread = thread
        thread.start()
        return handle

    # --- Renewal ---

    def _renew_loop(self, held: _HeldLock) -> None:
        interval_s = max(0.05, held.handle.lease_ttl_ms / 3000.0)
        while not held.stop.wait(interval_s):
            self._renew_held(held)
            if held.handle.is_lost():
                return

    def _mark_lost(self, held: _HeldLock, reason: str) -> None:
        if not held.handle.lost.is_set():
            logger.warning(f"Lost lock '{held.handle.key}': {reason}")
        held.handle.lost.set()

    def _renew_held(self, held: _HeldLock) -> bool:
        with held.mu:
            if held.stop.is_set() or held.handle.is_lost():
                return False
            handle = held.handle
            now = _now()
            if now >= handle.expires_at:
                self._mark_lost(held, "lease expired before it could be renewed")
                return False

            dl = Deadline(self._config.request_timeout_s)
            try:
                body, etag = self._store.get(held.object_id, deadline=dl)
                current = LockRecord.from_json(handle.key, body)
                if current.owner_id != handle.owner_id or etag is None:
                    self._mark_lost(held, f"now owned by {current.owner_id or '?'}")
                    return False
                expires = now + timedelta(milliseconds=handle.lease_ttl_ms)
                renewed = replace(current, expires_at=expires, lease_ttl_ms=handle.lease_ttl_ms)
                self._store.put(
                    held.object_id,
                    renewed.to_json(),
                    if_match=etag,
                    content_type="application/json",
                    deadline=dl,
                )
            except (NotFoundError, PreconditionFailedError):
                self._mark_lost(held, "lock object was removed or replaced")
                return False
            except CertStoreError as e:
                held.failures += 1
                logger.warning(
                    f"Lease renewal for '{handle.key}' failed "
                    f"({held.failures}/{self._config.renew_failure_limit}): {e}"
                )
                if held.failures >= self._config.renew_failure_limit:
                    self._mark_lost(held, "too many consecutive renewal failures")
                return False

            held.failures = 0
            handle._extend(expires)
            return True

    def renew(self, key: str) -> bool:
        """Renew a held lease once; False when not held or renewal failed."""
        with self._mu:
            held = self._held.get(key)
        if held is None:
            return False
        return self._renew_held(held)

    # --- Release ---

    def release(self, key: str, *, timeout: Deadline | float | None = None) -> None:
        with self._mu:
            held = self._held.pop(key, None)
        if held is None:
            logger.debug(f"Release of '{key}' ignored; not held by this process")
            return

        held.stop.set()
        if held.thread is not None and held.thread is not threading.current_thread():
            held.thread.join(timeout=self._config.request_timeout_s + 0.5)
        # A renewal still in flight holds held.mu; wait for it so the etag read
        # below is the one it wrote.
        with held.mu:
            held.handle._released = True
            self._delete_owned(held, key, Deadline.coerce(timeout))

    def _delete_owned(self, held: _HeldLock, key: str, dl: Deadline) -> None:
        try:
            body, etag = self._store.get(held.object_id, deadline=dl)
        except NotFoundError:
            return
        current = LockRecord.from_json(key, body)
        if current.owner_id != held.handle.owner_id:
            logger.info(f"Lock '{key}' is now owned by {current.owner_id or '?'}; nothing to release")
            return

        try:
            self._store.delete(held.object_id, if_match=etag, deadline=dl)
        except (NotFoundError, PreconditionFailedError):
            return
        except StorageBackendError as e:
            if e.operation != "conditional_delete":
                raise
            logger.warning(
                f"Backend lacks conditional deletes; releasing '{key}' with an owner re-check only"
            )
            try:
                refreshed, _ = self._store.get(held.object_id, deadline=dl)
                if LockRecord.from_json(key, refreshed).owner_id == held.handle.owner_id:
                    self._store.delete(held.object_id, deadline=dl)
            except NotFoundError:
                return
        logger.debug(f"Released lock '{key}' (owner={held.handle.owner_id})")

    # --- Inspection ---

    def handle(self, key: str) -> LockHandle | None:
        with self._mu:
            held = self._held.get(key)
        return held.handle if held is not None else None

    def held_keys(self) -> list[str]:
        with self._mu:
            return sorted(self._held)

    def read_lock(self, key: str, *, timeout: Deadline | float | None = None) -> LockRecord | None:
        validate_key(key, lock_namespace=self.namespace)
        try:
            body, _ = self._store.get(self._lock_id(key), deadline=Deadline.coerce(timeout))
        except NotFoundError:
            return None
        return LockRecord.from_json(key, body)

    def list_locks(self, *, timeout: Deadline | float | None = None) -> Iterator[LockRecord]:
        dl = Deadline.coerce(timeout)
        root = lock_namespace_prefix(self.prefix, self.namespace)
        for object_id in self._store.list(root, deadline=dl):
            key = lock_key_from_object_id(object_id, self.prefix, self.namespace)
            if key is None:
                continue
            try:
                body, _ = self._store.get(object_id, deadline=dl)
            except NotFoundError:
                continue
            yield LockRecord.from_json(key, body)

    def break_lock(self, key: str, *, timeout: Deadline | float | None = None) -> bool:
        """Delete a lock object regardless of owner (operator recovery)."""
        validate_key(key, lock_namespace=self.namespace)
        with self._mu:
            held = self._held.pop(key, None)
        if held is not None:
            held.stop.set()
            self._mark_lost(held, "lock was broken")
        try:
            self._store.delete(self._lock_id(key), deadline=Deadline.coerce(timeout))
        except NotFoundError:
            return False
        logger.warning(f"Broke lock '{key}'")
        return True

    # --- Lifecycle ---

    def close(self, *, release: bool = True) -> None:
        """Stop every renewal thread, releasing held locks unless told not to."""
        first_error: CertStoreError | None = None
        for key in self.held_keys():
            if not release:
                with self._mu:
                    held = self._held.pop(key, None)
                if held is not None:
                    held.stop.set()
                continue
            try:
                self.release(key)
            except CertStoreError as e:
                logger.error(f"Failed to release lock '{key}' during shutdown: {e}")
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error
