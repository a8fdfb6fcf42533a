"""Deadlines and cancellation for blocking storage calls."""

from __future__ import annotations

import threading
import time

from certstore.errors import OperationCancelledError, OperationTimeoutError


class Deadline:
    """Monotonic deadline with an optional cancellation event.

    ``timeout`` is in seconds; ``None`` means no time bound. When
    ``cancel_event`` is set, every subsequent :meth:`check` raises
    :class:`OperationCancelledError`.
    """

    __slots__ = ("_expires_at", "cancel_event")

    def __init__(
        self,
        timeout: float | None = None,
        *,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self._expires_at = None if timeout is None else time.monotonic() + max(0.0, timeout)
        self.cancel_event = cancel_event

    @classmethod
    def coerce(cls, value: "Deadline | float | None") -> "Deadline":
        if isinstance(value, Deadline):
            return value
        return cls(value)

    def remaining(self) -> float | None:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    def expired(self) -> bool:
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def check(self, operation: str) -> None:
        if self.cancelled():
            raise OperationCancelledError(operation)
        if self.expired():
            raise OperationTimeoutError(operation)

    def sleep(self, seconds: float) -> None:
        """Sleep up to ``seconds``, waking early on cancellation or expiry."""
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        if seconds <= 0:
            return
        if self.cancel_event is not None:
            self.cancel_event.wait(seconds)
        else:
            time.sleep(seconds)

    def __repr__(self) -> str:
        return f"Deadline(remaining={self.remaining()!r}, cancelled={self.cancelled()!r})"
