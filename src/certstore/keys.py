"""Logical key <-> object id mapping.

Data objects live at their logical key below the configured root prefix.
Lock objects live in a reserved namespace below the same root::

    <prefix>/acme/example.com/example.com.crt     data
    <prefix>/.locks/acme/example.com.lock          lock for "acme/example.com"

Keys whose first segment is the lock namespace are rejected, so the two
sets of object ids never overlap.
"""

from __future__ import annotations

from certstore.errors import InvalidKeyError

DELIMITER = "/"
DEFAULT_LOCK_NAMESPACE = ".locks"
LOCK_SUFFIX = ".lock"


def _clean_prefix(prefix: str) -> str:
    return prefix.strip(DELIMITER)


def _root(prefix: str) -> str:
    clean = _clean_prefix(prefix)
    return f"{clean}{DELIMITER}" if clean else ""


def validate_key(key: str, *, lock_namespace: str = DEFAULT_LOCK_NAMESPACE) -> str:
    if not isinstance(key, str):
        raise InvalidKeyError(repr(key), "keys must be strings")
    if not key:
        raise InvalidKeyError(key, "empty key")
    if "\x00" in key:
        raise InvalidKeyError(key, "NUL character")
    if key.startswith(DELIMITER) or key.endswith(DELIMITER):
        raise InvalidKeyError(key, "leading or trailing delimiter")
    segments = key.split(DELIMITER)
    if any(not s for s in segments):
        raise InvalidKeyError(key, "empty path segment")
    if segments[0] == lock_namespace:
        raise InvalidKeyError(key, f"'{lock_namespace}' is reserved for locks")
    return key


def join(*segments: str) -> str:
    """Join path segments into a logical key."""
    for segment in segments:
        if DELIMITER in segment:
            raise InvalidKeyError(segment, "segments may not contain the delimiter")
    return DELIMITER.join(segments)


def to_object_id(key: str, prefix: str = "") -> str:
    return f"{_root(prefix)}{key}"


def from_object_id(object_id: str, prefix: str = "") -> str | None:
    root = _root(prefix)
    if not object_id.startswith(root):
        return None
    key = object_id[len(root) :]
    return key or None


def matches_prefix(object_id: str, prefix: str, delimiter: str | None = None) -> bool:
    """Object-store listing semantics for a single id.

    With a delimiter, ids with another delimiter after ``prefix`` belong to a
    deeper "directory" and do not match.
    """
    if not object_id or not object_id.startswith(prefix):
        return False
    rest = object_id[len(prefix) :]
    if not rest:
        return False
    if delimiter and delimiter in rest:
        return False
    return True


def lock_object_id(
    key: str,
    prefix: str = "",
    namespace: str = DEFAULT_LOCK_NAMESPACE,
) -> str:
    return f"{_root(prefix)}{namespace}{DELIMITER}{key}{LOCK_SUFFIX}"


def lock_namespace_prefix(prefix: str = "", namespace: str = DEFAULT_LOCK_NAMESPACE) -> str:
    return f"{_root(prefix)}{namespace}{DELIMITER}"


def is_lock_object(
    object_id: str,
    prefix: str = "",
    namespace: str = DEFAULT_LOCK_NAMESPACE,
) -> bool:
    return object_id.startswith(lock_namespace_prefix(prefix, namespace))


def lock_key_from_object_id(
    object_id: str,
    prefix: str = "",
    namespace: str = DEFAULT_LOCK_NAMESPACE,
) -> str | None:
    root = lock_namespace_prefix(prefix, namespace)
    if not object_id.startswith(root) or not object_id.endswith(LOCK_SUFFIX):
        return None
    key = object_id[len(root) : -len(LOCK_SUFFIX)]
    return key or None
