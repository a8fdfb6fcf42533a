"""Configuration for certstore backends."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

from certstore.errors import ConfigurationError

BACKENDS = ("s3", "memory")

_INT_OPTIONS = ("lock_timeout_ms", "lease_ttl_ms", "lock_poll_interval_ms", "renew_failure_limit")


def _coerce_number(name: str, value: Any, kind: type) -> Any:
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be a number, not a boolean")
    if kind is int and isinstance(value, float) and not value.is_integer():
        raise ConfigurationError(f"{name} must be a whole number: {value!r}")
    try:
        return kind(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be a number: {value!r}") from None


@dataclass
class CertStoreConfig:
    """Provisioning options for a certificate store."""

    bucket: str = ""
    prefix: str = ""
    backend: str = "s3"
    region: str | None = None
    endpoint_url: str | None = None
    request_timeout_s: float = 10.0
    lock_timeout_ms: int = 60000
    lease_ttl_ms: int = 30000
    lock_poll_interval_ms: int = 1000
    renew_failure_limit: int = 3
    lock_namespace: str = ".locks"

    def validate(self) -> "CertStoreConfig":
        """Check every option, coercing numeric strings (from YAML or env) in place."""
        for name in ("bucket", "prefix", "backend", "lock_namespace"):
            if not isinstance(getattr(self, name), str):
                raise ConfigurationError(f"{name} must be a string")
        for name in ("region", "endpoint_url"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, str):
                raise ConfigurationError(f"{name} must be a string")
        for name in _INT_OPTIONS:
            setattr(self, name, _coerce_number(name, getattr(self, name), int))
        self.request_timeout_s = _coerce_number(
            "request_timeout_s", self.request_timeout_s, float
        )

        if self.backend not in BACKENDS:
            raise ConfigurationError(
                f"Unsupported backend '{self.backend}' (expected one of {', '.join(BACKENDS)})"
            )
        if self.backend == "s3" and not self.bucket:
            raise ConfigurationError("A bucket name is required for the s3 backend")
        if "/" in self.bucket:
            raise ConfigurationError(f"Bucket name may not contain '/': {self.bucket!r}")
        for name in ("lock_timeout_ms", "lease_ttl_ms", "lock_poll_interval_ms"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")
        if self.request_timeout_s <= 0:
            raise ConfigurationError("request_timeout_s must be positive")
        if self.renew_failure_limit < 1:
            raise ConfigurationError("renew_failure_limit must be at least 1")
        if not self.lock_namespace or "/" in self.lock_namespace:
            raise ConfigurationError(
                f"lock_namespace must be a single path segment: {self.lock_namespace!r}"
            )
        return self

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> "CertStoreConfig":
        """Build a config from plain options; unknown names are rejected."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(options) - known)
        if unknown:
            raise ConfigurationError(f"Unknown option(s): {', '.join(unknown)}")
        return cls(**dict(options))

    @classmethod
    def from_uri(cls, storage_uri: str, **overrides: Any) -> "CertStoreConfig":
        from certstore.storage import parse_storage_target

        target = parse_storage_target(storage_uri)
        base = cls.from_mapping(overrides)
        return replace(
            base,
            backend=target.backend,
            bucket=target.bucket or "",
            prefix=target.prefix or "",
        )


def load_config(path: str | os.PathLike[str]) -> CertStoreConfig:
    """Load a YAML config file, optionally nested under a ``certstore:`` key."""
    try:
        raw = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigurationError(f"Cannot read config file '{path}': {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in '{path}': {e}") from e

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Config file '{path}' must contain a mapping")
    if "certstore" in raw:
        raw = raw["certstore"] or {}
        if not isinstance(raw, dict):
            raise ConfigurationError(f"'certstore' section in '{path}' must be a mapping")

    options = dict(raw)
    storage_uri = options.pop("storage_uri", None)
    if storage_uri:
        return CertStoreConfig.from_uri(str(storage_uri), **options)
    return CertStoreConfig.from_mapping(options)


def config_from_env(base: CertStoreConfig | None = None) -> CertStoreConfig:
    """Overlay CERTSTORE_* environment variables onto ``base``."""
    cfg = base or CertStoreConfig()
    storage_uri = os.getenv("CERTSTORE_STORAGE_URI")
    if storage_uri:
        from certstore.storage import parse_storage_target

        target = parse_storage_target(storage_uri)
        cfg = replace(
            cfg, backend=target.backend, bucket=target.bucket or "", prefix=target.prefix or ""
        )
    bucket = os.getenv("CERTSTORE_BUCKET")
    if bucket:
        cfg = replace(cfg, bucket=bucket)
    prefix = os.getenv("CERTSTORE_PREFIX")
    if prefix is not None:
        cfg = replace(cfg, prefix=prefix)
    region = os.getenv("CERTSTORE_S3_REGION")
    if region:
        cfg = replace(cfg, region=region)
    endpoint = os.getenv("CERTSTORE_S3_ENDPOINT_URL") or os.getenv("CERTSTORE_S3_ENDPOINT")
    if endpoint:
        cfg = replace(cfg, endpoint_url=endpoint)
    return cfg
