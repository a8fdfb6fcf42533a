"""CLI helpers for config resolution and storage construction."""

from __future__ import annotations

from dataclasses import replace

import typer

from certstore.certstorage import CertStorage, open_storage
from certstore.cli import _exitcodes as ec
from certstore.cli._output import emit_error
from certstore.config import CertStoreConfig, config_from_env, load_config
from certstore.errors import CertStoreError
from certstore.storage import parse_storage_target


def resolve_config() -> CertStoreConfig:
    """Config file, then CERTSTORE_* environment, then --storage-uri."""
    from certstore.cli import state

    cfg = load_config(state.config) if state.config else CertStoreConfig()
    cfg = config_from_env(cfg)
    if state.storage_uri:
        target = parse_storage_target(state.storage_uri)
        cfg = replace(
            cfg, backend=target.backend, bucket=target.bucket or "", prefix=target.prefix or ""
        )
    return cfg


def open_cert_storage() -> CertStorage:
    """Open storage from global CLI options, exiting with a usage error on bad config."""
    try:
        return open_storage(resolve_config())
    except CertStoreError as e:
        emit_error(f"Cannot open storage backend: {e}")
        raise typer.Exit(ec.for_error(e))


def fail(err: Exception) -> typer.Exit:
    """Report ``err`` and build the matching exit."""
    emit_error(str(err))
    return typer.Exit(ec.for_error(err))
