"""Shared fixtures for CLI tests."""

from __future__ import annotations

import pytest
from typer.testing import CliRunner

from certstore.certstorage import CertStorage
from certstore.config import CertStoreConfig
from certstore.storage import MemoryObjectStore


@pytest.fixture
def runner():
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def shared_store(monkeypatch) -> MemoryObjectStore:
    """One in-memory store shared by every CLI invocation in a test."""
    store = MemoryObjectStore("cli")

    def _open(config: CertStoreConfig) -> CertStorage:
        config.validate()
        return CertStorage(store, config=config)

    monkeypatch.setattr("certstore.cli._storage.open_storage", _open)
    for name in (
        "CERTSTORE_STORAGE_URI",
        "CERTSTORE_BUCKET",
        "CERTSTORE_PREFIX",
        "CERTSTORE_CONFIG",
    ):
        monkeypatch.delenv(name, raising=False)
    return store


@pytest.fixture
def seeded_store(shared_store) -> MemoryObjectStore:
    storage = CertStorage(shared_store, config=CertStoreConfig(backend="memory"))
    storage.store("certificates/example.com/example.com.crt", b"CERTDATA")
    storage.store("certificates/example.com/example.com.key", b"KEYDATA")
    storage.store("acme/account.json", b"{}")
    return shared_store

