"""CLI tests for blob commands."""

from __future__ import annotations

import json

from certstore.certstorage import CertStorage
from certstore.cli import _exitcodes as ec
from certstore.cli import app
from certstore.config import CertStoreConfig


def _invoke(runner, args):
    return runner.invoke(app, ["--storage-uri", "memory://"] + args, catch_exceptions=False)


def test_ls_non_recursive(runner, seeded_store):
    result = _invoke(runner, ["--json", "ls", "certificates/example.com/"])
    assert result.exit_code == 0
    assert json.loads(result.stdout) == [
        "certificates/example.com/example.com.crt",
        "certificates/example.com/example.com.key",
    ]


def test_ls_root_hides_nested_keys(runner, seeded_store):
    result = _invoke(runner, ["ls"])
    assert result.exit_code == 0
    assert result.stdout == ""


def test_ls_recursive_long(runner, seeded_store):
    result = _invoke(runner, ["--json", "ls", "--recursive", "--long"])
    assert result.exit_code == 0
    rows = json.loads(result.stdout)
    assert {r["key"] for r in rows} == {
        "acme/account.json",
        "certificates/example.com/example.com.crt",
        "certificates/example.com/example.com.key",
    }
    sizes = {r["key"]: r["size"] for r in rows}
    assert sizes["certificates/example.com/example.com.crt"] == 8


def test_stat(runner, seeded_store):
    result = _invoke(runner, ["--json", "stat", "certificates/example.com/example.com.crt"])
    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["size"] == 8
    assert payload["is_terminal"] is True


def test_stat_missing_exits_not_found(runner, seeded_store):
    result = _invoke(runner, ["stat", "certificates/missing.crt"])
    assert result.exit_code == ec.NOT_FOUND


def test_get_to_stdout_and_file(runner, seeded_store, tmp_path):
    result = _invoke(runner, ["get", "certificates/example.com/example.com.crt"])
    assert result.exit_code == 0
    assert result.stdout_bytes == b"CERTDATA"

    out = tmp_path / "cert.pem"
    result = _invoke(runner, ["get", "certificates/example.com/example.com.key", "-o", str(out)])
    assert result.exit_code == 0
    assert out.read_bytes() == b"KEYDATA"


def test_put_then_get(runner, shared_store, tmp_path):
    src = tmp_path / "new.crt"
    src.write_bytes(b"NEWCERT")
    result = _invoke(runner, ["put", "--lock", "certificates/new.example/new.crt", str(src)])
    assert result.exit_code == 0

    storage = CertStorage(shared_store, config=CertStoreConfig(backend="memory"))
    assert storage.load("certificates/new.example/new.crt") == b"NEWCERT"
    assert storage.locks.read_lock("certificates/new.example/new.crt") is None


def test_rm_then_exists(runner, seeded_store):
    result = _invoke(runner, ["rm", "acme/account.json"])
    assert result.exit_code == 0
    result = _invoke(runner, ["exists", "acme/account.json"])
    assert result.exit_code == ec.NOT_FOUND
    assert result.stdout.strip() == "no"
    result = _invoke(runner, ["rm", "acme/account.json"])
    assert result.exit_code == ec.NOT_FOUND


def test_exists_json(runner, seeded_store):
    result = _invoke(runner, ["--json", "exists", "acme/account.json"])
    assert result.exit_code == 0
    assert json.loads(result.stdout) == {"key": "acme/account.json", "exists": True}


def test_invalid_key_is_usage_error(runner, seeded_store):
    result = _invoke(runner, ["stat", "/abs/key"])
    assert result.exit_code == ec.USAGE_ERROR


def test_info(runner, shared_store):
    result = _invoke(runner, ["--json", "info"])
    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["backend"] == "memory"
    assert payload["lock_namespace"] == ".locks"


def test_bad_storage_uri(runner, shared_store):
    result = runner.invoke(app, ["--storage-uri", "ftp://certs", "info"])
    assert result.exit_code != 0


def test_missing_bucket_is_usage_error(runner, monkeypatch, tmp_path):
    for name in ("CERTSTORE_STORAGE_URI", "CERTSTORE_BUCKET", "CERTSTORE_CONFIG"):
        monkeypatch.delenv(name, raising=False)
    config = tmp_path / "certstore.yaml"
    config.write_text("backend: s3\n")
    result = runner.invoke(app, ["--config", str(config), "info"], catch_exceptions=False)
    assert result.exit_code == ec.USAGE_ERROR


def test_version(runner):
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert result.stdout.startswith("certstore ")


def test_ls_long_text_table(runner, seeded_store):
    result = _invoke(runner, ["ls", "--recursive", "--long", "acme/"])
    assert result.exit_code == 0
    header, row = result.stdout.splitlines()
    assert header.split() == ["KEY", "SIZE", "MODIFIED"]
    assert row.split()[:2] == ["acme/account.json", "2"]
