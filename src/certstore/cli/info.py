"""certstore info: show backend and lock settings."""

from __future__ import annotations

import typer

from certstore.cli._output import emit
from certstore.cli._storage import fail, open_cert_storage
from certstore.errors import CertStoreError


def info_cmd(
    locks: bool = typer.Option(False, "--locks", help="Count lock objects currently present"),
) -> None:
    """Show backend and lock settings."""
    from certstore.cli import state

    storage = open_cert_storage()
    try:
        data = storage.storage_info()
        if locks:
            data["lock_count"] = sum(1 for _ in storage.locks.list_locks())
    except CertStoreError as e:
        raise fail(e)
    finally:
        storage.close()

    if state.json_output:
        emit(data, json_mode=True)
        return

    backend = str(data.get("backend", "unknown"))
    print(f"Backend: {backend}")
    if backend == "s3":
        print(f"Bucket: {data.get('bucket')}")
        print(f"Endpoint: {data.get('endpoint_url') or '(default)'}")
    print(f"Prefix: {data.get('prefix') or '(root)'}")
    print(f"Lock namespace: {data.get('lock_namespace')}")
    print(f"Lease TTL: {data.get('lease_ttl_ms')}ms")
    print(f"Lock timeout: {data.get('lock_timeout_ms')}ms")
    if locks:
        print(f"Locks present: {data['lock_count']}")
