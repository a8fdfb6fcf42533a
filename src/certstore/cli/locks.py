"""certstore locks: inspect and break distributed locks."""

from __future__ import annotations

from dataclasses import asdict

import typer

from certstore.cli._output import emit, emit_rows
from certstore.cli._storage import fail, open_cert_storage
from certstore.errors import CertStoreError, NotFoundError

app = typer.Typer(no_args_is_help=True)


@app.command("list")
def list_cmd() -> None:
    """List lock objects with owner and expiry."""
    from certstore.cli import state

    storage = open_cert_storage()
    try:
        records = list(storage.locks.list_locks())
    except CertStoreError as e:
        raise fail(e)
    finally:
        storage.close()

    rows = [{**asdict(r), "expired": r.is_expired()} for r in records]
    emit_rows(rows, ["key", "owner_id", "expires_at", "expired"], json_mode=state.json_output)


@app.command("show")
def show_cmd(key: str = typer.Argument(..., help="Locked key")) -> None:
    """Show the lock record for a key."""
    from certstore.cli import state

    storage = open_cert_storage()
    try:
        record = storage.locks.read_lock(key)
    except CertStoreError as e:
        raise fail(e)
    finally:
        storage.close()

    if record is None:
        raise fail(NotFoundError(key))
    emit({**asdict(record), "expired": record.is_expired()}, json_mode=state.json_output)


@app.command("break")
def break_cmd(
    key: str = typer.Argument(..., help="Locked key"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete a lock regardless of its owner."""
    if not yes:
        typer.confirm(f"Break the lock on '{key}'? Its holder will lose exclusivity", abort=True)

    storage = open_cert_storage()
    try:
        removed = storage.locks.break_lock(key)
    except CertStoreError as e:
        raise fail(e)
    finally:
        storage.close()

    if not removed:
        raise fail(NotFoundError(key))
    print(f"Broke lock on '{key}'")
