"""Blob commands: ls, stat, get, put, rm, exists."""

from __future__ import annotations

import sys
from dataclasses import asdict
from pathlib import Path
from typing import Optional

import typer

from certstore.cli import _exitcodes as ec
from certstore.cli._output import emit, emit_rows
from certstore.cli._storage import fail, open_cert_storage
from certstore.errors import CertStoreError


def ls_cmd(
    prefix: str = typer.Argument("", help="Key prefix, e.g. certificates/"),
    recursive: bool = typer.Option(False, "--recursive", "-r", help="Descend into sub-prefixes"),
    long: bool = typer.Option(False, "--long", "-l", help="Show size and modified time"),
) -> None:
    """List keys under a prefix."""
    from certstore.cli import state

    storage = open_cert_storage()
    try:
        keys = list(storage.list(prefix, recursive=recursive))
        infos = [asdict(storage.stat(key)) for key in keys] if long else []
    except CertStoreError as e:
        raise fail(e)
    finally:
        storage.close()

    if long:
        emit_rows(infos, ["key", "size", "modified"], json_mode=state.json_output)
        return
    emit(keys, json_mode=state.json_output)


def stat_cmd(key: str = typer.Argument(..., help="Key to inspect")) -> None:
    """Show size and modification time of a key."""
    from certstore.cli import state

    storage = open_cert_storage()
    try:
        info = storage.stat(key)
    except CertStoreError as e:
        raise fail(e)
    finally:
        storage.close()

    emit(asdict(info), json_mode=state.json_output)


def get_cmd(
    key: str = typer.Argument(..., help="Key to read"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write to file"),
) -> None:
    """Write the value of a key to stdout or a file."""
    storage = open_cert_storage()
    try:
        data = storage.load(key)
    except CertStoreError as e:
        raise fail(e)
    finally:
        storage.close()

    if output is not None:
        output.write_bytes(data)
        return
    typer.echo(data, nl=False)


def put_cmd(
    key: str = typer.Argument(..., help="Key to write"),
    source: str = typer.Argument(..., help="File to upload, or '-' for stdin"),
    lock: bool = typer.Option(False, "--lock", help="Hold the key's lock while writing"),
) -> None:
    """Store a file under a key, replacing any previous value."""
    data = sys.stdin.buffer.read() if source == "-" else Path(source).read_bytes()

    storage = open_cert_storage()
    try:
        if lock:
            with storage.locked(key):
                storage.store(key, data)
        else:
            storage.store(key, data)
    except CertStoreError as e:
        raise fail(e)
    finally:
        storage.close()


def rm_cmd(key: str = typer.Argument(..., help="Key to delete")) -> None:
    """Delete a key."""
    storage = open_cert_storage()
    try:
        storage.delete(key)
    except CertStoreError as e:
        raise fail(e)
    finally:
        storage.close()


def exists_cmd(key: str = typer.Argument(..., help="Key to check")) -> None:
    """Exit 0 when the key exists, 4 when it is absent."""
    from certstore.cli import state

    storage = open_cert_storage()
    try:
        found = storage.exists(key)
    except CertStoreError as e:
        raise fail(e)
    finally:
        storage.close()

    if state.json_output:
        emit({"key": key, "exists": found}, json_mode=True)
    else:
        print("yes" if found else "no")
    if not found:
        raise typer.Exit(ec.NOT_FOUND)
