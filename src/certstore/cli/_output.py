"""Rendering of command results: JSON for scripts, aligned text for people."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Mapping, Sequence

import typer


def _plain(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _dumps(data: Any) -> str:
    return json.dumps(data, indent=2, default=_plain)


def emit_rows(
    rows: Sequence[Mapping[str, Any]],
    columns: Sequence[str],
    *,
    json_mode: bool = False,
) -> None:
    """Render records as a JSON array or as left-aligned columns.

    Text mode prints nothing for an empty result so shell pipelines see no
    header-only output.
    """
    if json_mode:
        typer.echo(_dumps([{c: row.get(c) for c in columns} for row in rows]))
        return
    if not rows:
        return

    cells = [[_plain(row.get(c)) for c in columns] for row in rows]
    widths = [max(len(c), *(len(line[i]) for line in cells)) for i, c in enumerate(columns)]
    typer.echo("  ".join(c.upper().ljust(w) for c, w in zip(columns, widths)).rstrip())
    for line in cells:
        typer.echo("  ".join(v.ljust(w) for v, w in zip(line, widths)).rstrip())


def emit(data: Mapping[str, Any] | Sequence[Any], *, json_mode: bool = False) -> None:
    """Render a single record (``name: value`` lines) or a list (one item per line)."""
    if json_mode:
        typer.echo(_dumps(data))
        return
    if isinstance(data, Mapping):
        for name, value in data.items():
            typer.echo(f"{name}: {_plain(value)}")
        return
    for item in data:
        typer.echo(_plain(item))


def emit_error(message: str) -> None:
    typer.echo(f"Error: {message}", err=True)
