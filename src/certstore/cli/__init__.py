"""certstore CLI: operator console for certificate storage backends."""

from __future__ import annotations

from typing import Optional

import typer

from certstore.cli import info, locks, objects

app = typer.Typer(
    name="certstore",
    help="certstore CLI: inspect and manage certificate storage and its locks.",
    no_args_is_help=True,
)


class _State:
    """Global CLI state shared across subcommands."""

    storage_uri: str | None = None
    config: str | None = None
    json_output: bool = False
    verbose: bool = False


state = _State()


def _version_callback(value: bool) -> None:
    if value:
        from certstore import __version__

        print(f"certstore {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    storage_uri: Optional[str] = typer.Option(
        None,
        "--storage-uri",
        envvar="CERTSTORE_STORAGE_URI",
        help="Backend storage URI (e.g. s3://bucket/prefix or memory://)",
    ),
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        envvar="CERTSTORE_CONFIG",
        help="YAML config file path",
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output when supported"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log storage activity to stderr"),
    version: bool = typer.Option(
        False, "--version", help="Show version", is_eager=True, callback=_version_callback
    ),
) -> None:
    """Global options for all certstore commands."""
    from certstore.errors import ConfigurationError
    from certstore.storage import parse_storage_target

    if storage_uri:
        try:
            parse_storage_target(storage_uri)
        except ConfigurationError as e:
            raise typer.BadParameter(str(e), param_hint="--storage-uri")

    state.storage_uri = storage_uri
    state.config = config
    state.json_output = json_output
    state.verbose = verbose
    if verbose:
        from certstore.log import configure_logging

        configure_logging("DEBUG")
    if ctx.invoked_subcommand is None and not version:
        print(ctx.get_help())
        raise typer.Exit()


app.add_typer(locks.app, name="locks", help="Inspect and break distributed locks")

app.command(name="info")(info.info_cmd)
app.command(name="ls")(objects.ls_cmd)
app.command(name="stat")(objects.stat_cmd)
app.command(name="get")(objects.get_cmd)
app.command(name="put")(objects.put_cmd)
app.command(name="rm")(objects.rm_cmd)
app.command(name="exists")(objects.exists_cmd)


def main() -> None:
    """Entry point for the certstore CLI."""
    app()
