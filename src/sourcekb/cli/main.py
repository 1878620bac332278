"""SourceKB CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from sourcekb.cli.import_cmd import import_cmd
from sourcekb.cli.ingest import ingest_cmd
from sourcekb.cli.remove import remove_cmd
from sourcekb.cli.reprocess import reprocess_cmd
from sourcekb.cli.search import search_cmd
from sourcekb.cli.status import status_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("sourcekb")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"sourcekb {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="sourcekb",
    help=(
        "SourceKB — source ingestion and semantic retrieval.\n\n"
        "  sourcekb ingest   Extract, chunk and embed a file, URL or inline text.\n"
        "  sourcekb search   Hybrid (semantic + keyword) search over your sources."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """SourceKB — source ingestion and semantic retrieval."""


app.command("ingest")(ingest_cmd)
app.command("reprocess")(reprocess_cmd)
app.command("search")(search_cmd)
app.command("status")(status_cmd)
app.command("remove")(remove_cmd)
app.command("import")(import_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed SourceKB version."""
    typer.echo(f"sourcekb {_installed_version()}")


if __name__ == "__main__":
    app()
