"""sourcekb remove — delete a source with its chunks and insights.

Usage:
  sourcekb remove 3f2a9c1e-...
  sourcekb remove 3f2a9c1e-... --yes
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from sourcekb.cli import runtime
from sourcekb.cli.errors import err_no_db, err_source_not_found
from sourcekb.db.repository import Repository, Scope

console = Console()


def remove_cmd(
    source_id: Annotated[str, typer.Argument(help="Id of the source to remove.")],
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
    owner: Annotated[
        str,
        typer.Option("--owner", envvar="SOURCEKB_OWNER", help="Owner id."),
    ] = runtime.DEFAULT_OWNER,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the database (default: database.path from config)."),
    ] = None,
) -> None:
    """Remove a source and all its data from the knowledge base."""
    cfg = runtime.load_settings()
    path = runtime.db_path(db, cfg)
    if not path.exists():
        console.print(err_no_db(str(path)))
        raise typer.Exit(1)

    conn = runtime.open_db(path)
    repo = Repository(conn)
    try:
        existing = repo.get_source(source_id, owner)
        if existing is None:
            console.print(err_source_not_found(source_id))
            raise typer.Exit(1)

        chunk_count = repo.count_chunks(Scope(owner_id=owner), source_id=source_id)
        insight_count = len(repo.list_insights(owner, source_id=source_id))

        console.print(f"\nRemove source: [bold]{existing.name}[/] [dim]({existing.kind.value})[/]")
        console.print(f"  Chunks: {chunk_count}  |  Insights: {insight_count}")

        if not yes:
            if not typer.confirm("Confirm removal?", default=False):
                console.print("[dim]Cancelled.[/]")
                raise typer.Exit(0)

        repo.delete_source(source_id, owner)
        console.print(f"\n[green]✓[/] Removed: {existing.name}")
        console.print(f"  {chunk_count} chunks, {insight_count} insights deleted")
    finally:
        conn.close()
