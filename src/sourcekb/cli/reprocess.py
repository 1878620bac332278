"""sourcekb reprocess — run a stored source through the pipeline again.

The source keeps its id; its chunks are replaced in one transaction once
the new run has embedded them.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from sourcekb.cli import runtime
from sourcekb.cli.errors import err_no_db, err_source_not_found
from sourcekb.db.models import SourceStatus
from sourcekb.errors import InvalidTransitionError, PipelineFailure, SourceNotFoundError

console = Console()


def reprocess_cmd(
    source_id: Annotated[str, typer.Argument(help="Id of the source to reprocess.")],
    owner: Annotated[
        str,
        typer.Option("--owner", envvar="SOURCEKB_OWNER", help="Owner id."),
    ] = runtime.DEFAULT_OWNER,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the database (default: database.path from config)."),
    ] = None,
) -> None:
    """Reprocess a source (e.g. after a failure or a model change)."""
    cfg = runtime.load_settings()
    path = runtime.db_path(db, cfg)
    if not path.exists():
        console.print(err_no_db(str(path)))
        raise typer.Exit(1)

    with runtime.build_pipeline(cfg, path) as pipeline:
        try:
            future = pipeline.reprocess(source_id, owner)
        except SourceNotFoundError as exc:
            console.print(err_source_not_found(source_id))
            raise typer.Exit(1) from exc
        except InvalidTransitionError as exc:
            console.print(f"[red]Error:[/] {exc}")
            raise typer.Exit(1) from exc

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
            console=console,
        ) as prog:
            prog.add_task(f"Reprocessing {source_id}…", total=None)
            try:
                outcome = future.result()
            except PipelineFailure as exc:
                console.print(f"[red]✗ Processing failed:[/] {exc.cause}")
                raise typer.Exit(1) from exc

    if outcome.status is SourceStatus.FAILED:
        console.print(f"[red]✗ Failed:[/] {outcome.error}")
        raise typer.Exit(1)
    console.print(
        f"[green]✓[/] Reprocessed {source_id}: {outcome.embedded}/{outcome.chunks} chunks embedded"
    )
    if outcome.failed_stages:
        console.print(f"  [yellow]⚠[/] Skipped after errors: {', '.join(outcome.failed_stages)}")
