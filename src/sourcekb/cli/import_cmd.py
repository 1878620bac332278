"""sourcekb import — bulk-import exported newsletters or frameworks as personal knowledge."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from sourcekb.cli import runtime
from sourcekb.cli.errors import err_invalid_import, err_path_not_found
from sourcekb.db.models import SourceStatus
from sourcekb.ingest.bulk import IMPORT_TYPES

console = Console()


def import_cmd(
    file: Annotated[Path, typer.Argument(help="JSON export: an array of items.")],
    import_type: Annotated[
        str,
        typer.Option("--type", help=f"Item format: {' | '.join(IMPORT_TYPES)}."),
    ] = "newsletter",
    owner: Annotated[
        str,
        typer.Option("--owner", envvar="SOURCEKB_OWNER", help="Owner id."),
    ] = runtime.DEFAULT_OWNER,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the database (default: database.path from config)."),
    ] = None,
) -> None:
    """Import many items at once; they are processed one after another."""
    if import_type not in IMPORT_TYPES:
        console.print(
            f"[red]Error:[/] Unknown import type '{import_type}'.\n"
            f"  Use one of: {', '.join(IMPORT_TYPES)}"
        )
        raise typer.Exit(1)
    if not file.is_file():
        console.print(err_path_not_found(str(file)))
        raise typer.Exit(1)
    items = load_items(file)

    cfg = runtime.load_settings()
    path = runtime.db_path(db, cfg)
    with runtime.build_pipeline(cfg, path) as pipeline:
        report = pipeline.bulk_import(owner, items, import_type)
        console.print(f"\n[green]✓[/] Created {len(report.created)} sources from {file.name}")
        for name, message in report.errors:
            console.print(f"  [red]✗[/] {name}: {message}")

        if report.future is None:
            return
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
            console=console,
        ) as prog:
            prog.add_task(f"Processing {len(report.created)} items…", total=None)
            outcomes = report.future.result()

    failed = [o for o in outcomes if o.status is SourceStatus.FAILED]
    console.print(f"  {len(outcomes) - len(failed)} completed, {len(failed)} failed")
    for outcome in failed:
        console.print(f"  [red]✗[/] {outcome.source_id[:8]}: {outcome.error}")
    if report.errors or failed:
        raise typer.Exit(1)


def load_items(file: Path) -> list[dict[str, Any]]:
    """Read the item list from a JSON export; exit 1 when it has the wrong shape."""
    try:
        data = json.loads(file.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        console.print(err_invalid_import(str(file), f"not valid JSON ({exc})"))
        raise typer.Exit(1) from exc

    if isinstance(data, dict):
        data = data.get("items")
    if not isinstance(data, list):
        console.print(err_invalid_import(str(file), "no item list found"))
        raise typer.Exit(1)
    return data
