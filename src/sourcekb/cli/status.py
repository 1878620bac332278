"""sourcekb status — knowledge-base diagnostics.

Shows source counts by status and kind, chunk/embedding coverage, and one
row per source with a flag for sources that are failed or not searchable.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from sourcekb.cli import runtime
from sourcekb.cli.errors import err_no_db
from sourcekb.db.repository import Repository
from sourcekb.rag.diagnostics import Diagnostics, SourceDiagnostics, diagnose

console = Console()

_STATUS_STYLE = {
    "completed": "green",
    "processing": "cyan",
    "pending": "dim",
    "failed": "red",
}


def status_cmd(
    client: Annotated[
        str | None,
        typer.Option("--client", "-c", help="Only this client's sources."),
    ] = None,
    problems: Annotated[
        bool,
        typer.Option("--problems", help="Only list sources that need attention."),
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
    """Show knowledge-base status and why sources may not appear in search."""
    cfg = runtime.load_settings()
    path = runtime.db_path(db, cfg)
    if not path.exists():
        console.print(err_no_db(str(path)))
        raise typer.Exit(1)

    conn = runtime.open_db(path)
    try:
        report = diagnose(Repository(conn), owner, client_id=client)
    finally:
        conn.close()

    _show_overview(path, report)
    rows = [s for s in report.sources if s.needs_attention] if problems else report.sources
    if rows:
        _show_sources(rows)
    elif problems:
        console.print("[green]✓[/] No sources need attention.")


# ---------------------------------------------------------------------------
# Renderers
# ---------------------------------------------------------------------------


def _show_overview(path: Path, report: Diagnostics) -> None:
    if report.total_sources == 0:
        console.print(
            Panel(
                "[dim]No sources ingested yet.[/]\n"
                "  Run:  sourcekb ingest <file-or-url>",
                title="[bold]Knowledge Base[/]",
                expand=False,
            )
        )
        return

    by_status = "  ".join(
        f"[{_STATUS_STYLE.get(name, 'white')}]{name}[/] {count}"
        for name, count in sorted(report.by_status.items())
    )
    by_kind = "  ".join(f"{name} {count}" for name, count in sorted(report.by_kind.items()))
    lines = [
        f"Database:  {path}",
        f"Sources:   [bold]{report.total_sources}[/]  ({by_status})",
        f"Kinds:     {by_kind}",
        f"Chunks:    [bold]{report.total_chunks:,}[/]  |  "
        f"Embedded: [bold]{report.embedded_chunks:,}[/]",
    ]
    if report.total_chunks and report.embedded_chunks < report.total_chunks:
        missing = report.total_chunks - report.embedded_chunks
        lines.append(f"[yellow]⚠ {missing:,} chunks have no embedding[/]")
    console.print(Panel("\n".join(lines), title="[bold]Knowledge Base[/]", expand=False))


def _show_sources(rows: list[SourceDiagnostics]) -> None:
    table = Table(title="Sources", title_justify="left")
    table.add_column("Id", style="dim")
    table.add_column("Name", style="bold")
    table.add_column("Kind")
    table.add_column("Status")
    table.add_column("Chunks", justify="right")
    table.add_column("Notes")

    for row in rows:
        style = _STATUS_STYLE.get(row.status, "white")
        table.add_row(
            row.source_id[:8],
            row.name,
            row.kind,
            f"[{style}]{row.status}[/]",
            f"{row.embedded_chunks}/{row.chunks}",
            _notes(row),
        )
    console.print(table)


def _notes(row: SourceDiagnostics) -> str:
    if row.error:
        return f"[red]{row.error}[/]"
    if row.excluded:
        return "[dim]excluded from search[/]"
    if row.needs_attention:
        if row.chunks == 0:
            return "[yellow]no chunks[/]"
        return "[yellow]missing embeddings[/]"
    return ""
