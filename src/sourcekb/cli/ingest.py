"""sourcekb ingest — add a file, URL or inline text to the knowledge base.

Kind detection (override with --kind):
  --text ...                     → note
  https://github.com/<o>/<r>     → repo
  URL ending in a document type  → document (image type → image)
  other http(s) URL              → website
  .eml file                      → email
  image file                     → image
  any other file                 → document

The command waits for the background run and reports the outcome.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated
from urllib.parse import urlparse

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from sourcekb.cli import runtime
from sourcekb.cli.errors import (
    err_name_required,
    err_no_input,
    err_path_not_found,
    err_ssrf_blocked,
)
from sourcekb.db.models import SourceKind, SourceStatus
from sourcekb.db.repository import Repository
from sourcekb.errors import PipelineFailure
from sourcekb.extract.fetch import FetchError, HttpFetcher, SsrfError
from sourcekb.extract.image import IMAGE_TYPES
from sourcekb.extract.office import OFFICE_TYPES
from sourcekb.extract.registry import TEXT_TYPES
from sourcekb.extract.repo import parse_github_url
from sourcekb.pipeline import IngestRequest, ProcessOutcome, infer_file_type

console = Console()

_DOCUMENT_TYPES = {*TEXT_TYPES, *OFFICE_TYPES, "pdf", "csv", "json"}


def ingest_cmd(
    source: Annotated[
        str | None,
        typer.Argument(help="File path or http(s) URL to ingest."),
    ] = None,
    text: Annotated[
        str | None,
        typer.Option("--text", "-t", help="Ingest inline text instead of a file or URL."),
    ] = None,
    name: Annotated[
        str | None,
        typer.Option("--name", "-n", help="Display name (defaults to the file name or URL)."),
    ] = None,
    kind: Annotated[
        SourceKind | None,
        typer.Option("--kind", "-k", help="Source kind (detected when omitted)."),
    ] = None,
    client: Annotated[
        str | None,
        typer.Option("--client", "-c", help="Client id; omit for personal knowledge."),
    ] = None,
    client_name: Annotated[
        str | None,
        typer.Option("--client-name", help="Client display name used in AI prompts."),
    ] = None,
    exclude: Annotated[
        bool,
        typer.Option("--exclude", help="Store the source but keep it out of search."),
    ] = False,
    category: Annotated[
        str | None,
        typer.Option("--category", help="Governance category (e.g. confidential)."),
    ] = None,
    owner: Annotated[
        str,
        typer.Option("--owner", envvar="SOURCEKB_OWNER", help="Owner id."),
    ] = runtime.DEFAULT_OWNER,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the database (default: database.path from config)."),
    ] = None,
) -> None:
    """Ingest one source and wait until it is processed."""
    cfg = runtime.load_settings()
    request = _build_request(source, text, name, kind, owner, client, client_name, exclude, category)

    if request.origin and request.raw is None:
        _check_url(request.origin, cfg.crawl.allow_private_addresses)

    path = runtime.db_path(db, cfg)
    with runtime.build_pipeline(cfg, path) as pipeline:
        created = pipeline.submit(request)
        console.print(f"\n[bold]→ {request.name}[/] [dim]({created.kind.value}, {created.id})[/]")
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
            console=console,
        ) as prog:
            prog.add_task("Processing…", total=None)
            try:
                outcome = pipeline.run_for(created.id).result()
            except PipelineFailure as exc:
                console.print(f"  [red]✗ Processing failed:[/] {exc.cause}")
                raise typer.Exit(1) from exc

    _report(outcome, path, owner)


# ------------------------------------------------------------------
# Request building
# ------------------------------------------------------------------


def _build_request(
    source: str | None,
    text: str | None,
    name: str | None,
    kind: SourceKind | None,
    owner: str,
    client: str | None,
    client_name: str | None,
    exclude: bool,
    category: str | None,
) -> IngestRequest:
    common = dict(
        owner_id=owner,
        client_id=client,
        client_name=client_name,
        exclude_from_rag=exclude,
        category=category,
    )

    if text is not None:
        if not name:
            console.print(err_name_required())
            raise typer.Exit(1)
        return IngestRequest(
            kind=kind or SourceKind.NOTE,
            name=name,
            raw=text.encode("utf-8"),
            file_type="md" if name.lower().endswith(".md") else "txt",
            **common,
        )

    if not source:
        console.print(err_no_input())
        raise typer.Exit(1)

    if source.startswith(("https://", "http://")):
        return IngestRequest(
            kind=kind or detect_url_kind(source),
            name=name or source,
            origin=source,
            file_type=infer_file_type(urlparse(source).path) if kind is None else None,
            **common,
        )

    file = Path(source)
    if not file.is_file():
        console.print(err_path_not_found(source))
        raise typer.Exit(1)
    return IngestRequest(
        kind=kind or detect_file_kind(file),
        name=name or file.name,
        origin=str(file.resolve()),
        raw=file.read_bytes(),
        file_type=infer_file_type(file.name),
        **common,
    )


def detect_url_kind(url: str) -> SourceKind:
    """Kind for an http(s) URL."""
    if parse_github_url(url) is not None:
        return SourceKind.REPO
    file_type = infer_file_type(urlparse(url).path)
    if file_type in IMAGE_TYPES:
        return SourceKind.IMAGE
    if file_type in _DOCUMENT_TYPES:
        return SourceKind.DOCUMENT
    return SourceKind.WEBSITE


def detect_file_kind(path: Path) -> SourceKind:
    """Kind for a local file, from its extension."""
    file_type = infer_file_type(path.name)
    if file_type == "eml":
        return SourceKind.EMAIL
    if file_type in IMAGE_TYPES:
        return SourceKind.IMAGE
    return SourceKind.DOCUMENT


def _check_url(url: str, allow_private: bool) -> None:
    try:
        HttpFetcher(allow_private=allow_private).check_url(url)
    except SsrfError as exc:
        console.print(err_ssrf_blocked(url))
        raise typer.Exit(1) from exc
    except (ValueError, FetchError) as exc:
        console.print(f"[red]Error:[/] {exc}")
        raise typer.Exit(1) from exc


# ------------------------------------------------------------------
# Outcome
# ------------------------------------------------------------------


def _report(outcome: ProcessOutcome, path: Path, owner: str) -> None:
    conn = runtime.open_db(path)
    try:
        stored = Repository(conn).get_source(outcome.source_id, owner)
    finally:
        conn.close()
    label = stored.name if stored else outcome.source_id

    if outcome.status is SourceStatus.FAILED:
        console.print(f"  [red]✗ Failed:[/] {outcome.error}")
        console.print(f"  [dim]Fix the input, then run:  sourcekb reprocess {outcome.source_id}[/]")
        raise typer.Exit(1)

    console.print(f"  [green]✓[/] Completed: [bold]{label}[/]")
    console.print(f"  {outcome.embedded}/{outcome.chunks} chunks embedded")
    if outcome.chunks and outcome.embedded < outcome.chunks:
        console.print(
            "  [yellow]⚠[/] Some chunks have no embedding; they are found by keyword search only."
        )
    if outcome.failed_stages:
        console.print(
            f"  [yellow]⚠[/] Skipped after errors: {', '.join(outcome.failed_stages)} "
            "(see log output)"
        )
