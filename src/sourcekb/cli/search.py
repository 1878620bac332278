"""sourcekb search — hybrid retrieval over the knowledge base."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from sourcekb.cli import runtime
from sourcekb.cli.errors import err_empty_query, err_no_db
from sourcekb.db.models import SourceKind
from sourcekb.db.repository import Repository
from sourcekb.errors import EmptyQueryError
from sourcekb.rag.retriever import Retriever, SearchFilters, build_context

console = Console()

_SNIPPET_WIDTH = 160


def search_cmd(
    query: Annotated[str, typer.Argument(help="What to look for.")],
    limit: Annotated[
        int | None,
        typer.Option("--limit", "-l", min=1, help="Maximum results (default: retrieval.limit)."),
    ] = None,
    min_similarity: Annotated[
        float | None,
        typer.Option(
            "--min-similarity",
            min=0.0,
            max=1.0,
            help="Semantic cut-off (default: retrieval.min_similarity).",
        ),
    ] = None,
    client: Annotated[
        str | None,
        typer.Option("--client", "-c", help="Restrict to one client's sources."),
    ] = None,
    personal: Annotated[
        bool,
        typer.Option("--personal", help="With --client, also search personal knowledge."),
    ] = False,
    kind: Annotated[
        list[SourceKind] | None,
        typer.Option("--kind", "-k", help="Restrict to a source kind (repeatable)."),
    ] = None,
    lexical: Annotated[
        bool,
        typer.Option("--lexical/--no-lexical", help="Top up with keyword matches."),
    ] = True,
    context: Annotated[
        bool,
        typer.Option("--context", help="Print the prompt context block instead of a table."),
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
    """Search sources by meaning, topped up with keyword matches."""
    cfg = runtime.load_settings()
    path = runtime.db_path(db, cfg)
    if not path.exists():
        console.print(err_no_db(str(path)))
        raise typer.Exit(1)

    embedder = runtime.build_embedder(cfg)
    filters = SearchFilters(
        client_id=client,
        kinds=tuple(kind) if kind else None,
        include_personal=personal,
    )

    conn = runtime.open_db(path)
    try:
        retriever = Retriever(Repository(conn), embedder, cfg.retrieval)
        try:
            response = retriever.search(
                query,
                owner,
                filters=filters,
                limit=limit,
                min_similarity=min_similarity,
                hybrid=lexical and cfg.retrieval.hybrid,
            )
        except EmptyQueryError as exc:
            console.print(err_empty_query())
            raise typer.Exit(1) from exc
    finally:
        conn.close()

    if not response.results:
        console.print(f"[yellow]No results.[/] {response.guidance or ''}".rstrip())
        return

    if context:
        console.print(build_context(response.results), markup=False, highlight=False)
        return

    table = Table(show_lines=False)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Match", style="dim")
    table.add_column("Source", style="bold")
    table.add_column("Snippet")
    for i, result in enumerate(response.results, start=1):
        snippet = " ".join(result.text.split())
        if len(snippet) > _SNIPPET_WIDTH:
            snippet = snippet[:_SNIPPET_WIDTH] + "…"
        table.add_row(
            str(i),
            f"{result.score:.2f}",
            result.match_type,
            f"{result.source_name}\n[dim]{result.kind.value} · {result.source_id[:8]}[/]",
            snippet,
        )
    console.print(table)
