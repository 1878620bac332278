"""SourceKB rich error messages — actionable feedback.

Every error shown to the user names what went wrong and the command or
setting that fixes it.

Usage:
    from sourcekb.cli.errors import err_no_api_key, err_no_db
    console.print(err_no_api_key("openai"))
    raise typer.Exit(1)
"""

from __future__ import annotations

_ENV_MAP = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "azure": "AZURE_API_KEY",
    "voyage": "VOYAGE_API_KEY",
}


def provider_of(model: str) -> str:
    """Provider prefix of a LiteLLM model string ('openai' when absent)."""
    return model.split("/")[0].lower() if "/" in model else "openai"


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    env_var = _ENV_MAP.get(provider.lower(), f"{provider.upper()}_API_KEY")
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-..."
    )


def warn_enrichment_disabled(provider: str, feature: str) -> str:
    """Optional model capability unavailable; ingestion continues without it."""
    env_var = _ENV_MAP.get(provider.lower(), f"{provider.upper()}_API_KEY")
    return (
        f"[yellow]Warning:[/] No API key for '{provider}' — {feature} disabled.\n"
        f"  Set:  export {env_var}=... to enable it."
    )


def err_no_db(db_path: str = ".sourcekb.db") -> str:
    """No knowledge-base database at *db_path*."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  sourcekb ingest <file-or-url>  to create it."
    )


def err_config(message: str) -> str:
    """Configuration file failed validation."""
    return (
        f"[red]Error:[/] Invalid configuration: {message}\n"
        "  Fix sourcekb.yaml (or ~/.sourcekb/config.yaml) and retry."
    )


def err_source_not_found(source_id: str) -> str:
    """Source id unknown for this owner."""
    return (
        f"[yellow]Source not found:[/] '{source_id}' is not in the knowledge base.\n"
        "  Run:  sourcekb status  to see all sources and their ids."
    )


def err_path_not_found(path: str) -> str:
    """Local file passed to ingest/import does not exist."""
    return (
        f"[red]Error:[/] File not found: '{path}'\n"
        "  Pass an existing file path or an http(s) URL."
    )


def err_no_input() -> str:
    """ingest called without a source argument and without --text."""
    return (
        "[red]Error:[/] Nothing to ingest.\n"
        "  Pass a file path or URL, or inline text:  sourcekb ingest --text '...' --name notes"
    )


def err_name_required() -> str:
    """Inline text needs a name."""
    return (
        "[red]Error:[/] Inline text needs a name.\n"
        "  Add:  --name <name>"
    )


def err_empty_query() -> str:
    """Search query is empty or whitespace."""
    return (
        "[red]Error:[/] Search query is empty.\n"
        "  Example:  sourcekb search 'pricing strategy'"
    )


def err_invalid_import(path: str, reason: str) -> str:
    """Bulk import file is not a JSON list of items."""
    return (
        f"[red]Error:[/] Cannot import '{path}': {reason}\n"
        "  Expected a JSON array of exported items (or an object with an 'items' array)."
    )


def err_ssrf_blocked(url: str) -> str:
    """URL resolves to a private/reserved address."""
    return (
        f"[red]Error:[/] URL resolves to private address (SSRF protection): '{url}'\n"
        "  Use a publicly reachable URL, or set crawl.allow_private_addresses: true."
    )
