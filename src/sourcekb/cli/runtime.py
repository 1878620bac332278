"""Shared wiring for CLI commands: config, database and model providers."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import typer
from rich.console import Console

from sourcekb.cli.errors import err_config, err_no_api_key, provider_of, warn_enrichment_disabled
from sourcekb.config import ConfigError, SourceKBConfig, load_config
from sourcekb.db.connection import Database
from sourcekb.db.schema import initialize
from sourcekb.extract.registry import build_registry
from sourcekb.logging import configure_logging
from sourcekb.pipeline import IngestionPipeline
from sourcekb.providers.base import EmbeddingProvider, TextGenProvider, VisionProvider
from sourcekb.providers.litellm_client import (
    LiteLLMEmbeddingProvider,
    LiteLLMTextGenProvider,
    LiteLLMVisionProvider,
    validate_api_key,
)

console = Console()

DEFAULT_OWNER = "local"


def load_settings() -> SourceKBConfig:
    """Load config and configure logging; exit 1 on an invalid config."""
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc
    configure_logging(cfg.logging.level, cfg.logging.json)
    return cfg


def db_path(db: Path | None, cfg: SourceKBConfig) -> Path:
    """--db wins over database.path from config."""
    return db if db is not None else Path(cfg.database.path)


def open_db(path: Path) -> sqlite3.Connection:
    """Open (or create) the knowledge-base database and run migrations."""
    conn = Database(path).connect()
    initialize(conn)
    return conn


def build_embedder(cfg: SourceKBConfig) -> EmbeddingProvider:
    """Embedding provider from config; exit 1 when its API key is missing."""
    try:
        validate_api_key(cfg.embedding.model)
    except EnvironmentError as exc:
        console.print(err_no_api_key(provider_of(cfg.embedding.model)))
        raise typer.Exit(1) from exc
    return LiteLLMEmbeddingProvider(cfg.embedding.model, cfg.embedding.dimensions)


def build_textgen(cfg: SourceKBConfig) -> TextGenProvider | None:
    """Text-generation provider, or None (with a warning) when its key is missing."""
    try:
        validate_api_key(cfg.generation.model)
    except EnvironmentError:
        console.print(
            warn_enrichment_disabled(
                provider_of(cfg.generation.model), "naming, summaries and insights"
            )
        )
        return None
    return LiteLLMTextGenProvider(cfg.generation.model)


def build_vision(cfg: SourceKBConfig) -> VisionProvider | None:
    try:
        validate_api_key(cfg.vision.model)
    except EnvironmentError:
        console.print(
            warn_enrichment_disabled(provider_of(cfg.vision.model), "image and PDF visual analysis")
        )
        return None
    return LiteLLMVisionProvider(cfg.vision.model)


def build_pipeline(cfg: SourceKBConfig, path: Path) -> IngestionPipeline:
    """Pipeline wired with the configured providers; creates the database if missing."""
    open_db(path).close()
    return IngestionPipeline(
        Database(path),
        build_registry(cfg, vision=build_vision(cfg)),
        build_embedder(cfg),
        config=cfg,
        textgen=build_textgen(cfg),
        naming_model=cfg.generation.naming_model,
    )
