"""sourcekb database layer."""

from sourcekb.db.connection import Database
from sourcekb.db.migrations import MIGRATIONS, run_migrations
from sourcekb.db.models import (
    Chunk,
    Insight,
    ScoredChunk,
    Source,
    SourceKind,
    SourceStatus,
    check_transition,
)
from sourcekb.db.repository import Repository, Scope
from sourcekb.db.schema import initialize

__all__ = [
    "Chunk",
    "Database",
    "Insight",
    "MIGRATIONS",
    "Repository",
    "Scope",
    "ScoredChunk",
    "Source",
    "SourceKind",
    "SourceStatus",
    "check_transition",
    "initialize",
    "run_migrations",
]
