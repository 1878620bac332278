"""Retrieval: hybrid search and knowledge-base diagnostics."""

from sourcekb.rag.diagnostics import Diagnostics, SourceDiagnostics, diagnose
from sourcekb.rag.retriever import (
    Provenance,
    Retriever,
    SearchFilters,
    SearchResponse,
    SearchResult,
    build_context,
)

__all__ = [
    "Diagnostics",
    "Provenance",
    "Retriever",
    "SearchFilters",
    "SearchResponse",
    "SearchResult",
    "SourceDiagnostics",
    "build_context",
    "diagnose",
]
