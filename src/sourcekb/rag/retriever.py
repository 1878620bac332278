"""Hybrid retriever: cosine similarity over chunk embeddings, topped up by substring match.

Semantic channel:
  similarity = 1 - vec_distance_cosine(chunk, query), clamped to [0, 1]
  kept when >= min_similarity, best first, capped at limit.

Lexical channel (hybrid only, and only while semantic results < limit):
  case-insensitive substring match over source content and name, newest first,
  excluding sources already returned; fixed score (0.5).

The two blocks are concatenated (semantic first) and truncated to limit.
Sources flagged exclude_from_rag never appear in either channel.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

import structlog

from sourcekb.config import RetrievalCfg
from sourcekb.db.models import Source, SourceKind
from sourcekb.db.repository import Repository, Scope
from sourcekb.db.vectors import distance_to_similarity
from sourcekb.errors import EmptyQueryError
from sourcekb.providers.base import EmbeddingProvider

logger = structlog.get_logger(logger_name=__name__)

SNIPPET_RADIUS = 100
NAME_MATCH_PREVIEW = 200

GUIDANCE_NO_EMBEDDINGS = (
    "No embedded content is available in this scope yet. "
    "Ingest sources (or reprocess failed ones) to enable semantic search."
)
GUIDANCE_NO_MATCHES = "No sources matched the query in this scope."


@dataclass(frozen=True)
class SearchFilters:
    """Which sources a search may return.

    Attributes:
        client_id: Restrict to one client; None searches every source of the owner.
        kinds: Restrict to these source kinds.
        include_personal: With client_id, also search personal knowledge.
    """

    client_id: str | None = None
    kinds: tuple[SourceKind, ...] | None = None
    include_personal: bool = False

    def scope(self, owner_id: str) -> Scope:
        kinds = tuple(SourceKind(k) for k in self.kinds) if self.kinds else None
        return Scope(
            owner_id=owner_id,
            client_id=self.client_id,
            include_personal=self.include_personal,
            kinds=kinds,
        )


@dataclass(frozen=True)
class Provenance:
    chunk_id: str | None
    chunk_index: int | None
    start_char: int | None
    end_char: int | None
    client_id: str | None


@dataclass(frozen=True)
class SearchResult:
    source_id: str
    source_name: str
    kind: SourceKind
    text: str
    score: float
    match_type: str  # "semantic" | "lexical"
    provenance: Provenance


@dataclass
class SearchResponse:
    results: list[SearchResult] = field(default_factory=list)
    guidance: str | None = None


def make_snippet(content: str, query: str) -> tuple[str, int, int]:
    """Return ``(snippet, start, end)`` around the first match of *query* in *content*.

    Falls back to the first 200 characters when the query does not occur in
    the content (the source matched by name).
    """
    pos = content.lower().find(query.lower())
    if pos < 0:
        end = min(len(content), NAME_MATCH_PREVIEW)
        suffix = "..." if end < len(content) else ""
        return content[:end] + suffix, 0, end

    start = max(0, pos - SNIPPET_RADIUS)
    end = min(len(content), pos + len(query) + SNIPPET_RADIUS)
    prefix = "..." if start > 0 else ""
    suffix = "..." if end < len(content) else ""
    return prefix + content[start:end] + suffix, start, end


class Retriever:
    """Answer retrieval queries against one knowledge-base connection.

    Args:
        repo:     Open Repository instance.
        embedder: Provider used to embed queries; must be the model chunks
                  were embedded with (only same-model chunks are compared).
        config:   Retrieval defaults (limit, min_similarity, hybrid, lexical_score).
    """

    def __init__(
        self,
        repo: Repository,
        embedder: EmbeddingProvider,
        config: RetrievalCfg | None = None,
    ) -> None:
        self._repo = repo
        self._embedder = embedder
        self._config = config or RetrievalCfg()

    def search(
        self,
        query: str,
        owner_id: str,
        filters: SearchFilters | None = None,
        limit: int | None = None,
        min_similarity: float | None = None,
        hybrid: bool | None = None,
    ) -> SearchResponse:
        """Return the best chunks/sources for *query* within the owner's scope.

        Raises:
            EmptyQueryError: If *query* is empty or whitespace.
            ValueError: If *limit* < 1 or *min_similarity* outside [0, 1].
            ProviderError: If the query cannot be embedded and hybrid is off.
        """
        if not query or not query.strip():
            raise EmptyQueryError("Search query must not be empty.")
        query = query.strip()
        limit = self._config.limit if limit is None else limit
        min_similarity = self._config.min_similarity if min_similarity is None else min_similarity
        hybrid = self._config.hybrid if hybrid is None else hybrid
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")
        if not 0.0 <= min_similarity <= 1.0:
            raise ValueError(f"min_similarity must be in [0, 1], got {min_similarity}")

        scope = (filters or SearchFilters()).scope(owner_id)
        has_embeddings = self._repo.count_searchable_chunks(scope, self._embedder.model) > 0

        semantic: list[SearchResult] = []
        if has_embeddings:
            semantic = self._semantic(query, scope, limit, min_similarity, hybrid)

        lexical: list[SearchResult] = []
        if hybrid and len(semantic) < limit:
            seen = {r.source_id for r in semantic}
            lexical = self._lexical(query, scope, seen, limit - len(semantic))

        results = (semantic + lexical)[:limit]
        guidance = None
        if not has_embeddings and not results:
            guidance = GUIDANCE_NO_EMBEDDINGS
        elif not results:
            guidance = GUIDANCE_NO_MATCHES

        logger.debug(
            "search_completed",
            owner_id=owner_id,
            semantic=len(semantic),
            lexical=len(lexical),
            returned=len(results),
        )
        return SearchResponse(results=results, guidance=guidance)

    # ------------------------------------------------------------------
    # Channels
    # ------------------------------------------------------------------

    def _semantic(
        self, query: str, scope: Scope, limit: int, min_similarity: float, hybrid: bool
    ) -> list[SearchResult]:
        try:
            query_vec = self._embedder.embed(query)
        except Exception as exc:
            if not hybrid:
                raise
            logger.warning("query_embedding_failed", error=str(exc), fallback="lexical")
            return []

        results: list[SearchResult] = []
        for hit in self._repo.search_vec(scope, query_vec, self._embedder.model, limit=limit):
            similarity = distance_to_similarity(hit.distance)
            if similarity < min_similarity:
                continue
            chunk = hit.chunk
            results.append(
                SearchResult(
                    source_id=chunk.source_id,
                    source_name=hit.source_name,
                    kind=hit.source_kind,
                    text=chunk.text,
                    score=similarity,
                    match_type="semantic",
                    provenance=Provenance(
                        chunk_id=chunk.id,
                        chunk_index=chunk.chunk_index,
                        start_char=chunk.start_char,
                        end_char=chunk.end_char,
                        client_id=chunk.client_id,
                    ),
                )
            )
        results.sort(key=lambda r: r.score, reverse=True)
        return results[:limit]

    def _lexical(
        self, query: str, scope: Scope, exclude_ids: Iterable[str], limit: int
    ) -> list[SearchResult]:
        sources = self._repo.search_text(scope, query, exclude_source_ids=exclude_ids, limit=limit)
        return [self._lexical_result(source, query) for source in sources]

    def _lexical_result(self, source: Source, query: str) -> SearchResult:
        snippet, start, end = make_snippet(source.content or "", query)
        return SearchResult(
            source_id=source.id,
            source_name=source.name,
            kind=source.kind,
            text=snippet,
            score=self._config.lexical_score,
            match_type="lexical",
            provenance=Provenance(
                chunk_id=None,
                chunk_index=None,
                start_char=start,
                end_char=end,
                client_id=source.client_id,
            ),
        )


def build_context(results: list[SearchResult]) -> str:
    """Render search results as a context block for an AI prompt.

    Returns an empty string when there are no results.
    """
    if not results:
        return ""
    blocks = [f"[Source: {r.source_name} ({r.kind.value})]\n{r.text}" for r in results]
    return "## Relevant Context from Sources\n\n" + "\n\n---\n\n".join(blocks)
