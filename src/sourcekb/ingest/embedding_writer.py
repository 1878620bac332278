"""Embedding writer — embed chunk windows and persist them atomically.

A failing batch call falls back to one call per chunk; a chunk whose own
call fails is stored with a null embedding and a warning. Embedding
problems therefore never fail the source: the chunk stays reachable through
lexical search and can be re-embedded by reprocessing.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import structlog

from sourcekb.db.models import Chunk, Source
from sourcekb.db.repository import Repository
from sourcekb.ingest.chunker import TextWindow, windows_to_chunks
from sourcekb.providers.base import EmbeddingProvider

logger = structlog.get_logger(logger_name=__name__)


@dataclass(frozen=True)
class WriteReport:
    total: int
    embedded: int
    failed: int


class EmbeddingWriter:
    """Write a source's chunks with embeddings from *provider*.

    Args:
        repo:       Open Repository instance.
        provider:   Embedding provider (its ``model`` is stored per chunk).
        batch_size: Texts per embedding call.
    """

    def __init__(self, repo: Repository, provider: EmbeddingProvider, batch_size: int = 100) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._repo = repo
        self._provider = provider
        self._batch_size = batch_size

    def write(self, source: Source, windows: list[TextWindow]) -> WriteReport:
        """Embed *windows* and replace the source's chunks with them."""
        chunks = windows_to_chunks(source.id, windows)
        for start in range(0, len(chunks), self._batch_size):
            self._embed_batch(source, chunks[start : start + self._batch_size])

        self._repo.replace_chunks(source.id, source.owner_id, chunks)

        embedded = sum(1 for c in chunks if c.is_embedded)
        report = WriteReport(total=len(chunks), embedded=embedded, failed=len(chunks) - embedded)
        logger.info(
            "chunks_written",
            source_id=source.id,
            total=report.total,
            embedded=report.embedded,
            failed=report.failed,
        )
        return report

    def _embed_batch(self, source: Source, batch: list[Chunk]) -> None:
        try:
            vectors = self._provider.embed_many([c.text for c in batch])
            if len(vectors) != len(batch):
                raise ValueError(f"expected {len(batch)} vectors, got {len(vectors)}")
        except Exception as exc:
            logger.warning(
                "embedding_batch_failed", source_id=source.id, size=len(batch), error=str(exc)
            )
            for chunk in batch:
                self._embed_one(source, chunk)
            return
        for chunk, vector in zip(batch, vectors):
            self._assign(chunk, vector)

    def _embed_one(self, source: Source, chunk: Chunk) -> None:
        try:
            self._assign(chunk, self._provider.embed(chunk.text))
        except Exception as exc:
            logger.warning(
                "chunk_embedding_failed",
                source_id=source.id,
                chunk_index=chunk.chunk_index,
                error=str(exc),
            )

    def _assign(self, chunk: Chunk, vector: list[float]) -> None:
        values = [float(v) for v in vector]
        if not values or not all(math.isfinite(v) for v in values):
            logger.warning("embedding_invalid", chunk_index=chunk.chunk_index, length=len(values))
            return
        chunk.embedding = values
        chunk.embedding_model = self._provider.model
