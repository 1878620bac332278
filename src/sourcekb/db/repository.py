"""Repository pattern for all knowledge-base database operations.

Single interface for: sources (and their status machine), chunks with their
embeddings, vector and substring search, insights. Every lookup is scoped to
an owner; a source id from another owner behaves as if it did not exist.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from sourcekb.db import vectors
from sourcekb.db.models import (
    Chunk,
    Insight,
    ScoredChunk,
    Source,
    SourceKind,
    SourceStatus,
    check_transition,
)
from sourcekb.errors import InvariantViolationError, SourceNotFoundError

_SOURCE_COLUMNS = (
    "id, owner_id, client_id, kind, name, origin, file_type, raw_content, content, "
    "summary, status, last_error, exclude_from_rag, category, metadata, created_at, updated_at"
)

_CHUNK_COLUMNS = (
    "c.id, c.source_id, c.owner_id, c.client_id, c.chunk_index, c.start_char, c.end_char, "
    "c.text, c.embedding, c.embedding_model, c.created_at"
)

_NOW = "strftime('%Y-%m-%dT%H:%M:%fZ', 'now')"

# Chunks vector search may compare; the single placeholder is the embedding model.
_VEC_SEARCHABLE = (
    "s.exclude_from_rag = 0 AND s.status != 'failed'"
    " AND c.embedding IS NOT NULL AND c.embedding_model = ?"
)


@dataclass(frozen=True)
class Scope:
    """Which sources a read may see.

    Attributes:
        owner_id: Always required.
        client_id: Restrict to one client; None means every source of the owner.
        include_personal: With a client_id, also include personal knowledge
            (sources with no client).
        kinds: Restrict to these source kinds; None or empty means all kinds.
    """

    owner_id: str
    client_id: str | None = None
    include_personal: bool = False
    kinds: tuple[SourceKind, ...] | None = None

    def where(self, alias: str = "s") -> tuple[str, list[object]]:
        """Return a SQL boolean expression and its parameters for this scope."""
        clauses = [f"{alias}.owner_id = ?"]
        params: list[object] = [self.owner_id]
        if self.client_id is not None:
            if self.include_personal:
                clauses.append(f"({alias}.client_id = ? OR {alias}.client_id IS NULL)")
            else:
                clauses.append(f"{alias}.client_id = ?")
            params.append(self.client_id)
        if self.kinds:
            placeholders = ",".join("?" * len(self.kinds))
            clauses.append(f"{alias}.kind IN ({placeholders})")
            params.extend(SourceKind(k).value for k in self.kinds)
        return " AND ".join(clauses), params


class Repository:
    """Data access layer for all knowledge-base entities.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    and must be closed after use; it must not be shared across threads.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised (see sourcekb.db.schema.initialize).
        """
        self._conn = conn

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def add_source(self, source: Source) -> Source:
        """Insert a new source record and return it as stored (with timestamps)."""
        if source.status is SourceStatus.COMPLETED:
            raise InvariantViolationError("A source cannot be created as completed.")
        if source.status is SourceStatus.FAILED and not source.last_error:
            raise InvariantViolationError("A failed source must carry an error message.")
        self._conn.execute(
            """
            INSERT INTO sources (id, owner_id, client_id, kind, name, origin, file_type,
                                 raw_content, content, status, last_error,
                                 exclude_from_rag, category, metadata)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                source.id,
                source.owner_id,
                source.client_id,
                SourceKind(source.kind).value,
                source.name,
                source.origin,
                source.file_type,
                source.raw_content,
                source.content,
                SourceStatus(source.status).value,
                source.last_error,
                int(source.exclude_from_rag),
                source.category,
                json.dumps(source.metadata or {}),
            ),
        )
        self._conn.commit()
        return self.require_source(source.id, source.owner_id)

    def get_source(self, source_id: str, owner_id: str) -> Source | None:
        """Return a source by ID for *owner_id*, or None if not found."""
        row = self._conn.execute(
            f"SELECT {_SOURCE_COLUMNS} FROM sources WHERE id = ? AND owner_id = ?",
            (source_id, owner_id),
        ).fetchone()
        return _row_to_source(row) if row else None

    def require_source(self, source_id: str, owner_id: str) -> Source:
        """Like get_source() but raises SourceNotFoundError when missing."""
        source = self.get_source(source_id, owner_id)
        if source is None:
            raise SourceNotFoundError(source_id, owner_id)
        return source

    def list_sources(
        self,
        owner_id: str,
        client_id: str | None = None,
        status: SourceStatus | str | None = None,
    ) -> list[Source]:
        """Return the owner's sources, newest first, optionally filtered."""
        sql = f"SELECT {_SOURCE_COLUMNS} FROM sources WHERE owner_id = ?"
        params: list[object] = [owner_id]
        if client_id is not None:
            sql += " AND client_id = ?"
            params.append(client_id)
        if status is not None:
            sql += " AND status = ?"
            params.append(SourceStatus(status).value)
        sql += " ORDER BY created_at DESC, rowid DESC"
        return [_row_to_source(r) for r in self._conn.execute(sql, params).fetchall()]

    def update_content(self, source_id: str, owner_id: str, content: str) -> None:
        """Store extracted text. Status is left untouched."""
        self._update(source_id, owner_id, "content = ?", (content,))

    def set_status(self, source_id: str, owner_id: str, status: SourceStatus | str) -> None:
        """Move a source to *status*, validated against the status machine.

        completed and failed have their own guarded entry points, complete()
        and set_error(); this method routes to them so their invariants hold.
        """
        target = SourceStatus(status)
        if target is SourceStatus.COMPLETED:
            self.complete(source_id, owner_id)
            return
        if target is SourceStatus.FAILED:
            raise InvariantViolationError("Use set_error() to fail a source with a message.")
        current = self.require_source(source_id, owner_id).status
        check_transition(current, target)
        self._update(source_id, owner_id, "status = ?", (target.value,))

    def mark_processing(self, source_id: str, owner_id: str, *, reprocess: bool = False) -> None:
        """Move a source to processing; *reprocess* also allows completed/failed."""
        current = self.require_source(source_id, owner_id).status
        check_transition(current, SourceStatus.PROCESSING, reprocess=reprocess)
        self._update(
            source_id,
            owner_id,
            "status = ?, last_error = NULL",
            (SourceStatus.PROCESSING.value,),
        )

    def complete(self, source_id: str, owner_id: str, *, supersede: bool = False) -> None:
        """Mark a source completed.

        *supersede* lets a run overwrite a status an overlapping run already
        finished with (last writer wins).

        Raises:
            InvariantViolationError: If the source has no content and is not
                excluded from retrieval.
        """
        source = self.require_source(source_id, owner_id)
        check_transition(source.status, SourceStatus.COMPLETED, supersede=supersede)
        if source.content is None and not source.exclude_from_rag:
            raise InvariantViolationError(
                f"Source '{source_id}' cannot complete without content."
            )
        self._update(
            source_id,
            owner_id,
            "status = ?, last_error = NULL",
            (SourceStatus.COMPLETED.value,),
        )

    def set_error(
        self, source_id: str, owner_id: str, message: str, *, supersede: bool = False
    ) -> None:
        """Mark a source failed with *message* (must be non-empty).

        *supersede* has the same meaning as for complete().
        """
        if not message or not message.strip():
            raise InvariantViolationError("A failed source must carry an error message.")
        current = self.require_source(source_id, owner_id).status
        check_transition(current, SourceStatus.FAILED, supersede=supersede)
        self._update(
            source_id,
            owner_id,
            "status = ?, last_error = ?",
            (SourceStatus.FAILED.value, message),
        )

    def update_summary(self, source_id: str, owner_id: str, summary: dict) -> None:
        self._update(source_id, owner_id, "summary = ?", (json.dumps(summary),))

    def update_name(self, source_id: str, owner_id: str, name: str) -> None:
        if not name.strip():
            raise ValueError("Source name must not be empty.")
        self._update(source_id, owner_id, "name = ?", (name,))

    def update_metadata(self, source_id: str, owner_id: str, metadata: dict) -> None:
        """Merge *metadata* into the stored metadata object (shallow)."""
        current = self.require_source(source_id, owner_id).metadata
        merged = {**current, **metadata}
        self._update(source_id, owner_id, "metadata = ?", (json.dumps(merged),))

    def set_exclusion(
        self, source_id: str, owner_id: str, exclude: bool, category: str | None = None
    ) -> None:
        """Set the governance flag that hides a source from retrieval."""
        self._update(
            source_id,
            owner_id,
            "exclude_from_rag = ?, category = ?",
            (int(exclude), category),
        )

    def delete_source(self, source_id: str, owner_id: str) -> bool:
        """Delete a source; chunks and insights cascade. Returns False if missing."""
        cur = self._conn.execute(
            "DELETE FROM sources WHERE id = ? AND owner_id = ?", (source_id, owner_id)
        )
        self._conn.commit()
        return cur.rowcount > 0

    def count_sources_by(self, column: str, scope: Scope) -> dict[str, int]:
        """Return {value: count} grouping the scope's sources by status or kind."""
        if column not in ("status", "kind"):
            raise ValueError(f"Cannot group sources by '{column}'.")
        where, params = scope.where()
        rows = self._conn.execute(
            f"SELECT s.{column} AS k, COUNT(*) AS n FROM sources s WHERE {where} GROUP BY s.{column}",
            params,
        ).fetchall()
        return {r["k"]: r["n"] for r in rows}

    def _update(
        self, source_id: str, owner_id: str, assignments: str, params: Sequence[object]
    ) -> None:
        cur = self._conn.execute(
            f"UPDATE sources SET {assignments}, updated_at = {_NOW} WHERE id = ? AND owner_id = ?",
            (*params, source_id, owner_id),
        )
        self._conn.commit()
        if cur.rowcount == 0:
            raise SourceNotFoundError(source_id, owner_id)

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def replace_chunks(self, source_id: str, owner_id: str, chunks: Iterable[Chunk]) -> int:
        """Atomically replace every chunk of a source. Returns the number written.

        Old and new chunk sets are never visible together: the delete and the
        inserts commit as one transaction. owner_id/client_id are copied from
        the parent source.
        """
        source = self.require_source(source_id, owner_id)
        written = 0
        with self._conn:
            self._conn.execute("DELETE FROM chunks WHERE source_id = ?", (source_id,))
            for chunk in chunks:
                self._conn.execute(
                    """
                    INSERT INTO chunks (id, source_id, owner_id, client_id, chunk_index,
                                        start_char, end_char, text, embedding, embedding_model)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        chunk.id,
                        source_id,
                        source.owner_id,
                        source.client_id,
                        chunk.chunk_index,
                        chunk.start_char,
                        chunk.end_char,
                        chunk.text,
                        vectors.serialize(chunk.embedding) if chunk.embedding is not None else None,
                        chunk.embedding_model if chunk.embedding is not None else None,
                    ),
                )
                written += 1
        return written

    def list_chunks(self, source_id: str, owner_id: str) -> list[Chunk]:
        """Return a source's chunks in index order."""
        rows = self._conn.execute(
            f"""
            SELECT {_CHUNK_COLUMNS} FROM chunks c
            WHERE c.source_id = ? AND c.owner_id = ?
            ORDER BY c.chunk_index
            """,
            (source_id, owner_id),
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def count_chunks(self, scope: Scope, source_id: str | None = None) -> int:
        """Return the number of chunks in *scope* (optionally one source only)."""
        return self._count_chunks(scope, source_id, embedded_only=False)

    def count_embedded_chunks(self, scope: Scope, source_id: str | None = None) -> int:
        """Return the number of chunks in *scope* that carry an embedding."""
        return self._count_chunks(scope, source_id, embedded_only=True)

    def count_searchable_chunks(self, scope: Scope, embedding_model: str) -> int:
        """Return the number of chunks search_vec() would compare for *embedding_model*."""
        where, params = scope.where("s")
        sql = f"""
            SELECT COUNT(*) FROM chunks c JOIN sources s ON s.id = c.source_id
            WHERE {where} AND {_VEC_SEARCHABLE}
        """
        return self._conn.execute(sql, (*params, embedding_model)).fetchone()[0]

    def _count_chunks(self, scope: Scope, source_id: str | None, embedded_only: bool) -> int:
        where, params = scope.where("s")
        sql = f"SELECT COUNT(*) FROM chunks c JOIN sources s ON s.id = c.source_id WHERE {where}"
        if source_id is not None:
            sql += " AND c.source_id = ?"
            params.append(source_id)
        if embedded_only:
            sql += " AND c.embedding IS NOT NULL"
        return self._conn.execute(sql, params).fetchone()[0]

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search_vec(
        self,
        scope: Scope,
        embedding: Sequence[float],
        embedding_model: str,
        limit: int = 10,
    ) -> list[ScoredChunk]:
        """Rank embedded chunks in *scope* by cosine distance to *embedding*.

        Only chunks embedded with *embedding_model* are compared; chunks with
        a null embedding, failed sources and sources excluded from retrieval
        are skipped.

        Returns:
            ScoredChunk list sorted nearest-first, at most *limit* entries.
        """
        where, params = scope.where("s")
        rows = self._conn.execute(
            f"""
            SELECT {_CHUNK_COLUMNS}, s.name AS source_name, s.kind AS source_kind,
                   vec_distance_cosine(c.embedding, ?) AS distance
            FROM chunks c
            JOIN sources s ON s.id = c.source_id
            WHERE {where} AND {_VEC_SEARCHABLE}
            ORDER BY distance IS NULL, distance ASC, c.chunk_index ASC
            LIMIT ?
            """,
            (vectors.serialize(embedding), *params, embedding_model, limit),
        ).fetchall()
        return [
            ScoredChunk(
                chunk=_row_to_chunk(r),
                source_name=r["source_name"],
                source_kind=SourceKind(r["source_kind"]),
                distance=r["distance"],
            )
            for r in rows
        ]

    def search_text(
        self,
        scope: Scope,
        query: str,
        exclude_source_ids: Iterable[str] = (),
        limit: int = 10,
    ) -> list[Source]:
        """Case-insensitive substring match over source content and name.

        Skips excluded-from-retrieval and failed sources. Newest first.
        """
        where, params = scope.where("s")
        sql = f"""
            SELECT {", ".join("s." + c.strip() for c in _SOURCE_COLUMNS.split(","))}
            FROM sources s
            WHERE {where}
              AND s.exclude_from_rag = 0
              AND s.status != 'failed'
              AND s.content IS NOT NULL
              AND (instr(lower(s.content), lower(?)) > 0 OR instr(lower(s.name), lower(?)) > 0)
        """
        params.extend([query, query])
        excluded = list(exclude_source_ids)
        if excluded:
            sql += f" AND s.id NOT IN ({','.join('?' * len(excluded))})"
            params.extend(excluded)
        sql += " ORDER BY s.created_at DESC, s.rowid DESC LIMIT ?"
        params.append(limit)
        return [_row_to_source(r) for r in self._conn.execute(sql, params).fetchall()]

    # ------------------------------------------------------------------
    # Insights
    # ------------------------------------------------------------------

    def add_insight(self, insight: Insight) -> None:
        self._conn.execute(
            """
            INSERT INTO insights (id, source_id, owner_id, client_id, field_name,
                                  suggested_value, reasoning, confidence, status)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                insight.id,
                insight.source_id,
                insight.owner_id,
                insight.client_id,
                insight.field_name,
                insight.suggested_value,
                insight.reasoning,
                insight.confidence,
                insight.status,
            ),
        )
        self._conn.commit()

    def delete_pending_insights(self, source_id: str, owner_id: str) -> int:
        """Drop a source's undecided insights (before they are regenerated)."""
        cur = self._conn.execute(
            "DELETE FROM insights WHERE source_id = ? AND owner_id = ? AND status = 'pending'",
            (source_id, owner_id),
        )
        self._conn.commit()
        return cur.rowcount

    def list_insights(self, owner_id: str, source_id: str | None = None) -> list[Insight]:
        """Return the owner's insights (optionally for one source), oldest first."""
        sql = """
            SELECT id, source_id, owner_id, client_id, field_name, suggested_value,
                   reasoning, confidence, status, created_at
            FROM insights WHERE owner_id = ?
        """
        params: list[object] = [owner_id]
        if source_id is not None:
            sql += " AND source_id = ?"
            params.append(source_id)
        sql += " ORDER BY created_at, rowid"
        return [_row_to_insight(r) for r in self._conn.execute(sql, params).fetchall()]


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------

def _row_to_source(row: sqlite3.Row) -> Source:
    return Source(
        id=row["id"],
        owner_id=row["owner_id"],
        client_id=row["client_id"],
        kind=SourceKind(row["kind"]),
        name=row["name"],
        origin=row["origin"],
        file_type=row["file_type"],
        raw_content=row["raw_content"],
        content=row["content"],
        summary=json.loads(row["summary"]) if row["summary"] else None,
        status=SourceStatus(row["status"]),
        last_error=row["last_error"],
        exclude_from_rag=bool(row["exclude_from_rag"]),
        category=row["category"],
        metadata=json.loads(row["metadata"] or "{}"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        id=row["id"],
        source_id=row["source_id"],
        owner_id=row["owner_id"],
        client_id=row["client_id"],
        chunk_index=row["chunk_index"],
        start_char=row["start_char"],
        end_char=row["end_char"],
        text=row["text"],
        embedding=vectors.deserialize(row["embedding"]),
        embedding_model=row["embedding_model"],
        created_at=row["created_at"],
    )


def _row_to_insight(row: sqlite3.Row) -> Insight:
    return Insight(
        id=row["id"],
        source_id=row["source_id"],
        owner_id=row["owner_id"],
        client_id=row["client_id"],
        field_name=row["field_name"],
        suggested_value=row["suggested_value"],
        reasoning=row["reasoning"],
        confidence=row["confidence"],
        status=row["status"],
        created_at=row["created_at"],
    )
