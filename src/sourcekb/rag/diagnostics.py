"""Knowledge-base diagnostics: why is a source (not) showing up in search?

Reports source counts by status and kind, chunk and embedding totals, and a
per-source breakdown so that e.g. a completed source with zero embedded
chunks stands out.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sourcekb.db.models import SourceStatus
from sourcekb.db.repository import Repository, Scope


@dataclass(frozen=True)
class SourceDiagnostics:
    source_id: str
    name: str
    kind: str
    status: str
    error: str | None
    content_length: int
    chunks: int
    embedded_chunks: int
    excluded: bool

    @property
    def searchable(self) -> bool:
        """True when the source can surface through semantic search."""
        return self.embedded_chunks > 0 and not self.excluded

    @property
    def needs_attention(self) -> bool:
        """Failed, or completed with content that is not (fully) embedded."""
        if self.status == SourceStatus.FAILED.value:
            return True
        if self.status != SourceStatus.COMPLETED.value or self.excluded or not self.content_length:
            return False
        return self.chunks == 0 or self.embedded_chunks < self.chunks


@dataclass
class Diagnostics:
    by_status: dict[str, int] = field(default_factory=dict)
    by_kind: dict[str, int] = field(default_factory=dict)
    total_chunks: int = 0
    embedded_chunks: int = 0
    sources: list[SourceDiagnostics] = field(default_factory=list)

    @property
    def total_sources(self) -> int:
        return sum(self.by_status.values())


def diagnose(repo: Repository, owner_id: str, client_id: str | None = None) -> Diagnostics:
    """Collect diagnostics for the owner's sources (optionally one client)."""
    scope = Scope(owner_id=owner_id, client_id=client_id)
    report = Diagnostics(
        by_status=repo.count_sources_by("status", scope),
        by_kind=repo.count_sources_by("kind", scope),
        total_chunks=repo.count_chunks(scope),
        embedded_chunks=repo.count_embedded_chunks(scope),
    )
    for source in repo.list_sources(owner_id, client_id=client_id):
        report.sources.append(
            SourceDiagnostics(
                source_id=source.id,
                name=source.name,
                kind=source.kind.value,
                status=source.status.value,
                error=source.last_error,
                content_length=len(source.content or ""),
                chunks=repo.count_chunks(scope, source_id=source.id),
                embedded_chunks=repo.count_embedded_chunks(scope, source_id=source.id),
                excluded=source.exclude_from_rag,
            )
        )
    return report
