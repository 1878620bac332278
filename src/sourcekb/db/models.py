"""Domain models for the knowledge-base database layer."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from sourcekb.errors import InvalidTransitionError


def new_id() -> str:
    return str(uuid.uuid4())


class SourceKind(str, Enum):
    DOCUMENT = "document"
    IMAGE = "image"
    WEBSITE = "website"
    REPO = "repo"
    EMAIL = "email"
    RECORDING = "recording"
    TRANSCRIPT = "transcript"
    NOTE = "note"


class SourceStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# Ordinary transitions. completed/failed -> processing is reprocess-only.
_TRANSITIONS: dict[SourceStatus, frozenset[SourceStatus]] = {
    SourceStatus.PENDING: frozenset({SourceStatus.PROCESSING}),
    SourceStatus.PROCESSING: frozenset(
        {SourceStatus.PROCESSING, SourceStatus.COMPLETED, SourceStatus.FAILED}
    ),
    SourceStatus.COMPLETED: frozenset(),
    SourceStatus.FAILED: frozenset(),
}

_REPROCESS_FROM: frozenset[SourceStatus] = frozenset(
    {SourceStatus.COMPLETED, SourceStatus.FAILED}
)


def check_transition(
    current: SourceStatus | str,
    target: SourceStatus | str,
    *,
    reprocess: bool = False,
    supersede: bool = False,
) -> None:
    """Raise InvalidTransitionError unless *current* -> *target* is allowed.

    Args:
        current: Status the source is in now.
        target: Requested status.
        reprocess: True for an explicit reprocess request, which additionally
            allows completed/failed -> processing.
        supersede: True for the final write of a pipeline run. An overlapping
            run may already have finished the source, so completed/failed ->
            completed/failed is allowed and the last run to finish wins.
    """
    cur = SourceStatus(current)
    tgt = SourceStatus(target)
    if tgt in _TRANSITIONS[cur]:
        return
    if reprocess and cur in _REPROCESS_FROM and tgt is SourceStatus.PROCESSING:
        return
    if supersede and cur in _REPROCESS_FROM and tgt in _REPROCESS_FROM:
        return
    raise InvalidTransitionError(cur.value, tgt.value)


@dataclass
class Source:
    owner_id: str
    kind: SourceKind
    name: str
    client_id: str | None = None
    origin: str | None = None
    file_type: str | None = None
    raw_content: bytes | None = None
    content: str | None = None
    summary: dict[str, Any] | None = None
    status: SourceStatus = SourceStatus.PENDING
    last_error: str | None = None
    exclude_from_rag: bool = False
    category: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=new_id)
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def is_personal(self) -> bool:
        """True for personal knowledge (not attached to any client)."""
        return self.client_id is None


@dataclass
class Chunk:
    source_id: str
    chunk_index: int
    start_char: int
    end_char: int
    text: str
    owner_id: str = ""
    client_id: str | None = None
    embedding: list[float] | None = None
    embedding_model: str | None = None
    id: str = field(default_factory=new_id)
    created_at: str | None = None

    @property
    def is_embedded(self) -> bool:
        return self.embedding is not None


@dataclass
class ScoredChunk:
    """A chunk returned by vector search, with its parent source's display fields."""

    chunk: Chunk
    source_name: str
    source_kind: SourceKind
    distance: float | None


@dataclass
class Insight:
    source_id: str
    owner_id: str
    field_name: str
    suggested_value: str
    confidence: float
    reasoning: str = ""
    client_id: str | None = None
    status: str = "pending"
    id: str = field(default_factory=new_id)
    created_at: str | None = None
