"""Exception taxonomy shared across the ingestion and retrieval layers.

Extraction failures are deliberately absent: they travel as
``ExtractionResult(ok=False)`` values, not exceptions (see sourcekb.extract.base).
"""

from __future__ import annotations


class SourceNotFoundError(LookupError):
    """Raised when a source id does not exist for the given owner."""

    def __init__(self, source_id: str, owner_id: str) -> None:
        super().__init__(f"Source '{source_id}' not found for owner '{owner_id}'.")
        self.source_id = source_id
        self.owner_id = owner_id


class InvalidTransitionError(ValueError):
    """Raised when a status change is not allowed by the source status machine."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Illegal status transition: {current} -> {target}")
        self.current = current
        self.target = target


class InvariantViolationError(ValueError):
    """Raised when a write would leave a source in an inconsistent state."""


class EmptyQueryError(ValueError):
    """Raised when a retrieval query is empty or whitespace-only."""


class ProviderError(RuntimeError):
    """Raised when an embedding / vision / text-generation call fails."""


class PipelineFailure(RuntimeError):
    """Unexpected exception during the mandatory extraction stage of a run."""

    def __init__(self, source_id: str, cause: BaseException) -> None:
        super().__init__(f"Processing failed for source '{source_id}': {cause}")
        self.source_id = source_id
        self.cause = cause
