"""Extraction contract shared by every content extractor.

An extractor never raises for bad input: it returns ``ExtractionResult``
with ``ok=False`` and a bracketed marker as ``text``. The marker is what gets
stored in the content column, so older rows and downstream stages can still
recognise a failed extraction with :func:`is_marker`.
"""

from __future__ import annotations

import urllib.parse
import urllib.request
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sourcekb.db.models import SourceKind

if TYPE_CHECKING:
    from sourcekb.extract.fetch import HttpFetcher

MARKER_PREFIXES: tuple[str, ...] = ("[Error", "[Unsupported")


def is_marker(text: str | None) -> bool:
    """True when *text* is a failed-extraction marker (or nothing at all)."""
    if text is None:
        return True
    return text.lstrip().startswith(MARKER_PREFIXES)


@dataclass(frozen=True)
class ExtractionRequest:
    """Everything an extractor may need to turn a source into text.

    Attributes:
        kind: Source kind used for registry dispatch.
        name: Display / file name (used in markers and prompts).
        origin: Local path, ``file://`` URL or http(s) URL; None for inline payloads.
        file_type: Lower-case extension without the dot (``pdf``, ``docx``).
        raw: Inline payload bytes; takes precedence over *origin*.
        client_name: Optional client context passed to model prompts.
    """

    kind: SourceKind
    name: str
    origin: str | None = None
    file_type: str | None = None
    raw: bytes | None = None
    client_name: str | None = None


@dataclass(frozen=True)
class ExtractionResult:
    """Tagged extraction outcome.

    ``ok=True``: *text* is the extracted content.
    ``ok=False``: *text* is a marker string and *reason* says what went wrong.
    """

    ok: bool
    text: str
    reason: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, text: str, metadata: dict[str, Any] | None = None) -> ExtractionResult:
        return cls(ok=True, text=text, metadata=metadata or {})

    @classmethod
    def failure(
        cls, marker: str, reason: str, metadata: dict[str, Any] | None = None
    ) -> ExtractionResult:
        if not is_marker(marker):
            raise ValueError(f"Failure text must be a marker, got {marker[:40]!r}")
        return cls(ok=False, text=marker, reason=reason, metadata=metadata or {})


class Extractor(ABC):
    """Abstract base for all extractors.

    Args:
        fetcher: Guarded HTTP fetcher used when the payload lives at a URL.
    """

    def __init__(self, fetcher: HttpFetcher | None = None) -> None:
        self._fetcher = fetcher

    @abstractmethod
    def extract(self, request: ExtractionRequest) -> ExtractionResult:
        """Turn *request* into text. Must not raise for bad input."""

    def load_raw(self, request: ExtractionRequest) -> bytes:
        """Return the payload bytes from ``request.raw`` or ``request.origin``.

        Raises:
            ValueError: If neither is available.
            OSError / FetchError / SsrfError: If reading the origin fails.
        """
        if request.raw is not None:
            return request.raw
        if not request.origin:
            raise ValueError(f"Source '{request.name}' has neither inline content nor an origin.")

        parsed = urllib.parse.urlparse(request.origin)
        if parsed.scheme in ("http", "https"):
            if self._fetcher is None:
                raise ValueError(f"No HTTP fetcher configured to load '{request.origin}'.")
            return self._fetcher.fetch(request.origin).body
        if parsed.scheme == "file":
            return Path(urllib.request.url2pathname(parsed.path)).read_bytes()
        return Path(request.origin).read_bytes()


def decode_text(data: bytes) -> str:
    """UTF-8 decode (BOM tolerant, replacement on bad bytes) with normalised newlines."""
    text = data.decode("utf-8-sig", errors="replace")
    return text.replace("\r\n", "\n").replace("\r", "\n")
