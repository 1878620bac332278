"""Fixed-window chunker with overlap, measured in characters.

Windows start every ``size - overlap`` characters and the loop stops at the
first window that reaches the end of the text, so the last window may be
short. Windows are not stripped: neighbours share exactly ``overlap``
characters and ``text[start:end]`` reproduces each window.
"""

from __future__ import annotations

from dataclasses import dataclass

from sourcekb.db.models import Chunk
from sourcekb.extract.base import is_marker

DEFAULT_SIZE = 1000
DEFAULT_OVERLAP = 200


@dataclass(frozen=True)
class TextWindow:
    index: int
    start: int
    end: int
    text: str


def chunk_text(text: str, size: int = DEFAULT_SIZE, overlap: int = DEFAULT_OVERLAP) -> list[TextWindow]:
    """Split *text* into overlapping windows.

    Args:
        text: Extracted source content.
        size: Window length in characters (>= 1).
        overlap: Characters shared by neighbouring windows, in ``[0, size)``.

    Returns:
        Windows in order. Empty, whitespace-only or marker content yields none.

    Raises:
        ValueError: If *size* or *overlap* is out of range.
    """
    if size < 1:
        raise ValueError("size must be >= 1")
    if not 0 <= overlap < size:
        raise ValueError(f"overlap must be in [0, {size})")
    if not text or not text.strip() or is_marker(text):
        return []

    step = size - overlap
    length = len(text)
    windows: list[TextWindow] = []
    start = 0
    while True:
        end = min(start + size, length)
        windows.append(TextWindow(index=len(windows), start=start, end=end, text=text[start:end]))
        if end >= length:
            break
        start += step
    return windows


def windows_to_chunks(source_id: str, windows: list[TextWindow]) -> list[Chunk]:
    """Convert windows into unsaved Chunk rows for *source_id*."""
    return [
        Chunk(
            source_id=source_id,
            chunk_index=w.index,
            start_char=w.start,
            end_char=w.end,
            text=w.text,
        )
        for w in windows
    ]
