"""Embedding serialization for the chunks.embedding BLOB column.

Vectors are stored as packed little-endian float32, the format sqlite-vec's
scalar functions (vec_distance_cosine) read directly.
"""

from __future__ import annotations

import math
import struct
from collections.abc import Sequence

import sqlite_vec


def serialize(vector: Sequence[float]) -> bytes:
    """Pack *vector* into a float32 BLOB.

    Raises:
        ValueError: If the vector is empty or contains NaN/inf.
    """
    if not vector:
        raise ValueError("Cannot store an empty embedding vector.")
    if any(not math.isfinite(v) for v in vector):
        raise ValueError("Embedding vector contains non-finite values.")
    return sqlite_vec.serialize_float32(list(vector))


def deserialize(blob: bytes | None) -> list[float] | None:
    """Unpack a float32 BLOB back into a list, or None for a missing vector."""
    if blob is None:
        return None
    if len(blob) % 4:
        raise ValueError(f"Embedding BLOB length {len(blob)} is not a multiple of 4.")
    return list(struct.unpack(f"<{len(blob) // 4}f", blob))


def distance_to_similarity(distance: float | None) -> float:
    """Convert a cosine distance to a similarity clamped to [0, 1].

    A NULL distance (zero-magnitude vector) maps to 0.0.
    """
    if distance is None or math.isnan(distance):
        return 0.0
    return max(0.0, min(1.0, 1.0 - distance))
