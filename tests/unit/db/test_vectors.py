"""Tests for embedding BLOB serialization and distance conversion."""

from __future__ import annotations

import math

import pytest

from sourcekb.db.vectors import deserialize, distance_to_similarity, serialize


def test_serialize_packs_float32():
    blob = serialize([1.0, 0.5, -2.0])
    assert len(blob) == 12
    assert deserialize(blob) == [1.0, 0.5, -2.0]


def test_serialize_rejects_empty():
    with pytest.raises(ValueError, match="empty"):
        serialize([])


@pytest.mark.parametrize("bad", [math.nan, math.inf, -math.inf])
def test_serialize_rejects_non_finite(bad):
    with pytest.raises(ValueError, match="non-finite"):
        serialize([0.1, bad])


def test_deserialize_none():
    assert deserialize(None) is None


def test_deserialize_rejects_truncated_blob():
    with pytest.raises(ValueError):
        deserialize(b"\x00\x00\x80")


@pytest.mark.parametrize("distance,expected", [
    (0.0, 1.0),
    (0.25, 0.75),
    (1.0, 0.0),
    (1.7, 0.0),
    (-0.000001, 1.0),
    (None, 0.0),
    (math.nan, 0.0),
])
def test_distance_to_similarity(distance, expected):
    assert distance_to_similarity(distance) == pytest.approx(expected)


def test_cosine_distance_in_sqlite(tmp_db):
    row = tmp_db.execute(
        "SELECT vec_distance_cosine(?, ?)",
        (serialize([1.0, 0.0]), serialize([1.0, 0.0])),
    ).fetchone()
    assert row[0] == pytest.approx(0.0, abs=1e-6)
