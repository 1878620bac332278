"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from fakes import KeywordEmbedder
from sourcekb.db.connection import Database
from sourcekb.db.repository import Repository
from sourcekb.db.schema import initialize


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / ".sourcekb.db"


@pytest.fixture
def tmp_db(db_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    conn = Database(db_path).connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def repo(tmp_db):
    return Repository(tmp_db)


@pytest.fixture
def embedder():
    return KeywordEmbedder()
