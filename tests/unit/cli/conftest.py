"""CLI test environment: temp working directory, fake model providers."""

from __future__ import annotations

import pytest
from typer.testing import CliRunner

from fakes import FakeTextGen, KeywordEmbedder
from sourcekb.cli import runtime
from sourcekb.cli.main import app
from sourcekb.db.connection import Database
from sourcekb.db.repository import Repository


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Run commands in tmp_path with fake providers and no global config."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("sourcekb.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global.yaml")
    for name in ("SOURCEKB_DB", "SOURCEKB_OWNER", "SOURCEKB_EMBEDDING_MODEL", "SOURCEKB_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    (tmp_path / "sourcekb.yaml").write_text(
        "pipeline:\n  bulk_delay_seconds: 0\n", encoding="utf-8"
    )
    monkeypatch.setattr(runtime, "configure_logging", lambda *a, **kw: None)
    monkeypatch.setattr(runtime, "build_embedder", lambda cfg: KeywordEmbedder())
    monkeypatch.setattr(runtime, "build_textgen", lambda cfg: FakeTextGen())
    monkeypatch.setattr(runtime, "build_vision", lambda cfg: None)
    return tmp_path


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def invoke(runner, cli_env):
    def _invoke(*args, input=None):
        return runner.invoke(app, list(args), input=input)

    return _invoke


@pytest.fixture
def sources(cli_env):
    """Return the sources stored for an owner in the working-directory database."""

    def _sources(owner="local"):
        conn = Database(cli_env / ".sourcekb.db").connect()
        try:
            return Repository(conn).list_sources(owner)
        finally:
            conn.close()

    return _sources


@pytest.fixture
def ingest_note(invoke, sources):
    """Ingest inline text and return the stored source."""

    def _ingest(text, name, *extra):
        result = invoke("ingest", "--text", text, "--name", name, *extra)
        assert result.exit_code == 0, result.output
        return next(s for s in sources() if s.name == name)

    return _ingest
