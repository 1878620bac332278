"""Tests for the Repository: sources, status machine, chunks, search, insights."""

from __future__ import annotations

import pytest

from fakes import OWNER
from sourcekb.db.models import Chunk, Insight, Source, SourceKind, SourceStatus
from sourcekb.db.repository import Scope
from sourcekb.errors import (
    InvalidTransitionError,
    InvariantViolationError,
    SourceNotFoundError,
)


def _source(repo, name="doc.md", client_id="client-a", kind=SourceKind.DOCUMENT, **kw):
    return repo.add_source(Source(owner_id=kw.pop("owner_id", OWNER), kind=kind, name=name,
                                  client_id=client_id, **kw))


def _completed(repo, content, name="doc.md", **kw):
    source = _source(repo, name=name, status=SourceStatus.PROCESSING, **kw)
    repo.update_content(source.id, source.owner_id, content)
    repo.complete(source.id, source.owner_id)
    return repo.require_source(source.id, source.owner_id)


def _chunk(source_id, index=0, text="hello world", embedding=None, model="test/keywords"):
    return Chunk(
        source_id=source_id,
        chunk_index=index,
        start_char=index * 10,
        end_char=index * 10 + len(text),
        text=text,
        embedding=embedding,
        embedding_model=model if embedding is not None else None,
    )


# ------------------------------------------------------------------
# Sources
# ------------------------------------------------------------------

def test_add_and_get_source(repo):
    created = _source(repo, metadata={"file_name": "doc.md"}, raw_content=b"raw")
    fetched = repo.get_source(created.id, OWNER)
    assert fetched is not None
    assert fetched.name == "doc.md"
    assert fetched.kind is SourceKind.DOCUMENT
    assert fetched.status is SourceStatus.PENDING
    assert fetched.metadata == {"file_name": "doc.md"}
    assert fetched.raw_content == b"raw"
    assert fetched.created_at is not None


def test_get_source_other_owner_is_invisible(repo):
    created = _source(repo)
    assert repo.get_source(created.id, "someone-else") is None
    with pytest.raises(SourceNotFoundError):
        repo.require_source(created.id, "someone-else")


def test_add_source_rejects_completed(repo):
    with pytest.raises(InvariantViolationError):
        _source(repo, status=SourceStatus.COMPLETED, content="x")


def test_add_source_rejects_failed_without_error(repo):
    with pytest.raises(InvariantViolationError):
        _source(repo, status=SourceStatus.FAILED)


def test_list_sources_newest_first_and_filters(repo):
    first = _source(repo, name="a")
    second = _source(repo, name="b", client_id="client-b")
    third = _source(repo, name="c", status=SourceStatus.PROCESSING)

    assert [s.id for s in repo.list_sources(OWNER)] == [third.id, second.id, first.id]
    assert [s.id for s in repo.list_sources(OWNER, client_id="client-b")] == [second.id]
    assert [s.id for s in repo.list_sources(OWNER, status="processing")] == [third.id]
    assert repo.list_sources("nobody") == []


def test_update_content_keeps_status(repo):
    source = _source(repo, status=SourceStatus.PROCESSING)
    repo.update_content(source.id, OWNER, "text")
    stored = repo.require_source(source.id, OWNER)
    assert stored.content == "text"
    assert stored.status is SourceStatus.PROCESSING


def test_update_unknown_source_raises(repo):
    with pytest.raises(SourceNotFoundError):
        repo.update_content("missing", OWNER, "text")


# ------------------------------------------------------------------
# Status machine
# ------------------------------------------------------------------

def test_complete_requires_content(repo):
    source = _source(repo, status=SourceStatus.PROCESSING)
    with pytest.raises(InvariantViolationError):
        repo.complete(source.id, OWNER)


def test_complete_allowed_without_content_when_excluded(repo):
    source = _source(repo, status=SourceStatus.PROCESSING, exclude_from_rag=True)
    repo.complete(source.id, OWNER)
    assert repo.require_source(source.id, OWNER).status is SourceStatus.COMPLETED


def test_complete_from_pending_is_illegal(repo):
    source = _source(repo, content="x")
    with pytest.raises(InvalidTransitionError):
        repo.complete(source.id, OWNER)


def test_set_error_requires_message(repo):
    source = _source(repo, status=SourceStatus.PROCESSING)
    with pytest.raises(InvariantViolationError):
        repo.set_error(source.id, OWNER, "   ")


def test_set_error_records_message(repo):
    source = _source(repo, status=SourceStatus.PROCESSING)
    repo.set_error(source.id, OWNER, "boom")
    stored = repo.require_source(source.id, OWNER)
    assert stored.status is SourceStatus.FAILED
    assert stored.last_error == "boom"


def test_set_status_routes_failed_to_set_error(repo):
    source = _source(repo, status=SourceStatus.PROCESSING)
    with pytest.raises(InvariantViolationError):
        repo.set_status(source.id, OWNER, SourceStatus.FAILED)


def test_set_status_completed_checks_content(repo):
    source = _source(repo, status=SourceStatus.PROCESSING)
    with pytest.raises(InvariantViolationError):
        repo.set_status(source.id, OWNER, "completed")


def test_set_status_pending_to_processing(repo):
    source = _source(repo)
    repo.set_status(source.id, OWNER, SourceStatus.PROCESSING)
    assert repo.require_source(source.id, OWNER).status is SourceStatus.PROCESSING


def test_mark_processing_from_completed_needs_reprocess(repo):
    source = _completed(repo, "content")
    with pytest.raises(InvalidTransitionError):
        repo.mark_processing(source.id, OWNER)
    repo.mark_processing(source.id, OWNER, reprocess=True)
    assert repo.require_source(source.id, OWNER).status is SourceStatus.PROCESSING


def test_reprocess_clears_last_error(repo):
    source = _source(repo, status=SourceStatus.PROCESSING)
    repo.set_error(source.id, OWNER, "boom")
    repo.mark_processing(source.id, OWNER, reprocess=True)
    stored = repo.require_source(source.id, OWNER)
    assert stored.status is SourceStatus.PROCESSING
    assert stored.last_error is None


@pytest.mark.parametrize("first", ["completed", "failed"])
def test_finished_source_needs_supersede_to_finish_again(repo, first):
    source = _source(repo, status=SourceStatus.PROCESSING, content="first run")
    if first == "completed":
        repo.complete(source.id, OWNER)
    else:
        repo.set_error(source.id, OWNER, "first run failed")

    with pytest.raises(InvalidTransitionError):
        repo.complete(source.id, OWNER)
    with pytest.raises(InvalidTransitionError):
        repo.set_error(source.id, OWNER, "late failure")

    repo.complete(source.id, OWNER, supersede=True)
    stored = repo.require_source(source.id, OWNER)
    assert stored.status is SourceStatus.COMPLETED
    assert stored.last_error is None

    repo.set_error(source.id, OWNER, "late failure", supersede=True)
    assert repo.require_source(source.id, OWNER).last_error == "late failure"


# ------------------------------------------------------------------
# Metadata, summary, name, governance
# ------------------------------------------------------------------

def test_update_metadata_merges(repo):
    source = _source(repo, metadata={"file_name": "doc.md"})
    repo.update_metadata(source.id, OWNER, {"pages": 3})
    assert repo.require_source(source.id, OWNER).metadata == {"file_name": "doc.md", "pages": 3}


def test_update_summary_round_trip(repo):
    source = _source(repo)
    repo.update_summary(source.id, OWNER, {"whatItIs": "A plan", "keyInsights": ["a"]})
    assert repo.require_source(source.id, OWNER).summary["whatItIs"] == "A plan"


def test_update_name_rejects_blank(repo):
    source = _source(repo)
    with pytest.raises(ValueError):
        repo.update_name(source.id, OWNER, "  ")


def test_set_exclusion(repo):
    source = _source(repo)
    repo.set_exclusion(source.id, OWNER, True, category="confidential")
    stored = repo.require_source(source.id, OWNER)
    assert stored.exclude_from_rag is True
    assert stored.category == "confidential"


# ------------------------------------------------------------------
# Chunks
# ------------------------------------------------------------------

def test_replace_chunks_copies_owner_and_client(repo):
    source = _source(repo, client_id="client-a")
    written = repo.replace_chunks(source.id, OWNER, [_chunk(source.id, 0), _chunk(source.id, 1)])
    chunks = repo.list_chunks(source.id, OWNER)
    assert written == 2
    assert [c.chunk_index for c in chunks] == [0, 1]
    assert {c.client_id for c in chunks} == {"client-a"}
    assert {c.owner_id for c in chunks} == {OWNER}


def test_replace_chunks_replaces_previous_set(repo):
    source = _source(repo)
    repo.replace_chunks(source.id, OWNER, [_chunk(source.id, i) for i in range(3)])
    repo.replace_chunks(source.id, OWNER, [_chunk(source.id, 0, text="new")])
    chunks = repo.list_chunks(source.id, OWNER)
    assert len(chunks) == 1
    assert chunks[0].text == "new"


def test_replace_chunks_rolls_back_on_error(repo):
    source = _source(repo)
    repo.replace_chunks(source.id, OWNER, [_chunk(source.id, i) for i in range(2)])
    duplicate = _chunk(source.id, 5)
    with pytest.raises(Exception):
        repo.replace_chunks(source.id, OWNER, [duplicate, duplicate])
    assert len(repo.list_chunks(source.id, OWNER)) == 2


def test_chunk_embedding_round_trip(repo):
    source = _source(repo)
    repo.replace_chunks(source.id, OWNER, [_chunk(source.id, 0, embedding=[0.5, 0.25])])
    chunk = repo.list_chunks(source.id, OWNER)[0]
    assert chunk.embedding == [0.5, 0.25]
    assert chunk.embedding_model == "test/keywords"


def test_delete_source_cascades(repo, tmp_db):
    source = _source(repo)
    repo.replace_chunks(source.id, OWNER, [_chunk(source.id, 0)])
    repo.add_insight(Insight(source_id=source.id, owner_id=OWNER, field_name="offer",
                             suggested_value="x", confidence=0.9))
    assert repo.delete_source(source.id, OWNER) is True
    assert tmp_db.execute("SELECT COUNT(*) FROM chunks").fetchone()[0] == 0
    assert tmp_db.execute("SELECT COUNT(*) FROM insights").fetchone()[0] == 0
    assert repo.delete_source(source.id, OWNER) is False


def test_chunk_counts_by_scope(repo):
    a = _source(repo, client_id="client-a")
    b = _source(repo, client_id=None, kind=SourceKind.NOTE)
    repo.replace_chunks(a.id, OWNER, [_chunk(a.id, 0, embedding=[1.0]), _chunk(a.id, 1)])
    repo.replace_chunks(b.id, OWNER, [_chunk(b.id, 0, embedding=[1.0])])

    assert repo.count_chunks(Scope(OWNER)) == 3
    assert repo.count_embedded_chunks(Scope(OWNER)) == 2
    assert repo.count_chunks(Scope(OWNER, client_id="client-a")) == 2
    assert repo.count_chunks(Scope(OWNER, client_id="client-a", include_personal=True)) == 3
    assert repo.count_chunks(Scope(OWNER, kinds=(SourceKind.NOTE,))) == 1
    assert repo.count_embedded_chunks(Scope(OWNER), source_id=a.id) == 1


def test_count_sources_by(repo):
    _source(repo)
    _source(repo, status=SourceStatus.PROCESSING, kind=SourceKind.NOTE)
    assert repo.count_sources_by("status", Scope(OWNER)) == {"pending": 1, "processing": 1}
    assert repo.count_sources_by("kind", Scope(OWNER)) == {"document": 1, "note": 1}
    with pytest.raises(ValueError):
        repo.count_sources_by("name", Scope(OWNER))


# ------------------------------------------------------------------
# Search
# ------------------------------------------------------------------

def test_search_vec_orders_by_distance(repo):
    source = _source(repo)
    repo.replace_chunks(source.id, OWNER, [
        _chunk(source.id, 0, embedding=[0.0, 1.0]),
        _chunk(source.id, 1, embedding=[1.0, 0.0]),
        _chunk(source.id, 2),
    ])
    hits = repo.search_vec(Scope(OWNER), [1.0, 0.0], "test/keywords", limit=5)
    assert [h.chunk.chunk_index for h in hits] == [1, 0]
    assert hits[0].distance == pytest.approx(0.0, abs=1e-6)
    assert hits[0].source_name == "doc.md"


def test_search_vec_skips_other_models_and_excluded(repo):
    kept = _source(repo, name="kept")
    excluded = _source(repo, name="hidden", exclude_from_rag=True)
    repo.replace_chunks(kept.id, OWNER, [
        _chunk(kept.id, 0, embedding=[1.0, 0.0]),
        _chunk(kept.id, 1, embedding=[1.0, 0.0], model="other/model"),
    ])
    repo.replace_chunks(excluded.id, OWNER, [_chunk(excluded.id, 0, embedding=[1.0, 0.0])])

    hits = repo.search_vec(Scope(OWNER), [1.0, 0.0], "test/keywords")
    assert [(h.source_name, h.chunk.chunk_index) for h in hits] == [("kept", 0)]


def test_search_vec_skips_failed_sources(repo):
    kept = _source(repo, name="kept")
    failed = _source(repo, name="broken", status=SourceStatus.PROCESSING)
    for s in (kept, failed):
        repo.replace_chunks(s.id, OWNER, [_chunk(s.id, 0, embedding=[1.0, 0.0])])
    repo.set_error(failed.id, OWNER, "unreadable")

    hits = repo.search_vec(Scope(OWNER), [1.0, 0.0], "test/keywords")
    assert [h.source_name for h in hits] == ["kept"]


def test_count_searchable_chunks_matches_search_vec_filters(repo):
    kept = _source(repo, name="kept")
    excluded = _source(repo, name="hidden", exclude_from_rag=True)
    repo.replace_chunks(kept.id, OWNER, [
        _chunk(kept.id, 0, embedding=[1.0, 0.0]),
        _chunk(kept.id, 1, embedding=[1.0, 0.0], model="other/model"),
        _chunk(kept.id, 2),
    ])
    repo.replace_chunks(excluded.id, OWNER, [_chunk(excluded.id, 0, embedding=[1.0, 0.0])])

    assert repo.count_searchable_chunks(Scope(OWNER), "test/keywords") == 1
    assert repo.count_searchable_chunks(Scope(OWNER), "other/model") == 1
    assert repo.count_searchable_chunks(Scope(OWNER), "missing/model") == 0
    assert repo.count_embedded_chunks(Scope(OWNER)) == 3


def test_search_vec_respects_client_scope(repo):
    mine = _source(repo, client_id="client-a")
    theirs = _source(repo, client_id="client-b")
    for s in (mine, theirs):
        repo.replace_chunks(s.id, OWNER, [_chunk(s.id, 0, embedding=[1.0, 0.0])])
    hits = repo.search_vec(Scope(OWNER, client_id="client-a"), [1.0, 0.0], "test/keywords")
    assert [h.chunk.source_id for h in hits] == [mine.id]


def test_search_text_matches_content_and_name(repo):
    by_content = _completed(repo, "Our Pricing model", name="plan.md")
    by_name = _completed(repo, "unrelated", name="pricing-notes.md")
    hits = repo.search_text(Scope(OWNER), "PRICING")
    assert {s.id for s in hits} == {by_content.id, by_name.id}
    assert hits[0].id == by_name.id


def test_search_text_skips_failed_excluded_and_listed(repo):
    kept = _completed(repo, "pricing")
    hidden = _completed(repo, "pricing", exclude_from_rag=True)
    failed = _source(repo, status=SourceStatus.PROCESSING)
    repo.update_content(failed.id, OWNER, "[Error reading content: pricing.md]")
    repo.set_error(failed.id, OWNER, "unreadable")

    assert [s.id for s in repo.search_text(Scope(OWNER), "pricing")] == [kept.id]
    assert repo.search_text(Scope(OWNER), "pricing", exclude_source_ids=[kept.id]) == []
    assert hidden.exclude_from_rag


# ------------------------------------------------------------------
# Insights
# ------------------------------------------------------------------

def test_insights_add_list_and_delete_pending(repo):
    source = _source(repo)
    repo.add_insight(Insight(source_id=source.id, owner_id=OWNER, field_name="offer",
                             suggested_value="a", confidence=0.8, client_id="client-a"))
    repo.add_insight(Insight(source_id=source.id, owner_id=OWNER, field_name="niche",
                             suggested_value="b", confidence=0.7, status="accepted"))

    assert [i.field_name for i in repo.list_insights(OWNER, source_id=source.id)] == ["offer", "niche"]
    assert repo.delete_pending_insights(source.id, OWNER) == 1
    remaining = repo.list_insights(OWNER)
    assert [i.status for i in remaining] == ["accepted"]
