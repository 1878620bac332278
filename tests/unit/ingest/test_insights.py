"""Tests for the positioning-insight generator."""

from __future__ import annotations

import pytest

from fakes import OWNER, FakeTextGen
from sourcekb.db.models import Source, SourceKind
from sourcekb.errors import ProviderError
from sourcekb.ingest.insights import InsightGenerator


def _suggestion(field="offer", confidence=0.9, value="Workshops"):
    return {"fieldName": field, "suggestedValue": value, "reasoning": "because", "confidence": confidence}


def test_filters_unknown_fields_and_low_confidence():
    textgen = FakeTextGen(insights=[
        _suggestion("offer", 0.9),
        _suggestion("favouriteColour", 0.95),
        _suggestion("niche", 0.5),
        _suggestion("ourWedge", 0.6),
        _suggestion("whatWeDo", 0.8, value=""),
        "not an object",
    ])
    accepted = InsightGenerator(textgen).suggest("content", "doc")
    assert [(s.field_name, s.confidence) for s in accepted] == [("offer", 0.9), ("ourWedge", 0.6)]


def test_at_most_three_suggestions():
    textgen = FakeTextGen(insights=[_suggestion(f) for f in ("niche", "offer", "whoWeAre", "whatWeDo")])
    assert len(InsightGenerator(textgen).suggest("content", "doc")) == 3


def test_non_list_answer_gives_nothing():
    assert InsightGenerator(FakeTextGen(insights={"fieldName": "offer"})).suggest("c", "d") == []


def test_confidence_capped_at_one():
    accepted = InsightGenerator(FakeTextGen(insights=[_suggestion(confidence=1.4)])).suggest("c", "d")
    assert accepted[0].confidence == 1.0


def test_failure_propagates():
    with pytest.raises(ProviderError):
        InsightGenerator(FakeTextGen(fail=["insights"])).suggest("c", "d")


def test_to_insights_copies_scope():
    source = Source(owner_id=OWNER, kind=SourceKind.DOCUMENT, name="n", client_id="client-a")
    suggestions = InsightGenerator(FakeTextGen()).suggest("c", "n")
    insights = InsightGenerator.to_insights(source, suggestions)
    assert len(insights) == 1
    assert insights[0].source_id == source.id
    assert insights[0].client_id == "client-a"
    assert insights[0].status == "pending"
    assert insights[0].suggested_value == "Quarterly pricing workshops"
