"""Tests for the vision-backed image extractor."""

from __future__ import annotations

import json

from fakes import FakeVision
from sourcekb.db.models import SourceKind
from sourcekb.extract.base import ExtractionRequest
from sourcekb.extract.image import ImageExtractor, format_image_analysis


def _request(file_type="jpg"):
    return ExtractionRequest(kind=SourceKind.IMAGE, name="board.jpg", file_type=file_type, raw=b"\xff\xd8")


_ANSWER = {
    "description": "A whiteboard with a sales funnel.",
    "textContent": ["Leads", "Deals"],
    "keyElements": ["Funnel diagram"],
    "suggestedLabels": ["sales", "funnel"],
}


def test_image_described_and_labels_in_metadata():
    vision = FakeVision(answer="```json\n" + json.dumps(_ANSWER) + "\n```")
    result = ImageExtractor(vision).extract(_request())
    assert result.ok
    assert vision.calls == ["image/jpeg"]
    assert result.text.startswith("[Image: board.jpg]\nDescription: A whiteboard with a sales funnel.")
    assert "Text Content:\nLeads\nDeals" in result.text
    assert "Key Elements:\n- Funnel diagram" in result.text
    assert "sales" not in result.text.split("Key Elements")[1]
    assert result.metadata == {"labels": ["sales", "funnel"]}


def test_unknown_image_type_defaults_to_png_mime():
    vision = FakeVision(answer=json.dumps({"description": "x"}))
    ImageExtractor(vision).extract(_request(file_type=None))
    assert vision.calls == ["image/png"]


def test_no_vision_model_is_unsupported():
    result = ImageExtractor(None).extract(_request())
    assert not result.ok
    assert result.text == "[Unsupported extraction: Image - no vision model configured]"


def test_vision_failure_is_error_marker():
    result = ImageExtractor(FakeVision(fail=True)).extract(_request())
    assert not result.ok
    assert result.text == "[Error extracting image content: vision model unavailable]"


def test_non_json_answer_is_error_marker():
    result = ImageExtractor(FakeVision(answer="I see a whiteboard")).extract(_request())
    assert not result.ok
    assert result.text.startswith("[Error extracting image content:")


def test_format_image_analysis_minimal():
    assert format_image_analysis("a.png", {}) == "[Image: a.png]\nDescription: Image content extracted"
