"""Tests for the extraction contract and the text-like extractors."""

from __future__ import annotations

import pytest

from fakes import FakeFetcher
from sourcekb.db.models import SourceKind
from sourcekb.extract.base import ExtractionRequest, ExtractionResult, decode_text, is_marker
from sourcekb.extract.text import (
    CsvExtractor,
    FallbackExtractor,
    JsonExtractor,
    TextExtractor,
    normalize_text,
)
from sourcekb.extract.web import HtmlExtractor


def _request(raw=None, name="notes.txt", file_type="txt", origin=None):
    return ExtractionRequest(
        kind=SourceKind.DOCUMENT, name=name, file_type=file_type, raw=raw, origin=origin
    )


# --- markers and results ---

@pytest.mark.parametrize("text,expected", [
    ("[Error reading content: a.txt]", True),
    ("  [Unsupported file type: .bin]", True),
    (None, True),
    ("Regular [Error in brackets] text", False),
    ("", False),
])
def test_is_marker(text, expected):
    assert is_marker(text) is expected


def test_failure_requires_marker_text():
    with pytest.raises(ValueError):
        ExtractionResult.failure("plain text", "reason")


def test_success_defaults_metadata():
    result = ExtractionResult.success("hello")
    assert result.ok and result.metadata == {} and result.reason is None


def test_decode_text_strips_bom_and_normalises_newlines():
    assert decode_text("\ufeffa\r\nb\rc".encode("utf-8")) == "a\nb\nc"


def test_normalize_text_collapses_blank_runs():
    assert normalize_text("  a\r\n\r\n\r\n\r\nb  ") == "a\n\nb"


# --- loading ---

def test_load_raw_prefers_inline_bytes(tmp_path):
    path = tmp_path / "ignored.txt"
    path.write_text("from disk")
    result = TextExtractor().extract(_request(raw=b"inline", origin=str(path)))
    assert result.text == "inline"


def test_load_raw_from_local_path(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("from disk", encoding="utf-8")
    assert TextExtractor().extract(_request(origin=str(path))).text == "from disk"


def test_load_raw_from_file_url(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("via url", encoding="utf-8")
    assert TextExtractor().extract(_request(origin=path.as_uri())).text == "via url"


def test_load_raw_from_http_uses_fetcher():
    fetcher = FakeFetcher({"https://example.com/a.txt": ("text/plain", "remote text")})
    result = TextExtractor(fetcher).extract(_request(origin="https://example.com/a.txt"))
    assert result.text == "remote text"


def test_missing_file_is_error_marker(tmp_path):
    result = TextExtractor().extract(_request(origin=str(tmp_path / "gone.txt"), name="gone.txt"))
    assert not result.ok
    assert result.text == "[Error reading content: gone.txt]"
    assert "gone.txt" in result.reason


def test_no_payload_is_error_marker():
    result = TextExtractor().extract(_request())
    assert not result.ok and is_marker(result.text)


# --- text / csv / json ---

def test_text_replaces_invalid_utf8():
    result = TextExtractor().extract(_request(raw=b"caf\xe9 menu"))
    assert result.ok
    assert result.text == "caf\ufffd menu"


def test_csv_keeps_rows_behind_header():
    result = CsvExtractor().extract(_request(raw=b"name,price\nbasic,10\n", file_type="csv"))
    assert result.text == "[CSV Data]\nname,price\nbasic,10"


def test_json_is_pretty_printed():
    result = JsonExtractor().extract(_request(raw=b'{"plan":"Gr\xc3\xbcn","tiers":[1,2]}', file_type="json"))
    assert result.text == '{\n  "plan": "Grün",\n  "tiers": [\n    1,\n    2\n  ]\n}'


def test_invalid_json_passes_through():
    result = JsonExtractor().extract(_request(raw=b"{not json", file_type="json"))
    assert result.ok and result.text == "{not json"


# --- fallback ---

def test_fallback_accepts_utf8_text():
    result = FallbackExtractor().extract(_request(raw=b"key = value\n", file_type="ini"))
    assert result.ok and result.text == "key = value"


@pytest.mark.parametrize("payload", [b"\x89PNG\r\n\x1a\n\xff\xfe", b"abc\x00def"])
def test_fallback_rejects_binary(payload):
    result = FallbackExtractor().extract(_request(raw=payload, file_type="bin", name="blob.bin"))
    assert not result.ok
    assert result.text == "[Unsupported file type: .bin]"


def test_fallback_without_file_type():
    result = FallbackExtractor().extract(_request(raw=b"\xff\xfe\xfd", file_type=None))
    assert result.text == "[Unsupported file type: (none)]"


# --- single HTML document ---

def test_html_document_has_title_and_text():
    markup = b"<html><head><title>Pricing</title></head><body><nav>Menu</nav><p>Plans start at $10.</p></body></html>"
    result = HtmlExtractor().extract(_request(raw=markup, file_type="html", name="pricing.html"))
    assert result.text.startswith("# Pricing\n\n")
    assert "Plans start at $10." in result.text
    assert "Menu" not in result.text
