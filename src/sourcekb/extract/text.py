"""Text-like extractors: plain text / markdown, CSV, JSON and unknown types."""

from __future__ import annotations

import json
import re

import structlog

from sourcekb.extract.base import ExtractionRequest, ExtractionResult, Extractor, decode_text

logger = structlog.get_logger(logger_name=__name__)

_BLANK_RUN_RE = re.compile(r"\n{3,}")


def normalize_text(text: str) -> str:
    """Normalise line endings and collapse runs of 3+ newlines to one blank line."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return _BLANK_RUN_RE.sub("\n\n", text).strip()


def _load_failure(request: ExtractionRequest, exc: Exception) -> ExtractionResult:
    logger.warning("extract_load_failed", name=request.name, error=str(exc))
    return ExtractionResult.failure(
        f"[Error reading content: {request.name}]", f"Could not read '{request.name}': {exc}"
    )


class TextExtractor(Extractor):
    """UTF-8 text, markdown, logs, transcripts and notes."""

    def extract(self, request: ExtractionRequest) -> ExtractionResult:
        try:
            data = self.load_raw(request)
        except Exception as exc:
            return _load_failure(request, exc)
        return ExtractionResult.success(normalize_text(decode_text(data)))


class CsvExtractor(Extractor):
    """CSV passes through verbatim behind a ``[CSV Data]`` header line."""

    def extract(self, request: ExtractionRequest) -> ExtractionResult:
        try:
            data = self.load_raw(request)
        except Exception as exc:
            return _load_failure(request, exc)
        return ExtractionResult.success(f"[CSV Data]\n{decode_text(data).strip()}")


class JsonExtractor(Extractor):
    """JSON is re-serialised with indent 2; invalid JSON is kept as text."""

    def extract(self, request: ExtractionRequest) -> ExtractionResult:
        try:
            data = self.load_raw(request)
        except Exception as exc:
            return _load_failure(request, exc)
        text = decode_text(data)
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            return ExtractionResult.success(text.strip())
        return ExtractionResult.success(json.dumps(parsed, indent=2, ensure_ascii=False))


class FallbackExtractor(Extractor):
    """Unknown file types: accept strict UTF-8 text, reject binaries."""

    def extract(self, request: ExtractionRequest) -> ExtractionResult:
        ext = f".{request.file_type}" if request.file_type else "(none)"
        try:
            data = self.load_raw(request)
        except Exception as exc:
            return _load_failure(request, exc)
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError:
            return ExtractionResult.failure(
                f"[Unsupported file type: {ext}]",
                f"Cannot extract text from binary file type {ext}.",
            )
        if "\x00" in text:
            return ExtractionResult.failure(
                f"[Unsupported file type: {ext}]",
                f"Cannot extract text from binary file type {ext}.",
            )
        return ExtractionResult.success(normalize_text(text))
