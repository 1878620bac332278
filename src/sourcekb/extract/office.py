"""Office extractor — best-effort text runs from OOXML (docx/pptx/xlsx) parts.

No layout fidelity: the XML parts inside the zip container are scanned for
text runs. Legacy binary formats (doc/ppt/xls) get the same scan over their
raw bytes, which usually finds nothing and yields a manual-review marker.
"""

from __future__ import annotations

import html
import io
import re
import zipfile

import structlog

from sourcekb.extract.base import ExtractionRequest, ExtractionResult, Extractor

logger = structlog.get_logger(logger_name=__name__)

# Shorter extractions are treated as failed.
MIN_TEXT_CHARS = 50

_WORD_RUN_RE = re.compile(r"<w:t[^>]*>([^<]*)</w:t>")
_SLIDE_RUN_RE = re.compile(r"<a:t>([^<]*)</a:t>")
_SHEET_RUN_RE = re.compile(r"<t[^>]*>([^<]*)</t>")
_SLIDE_NUM_RE = re.compile(r"(\d+)")

_KIND_LABELS: dict[str, str] = {
    "docx": "Word document",
    "doc": "Word document",
    "pptx": "PowerPoint presentation",
    "ppt": "PowerPoint presentation",
    "xlsx": "Excel spreadsheet",
    "xls": "Excel spreadsheet",
}

OFFICE_TYPES = frozenset(_KIND_LABELS)


def _runs(pattern: re.Pattern[str], xml: str) -> list[str]:
    return [html.unescape(m) for m in pattern.findall(xml)]


def _slide_order(name: str) -> int:
    match = _SLIDE_NUM_RE.search(name.rsplit("/", 1)[-1])
    return int(match.group(1)) if match else 0


class OfficeExtractor(Extractor):
    """Pattern-scan Word, PowerPoint and Excel files for their text runs."""

    def extract(self, request: ExtractionRequest) -> ExtractionResult:
        file_type = (request.file_type or "").lower()
        label = _KIND_LABELS.get(file_type, "Office file")
        try:
            data = self.load_raw(request)
            text = self._scan(file_type, data)
        except Exception as exc:
            logger.warning("office_extract_failed", name=request.name, error=str(exc))
            text = ""

        if len(text) < MIN_TEXT_CHARS:
            return ExtractionResult.failure(
                f"[Unsupported extraction: {label} {request.name} - content requires manual review]",
                f"Could not extract enough text from {label.lower()} '{request.name}'.",
            )
        return ExtractionResult.success(text)

    def _scan(self, file_type: str, data: bytes) -> str:
        if zipfile.is_zipfile(io.BytesIO(data)):
            with zipfile.ZipFile(io.BytesIO(data)) as zf:
                if file_type in ("pptx", "ppt"):
                    return self._pptx_text(zf)
                if file_type in ("xlsx", "xls"):
                    return self._xlsx_text(zf)
                return self._docx_text(zf)
        # Legacy binary container: scan whatever XML-ish text survives decoding.
        raw = data.decode("utf-8", errors="ignore")
        pattern = {"ppt": _SLIDE_RUN_RE, "xls": _SHEET_RUN_RE}.get(file_type, _WORD_RUN_RE)
        return " ".join(r for r in _runs(pattern, raw) if r.strip()).strip()

    @staticmethod
    def _docx_text(zf: zipfile.ZipFile) -> str:
        parts = [n for n in zf.namelist() if re.fullmatch(r"word/(document|header\d*|footer\d*)\.xml", n)]
        parts.sort(key=lambda n: (n != "word/document.xml", n))
        runs: list[str] = []
        for name in parts:
            runs.extend(_runs(_WORD_RUN_RE, zf.read(name).decode("utf-8", errors="replace")))
        return re.sub(r"\s+", " ", " ".join(runs)).strip()

    @staticmethod
    def _pptx_text(zf: zipfile.ZipFile) -> str:
        slides = sorted(
            (n for n in zf.namelist() if re.fullmatch(r"ppt/slides/slide\d+\.xml", n)),
            key=_slide_order,
        )
        lines: list[str] = []
        for name in slides:
            xml = zf.read(name).decode("utf-8", errors="replace")
            lines.extend(r for r in _runs(_SLIDE_RUN_RE, xml) if r.strip())
        return "\n".join(lines).strip()

    @staticmethod
    def _xlsx_text(zf: zipfile.ZipFile) -> str:
        names = [n for n in zf.namelist() if n == "xl/sharedStrings.xml" or re.fullmatch(r"xl/worksheets/sheet\d+\.xml", n)]
        cells: list[str] = []
        for name in sorted(names):
            xml = zf.read(name).decode("utf-8", errors="replace")
            cells.extend(r for r in _runs(_SHEET_RUN_RE, xml) if r.strip())
        return "\n".join(cells).strip()
