"""PDF extractor — pypdf page text plus an optional vision pass for visuals."""

from __future__ import annotations

import io
from typing import TYPE_CHECKING, Any

import pypdf
import structlog

from sourcekb.extract.base import ExtractionRequest, ExtractionResult, Extractor
from sourcekb.extract.text import normalize_text
from sourcekb.providers.base import VisionProvider, parse_json_answer

if TYPE_CHECKING:
    from sourcekb.extract.fetch import HttpFetcher

logger = structlog.get_logger(logger_name=__name__)

_VISUAL_PROMPT = """\
Analyze this PDF document{client}{filename}.

Focus on the VISUAL elements that text extraction would miss:
- Charts, graphs, and data visualizations
- Diagrams, flowcharts, and process maps
- Images, screenshots, and photos
- Tables and their data

Provide analysis in JSON format:
{{
  "visualSummary": "2-3 sentence summary of the visual story this document tells",
  "charts": ["Description of each chart/graph - what it shows, key data points, trends"],
  "diagrams": ["Description of diagrams/flowcharts - structure, relationships, flow"],
  "images": ["Description of images/photos - what they show, context"],
  "keyVisuals": ["The most important visual insights that wouldn't be captured by text alone"]
}}

Return ONLY valid JSON, no other text."""


def format_visual_analysis(analysis: dict[str, Any]) -> str:
    """Render the vision model's JSON analysis as a markdown section."""
    parts = ["\n---\n## Visual Content Analysis\n", str(analysis.get("visualSummary") or "")]

    for key, heading in (
        ("charts", "### Charts & Graphs"),
        ("diagrams", "### Diagrams & Flowcharts"),
        ("images", "### Images"),
    ):
        items = analysis.get(key) or []
        if items:
            parts.append(f"\n{heading}")
            parts.extend(f"{i}. {item}" for i, item in enumerate(items, start=1))

    key_visuals = analysis.get("keyVisuals") or []
    if key_visuals:
        parts.append("\n### Key Visual Insights")
        parts.extend(f"- {item}" for item in key_visuals)

    return "\n".join(parts)


class PdfExtractor(Extractor):
    """Extract text from a PDF, then describe its visual content.

    Strategy:
    - Extract text page-by-page via ``pypdf.PdfReader``; pages without text
      (scanned images, etc.) contribute nothing.
    - If a vision provider is configured and *visual_pass* is on, ask it to
      describe charts, diagrams and images. A failing visual pass degrades
      to text-only.
    - A PDF that yields neither text nor a visual description is a failure.

    Args:
        fetcher: Guarded HTTP fetcher for URL origins.
        vision: Vision provider for the visual pass (None disables it).
        visual_pass: Toggle the visual pass without removing the provider.
    """

    def __init__(
        self,
        fetcher: HttpFetcher | None = None,
        vision: VisionProvider | None = None,
        visual_pass: bool = True,
    ) -> None:
        super().__init__(fetcher)
        self._vision = vision
        self._visual_pass = visual_pass

    def extract(self, request: ExtractionRequest) -> ExtractionResult:
        try:
            data = self.load_raw(request)
            text = self._extract_text(data)
        except Exception as exc:
            logger.warning("pdf_parse_failed", name=request.name, error=str(exc))
            return ExtractionResult.failure(
                f"[Error extracting PDF content: {exc}]", f"Unreadable PDF: {exc}"
            )

        visual = self._describe_visuals(data, request)
        if not text and not visual:
            return ExtractionResult.failure(
                "[Error extracting PDF content: no text or visual content found]",
                f"PDF '{request.name}' contains no extractable text.",
            )

        content = f"## Extracted Text\n\n{text}" + visual
        return ExtractionResult.success(content)

    @staticmethod
    def _extract_text(data: bytes) -> str:
        """Extract all page text from the PDF bytes."""
        reader = pypdf.PdfReader(io.BytesIO(data))
        parts: list[str] = []
        for page in reader.pages:
            page_text = page.extract_text() or ""
            stripped = page_text.strip()
            if stripped:
                parts.append(stripped)
        return normalize_text("\n\n".join(parts))

    def _describe_visuals(self, data: bytes, request: ExtractionRequest) -> str:
        if self._vision is None or not self._visual_pass:
            return ""
        prompt = _VISUAL_PROMPT.format(
            client=f" (for client: {request.client_name})" if request.client_name else "",
            filename=f" (filename: {request.name})",
        )
        try:
            answer = self._vision.describe_document(data, "application/pdf", prompt)
            analysis = parse_json_answer(answer)
            if not isinstance(analysis, dict):
                raise ValueError("visual analysis is not a JSON object")
        except Exception as exc:
            logger.warning("pdf_visual_pass_failed", name=request.name, error=str(exc))
            return ""
        return format_visual_analysis(analysis)
