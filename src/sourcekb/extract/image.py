"""Image extractor — delegates entirely to the vision provider."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from sourcekb.extract.base import ExtractionRequest, ExtractionResult, Extractor
from sourcekb.providers.base import VisionProvider, parse_json_answer

if TYPE_CHECKING:
    from sourcekb.extract.fetch import HttpFetcher

logger = structlog.get_logger(logger_name=__name__)

IMAGE_TYPES: dict[str, str] = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "webp": "image/webp",
    "svg": "image/svg+xml",
}

_IMAGE_PROMPT = """\
Analyze this image{client}{filename}.

Provide a detailed analysis in JSON format:
{{
  "description": "A comprehensive description of what this image shows (2-4 sentences)",
  "textContent": ["Array of any text visible in the image, verbatim"],
  "keyElements": ["Array of key visual elements, diagrams, or concepts shown"],
  "suggestedLabels": ["Array of suggested tags/labels for categorization"]
}}

If this is a whiteboard, flowchart, or diagram:
- Describe the structure and flow
- Extract all text and labels
- Identify relationships between elements

If this is a document or screenshot:
- Extract all visible text
- Describe the layout and purpose

Return ONLY valid JSON, no other text."""


def format_image_analysis(name: str, analysis: dict[str, Any]) -> str:
    """Render the vision model's JSON analysis as searchable text."""
    parts = [
        f"[Image: {name}]",
        f"Description: {analysis.get('description') or 'Image content extracted'}",
    ]
    text_content = analysis.get("textContent") or []
    if text_content:
        parts.append("\nText Content:\n" + "\n".join(str(t) for t in text_content))
    key_elements = analysis.get("keyElements") or []
    if key_elements:
        parts.append("\nKey Elements:\n- " + "\n- ".join(str(k) for k in key_elements))
    return "\n".join(parts)


class ImageExtractor(Extractor):
    """Describe an image with a vision model.

    The suggested labels are returned as metadata rather than content.
    """

    def __init__(self, vision: VisionProvider | None, fetcher: HttpFetcher | None = None) -> None:
        super().__init__(fetcher)
        self._vision = vision

    def extract(self, request: ExtractionRequest) -> ExtractionResult:
        if self._vision is None:
            return ExtractionResult.failure(
                "[Unsupported extraction: Image - no vision model configured]",
                "Image extraction requires a vision model.",
            )
        mime = IMAGE_TYPES.get((request.file_type or "").lower(), "image/png")
        prompt = _IMAGE_PROMPT.format(
            client=f" (for client: {request.client_name})" if request.client_name else "",
            filename=f" (filename: {request.name})",
        )
        try:
            data = self.load_raw(request)
            analysis = parse_json_answer(self._vision.describe_image(data, mime, prompt))
            if not isinstance(analysis, dict):
                raise ValueError("image analysis is not a JSON object")
        except Exception as exc:
            logger.warning("image_extract_failed", name=request.name, error=str(exc))
            return ExtractionResult.failure(
                f"[Error extracting image content: {exc}]",
                f"Vision extraction failed for '{request.name}': {exc}",
            )

        labels = [str(label) for label in analysis.get("suggestedLabels") or []]
        return ExtractionResult.success(
            format_image_analysis(request.name, analysis),
            metadata={"labels": labels} if labels else None,
        )
