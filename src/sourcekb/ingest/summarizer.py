"""Source summarizer and namer — consulting-focused enrichment via text generation.

Both are best-effort: the caller logs and moves on when they raise.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

from sourcekb.providers.base import TextGenProvider, parse_json_answer

MAX_SUMMARY_INPUT = 15_000
MAX_NAMING_INPUT = 2_000
TRUNCATION_MARKER = "\n\n[...content truncated...]\n\n"

_QUOTES_RE = re.compile(r"^[\"']|[\"']$")
_EXTENSION_RE = re.compile(r"\.[^/.]+$")

_SUMMARY_PROMPT = """\
Analyze this {source_kind}{client}:

{file_line}
{type_line}

Content:
{content}

Provide a consulting-focused analysis in JSON format:
{{
  "whatItIs": "Brief description of what this document is (1-2 sentences)",
  "whyItMatters": "Why this is relevant for consulting this client (1-2 sentences)",
  "keyInsights": ["Array of 3-5 key insights or important points from this document"],
  "suggestedUses": ["Array of 2-4 ways this could be used in consulting sessions or strategy"]
}}

Focus on actionable insights for a consultant. Return ONLY valid JSON."""

_NAMING_PROMPT = """\
Generate a clear, descriptive name (3-8 words) for this uploaded document.

Original filename: {file_name}
{type_line}
{client_line}

Content preview:
{content}

Create a name that describes WHAT this document is (e.g., "Q3 2024 Financial Report", \
"Product Roadmap Overview", "Competitor Analysis - Acme Corp").

Return ONLY the name, nothing else. Do not include file extensions."""


def truncate_middle(text: str, limit: int = MAX_SUMMARY_INPUT) -> str:
    """Keep the head and tail of *text* around a truncation marker."""
    if len(text) <= limit:
        return text
    half = limit // 2
    return text[:half] + TRUNCATION_MARKER + text[-half:]


def strip_extension(file_name: str) -> str:
    return _EXTENSION_RE.sub("", file_name)


class SourceSummarizer:
    """Generate the structured summary and the display name of a source.

    Args:
        provider:     Text-generation provider.
        naming_model: Cheaper model used for names (None = provider default).
    """

    def __init__(self, provider: TextGenProvider, naming_model: str | None = None) -> None:
        self._provider = provider
        self._naming_model = naming_model

    def summarize(
        self,
        content: str,
        *,
        source_kind: str = "document",
        file_name: str | None = None,
        file_type: str | None = None,
        client_name: str | None = None,
    ) -> dict[str, Any]:
        """Return ``{whatItIs, whyItMatters, keyInsights, suggestedUses, generatedAt}``.

        Raises:
            ProviderError: If the generation call fails.
            ValueError: If the answer is not a JSON object.
        """
        prompt = _SUMMARY_PROMPT.format(
            source_kind=source_kind,
            client=f' for client "{client_name}"' if client_name else "",
            file_line=f"File: {file_name}" if file_name else "",
            type_line=f"Type: {file_type}" if file_type else "",
            content=truncate_middle(content),
        )
        result = parse_json_answer(self._provider.generate(prompt, max_tokens=1500))
        if not isinstance(result, dict):
            raise ValueError("Summary answer is not a JSON object.")
        return {
            "whatItIs": result.get("whatItIs") or "Document uploaded for reference",
            "whyItMatters": result.get("whyItMatters") or "Added to client knowledge base",
            "keyInsights": list(result.get("keyInsights") or []),
            "suggestedUses": list(result.get("suggestedUses") or []),
            "generatedAt": datetime.now(timezone.utc).isoformat(),
        }

    def name(
        self,
        content: str,
        *,
        file_name: str,
        file_type: str | None = None,
        client_name: str | None = None,
    ) -> str:
        """Return a 3-8 word descriptive name, or the filename stem on an empty answer."""
        prompt = _NAMING_PROMPT.format(
            file_name=file_name,
            type_line=f"File type: {file_type}" if file_type else "",
            client_line=f"Client: {client_name}" if client_name else "",
            content=content[:MAX_NAMING_INPUT],
        )
        answer = self._provider.generate(prompt, max_tokens=100, model=self._naming_model)
        first_line = answer.strip().splitlines()[0] if answer.strip() else ""
        cleaned = _QUOTES_RE.sub("", first_line.strip()).strip()
        return cleaned or strip_extension(file_name)
