"""Insight generator — field suggestions for a client's positioning document.

For a client-scoped source, a text-generation call proposes up to three
updates to named positioning fields. Suggestions below the confidence
threshold or for unknown fields are discarded.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from sourcekb.db.models import Insight, Source
from sourcekb.ingest.summarizer import truncate_middle
from sourcekb.providers.base import TextGenProvider, parse_json_answer

logger = structlog.get_logger(logger_name=__name__)

MAX_INSIGHT_INPUT = 12_000
MIN_CONFIDENCE = 0.6
MAX_SUGGESTIONS = 3

# Field name → what it captures (shown to the model).
INSIGHT_FIELDS: dict[str, str] = {
    "niche": "Who they serve (target market, customer segment)",
    "desiredOutcome": "What outcome they help customers achieve",
    "offer": "How they deliver their solution (product, service, methodology)",
    "whoWeAre": "Company identity, values, mission",
    "whatWeDo": "Core services/products offered",
    "howWeDoIt": "Their process, methodology, approach",
    "ourWedge": "Unique differentiator, competitive advantage",
    "whyPeopleLoveUs": "Customer testimonials, value propositions",
    "howWeWillDie": "Risks, threats, competitive dangers",
}

_INSIGHT_PROMPT = """\
You are analyzing a document to extract business clarity insights for a consulting client.

SOURCE DOCUMENT ({source_name}):
{content}

TASK: Identify any insights from this document that could inform the client's clarity document.

For each field, consider:
{fields}

Return a JSON array of suggestions (0-3 max, only include if there's strong evidence):
[
  {{
    "fieldName": "whatWeDo",
    "suggestedValue": "The actual content to suggest",
    "reasoning": "Why this is relevant based on the document",
    "confidence": 0.85
  }}
]

Rules:
- Only suggest updates if there's clear, relevant content in the document
- Confidence should be 0.5-1.0 (only include suggestions with confidence > 0.6)
- Return an empty array [] if no strong insights are found
- Return ONLY valid JSON, no other text."""


@dataclass(frozen=True)
class InsightSuggestion:
    field_name: str
    suggested_value: str
    reasoning: str
    confidence: float


class InsightGenerator:
    """Ask a text-generation model for positioning-field suggestions."""

    def __init__(self, provider: TextGenProvider) -> None:
        self._provider = provider

    def suggest(self, content: str, source_name: str) -> list[InsightSuggestion]:
        """Return accepted suggestions (known field, confidence >= 0.6, at most 3).

        Raises:
            ProviderError / ValueError: If the call or the JSON answer fails.
        """
        prompt = _INSIGHT_PROMPT.format(
            source_name=source_name,
            content=truncate_middle(content, MAX_INSIGHT_INPUT),
            fields="\n".join(f"- {k}: {v}" for k, v in INSIGHT_FIELDS.items()),
        )
        answer = parse_json_answer(self._provider.generate(prompt, max_tokens=2000))
        if not isinstance(answer, list):
            return []

        accepted: list[InsightSuggestion] = []
        for item in answer:
            if not isinstance(item, dict):
                continue
            field_name = item.get("fieldName")
            value = item.get("suggestedValue")
            try:
                confidence = float(item.get("confidence", 0))
            except (TypeError, ValueError):
                continue
            if field_name not in INSIGHT_FIELDS or not value or confidence < MIN_CONFIDENCE:
                logger.debug("insight_discarded", field=field_name, confidence=confidence)
                continue
            accepted.append(
                InsightSuggestion(
                    field_name=field_name,
                    suggested_value=str(value),
                    reasoning=str(item.get("reasoning") or ""),
                    confidence=min(confidence, 1.0),
                )
            )
            if len(accepted) >= MAX_SUGGESTIONS:
                break
        return accepted

    @staticmethod
    def to_insights(source: Source, suggestions: list[InsightSuggestion]) -> list[Insight]:
        """Convert accepted suggestions into pending Insight rows for *source*."""
        return [
            Insight(
                source_id=source.id,
                owner_id=source.owner_id,
                client_id=source.client_id,
                field_name=s.field_name,
                suggested_value=s.suggested_value,
                reasoning=s.reasoning,
                confidence=s.confidence,
            )
            for s in suggestions
        ]
