"""Model capability interfaces injected into extractors, enrichment and retrieval.

Nothing in sourcekb calls a model SDK directly; it receives one of these.
The litellm-backed implementations live in sourcekb.providers.litellm_client.
"""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any


class EmbeddingProvider(ABC):
    """Turns text into fixed-dimension vectors.

    The same text embedded with the same model must give the same vector.
    """

    model: str
    dimensions: int

    @abstractmethod
    def embed(self, text: str) -> list[float]:
        """Return the embedding vector for *text*."""

    def embed_many(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed several texts; order of the result matches *texts*.

        The default makes one call per text. Providers with a batch endpoint
        override this.
        """
        return [self.embed(t) for t in texts]


class VisionProvider(ABC):
    """Describes images and documents with a multimodal model."""

    @abstractmethod
    def describe_image(self, data: bytes, mime_type: str, prompt: str) -> str:
        """Return the model's answer to *prompt* about the image *data*."""

    @abstractmethod
    def describe_document(self, data: bytes, mime_type: str, prompt: str) -> str:
        """Return the model's answer to *prompt* about a document (e.g. a PDF)."""


class TextGenProvider(ABC):
    """Plain text generation (summaries, names, insights)."""

    @abstractmethod
    def generate(
        self,
        prompt: str,
        *,
        system: str | None = None,
        max_tokens: int = 1024,
        model: str | None = None,
    ) -> str:
        """Return the completion text for *prompt*.

        Args:
            prompt: User message.
            system: Optional system message.
            max_tokens: Maximum output tokens.
            model: Override the provider's default model for this call.
        """


_FENCE_RE = re.compile(r"^```(?:json)?\s*\n?|\n?```\s*$")


def parse_json_answer(text: str) -> Any:
    """Parse a model answer that should be JSON, tolerating ```json fences.

    Raises:
        ValueError: If the answer is not valid JSON.
    """
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_RE.sub("", cleaned).strip()
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Model answer is not valid JSON: {exc}") from exc
