"""Fake model providers and HTTP fetcher shared by the test suite."""

from __future__ import annotations

import json
from collections.abc import Sequence

from sourcekb.errors import ProviderError
from sourcekb.extract.fetch import FetchError, FetchResponse
from sourcekb.providers.base import EmbeddingProvider, TextGenProvider, VisionProvider

OWNER = "owner-1"

# Words the keyword embedder counts; any other text only hits the bias dimension.
VOCAB = ("pricing", "retention", "onboarding", "churn", "roadmap", "hiring", "zebra", "quartz")


class KeywordEmbedder(EmbeddingProvider):
    """Deterministic embedder: one dimension per vocabulary word plus a constant bias.

    Texts sharing a keyword score close to 1; texts without vocabulary words
    score about 0.1 against any keyword query.
    """

    model = "test/keywords"

    def __init__(self, fail_on: Sequence[str] = (), vocab: Sequence[str] = VOCAB) -> None:
        self.vocab = tuple(vocab)
        self.dimensions = len(self.vocab) + 1
        self.fail_on = tuple(fail_on)
        self.calls = 0

    def embed(self, text: str) -> list[float]:
        self.calls += 1
        lowered = text.lower()
        if any(marker in lowered for marker in self.fail_on):
            raise ProviderError("embedding refused")
        return [float(lowered.count(word)) for word in self.vocab] + [0.1]


class BrokenEmbedder(EmbeddingProvider):
    model = "test/broken"
    dimensions = 3

    def embed(self, text: str) -> list[float]:
        raise ProviderError("embedding service unavailable")


class FakeTextGen(TextGenProvider):
    """Answers by prompt type; stages listed in *fail* raise ProviderError."""

    def __init__(
        self,
        name: str = "Quarterly Pricing Review",
        summary: dict | None = None,
        insights: list | None = None,
        fail: Sequence[str] = (),
    ) -> None:
        self.name = name
        self.summary = summary or {
            "whatItIs": "A pricing review.",
            "whyItMatters": "It sets next quarter's prices.",
            "keyInsights": ["Prices rise 5%"],
            "suggestedUses": ["Pricing workshop"],
        }
        self.insights = insights if insights is not None else [
            {
                "fieldName": "offer",
                "suggestedValue": "Quarterly pricing workshops",
                "reasoning": "The review describes the workshop format.",
                "confidence": 0.9,
            }
        ]
        self.fail = set(fail)
        self.prompts: list[tuple[str, str | None]] = []

    def generate(self, prompt, *, system=None, max_tokens=1024, model=None):
        stage = _stage_of(prompt)
        self.prompts.append((stage, model))
        if stage in self.fail:
            raise ProviderError(f"{stage} generation failed")
        if stage == "name":
            return self.name
        if stage == "summary":
            return "```json\n" + json.dumps(self.summary) + "\n```"
        return json.dumps(self.insights)


def _stage_of(prompt: str) -> str:
    if "descriptive name" in prompt:
        return "name"
    if "consulting-focused analysis" in prompt:
        return "summary"
    return "insights"


class FakeVision(VisionProvider):
    def __init__(self, answer: str = "", fail: bool = False) -> None:
        self.answer = answer
        self.fail = fail
        self.calls: list[str] = []

    def describe_image(self, data, mime_type, prompt):
        return self._answer(mime_type)

    def describe_document(self, data, mime_type, prompt):
        return self._answer(mime_type)

    def _answer(self, mime_type: str) -> str:
        self.calls.append(mime_type)
        if self.fail:
            raise ProviderError("vision model unavailable")
        return self.answer


class FakeFetcher:
    """Stands in for HttpFetcher: serves canned responses keyed by URL.

    A value may be a FetchResponse, a (content_type, body) tuple or an
    exception instance to raise. Unknown URLs raise FetchError (404).
    """

    def __init__(self, responses: dict | None = None) -> None:
        self.responses = dict(responses or {})
        self.calls: list[tuple[str, dict | None]] = []

    def fetch(self, url, *, accept_types=None, headers=None):
        self.calls.append((url, dict(headers) if headers else None))
        value = self.responses.get(url)
        if value is None:
            raise FetchError(f"HTTP 404 fetching '{url}'.", status=404)
        if isinstance(value, Exception):
            raise value
        if isinstance(value, tuple):
            content_type, body = value
            if isinstance(body, str):
                body = body.encode("utf-8")
            value = FetchResponse(url=url, status=200, content_type=content_type, body=body)
        if accept_types is not None and value.content_type not in accept_types:
            raise FetchError(f"Unsupported Content-Type '{value.content_type}'")
        return value

    def check_url(self, url):
        return None
