"""Model capability providers (embedding, vision, text generation)."""

from sourcekb.providers.base import (
    EmbeddingProvider,
    TextGenProvider,
    VisionProvider,
    parse_json_answer,
)
from sourcekb.providers.litellm_client import (
    LiteLLMEmbeddingProvider,
    LiteLLMTextGenProvider,
    LiteLLMVisionProvider,
    validate_api_key,
)

__all__ = [
    "EmbeddingProvider",
    "LiteLLMEmbeddingProvider",
    "LiteLLMTextGenProvider",
    "LiteLLMVisionProvider",
    "TextGenProvider",
    "VisionProvider",
    "parse_json_answer",
    "validate_api_key",
]
