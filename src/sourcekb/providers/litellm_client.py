"""LiteLLM-backed providers with retry and API key validation.

LiteLLM's built-in retry is used (num_retries=3, exponential backoff).
API key presence is validated before the first call of each provider.
Provider exceptions are re-raised as sourcekb.errors.ProviderError.
"""

from __future__ import annotations

import base64
import os
from collections.abc import Sequence

import litellm
import structlog

from sourcekb.errors import ProviderError
from sourcekb.providers.base import EmbeddingProvider, TextGenProvider, VisionProvider

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True

logger = structlog.get_logger(logger_name=__name__)

_NUM_RETRIES = 3


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "google": "GOOGLE_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Args:
        model: LiteLLM model string in 'provider/model' format.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider)

    if env_var is None:
        return

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


def _data_url(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def _complete(model: str, messages: list[dict], max_tokens: int) -> str:
    try:
        response = litellm.completion(
            model=model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=0.0,
            num_retries=_NUM_RETRIES,
        )
    except Exception as exc:
        raise ProviderError(f"Completion call to '{model}' failed: {exc}") from exc
    return response.choices[0].message.content or ""


class LiteLLMEmbeddingProvider(EmbeddingProvider):
    """Embeddings via ``litellm.embedding()``.

    Args:
        model: LiteLLM embedding model string (provider/model format).
        dimensions: Expected vector length; a mismatching answer is an error.
    """

    def __init__(self, model: str, dimensions: int) -> None:
        self.model = model
        self.dimensions = dimensions
        self._checked = False

    def embed(self, text: str) -> list[float]:
        return self.embed_many([text])[0]

    def embed_many(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        if not self._checked:
            validate_api_key(self.model)
            self._checked = True
        try:
            response = litellm.embedding(
                model=self.model,
                input=list(texts),
                num_retries=_NUM_RETRIES,
            )
        except Exception as exc:
            raise ProviderError(f"Embedding call to '{self.model}' failed: {exc}") from exc

        vectors = [item["embedding"] for item in response.data]
        if len(vectors) != len(texts):
            raise ProviderError(
                f"Embedding model '{self.model}' returned {len(vectors)} vectors "
                f"for {len(texts)} inputs."
            )
        for vec in vectors:
            if len(vec) != self.dimensions:
                raise ProviderError(
                    f"Embedding model '{self.model}' returned {len(vec)} dimensions, "
                    f"expected {self.dimensions}. Check embedding.dimensions in sourcekb.yaml."
                )
        return vectors


class LiteLLMVisionProvider(VisionProvider):
    """Image and PDF understanding via multimodal ``litellm.completion()``."""

    def __init__(self, model: str, max_tokens: int = 4096) -> None:
        self.model = model
        self.max_tokens = max_tokens
        self._checked = False

    def describe_image(self, data: bytes, mime_type: str, prompt: str) -> str:
        part = {"type": "image_url", "image_url": {"url": _data_url(data, mime_type)}}
        return self._ask(part, prompt)

    def describe_document(self, data: bytes, mime_type: str, prompt: str) -> str:
        part = {"type": "file", "file": {"file_data": _data_url(data, mime_type)}}
        return self._ask(part, prompt)

    def _ask(self, part: dict, prompt: str) -> str:
        if not self._checked:
            validate_api_key(self.model)
            self._checked = True
        messages = [{"role": "user", "content": [part, {"type": "text", "text": prompt}]}]
        return _complete(self.model, messages, self.max_tokens)


class LiteLLMTextGenProvider(TextGenProvider):
    """Text generation via ``litellm.completion()``."""

    def __init__(self, model: str) -> None:
        self.model = model
        self._checked: set[str] = set()

    def generate(
        self,
        prompt: str,
        *,
        system: str | None = None,
        max_tokens: int = 1024,
        model: str | None = None,
    ) -> str:
        target = model or self.model
        if target not in self._checked:
            validate_api_key(target)
            self._checked.add(target)
        messages: list[dict] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        logger.debug("text_generation", model=target, prompt_chars=len(prompt))
        return _complete(target, messages, max_tokens)
