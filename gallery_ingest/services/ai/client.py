"""AI client interface and provider abstraction."""

import json
import logging
import os
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from gallery_ingest.config import AIConfig, get_default_config
from gallery_ingest.core.enums import PageKind
from gallery_ingest.core.exceptions import AIResponseError
from gallery_ingest.core.extraction import (
    GalleryExtraction,
    OpeningHoursExtraction,
    PageClassification,
    PageExtraction,
    page_extraction_json_schema,
    parse_page_extraction,
)
from gallery_ingest.services.ai.prompts import (
    MAX_MD_LENGTH,
    SYSTEM_PROMPT,
    build_classify_prompt,
    build_extract_gallery_prompt,
    build_extract_page_prompt,
    build_opening_hours_prompt,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class AIProvider(str, Enum):
    """Supported AI providers."""

    ANTHROPIC = "anthropic"
    OPENAI = "openai"


def strip_code_fences(raw_response: str) -> str:
    """Remove markdown code blocks wrapped around a JSON response."""
    json_str = raw_response.strip()
    if json_str.startswith("```json"):
        json_str = json_str[7:]
    if json_str.startswith("```"):
        json_str = json_str[3:]
    if json_str.endswith("```"):
        json_str = json_str[:-3]
    return json_str.strip()


def parse_json_object(raw_response: str) -> dict[str, Any]:
    """
    Parse a completion response into a JSON object.

    Raises:
        AIResponseError: If the response is not a JSON object.
    """
    try:
        parsed = json.loads(strip_code_fences(raw_response))
    except json.JSONDecodeError as e:
        raise AIResponseError(f"JSON parse error: {e}", raw_response=raw_response) from e
    if not isinstance(parsed, dict):
        raise AIResponseError(
            f"Expected a JSON object, got {type(parsed).__name__}", raw_response=raw_response
        )
    return parsed


class AIClient(ABC):
    """
    Abstract base class for completion service providers.

    Providers implement `_complete` (one system+user exchange returning
    text) and `embed`; the structured operations are built on top and
    validate every response against the extraction schemas. Nothing here
    retries: a failed or invalid response raises immediately.
    """

    provider: AIProvider
    model: str
    embedding_model: str
    max_markdown_length: int = MAX_MD_LENGTH

    @abstractmethod
    def _complete(self, system: str, prompt: str) -> str:
        """
        Run one completion and return the raw text response.

        Raises:
            AIServiceError: If the provider call fails.
        """

    @abstractmethod
    def embed(self, text: str) -> list[float]:
        """
        Compute an embedding vector for `text`.

        Raises:
            AIServiceError: If the provider call fails or embeddings are unavailable.
        """

    def _complete_model(self, prompt: str, model_cls: type[ModelT]) -> ModelT:
        raw_response = self._complete(SYSTEM_PROMPT, prompt)
        data = parse_json_object(raw_response)
        try:
            return model_cls.model_validate(data)
        except ValidationError as e:
            raise AIResponseError(
                f"Validation error: {e}", raw_response=raw_response
            ) from e

    def classify_page(self, markdown: str, url: str) -> PageKind:
        """Predict the kind of a page from its markdown."""
        prompt = build_classify_prompt(markdown, url, self.max_markdown_length)
        return self._complete_model(prompt, PageClassification).kind

    def extract_page(self, markdown: str, url: str) -> PageExtraction:
        """Extract a tagged page variant, with an event payload for event_detail pages."""
        prompt = build_extract_page_prompt(
            markdown, url, page_extraction_json_schema(), self.max_markdown_length
        )
        raw_response = self._complete(SYSTEM_PROMPT, prompt)
        data = parse_json_object(raw_response)
        try:
            return parse_page_extraction(data)
        except ValidationError as e:
            raise AIResponseError(f"Validation error: {e}", raw_response=raw_response) from e

    def extract_gallery(self, markdown: str, url: str) -> GalleryExtraction:
        """Extract gallery-level facts from combined main/about markdown."""
        prompt = build_extract_gallery_prompt(
            markdown, url, GalleryExtraction.model_json_schema(), self.max_markdown_length
        )
        return self._complete_model(prompt, GalleryExtraction)

    def extract_opening_hours(self, text: str) -> OpeningHoursExtraction:
        """Parse free-text opening hours into per-weekday minute ranges."""
        prompt = build_opening_hours_prompt(text, OpeningHoursExtraction.model_json_schema())
        return self._complete_model(prompt, OpeningHoursExtraction)


def get_ai_client(
    provider: AIProvider | str,
    api_key: str,
    model: str | None = None,
    embedding_model: str | None = None,
    embedding_api_key: str | None = None,
    **options: Any,
) -> AIClient:
    """
    Factory function to get an AI client for the specified provider.

    Args:
        provider: The AI provider to use.
        api_key: The API key for the provider.
        model: Optional chat model name override.
        embedding_model: Optional embedding model override.
        embedding_api_key: OpenAI key used by providers without embeddings.
        options: Provider options (temperature, max_tokens, timeout, max_markdown_length).

    Returns:
        An AIClient instance for the specified provider.

    Raises:
        ValueError: If the provider is not supported.
    """
    if isinstance(provider, str):
        provider = AIProvider(provider.lower())

    if provider == AIProvider.ANTHROPIC:
        from gallery_ingest.services.ai.providers.anthropic import AnthropicClient

        return AnthropicClient(
            api_key=api_key,
            model=model,
            embedding_model=embedding_model,
            embedding_api_key=embedding_api_key,
            **options,
        )
    elif provider == AIProvider.OPENAI:
        from gallery_ingest.services.ai.providers.openai import OpenAIClient

        return OpenAIClient(api_key=api_key, model=model, embedding_model=embedding_model, **options)
    else:
        raise ValueError(f"Unsupported AI provider: {provider}")


def get_default_ai_client(config: AIConfig | None = None) -> AIClient:
    """
    Build the AI client from configuration and environment.

    AI_PROVIDER and AI_MODEL override the configured provider and chat
    model; keys come from OPENAI_API_KEY / ANTHROPIC_API_KEY.

    Raises:
        ValueError: If the provider's API key is not set.
    """
    config = config or get_default_config().ai
    provider = AIProvider(os.environ.get("AI_PROVIDER", config.provider).lower())
    model = os.environ.get("AI_MODEL") or config.chat_model
    openai_key = os.environ.get("OPENAI_API_KEY", "")

    if provider == AIProvider.ANTHROPIC:
        api_key = os.environ.get("ANTHROPIC_API_KEY", "")
    else:
        api_key = openai_key
    if not api_key:
        raise ValueError(f"No API key configured for AI provider '{provider.value}'")

    return get_ai_client(
        provider,
        api_key=api_key,
        model=model,
        embedding_model=config.embedding_model,
        embedding_api_key=openai_key if provider == AIProvider.ANTHROPIC else None,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
        timeout=config.timeout,
        max_markdown_length=config.max_markdown_length,
    )
