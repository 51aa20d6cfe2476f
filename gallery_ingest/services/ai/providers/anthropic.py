"""Anthropic (Claude) AI provider implementation."""

import logging

from gallery_ingest.core.exceptions import AIServiceError
from gallery_ingest.services.ai.client import AIClient, AIProvider
from gallery_ingest.services.ai.prompts import MAX_MD_LENGTH

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"


class AnthropicClient(AIClient):
    """
    Anthropic Claude client.

    Anthropic has no embeddings endpoint; when an OpenAI key is supplied,
    `embed` delegates to an OpenAI embedder, otherwise it raises.
    """

    provider = AIProvider.ANTHROPIC

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        embedding_model: str | None = None,
        embedding_api_key: str | None = None,
        temperature: float = 0.0,
        max_tokens: int = 4096,
        timeout: float = 120.0,
        max_markdown_length: int = MAX_MD_LENGTH,
    ):
        """
        Initialize the Anthropic client.

        Args:
            api_key: Anthropic API key.
            model: Model name (defaults to claude-sonnet-4-20250514).
            embedding_model: Embedding model used by the delegate embedder.
            embedding_api_key: OpenAI API key for embeddings.
            temperature: Sampling temperature.
            max_tokens: Completion token ceiling.
            timeout: Request timeout in seconds.
            max_markdown_length: Markdown truncation length for prompts.
        """
        import anthropic

        self.client = anthropic.Anthropic(api_key=api_key, timeout=timeout, max_retries=0)
        self.model = model or DEFAULT_MODEL
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.max_markdown_length = max_markdown_length

        self._embedder = None
        if embedding_api_key:
            from gallery_ingest.services.ai.providers.openai import OpenAIClient

            self._embedder = OpenAIClient(
                api_key=embedding_api_key, embedding_model=embedding_model, timeout=timeout
            )
            self.embedding_model = self._embedder.embedding_model
        else:
            self.embedding_model = embedding_model or ""

    def _complete(self, system: str, prompt: str) -> str:
        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                system=system,
                messages=[{"role": "user", "content": prompt}],
            )
        except Exception as e:
            logger.error(f"Anthropic API error: {e}")
            raise AIServiceError(f"API error: {e}") from e

        raw_response = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        logger.info(f"AI completion received response ({len(raw_response)} chars)")
        logger.debug(f"Raw AI response: {raw_response[:1000]}...")
        return raw_response

    def embed(self, text: str) -> list[float]:
        if self._embedder is None:
            raise AIServiceError(
                "Anthropic provider has no embeddings; set OPENAI_API_KEY to enable them"
            )
        return self._embedder.embed(text)
