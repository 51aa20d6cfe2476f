"""OpenAI AI provider implementation."""

import logging

from gallery_ingest.core.exceptions import AIServiceError
from gallery_ingest.services.ai.client import AIClient, AIProvider
from gallery_ingest.services.ai.prompts import MAX_MD_LENGTH

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o"
DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"


class OpenAIClient(AIClient):
    """OpenAI GPT client with chat completions and embeddings."""

    provider = AIProvider.OPENAI

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        embedding_model: str | None = None,
        temperature: float = 0.0,
        max_tokens: int = 4096,
        timeout: float = 120.0,
        max_markdown_length: int = MAX_MD_LENGTH,
    ):
        """
        Initialize the OpenAI client.

        Args:
            api_key: OpenAI API key.
            model: Chat model name (defaults to gpt-4o).
            embedding_model: Embedding model (defaults to text-embedding-3-small).
            temperature: Sampling temperature.
            max_tokens: Completion token ceiling.
            timeout: Request timeout in seconds.
            max_markdown_length: Markdown truncation length for prompts.
        """
        import openai

        # The SDK retries on its own by default; failures must surface to the caller.
        self.client = openai.OpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        self.model = model or DEFAULT_MODEL
        self.embedding_model = embedding_model or DEFAULT_EMBEDDING_MODEL
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.max_markdown_length = max_markdown_length

    def _complete(self, system: str, prompt: str) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt},
                ],
                response_format={"type": "json_object"},
            )
        except Exception as e:
            logger.error(f"OpenAI API error: {e}")
            raise AIServiceError(f"API error: {e}") from e

        raw_response = response.choices[0].message.content or ""
        logger.debug(f"Raw AI response: {raw_response[:500]}...")
        return raw_response

    def embed(self, text: str) -> list[float]:
        try:
            response = self.client.embeddings.create(model=self.embedding_model, input=text)
        except Exception as e:
            logger.error(f"OpenAI embeddings error: {e}")
            raise AIServiceError(f"Embedding error: {e}") from e

        if not response.data:
            raise AIServiceError("Embedding response contained no vectors")
        return list(response.data[0].embedding)
