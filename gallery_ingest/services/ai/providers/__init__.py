"""AI provider implementations."""

from gallery_ingest.services.ai.providers.anthropic import AnthropicClient
from gallery_ingest.services.ai.providers.openai import OpenAIClient

__all__ = ["AnthropicClient", "OpenAIClient"]
