"""Completion service clients for classification, extraction and embeddings."""

from gallery_ingest.services.ai.client import (
    AIClient,
    AIProvider,
    get_ai_client,
    get_default_ai_client,
)

__all__ = [
    "AIClient",
    "AIProvider",
    "get_ai_client",
    "get_default_ai_client",
]
