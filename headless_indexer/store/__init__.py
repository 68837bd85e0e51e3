"""Storage module - embedding providers and vector store."""

from .embedding import (
    EmbeddingCache,
    EmbeddingProvider,
    GeminiProvider,
    OllamaProvider,
    OpenAIProvider,
    VoyageProvider,
    create_embedding_provider,
)
from .vector import VectorStore

__all__ = [
    "EmbeddingCache",
    "EmbeddingProvider",
    "GeminiProvider",
    "OllamaProvider",
    "OpenAIProvider",
    "VoyageProvider",
    "create_embedding_provider",
    "VectorStore",
]
