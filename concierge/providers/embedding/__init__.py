"""Embedding providers for the semantic tier."""

from concierge.config.models.providers import EmbeddingProviderConfig
from concierge.providers.embedding.base import EmbeddingProvider, EmbeddingResponse
from concierge.providers.embedding.hashing import HashingEmbeddingProvider
from concierge.providers.embedding.mock import MockEmbeddingProvider


def create_embedding_provider(config: EmbeddingProviderConfig) -> EmbeddingProvider:
    """Create the configured embedding provider.

    sentence-transformers is an optional extra and is only imported when
    selected.
    """
    if config.provider == "hashing":
        return HashingEmbeddingProvider(dimensions=config.dimensions, model_name=config.model)
    if config.provider == "mock":
        return MockEmbeddingProvider(dimensions=config.dimensions)

    from concierge.providers.embedding.sentence_transformers import (
        SentenceTransformersProvider,
    )

    return SentenceTransformersProvider(model_name=config.model)


__all__ = [
    "EmbeddingProvider",
    "EmbeddingResponse",
    "HashingEmbeddingProvider",
    "MockEmbeddingProvider",
    "create_embedding_provider",
]
