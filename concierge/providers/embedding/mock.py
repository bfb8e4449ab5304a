"""Mock embedding provider for testing."""

import hashlib
from typing import Any

from concierge.providers.embedding.base import EmbeddingProvider, EmbeddingResponse


class MockEmbeddingProvider(EmbeddingProvider):
    """Mock embedding provider for testing.

    Generates deterministic embeddings based on text content without
    making actual API calls. Fixed vectors can be pinned per text so tests
    control similarity exactly.
    """

    def __init__(
        self,
        dimensions: int = 8,
        default_model: str = "mock-embedding",
        vectors: dict[str, list[float]] | None = None,
    ):
        """Initialize mock provider.

        Args:
            dimensions: Embedding vector dimensions
            default_model: Model name to report
            vectors: Pinned vectors keyed by exact text
        """
        self._dimensions = dimensions
        self._default_model = default_model
        self._vectors = dict(vectors or {})
        self._call_history: list[dict[str, Any]] = []

    @property
    def provider_name(self) -> str:
        return "mock"

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def call_history(self) -> list[dict[str, Any]]:
        """Return history of calls for testing assertions."""
        return self._call_history

    def pin(self, text: str, vector: list[float]) -> None:
        """Pin the vector returned for text."""
        if len(vector) != self._dimensions:
            raise ValueError(f"Expected {self._dimensions} dimensions, got {len(vector)}")
        self._vectors[text] = vector

    def _generate_embedding(self, text: str) -> list[float]:
        """Generate deterministic embedding from the text hash.

        Similar texts will NOT have similar embeddings (this is a mock).
        """
        if text in self._vectors:
            return self._vectors[text]

        text_hash = hashlib.sha256(text.encode()).digest()
        embedding = [
            (text_hash[i % len(text_hash)] / 127.5) - 1.0 for i in range(self._dimensions)
        ]

        magnitude = sum(x * x for x in embedding) ** 0.5
        if magnitude > 0:
            embedding = [x / magnitude for x in embedding]
        return embedding

    async def embed(
        self,
        texts: list[str],
        *,
        model: str | None = None,
        **kwargs: Any,
    ) -> EmbeddingResponse:
        self._call_history.append({"texts": texts, "model": model, "kwargs": kwargs})
        return EmbeddingResponse(
            embeddings=[self._generate_embedding(text) for text in texts],
            model=model or self._default_model,
            dimensions=self._dimensions,
        )
