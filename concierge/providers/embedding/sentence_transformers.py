"""Sentence-Transformers embedding provider for local neural embeddings."""

import asyncio
from typing import Any

from sentence_transformers import SentenceTransformer

from concierge.providers.embedding.base import EmbeddingProvider, EmbeddingResponse


class SentenceTransformersProvider(EmbeddingProvider):
    """Embedding provider using sentence-transformers models."""

    def __init__(self, model_name: str = "all-MiniLM-L6-v2", batch_size: int = 32):
        """Initialize sentence-transformers provider.

        Args:
            model_name: Model name to load
            batch_size: Batch size for encoding
        """
        self._model_name = model_name
        self._batch_size = batch_size
        self._model: SentenceTransformer | None = None

    def _ensure_model_loaded(self) -> SentenceTransformer:
        """Lazy-load the model on first use."""
        if self._model is None:
            self._model = SentenceTransformer(self._model_name)
        return self._model

    @property
    def provider_name(self) -> str:
        return f"sentence_transformers_{self._model_name}"

    @property
    def dimensions(self) -> int:
        return self._ensure_model_loaded().get_sentence_embedding_dimension()

    async def embed(
        self,
        texts: list[str],
        *,
        model: str | None = None,  # noqa: ARG002
        **kwargs: Any,  # noqa: ARG002
    ) -> EmbeddingResponse:
        """Generate normalized embeddings off the event loop."""
        model_obj = self._ensure_model_loaded()

        loop = asyncio.get_running_loop()
        embeddings_array = await loop.run_in_executor(
            None,
            lambda: model_obj.encode(
                texts,
                batch_size=self._batch_size,
                convert_to_numpy=True,
                normalize_embeddings=True,
                show_progress_bar=False,
            ),
        )

        return EmbeddingResponse(
            embeddings=embeddings_array.tolist(),
            model=self._model_name,
            dimensions=self.dimensions,
            usage={"total_tokens": sum(len(t.split()) for t in texts)},
            metadata={"batch_size": self._batch_size},
        )
