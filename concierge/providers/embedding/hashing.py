"""Feature-hashing embedding provider.

Maps text to a sparse bag of word unigrams, word bigrams and character
trigrams hashed into a fixed-width vector. Needs no model download and is
fully deterministic, which makes it the default for the semantic tier.
All components are non-negative, so cosine similarity lands in [0, 1].
"""

import hashlib
from typing import Any

import numpy as np

from concierge.providers.embedding.base import EmbeddingProvider, EmbeddingResponse

UNIGRAM_WEIGHT = 1.0
BIGRAM_WEIGHT = 0.5
TRIGRAM_WEIGHT = 0.3


class HashingEmbeddingProvider(EmbeddingProvider):
    """Deterministic n-gram hashing embeddings."""

    def __init__(self, dimensions: int = 512, model_name: str = "hashing-ngram"):
        if dimensions <= 0:
            raise ValueError("dimensions must be positive")
        self._dimensions = dimensions
        self._model_name = model_name

    @property
    def provider_name(self) -> str:
        return "hashing"

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def _bucket(self, feature: str) -> int:
        digest = hashlib.blake2b(feature.encode("utf-8"), digest_size=8).digest()
        return int.from_bytes(digest, "little") % self._dimensions

    def _features(self, text: str) -> list[tuple[str, float]]:
        words = text.lower().split()
        features: list[tuple[str, float]] = [(f"w:{w}", UNIGRAM_WEIGHT) for w in words]
        features.extend(
            (f"b:{a} {b}", BIGRAM_WEIGHT) for a, b in zip(words, words[1:])
        )
        for word in words:
            padded = f"#{word}#"
            features.extend(
                (f"c:{padded[i:i + 3]}", TRIGRAM_WEIGHT) for i in range(len(padded) - 2)
            )
        return features

    def encode(self, text: str) -> np.ndarray:
        """Return the L2-normalized vector for text."""
        vector = np.zeros(self._dimensions, dtype=np.float64)
        for feature, weight in self._features(text):
            vector[self._bucket(feature)] += weight

        norm = np.linalg.norm(vector)
        if norm > 0:
            vector /= norm
        return vector

    async def embed(
        self,
        texts: list[str],
        *,
        model: str | None = None,  # noqa: ARG002
        **kwargs: Any,  # noqa: ARG002
    ) -> EmbeddingResponse:
        embeddings = [self.encode(text).tolist() for text in texts]
        return EmbeddingResponse(
            embeddings=embeddings,
            model=self._model_name,
            dimensions=self._dimensions,
            usage={"total_tokens": sum(len(t.split()) for t in texts)},
        )
