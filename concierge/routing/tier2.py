"""Tier2: semantic similarity matching.

Each scenario is represented by its normalized triggers, its description
and its name. A scenario's score is the best cosine similarity between the
utterance embedding and any of its representations, clamped to [0, 1].
The same eligibility gates as the rule tier apply.
"""

from collections import OrderedDict

from concierge.catalog.pool import ScenarioPool
from concierge.observability.logging import get_logger
from concierge.providers.embedding.base import EmbeddingProvider
from concierge.routing.gates import GateContext, eligible
from concierge.routing.index import PoolIndexCache
from concierge.routing.models import MatchMethod, Tier
from concierge.routing.selection import SCORE_PRECISION, ScoredScenario, TierOutcome, select
from concierge.utils.vector import similarity_score

logger = get_logger(__name__)


class EmbeddingCache:
    """LRU of text embeddings.

    Embeddings are a pure function of text for a given provider, so
    entries never go stale.
    """

    def __init__(self, max_size: int = 10000) -> None:
        self._max_size = max_size
        self._vectors: OrderedDict[str, list[float]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._vectors)

    def get(self, text: str) -> list[float] | None:
        vector = self._vectors.get(text)
        if vector is not None:
            self._vectors.move_to_end(text)
        return vector

    def put(self, text: str, vector: list[float]) -> None:
        self._vectors[text] = vector
        self._vectors.move_to_end(text)
        while len(self._vectors) > self._max_size:
            self._vectors.popitem(last=False)


class SemanticMatcher:
    """Vector-similarity scorer over a scenario pool.

    Provider failures propagate; the caller treats them as this tier
    failing.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        index_cache: PoolIndexCache | None = None,
        cache: EmbeddingCache | None = None,
    ) -> None:
        self._provider = provider
        self._indexes = index_cache or PoolIndexCache()
        self._cache = cache or EmbeddingCache()

    @property
    def provider(self) -> EmbeddingProvider:
        return self._provider

    async def match(
        self,
        cleaned: str,
        pool: ScenarioPool,
        threshold: float,
        ctx: GateContext | None = None,
    ) -> TierOutcome:
        """Best scenario at or above threshold, ties broken by priority then id."""
        cleaned = cleaned.strip()
        if not cleaned:
            return select([], threshold, Tier.SEMANTIC)

        ctx = ctx or GateContext()
        entries = eligible(cleaned, self._indexes.get(pool).entries, ctx)
        if not entries:
            return select([], threshold, Tier.SEMANTIC)

        texts = [cleaned]
        for entry in entries:
            texts.extend(entry.representations)
        vectors = await self._embed(texts)

        query = vectors[cleaned]
        candidates = []
        for entry in entries:
            if not entry.representations:
                continue
            score = max(similarity_score(query, vectors[text]) for text in entry.representations)
            candidates.append(
                ScoredScenario(
                    entry.scenario,
                    round(score, SCORE_PRECISION),
                    MatchMethod.SEMANTIC,
                    {"similarity": score},
                )
            )
        return select(candidates, threshold, Tier.SEMANTIC)

    async def _embed(self, texts: list[str]) -> dict[str, list[float]]:
        vectors: dict[str, list[float]] = {}
        missing: list[str] = []
        for text in dict.fromkeys(texts):
            cached = self._cache.get(text)
            if cached is None:
                missing.append(text)
            else:
                vectors[text] = cached

        if missing:
            response = await self._provider.embed(missing)
            for text, vector in zip(missing, response.embeddings):
                self._cache.put(text, vector)
                vectors[text] = vector
            logger.debug(
                "embeddings_computed",
                count=len(missing),
                cached=len(vectors) - len(missing),
            )
        return vectors
