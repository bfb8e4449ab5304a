"""Match-ready view of a scenario pool.

Triggers and negative triggers are normalized with the pool's own filler
words and synonyms so that they line up with normalized utterances.
Every trigger with keyword terms becomes one document of the pool's BM25
corpus. Indexes are derived purely from the pool and cached by pool key.
"""

import math
from collections import OrderedDict
from dataclasses import dataclass

from rank_bm25 import BM25Okapi

from concierge.catalog.models import Scenario
from concierge.catalog.pool import PoolKey, ScenarioPool
from concierge.routing.normalizer import normalize
from concierge.utils.text import clean_text


class TriggerCorpus(BM25Okapi):
    """BM25Okapi over the trigger phrases of one pool.

    Uses the non-negative IDF ``log(1 + (N - n + 0.5) / (n + 0.5))``: a
    term found in most triggers still weighs something, just little.
    """

    def __init__(self, documents: list[list[str]], k1: float = 1.5, b: float = 0.75) -> None:
        super().__init__(documents, k1=k1, b=b)
        self._full_scores = [
            self.get_batch_scores(list(dict.fromkeys(doc)), [doc_id])[0]
            for doc_id, doc in enumerate(documents)
        ]

    def _calc_idf(self, nd):
        for word, freq in nd.items():
            self.idf[word] = math.log(1 + (self.corpus_size - freq + 0.5) / (freq + 0.5))
        self.average_idf = sum(self.idf.values()) / len(self.idf) if self.idf else 0.0

    def coverage(self, terms: list[str], doc_ids: list[int]) -> list[float]:
        """Share of each document's own BM25 score reached by ``terms``, in [0, 1]."""
        if not terms or not doc_ids:
            return [0.0] * len(doc_ids)
        scores = self.get_batch_scores(terms, doc_ids)
        return [
            min(1.0, score / self._full_scores[doc_id]) if self._full_scores[doc_id] > 0 else 0.0
            for score, doc_id in zip(scores, doc_ids)
        ]


@dataclass(frozen=True)
class IndexedScenario:
    """A scenario with its match inputs precomputed.

    ``trigger_docs`` holds, per trigger, its document id in ``corpus`` or
    None when the trigger has no keyword terms.
    """

    scenario: Scenario
    triggers: tuple[str, ...]
    trigger_terms: tuple[frozenset[str], ...]
    trigger_docs: tuple[int | None, ...]
    negatives: tuple[str, ...]
    representations: tuple[str, ...]
    corpus: TriggerCorpus | None = None


def keyword_terms(text: str, min_term_length: int) -> list[str]:
    return [tok for tok in text.split() if len(tok) >= min_term_length]


@dataclass(frozen=True)
class PoolIndex:
    key: PoolKey
    entries: tuple[IndexedScenario, ...]
    corpus: TriggerCorpus | None = None

    @classmethod
    def build(
        cls,
        pool: ScenarioPool,
        min_term_length: int = 3,
        k1: float = 1.5,
        b: float = 0.75,
    ) -> "PoolIndex":
        def _norm(text: str) -> str:
            return normalize(text, pool.filler_words, pool.synonym_map)

        documents: list[list[str]] = []
        staged = []
        for scenario in pool.scenarios:
            triggers = tuple(dict.fromkeys(t for t in (_norm(x) for x in scenario.triggers) if t))
            doc_ids: list[int | None] = []
            for trigger in triggers:
                terms = keyword_terms(trigger, min_term_length)
                if terms:
                    doc_ids.append(len(documents))
                    documents.append(terms)
                else:
                    doc_ids.append(None)
            staged.append((scenario, triggers, tuple(doc_ids)))

        corpus = TriggerCorpus(documents, k1=k1, b=b) if documents else None

        entries = []
        for scenario, triggers, doc_ids in staged:
            negatives = tuple(
                dict.fromkeys(n for n in (_norm(x) for x in scenario.negative_triggers) if n)
            )
            representations = list(triggers)
            if scenario.description:
                representations.append(_norm(scenario.description))
            representations.append(clean_text(scenario.name))
            entries.append(
                IndexedScenario(
                    scenario=scenario,
                    triggers=triggers,
                    trigger_terms=tuple(
                        frozenset(keyword_terms(t, min_term_length)) for t in triggers
                    ),
                    trigger_docs=doc_ids,
                    negatives=negatives,
                    representations=tuple(dict.fromkeys(r for r in representations if r)),
                    corpus=corpus,
                )
            )
        return cls(key=pool.key, entries=tuple(entries), corpus=corpus)


class PoolIndexCache:
    """Small LRU of pool indexes keyed by pool key.

    An entry is reused only for the very pool object it was built from.
    """

    def __init__(
        self,
        min_term_length: int = 3,
        max_size: int = 256,
        k1: float = 1.5,
        b: float = 0.75,
    ) -> None:
        self._min_term_length = min_term_length
        self._max_size = max_size
        self._k1 = k1
        self._b = b
        self._indexes: OrderedDict[PoolKey, tuple[ScenarioPool, PoolIndex]] = OrderedDict()

    def get(self, pool: ScenarioPool) -> PoolIndex:
        cached = self._indexes.get(pool.key)
        if cached is None or cached[0] is not pool:
            index = PoolIndex.build(pool, self._min_term_length, self._k1, self._b)
            self._indexes[pool.key] = (pool, index)
            while len(self._indexes) > self._max_size:
                self._indexes.popitem(last=False)
        else:
            index = cached[1]
            self._indexes.move_to_end(pool.key)
        return index
