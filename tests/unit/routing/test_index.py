"""Tests for pool indexes and the trigger corpus."""

import pytest

from concierge.routing.index import PoolIndex, PoolIndexCache, TriggerCorpus
from tests.factories import (
    ScenarioFactory,
    TemplateFactory,
    TenantConfigFactory,
    build_test_pool,
)


class TestTriggerCorpus:
    """Tests for BM25 coverage over trigger phrases."""

    def test_full_trigger_covers_itself(self):
        """Should give a document full coverage from its own terms."""
        corpus = TriggerCorpus([["heater", "broken"], ["heater", "noise"]])

        assert corpus.coverage(["heater", "broken"], [0, 1]) == [
            pytest.approx(1.0),
            pytest.approx(0.208, abs=1e-3),
        ]

    def test_term_in_every_trigger_still_counts(self):
        """Should keep a positive weight for a term found in all triggers."""
        corpus = TriggerCorpus([["heater"], ["heater", "noise"], ["heater", "repair"]])

        assert corpus.idf["heater"] > 0
        assert corpus.coverage(["heater"], [0]) == [pytest.approx(1.0)]

    def test_unknown_terms(self):
        """Should give zero coverage for terms outside the corpus."""
        corpus = TriggerCorpus([["heater", "broken"]])

        assert corpus.coverage(["boiler"], [0]) == [0.0]
        assert corpus.coverage([], [0]) == [0.0]


class TestPoolIndex:
    """Tests for PoolIndex.build."""

    def test_one_document_per_trigger(self):
        """Should index every trigger with keyword terms across the pool."""
        pool = build_test_pool([
            ScenarioFactory.create(id="a", triggers=["heater broken", "no heat"]),
            ScenarioFactory.create(id="b", triggers=["heater noise", "hi"]),
        ])

        index = PoolIndex.build(pool)

        assert index.corpus.corpus_size == 3
        assert index.entries[0].trigger_docs == (0, 1)
        assert index.entries[1].trigger_docs == (2, None)
        assert index.entries[1].corpus is index.corpus

    def test_triggers_normalized_with_pool_vocabulary(self):
        """Should apply the pool's synonyms and fillers to triggers."""
        template = TemplateFactory.create(
            scenarios=[ScenarioFactory.create(triggers=["umm the AC died"])],
            filler_words={"umm"},
            synonym_map={"air conditioner": ["ac"]},
        )

        entry = PoolIndex.build(build_test_pool(template=template)).entries[0]

        assert entry.triggers == ("the air conditioner died",)
        assert entry.trigger_terms == (frozenset({"the", "air", "conditioner", "died"}),)

    def test_regex_only_pool_has_no_corpus(self):
        """Should skip the corpus when no trigger has keyword terms."""
        pool = build_test_pool([ScenarioFactory.create(triggers=[], regex_triggers=[r"\bac\b"])])

        index = PoolIndex.build(pool)

        assert index.corpus is None
        assert index.entries[0].trigger_docs == ()


class TestPoolIndexCache:
    """Tests for the index LRU."""

    def test_reuses_index_for_same_pool(self):
        """Should build once per pool object."""
        cache = PoolIndexCache()
        pool = build_test_pool()

        assert cache.get(pool) is cache.get(pool)

    def test_evicts_least_recently_used(self):
        """Should keep at most max_size indexes."""
        cache = PoolIndexCache(max_size=1)
        first = build_test_pool(tenant=TenantConfigFactory.create(tenant_id="one"))
        second = build_test_pool(tenant=TenantConfigFactory.create(tenant_id="two"))

        cache.get(first)
        cache.get(second)

        assert list(cache._indexes) == [second.key]
