"""Tier1: deterministic rule-based matching.

Each eligible scenario is scored from its trigger phrases and regexes:

- Trigger overlap: per trigger, 0.7 x trigger coverage + 0.3 x utterance
  coverage (split configurable). A trigger appearing verbatim covers
  itself fully; otherwise coverage is the share of the trigger's own
  BM25 score that the utterance's terms reach, scored against the pool's
  trigger corpus so that terms shared by many triggers count for less.
  The best trigger counts.
- Regex: full credit if any regex trigger matches.
- The two are blended by weight over the signals the scenario defines.
- Urgent scenarios get an additive, capped urgency-keyword boost.

An utterance equal to a normalized trigger scores 1.0 outright.
"""

import re

from concierge.catalog.models import UrgencyKeyword
from concierge.catalog.pool import ScenarioPool
from concierge.config.models.routing import Tier1ScoringConfig
from concierge.routing.gates import GateContext, compile_pattern, eligible
from concierge.routing.index import IndexedScenario, PoolIndexCache, keyword_terms
from concierge.routing.models import MatchMethod, Tier
from concierge.routing.selection import SCORE_PRECISION, ScoredScenario, TierOutcome, select


class RuleMatcher:
    """Keyword/regex scorer with priority tie-break and gating.

    Synchronous and free of I/O. Unmatched is a normal outcome; malformed
    input yields an unmatched result, never an exception.
    """

    def __init__(
        self,
        config: Tier1ScoringConfig | None = None,
        index_cache: PoolIndexCache | None = None,
    ) -> None:
        self._config = config or Tier1ScoringConfig()
        self._indexes = index_cache or PoolIndexCache(
            self._config.min_term_length, k1=self._config.k1, b=self._config.b
        )

    def match(
        self,
        cleaned: str,
        pool: ScenarioPool,
        threshold: float,
        ctx: GateContext | None = None,
    ) -> TierOutcome:
        """Best scenario at or above threshold, ties broken by priority then id."""
        cleaned = cleaned.strip()
        if not cleaned:
            return select([], threshold, Tier.RULE)

        ctx = ctx or GateContext()
        index = self._indexes.get(pool)
        candidates = [
            self.score(cleaned, entry, pool.urgency_keywords)
            for entry in eligible(cleaned, index.entries, ctx)
        ]
        return select([c for c in candidates if c.score > 0], threshold, Tier.RULE)

    def score(
        self,
        cleaned: str,
        entry: IndexedScenario,
        urgency_keywords: tuple[UrgencyKeyword, ...] = (),
    ) -> ScoredScenario:
        """Score one scenario against a normalized utterance."""
        scenario = entry.scenario
        if cleaned in entry.triggers:
            return ScoredScenario(scenario, 1.0, MatchMethod.EXACT, {"keyword": 1.0})

        keyword = self._keyword_score(cleaned, entry)
        regex = self._regex_score(cleaned, entry)

        weights = 0.0
        weighted = 0.0
        if entry.triggers:
            weights += self._config.keyword_weight
            weighted += self._config.keyword_weight * keyword
        if scenario.regex_triggers:
            weights += self._config.regex_weight
            weighted += self._config.regex_weight * regex
        base = weighted / weights if weights > 0 else 0.0

        boost = self._urgency_boost(cleaned, urgency_keywords) if scenario.is_urgent else 0.0
        total = round(min(1.0, base + boost), SCORE_PRECISION)

        method = MatchMethod.REGEX if regex > 0 and keyword == 0 else MatchMethod.KEYWORD
        return ScoredScenario(
            scenario,
            total,
            method,
            {"keyword": keyword, "regex": regex, "urgency": boost},
        )

    def _keyword_score(self, cleaned: str, entry: IndexedScenario) -> float:
        query = list(dict.fromkeys(keyword_terms(cleaned, self._config.min_term_length)))
        utterance_terms = set(query)
        doc_ids = [doc_id for doc_id in entry.trigger_docs if doc_id is not None]
        coverage = dict(zip(doc_ids, entry.corpus.coverage(query, doc_ids))) if doc_ids else {}
        padded = f" {cleaned} "
        forward_weight = self._config.forward_weight

        best = 0.0
        for trigger, terms, doc_id in zip(entry.triggers, entry.trigger_terms, entry.trigger_docs):
            phrase_hit = f" {trigger} " in padded
            if phrase_hit:
                forward = 1.0
            else:
                forward = coverage.get(doc_id, 0.0)

            if forward == 0.0:
                continue

            if utterance_terms:
                reverse = len(utterance_terms & terms) / len(utterance_terms)
            else:
                reverse = 1.0 if phrase_hit else 0.0

            best = max(best, forward_weight * forward + (1 - forward_weight) * reverse)
        return best

    def _regex_score(self, cleaned: str, entry: IndexedScenario) -> float:
        for pattern in entry.scenario.regex_triggers:
            if compile_pattern(pattern).search(cleaned):
                return 1.0
        return 0.0

    def _urgency_boost(self, cleaned: str, keywords: tuple[UrgencyKeyword, ...]) -> float:
        boost = 0.0
        for keyword in keywords:
            if re.search(rf"(?<!\w){re.escape(keyword.word)}(?!\w)", cleaned):
                boost += keyword.weight
        return min(boost, self._config.urgency_cap)
