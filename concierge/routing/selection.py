"""Best-of selection shared by the rule and semantic tiers."""

from dataclasses import dataclass, field

from concierge.catalog.models import Scenario
from concierge.routing.models import MatchMethod, MatchResult, Tier

SCORE_PRECISION = 6


@dataclass(frozen=True)
class ScoredScenario:
    """A scenario with its score and how the score was earned."""

    scenario: Scenario
    score: float
    method: MatchMethod
    components: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class TierOutcome:
    """Result of one tier plus the ranked candidates behind it."""

    result: MatchResult
    candidates: tuple[ScoredScenario, ...] = ()

    @property
    def best(self) -> ScoredScenario | None:
        """Highest ranked candidate, whether or not it cleared the threshold."""
        return self.candidates[0] if self.candidates else None


def rank_key(item: ScoredScenario) -> tuple[float, int, str]:
    """Higher score, then higher priority, then lower id."""
    return (-item.score, -item.scenario.priority, item.scenario.id)


def effective_threshold(threshold: float, scenario: Scenario) -> float:
    if scenario.min_confidence is None:
        return threshold
    return max(threshold, scenario.min_confidence)


def select(candidates: list[ScoredScenario], threshold: float, tier: Tier) -> TierOutcome:
    """Rank candidates and apply the threshold gate.

    The winner is the best-ranked candidate whose score reaches its
    threshold. Unmatched results carry the best score seen so callers can
    still reason about how close the tier came.
    """
    ranked = tuple(sorted(candidates, key=rank_key))
    for item in ranked:
        if item.score >= effective_threshold(threshold, item.scenario):
            return TierOutcome(
                result=MatchResult(
                    matched=True,
                    confidence=item.score,
                    scenario=item.scenario,
                    tier=tier,
                    method=item.method,
                    tier_scores={int(tier): item.score},
                ),
                candidates=ranked,
            )

    best_score = ranked[0].score if ranked else 0.0
    return TierOutcome(
        result=MatchResult(
            matched=False,
            confidence=best_score,
            tier=tier,
            method=MatchMethod.NO_MATCH,
            tier_scores={int(tier): best_score},
        ),
        candidates=ranked,
    )
