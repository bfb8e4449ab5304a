"""Tiered intent matching: normalizer, rule, semantic and LLM tiers, warmup and router."""

from concierge.routing.models import CallSession, MatchMethod, MatchResult, Tier
from concierge.routing.normalizer import normalize
from concierge.routing.replies import ReplySelector
from concierge.routing.router import Router
from concierge.routing.thresholds import EffectiveThresholds, resolve_thresholds
from concierge.routing.tier1 import RuleMatcher
from concierge.routing.tier2 import SemanticMatcher
from concierge.routing.tier3 import CancellationToken, LLMFallback, Tier3Decision
from concierge.routing.warmup import (
    InvalidWarmupTransition,
    WarmupDecision,
    WarmupScheduler,
    WarmupSession,
)

__all__ = [
    "CallSession",
    "CancellationToken",
    "EffectiveThresholds",
    "InvalidWarmupTransition",
    "LLMFallback",
    "MatchMethod",
    "MatchResult",
    "ReplySelector",
    "Router",
    "RuleMatcher",
    "SemanticMatcher",
    "Tier",
    "Tier3Decision",
    "WarmupDecision",
    "WarmupScheduler",
    "WarmupSession",
    "normalize",
    "resolve_thresholds",
]
