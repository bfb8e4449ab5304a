"""Routing result and call-session models."""

from datetime import datetime
from enum import Enum, IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from concierge.catalog.models import Scenario
from concierge.ledger.models import WarmupState


class Tier(IntEnum):
    """Matching tiers, cheapest first."""

    RULE = 1
    SEMANTIC = 2
    LLM = 3


class MatchMethod(str, Enum):
    """How a routing decision was reached.

    Matched outcomes:
    - EXACT: cleaned utterance equals a trigger
    - KEYWORD / REGEX: rule tier scoring
    - SEMANTIC: similarity tier
    - LLM: the language model picked a scenario

    Unmatched outcomes:
    - LLM_ANSWER: the language model answered without a scenario
    - NO_MATCH: no tier cleared its threshold
    - BUDGET_EXHAUSTED / TIER3_DISABLED: LLM tier skipped
    - TIER2_TIMEOUT / TIER2_FAILED / TIER3_TIMEOUT / TIER3_FAILED: tier unavailable
    - CONFIGURATION_ERROR / INTERNAL_ERROR: routing aborted
    """

    EXACT = "exact_match"
    KEYWORD = "keyword"
    REGEX = "regex"
    SEMANTIC = "semantic"
    LLM = "llm"
    LLM_ANSWER = "llm_answer"
    NO_MATCH = "no_match"
    BUDGET_EXHAUSTED = "budget_exhausted"
    TIER3_DISABLED = "tier3_disabled"
    TIER2_TIMEOUT = "tier2_timeout"
    TIER2_FAILED = "tier2_failed"
    TIER3_TIMEOUT = "tier3_timeout"
    TIER3_FAILED = "tier3_failed"
    CONFIGURATION_ERROR = "configuration_error"
    INTERNAL_ERROR = "internal_error"


class MatchResult(BaseModel):
    """Outcome of routing one utterance."""

    model_config = ConfigDict(frozen=True)

    matched: bool = Field(..., description="Whether a scenario was selected")
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    scenario: Scenario | None = Field(default=None)
    tier: Tier = Field(..., description="Tier that produced the outcome")
    cost_usd: float = Field(default=0.0, ge=0.0, description="LLM spend attributed to the answer")
    latency_ms: int = Field(default=0, ge=0)
    method: MatchMethod = Field(...)
    reply: str | None = Field(default=None, description="Text for the caller-facing layer")
    routing_id: str | None = Field(default=None)
    warmup_state: WarmupState | None = Field(default=None)
    tier_scores: dict[int, float] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_invariants(self) -> "MatchResult":
        if self.tier != Tier.LLM and self.cost_usd != 0:
            raise ValueError("Only the LLM tier can carry cost")
        if self.warmup_state == WarmupState.CANCELLED and self.cost_usd != 0:
            raise ValueError("A cancelled warmup never carries cost")
        if self.matched and self.scenario is None:
            raise ValueError("A matched result needs a scenario")
        return self

    @property
    def scenario_id(self) -> str | None:
        return self.scenario.id if self.scenario else None

    @property
    def template_id(self) -> str | None:
        return self.scenario.template_id if self.scenario else None


class CallSession(BaseModel):
    """Per-call state the router reads and updates.

    Supplied by the caller-facing layer. ``entities`` is opaque to the
    engine apart from precondition checks.
    """

    model_config = ConfigDict(validate_assignment=True)

    call_id: str = Field(..., min_length=1)
    entities: dict[str, Any] = Field(default_factory=dict)
    last_used_at: dict[str, datetime] = Field(default_factory=dict)
    reply_cursor: dict[str, int] = Field(default_factory=dict)
    turn: int = Field(default=0, ge=0)

    def mark_used(self, scenario_id: str, at: datetime) -> None:
        self.last_used_at = {**self.last_used_at, scenario_id: at}
