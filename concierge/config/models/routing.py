"""Router and Tier1 scoring configuration models."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

ReplySelectionPolicy = Literal["sequential", "random", "weighted"]


class ThresholdDefaults(BaseModel):
    """Hard-coded engine default thresholds.

    These sit at the bottom of the threshold precedence chain: tenant
    override, then the shared global config, then these values.
    """

    tier1: float = Field(default=0.80, ge=0.0, le=1.0, description="Tier1 match threshold")
    tier2: float = Field(default=0.60, ge=0.0, le=1.0, description="Tier2 match threshold")
    warmup_trigger: float = Field(
        default=0.30,
        ge=0.0,
        le=1.0,
        description="Lowest Tier1 score that still starts a speculative Tier3",
    )
    tier3_min_confidence: float = Field(
        default=0.60,
        ge=0.0,
        le=1.0,
        description="Minimum LLM confidence to accept its scenario choice",
    )


class ThresholdOverrides(BaseModel):
    """Optional threshold values layered over engine defaults.

    Used both for the shared global thresholds and for per-tenant
    overrides. Values are range-checked when thresholds are resolved for a
    call so that a malformed setting fails that call's routing decision
    instead of the config load.
    """

    model_config = ConfigDict(frozen=True)

    tier1: float | None = None
    tier2: float | None = None
    warmup_trigger: float | None = None
    tier3_min_confidence: float | None = None


class RoutingConfig(BaseModel):
    """Router configuration."""

    defaults: ThresholdDefaults = Field(
        default_factory=ThresholdDefaults,
        description="Engine default thresholds",
    )
    global_thresholds: ThresholdOverrides = Field(
        default_factory=ThresholdOverrides,
        description="Shared thresholds for tenants that inherit the global config",
    )
    tier2_timeout_seconds: float = Field(
        default=1.5,
        gt=0,
        description="Timeout for the semantic tier",
    )
    tier3_timeout_seconds: float = Field(
        default=6.0,
        gt=0,
        description="Timeout for the LLM tier",
    )
    fallback_reply: str = Field(
        default="Let me connect you with someone who can help.",
        description="Reply used when no tier produced one",
    )
    reply_selection: ReplySelectionPolicy = Field(
        default="weighted",
        description="How a reply variant is picked",
    )
    pool_cache_size: int = Field(
        default=256,
        gt=0,
        description="Maximum tenants with a cached scenario pool",
    )


class Tier1ScoringConfig(BaseModel):
    """Tunable constants for rule-based scoring."""

    k1: float = Field(
        default=1.5,
        gt=0,
        description="BM25 term-frequency saturation constant",
    )
    b: float = Field(
        default=0.75,
        ge=0.0,
        le=1.0,
        description="BM25 trigger length normalization",
    )
    keyword_weight: float = Field(default=0.75, ge=0.0, description="Trigger overlap weight")
    regex_weight: float = Field(default=0.25, ge=0.0, description="Regex trigger weight")
    forward_weight: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Share of overlap score from trigger coverage (rest from utterance coverage)",
    )
    urgency_cap: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Maximum additive urgency boost",
    )
    min_term_length: int = Field(
        default=3,
        ge=1,
        description="Shortest token counted as a keyword",
    )

    @model_validator(mode="after")
    def _check_weights(self) -> "Tier1ScoringConfig":
        if self.keyword_weight + self.regex_weight <= 0:
            raise ValueError("keyword_weight and regex_weight cannot both be zero")
        return self
