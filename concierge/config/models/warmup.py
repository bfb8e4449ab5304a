"""Speculative execution and budget configuration."""

from pydantic import BaseModel, Field


class WarmupConfig(BaseModel):
    """Engine defaults for warmup and daily spend.

    Tenants may override budget and minimum hit rate.
    """

    enabled: bool = Field(default=True, description="Warmup enabled for tenants by default")
    daily_budget_usd: float = Field(
        default=5.00,
        ge=0.0,
        description="Default daily Tier3 budget per tenant",
    )
    minimum_hit_rate: float = Field(
        default=0.30,
        ge=0.0,
        le=1.0,
        description="Hit rate below which warmup is auto-disabled",
    )
    hit_rate_window_days: int = Field(
        default=7,
        gt=0,
        description="Rolling window inspected by the circuit breaker",
    )
    hit_rate_min_days: int = Field(
        default=3,
        gt=0,
        description="Days with warmup activity required before the breaker can trip",
    )
    cancel_grace_seconds: float = Field(
        default=0.05,
        ge=0.0,
        description="How long a cancelled Tier3 task may take to wind down",
    )
