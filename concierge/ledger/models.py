"""Ledger models: daily warmup/cost counters and learned patterns."""

from datetime import date, datetime
from enum import Enum
from typing import ClassVar, NamedTuple

from pydantic import BaseModel, ConfigDict, Field

from concierge.utils.clock import utc_now
from concierge.utils.text import clean_text


class WarmupState(str, Enum):
    """States of a speculative Tier3 session.

    - IDLE: created, no decision yet
    - TRIGGERED: decision made to warm up
    - RACING: Tier2 and Tier3 running concurrently
    - USED: Tier3 result answered the caller
    - CANCELLED: Tier2 won, Tier3 result discarded
    - FAILED: Tier3 errored or timed out
    """

    IDLE = "idle"
    TRIGGERED = "triggered"
    RACING = "racing"
    USED = "used"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (WarmupState.USED, WarmupState.CANCELLED, WarmupState.FAILED)


class LedgerEntry(BaseModel):
    """Per-tenant, per-day warmup and spend counters.

    ``reserved_usd`` is budget held by in-flight Tier3 calls of every
    process sharing the store.
    """

    model_config = ConfigDict(validate_assignment=True)

    tenant_id: str
    day: date
    triggered_count: int = Field(default=0, ge=0)
    used_count: int = Field(default=0, ge=0)
    cancelled_count: int = Field(default=0, ge=0)
    failed_count: int = Field(default=0, ge=0)
    tier3_calls: int = Field(default=0, ge=0, description="Billable LLM calls, warmup or not")
    total_cost_usd: float = Field(default=0.0, ge=0.0)
    reserved_usd: float = Field(default=0.0, ge=0.0)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def hit_rate(self) -> float | None:
        """used / triggered, None when nothing was triggered."""
        if self.triggered_count == 0:
            return None
        return self.used_count / self.triggered_count


class LedgerDelta(BaseModel):
    """Increments to one tenant-day's counters.

    Stores add deltas atomically, so concurrent writers never overwrite
    each other's counts.
    """

    COUNTERS: ClassVar[tuple[str, ...]] = (
        "triggered_count",
        "used_count",
        "cancelled_count",
        "failed_count",
        "tier3_calls",
    )
    AMOUNTS: ClassVar[tuple[str, ...]] = ("total_cost_usd", "reserved_usd")

    tenant_id: str
    day: date
    triggered_count: int = 0
    used_count: int = 0
    cancelled_count: int = 0
    failed_count: int = 0
    tier3_calls: int = 0
    total_cost_usd: float = 0.0
    reserved_usd: float = 0.0

    def merge(self, other: "LedgerDelta") -> None:
        for name in self.COUNTERS + self.AMOUNTS:
            setattr(self, name, getattr(self, name) + getattr(other, name))

    def apply_to(self, entry: LedgerEntry, at: datetime | None = None) -> LedgerEntry:
        """Copy of ``entry`` with the increments added; amounts floor at zero."""
        update: dict[str, object] = {
            name: getattr(entry, name) + getattr(self, name) for name in self.COUNTERS
        }
        for name in self.AMOUNTS:
            update[name] = max(0.0, getattr(entry, name) + getattr(self, name))
        if at is not None:
            update["updated_at"] = at
        return entry.model_copy(update=update)


class PatternKind(str, Enum):
    """What a learned pattern teaches the rule tier.

    - TRIGGER: phrase -> scenario
    - SYNONYM: colloquial phrase -> canonical term
    - FILLER: word to strip before matching
    """

    TRIGGER = "trigger"
    SYNONYM = "synonym"
    FILLER = "filler"


class PatternKey(NamedTuple):
    """Identity of a pattern regardless of who discovered it or when."""

    template_id: str
    kind: str
    target: str
    phrase: str


class LearnedPattern(BaseModel):
    """A mapping discovered by the LLM tier."""

    model_config = ConfigDict(frozen=True)

    phrase: str = Field(..., min_length=1)
    kind: PatternKind = Field(default=PatternKind.TRIGGER)
    template_id: str = Field(..., description="Template that owns the target")
    mapped_scenario_id: str | None = Field(default=None, description="Target of a trigger")
    canonical: str | None = Field(default=None, description="Target of a synonym")
    confidence: float = Field(..., ge=0.0, le=1.0)
    tenant_id: str | None = Field(default=None, description="Tenant whose call produced it")
    discovered_at: datetime = Field(default_factory=utc_now)
    source: str = Field(default="llm")

    @property
    def key(self) -> PatternKey:
        target = {
            PatternKind.TRIGGER: self.mapped_scenario_id or "",
            PatternKind.SYNONYM: clean_text(self.canonical or ""),
            PatternKind.FILLER: "",
        }[self.kind]
        return PatternKey(self.template_id, self.kind.value, target, clean_text(self.phrase))


class PatternObservation(BaseModel):
    """Aggregated sightings of one pattern."""

    key: PatternKey
    count: int = Field(default=0, ge=0)
    max_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    first_seen: datetime = Field(default_factory=utc_now)
    last_seen: datetime = Field(default_factory=utc_now)
    promoted: bool = False
    pattern: LearnedPattern | None = Field(default=None, description="Most recent sighting")
