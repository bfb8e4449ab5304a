"""Eligibility gates shared by the rule and semantic tiers.

A scenario is considered only if no negative trigger matches, every
precondition holds for the call's entity state and it is not cooling
down. A gated scenario is removed, not penalized.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from typing import Any

from concierge.catalog.models import Scenario
from concierge.routing.index import IndexedScenario
from concierge.routing.models import CallSession
from concierge.utils.clock import utc_now


@lru_cache(maxsize=1024)
def compile_pattern(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


@dataclass(frozen=True)
class GateContext:
    """Call-session inputs to the gates."""

    entities: Mapping[str, Any] = field(default_factory=dict)
    last_used_at: Mapping[str, datetime] = field(default_factory=dict)
    now: datetime = field(default_factory=utc_now)

    @classmethod
    def from_session(cls, session: CallSession | None, now: datetime) -> "GateContext":
        if session is None:
            return cls(now=now)
        return cls(entities=session.entities, last_used_at=session.last_used_at, now=now)


def is_vetoed(cleaned: str, entry: IndexedScenario) -> bool:
    """A negative trigger is a substring of, or a negative regex matches, the text."""
    if any(negative in cleaned for negative in entry.negatives):
        return True
    return any(
        compile_pattern(pattern).search(cleaned)
        for pattern in entry.scenario.negative_regex_triggers
    )


def entity_present(entities: Mapping[str, Any], key: str) -> bool:
    """None, empty string and False count as absent."""
    value = entities.get(key)
    return value is not None and value != "" and value is not False


def preconditions_met(scenario: Scenario, entities: Mapping[str, Any]) -> bool:
    return all(
        entity_present(entities, key) == required
        for key, required in scenario.preconditions.items()
    )


def in_cooldown(scenario: Scenario, last_used_at: Mapping[str, datetime], now: datetime) -> bool:
    if scenario.cooldown_seconds <= 0:
        return False
    last = last_used_at.get(scenario.id)
    if last is None:
        return False
    return (now - last).total_seconds() < scenario.cooldown_seconds


def gate_reason(cleaned: str, entry: IndexedScenario, ctx: GateContext) -> str | None:
    """Why a scenario is ineligible, or None if it passes every gate."""
    if not entry.scenario.is_live:
        return "not_live"
    if is_vetoed(cleaned, entry):
        return "negative_trigger"
    if not preconditions_met(entry.scenario, ctx.entities):
        return "precondition"
    if in_cooldown(entry.scenario, ctx.last_used_at, ctx.now):
        return "cooldown"
    return None


def eligible(
    cleaned: str,
    entries: tuple[IndexedScenario, ...],
    ctx: GateContext,
) -> list[IndexedScenario]:
    return [entry for entry in entries if gate_reason(cleaned, entry, ctx) is None]
