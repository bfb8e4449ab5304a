"""In-memory implementation of LedgerStore."""

from datetime import date

from concierge.ledger.models import (
    LearnedPattern,
    LedgerDelta,
    LedgerEntry,
    PatternKey,
    PatternObservation,
)
from concierge.ledger.store import LedgerStore
from concierge.utils.clock import utc_now


class InMemoryLedgerStore(LedgerStore):
    """Dict-backed ledger store for testing and development.

    Methods contain no awaits between read and write, so each call is
    atomic on the event loop.
    """

    def __init__(self) -> None:
        self._entries: dict[tuple[str, date], LedgerEntry] = {}
        self._observations: dict[PatternKey, PatternObservation] = {}
        self._disabled: dict[str, str | None] = {}
        self.write_calls = 0

    async def save_ledger_entry(self, entry: LedgerEntry) -> None:
        self.write_calls += 1
        self._entries[(entry.tenant_id, entry.day)] = entry.model_copy()

    async def apply_ledger_delta(self, delta: LedgerDelta) -> LedgerEntry:
        self.write_calls += 1
        key = (delta.tenant_id, delta.day)
        current = self._entries.get(key) or LedgerEntry(tenant_id=delta.tenant_id, day=delta.day)
        entry = delta.apply_to(current, utc_now())
        self._entries[key] = entry
        return entry.model_copy()

    async def reserve_budget(
        self,
        tenant_id: str,
        day: date,
        amount_usd: float,
        budget_usd: float,
    ) -> float | None:
        key = (tenant_id, day)
        entry = self._entries.get(key) or LedgerEntry(tenant_id=tenant_id, day=day)
        remaining = budget_usd - entry.total_cost_usd - entry.reserved_usd
        if remaining <= 0 or amount_usd > remaining:
            return None
        self._entries[key] = entry.model_copy(
            update={"reserved_usd": entry.reserved_usd + amount_usd, "updated_at": utc_now()}
        )
        return remaining - amount_usd

    async def get_ledger_entry(self, tenant_id: str, day: date) -> LedgerEntry | None:
        entry = self._entries.get((tenant_id, day))
        return entry.model_copy() if entry else None

    async def list_ledger_entries(
        self,
        tenant_id: str,
        start: date,
        end: date,
    ) -> list[LedgerEntry]:
        entries = [
            e.model_copy()
            for (tid, day), e in self._entries.items()
            if tid == tenant_id and start <= day <= end
        ]
        return sorted(entries, key=lambda e: e.day)

    async def record_observation(self, pattern: LearnedPattern) -> PatternObservation:
        key = pattern.key
        now = utc_now()
        observation = self._observations.get(key)
        if observation is None:
            observation = PatternObservation(key=key, first_seen=now)
            self._observations[key] = observation

        observation.count += 1
        observation.max_confidence = max(observation.max_confidence, pattern.confidence)
        observation.last_seen = now
        observation.pattern = pattern
        return observation.model_copy()

    async def list_observations(
        self,
        template_id: str | None = None,
        promoted: bool | None = None,
    ) -> list[PatternObservation]:
        return [
            o.model_copy()
            for o in self._observations.values()
            if (template_id is None or o.key.template_id == template_id)
            and (promoted is None or o.promoted == promoted)
        ]

    async def promote_pattern(self, pattern: LearnedPattern) -> bool:
        key = pattern.key
        observation = self._observations.get(key)
        if observation is None:
            observation = PatternObservation(
                key=key,
                count=1,
                max_confidence=pattern.confidence,
                pattern=pattern,
            )
            self._observations[key] = observation
        if observation.promoted:
            return False
        observation.promoted = True
        return True

    async def set_warmup_disabled(
        self,
        tenant_id: str,
        disabled: bool,
        reason: str | None = None,
    ) -> None:
        if disabled:
            self._disabled[tenant_id] = reason
        else:
            self._disabled.pop(tenant_id, None)

    async def get_warmup_disabled(self, tenant_id: str) -> bool:
        return tenant_id in self._disabled
