"""LedgerStore abstract interface."""

from abc import ABC, abstractmethod
from datetime import date

from concierge.ledger.models import (
    LearnedPattern,
    LedgerDelta,
    LedgerEntry,
    PatternObservation,
)


class LedgerStore(ABC):
    """Durable home of the daily counters, budget holds and learned patterns.

    Several engine processes may share one store. Counter updates arrive
    as deltas and budget holds are granted by the store itself, so every
    process sees the same spend and the daily cap holds across them.
    """

    @abstractmethod
    async def save_ledger_entry(self, entry: LedgerEntry) -> None:
        """Replace the full counters for a tenant-day (seeding and repair)."""
        pass

    @abstractmethod
    async def apply_ledger_delta(self, delta: LedgerDelta) -> LedgerEntry:
        """Atomically add a delta to a tenant-day and return the new counters."""
        pass

    @abstractmethod
    async def reserve_budget(
        self,
        tenant_id: str,
        day: date,
        amount_usd: float,
        budget_usd: float,
    ) -> float | None:
        """Atomically hold ``amount_usd`` if spend plus holds leave room for it.

        Returns:
            Budget left after the hold, or None when refused
        """
        pass

    @abstractmethod
    async def get_ledger_entry(self, tenant_id: str, day: date) -> LedgerEntry | None:
        """Get the counters for one tenant-day."""
        pass

    @abstractmethod
    async def list_ledger_entries(
        self,
        tenant_id: str,
        start: date,
        end: date,
    ) -> list[LedgerEntry]:
        """Entries with start <= day <= end, oldest first."""
        pass

    @abstractmethod
    async def record_observation(self, pattern: LearnedPattern) -> PatternObservation:
        """Atomically count one sighting of a pattern."""
        pass

    @abstractmethod
    async def list_observations(
        self,
        template_id: str | None = None,
        promoted: bool | None = None,
    ) -> list[PatternObservation]:
        """List pattern observations, optionally filtered."""
        pass

    @abstractmethod
    async def promote_pattern(self, pattern: LearnedPattern) -> bool:
        """Mark a pattern promoted. Returns False if it already was."""
        pass

    @abstractmethod
    async def set_warmup_disabled(
        self,
        tenant_id: str,
        disabled: bool,
        reason: str | None = None,
    ) -> None:
        """Persist the circuit-breaker state for a tenant."""
        pass

    @abstractmethod
    async def get_warmup_disabled(self, tenant_id: str) -> bool:
        """Whether warmup is disabled for a tenant."""
        pass
