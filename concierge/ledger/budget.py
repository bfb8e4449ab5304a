"""Budget ledger: per-tenant daily spend, warmup hit rate and circuit breaker.

The store holds the truth for every tenant-day and may be shared by
several engine processes. Counter updates are queued as deltas and added
by one background writer per tenant-day; budget holds are granted by the
store itself so the daily cap holds across processes. The ledger keeps
only the deltas not yet written, so its memory does not grow with days.
Store failures are logged and retried but never surface to the caller.
"""

import asyncio
from dataclasses import dataclass
from datetime import date, timedelta

from concierge.config.models.storage import StorageConfig
from concierge.config.models.warmup import WarmupConfig
from concierge.errors import StoreError
from concierge.ledger.models import LedgerDelta, LedgerEntry, WarmupState
from concierge.ledger.store import LedgerStore
from concierge.observability.logging import get_logger
from concierge.observability.metrics import (
    BUDGET_REMAINING_USD,
    LEDGER_WRITE_FAILURES,
    TIER3_COST_USD,
    WARMUP_AUTO_DISABLED,
    WARMUP_OUTCOMES,
)
from concierge.utils.clock import Clock, utc_now, utc_today

logger = get_logger(__name__)

_LedgerKey = tuple[str, date]

_WARMUP_COUNTERS = {
    WarmupState.TRIGGERED: "triggered_count",
    WarmupState.USED: "used_count",
    WarmupState.CANCELLED: "cancelled_count",
    WarmupState.FAILED: "failed_count",
}


@dataclass(frozen=True)
class Reservation:
    """Budget held for one in-flight Tier3 call."""

    tenant_id: str
    day: date
    amount_usd: float


class TenantBudget:
    """A tenant's view of the ledger, handed to the LLM tier."""

    def __init__(self, ledger: "BudgetLedger", tenant_id: str, daily_budget_usd: float) -> None:
        self._ledger = ledger
        self.tenant_id = tenant_id
        self.daily_budget_usd = daily_budget_usd

    async def remaining(self) -> float:
        return await self._ledger.remaining_budget(self.tenant_id, self.daily_budget_usd)

    async def reserve(self, amount_usd: float) -> Reservation | None:
        return await self._ledger.reserve(self.tenant_id, amount_usd, self.daily_budget_usd)

    async def settle(self, reservation: Reservation, actual_cost_usd: float) -> None:
        await self._ledger.settle(reservation, actual_cost_usd)


class BudgetLedger:
    """Per-tenant daily counters with atomic updates.

    Example:
        ledger = BudgetLedger(InMemoryLedgerStore())
        reservation = await ledger.reserve("acme", 0.002, daily_budget=5.0)
        ...
        await ledger.settle(reservation, actual_cost_usd=0.0013)
    """

    def __init__(
        self,
        store: LedgerStore,
        config: WarmupConfig | None = None,
        storage_config: StorageConfig | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._config = config or WarmupConfig()
        self._storage_config = storage_config or StorageConfig()
        self._clock = clock

        # Deltas queued, being written, and given up on after retries
        self._pending: dict[_LedgerKey, LedgerDelta] = {}
        self._inflight: dict[_LedgerKey, LedgerDelta] = {}
        self._unsaved: dict[_LedgerKey, LedgerDelta] = {}
        self._writers: dict[_LedgerKey, asyncio.Task[None]] = {}

        self._disabled: dict[str, bool] = {}
        self._breaker_checked: dict[str, date] = {}
        self._reenabled_on: dict[str, date] = {}

    @property
    def config(self) -> WarmupConfig:
        return self._config

    def today(self) -> date:
        return utc_today(self._clock)

    def budget_for(self, tenant_id: str, daily_budget_usd: float | None = None) -> TenantBudget:
        budget = self._config.daily_budget_usd if daily_budget_usd is None else daily_budget_usd
        return TenantBudget(self, tenant_id, budget)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_entry(self, tenant_id: str, day: date | None = None) -> LedgerEntry:
        """Counters for a tenant-day: the stored ones plus this process's unwritten deltas."""
        key = (tenant_id, day or self.today())
        try:
            stored = await self._store.get_ledger_entry(*key)
        except StoreError as e:
            logger.warning(
                "ledger_load_failed",
                tenant_id=tenant_id,
                day=key[1].isoformat(),
                error=str(e),
            )
            stored = None
        return self._with_unwritten(key, stored or LedgerEntry(tenant_id=tenant_id, day=key[1]))

    async def remaining_budget(
        self, tenant_id: str, daily_budget_usd: float | None = None
    ) -> float:
        """Budget left today after recorded spend and open reservations."""
        budget = self._config.daily_budget_usd if daily_budget_usd is None else daily_budget_usd
        entry = await self.get_entry(tenant_id)
        return max(0.0, budget - entry.total_cost_usd - entry.reserved_usd)

    async def hit_rate(self, tenant_id: str, day: date | None = None) -> float | None:
        """used / triggered for one day; None when nothing was triggered."""
        return (await self.get_entry(tenant_id, day)).hit_rate

    async def window_hit_rate(
        self,
        tenant_id: str,
        end: date | None = None,
        days: int | None = None,
    ) -> tuple[float | None, int]:
        """Aggregate hit rate over the days before ``end``.

        Returns:
            (hit rate or None, number of days with warmup activity)
        """
        end = end or self.today()
        days = days or self._config.hit_rate_window_days
        start = end - timedelta(days=days)
        reenabled = self._reenabled_on.get(tenant_id)
        if reenabled is not None and reenabled > start:
            start = reenabled
        last = end - timedelta(days=1)
        if last < start:
            return None, 0

        try:
            stored = await self._store.list_ledger_entries(tenant_id, start, last)
        except StoreError as e:
            logger.warning("ledger_window_load_failed", tenant_id=tenant_id, error=str(e))
            stored = []
        entries = {entry.day: entry for entry in stored}
        for key in self._unwritten_keys():
            if key[0] == tenant_id and start <= key[1] <= last and key[1] not in entries:
                entries[key[1]] = LedgerEntry(tenant_id=tenant_id, day=key[1])

        triggered = used = active_days = 0
        for day, entry in entries.items():
            entry = self._with_unwritten((tenant_id, day), entry)
            if entry.triggered_count:
                active_days += 1
                triggered += entry.triggered_count
                used += entry.used_count

        if triggered == 0:
            return None, 0
        return used / triggered, active_days

    # ------------------------------------------------------------------
    # Budget
    # ------------------------------------------------------------------

    async def reserve(
        self,
        tenant_id: str,
        amount_usd: float,
        daily_budget_usd: float | None = None,
    ) -> Reservation | None:
        """Hold budget for a call; None when the remaining budget is insufficient.

        The hold is granted by the store. When the store cannot be reached
        no budget is held and the call is refused.
        """
        budget = self._config.daily_budget_usd if daily_budget_usd is None else daily_budget_usd
        key = (tenant_id, self.today())
        unwritten = self._unwritten(key)
        # Spend and releases not yet written change what the store sees as held
        if unwritten is not None:
            budget -= unwritten.total_cost_usd + unwritten.reserved_usd
        try:
            remaining = await self._store.reserve_budget(tenant_id, key[1], amount_usd, budget)
        except StoreError as e:
            LEDGER_WRITE_FAILURES.labels(operation="reserve_budget").inc()
            logger.warning("budget_reserve_failed", tenant_id=tenant_id, error=str(e))
            return None

        if remaining is None:
            logger.info(
                "budget_insufficient",
                tenant_id=tenant_id,
                requested_usd=round(amount_usd, 6),
            )
            return None

        BUDGET_REMAINING_USD.labels(tenant_id=tenant_id).set(max(0.0, remaining))
        return Reservation(tenant_id=tenant_id, day=key[1], amount_usd=amount_usd)

    async def settle(self, reservation: Reservation, actual_cost_usd: float) -> None:
        """Release a reservation and record what the call actually cost."""
        billed = actual_cost_usd > 0
        self._enqueue(
            LedgerDelta(
                tenant_id=reservation.tenant_id,
                day=reservation.day,
                reserved_usd=-reservation.amount_usd,
                total_cost_usd=actual_cost_usd if billed else 0.0,
                tier3_calls=1 if billed else 0,
            )
        )
        if billed:
            TIER3_COST_USD.labels(tenant_id=reservation.tenant_id).inc(actual_cost_usd)

    async def record_cost(self, tenant_id: str, cost_usd: float) -> None:
        """Record spend that bypassed reservation."""
        if cost_usd <= 0:
            return
        await self.settle(Reservation(tenant_id, self.today(), 0.0), cost_usd)

    # ------------------------------------------------------------------
    # Warmup counters
    # ------------------------------------------------------------------

    async def record_warmup(self, tenant_id: str, state: WarmupState) -> None:
        """Count a warmup transition (triggered or a terminal state)."""
        field = _WARMUP_COUNTERS.get(state)
        if field is None:
            raise ValueError(f"Warmup state {state.value} is not counted")

        self._enqueue(LedgerDelta(tenant_id=tenant_id, day=self.today(), **{field: 1}))

        if state.is_terminal:
            WARMUP_OUTCOMES.labels(tenant_id=tenant_id, state=state.value).inc()

    # ------------------------------------------------------------------
    # Circuit breaker
    # ------------------------------------------------------------------

    async def is_warmup_disabled(
        self,
        tenant_id: str,
        minimum_hit_rate: float | None = None,
    ) -> bool:
        """Whether warmup is off for a tenant, tripping the breaker if due.

        The breaker looks at the rolling window before today. Once tripped
        it stays tripped until ``reenable_warmup`` is called.
        """
        if tenant_id not in self._disabled:
            self._disabled[tenant_id] = await self._read_disabled(tenant_id)
        if self._disabled[tenant_id]:
            return True

        today = self.today()
        if self._breaker_checked.get(tenant_id) == today:
            return False
        self._breaker_checked[tenant_id] = today

        minimum = self._config.minimum_hit_rate if minimum_hit_rate is None else minimum_hit_rate
        rate, active_days = await self.window_hit_rate(tenant_id, today)
        if rate is None or active_days < self._config.hit_rate_min_days or rate >= minimum:
            return False

        self._disabled[tenant_id] = True
        reason = f"hit rate {rate:.2f} below {minimum:.2f} over {active_days} days"
        WARMUP_AUTO_DISABLED.labels(tenant_id=tenant_id).inc()
        logger.warning(
            "warmup_auto_disabled",
            tenant_id=tenant_id,
            hit_rate=round(rate, 4),
            minimum_hit_rate=minimum,
            active_days=active_days,
        )
        await self._write_disabled(tenant_id, True, reason)
        return True

    async def reenable_warmup(self, tenant_id: str) -> None:
        """Manually re-enable warmup; history before today is ignored from now on."""
        today = self.today()
        self._disabled[tenant_id] = False
        self._reenabled_on[tenant_id] = today
        self._breaker_checked[tenant_id] = today
        logger.info("warmup_reenabled", tenant_id=tenant_id)
        await self._write_disabled(tenant_id, False, None)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def flush(self) -> None:
        """Wait for pending ledger writes."""
        while self._writers:
            await asyncio.gather(*list(self._writers.values()), return_exceptions=True)

    def _unwritten_keys(self) -> set[_LedgerKey]:
        return set(self._pending) | set(self._inflight) | set(self._unsaved)

    def _unwritten(self, key: _LedgerKey) -> LedgerDelta | None:
        """Sum of this process's deltas for a key that the store may not have yet."""
        parts = [
            part
            for part in (self._unsaved.get(key), self._inflight.get(key), self._pending.get(key))
            if part is not None
        ]
        if not parts:
            return None
        total = parts[0].model_copy()
        for part in parts[1:]:
            total.merge(part)
        return total

    def _with_unwritten(self, key: _LedgerKey, entry: LedgerEntry) -> LedgerEntry:
        unwritten = self._unwritten(key)
        return unwritten.apply_to(entry) if unwritten is not None else entry

    def _enqueue(self, delta: LedgerDelta) -> None:
        key = (delta.tenant_id, delta.day)
        self._drop_stale_unsaved()

        pending = self._pending.get(key)
        if pending is None:
            pending = self._pending[key] = delta
        else:
            pending.merge(delta)
        unsaved = self._unsaved.pop(key, None)
        if unsaved is not None:
            pending.merge(unsaved)

        writer = self._writers.get(key)
        if writer is None or writer.done():
            writer = asyncio.create_task(self._writer(key))
            self._writers[key] = writer
            writer.add_done_callback(lambda task: self._forget_writer(key, task))

    def _forget_writer(self, key: _LedgerKey, task: "asyncio.Task[None]") -> None:
        if self._writers.get(key) is task:
            del self._writers[key]

    def _drop_stale_unsaved(self) -> None:
        today = self.today()
        for key in [k for k in self._unsaved if k[1] < today]:
            delta = self._unsaved.pop(key)
            logger.error(
                "ledger_delta_dropped",
                tenant_id=delta.tenant_id,
                day=delta.day.isoformat(),
                delta=delta.model_dump(exclude={"tenant_id", "day"}),
            )

    async def _writer(self, key: _LedgerKey) -> None:
        while key in self._pending:
            delta = self._inflight[key] = self._pending.pop(key)
            try:
                saved = await self._apply_with_retry(delta)
            finally:
                self._inflight.pop(key, None)
            if not saved:
                # Kept for reads and folded into the next write for this key
                held = self._unsaved.get(key)
                if held is None:
                    self._unsaved[key] = delta
                else:
                    held.merge(delta)

    async def _apply_with_retry(self, delta: LedgerDelta) -> bool:
        attempts = self._storage_config.write_retries
        for attempt in range(1, attempts + 1):
            try:
                await self._store.apply_ledger_delta(delta)
                return True
            except StoreError as e:
                LEDGER_WRITE_FAILURES.labels(operation="apply_ledger_delta").inc()
                logger.warning(
                    "ledger_write_failed",
                    tenant_id=delta.tenant_id,
                    day=delta.day.isoformat(),
                    attempt=attempt,
                    error=str(e),
                )
                if attempt < attempts:
                    await asyncio.sleep(self._storage_config.retry_backoff_seconds * attempt)

        logger.error(
            "ledger_write_abandoned",
            tenant_id=delta.tenant_id,
            day=delta.day.isoformat(),
            attempts=attempts,
        )
        return False

    async def _read_disabled(self, tenant_id: str) -> bool:
        try:
            return await self._store.get_warmup_disabled(tenant_id)
        except StoreError as e:
            logger.warning("warmup_state_read_failed", tenant_id=tenant_id, error=str(e))
            return False

    async def _write_disabled(self, tenant_id: str, disabled: bool, reason: str | None) -> None:
        try:
            await self._store.set_warmup_disabled(tenant_id, disabled, reason)
        except StoreError as e:
            LEDGER_WRITE_FAILURES.labels(operation="set_warmup_disabled").inc()
            logger.warning("warmup_state_write_failed", tenant_id=tenant_id, error=str(e))
