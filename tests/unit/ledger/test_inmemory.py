"""Tests for InMemoryLedgerStore."""

from datetime import date

import pytest

from concierge.ledger.inmemory import InMemoryLedgerStore
from concierge.ledger.models import LearnedPattern, LedgerDelta, LedgerEntry, PatternKind

MONDAY = date(2025, 3, 3)


@pytest.fixture
def store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()


def pattern(phrase: str = "heat is out", confidence: float = 0.8) -> LearnedPattern:
    return LearnedPattern(
        phrase=phrase,
        kind=PatternKind.TRIGGER,
        template_id="hvac",
        mapped_scenario_id="no_heat",
        confidence=confidence,
    )


class TestLedgerEntries:
    """Tests for ledger entry persistence."""

    @pytest.mark.asyncio
    async def test_save_and_get(self, store):
        """Should return the saved counters."""
        await store.save_ledger_entry(
            LedgerEntry(tenant_id="acme", day=MONDAY, triggered_count=4, used_count=1)
        )

        entry = await store.get_ledger_entry("acme", MONDAY)

        assert entry is not None
        assert entry.hit_rate == 0.25

    @pytest.mark.asyncio
    async def test_last_write_wins(self, store):
        """Should replace the entry for the same tenant-day."""
        await store.save_ledger_entry(LedgerEntry(tenant_id="acme", day=MONDAY, tier3_calls=1))
        await store.save_ledger_entry(LedgerEntry(tenant_id="acme", day=MONDAY, tier3_calls=5))

        entry = await store.get_ledger_entry("acme", MONDAY)

        assert entry.tier3_calls == 5

    @pytest.mark.asyncio
    async def test_returns_copies(self, store):
        """Should not leak internal state to callers."""
        await store.save_ledger_entry(LedgerEntry(tenant_id="acme", day=MONDAY))
        entry = await store.get_ledger_entry("acme", MONDAY)
        entry.used_count = 9

        fresh = await store.get_ledger_entry("acme", MONDAY)

        assert fresh.used_count == 0

    @pytest.mark.asyncio
    async def test_missing_entry(self, store):
        """Should return None for an unknown tenant-day."""
        assert await store.get_ledger_entry("acme", MONDAY) is None

    @pytest.mark.asyncio
    async def test_list_range_inclusive_and_sorted(self, store):
        """Should list entries in range, oldest first."""
        for day in (date(2025, 3, 5), date(2025, 3, 1), date(2025, 3, 3), date(2025, 3, 9)):
            await store.save_ledger_entry(LedgerEntry(tenant_id="acme", day=day))
        await store.save_ledger_entry(LedgerEntry(tenant_id="other", day=MONDAY))

        entries = await store.list_ledger_entries("acme", date(2025, 3, 1), date(2025, 3, 5))

        assert [e.day for e in entries] == [
            date(2025, 3, 1),
            date(2025, 3, 3),
            date(2025, 3, 5),
        ]


class TestCounterDeltas:
    """Tests for atomic counter increments and budget holds."""

    @pytest.mark.asyncio
    async def test_delta_adds_to_stored_counters(self, store):
        """Should add increments on top of what is stored."""
        await store.save_ledger_entry(
            LedgerEntry(tenant_id="acme", day=MONDAY, triggered_count=2, total_cost_usd=0.5)
        )

        entry = await store.apply_ledger_delta(
            LedgerDelta(tenant_id="acme", day=MONDAY, triggered_count=1, total_cost_usd=0.25)
        )

        assert entry.triggered_count == 3
        assert entry.total_cost_usd == pytest.approx(0.75)
        assert (await store.get_ledger_entry("acme", MONDAY)).triggered_count == 3

    @pytest.mark.asyncio
    async def test_delta_creates_missing_entry(self, store):
        """Should start from zero for a new tenant-day."""
        entry = await store.apply_ledger_delta(
            LedgerDelta(tenant_id="acme", day=MONDAY, used_count=1)
        )

        assert entry.used_count == 1
        assert entry.triggered_count == 0

    @pytest.mark.asyncio
    async def test_released_hold_floors_at_zero(self, store):
        """Should never leave a negative hold."""
        entry = await store.apply_ledger_delta(
            LedgerDelta(tenant_id="acme", day=MONDAY, reserved_usd=-0.2)
        )

        assert entry.reserved_usd == 0.0

    @pytest.mark.asyncio
    async def test_reserve_budget_holds_and_refuses(self, store):
        """Should grant holds until spend plus holds reach the budget."""
        await store.apply_ledger_delta(
            LedgerDelta(tenant_id="acme", day=MONDAY, total_cost_usd=0.5)
        )

        remaining = await store.reserve_budget("acme", MONDAY, 0.25, 1.0)

        assert remaining == pytest.approx(0.25)
        assert await store.reserve_budget("acme", MONDAY, 0.3, 1.0) is None
        assert (await store.get_ledger_entry("acme", MONDAY)).reserved_usd == pytest.approx(0.25)

    @pytest.mark.asyncio
    async def test_reserve_budget_refuses_spent_budget(self, store):
        """Should refuse even a tiny hold once the budget is spent."""
        await store.apply_ledger_delta(
            LedgerDelta(tenant_id="acme", day=MONDAY, total_cost_usd=1.0)
        )

        assert await store.reserve_budget("acme", MONDAY, 0.0001, 1.0) is None


class TestObservations:
    """Tests for pattern observation counting."""

    @pytest.mark.asyncio
    async def test_counts_and_tracks_max_confidence(self, store):
        """Should aggregate sightings under one key."""
        await store.record_observation(pattern(confidence=0.8))
        observation = await store.record_observation(pattern("Heat is out.", confidence=0.6))

        assert observation.count == 2
        assert observation.max_confidence == 0.8
        assert observation.pattern.phrase == "Heat is out."

    @pytest.mark.asyncio
    async def test_distinct_targets_counted_apart(self, store):
        """Should key observations by target scenario."""
        await store.record_observation(pattern())
        await store.record_observation(
            pattern().model_copy(update={"mapped_scenario_id": "no_cooling"})
        )

        assert len(await store.list_observations()) == 2

    @pytest.mark.asyncio
    async def test_promote_is_idempotent(self, store):
        """Should report True only for the first promotion."""
        await store.record_observation(pattern())

        assert await store.promote_pattern(pattern()) is True
        assert await store.promote_pattern(pattern()) is False

    @pytest.mark.asyncio
    async def test_promote_unobserved_pattern(self, store):
        """Should create the observation when promoting directly."""
        assert await store.promote_pattern(pattern()) is True

        observations = await store.list_observations(promoted=True)
        assert observations[0].count == 1

    @pytest.mark.asyncio
    async def test_list_filters(self, store):
        """Should filter by template and promotion state."""
        await store.record_observation(pattern("one"))
        await store.record_observation(pattern("two"))
        await store.promote_pattern(pattern("two"))

        pending = await store.list_observations("hvac", promoted=False)
        other = await store.list_observations("plumbing")

        assert [o.key.phrase for o in pending] == ["one"]
        assert other == []


class TestWarmupDisabled:
    """Tests for the persisted circuit-breaker flag."""

    @pytest.mark.asyncio
    async def test_set_and_clear(self, store):
        """Should round-trip the disabled flag per tenant."""
        await store.set_warmup_disabled("acme", True, reason="hit rate 0.05")

        assert await store.get_warmup_disabled("acme") is True
        assert await store.get_warmup_disabled("other") is False

        await store.set_warmup_disabled("acme", False)

        assert await store.get_warmup_disabled("acme") is False
