"""Warmup scheduler: speculative Tier3 raced against Tier2.

When Tier1 misses but comes close, the LLM call is started alongside the
semantic tier to hide its latency. Tier2 is always awaited first: a
Tier2 match wins even if Tier3 already answered, and the speculative call
is cancelled. Otherwise the in-flight Tier3 result is used.

Session lifecycle::

    idle -> triggered -> racing -> used | cancelled | failed

Terminal states are final.
"""

import asyncio
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from concierge.catalog.pool import ScenarioPool
from concierge.config.models.routing import RoutingConfig
from concierge.config.models.warmup import WarmupConfig
from concierge.errors import ConciergeError
from concierge.ledger.budget import BudgetLedger, TenantBudget
from concierge.ledger.models import WarmupState
from concierge.observability.logging import get_logger
from concierge.observability.metrics import TIER_FAILURES, TIER_LATENCY
from concierge.routing.gates import GateContext
from concierge.routing.models import MatchMethod, MatchResult, Tier
from concierge.routing.selection import TierOutcome
from concierge.routing.thresholds import EffectiveThresholds
from concierge.routing.tier2 import SemanticMatcher
from concierge.routing.tier3 import CancellationToken, LLMFallback, Tier3Cancelled, Tier3Outcome
from concierge.tenancy.models import TenantConfig
from concierge.utils.clock import Clock, utc_now

logger = get_logger(__name__)

_TRANSITIONS: dict[WarmupState, frozenset[WarmupState]] = {
    WarmupState.IDLE: frozenset({WarmupState.TRIGGERED}),
    WarmupState.TRIGGERED: frozenset({WarmupState.RACING}),
    WarmupState.RACING: frozenset({WarmupState.USED, WarmupState.CANCELLED, WarmupState.FAILED}),
}


class InvalidWarmupTransition(ConciergeError):
    """A warmup session was moved along an edge its lifecycle does not have."""


class WarmupSession:
    """Per-call-turn warmup state machine."""

    def __init__(self, tenant_id: str, call_id: str | None = None, clock: Clock = utc_now) -> None:
        self.tenant_id = tenant_id
        self.call_id = call_id
        self._clock = clock
        self._state = WarmupState.IDLE
        self.history: list[tuple[WarmupState, datetime]] = [(WarmupState.IDLE, clock())]

    @property
    def state(self) -> WarmupState:
        return self._state

    def transition(self, target: WarmupState) -> None:
        """Move to target.

        Raises:
            InvalidWarmupTransition: If target is not reachable from the current state
        """
        if target not in _TRANSITIONS.get(self._state, frozenset()):
            raise InvalidWarmupTransition(
                f"Cannot move warmup session from {self._state.value} to {target.value}"
            )
        self._state = target
        self.history.append((target, self._clock()))

    def trigger(self) -> None:
        self.transition(WarmupState.TRIGGERED)

    def start_racing(self) -> None:
        self.transition(WarmupState.RACING)

    def mark_used(self) -> None:
        self.transition(WarmupState.USED)

    def mark_cancelled(self) -> None:
        self.transition(WarmupState.CANCELLED)

    def mark_failed(self) -> None:
        self.transition(WarmupState.FAILED)


@dataclass(frozen=True)
class WarmupDecision:
    """Whether to start Tier3 speculatively, and why."""

    trigger: bool
    reason: str


@dataclass
class Escalation:
    """What happened after Tier1 missed."""

    result: MatchResult
    decision: WarmupDecision
    tier2: TierOutcome | None = None
    tier3: Tier3Outcome | None = None
    session: WarmupSession | None = None
    tier_scores: dict[int, float] = field(default_factory=dict)


class WarmupScheduler:
    """Runs Tier2 and Tier3 after a Tier1 miss, speculatively when warranted."""

    def __init__(
        self,
        ledger: BudgetLedger,
        semantic: SemanticMatcher,
        fallback: LLMFallback,
        routing: RoutingConfig | None = None,
        config: WarmupConfig | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._ledger = ledger
        self._semantic = semantic
        self._fallback = fallback
        self._routing = routing or RoutingConfig()
        self._config = config or WarmupConfig()
        self._clock = clock

    async def decide(
        self,
        tenant: TenantConfig,
        tier1_score: float,
        category: str | None,
        thresholds: EffectiveThresholds,
    ) -> WarmupDecision:
        """Decide whether to warm up Tier3.

        Checked in order: warmup enabled, Tier3 enabled, circuit breaker,
        budget, never-warmup categories, always-warmup categories, then the
        score band ``warmup_trigger <= score < tier1``.
        """
        enabled = self._config.enabled if tenant.warmup_enabled is None else tenant.warmup_enabled
        if not enabled:
            return WarmupDecision(False, "disabled")
        if not tenant.tier3_enabled:
            return WarmupDecision(False, "tier3_disabled")
        if await self._ledger.is_warmup_disabled(tenant.tenant_id, tenant.minimum_hit_rate):
            return WarmupDecision(False, "auto_disabled")
        remaining = await self._ledger.remaining_budget(tenant.tenant_id, tenant.daily_budget_usd)
        if remaining <= 0:
            return WarmupDecision(False, "budget_exhausted")
        if category and category in tenant.never_warmup_categories:
            return WarmupDecision(False, "never_warmup_category")
        if category and category in tenant.always_warmup_categories:
            return WarmupDecision(True, "always_warmup_category")
        if thresholds.warmup_trigger <= tier1_score < thresholds.tier1:
            return WarmupDecision(True, "score_in_band")
        return WarmupDecision(False, "score_out_of_band")

    async def escalate(
        self,
        cleaned: str,
        pool: ScenarioPool,
        tenant: TenantConfig,
        thresholds: EffectiveThresholds,
        decision: WarmupDecision,
        *,
        ctx: GateContext | None = None,
        context: Mapping[str, Any] | None = None,
        call_id: str | None = None,
    ) -> Escalation:
        """Run Tier2 and Tier3, racing them when the decision says so."""
        budget = self._ledger.budget_for(tenant.tenant_id, tenant.daily_budget_usd)
        if decision.trigger:
            return await self._race(
                cleaned, pool, tenant, thresholds, decision, budget, ctx, context, call_id
            )
        return await self._sequential(
            cleaned, pool, tenant, thresholds, decision, budget, ctx, context
        )

    async def _race(
        self,
        cleaned: str,
        pool: ScenarioPool,
        tenant: TenantConfig,
        thresholds: EffectiveThresholds,
        decision: WarmupDecision,
        budget: TenantBudget,
        ctx: GateContext | None,
        context: Mapping[str, Any] | None,
        call_id: str | None,
    ) -> Escalation:
        session = WarmupSession(tenant.tenant_id, call_id, self._clock)
        session.trigger()
        await self._ledger.record_warmup(tenant.tenant_id, WarmupState.TRIGGERED)

        token = CancellationToken()
        session.start_racing()
        tier3_started = time.perf_counter()
        tier3_task = asyncio.create_task(
            self._fallback.match(
                cleaned,
                pool,
                budget,
                min_confidence=thresholds.tier3_min_confidence,
                ctx=ctx,
                context=context,
                token=token,
            )
        )
        logger.debug("warmup_racing", tenant_id=tenant.tenant_id, reason=decision.reason)

        try:
            tier2 = await self._run_tier2(cleaned, pool, thresholds.tier2, ctx)
        except BaseException:
            tier3_task.cancel()
            raise
        scores = dict(tier2.result.tier_scores)

        if tier2.result.matched:
            token.cancel()
            await self._wind_down(tier3_task)
            session.mark_cancelled()
            await self._ledger.record_warmup(tenant.tenant_id, WarmupState.CANCELLED)
            return Escalation(tier2.result, decision, tier2, None, session, scores)

        remaining = self._routing.tier3_timeout_seconds - (time.perf_counter() - tier3_started)
        tier3: Tier3Outcome | None = None
        try:
            tier3 = await asyncio.wait_for(tier3_task, timeout=max(remaining, 0.0))
            failure = self._tier3_failure(tier3)
        except TimeoutError:
            failure = MatchMethod.TIER3_TIMEOUT
            TIER_FAILURES.labels(tier="3", reason="timeout").inc()
            logger.warning("tier3_timeout", tenant_id=tenant.tenant_id, warmup=True)
        except Exception as e:
            failure = MatchMethod.TIER3_FAILED
            TIER_FAILURES.labels(tier="3", reason="error").inc()
            logger.warning("tier3_failed", tenant_id=tenant.tenant_id, warmup=True, error=str(e))
        finally:
            TIER_LATENCY.labels(tier="3").observe(time.perf_counter() - tier3_started)

        if failure is not None:
            session.mark_failed()
            await self._ledger.record_warmup(tenant.tenant_id, WarmupState.FAILED)
            result = self._unavailable(tier3, failure)
        else:
            session.mark_used()
            await self._ledger.record_warmup(tenant.tenant_id, WarmupState.USED)
            result = tier3.result

        scores.update(result.tier_scores)
        return Escalation(result, decision, tier2, tier3, session, scores)

    async def _sequential(
        self,
        cleaned: str,
        pool: ScenarioPool,
        tenant: TenantConfig,
        thresholds: EffectiveThresholds,
        decision: WarmupDecision,
        budget: TenantBudget,
        ctx: GateContext | None,
        context: Mapping[str, Any] | None,
    ) -> Escalation:
        tier2 = await self._run_tier2(cleaned, pool, thresholds.tier2, ctx)
        scores = dict(tier2.result.tier_scores)
        if tier2.result.matched:
            return Escalation(tier2.result, decision, tier2, tier_scores=scores)

        if not tenant.tier3_enabled:
            result = MatchResult(
                matched=False,
                confidence=tier2.result.confidence,
                tier=Tier.LLM,
                method=MatchMethod.TIER3_DISABLED,
            )
            return Escalation(result, decision, tier2, tier_scores=scores)

        started = time.perf_counter()
        tier3: Tier3Outcome | None = None
        try:
            tier3 = await asyncio.wait_for(
                self._fallback.match(
                    cleaned,
                    pool,
                    budget,
                    min_confidence=thresholds.tier3_min_confidence,
                    ctx=ctx,
                    context=context,
                ),
                timeout=self._routing.tier3_timeout_seconds,
            )
            result = tier3.result
        except TimeoutError:
            TIER_FAILURES.labels(tier="3", reason="timeout").inc()
            logger.warning("tier3_timeout", tenant_id=tenant.tenant_id, warmup=False)
            result = self._unavailable(None, MatchMethod.TIER3_TIMEOUT)
        except Exception as e:
            TIER_FAILURES.labels(tier="3", reason="error").inc()
            logger.warning("tier3_failed", tenant_id=tenant.tenant_id, warmup=False, error=str(e))
            result = self._unavailable(None, MatchMethod.TIER3_FAILED)
        finally:
            TIER_LATENCY.labels(tier="3").observe(time.perf_counter() - started)

        scores.update(result.tier_scores)
        return Escalation(result, decision, tier2, tier3, tier_scores=scores)

    async def _run_tier2(
        self,
        cleaned: str,
        pool: ScenarioPool,
        threshold: float,
        ctx: GateContext | None,
    ) -> TierOutcome:
        """Tier2 with its timeout; failures become unmatched outcomes."""
        started = time.perf_counter()
        try:
            return await asyncio.wait_for(
                self._semantic.match(cleaned, pool, threshold, ctx),
                timeout=self._routing.tier2_timeout_seconds,
            )
        except TimeoutError:
            TIER_FAILURES.labels(tier="2", reason="timeout").inc()
            logger.warning("tier2_timeout", timeout_seconds=self._routing.tier2_timeout_seconds)
            method = MatchMethod.TIER2_TIMEOUT
        except Exception as e:
            TIER_FAILURES.labels(tier="2", reason="error").inc()
            logger.warning("tier2_failed", error=str(e))
            method = MatchMethod.TIER2_FAILED
        finally:
            TIER_LATENCY.labels(tier="2").observe(time.perf_counter() - started)
        return TierOutcome(result=MatchResult(matched=False, tier=Tier.SEMANTIC, method=method))

    async def _wind_down(self, task: "asyncio.Task[Tier3Outcome]") -> None:
        """Give a cancelled Tier3 call a short grace period, then force it."""
        done, _ = await asyncio.wait({task}, timeout=self._config.cancel_grace_seconds)
        if not done:
            task.cancel()
            await asyncio.wait({task})

        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            outcome = task.result()
            if outcome.cost_usd > 0:
                logger.info("warmup_cancelled_with_cost", cost_usd=round(outcome.cost_usd, 6))
        elif not isinstance(error, Tier3Cancelled):
            logger.debug("warmup_cancelled_task_error", error=str(error))

    @staticmethod
    def _tier3_failure(outcome: Tier3Outcome) -> MatchMethod | None:
        if outcome.result.method in (MatchMethod.TIER3_FAILED, MatchMethod.BUDGET_EXHAUSTED):
            return outcome.result.method
        return None

    @staticmethod
    def _unavailable(outcome: Tier3Outcome | None, method: MatchMethod) -> MatchResult:
        if outcome is not None and outcome.result.method == method:
            return outcome.result
        return MatchResult(matched=False, tier=Tier.LLM, method=method)
