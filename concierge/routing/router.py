"""Router: the single entry point for routing one caller utterance.

    utterance
      -> normalize with the pool's fillers and synonyms
      -> Tier1 rules
      -> warmup decision
      -> Tier2, racing a speculative Tier3 when warmed up
      -> Tier3 (sequential when not warmed up)
      -> learn from Tier3, update the call session
      -> MatchResult with a reply

The router never raises for a routing decision. Configuration defects
and unexpected errors are reported through logs and metrics and the
caller still gets the fallback reply. Exactly one ``routing_decision``
record is logged per call.
"""

import time
import uuid
from collections.abc import Mapping
from typing import Any

from concierge.catalog.pool import ScenarioPoolCache
from concierge.config.models.routing import RoutingConfig, ThresholdOverrides
from concierge.errors import ConfigurationError
from concierge.ledger.budget import BudgetLedger
from concierge.ledger.learning import PatternLearner
from concierge.ledger.models import LearnedPattern
from concierge.observability.logging import get_logger, routing_context
from concierge.observability.metrics import (
    CONFIGURATION_ERRORS,
    ROUTING_DECISIONS,
    ROUTING_LATENCY,
    TIER_LATENCY,
)
from concierge.providers.llm.executor import (
    ExecutionContext,
    clear_execution_context,
    set_execution_context,
)
from concierge.routing.gates import GateContext
from concierge.routing.models import CallSession, MatchMethod, MatchResult, Tier
from concierge.routing.normalizer import normalize
from concierge.routing.replies import ReplySelector
from concierge.routing.thresholds import resolve_thresholds
from concierge.routing.tier1 import RuleMatcher
from concierge.routing.warmup import WarmupScheduler
from concierge.tenancy.models import TenantConfig
from concierge.tenancy.store import TenantConfigStore
from concierge.utils.clock import Clock, utc_now

logger = get_logger(__name__)


class Router:
    """Sequences the tiers for one utterance and returns one MatchResult.

    Safe to call concurrently for different calls of the same tenant:
    pools are shared read-only snapshots and the ledger serializes its own
    updates.

    Example:
        router = create_router(get_settings())
        result = await router.route("umm I need an appointment", tenant, session)
    """

    def __init__(
        self,
        pool_cache: ScenarioPoolCache,
        rule_matcher: RuleMatcher,
        scheduler: WarmupScheduler,
        ledger: BudgetLedger,
        learner: PatternLearner | None = None,
        tenant_store: TenantConfigStore | None = None,
        config: RoutingConfig | None = None,
        global_thresholds: ThresholdOverrides | None = None,
        reply_selector: ReplySelector | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._pools = pool_cache
        self._rules = rule_matcher
        self._scheduler = scheduler
        self._ledger = ledger
        self._learner = learner
        self._tenants = tenant_store
        self._config = config or RoutingConfig()
        self._global_thresholds = global_thresholds or self._config.global_thresholds
        self._replies = reply_selector or ReplySelector(self._config.reply_selection)
        self._clock = clock

    @property
    def ledger(self) -> BudgetLedger:
        return self._ledger

    @property
    def learner(self) -> PatternLearner | None:
        return self._learner

    async def route(
        self,
        utterance: str,
        tenant: TenantConfig,
        session: CallSession | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> MatchResult:
        """Route an utterance for a tenant configuration snapshot."""
        return await self._run(tenant.tenant_id, utterance, tenant, session, context)

    async def route_for_tenant(
        self,
        tenant_id: str,
        utterance: str,
        session: CallSession | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> MatchResult:
        """Route an utterance, loading the tenant configuration from the store."""
        return await self._run(tenant_id, utterance, None, session, context)

    async def _run(
        self,
        tenant_id: str,
        utterance: str,
        tenant: TenantConfig | None,
        session: CallSession | None,
        context: Mapping[str, Any] | None,
    ) -> MatchResult:
        routing_id = str(uuid.uuid4())
        call_id = session.call_id if session else None
        with routing_context(tenant_id, routing_id, call_id):
            return await self._run_in_context(
                tenant_id, routing_id, utterance, tenant, session, context
            )

    async def _run_in_context(
        self,
        tenant_id: str,
        routing_id: str,
        utterance: str,
        tenant: TenantConfig | None,
        session: CallSession | None,
        context: Mapping[str, Any] | None,
    ) -> MatchResult:
        started = time.perf_counter()
        call_id = session.call_id if session else None
        set_execution_context(
            ExecutionContext(tenant_id=tenant_id, routing_id=routing_id, call_id=call_id)
        )

        reason: str | None = None
        try:
            if tenant is None:
                tenant = await self._load_tenant(tenant_id)
            result, reason = await self._decide(utterance, tenant, session, context)
        except ConfigurationError as e:
            CONFIGURATION_ERRORS.labels(tenant_id=tenant_id).inc()
            logger.error("routing_configuration_error", error=e.message)
            result = MatchResult(
                matched=False, tier=Tier.RULE, method=MatchMethod.CONFIGURATION_ERROR
            )
        except Exception as e:
            logger.exception("routing_internal_error", error=str(e))
            result = MatchResult(matched=False, tier=Tier.RULE, method=MatchMethod.INTERNAL_ERROR)
        finally:
            clear_execution_context()

        elapsed = time.perf_counter() - started
        result = result.model_copy(
            update={
                "routing_id": routing_id,
                "latency_ms": int(elapsed * 1000),
                "reply": self._reply_for(result, tenant, session),
            }
        )
        if session is not None:
            session.turn += 1

        self._emit(tenant_id, result, elapsed, reason)
        return result

    async def _load_tenant(self, tenant_id: str) -> TenantConfig:
        if self._tenants is None:
            raise ConfigurationError("No tenant config store configured", tenant_id=tenant_id)
        tenant = await self._tenants.get_config(tenant_id)
        if tenant is None:
            raise ConfigurationError(
                f"No configuration for tenant {tenant_id}", tenant_id=tenant_id
            )
        return tenant

    async def _decide(
        self,
        utterance: str,
        tenant: TenantConfig,
        session: CallSession | None,
        context: Mapping[str, Any] | None,
    ) -> tuple[MatchResult, str | None]:
        thresholds = resolve_thresholds(tenant, self._config.defaults, self._global_thresholds)
        pool = await self._pools.get(tenant)
        now = self._clock()
        ctx = GateContext.from_session(session, now)
        cleaned = normalize(utterance, pool.filler_words, pool.synonym_map)

        tier1_started = time.perf_counter()
        tier1 = self._rules.match(cleaned, pool, thresholds.tier1, ctx)
        TIER_LATENCY.labels(tier="1").observe(time.perf_counter() - tier1_started)

        if tier1.result.matched:
            result = tier1.result
            reason = None
        else:
            best = tier1.best
            tier1_score = best.score if best else 0.0
            category = best.scenario.category if best else None
            decision = await self._scheduler.decide(tenant, tier1_score, category, thresholds)
            escalation = await self._scheduler.escalate(
                cleaned,
                pool,
                tenant,
                thresholds,
                decision,
                ctx=ctx,
                context=context if context is not None else ctx.entities,
                call_id=session.call_id if session else None,
            )
            reason = decision.reason
            result = escalation.result.model_copy(
                update={
                    "tier_scores": {**tier1.result.tier_scores, **escalation.tier_scores},
                    "warmup_state": escalation.session.state if escalation.session else None,
                }
            )
            if escalation.tier3 is not None and escalation.tier3.patterns:
                await self._learn(tenant, escalation.tier3.patterns)

        if result.matched and session is not None and result.scenario is not None:
            session.mark_used(result.scenario.id, now)
        return result, reason

    async def _learn(self, tenant: TenantConfig, patterns: list[LearnedPattern]) -> None:
        if self._learner is None or not tenant.learning_enabled:
            return
        promoted = await self._learner.learn(patterns)
        if promoted:
            # The template version moved, so the next call rebuilds the pool.
            logger.info(
                "patterns_learned",
                tenant_id=tenant.tenant_id,
                promoted=[p.phrase for p in promoted],
            )

    def _reply_for(
        self,
        result: MatchResult,
        tenant: TenantConfig | None,
        session: CallSession | None,
    ) -> str:
        if result.matched and result.scenario is not None:
            seed = tenant.reply_seed if tenant else None
            reply = self._replies.select(result.scenario, session, seed)
            if reply:
                return reply
        if result.method == MatchMethod.LLM_ANSWER and result.reply:
            return result.reply
        if tenant is not None and tenant.fallback_reply:
            return tenant.fallback_reply
        return self._config.fallback_reply

    def _emit(
        self,
        tenant_id: str,
        result: MatchResult,
        elapsed: float,
        warmup_reason: str | None,
    ) -> None:
        ROUTING_DECISIONS.labels(
            tenant_id=tenant_id,
            tier=str(int(result.tier)),
            method=result.method.value,
            matched=str(result.matched).lower(),
        ).inc()
        ROUTING_LATENCY.labels(tenant_id=tenant_id).observe(elapsed)
        logger.info(
            "routing_decision",
            tenant_id=tenant_id,
            routing_id=result.routing_id,
            matched=result.matched,
            tier=int(result.tier),
            method=result.method.value,
            confidence=round(result.confidence, 4),
            scenario_id=result.scenario_id,
            template_id=result.template_id,
            cost_usd=round(result.cost_usd, 6),
            latency_ms=result.latency_ms,
            warmup_state=result.warmup_state.value if result.warmup_state else None,
            warmup_reason=warmup_reason,
            tier_scores=result.tier_scores,
        )
