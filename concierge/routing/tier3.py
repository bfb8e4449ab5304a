"""Tier3: cost-bounded LLM fallback.

The model sees the normalized utterance, a summary of the eligible
scenarios and any call context. It answers with a structured decision:
the scenario it recognizes (if any), a free-form answer, and phrasings
the rule tier should learn.

Every call is preceded by a budget reservation sized from the prompt and
the completion token cap. No reservation, no call. The reservation is
always settled, with the actual cost when the provider produced output
and with zero otherwise.
"""

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from pydantic import BaseModel, Field

from concierge.catalog.models import Scenario
from concierge.catalog.pool import ScenarioPool
from concierge.config.models.learning import LearningConfig
from concierge.config.models.providers import LLMProviderConfig
from concierge.ledger.budget import TenantBudget
from concierge.ledger.models import LearnedPattern, PatternKind
from concierge.observability.logging import get_logger
from concierge.observability.metrics import LLM_TOKENS, TIER_FAILURES
from concierge.providers.llm.base import (
    LLMMessage,
    LLMProvider,
    LLMResponse,
    ProviderError,
    build_structured_prompt,
    parse_structured,
)
from concierge.providers.llm.executor import get_execution_context, set_execution_context
from concierge.providers.llm.pricing import PriceTable
from concierge.routing.gates import GateContext, eligible
from concierge.routing.index import IndexedScenario, PoolIndexCache
from concierge.routing.models import MatchMethod, MatchResult, Tier
from concierge.utils.text import clean_text

logger = get_logger(__name__)

SYSTEM_PROMPT = """You route phone callers for a business voice agent.
Given what the caller said and the list of known scenarios, decide which
scenario (if any) the caller means. If none fits, you may answer briefly
yourself. When you recognize a scenario, suggest the caller's phrase as a
reusable trigger, and report colloquial words that map to a canonical term
and words that carry no meaning for routing."""

MAX_EXAMPLE_TRIGGERS = 3


class SynonymSuggestion(BaseModel):
    """A colloquial phrasing and the canonical term it stands for."""

    colloquial: str = Field(..., description="What the caller said")
    canonical: str = Field(..., description="Term used in scenario triggers")


class Tier3Decision(BaseModel):
    """Structured output requested from the model."""

    scenario_id: str | None = Field(
        default=None, description="Id of the matching scenario, or null if none fits"
    )
    confidence: float = Field(default=0.0, ge=0.0, le=1.0, description="Confidence in scenario_id")
    answer: str | None = Field(
        default=None, description="Short reply for the caller when no scenario fits"
    )
    learned_phrase: str | None = Field(
        default=None, description="Phrase that should map to scenario_id in future"
    )
    synonyms: list[SynonymSuggestion] = Field(default_factory=list)
    filler_words: list[str] = Field(
        default_factory=list, description="Words to ignore when matching"
    )
    reasoning: str | None = Field(default=None)


class CancellationToken:
    """Cooperative cancellation signal passed into a Tier3 call."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


class Tier3Cancelled(Exception):
    """The call was abandoned before the provider answered."""


@dataclass(frozen=True)
class Tier3Outcome:
    """Result of a Tier3 attempt plus what it cost and taught."""

    result: MatchResult
    patterns: list[LearnedPattern] = field(default_factory=list)
    decision: Tier3Decision | None = None
    cost_usd: float = 0.0
    cancelled: bool = False


class LLMFallback:
    """Budget-aware LLM matcher."""

    def __init__(
        self,
        provider: LLMProvider,
        price_table: PriceTable,
        config: LLMProviderConfig | None = None,
        learning: LearningConfig | None = None,
        index_cache: PoolIndexCache | None = None,
    ) -> None:
        self._provider = provider
        self._prices = price_table
        self._config = config or LLMProviderConfig()
        self._learning = learning or LearningConfig()
        self._indexes = index_cache or PoolIndexCache()

    @property
    def provider(self) -> LLMProvider:
        return self._provider

    async def match(
        self,
        cleaned: str,
        pool: ScenarioPool,
        budget: TenantBudget,
        *,
        min_confidence: float,
        ctx: GateContext | None = None,
        context: Mapping[str, Any] | None = None,
        token: CancellationToken | None = None,
    ) -> Tier3Outcome:
        """Ask the model to route the utterance.

        Budget exhaustion and provider failures are returned as unmatched
        outcomes. ``Tier3Cancelled`` is raised when the token fires before
        the provider answers.
        """
        ctx = ctx or GateContext()
        entries = eligible(cleaned, self._indexes.get(pool).entries, ctx)
        messages = self._build_messages(cleaned, entries, context)
        prompt_text = "\n".join(m.content for m in messages)

        estimate = self._prices.estimate(self._provider.model, prompt_text, self._config.max_tokens)
        reservation = await budget.reserve(estimate)
        if reservation is None:
            return Tier3Outcome(
                result=MatchResult(
                    matched=False, tier=Tier.LLM, method=MatchMethod.BUDGET_EXHAUSTED
                )
            )

        cost = 0.0
        try:
            response = await self._call(messages, token)
            cost = self._cost(response, prompt_text)
            if token is not None and token.cancelled:
                logger.debug("tier3_completed_after_cancel", cost_usd=round(cost, 6))
                return Tier3Outcome(
                    result=MatchResult(matched=False, tier=Tier.LLM, method=MatchMethod.NO_MATCH),
                    cost_usd=cost,
                    cancelled=True,
                )
            try:
                decision = parse_structured(response.content, Tier3Decision)
            except ProviderError as e:
                TIER_FAILURES.labels(tier="3", reason="unparseable").inc()
                logger.warning("tier3_response_unparseable", error=str(e), model=response.model)
                return Tier3Outcome(
                    result=MatchResult(
                        matched=False,
                        tier=Tier.LLM,
                        method=MatchMethod.TIER3_FAILED,
                        cost_usd=cost,
                    ),
                    cost_usd=cost,
                )
        except ProviderError as e:
            TIER_FAILURES.labels(tier="3", reason="provider_error").inc()
            logger.warning("tier3_provider_error", error=str(e), model=self._provider.model)
            return Tier3Outcome(
                result=MatchResult(matched=False, tier=Tier.LLM, method=MatchMethod.TIER3_FAILED)
            )
        finally:
            await budget.settle(reservation, cost)

        return self._interpret(decision, cleaned, entries, min_confidence, cost, budget.tenant_id)

    async def _call(
        self,
        messages: list[LLMMessage],
        token: CancellationToken | None,
    ) -> LLMResponse:
        call = asyncio.ensure_future(self._generate(messages))
        if token is None:
            return await call

        waiter = asyncio.ensure_future(token.wait())
        try:
            done, _ = await asyncio.wait({call, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            call.cancel()
            raise
        finally:
            waiter.cancel()

        if call in done:
            return call.result()

        call.cancel()
        await asyncio.wait({call})
        if not call.cancelled() and call.exception() is None:
            # Answered while being cancelled: billable, so report it
            return call.result()
        raise Tier3Cancelled()

    async def _generate(self, messages: list[LLMMessage]) -> LLMResponse:
        # Runs as its own task, so the tier stamp stays local to the call
        current = get_execution_context()
        if current is not None:
            set_execution_context(replace(current, tier="3"))
        return await self._provider.generate(
            messages,
            max_tokens=self._config.max_tokens,
            temperature=self._config.temperature,
        )

    def _cost(self, response: LLMResponse, prompt_text: str) -> float:
        if response.usage is None:
            return self._prices.cost_from_text(response.model, prompt_text, response.content)
        LLM_TOKENS.labels(model=response.model, direction="input").inc(
            response.usage.prompt_tokens
        )
        LLM_TOKENS.labels(model=response.model, direction="output").inc(
            response.usage.completion_tokens
        )
        return self._prices.cost(response.model, response.usage)

    def _interpret(
        self,
        decision: Tier3Decision,
        cleaned: str,
        entries: list[IndexedScenario],
        min_confidence: float,
        cost: float,
        tenant_id: str,
    ) -> Tier3Outcome:
        by_id = {entry.scenario.id: entry.scenario for entry in entries}
        scenario = by_id.get(decision.scenario_id) if decision.scenario_id else None
        if decision.scenario_id and scenario is None:
            logger.info("tier3_unknown_scenario", scenario_id=decision.scenario_id)

        if scenario is not None and decision.confidence >= min_confidence:
            result = MatchResult(
                matched=True,
                confidence=decision.confidence,
                scenario=scenario,
                tier=Tier.LLM,
                cost_usd=cost,
                method=MatchMethod.LLM,
                tier_scores={int(Tier.LLM): decision.confidence},
            )
        elif decision.answer:
            result = MatchResult(
                matched=False,
                confidence=decision.confidence,
                tier=Tier.LLM,
                cost_usd=cost,
                method=MatchMethod.LLM_ANSWER,
                reply=decision.answer,
            )
        else:
            result = MatchResult(
                matched=False,
                confidence=decision.confidence,
                tier=Tier.LLM,
                cost_usd=cost,
                method=MatchMethod.NO_MATCH,
            )

        patterns = self._extract_patterns(decision, cleaned, scenario, entries, tenant_id)
        return Tier3Outcome(result=result, patterns=patterns, decision=decision, cost_usd=cost)

    def _extract_patterns(
        self,
        decision: Tier3Decision,
        cleaned: str,
        scenario: Scenario | None,
        entries: list[IndexedScenario],
        tenant_id: str,
    ) -> list[LearnedPattern]:
        """Patterns the model suggested, capped per call.

        Trigger patterns need a recognized scenario. Synonyms and fillers
        are attributed to the template of that scenario, or of the first
        eligible scenario when the model recognized none.
        """
        template_id = None
        if scenario is not None:
            template_id = scenario.template_id
        elif entries:
            template_id = entries[0].scenario.template_id
        if template_id is None:
            return []

        patterns: list[LearnedPattern] = []
        if scenario is not None:
            phrase = clean_text(decision.learned_phrase or cleaned)
            if phrase:
                patterns.append(
                    LearnedPattern(
                        phrase=phrase,
                        kind=PatternKind.TRIGGER,
                        template_id=template_id,
                        mapped_scenario_id=scenario.id,
                        confidence=decision.confidence,
                        tenant_id=tenant_id,
                    )
                )
        for synonym in decision.synonyms:
            if clean_text(synonym.colloquial) and clean_text(synonym.canonical):
                patterns.append(
                    LearnedPattern(
                        phrase=synonym.colloquial,
                        kind=PatternKind.SYNONYM,
                        template_id=template_id,
                        canonical=synonym.canonical,
                        confidence=decision.confidence,
                        tenant_id=tenant_id,
                    )
                )
        for word in decision.filler_words:
            if clean_text(word):
                patterns.append(
                    LearnedPattern(
                        phrase=word,
                        kind=PatternKind.FILLER,
                        template_id=template_id,
                        confidence=decision.confidence,
                        tenant_id=tenant_id,
                    )
                )
        return patterns[: self._learning.max_patterns_per_call]

    def _build_messages(
        self,
        cleaned: str,
        entries: list[IndexedScenario],
        context: Mapping[str, Any] | None,
    ) -> list[LLMMessage]:
        lines = []
        for entry in entries:
            scenario = entry.scenario
            label = f"- {scenario.id}: {scenario.name}"
            if scenario.category:
                label += f" [{scenario.category}]"
            if scenario.description:
                label += f" - {scenario.description}"
            examples = entry.triggers[:MAX_EXAMPLE_TRIGGERS]
            if examples:
                label += f" (e.g. {'; '.join(examples)})"
            lines.append(label)

        catalog = "\n".join(lines) if lines else "(no scenarios available)"
        prompt = f"Known scenarios:\n{catalog}\n\nCaller said: \"{cleaned}\""
        if context:
            details = "\n".join(f"- {key}: {value}" for key, value in sorted(context.items()))
            prompt += f"\n\nCall context:\n{details}"

        return [
            LLMMessage(role="system", content=SYSTEM_PROMPT),
            LLMMessage(role="user", content=build_structured_prompt(prompt, Tier3Decision)),
        ]
