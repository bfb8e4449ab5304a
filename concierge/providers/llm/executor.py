"""LLM Executor - executes Tier3 language model calls using Agno.

The executor handles:
- Model selection and API routing based on model string prefix
- Fallback chain on failure (Agno doesn't have this natively)
- Token usage extraction for cost accounting
- Tenant/call context via ExecutionContext

Uses Agno model classes internally:
- OpenRouter for openrouter/* models
- Claude for anthropic/* models
- OpenAIChat for openai/* models
- Groq for groq/* models
"""

from __future__ import annotations

import time
from contextvars import ContextVar
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel

from concierge.observability.logging import get_logger
from concierge.observability.metrics import LLM_TOKENS
from concierge.providers.llm.base import (
    LLMMessage,
    LLMProvider,
    LLMResponse,
    ProviderError,
    RateLimitError,
    TokenUsage,
    build_structured_prompt,
    parse_structured,
)

if TYPE_CHECKING:
    from agno.agent import Agent

    from concierge.config.models.providers import LLMProviderConfig

logger = get_logger(__name__)

T = TypeVar("T", bound=BaseModel)


# ============================================================================
# Execution Context (avoids parameter threading)
# ============================================================================


@dataclass
class ExecutionContext:
    """Context for LLM execution: tenant, call and routing decision.

    Set by the router at the start of route(), available to executors
    without threading through every method call.
    """

    tenant_id: str
    routing_id: str
    call_id: str | None = None
    tier: str | None = None


_execution_context: ContextVar[ExecutionContext | None] = ContextVar(
    "execution_context", default=None
)


def set_execution_context(ctx: ExecutionContext) -> None:
    """Set execution context for current async task."""
    _execution_context.set(ctx)


def get_execution_context() -> ExecutionContext | None:
    """Get execution context for current async task."""
    return _execution_context.get()


def clear_execution_context() -> None:
    """Clear execution context."""
    _execution_context.set(None)


# ============================================================================
# LLM Executor
# ============================================================================


class LLMExecutor(LLMProvider):
    """Executes LLM calls using Agno.

    Model string format:
        openrouter/anthropic/claude-3-haiku -> OpenRouter(id="anthropic/claude-3-haiku")
        anthropic/claude-3-haiku -> Claude(id="claude-3-haiku")
        openai/gpt-4o-mini -> OpenAIChat(id="gpt-4o-mini")
        groq/llama-3.1-70b -> Groq(id="llama-3.1-70b")
        mock/test -> Mock response (for testing)

    Example:
        executor = LLMExecutor(
            model="openai/gpt-4o-mini",
            fallback_models=["anthropic/claude-3-haiku-20240307"],
        )

        decision, response = await executor.generate_structured(prompt, Tier3Decision)
    """

    def __init__(
        self,
        model: str,
        fallback_models: list[str] | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.2,
    ) -> None:
        """Initialize the executor.

        Args:
            model: Primary model string (e.g., 'openai/gpt-4o-mini')
            fallback_models: Models to try if primary fails
            max_tokens: Default completion token cap
            temperature: Default sampling temperature
        """
        self._model = model
        self._fallback_models = fallback_models or []
        self._max_tokens = max_tokens
        self._temperature = temperature

        # One Agno agent per (model, max_tokens, temperature)
        self._agents: dict[tuple[str, int, float], Agent] = {}

    @property
    def model(self) -> str:
        """Primary model for this executor."""
        return self._model

    async def generate(
        self,
        messages: list[LLMMessage],
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """Generate text from messages.

        Uses primary model, falls back to fallback_models on failure.
        Sampling arguments left as None take the executor defaults.

        Raises:
            ProviderError: If every model in the chain failed
        """
        models_to_try = [self._model] + self._fallback_models
        last_error: Exception | None = None
        sampling = self._sampling(max_tokens, temperature)

        ctx = get_execution_context()

        for model in models_to_try:
            try:
                response = await self._generate_with_model(model, messages, *sampling)
            except RateLimitError as e:
                logger.warning("executor_rate_limited", model=model, error=str(e))
                last_error = e
                continue
            except ProviderError as e:
                logger.warning("executor_provider_error", model=model, error=str(e))
                last_error = e
                continue

            if ctx:
                response.metadata["tenant_id"] = ctx.tenant_id
                response.metadata["routing_id"] = ctx.routing_id
                response.metadata["call_id"] = ctx.call_id
                response.metadata["tier"] = ctx.tier
            return response

        raise ProviderError(
            f"All models failed. Tried: {models_to_try}. Last error: {last_error}"
        )

    async def generate_structured(
        self,
        prompt: str,
        schema: type[T],
        *,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = 0.0,
        **kwargs: Any,
    ) -> tuple[T, LLMResponse]:
        """Generate structured output matching a Pydantic schema.

        A model whose output does not parse counts as failed and the next
        model in the chain is tried.
        """
        sampling = self._sampling(max_tokens, temperature)
        messages = []
        if system_prompt:
            messages.append(LLMMessage(role="system", content=system_prompt))
        messages.append(
            LLMMessage(role="user", content=build_structured_prompt(prompt, schema))
        )

        models_to_try = [self._model] + self._fallback_models
        last_error: Exception | None = None

        for model in models_to_try:
            try:
                response = await self._generate_with_model(model, messages, *sampling)
                return parse_structured(response.content, schema), response
            except ProviderError as e:
                logger.warning(
                    "structured_generation_failed",
                    model=model,
                    schema=schema.__name__,
                    error=str(e),
                )
                last_error = e
                continue

        raise ProviderError(
            f"Structured generation failed for all models. Last error: {last_error}"
        )

    # ========================================================================
    # Internal: Agno-based execution
    # ========================================================================

    def _sampling(self, max_tokens: int | None, temperature: float | None) -> tuple[int, float]:
        return (
            self._max_tokens if max_tokens is None else max_tokens,
            self._temperature if temperature is None else temperature,
        )

    def _get_or_create_agent(
        self, model: str, max_tokens: int, temperature: float
    ) -> Agent | None:
        """Get cached Agno agent or create new one for model and sampling."""
        key = (model, max_tokens, temperature)
        if key in self._agents:
            return self._agents[key]

        agno_model = self._create_agno_model(model, max_tokens, temperature)
        if agno_model is None:
            return None

        from agno.agent import Agent

        agent = Agent(model=agno_model, markdown=False)
        self._agents[key] = agent
        return agent

    def _create_agno_model(self, model: str, max_tokens: int, temperature: float) -> Any:
        """Create Agno model class from model string.

        Returns None for mock models.
        """
        provider_type, api_model = self._parse_model(model)
        params = {"max_tokens": max_tokens, "temperature": temperature}

        if provider_type == "mock":
            return None

        if provider_type == "openrouter":
            from agno.models.openrouter import OpenRouter

            return OpenRouter(id=api_model, **params)

        if provider_type == "anthropic":
            from agno.models.anthropic import Claude

            return Claude(id=api_model, **params)

        if provider_type == "openai":
            from agno.models.openai import OpenAIChat

            return OpenAIChat(id=api_model, **params)

        if provider_type == "groq":
            from agno.models.groq import Groq

            return Groq(id=api_model, **params)

        from agno.models.openrouter import OpenRouter

        logger.warning(
            "unknown_provider_defaulting_to_openrouter",
            model=model,
            provider_type=provider_type,
        )
        return OpenRouter(id=model, **params)

    def _format_messages_for_agno(self, messages: list[LLMMessage]) -> str:
        """Convert messages to Agno's single string input.

        System messages are passed to the agent as instructions instead.
        """
        user_messages = [m for m in messages if m.role != "system"]

        if len(user_messages) == 1:
            return user_messages[0].content

        parts = []
        for msg in user_messages:
            if msg.role == "user":
                parts.append(f"User: {msg.content}")
            elif msg.role == "assistant":
                parts.append(f"Assistant: {msg.content}")
        return "\n\n".join(parts)

    def _get_system_prompt(self, messages: list[LLMMessage]) -> str | None:
        for msg in messages:
            if msg.role == "system":
                return msg.content
        return None

    async def _generate_with_model(
        self,
        model: str,
        messages: list[LLMMessage],
        max_tokens: int,
        temperature: float,
    ) -> LLMResponse:
        """Execute generation with a specific model using Agno."""
        provider_type, _ = self._parse_model(model)

        agent = self._get_or_create_agent(model, max_tokens, temperature)
        if agent is None:
            return self._mock_response(model)

        input_text = self._format_messages_for_agno(messages)
        system_prompt = self._get_system_prompt(messages)
        if system_prompt:
            agent.instructions = [system_prompt]

        start_time = time.perf_counter()

        try:
            run_response = await agent.arun(input_text)
        except Exception as e:
            error_msg = str(e).lower()
            if "rate" in error_msg and "limit" in error_msg:
                raise RateLimitError(f"Rate limited: {e}") from e
            raise ProviderError(f"Agno execution failed: {e}") from e

        latency_ms = (time.perf_counter() - start_time) * 1000
        content = run_response.content if run_response.content else ""
        usage = self._extract_usage(run_response)

        if usage is not None:
            LLM_TOKENS.labels(model=model, direction="input").inc(usage.prompt_tokens)
            LLM_TOKENS.labels(model=model, direction="output").inc(usage.completion_tokens)

        logger.debug(
            "executor_generate_complete",
            model=model,
            latency_ms=round(latency_ms, 2),
            content_length=len(content),
            prompt_tokens=usage.prompt_tokens if usage else None,
            completion_tokens=usage.completion_tokens if usage else None,
        )

        return LLMResponse(
            content=str(content),
            model=model,
            finish_reason="stop",
            usage=usage,
            metadata={"latency_ms": latency_ms, "provider": provider_type},
        )

    def _extract_usage(self, run_response: Any) -> TokenUsage | None:
        """Read token counts from an Agno run response.

        Newer Agno releases expose a metrics object with integer fields,
        older ones a dict of per-message lists.
        """
        metrics = getattr(run_response, "metrics", None)
        if metrics is None:
            return None

        def _read(name: str) -> int:
            value = (
                metrics.get(name) if isinstance(metrics, dict) else getattr(metrics, name, None)
            )
            if isinstance(value, list):
                return int(sum(value))
            return int(value or 0)

        prompt_tokens = _read("input_tokens")
        completion_tokens = _read("output_tokens")
        if prompt_tokens == 0 and completion_tokens == 0:
            return None
        return TokenUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        )

    def _mock_response(self, model: str) -> LLMResponse:
        return LLMResponse(
            content=f"Mock response for {model}",
            model=model,
            finish_reason="stop",
            usage=TokenUsage(prompt_tokens=10, completion_tokens=5, total_tokens=15),
        )

    @staticmethod
    def _parse_model(model: str) -> tuple[str, str]:
        """Parse model string into (provider_type, api_model).

        Examples:
            "openrouter/anthropic/claude-3-haiku" -> ("openrouter", "anthropic/claude-3-haiku")
            "openai/gpt-4o-mini" -> ("openai", "gpt-4o-mini")
            "mock/test" -> ("mock", "test")
        """
        parts = model.split("/")

        if len(parts) >= 3 and parts[0] == "openrouter":
            return "openrouter", "/".join(parts[1:])
        if len(parts) >= 2:
            return parts[0], "/".join(parts[1:])
        return "mock", model


# ============================================================================
# Factory functions
# ============================================================================


def create_executor(config: LLMProviderConfig) -> LLMExecutor:
    """Create an LLMExecutor from provider configuration."""
    return LLMExecutor(
        model=config.model,
        fallback_models=list(config.fallback_models),
        max_tokens=config.max_tokens,
        temperature=config.temperature,
    )
