"""Tests for LLM providers, pricing and structured output parsing."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from pydantic import BaseModel

from concierge.config.models.providers import LLMProviderConfig, ModelPricing
from concierge.providers.llm import (
    ExecutionContext,
    FailingLLMProvider,
    LLMExecutor,
    LLMMessage,
    LLMResponse,
    MockLLMProvider,
    PriceTable,
    ProviderError,
    RateLimitError,
    TokenUsage,
    clear_execution_context,
    create_executor,
    estimate_tokens,
    set_execution_context,
)
from concierge.providers.llm.base import build_structured_prompt, parse_structured


class Answer(BaseModel):
    label: str
    score: float


class TestMockLLMProvider:
    """Tests for MockLLMProvider."""

    @pytest.fixture
    def provider(self) -> MockLLMProvider:
        return MockLLMProvider(default_response="Hello from mock")

    @pytest.mark.asyncio
    async def test_generate_returns_default_response(self, provider):
        """Should return the default response with the default model."""
        response = await provider.generate([LLMMessage(role="user", content="Hi")])

        assert response.content == "Hello from mock"
        assert response.model == "mock/gpt-4o-mini"
        assert response.finish_reason == "stop"

    @pytest.mark.asyncio
    async def test_trigger_response(self, provider):
        """Should pick the response whose trigger appears in the last message."""
        provider.set_response("weather", "It is sunny")

        response = await provider.generate(
            [LLMMessage(role="user", content="what is the weather like")]
        )

        assert response.content == "It is sunny"

    @pytest.mark.asyncio
    async def test_dict_response_serialized_as_json(self):
        """Should serialize dict responses to JSON."""
        provider = MockLLMProvider(default_response={"label": "x", "score": 0.5})

        parsed, _ = await provider.generate_structured("classify", Answer)

        assert parsed == Answer(label="x", score=0.5)

    @pytest.mark.asyncio
    async def test_usage_estimated_when_not_given(self, provider):
        """Should estimate usage from text length."""
        response = await provider.generate([LLMMessage(role="user", content="a" * 40)])

        assert response.usage is not None
        assert response.usage.prompt_tokens == 10

    @pytest.mark.asyncio
    async def test_usage_override(self):
        """Should report configured usage verbatim."""
        usage = TokenUsage(prompt_tokens=100, completion_tokens=20, total_tokens=120)
        provider = MockLLMProvider(usage=usage)

        response = await provider.generate([LLMMessage(role="user", content="hi")])

        assert response.usage == usage

    @pytest.mark.asyncio
    async def test_tracks_calls(self, provider):
        """Should record started and completed calls."""
        await provider.generate([LLMMessage(role="user", content="Hi")], max_tokens=50)

        assert len(provider.call_history) == 1
        assert provider.call_history[0]["max_tokens"] == 50
        assert provider.completed_calls == 1

        provider.clear_history()
        assert provider.call_history == []
        assert provider.completed_calls == 0

    @pytest.mark.asyncio
    async def test_failing_provider_raises(self):
        """Should raise ProviderError and not count a completed call."""
        provider = FailingLLMProvider("down")

        with pytest.raises(ProviderError, match="down"):
            await provider.generate([LLMMessage(role="user", content="Hi")])

        assert len(provider.call_history) == 1
        assert provider.completed_calls == 0


class TestStructuredParsing:
    """Tests for structured prompt building and parsing."""

    def test_prompt_contains_schema(self):
        """Should append the JSON schema to the prompt."""
        prompt = build_structured_prompt("Classify this", Answer)

        assert prompt.startswith("Classify this")
        assert '"label"' in prompt
        assert "Output only the JSON" in prompt

    def test_parses_plain_json(self):
        """Should parse bare JSON."""
        parsed = parse_structured('{"label": "a", "score": 1}', Answer)

        assert parsed.label == "a"
        assert parsed.score == 1.0

    def test_parses_fenced_json(self):
        """Should strip a ```json fence."""
        content = 'Here you go:\n```json\n{"label": "b", "score": 0.2}\n```'

        assert parse_structured(content, Answer).label == "b"

    def test_parses_bare_fence(self):
        """Should strip an unlabeled fence."""
        content = '```\n{"label": "c", "score": 0.3}\n```'

        assert parse_structured(content, Answer).label == "c"

    def test_invalid_content_raises_provider_error(self):
        """Should wrap validation failures in ProviderError."""
        with pytest.raises(ProviderError):
            parse_structured("not json at all", Answer)

    def test_missing_fields_raise_provider_error(self):
        """Should reject JSON missing required fields."""
        with pytest.raises(ProviderError):
            parse_structured('{"label": "x"}', Answer)


class TestPriceTable:
    """Tests for PriceTable."""

    @pytest.fixture
    def prices(self) -> PriceTable:
        return PriceTable({
            "cheap": ModelPricing(input_per_1k=0.001, output_per_1k=0.002),
            "pricey": ModelPricing(input_per_1k=0.01, output_per_1k=0.03),
        })

    def test_empty_table_rejected(self):
        """Should refuse an empty table."""
        with pytest.raises(ValueError):
            PriceTable({})

    def test_cost_from_usage(self, prices):
        """Should bill prompt and completion tokens separately."""
        usage = TokenUsage(prompt_tokens=1000, completion_tokens=500, total_tokens=1500)

        assert prices.cost("cheap", usage) == pytest.approx(0.001 + 0.001)

    def test_provider_prefix_ignored(self, prices):
        """Should resolve 'openai/cheap' to the 'cheap' price."""
        assert prices.price_for("openrouter/openai/cheap") == prices.price_for("cheap")

    def test_unknown_model_billed_at_ceiling(self, prices):
        """Should never under-estimate an unknown model."""
        price = prices.price_for("mystery-model")

        assert price.input_per_1k == 0.01
        assert price.output_per_1k == 0.03

    def test_estimate_is_upper_bound(self, prices):
        """Should reserve for the full completion cap."""
        prompt = "x" * 400
        estimate = prices.estimate("cheap", prompt, max_completion_tokens=200)
        actual = prices.cost_from_text("cheap", prompt, "short answer")

        assert estimate > actual > 0

    def test_estimate_tokens_minimum_one(self):
        """Should count at least one token."""
        assert estimate_tokens("") == 1
        assert estimate_tokens("abcdefgh") == 2


class TestLLMExecutor:
    """Tests for LLMExecutor model routing and fallback."""

    @pytest.fixture(autouse=True)
    def _reset_context(self):
        yield
        clear_execution_context()

    @pytest.mark.parametrize(
        ("model", "expected"),
        [
            ("openrouter/anthropic/claude-3-haiku", ("openrouter", "anthropic/claude-3-haiku")),
            ("openai/gpt-4o-mini", ("openai", "gpt-4o-mini")),
            ("anthropic/claude-3-haiku", ("anthropic", "claude-3-haiku")),
            ("mock/test", ("mock", "test")),
            ("bare-model", ("mock", "bare-model")),
        ],
    )
    def test_parse_model(self, model, expected):
        """Should split provider prefix from the API model id."""
        assert LLMExecutor._parse_model(model) == expected

    @pytest.mark.asyncio
    async def test_mock_model_needs_no_backend(self):
        """Should answer mock/* models without creating an agent."""
        executor = LLMExecutor(model="mock/test")

        response = await executor.generate([LLMMessage(role="user", content="hi")])

        assert response.content == "Mock response for mock/test"
        assert response.usage is not None

    @pytest.mark.asyncio
    async def test_execution_context_attached(self):
        """Should stamp tenant and routing ids onto the response metadata."""
        set_execution_context(ExecutionContext(tenant_id="acme", routing_id="r-1"))
        executor = LLMExecutor(model="mock/test")

        response = await executor.generate([LLMMessage(role="user", content="hi")])

        assert response.metadata["tenant_id"] == "acme"
        assert response.metadata["routing_id"] == "r-1"
        assert response.metadata["call_id"] is None

    @pytest.mark.asyncio
    async def test_per_call_sampling_reaches_model(self):
        """Should build the model with per-call sampling, else the defaults."""
        executor = LLMExecutor(model="openai/a", max_tokens=300, temperature=0.2)

        with patch.object(executor, "_create_agno_model", return_value=None) as create:
            await executor.generate(
                [LLMMessage(role="user", content="hi")], max_tokens=50, temperature=0.0
            )
            await executor.generate([LLMMessage(role="user", content="hi")])

        assert [c.args for c in create.call_args_list] == [
            ("openai/a", 50, 0.0),
            ("openai/a", 300, 0.2),
        ]

    def test_agents_cached_per_sampling(self):
        """Should reuse an agent only for the same model and sampling."""
        executor = LLMExecutor(model="openai/a")

        with (
            patch.object(executor, "_create_agno_model", return_value=object()),
            patch("agno.agent.Agent", side_effect=lambda **kwargs: object()),
        ):
            first = executor._get_or_create_agent("openai/a", 50, 0.0)
            again = executor._get_or_create_agent("openai/a", 50, 0.0)
            warmer = executor._get_or_create_agent("openai/a", 50, 0.7)

        assert first is again
        assert warmer is not first

    @pytest.mark.asyncio
    async def test_structured_defaults_to_zero_temperature(self):
        """Should sample structured output at temperature zero."""
        executor = LLMExecutor(model="openai/a", temperature=0.9)
        ok = LLMResponse(content='{"label": "ok", "score": 0.9}', model="openai/a")

        with patch.object(executor, "_generate_with_model", AsyncMock(return_value=ok)) as gen:
            await executor.generate_structured("classify", Answer, max_tokens=64)

        assert gen.await_args.args[2:] == (64, 0.0)

    @pytest.mark.asyncio
    async def test_falls_back_on_provider_error(self):
        """Should try the next model when the primary fails."""
        executor = LLMExecutor(model="openai/a", fallback_models=["openai/b"])
        ok = LLMResponse(content="from b", model="openai/b")

        with patch.object(
            executor,
            "_generate_with_model",
            AsyncMock(side_effect=[RateLimitError("slow down"), ok]),
        ) as generate:
            response = await executor.generate([LLMMessage(role="user", content="hi")])

        assert response.content == "from b"
        assert [c.args[0] for c in generate.await_args_list] == ["openai/a", "openai/b"]

    @pytest.mark.asyncio
    async def test_all_models_failing_raises(self):
        """Should raise ProviderError naming the chain."""
        executor = LLMExecutor(model="openai/a", fallback_models=["openai/b"])

        with patch.object(
            executor, "_generate_with_model", AsyncMock(side_effect=ProviderError("boom"))
        ):
            with pytest.raises(ProviderError, match="All models failed"):
                await executor.generate([LLMMessage(role="user", content="hi")])

    @pytest.mark.asyncio
    async def test_structured_falls_back_on_unparseable_output(self):
        """Should treat unparseable output as a failed model."""
        executor = LLMExecutor(model="openai/a", fallback_models=["openai/b"])
        responses = [
            LLMResponse(content="nonsense", model="openai/a"),
            LLMResponse(content='{"label": "ok", "score": 0.9}', model="openai/b"),
        ]

        with patch.object(executor, "_generate_with_model", AsyncMock(side_effect=responses)):
            parsed, response = await executor.generate_structured("classify", Answer)

        assert parsed.label == "ok"
        assert response.model == "openai/b"

    def test_extract_usage_from_metrics_object(self):
        """Should read integer token fields from a metrics object."""
        run = SimpleNamespace(metrics=SimpleNamespace(input_tokens=12, output_tokens=3))

        usage = LLMExecutor(model="mock/test")._extract_usage(run)

        assert usage == TokenUsage(prompt_tokens=12, completion_tokens=3, total_tokens=15)

    def test_extract_usage_from_metrics_dict(self):
        """Should sum per-message lists from a metrics dict."""
        run = SimpleNamespace(metrics={"input_tokens": [5, 7], "output_tokens": [2]})

        usage = LLMExecutor(model="mock/test")._extract_usage(run)

        assert usage is not None
        assert usage.prompt_tokens == 12
        assert usage.completion_tokens == 2

    def test_extract_usage_missing(self):
        """Should return None when no usage is reported."""
        executor = LLMExecutor(model="mock/test")

        assert executor._extract_usage(SimpleNamespace(metrics=None)) is None
        assert executor._extract_usage(SimpleNamespace()) is None

    def test_create_executor_from_config(self):
        """Should carry model, fallbacks and sampling settings over."""
        config = LLMProviderConfig(
            model="mock/primary", fallback_models=["mock/backup"], max_tokens=123
        )

        executor = create_executor(config)

        assert executor.model == "mock/primary"
        assert executor._fallback_models == ["mock/backup"]
        assert executor._max_tokens == 123
