"""Mock LLM provider for testing."""

import asyncio
import json
from typing import Any

from pydantic import BaseModel

from concierge.providers.llm.base import (
    LLMMessage,
    LLMProvider,
    LLMResponse,
    ProviderError,
    TokenUsage,
)


class MockLLMProvider(LLMProvider):
    """Mock LLM provider for testing.

    Returns configurable responses without making actual API calls.
    Supports an artificial delay (for race tests) and error injection.
    """

    def __init__(
        self,
        default_response: str | dict[str, Any] | BaseModel = "Mock response",
        default_model: str = "mock/gpt-4o-mini",
        responses: dict[str, str] | None = None,
        delay_seconds: float = 0.0,
        error: Exception | None = None,
        usage: TokenUsage | None = None,
    ):
        """Initialize mock provider.

        Args:
            default_response: Response when no trigger matches; dicts and models
                are serialized to JSON
            default_model: Model name to report
            responses: Map of substring found in the last message to response
            delay_seconds: Simulated latency before responding
            error: Exception raised instead of responding
            usage: Token usage to report (estimated from text when omitted)
        """
        self._default_response = self._serialize(default_response)
        self._default_model = default_model
        self._responses = responses or {}
        self._delay_seconds = delay_seconds
        self._error = error
        self._usage = usage
        self._call_history: list[dict[str, Any]] = []
        self._completed_calls = 0

    @property
    def model(self) -> str:
        return self._default_model

    @property
    def call_history(self) -> list[dict[str, Any]]:
        """Calls started, for testing assertions."""
        return self._call_history

    @property
    def completed_calls(self) -> int:
        """Calls that ran to completion (not cancelled)."""
        return self._completed_calls

    def clear_history(self) -> None:
        self._call_history.clear()
        self._completed_calls = 0

    def set_response(self, trigger: str, response: str | dict[str, Any] | BaseModel) -> None:
        """Set a response for messages containing trigger."""
        self._responses[trigger] = self._serialize(response)

    async def generate(
        self,
        messages: list[LLMMessage],
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """Generate mock response."""
        self._call_history.append({
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "kwargs": kwargs,
        })

        if self._delay_seconds:
            await asyncio.sleep(self._delay_seconds)

        if self._error is not None:
            raise self._error

        content = self._default_response
        if messages:
            last_message = messages[-1].content
            for trigger, response in self._responses.items():
                if trigger in last_message:
                    content = response
                    break

        prompt_chars = sum(len(m.content) for m in messages)
        usage = self._usage or TokenUsage(
            prompt_tokens=prompt_chars // 4,
            completion_tokens=len(content) // 4,
            total_tokens=prompt_chars // 4 + len(content) // 4,
        )

        self._completed_calls += 1
        return LLMResponse(
            content=content,
            model=self._default_model,
            finish_reason="stop",
            usage=usage,
        )

    @staticmethod
    def _serialize(response: str | dict[str, Any] | BaseModel) -> str:
        if isinstance(response, BaseModel):
            return response.model_dump_json()
        if isinstance(response, dict):
            return json.dumps(response)
        return response


class FailingLLMProvider(MockLLMProvider):
    """Provider that always raises ProviderError."""

    def __init__(self, message: str = "provider unavailable", **kwargs: Any) -> None:
        super().__init__(error=ProviderError(message), **kwargs)
