"""LLM providers for the Tier3 fallback."""

from concierge.providers.llm.base import (
    AuthenticationError,
    ContentFilterError,
    LLMMessage,
    LLMProvider,
    LLMResponse,
    ModelError,
    ProviderError,
    RateLimitError,
    TokenUsage,
)
from concierge.providers.llm.executor import (
    ExecutionContext,
    LLMExecutor,
    clear_execution_context,
    create_executor,
    get_execution_context,
    set_execution_context,
)
from concierge.providers.llm.mock import FailingLLMProvider, MockLLMProvider
from concierge.providers.llm.pricing import PriceTable, estimate_tokens

__all__ = [
    "AuthenticationError",
    "ContentFilterError",
    "ExecutionContext",
    "FailingLLMProvider",
    "LLMExecutor",
    "LLMMessage",
    "LLMProvider",
    "LLMResponse",
    "MockLLMProvider",
    "ModelError",
    "PriceTable",
    "ProviderError",
    "RateLimitError",
    "TokenUsage",
    "clear_execution_context",
    "create_executor",
    "estimate_tokens",
    "get_execution_context",
    "set_execution_context",
]
