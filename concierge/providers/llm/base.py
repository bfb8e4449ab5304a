"""LLM data models, provider interface and error types.

- LLMMessage: Input message format
- LLMResponse: Output response format
- TokenUsage: Token counting
- LLMProvider: interface shared by LLMExecutor and MockLLMProvider
- Error types for different failure modes
"""

import json
from abc import ABC, abstractmethod
from typing import Any, TypeVar

from pydantic import BaseModel, Field, ValidationError

T = TypeVar("T", bound=BaseModel)


class LLMMessage(BaseModel):
    """A message in a conversation."""

    role: str = Field(..., description="Role: system, user, or assistant")
    content: str = Field(..., description="Message content")


class TokenUsage(BaseModel):
    """Token usage statistics."""

    prompt_tokens: int = Field(..., ge=0, description="Tokens in prompt")
    completion_tokens: int = Field(..., ge=0, description="Tokens in completion")
    total_tokens: int = Field(..., ge=0, description="Total tokens used")


class LLMResponse(BaseModel):
    """Response from an LLM call."""

    content: str = Field(..., description="Generated text")
    model: str = Field(..., description="Model used")
    finish_reason: str | None = Field(
        default=None, description="Why generation stopped"
    )
    usage: TokenUsage | None = Field(
        default=None, description="Token usage stats reported by the provider"
    )
    metadata: dict[str, Any] = Field(
        default_factory=dict, description="Execution metadata"
    )


# ============================================================================
# Error Types
# ============================================================================


class ProviderError(Exception):
    """Base exception for LLM provider errors."""

    pass


class AuthenticationError(ProviderError):
    """Invalid or missing API key."""

    pass


class RateLimitError(ProviderError):
    """Rate limit exceeded."""

    pass


class ModelError(ProviderError):
    """Model not found or unavailable."""

    pass


class ContentFilterError(ProviderError):
    """Content blocked by safety filter."""

    pass


# ============================================================================
# Provider interface
# ============================================================================


def build_structured_prompt(prompt: str, schema: type[BaseModel]) -> str:
    """Append JSON schema instructions to a prompt."""
    schema_str = json.dumps(schema.model_json_schema(), indent=2)
    return f"""{prompt}

Respond with valid JSON matching this schema:
```json
{schema_str}
```

Output only the JSON, no other text."""


def parse_structured(content: str, schema: type[T]) -> T:
    """Parse model output into a schema, tolerating fenced code blocks.

    Raises:
        ProviderError: If the content is not valid JSON for the schema
    """
    content = content.strip()
    if "```json" in content:
        start = content.find("```json") + 7
        end = content.find("```", start)
        if end > start:
            content = content[start:end].strip()
    elif "```" in content:
        start = content.find("```") + 3
        end = content.find("```", start)
        if end > start:
            content = content[start:end].strip()

    try:
        return schema.model_validate_json(content)
    except ValidationError as e:
        raise ProviderError(f"Failed to parse structured response: {e}") from e


class LLMProvider(ABC):
    """Interface for text generation backends."""

    @property
    @abstractmethod
    def model(self) -> str:
        """Primary model string."""

    @abstractmethod
    async def generate(
        self,
        messages: list[LLMMessage],
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """Generate text from messages.

        Sampling arguments left as None take the provider's defaults.
        """

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

        Returns:
            Tuple of (parsed model, LLMResponse)
        """
        messages = []
        if system_prompt:
            messages.append(LLMMessage(role="system", content=system_prompt))
        messages.append(
            LLMMessage(role="user", content=build_structured_prompt(prompt, schema))
        )

        response = await self.generate(
            messages, max_tokens=max_tokens, temperature=temperature, **kwargs
        )
        return parse_structured(response.content, schema), response

    async def count_tokens(self, text: str) -> int:
        """Estimate tokens (~4 chars per token)."""
        return max(1, len(text) // 4)
