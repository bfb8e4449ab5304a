"""AI provider configuration models."""

from typing import Literal

from pydantic import BaseModel, Field

EmbeddingProviderType = Literal["hashing", "sentence_transformers", "mock"]


class ModelPricing(BaseModel):
    """USD price per 1K tokens."""

    input_per_1k: float = Field(..., ge=0.0, description="Price per 1K prompt tokens")
    output_per_1k: float = Field(..., ge=0.0, description="Price per 1K completion tokens")


def _default_pricing() -> dict[str, ModelPricing]:
    return {
        "gpt-4o": ModelPricing(input_per_1k=0.0025, output_per_1k=0.01),
        "gpt-4o-mini": ModelPricing(input_per_1k=0.00015, output_per_1k=0.0006),
        "gpt-3.5-turbo": ModelPricing(input_per_1k=0.0005, output_per_1k=0.0015),
    }


class LLMProviderConfig(BaseModel):
    """Configuration for the Tier3 language model."""

    model: str = Field(
        default="openai/gpt-4o-mini",
        description="Model string with provider prefix (openai/, anthropic/, groq/, mock/, ...)",
    )
    fallback_models: list[str] = Field(
        default_factory=list,
        description="Models tried in order when the primary fails",
    )
    max_tokens: int = Field(default=400, gt=0, description="Completion token cap")
    temperature: float = Field(default=0.2, ge=0.0, le=2.0, description="Sampling temperature")
    pricing: dict[str, ModelPricing] = Field(
        default_factory=_default_pricing,
        description="Per-model pricing keyed by bare model name",
    )


class EmbeddingProviderConfig(BaseModel):
    """Configuration for the Tier2 embedding provider."""

    provider: EmbeddingProviderType = Field(default="hashing", description="Provider type")
    model: str = Field(default="hashing-ngram", description="Model identifier")
    dimensions: int = Field(default=512, gt=0, description="Embedding dimensions")


class ProvidersConfig(BaseModel):
    """AI provider configuration."""

    llm: LLMProviderConfig = Field(default_factory=LLMProviderConfig)
    embedding: EmbeddingProviderConfig = Field(default_factory=EmbeddingProviderConfig)
