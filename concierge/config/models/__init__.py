"""Configuration model exports."""

from concierge.config.models.learning import LearningConfig
from concierge.config.models.observability import (
    LoggingConfig,
    MetricsConfig,
    ObservabilityConfig,
)
from concierge.config.models.providers import (
    EmbeddingProviderConfig,
    LLMProviderConfig,
    ModelPricing,
    ProvidersConfig,
)
from concierge.config.models.routing import (
    ReplySelectionPolicy,
    RoutingConfig,
    ThresholdDefaults,
    ThresholdOverrides,
    Tier1ScoringConfig,
)
from concierge.config.models.storage import StorageConfig
from concierge.config.models.warmup import WarmupConfig

__all__ = [
    # Learning
    "LearningConfig",
    # Observability
    "LoggingConfig",
    "MetricsConfig",
    "ObservabilityConfig",
    # Providers
    "EmbeddingProviderConfig",
    "LLMProviderConfig",
    "ModelPricing",
    "ProvidersConfig",
    # Routing
    "ReplySelectionPolicy",
    "RoutingConfig",
    "ThresholdDefaults",
    "ThresholdOverrides",
    "Tier1ScoringConfig",
    # Storage
    "StorageConfig",
    # Warmup
    "WarmupConfig",
]
