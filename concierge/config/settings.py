"""Root settings model for Concierge configuration."""

from typing import Any, Literal

from pydantic import Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from concierge.config.models.learning import LearningConfig
from concierge.config.models.observability import ObservabilityConfig
from concierge.config.models.providers import ProvidersConfig
from concierge.config.models.routing import RoutingConfig, Tier1ScoringConfig
from concierge.config.models.storage import StorageConfig
from concierge.config.models.warmup import WarmupConfig

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

# TOML config handed to the custom settings source
_toml_config: dict[str, Any] = {}


def set_toml_config(config: dict[str, Any]) -> None:
    """Set the TOML configuration to be used by Settings."""
    global _toml_config
    _toml_config = config


class TomlConfigSettingsSource(PydanticBaseSettingsSource):
    """Settings source that reads from the loaded TOML configuration."""

    def get_field_value(
        self, field: Any, field_name: str  # noqa: ARG002
    ) -> tuple[Any, str, bool]:
        value = _toml_config.get(field_name)
        return value, field_name, value is not None

    def __call__(self) -> dict[str, Any]:
        return _toml_config.copy()


class Settings(BaseSettings):
    """Root configuration object containing all nested configuration sections.

    Configuration is loaded in this order:
    1. Pydantic model defaults (in code)
    2. config/default.toml (base configuration)
    3. config/{CONCIERGE_ENV}.toml (environment overrides)
    4. CONCIERGE_* environment variables (runtime overrides)
    """

    model_config = SettingsConfigDict(
        env_prefix="CONCIERGE_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(default="concierge", description="Application name for logging")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: LogLevel = Field(default="INFO", description="Logging level")

    routing: RoutingConfig = Field(
        default_factory=RoutingConfig,
        description="Router thresholds, timeouts and fallback reply",
    )
    tier1: Tier1ScoringConfig = Field(
        default_factory=Tier1ScoringConfig,
        description="Rule-based matcher scoring constants",
    )
    warmup: WarmupConfig = Field(
        default_factory=WarmupConfig,
        description="Speculative Tier3 and budget configuration",
    )
    learning: LearningConfig = Field(
        default_factory=LearningConfig,
        description="Pattern learning configuration",
    )
    providers: ProvidersConfig = Field(
        default_factory=ProvidersConfig,
        description="AI provider configuration",
    )
    storage: StorageConfig = Field(
        default_factory=StorageConfig,
        description="Ledger storage configuration",
    )
    observability: ObservabilityConfig = Field(
        default_factory=ObservabilityConfig,
        description="Observability configuration",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize settings sources to include TOML config.

        Priority order (highest to lowest):
        1. init_settings (constructor arguments)
        2. env_settings (CONCIERGE_* environment variables)
        3. toml_settings (config/*.toml files)
        4. (defaults from model)
        """
        return (
            init_settings,
            env_settings,
            TomlConfigSettingsSource(settings_cls),
        )
