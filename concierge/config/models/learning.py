"""Pattern learning configuration."""

from pydantic import BaseModel, Field


class LearningConfig(BaseModel):
    """When LLM-discovered patterns are promoted into the rule tier."""

    enabled: bool = Field(default=True, description="Enable pattern learning")
    min_confidence: float = Field(
        default=0.75,
        ge=0.0,
        le=1.0,
        description="Confidence required for promotion",
    )
    min_repeat_count: int = Field(
        default=1,
        ge=1,
        description="Sightings required for promotion",
    )
    suggestion_confidence: float = Field(
        default=0.60,
        ge=0.0,
        le=1.0,
        description="Lowest confidence kept as a pending pattern",
    )
    max_patterns_per_call: int = Field(
        default=5,
        ge=0,
        description="Maximum patterns accepted from one LLM call",
    )
