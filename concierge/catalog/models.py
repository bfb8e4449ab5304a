"""Catalog models: templates, categories and scenarios.

Catalog objects are frozen. Learning merges produce new copies through
the ``with_*`` helpers and never mutate a template that a pool snapshot
may still reference.
"""

import re
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator

from concierge.utils.text import clean_text

URGENT_MARKERS = ("emergency", "urgent")


class ScenarioStatus(str, Enum):
    """Lifecycle of a scenario.

    - DRAFT: being authored, never matched
    - LIVE: matchable
    - ARCHIVED: retired, never matched
    """

    DRAFT = "draft"
    LIVE = "live"
    ARCHIVED = "archived"


class ReplyVariant(BaseModel):
    """One candidate reply with its selection weight."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(..., min_length=1, description="Reply text")
    weight: float = Field(default=1.0, gt=0, description="Relative weight for weighted selection")


class UrgencyKeyword(BaseModel):
    """Word that boosts urgent scenarios when present."""

    model_config = ConfigDict(frozen=True)

    word: str = Field(..., min_length=1)
    weight: float = Field(default=0.1, ge=0.0, le=1.0)


def _coerce_replies(value: Any) -> Any:
    if isinstance(value, list):
        return [{"text": v} if isinstance(v, str) else v for v in value]
    return value


ReplyList = Annotated[list[ReplyVariant], BeforeValidator(_coerce_replies)]


def _check_patterns(patterns: list[str]) -> list[str]:
    for pattern in patterns:
        try:
            re.compile(pattern)
        except re.error as e:
            raise ValueError(f"Invalid regex {pattern!r}: {e}") from e
    return patterns


class Scenario(BaseModel):
    """A single matchable intent."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(..., min_length=1, description="Stable scenario identifier")
    name: str = Field(..., description="Human-readable name")
    status: ScenarioStatus = Field(default=ScenarioStatus.LIVE)
    description: str | None = Field(
        default=None, description="Canonical description used by the semantic tier"
    )
    triggers: list[str] = Field(default_factory=list, description="Trigger phrases")
    regex_triggers: list[str] = Field(default_factory=list, description="Regex triggers")
    negative_triggers: list[str] = Field(
        default_factory=list, description="Phrases that veto this scenario"
    )
    negative_regex_triggers: list[str] = Field(
        default_factory=list, description="Regexes that veto this scenario"
    )
    priority: int = Field(default=0, description="Higher wins on equal confidence")
    quick_replies: ReplyList = Field(default_factory=list)
    full_replies: ReplyList = Field(default_factory=list)
    preconditions: dict[str, bool] = Field(
        default_factory=dict,
        description="Entity key -> whether it must be present in call state",
    )
    cooldown_seconds: int = Field(default=0, ge=0)
    min_confidence: float | None = Field(
        default=None,
        ge=0.0,
        le=1.0,
        description="Raises the tier threshold for this scenario only",
    )
    urgent: bool = Field(default=False, description="Eligible for urgency boost")

    # Filled in when the scenario is flattened into a pool
    template_id: str | None = Field(default=None)
    template_name: str | None = Field(default=None)
    category: str | None = Field(default=None)

    @field_validator("regex_triggers", "negative_regex_triggers")
    @classmethod
    def _validate_patterns(cls, value: list[str]) -> list[str]:
        return _check_patterns(value)

    @property
    def is_live(self) -> bool:
        return self.status == ScenarioStatus.LIVE

    @property
    def is_urgent(self) -> bool:
        """Flagged urgent, or named/categorized as an emergency."""
        if self.urgent:
            return True
        labels = f"{self.name} {self.category or ''}".lower()
        return any(marker in labels for marker in URGENT_MARKERS)

    def has_trigger(self, phrase: str) -> bool:
        cleaned = clean_text(phrase)
        return any(clean_text(t) == cleaned for t in self.triggers)


class Category(BaseModel):
    """Group of scenarios with extra linguistic resources."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(..., min_length=1)
    name: str = Field(...)
    scenarios: list[Scenario] = Field(default_factory=list)
    filler_words: frozenset[str] = Field(default_factory=frozenset)
    synonym_map: dict[str, list[str]] = Field(default_factory=dict)


class Template(BaseModel):
    """Named bundle of scenarios plus shared linguistic resources."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(..., min_length=1)
    name: str = Field(...)
    version: int = Field(default=1, ge=1)
    filler_words: frozenset[str] = Field(default_factory=frozenset)
    synonym_map: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Canonical term -> colloquial aliases",
    )
    urgency_keywords: list[UrgencyKeyword] = Field(default_factory=list)
    categories: list[Category] = Field(default_factory=list)
    scenarios: list[Scenario] = Field(
        default_factory=list, description="Scenarios outside any category"
    )

    def iter_scenarios(self) -> list[tuple[Scenario, Category | None]]:
        """All scenarios with their owning category."""
        items: list[tuple[Scenario, Category | None]] = [(s, None) for s in self.scenarios]
        for category in self.categories:
            items.extend((s, category) for s in category.scenarios)
        return items

    def find_scenario(self, scenario_id: str) -> Scenario | None:
        for scenario, _ in self.iter_scenarios():
            if scenario.id == scenario_id:
                return scenario
        return None

    def with_trigger(self, scenario_id: str, phrase: str) -> "Template | None":
        """Copy with phrase appended to a scenario's triggers.

        Returns None when the scenario is unknown or already has the phrase.
        """
        scenario = self.find_scenario(scenario_id)
        if scenario is None or scenario.has_trigger(phrase):
            return None

        updated = scenario.model_copy(update={"triggers": [*scenario.triggers, clean_text(phrase)]})

        def _swap(scenarios: list[Scenario]) -> list[Scenario]:
            return [updated if s.id == scenario_id else s for s in scenarios]

        return self.model_copy(
            update={
                "version": self.version + 1,
                "scenarios": _swap(self.scenarios),
                "categories": [
                    c.model_copy(update={"scenarios": _swap(c.scenarios)}) for c in self.categories
                ],
            }
        )

    def with_synonym(self, canonical: str, alias: str) -> "Template | None":
        """Copy with alias mapped to canonical; None if already present."""
        canonical = clean_text(canonical)
        alias = clean_text(alias)
        if not canonical or not alias or alias == canonical:
            return None
        existing = self.synonym_map.get(canonical, [])
        if alias in {clean_text(a) for a in existing}:
            return None
        synonym_map = {**self.synonym_map, canonical: [*existing, alias]}
        return self.model_copy(update={"version": self.version + 1, "synonym_map": synonym_map})

    def with_filler(self, word: str) -> "Template | None":
        """Copy with an extra filler word; None if already present."""
        word = clean_text(word)
        if not word or word in self.filler_words:
            return None
        return self.model_copy(
            update={"version": self.version + 1, "filler_words": self.filler_words | {word}}
        )
