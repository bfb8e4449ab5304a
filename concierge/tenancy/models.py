"""Per-tenant routing configuration."""

from pydantic import BaseModel, ConfigDict, Field

from concierge.config.models.routing import ThresholdOverrides


class TemplateReference(BaseModel):
    """A template a tenant draws scenarios from."""

    model_config = ConfigDict(frozen=True)

    template_id: str = Field(..., min_length=1)
    priority: int = Field(
        default=0, description="Higher priority templates win scenario id clashes"
    )
    enabled: bool = Field(default=True)


class ScenarioControl(BaseModel):
    """Tenant-level switch for one scenario of one template."""

    model_config = ConfigDict(frozen=True)

    template_id: str
    scenario_id: str
    enabled: bool = False


class TenantConfig(BaseModel):
    """Versioned configuration snapshot for one tenant.

    Written by the admin layer. Bump ``version`` on every change so cached
    scenario pools are rebuilt.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    tenant_id: str = Field(..., min_length=1)
    version: int = Field(default=1, ge=1)
    templates: list[TemplateReference] = Field(default_factory=list)
    scenario_controls: list[ScenarioControl] = Field(default_factory=list)

    thresholds: ThresholdOverrides = Field(default_factory=ThresholdOverrides)
    inherit_global: bool = Field(
        default=False,
        description="Fill thresholds the tenant does not set from the shared global config",
    )

    daily_budget_usd: float | None = Field(default=None, description="Daily Tier3 budget")
    warmup_enabled: bool | None = Field(default=None)
    always_warmup_categories: list[str] = Field(default_factory=list)
    never_warmup_categories: list[str] = Field(default_factory=list)
    minimum_hit_rate: float | None = Field(default=None)

    tier3_enabled: bool = Field(default=True)
    learning_enabled: bool = Field(default=True)
    fallback_reply: str | None = Field(default=None)
    reply_seed: int | None = Field(default=None, description="Seed for reply variant selection")

    def is_scenario_enabled(self, template_id: str, scenario_id: str) -> bool:
        for control in self.scenario_controls:
            if control.template_id == template_id and control.scenario_id == scenario_id:
                return control.enabled
        return True
