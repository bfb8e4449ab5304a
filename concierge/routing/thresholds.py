"""Effective threshold resolution.

Each threshold is resolved on its own, by precedence:

1. the tenant's override, when set
2. the shared global overrides, when the tenant inherits them
3. the engine defaults
"""

import math
from dataclasses import dataclass

from concierge.config.models.routing import ThresholdDefaults, ThresholdOverrides
from concierge.errors import ConfigurationError
from concierge.tenancy.models import TenantConfig

THRESHOLD_FIELDS = ("tier1", "tier2", "warmup_trigger", "tier3_min_confidence")


@dataclass(frozen=True)
class EffectiveThresholds:
    """Thresholds in force for one routing decision."""

    tier1: float
    tier2: float
    warmup_trigger: float
    tier3_min_confidence: float


def resolve_thresholds(
    tenant: TenantConfig,
    defaults: ThresholdDefaults,
    global_overrides: ThresholdOverrides | None = None,
) -> EffectiveThresholds:
    """Layer tenant and global overrides over the engine defaults.

    Raises:
        ConfigurationError: If a resolved value is not a number in [0, 1],
            or the warmup trigger sits above the Tier1 threshold
    """
    layers = [tenant.thresholds]
    if tenant.inherit_global and global_overrides is not None:
        layers.append(global_overrides)

    values: dict[str, float] = {}
    for name in THRESHOLD_FIELDS:
        value = getattr(defaults, name)
        for layer in layers:
            override = getattr(layer, name)
            if override is not None:
                value = override
                break
        if not isinstance(value, int | float) or not math.isfinite(value) or not 0 <= value <= 1:
            raise ConfigurationError(
                f"Threshold {name}={value!r} for tenant {tenant.tenant_id} is outside [0, 1]",
                tenant_id=tenant.tenant_id,
            )
        values[name] = float(value)

    if values["warmup_trigger"] > values["tier1"]:
        raise ConfigurationError(
            f"Warmup trigger {values['warmup_trigger']} is above the Tier1 threshold "
            f"{values['tier1']} for tenant {tenant.tenant_id}",
            tenant_id=tenant.tenant_id,
        )
    return EffectiveThresholds(**values)
