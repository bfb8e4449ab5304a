"""Tenant configuration models and stores."""

from concierge.tenancy.inmemory import InMemoryTenantConfigStore
from concierge.tenancy.models import (
    ScenarioControl,
    TemplateReference,
    TenantConfig,
    ThresholdOverrides,
)
from concierge.tenancy.store import TenantConfigStore

__all__ = [
    "InMemoryTenantConfigStore",
    "ScenarioControl",
    "TemplateReference",
    "TenantConfig",
    "TenantConfigStore",
    "ThresholdOverrides",
]
