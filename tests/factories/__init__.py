"""Test factories for Concierge domain models."""

from tests.factories.catalog import (
    ScenarioFactory,
    TemplateFactory,
    TenantConfigFactory,
    build_test_pool,
)

__all__ = [
    "ScenarioFactory",
    "TemplateFactory",
    "TenantConfigFactory",
    "build_test_pool",
]
