"""Scenario catalog: templates, stores and per-tenant pools."""

from concierge.catalog.inmemory import InMemoryCatalogStore
from concierge.catalog.models import (
    Category,
    ReplyVariant,
    Scenario,
    ScenarioStatus,
    Template,
    UrgencyKeyword,
)
from concierge.catalog.pool import PoolKey, ScenarioPool, ScenarioPoolCache, build_pool
from concierge.catalog.store import CatalogStore

__all__ = [
    "CatalogStore",
    "Category",
    "InMemoryCatalogStore",
    "PoolKey",
    "ReplyVariant",
    "Scenario",
    "ScenarioPool",
    "ScenarioPoolCache",
    "ScenarioStatus",
    "Template",
    "UrgencyKeyword",
    "build_pool",
]
