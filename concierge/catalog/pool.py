"""Scenario pools: per-tenant merged, enabled-only catalog snapshots.

A pool is built once per tenant config version and set of referenced
template versions, and shared by reference across concurrent calls for that tenant. Nothing in
a pool is mutated after it is built.
"""

import asyncio
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import NamedTuple

from concierge.catalog.models import Scenario, Template, UrgencyKeyword
from concierge.catalog.store import CatalogStore
from concierge.errors import ConfigurationError
from concierge.observability.logging import get_logger
from concierge.observability.metrics import POOL_BUILDS
from concierge.tenancy.models import TenantConfig
from concierge.utils.clock import utc_now
from concierge.utils.text import clean_text

logger = get_logger(__name__)


class PoolKey(NamedTuple):
    """Identity of a pool snapshot."""

    tenant_id: str
    tenant_version: int
    template_versions: tuple[tuple[str, int], ...]


@dataclass(frozen=True)
class ScenarioPool:
    """Immutable view of every matchable scenario for one tenant."""

    key: PoolKey
    scenarios: tuple[Scenario, ...]
    filler_words: frozenset[str] = frozenset()
    synonym_map: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    urgency_keywords: tuple[UrgencyKeyword, ...] = ()
    template_ids: tuple[str, ...] = ()
    built_at: datetime = field(default_factory=utc_now)

    @property
    def tenant_id(self) -> str:
        return self.key.tenant_id

    def __len__(self) -> int:
        return len(self.scenarios)

    def get(self, scenario_id: str) -> Scenario | None:
        for scenario in self.scenarios:
            if scenario.id == scenario_id:
                return scenario
        return None

    @property
    def categories(self) -> list[str]:
        seen: dict[str, None] = {}
        for scenario in self.scenarios:
            if scenario.category:
                seen.setdefault(scenario.category, None)
        return list(seen)


def build_pool(
    tenant: TenantConfig,
    templates: dict[str, Template],
) -> ScenarioPool:
    """Flatten a tenant's templates into a pool.

    Templates are merged by descending reference priority; the first
    occurrence of a scenario id wins. Only live scenarios that the tenant
    has not switched off are kept.

    Raises:
        ConfigurationError: If an enabled template reference is unknown
    """
    refs = sorted(
        (ref for ref in tenant.templates if ref.enabled),
        key=lambda ref: (-ref.priority, ref.template_id),
    )

    missing = [ref.template_id for ref in refs if ref.template_id not in templates]
    if missing:
        raise ConfigurationError(
            f"Tenant {tenant.tenant_id} references unknown templates: {missing}",
            tenant_id=tenant.tenant_id,
        )

    scenarios: list[Scenario] = []
    seen_ids: set[str] = set()
    fillers: set[str] = set()
    synonyms: dict[str, list[str]] = {}
    urgency: dict[str, float] = {}

    def _merge_synonyms(mapping: dict[str, list[str]]) -> None:
        for canonical, aliases in mapping.items():
            merged = synonyms.setdefault(clean_text(canonical), [])
            for alias in aliases:
                alias = clean_text(alias)
                if alias and alias not in merged:
                    merged.append(alias)

    for ref in refs:
        template = templates[ref.template_id]
        fillers.update(clean_text(w) for w in template.filler_words)
        _merge_synonyms(template.synonym_map)
        for keyword in template.urgency_keywords:
            word = clean_text(keyword.word)
            urgency[word] = max(urgency.get(word, 0.0), keyword.weight)

        for category in template.categories:
            fillers.update(clean_text(w) for w in category.filler_words)
            _merge_synonyms(category.synonym_map)

        for scenario, category in template.iter_scenarios():
            if not scenario.is_live or scenario.id in seen_ids:
                continue
            if not tenant.is_scenario_enabled(template.id, scenario.id):
                continue
            seen_ids.add(scenario.id)
            scenarios.append(
                scenario.model_copy(
                    update={
                        "template_id": template.id,
                        "template_name": template.name,
                        "category": category.name if category else None,
                    }
                )
            )

    fillers.discard("")
    versions = {ref.template_id: templates[ref.template_id].version for ref in refs}
    return ScenarioPool(
        key=PoolKey(tenant.tenant_id, tenant.version, tuple(sorted(versions.items()))),
        scenarios=tuple(scenarios),
        filler_words=frozenset(fillers),
        synonym_map=MappingProxyType({k: tuple(v) for k, v in synonyms.items() if v}),
        urgency_keywords=tuple(
            UrgencyKeyword(word=w, weight=weight) for w, weight in sorted(urgency.items())
        ),
        template_ids=tuple(ref.template_id for ref in refs),
    )


class ScenarioPoolCache:
    """Latest pool per tenant, rebuilt when its key changes.

    At most one build per tenant runs at a time; concurrent callers wait
    for it and share the result.
    """

    def __init__(self, catalog_store: CatalogStore, max_tenants: int = 256) -> None:
        self._catalog = catalog_store
        self._max_tenants = max_tenants
        self._pools: OrderedDict[str, ScenarioPool] = OrderedDict()
        self._locks: dict[str, asyncio.Lock] = {}

    async def get(self, tenant: TenantConfig) -> ScenarioPool:
        """Return a current pool for the tenant, building it if needed."""
        template_ids = [ref.template_id for ref in tenant.templates if ref.enabled]
        versions = await self._catalog.get_template_versions(template_ids)
        key = PoolKey(tenant.tenant_id, tenant.version, tuple(sorted(versions.items())))

        cached = self._lookup(key)
        if cached is not None:
            return cached

        lock = self._locks.setdefault(tenant.tenant_id, asyncio.Lock())
        async with lock:
            cached = self._lookup(key)
            if cached is not None:
                return cached

            pool = build_pool(tenant, await self._catalog.get_templates(template_ids))
            self._store(pool)

        POOL_BUILDS.labels(tenant_id=tenant.tenant_id).inc()
        if not pool.scenarios:
            logger.warning("scenario_pool_empty", tenant_id=tenant.tenant_id)
        logger.debug(
            "scenario_pool_built",
            tenant_id=tenant.tenant_id,
            tenant_version=tenant.version,
            template_versions=dict(pool.key.template_versions),
            scenario_count=len(pool),
        )
        return pool

    def invalidate(self, tenant_id: str) -> None:
        self._pools.pop(tenant_id, None)

    def _lookup(self, key: PoolKey) -> ScenarioPool | None:
        pool = self._pools.get(key.tenant_id)
        if pool is None or pool.key != key:
            return None
        self._pools.move_to_end(key.tenant_id)
        return pool

    def _store(self, pool: ScenarioPool) -> None:
        self._pools[pool.tenant_id] = pool
        self._pools.move_to_end(pool.tenant_id)
        while len(self._pools) > self._max_tenants:
            evicted, _ = self._pools.popitem(last=False)
            self._locks.pop(evicted, None)
