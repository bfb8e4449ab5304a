"""In-memory implementation of TenantConfigStore."""

from concierge.tenancy.models import TenantConfig
from concierge.tenancy.store import TenantConfigStore


class InMemoryTenantConfigStore(TenantConfigStore):
    """Dict-backed tenant configuration for testing and development."""

    def __init__(self, configs: list[TenantConfig] | None = None) -> None:
        self._configs: dict[str, TenantConfig] = {c.tenant_id: c for c in configs or []}

    async def get_config(self, tenant_id: str) -> TenantConfig | None:
        return self._configs.get(tenant_id)

    async def save_config(self, config: TenantConfig) -> None:
        self._configs[config.tenant_id] = config
