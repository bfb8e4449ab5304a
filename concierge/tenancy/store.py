"""TenantConfigStore abstract interface."""

from abc import ABC, abstractmethod

from concierge.tenancy.models import TenantConfig


class TenantConfigStore(ABC):
    """Key/value access to tenant configuration snapshots."""

    @abstractmethod
    async def get_config(self, tenant_id: str) -> TenantConfig | None:
        """Get the current configuration for a tenant."""
        pass

    @abstractmethod
    async def save_config(self, config: TenantConfig) -> None:
        """Save a tenant configuration."""
        pass
