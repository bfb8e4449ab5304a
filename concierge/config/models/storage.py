"""Storage backend configuration models."""

from typing import Literal

from pydantic import BaseModel, Field

LedgerBackendType = Literal["inmemory", "redis"]


class StorageConfig(BaseModel):
    """Ledger storage configuration."""

    ledger_backend: LedgerBackendType = Field(
        default="inmemory",
        description="Backend for ledger entries and promotions",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )
    key_prefix: str = Field(default="concierge", description="Redis key prefix")
    write_retries: int = Field(
        default=3,
        ge=1,
        description="Attempts per ledger write",
    )
    retry_backoff_seconds: float = Field(
        default=0.1,
        ge=0.0,
        description="Base backoff between ledger write attempts",
    )
