"""Pytest fixtures for integration tests.

Redis-backed tests skip gracefully when no server answers at
TEST_REDIS_URL.
"""

import os
from collections.abc import AsyncIterator
from uuid import uuid4

import pytest
import pytest_asyncio
import redis.asyncio as redis

from concierge.config.models.storage import StorageConfig


@pytest.fixture(scope="session")
def redis_url() -> str:
    """Get Redis URL for tests."""
    return os.environ.get("TEST_REDIS_URL", "redis://localhost:6379/0")


@pytest.fixture
def key_prefix() -> str:
    """Unique key prefix so parallel runs never share keys."""
    return f"concierge_test_{uuid4().hex[:12]}"


@pytest.fixture
def storage_config(redis_url: str, key_prefix: str) -> StorageConfig:
    return StorageConfig(
        ledger_backend="redis",
        redis_url=redis_url,
        key_prefix=key_prefix,
        retry_backoff_seconds=0.0,
    )


@pytest_asyncio.fixture(scope="function")
async def redis_client(redis_url: str, key_prefix: str) -> AsyncIterator[redis.Redis]:
    """Create Redis client for tests.

    Skips tests if Redis is not available and removes every key under
    the test prefix afterwards.
    """
    client = redis.from_url(redis_url, decode_responses=True)

    try:
        await client.ping()
    except (redis.ConnectionError, OSError):
        await client.aclose()
        pytest.skip(f"Redis not available at {redis_url}")

    yield client

    async for key in client.scan_iter(match=f"{key_prefix}:*"):
        await client.delete(key)
    await client.aclose()
