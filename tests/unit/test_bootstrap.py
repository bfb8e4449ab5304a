"""Tests for router wiring."""

from unittest.mock import patch

import pytest

from concierge.bootstrap import create_ledger_store, create_router
from concierge.config.models.observability import MetricsConfig, ObservabilityConfig
from concierge.config.models.storage import StorageConfig
from concierge.config.models.warmup import WarmupConfig
from concierge.config.settings import Settings
from concierge.ledger.inmemory import InMemoryLedgerStore
from concierge.ledger.redis import RedisLedgerStore
from concierge.providers.embedding import HashingEmbeddingProvider
from concierge.providers.llm import LLMExecutor, MockLLMProvider
from concierge.routing import Router


class TestCreateLedgerStore:
    """Tests for create_ledger_store."""

    def test_inmemory_by_default(self):
        """Should build the in-memory store by default."""
        assert isinstance(create_ledger_store(Settings()), InMemoryLedgerStore)

    def test_redis_backend(self):
        """Should build a Redis store without connecting."""
        settings = Settings(storage=StorageConfig(ledger_backend="redis"))

        assert isinstance(create_ledger_store(settings), RedisLedgerStore)


class TestCreateRouter:
    """Tests for create_router."""

    def test_defaults_from_settings(self):
        """Should pick providers per configuration."""
        router = create_router(Settings(), configure_logging=False)

        assert isinstance(router, Router)
        fallback = router._scheduler._fallback
        assert isinstance(fallback.provider, LLMExecutor)
        assert isinstance(router._scheduler._semantic.provider, HashingEmbeddingProvider)

    def test_warmup_settings_reach_ledger(self):
        """Should configure the ledger from the warmup section."""
        settings = Settings(warmup=WarmupConfig(daily_budget_usd=2.5))

        router = create_router(
            settings, llm_provider=MockLLMProvider(), configure_logging=False
        )

        assert router.ledger.config.daily_budget_usd == 2.5

    def test_metrics_server_started_when_port_set(self):
        """Should serve metrics only when a port is configured."""
        settings = Settings(
            observability=ObservabilityConfig(metrics=MetricsConfig(enabled=True, port=9464))
        )

        with patch("concierge.bootstrap.start_metrics_server") as start:
            create_router(settings, llm_provider=MockLLMProvider(), configure_logging=False)

        start.assert_called_once_with(9464)

    @pytest.mark.parametrize("metrics", [MetricsConfig(port=None), MetricsConfig(enabled=False)])
    def test_metrics_server_not_started(self, metrics):
        """Should leave metrics unserved without a port or when disabled."""
        settings = Settings(observability=ObservabilityConfig(metrics=metrics))

        with patch("concierge.bootstrap.start_metrics_server") as start:
            create_router(settings, llm_provider=MockLLMProvider(), configure_logging=False)

        start.assert_not_called()
