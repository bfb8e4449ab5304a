"""Wire a Router from Settings.

Stores and providers default to what the configuration selects; tests
and embedding applications pass their own instances instead.
"""

import redis.asyncio as redis

from concierge.catalog.inmemory import InMemoryCatalogStore
from concierge.catalog.pool import ScenarioPoolCache
from concierge.catalog.store import CatalogStore
from concierge.config import get_settings
from concierge.config.settings import Settings
from concierge.ledger.budget import BudgetLedger
from concierge.ledger.inmemory import InMemoryLedgerStore
from concierge.ledger.learning import PatternLearner
from concierge.ledger.redis import RedisLedgerStore
from concierge.ledger.store import LedgerStore
from concierge.observability.logging import get_logger, setup_logging
from concierge.observability.metrics import start_metrics_server
from concierge.providers.embedding import EmbeddingProvider, create_embedding_provider
from concierge.providers.llm.base import LLMProvider
from concierge.providers.llm.executor import create_executor
from concierge.providers.llm.pricing import PriceTable
from concierge.routing.index import PoolIndexCache
from concierge.routing.replies import ReplySelector
from concierge.routing.router import Router
from concierge.routing.tier1 import RuleMatcher
from concierge.routing.tier2 import SemanticMatcher
from concierge.routing.tier3 import LLMFallback
from concierge.routing.warmup import WarmupScheduler
from concierge.tenancy.inmemory import InMemoryTenantConfigStore
from concierge.tenancy.store import TenantConfigStore
from concierge.utils.clock import Clock, utc_now

logger = get_logger(__name__)


def create_ledger_store(settings: Settings) -> LedgerStore:
    """Ledger store for the configured backend."""
    storage = settings.storage
    if storage.ledger_backend == "redis":
        client = redis.from_url(storage.redis_url, decode_responses=True)
        logger.info(
            "ledger_store_initialized",
            store_type="redis",
            url=storage.redis_url.split("@")[-1],
        )
        return RedisLedgerStore(client, storage)
    logger.info("ledger_store_initialized", store_type="inmemory")
    return InMemoryLedgerStore()


def create_router(
    settings: Settings | None = None,
    *,
    catalog_store: CatalogStore | None = None,
    tenant_store: TenantConfigStore | None = None,
    ledger_store: LedgerStore | None = None,
    llm_provider: LLMProvider | None = None,
    embedding_provider: EmbeddingProvider | None = None,
    configure_logging: bool = True,
    clock: Clock = utc_now,
) -> Router:
    """Build a Router and its collaborators.

    Args:
        settings: Configuration (loaded with get_settings() when omitted)
        catalog_store: Template catalog (empty in-memory catalog by default)
        tenant_store: Tenant configs for route_for_tenant (empty in-memory by default)
        ledger_store: Ledger persistence (per storage.ledger_backend by default)
        llm_provider: Tier3 model (agno executor per providers.llm by default)
        embedding_provider: Tier2 embeddings (per providers.embedding by default)
        configure_logging: Apply observability.logging to structlog
        clock: Time source for cooldowns and ledger days
    """
    settings = settings or get_settings()
    if configure_logging:
        setup_logging(
            level=settings.log_level,
            format=settings.observability.logging.format,
            redact_pii=settings.observability.logging.redact_pii,
            max_speech_chars=settings.observability.logging.max_speech_chars,
        )
    metrics = settings.observability.metrics
    if metrics.enabled and metrics.port:
        start_metrics_server(metrics.port)

    catalog_store = catalog_store or InMemoryCatalogStore()
    ledger_store = ledger_store or create_ledger_store(settings)
    llm_provider = llm_provider or create_executor(settings.providers.llm)
    embedding_provider = embedding_provider or create_embedding_provider(
        settings.providers.embedding
    )

    index_cache = PoolIndexCache(
        settings.tier1.min_term_length,
        settings.routing.pool_cache_size,
        k1=settings.tier1.k1,
        b=settings.tier1.b,
    )
    ledger = BudgetLedger(ledger_store, settings.warmup, settings.storage, clock=clock)
    learner = PatternLearner(ledger_store, catalog_store, settings.learning)

    fallback = LLMFallback(
        llm_provider,
        PriceTable(settings.providers.llm.pricing),
        settings.providers.llm,
        settings.learning,
        index_cache,
    )
    scheduler = WarmupScheduler(
        ledger,
        SemanticMatcher(embedding_provider, index_cache),
        fallback,
        settings.routing,
        settings.warmup,
        clock=clock,
    )

    logger.info(
        "router_created",
        llm_model=llm_provider.model,
        embedding_provider=embedding_provider.provider_name,
        ledger_backend=settings.storage.ledger_backend,
    )
    return Router(
        pool_cache=ScenarioPoolCache(catalog_store, settings.routing.pool_cache_size),
        rule_matcher=RuleMatcher(settings.tier1, index_cache),
        scheduler=scheduler,
        ledger=ledger,
        learner=learner,
        tenant_store=tenant_store or InMemoryTenantConfigStore(),
        config=settings.routing,
        reply_selector=ReplySelector(settings.routing.reply_selection),
        clock=clock,
    )
