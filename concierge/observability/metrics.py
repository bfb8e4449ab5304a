"""Prometheus metrics for Concierge.

Routing decisions, per-tier latency, Tier3 spend, warmup outcomes and
ledger health.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    start_http_server,
)

ROUTING_DECISIONS = Counter(
    "concierge_routing_decisions_total",
    "Routing decisions by winning tier and method",
    labelnames=["tenant_id", "tier", "method", "matched"],
)

ROUTING_LATENCY = Histogram(
    "concierge_routing_latency_seconds",
    "End-to-end latency of one routing decision",
    labelnames=["tenant_id"],
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

TIER_LATENCY = Histogram(
    "concierge_tier_latency_seconds",
    "Latency of individual matching tiers",
    labelnames=["tier"],
    buckets=(0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

TIER_FAILURES = Counter(
    "concierge_tier_failures_total",
    "Tier2/Tier3 timeouts and provider errors",
    labelnames=["tier", "reason"],
)

TIER3_COST_USD = Counter(
    "concierge_tier3_cost_usd_total",
    "LLM spend recorded in the ledger",
    labelnames=["tenant_id"],
)

LLM_TOKENS = Counter(
    "concierge_llm_tokens_total",
    "Total LLM tokens used",
    labelnames=["model", "direction"],
)

WARMUP_OUTCOMES = Counter(
    "concierge_warmup_outcomes_total",
    "Terminal states of warmup sessions",
    labelnames=["tenant_id", "state"],
)

WARMUP_AUTO_DISABLED = Counter(
    "concierge_warmup_auto_disabled_total",
    "Times the hit-rate circuit breaker disabled warmup",
    labelnames=["tenant_id"],
)

BUDGET_REMAINING_USD = Gauge(
    "concierge_budget_remaining_usd",
    "Remaining daily Tier3 budget",
    labelnames=["tenant_id"],
)

CONFIGURATION_ERRORS = Counter(
    "concierge_configuration_errors_total",
    "Routing decisions aborted by tenant configuration defects",
    labelnames=["tenant_id"],
)

LEDGER_WRITE_FAILURES = Counter(
    "concierge_ledger_write_failures_total",
    "Ledger persistence attempts that failed",
    labelnames=["operation"],
)

PATTERNS_PROMOTED = Counter(
    "concierge_patterns_promoted_total",
    "Learned patterns merged into the catalog",
    labelnames=["kind"],
)

POOL_BUILDS = Counter(
    "concierge_pool_builds_total",
    "Scenario pool snapshots built",
    labelnames=["tenant_id"],
)


def render_metrics() -> tuple[bytes, str]:
    """Exposition payload and its content type, for an embedding HTTP layer."""
    return generate_latest(), CONTENT_TYPE_LATEST


def start_metrics_server(port: int) -> None:
    """Serve /metrics from a background thread."""
    start_http_server(port)
