"""Observability: structured logging and metrics."""

from concierge.observability.logging import get_logger, setup_logging
from concierge.observability.metrics import render_metrics, start_metrics_server

__all__ = ["get_logger", "render_metrics", "setup_logging", "start_metrics_server"]
