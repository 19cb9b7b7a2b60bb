"""Infrastructure layer - cross-cutting concerns."""

from recordstore.infrastructure.config import Config, get_config
from recordstore.infrastructure.logging import setup_logging, get_logger
from recordstore.infrastructure.metrics import MetricsRegistry, get_metrics
from recordstore.infrastructure.tracing import setup_tracing, get_tracer, trace_span

__all__ = [
    "Config",
    "get_config",
    "setup_logging",
    "get_logger",
    "MetricsRegistry",
    "get_metrics",
    "setup_tracing",
    "get_tracer",
    "trace_span",
]
