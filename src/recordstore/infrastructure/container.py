"""Dependency injection container for recordstore."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

import structlog
from opentelemetry import trace

from recordstore.adapters.outbound.memory_engine import InMemoryEngine
from recordstore.infrastructure.config import Config, get_config
from recordstore.infrastructure.logging import get_logger, setup_logging
from recordstore.infrastructure.metrics import MetricsRegistry, get_metrics
from recordstore.infrastructure.tracing import get_tracer, setup_tracing
from recordstore.ports.outbound.kv_engine import KVEngine


@dataclass
class Container:
    """Dependency injection container for recordstore components."""

    config: Config
    logger: structlog.stdlib.BoundLogger
    tracer: trace.Tracer
    metrics: MetricsRegistry
    engine: KVEngine

    _instance: ClassVar[Container | None] = None

    @classmethod
    def create(cls) -> Container:
        """Create and initialize the container with all dependencies."""
        if cls._instance is not None:
            return cls._instance

        config = get_config()
        observability = config.observability
        if observability.configure_logging:
            logger = setup_logging(observability.log_level, observability.log_format)
        else:
            logger = get_logger(__name__)
        if observability.otel_endpoint:
            tracer = setup_tracing(observability.otel_service_name, observability.otel_endpoint)
        else:
            tracer = get_tracer()

        cls._instance = cls(
            config=config,
            logger=logger,
            tracer=tracer,
            metrics=get_metrics(),
            engine=InMemoryEngine(),
        )

        logger.info(
            "recordstore_container_initialized",
            log_level=observability.log_level,
            metrics_enabled=observability.metrics_enabled,
            default_key_path=config.database.default_key_path,
        )

        return cls._instance

    @classmethod
    def get(cls) -> Container:
        """Get the singleton container instance."""
        if cls._instance is None:
            return cls.create()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset the container (useful for testing)."""
        cls._instance = None


def get_container() -> Container:
    """Get the dependency injection container."""
    return Container.get()
