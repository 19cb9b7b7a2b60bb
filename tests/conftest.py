"""Pytest configuration and fixtures for recordstore tests."""

from __future__ import annotations

import logging
from typing import AsyncGenerator, Generator

import pytest
from prometheus_client import CollectorRegistry

from recordstore.adapters.outbound.memory_engine import InMemoryEngine
from recordstore.application.database import Database
from recordstore.infrastructure.config import get_config
from recordstore.infrastructure.container import Container
from recordstore.infrastructure.logging import ROOT_LOGGER
from recordstore.infrastructure.metrics import MetricsRegistry


@pytest.fixture(autouse=True)
def fresh_container() -> Generator[None, None, None]:
    """Give every test its own container and configuration."""
    Container.reset()
    get_config.cache_clear()
    yield
    Container.reset()
    get_config.cache_clear()


@pytest.fixture
def engine() -> InMemoryEngine:
    """Provide an empty in-memory engine."""
    return InMemoryEngine()


@pytest.fixture
def collector_registry() -> CollectorRegistry:
    """Provide an isolated Prometheus registry."""
    return CollectorRegistry(auto_describe=True)


@pytest.fixture
def metrics_registry(collector_registry: CollectorRegistry) -> MetricsRegistry:
    """Provide a fresh metrics registry for each test."""
    # Use a separate registry to avoid conflicts between tests
    return MetricsRegistry(registry=collector_registry)


@pytest.fixture
async def db(
    engine: InMemoryEngine, metrics_registry: MetricsRegistry
) -> AsyncGenerator[Database, None]:
    """Provide an opened database handle on the test engine."""
    database = Database("test", engine, metrics=metrics_registry)
    await database.open()
    yield database
    database.close()


# Markers for test categories
def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests")


@pytest.fixture
def package_logger(monkeypatch: pytest.MonkeyPatch) -> Generator[logging.Logger, None, None]:
    """Provide the recordstore logger as a host application would leave it."""
    logger = logging.getLogger(ROOT_LOGGER)
    monkeypatch.setattr(logger, "handlers", [])
    monkeypatch.setattr(logger, "propagate", True)
    level = logger.level
    logger.setLevel(logging.NOTSET)
    yield logger
    logger.setLevel(level)
