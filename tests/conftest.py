"""Pytest configuration and fixtures for gridql tests."""

from __future__ import annotations

from typing import Any, Generator

import pytest
from prometheus_client import CollectorRegistry

from gridql.application import GridEngine
from gridql.infrastructure.config import Config, SandboxConfig
from gridql.infrastructure.metrics import MetricsRegistry


@pytest.fixture
def test_config() -> Config:
    """Provide a test configuration with a short sandbox budget."""
    return Config(
        sandbox=SandboxConfig(
            timeout_seconds=2.0,
            max_steps=10**9,
            worker_threads=2,
            compile_cache_size=16,
        ),
    )


@pytest.fixture
def metrics_registry() -> MetricsRegistry:
    """Provide a fresh metrics registry for each test."""
    # Use a separate registry to avoid conflicts between tests
    registry = CollectorRegistry(auto_describe=True)
    return MetricsRegistry(registry=registry)


@pytest.fixture
def engine(
    test_config: Config, metrics_registry: MetricsRegistry
) -> Generator[GridEngine, None, None]:
    """Provide an engine wired to the test config and registry."""
    e = GridEngine(config=test_config, metrics=metrics_registry)
    yield e
    e.shutdown()


@pytest.fixture
def orders() -> dict[str, Any]:
    """Orders table used across query tests."""
    return {
        "name": "orders",
        "columns": [
            {"name": "id", "type": "number"},
            {"name": "customer_id", "type": "number"},
            {"name": "amount", "type": "number"},
            {"name": "status", "type": "string"},
        ],
        "rows": [
            {"id": 1, "customer_id": 10, "amount": 100, "status": "paid"},
            {"id": 2, "customer_id": 11, "amount": 250, "status": "pending"},
            {"id": 3, "customer_id": 10, "amount": 75, "status": "paid"},
            {"id": 4, "customer_id": 12, "amount": None, "status": "cancelled"},
        ],
    }


@pytest.fixture
def customers() -> dict[str, Any]:
    """Customers table joined against orders."""
    return {
        "name": "customers",
        "columns": [
            {"name": "id", "type": "number"},
            {"name": "name", "type": "string"},
            {"name": "vip", "type": "boolean"},
        ],
        "rows": [
            {"id": 10, "name": "Ada", "vip": "yes"},
            {"id": 11, "name": "Grace", "vip": "no"},
        ],
    }


@pytest.fixture
def double_fn() -> dict[str, Any]:
    """A function that doubles a number."""
    return {
        "name": "double",
        "params": [{"name": "x", "type": "number"}],
        "returnType": "number",
        "body": "return x * 2",
    }


# Markers for test categories
def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow tests")
