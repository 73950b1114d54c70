"""Pytest configuration and fixtures for factdb tests."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Generator

import pytest
from prometheus_client import CollectorRegistry

from factdb.application import Connection, EntityStore, connect, reset_databases, use_metrics
from factdb.infrastructure.config import FactDBConfig
from factdb.infrastructure.metrics import MetricsRegistry


USER_SCHEMA: list[dict[str, Any]] = [
    {
        "db/ident": "user/email",
        "db/valueType": "db.type/string",
        "db/cardinality": "db.cardinality/one",
        "db/unique": "db.unique/identity",
        "db/doc": "Email address of a user",
    },
    {
        "db/ident": "user/name",
        "db/valueType": "db.type/string",
        "db/cardinality": "db.cardinality/one",
    },
    {
        "db/ident": "user/age",
        "db/valueType": "db.type/long",
        "db/cardinality": "db.cardinality/one",
    },
    {
        "db/ident": "user/friends",
        "db/valueType": "db.type/ref",
        "db/cardinality": "db.cardinality/many",
    },
    {
        "db/ident": "user/tags",
        "db/valueType": "db.type/keyword",
        "db/cardinality": "db.cardinality/many",
    },
]

FIXED_INSTANT = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def metrics_registry() -> MetricsRegistry:
    """Provide a fresh metrics registry for each test."""
    # Use a separate registry to avoid conflicts between tests
    registry = CollectorRegistry(auto_describe=True)
    return MetricsRegistry(registry=registry)


@pytest.fixture(autouse=True)
def fresh_databases(metrics_registry: MetricsRegistry) -> Generator[None, None, None]:
    """Start every test with an empty database registry."""
    reset_databases()
    use_metrics(metrics_registry)
    yield
    reset_databases()
    use_metrics(None)


@pytest.fixture
def user_schema() -> list[dict[str, Any]]:
    """Provide the user attribute declarations."""
    return [dict(record) for record in USER_SCHEMA]


@pytest.fixture
def config() -> FactDBConfig:
    """Provide a default configuration."""
    return FactDBConfig()


@pytest.fixture
def store(config: FactDBConfig, metrics_registry: MetricsRegistry) -> EntityStore:
    """Provide an empty entity store with a fixed clock."""
    return EntityStore(
        "test",
        config=config,
        metrics=metrics_registry,
        clock=lambda: FIXED_INSTANT,
    )


@pytest.fixture
def user_store(store: EntityStore) -> EntityStore:
    """Provide an entity store with the user schema declared."""
    store.declare_attributes(USER_SCHEMA)
    return store


@pytest.fixture
def conn() -> Connection:
    """Provide a connection to a fresh database with the user schema declared."""
    connection = connect("factdb:mem://tutorial", create=True)
    connection.declare_attributes(USER_SCHEMA)
    return connection


# Markers for test categories
def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests")
